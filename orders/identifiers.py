"""Human-readable order identifiers.

Format: PREFIX-YYYYMMDD-NNNN where NNNN is a per-prefix, per-day sequence
handed out by the store. The engine never infers identity from content.
"""

from orders.store import OrderStore
from utils.timezone import now_utc


def generate_id(store: OrderStore, prefix: str) -> str:
    """
    Next identifier for a prefix (e.g. IN-20261019-0007).

    Args:
        store: Store that owns the sequence counters
        prefix: Identifier prefix ("IN", "WO", "RF")
    """
    today = now_utc().strftime("%Y%m%d")
    day_prefix = f"{prefix}-{today}"
    sequence = store.next_sequence(day_prefix)
    return f"{day_prefix}-{sequence:04d}"
