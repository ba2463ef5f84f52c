"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, to_local, local_day_bounds
from utils.staff_context import (
    SYSTEM_STAFF_ID,
    get_current_staff_id,
    current_staff_id_or_system,
    set_current_staff_id,
    clear_current_staff_id,
    staff_context,
)
