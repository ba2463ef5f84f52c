"""Shop configuration for the order lifecycle engine."""

from pydantic import BaseModel, Field


class ShopConfig(BaseModel):
    """
    Per-shop settings injected into the services.

    Catalog data (lens types, coatings, custom brands) is not configured
    here; the engine only sees prices.
    """

    # Currency
    currency_code: str = Field(
        default="KWD",
        description="ISO currency code. Amounts always carry 3 fractional digits.",
        min_length=3,
        max_length=3,
    )

    # Reporting
    timezone: str = Field(
        default="Asia/Kuwait",
        description="IANA timezone used to group sales into business days",
    )

    # Identifiers
    invoice_prefix: str = Field(default="IN", min_length=1, max_length=8)
    work_order_prefix: str = Field(default="WO", min_length=1, max_length=8)
    refund_prefix: str = Field(default="RF", min_length=1, max_length=8)

    # Archive workflow
    auto_refund_method: str = Field(
        default="cash",
        description="Method recorded on refunds created when an order is archived",
        min_length=1,
    )
    auto_refund_reason: str = Field(
        default="Order deleted - automatic refund of collected amount",
        description="Reason recorded on refunds created when an order is archived",
        min_length=1,
    )

    # Edits
    default_edit_note: str = Field(
        default="Order has been edited",
        description="Edit history note when the caller gives none",
    )

    # Pickup
    allow_pickup_with_balance: bool = Field(
        default=True,
        description="Whether an order may be picked up while money is still owed",
    )
