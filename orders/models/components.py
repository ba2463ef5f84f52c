"""Priced order components shared by invoices and work orders.

Descriptive data (frame brand, lens type, prescription) is opaque to the
lifecycle engine and lives in `details` on the owning entity. Only prices
affect totals.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from orders.money import NonNegativeAmount, multiply


class ContactLensItem(BaseModel):
    """One contact lens line (box of lenses, solution, etc.)."""

    description: str | None = Field(None, max_length=200)
    quantity: int = Field(1, ge=1)
    unit_price: NonNegativeAmount

    @property
    def line_total(self) -> Decimal:
        return multiply(self.unit_price, self.quantity)


class PricedComponents(BaseModel):
    """Every priced part of an order. Each one optional."""

    frame_price: NonNegativeAmount | None = None
    lens_price: NonNegativeAmount | None = None
    coating_price: NonNegativeAmount | None = None
    thickness_price: NonNegativeAmount | None = None
    service_price: NonNegativeAmount | None = None
    repair_price: NonNegativeAmount | None = None
    contact_lens_items: list[ContactLensItem] = Field(default_factory=list)

    def priced_amounts(self) -> list[Decimal]:
        """All present component prices, contact lens lines expanded by quantity."""
        amounts = [
            price for price in (
                self.frame_price, self.lens_price, self.coating_price,
                self.thickness_price, self.service_price, self.repair_price,
            )
            if price is not None
        ]
        amounts.extend(item.line_total for item in self.contact_lens_items)
        return amounts

    def has_priced_item(self) -> bool:
        """Whether at least one component carries a positive price."""
        return any(amount > 0 for amount in self.priced_amounts())
