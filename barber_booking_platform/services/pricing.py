"""
Pricing for bookings: discount, tax and total.
"""

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
DEFAULT_TAX_RATE = Decimal("0.08")


def to_money(value: Number) -> Decimal:
    """Convert a value to a Decimal rounded to the currency minor unit."""
    if not isinstance(value, Decimal):
        # str() keeps floats like 0.1 from dragging in binary noise
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class PricingBreakdown:
    """Derived price components for a single booking."""

    service_price: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_price: Decimal
    currency: str = "USD"
    tip_amount: Decimal = Decimal("0.00")

    @property
    def savings(self) -> Decimal:
        return self.discount_amount

    @property
    def effective_price(self) -> Decimal:
        """Price actually charged for the service before tax."""
        return self.subtotal

    def with_tip(self, tip: Number) -> "PricingBreakdown":
        """Return a copy with a tip added on top of the total."""
        tip_amount = to_money(tip)
        return replace(
            self,
            tip_amount=self.tip_amount + tip_amount,
            total_price=self.total_price + tip_amount,
        )

    def as_dict(self) -> dict:
        return {
            "service_price": self.service_price,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "total_price": self.total_price,
            "currency": self.currency,
        }


class PricingCalculator:
    """
    Compute booking prices.

    ``subtotal = service_price - discount_amount``, the tax is the subtotal
    times the rate rounded half-even to cents, and the total is the subtotal
    plus that rounded tax so the total always reconciles with its parts.
    A discount larger than the price yields a negative subtotal and tax.
    """

    def __init__(self, tax_rate: Number = DEFAULT_TAX_RATE, currency: str = "USD"):
        self.tax_rate = Decimal(str(tax_rate))
        self.currency = currency

    def compute(
        self,
        service_price: Number,
        discount_amount: Number = Decimal("0.00"),
        tax_rate: Optional[Number] = None
    ) -> PricingBreakdown:
        """
        Compute the pricing breakdown for a booking.

        Args:
            service_price: Catalog (or negotiated) price of the service
            discount_amount: Amount taken off the service price
            tax_rate: Overrides the calculator's configured rate

        Returns:
            PricingBreakdown with every amount in currency precision
        """
        rate = self.tax_rate if tax_rate is None else Decimal(str(tax_rate))
        price = to_money(service_price)
        discount = to_money(discount_amount)

        subtotal = price - discount
        tax_amount = to_money(subtotal * rate)

        return PricingBreakdown(
            service_price=price,
            discount_amount=discount,
            tax_rate=rate,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_price=subtotal + tax_amount,
            currency=self.currency,
        )
