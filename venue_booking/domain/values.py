# venue_booking/domain/values.py

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

MINOR_UNIT = Decimal("0.01")


class ItemKind(str, Enum):
    PACKAGE = "PACKAGE"
    EXTRA = "EXTRA"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


def to_money(value) -> Decimal:
    """Round to the currency minor unit, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return to_money(Decimal(int(amount)) / 100)


@dataclass(frozen=True)
class RequestedItem:
    item_kind: ItemKind
    item_ref: str
    quantity: int


@dataclass(frozen=True)
class CustomerDetails:
    """Identity handed over by the session layer or typed in by a guest."""

    is_guest: bool
    user_id: str | None = None
    name: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class ReservedLine:
    item_kind: ItemKind
    item_ref: str
    item_name: str
    quantity: int
    item: object = field(compare=False, repr=False)


@dataclass(frozen=True)
class Reservation:
    event_date: date
    lines: tuple[ReservedLine, ...]


@dataclass(frozen=True)
class PriceQuote:
    price: Decimal
    is_override: bool
    has_pricing: bool = True

    @property
    def message(self) -> str | None:
        return None if self.has_pricing else "No pricing available"


@dataclass(frozen=True)
class DiscountResult:
    discount_amount: Decimal
    promo_code: object = field(compare=False, repr=False)
