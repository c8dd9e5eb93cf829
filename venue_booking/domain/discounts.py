# venue_booking/domain/discounts.py

from decimal import Decimal

from venue_booking.domain.values import DiscountType, to_money

ZERO = Decimal("0.00")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def calculate_discount(
    subtotal: Decimal,
    discount_type: DiscountType,
    discount_value: Decimal,
) -> Decimal:
    """
    Discount for ``subtotal``, rounded to the minor unit.

    The result is never negative and never larger than the subtotal.
    """
    subtotal = to_money(subtotal)
    discount_value = Decimal(str(discount_value))
    if subtotal <= ZERO or discount_value < 0:
        return ZERO

    if discount_type == DiscountType.PERCENTAGE:
        discount = to_money(subtotal * discount_value / Decimal(100))
    else:
        discount = to_money(discount_value)

    return min(discount, subtotal)
