import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from venue_booking.domain.calendar import utc_now
from venue_booking.domain.discounts import calculate_discount, normalize_code
from venue_booking.domain.exceptions import InvalidPromoCodeError, ValidationError
from venue_booking.domain.values import DiscountResult
from venue_booking.infrastructure.db.models import PromoCode
from venue_booking.infrastructure.repositories.promo_code_repository import PromoCodeRepository

logger = logging.getLogger(__name__)


class PromoCodeValidator:

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.promo_code_repository = PromoCodeRepository(db)

    def validate(
        self,
        code: str | None,
        subtotal: Decimal,
        booking_date: date | None = None,
    ) -> DiscountResult:
        """
        Look the code up and compute its discount against ``subtotal``.

        Validity windows are judged against the current instant;
        ``booking_date`` is accepted for callers that have one but does
        not move the window.
        """
        normalized = normalize_code(code or "")
        if not normalized:
            raise ValidationError("Promo code is required")

        promo = self.promo_code_repository.get_by_code(normalized)
        self._ensure_usable(promo)

        discount = calculate_discount(subtotal, promo.discount_type, promo.discount_value)
        return DiscountResult(discount_amount=discount, promo_code=promo)

    def claim(self, promo: PromoCode) -> None:
        """Count one use of ``promo`` in the current transaction."""
        if not self.promo_code_repository.claim_usage(promo.id):
            logger.info("Promo code %s usage limit reached while claiming", promo.code)
            raise InvalidPromoCodeError(
                "Promo code usage limit reached",
                code="PromoCodeUsageLimitReached",
            )

    def _ensure_usable(self, promo: PromoCode | None) -> None:
        if promo is None:
            raise InvalidPromoCodeError("Promo code not found", code="PromoCodeNotFound")

        if not promo.is_active:
            raise InvalidPromoCodeError("Promo code is not active", code="PromoCodeInactive")

        now = self.clock()
        if _aware(promo.valid_from) > now:
            raise InvalidPromoCodeError("Promo code is not yet valid", code="PromoCodeNotYetValid")

        if promo.valid_until is not None and _aware(promo.valid_until) < now:
            raise InvalidPromoCodeError("Promo code has expired", code="PromoCodeExpired")

        if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
            raise InvalidPromoCodeError(
                "Promo code usage limit reached",
                code="PromoCodeUsageLimitReached",
            )


def _aware(moment: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they were stored as UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
