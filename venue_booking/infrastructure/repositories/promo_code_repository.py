# venue_booking/infrastructure/repositories/promo_code_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import or_, select, update

from venue_booking.infrastructure.db.models import PromoCode


class PromoCodeRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> PromoCode | None:
        stmt = select(PromoCode).where(PromoCode.code == code)
        return self.db.execute(stmt).scalar_one_or_none()

    def claim_usage(self, promo_code_id: str) -> bool:
        """
        Increment usage_count unless the limit is already reached.
        Returns False when the claim lost.
        """

        stmt = (
            update(PromoCode)
            .where(
                PromoCode.id == promo_code_id,
                or_(
                    PromoCode.usage_limit.is_(None),
                    PromoCode.usage_count < PromoCode.usage_limit,
                ),
            )
            .values(usage_count=PromoCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
