# venue_booking/infrastructure/repositories/catalog_repository.py

from datetime import date

from sqlalchemy.orm import Session
from sqlalchemy import select

from venue_booking.infrastructure.db.models import (
    BlackoutDate,
    CutoffRule,
    DatedPricing,
    Extra,
    Package,
)
from venue_booking.domain.values import ItemKind

_MODELS = {
    ItemKind.PACKAGE: Package,
    ItemKind.EXTRA: Extra,
}


class CatalogRepository:
    """Packages, extras and the per-date calendar rules around them."""

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, item_kind: ItemKind, item_id: str) -> Package | Extra | None:
        return self.db.get(_MODELS[item_kind], item_id)

    def list_active(self, item_kind: ItemKind) -> list[Package | Extra]:
        model = _MODELS[item_kind]
        stmt = select(model).where(model.is_active.is_(True)).order_by(model.name)
        return list(self.db.execute(stmt).scalars())

    def get_dated_price(
        self,
        item_kind: ItemKind,
        item_id: str,
        event_date: date,
    ) -> DatedPricing | None:
        stmt = select(DatedPricing).where(
            DatedPricing.item_kind == item_kind,
            DatedPricing.item_id == item_id,
            DatedPricing.event_date == event_date,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_blackout(self, event_date: date) -> BlackoutDate | None:
        stmt = select(BlackoutDate).where(BlackoutDate.event_date == event_date)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_blackouts_between(self, start: date, end: date) -> list[BlackoutDate]:
        stmt = select(BlackoutDate).where(
            BlackoutDate.event_date >= start,
            BlackoutDate.event_date <= end,
        )
        return list(self.db.execute(stmt).scalars())

    def get_cutoff_rule(self, day_of_week: int) -> CutoffRule | None:
        stmt = select(CutoffRule).where(
            CutoffRule.day_of_week == day_of_week,
            CutoffRule.is_active.is_(True),
        )
        return self.db.execute(stmt).scalar_one_or_none()
