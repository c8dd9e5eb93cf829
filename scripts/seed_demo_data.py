from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from venue_booking.config import get_settings
from venue_booking.domain.calendar import bookable_dates_between, local_today
from venue_booking.domain.values import DiscountType, ItemKind
from venue_booking.infrastructure.db.models import Base, CutoffRule, DatedPricing, Extra, Package, PromoCode
from venue_booking.infrastructure.db.session import engine, get_db_session
from venue_booking.infrastructure.repositories.inventory_repository import InventoryRepository

SEED_WEEKS = 8


def _upsert_item(db, model, name: str, **fields):
    existing = db.execute(select(model).where(model.name == name)).scalar_one_or_none()
    if existing:
        for key, value in fields.items():
            setattr(existing, key, value)
        return existing

    item = model(name=name, **fields)
    db.add(item)
    db.flush()
    return item


def seed_catalog(db) -> tuple[list[Package], list[Extra]]:
    packages = [
        _upsert_item(
            db,
            Package,
            "Standard Booth",
            description="Reserved booth for up to 6 guests",
            max_guests=6,
            default_price=Decimal("150.00"),
            is_active=True,
        ),
        _upsert_item(
            db,
            Package,
            "VIP Table",
            description="Table service for up to 10 guests",
            max_guests=10,
            default_price=Decimal("400.00"),
            is_active=True,
        ),
    ]
    extras = [
        _upsert_item(
            db,
            Extra,
            "Bottle of Prosecco",
            description="Served on arrival",
            default_price=Decimal("45.00"),
            is_active=True,
        ),
        _upsert_item(
            db,
            Extra,
            "Birthday Cake",
            description="Serves 10",
            default_price=Decimal("30.00"),
            is_active=True,
        ),
    ]
    return packages, extras


def seed_calendar(db, packages: list[Package], extras: list[Extra]) -> int:
    settings = get_settings()
    inventory_repository = InventoryRepository(db)
    start = local_today(datetime.now(timezone.utc), settings.venue_tz)
    dates = bookable_dates_between(start, start + timedelta(weeks=SEED_WEEKS), settings.bookable_weekdays)

    for event_date in dates:
        for package in packages:
            inventory_repository.create_or_reset_inventory(ItemKind.PACKAGE, package.id, event_date, 5)
        for extra in extras:
            inventory_repository.create_or_reset_inventory(ItemKind.EXTRA, extra.id, event_date, 20)

        # Saturdays carry a premium on the VIP table.
        if event_date.weekday() == 5:
            vip = packages[-1]
            override = db.execute(
                select(DatedPricing)
                .where(DatedPricing.item_kind == ItemKind.PACKAGE)
                .where(DatedPricing.item_id == vip.id)
                .where(DatedPricing.event_date == event_date)
            ).scalar_one_or_none()
            if override is None:
                db.add(
                    DatedPricing(
                        item_kind=ItemKind.PACKAGE,
                        item_id=vip.id,
                        event_date=event_date,
                        price=Decimal("500.00"),
                    )
                )
    return len(dates)


def seed_rules(db) -> None:
    for day_of_week, cutoff in ((4, time(23, 0)), (5, time(22, 0))):
        rule = db.execute(
            select(CutoffRule).where(CutoffRule.day_of_week == day_of_week)
        ).scalar_one_or_none()
        if rule:
            rule.cutoff_time = cutoff
            rule.is_active = True
        else:
            db.add(CutoffRule(day_of_week=day_of_week, cutoff_time=cutoff, is_active=True))

    promo = db.execute(select(PromoCode).where(PromoCode.code == "WELCOME10")).scalar_one_or_none()
    if promo is None:
        db.add(
            PromoCode(
                code="WELCOME10",
                description="10% off your first booking",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("10"),
                valid_from=datetime.now(timezone.utc),
                usage_limit=100,
                is_active=True,
            )
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        packages, extras = seed_catalog(db)
        seeded_dates = seed_calendar(db, packages, extras)
        seed_rules(db)
    print(f"Seed complete: {len(packages)} packages, {len(extras)} extras, {seeded_dates} dates, promo WELCOME10.")


if __name__ == "__main__":
    main()
