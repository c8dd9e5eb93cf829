import pytest
from sqlalchemy import func, select, update

from support import FRIDAY
from venue_booking.application import booking_service as booking_service_module
from venue_booking.application.booking_service import BookingService
from venue_booking.application.promo_service import PromoCodeValidator
from venue_booking.domain.exceptions import (
    DuplicateReferenceError,
    InvalidPromoCodeError,
    InventoryConflictError,
)
from venue_booking.domain.values import CustomerDetails, ItemKind, RequestedItem
from venue_booking.infrastructure.db.models import Booking, DatedInventory
from venue_booking.infrastructure.repositories.inventory_repository import InventoryRepository

GUEST = CustomerDetails(is_guest=True, name="Ada Guest", email="ada@example.com")


def _count_bookings(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(Booking)).scalar_one()


def test_losing_the_inventory_race_rolls_everything_back(db_session, settings, clock, catalog, monkeypatch):
    package = catalog.package()
    inventory = catalog.stock(package, quantity=1)
    inventory_id = inventory.id
    original = InventoryRepository.try_decrement

    def _competitor_takes_last_unit(self, item_kind, item_id, event_date, quantity):
        # Another checkout commits between our availability check and decrement.
        self.db.execute(
            update(DatedInventory)
            .where(DatedInventory.id == inventory_id)
            .values(available_quantity=0)
        )
        self.db.commit()
        return original(self, item_kind, item_id, event_date, quantity)

    monkeypatch.setattr(InventoryRepository, "try_decrement", _competitor_takes_last_unit)
    service = BookingService(db_session, settings, clock)

    with pytest.raises(InventoryConflictError):
        service.create_booking(
            FRIDAY,
            [RequestedItem(ItemKind.PACKAGE, package.id, 1)],
            GUEST,
        )
    db_session.rollback()

    assert _count_bookings(db_session) == 0
    db_session.refresh(inventory)
    assert inventory.available_quantity == 0


def test_conditional_decrement_never_goes_negative(db_session, catalog):
    package = catalog.package()
    inventory = catalog.stock(package, quantity=2)
    repository = InventoryRepository(db_session)

    assert repository.try_decrement(ItemKind.PACKAGE, package.id, FRIDAY, 2)
    assert not repository.try_decrement(ItemKind.PACKAGE, package.id, FRIDAY, 1)
    db_session.commit()

    db_session.refresh(inventory)
    assert inventory.available_quantity == 0


def test_reference_collision_is_retried(db_session, settings, clock, catalog, monkeypatch):
    catalog.booking(reference="NCB-20300605-DUPE01")
    package = catalog.package()
    catalog.stock(package)
    references = iter(["NCB-20300605-DUPE01", "NCB-20300605-FRESH1"])
    monkeypatch.setattr(booking_service_module, "generate_reference", lambda *args, **kwargs: next(references))

    booking = BookingService(db_session, settings, clock).create_booking(
        FRIDAY,
        [RequestedItem(ItemKind.PACKAGE, package.id, 1)],
        GUEST,
    )
    db_session.commit()

    assert booking.reference == "NCB-20300605-FRESH1"
    assert len(booking.items) == 1
    assert _count_bookings(db_session) == 2


def test_reference_retries_are_bounded(db_session, settings, clock, catalog, monkeypatch):
    catalog.booking(reference="NCB-20300605-DUPE01")
    package = catalog.package()
    inventory = catalog.stock(package, quantity=3)
    calls = []

    def _always_taken(*args, **kwargs):
        calls.append(1)
        return "NCB-20300605-DUPE01"

    monkeypatch.setattr(booking_service_module, "generate_reference", _always_taken)

    with pytest.raises(DuplicateReferenceError):
        BookingService(db_session, settings, clock).create_booking(
            FRIDAY,
            [RequestedItem(ItemKind.PACKAGE, package.id, 1)],
            GUEST,
        )
    db_session.rollback()

    assert len(calls) == settings.reference_max_attempts
    db_session.refresh(inventory)
    assert inventory.available_quantity == 3


def test_promo_usage_claim_respects_limit(db_session, clock, catalog):
    promo = catalog.promo(code="ONCE", usage_limit=1)
    validator = PromoCodeValidator(db_session, clock)

    validator.claim(promo)
    with pytest.raises(InvalidPromoCodeError) as exc_info:
        validator.claim(promo)

    assert exc_info.value.code == "PromoCodeUsageLimitReached"
