# venue_booking/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select

from venue_booking.infrastructure.db.models import Booking


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
        for_update: bool = False,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_reference(self, reference: str) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.items))
            .where(Booking.reference == reference)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_payment_intent_id(
        self,
        payment_intent_id: str,
        for_update: bool = False,
    ) -> Booking | None:
        """
        SELECT ... FOR UPDATE when ``for_update`` is set, so webhook
        deliveries for the same booking serialize on the row.
        """

        stmt = select(Booking).where(Booking.payment_intent_id == payment_intent_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, booking: Booking) -> Booking:
        """
        Insert inside a SAVEPOINT so a unique violation (e.g. a reference
        collision) only unwinds this insert, not the caller's transaction.
        """

        with self.db.begin_nested():
            self.db.add(booking)
            self.db.flush()
        return booking
