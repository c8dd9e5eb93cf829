import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from venue_booking.application.availability_service import AvailabilityResolver
from venue_booking.application.pricing_service import PricingResolver
from venue_booking.application.promo_service import PromoCodeValidator
from venue_booking.config import Settings
from venue_booking.domain.calendar import utc_now
from venue_booking.domain.exceptions import (
    BookingNotFoundError,
    DuplicateReferenceError,
    InvalidCustomerError,
    NoPricingAvailableError,
    VenueBookingError,
)
from venue_booking.domain.reference import generate_reference, parse_reference
from venue_booking.domain.state_machine import BookingStatus
from venue_booking.domain.values import CustomerDetails, RequestedItem, Reservation, to_money
from venue_booking.infrastructure.db.models import Booking, BookingItem
from venue_booking.infrastructure.repositories.booking_repository import BookingRepository
from venue_booking.infrastructure.repositories.outbox_repository import OutboxRepository

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BookingService:
    """Application service coordinating the reservation workflow."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.booking_repository = BookingRepository(db)
        self.outbox_repository = OutboxRepository(db)
        self.availability = AvailabilityResolver(db, settings, clock)
        self.pricing = PricingResolver(db)
        self.promo_codes = PromoCodeValidator(db, clock)

    def create_booking(
        self,
        event_date: date,
        items: Iterable[RequestedItem],
        customer: CustomerDetails,
        promo_code: str | None = None,
        customer_notes: str | None = None,
    ) -> Booking:
        """
        Reserve inventory, price it, apply the promo code and persist a
        PENDING booking, all in the session's open transaction.

        Nothing is committed here. Any raised error leaves the transaction
        for the caller to roll back, which also undoes the inventory
        decrements.
        """
        try:
            self._validate_customer(customer)
            reservation = self.availability.check_and_reserve(event_date, items)
            booking_items, subtotal = self._price_lines(reservation)

            discount = Decimal("0.00")
            promo = None
            if promo_code is not None and promo_code.strip():
                result = self.promo_codes.validate(promo_code, subtotal)
                promo = result.promo_code
                discount = result.discount_amount
                self.promo_codes.claim(promo)
        except VenueBookingError as exc:
            logger.info(
                "Reservation rejected for %s: %s",
                event_date.isoformat(),
                exc.reason,
            )
            raise

        final_amount = to_money(subtotal - discount)

        booking = self._persist_with_reference(
            lambda: Booking(
                user_id=None if customer.is_guest else customer.user_id.strip(),
                guest_name=customer.name.strip() if customer.is_guest else None,
                guest_email=customer.email.strip().lower() if customer.is_guest else None,
                event_date=event_date,
                status=BookingStatus.PENDING,
                total_amount=subtotal,
                discount_amount=discount,
                final_amount=final_amount,
                currency=self.settings.currency,
                customer_notes=customer_notes,
                promo_code_id=promo.id if promo is not None else None,
                items=[_copy_item(item) for item in booking_items],
            )
        )

        self.outbox_repository.add_event(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type="BOOKING_CREATED",
            payload={
                "booking_id": booking.id,
                "reference": booking.reference,
                "event_date": booking.event_date.isoformat(),
                "final_amount": str(booking.final_amount),
                "currency": booking.currency,
            },
            dedupe_key=f"booking:{booking.id}:created",
        )

        logger.info(
            "Booking %s created for %s (%d items, final %s)",
            booking.reference,
            event_date.isoformat(),
            len(booking_items),
            final_amount,
        )
        return booking

    def get_by_reference(self, reference: str) -> Booking:
        parse_reference(reference, prefix=self.settings.reference_prefix)
        booking = self.booking_repository.get_by_reference(reference)
        if booking is None:
            raise BookingNotFoundError(
                "Booking not found",
                details={"reference": reference},
            )
        return booking

    def _validate_customer(self, customer: CustomerDetails) -> None:
        if not customer.is_guest:
            if not customer.user_id or not customer.user_id.strip():
                raise InvalidCustomerError("A signed-in user is required for a registered booking")
            return

        if not customer.name or not customer.name.strip():
            raise InvalidCustomerError(
                "Guest name is required",
                details={"field": "name"},
            )
        if not customer.email or not _EMAIL_RE.match(customer.email.strip()):
            raise InvalidCustomerError(
                "A valid guest email is required",
                details={"field": "email"},
            )

    def _price_lines(self, reservation: Reservation) -> tuple[list[BookingItem], Decimal]:
        booking_items = []
        subtotal = Decimal("0.00")
        for line in reservation.lines:
            quote = self.pricing.resolve_price(line.item_kind, line.item, reservation.event_date)
            if not quote.has_pricing:
                raise NoPricingAvailableError(
                    f"No pricing available for {line.item_name} on "
                    f"{reservation.event_date.isoformat()}",
                    details={"item_ref": line.item_ref},
                )
            line_total = to_money(quote.price * line.quantity)
            subtotal += line_total
            booking_items.append(
                BookingItem(
                    item_kind=line.item_kind,
                    item_id=line.item_ref,
                    item_name=line.item_name,
                    quantity=line.quantity,
                    unit_price=quote.price,
                    total_price=line_total,
                )
            )
        return booking_items, to_money(subtotal)

    def _persist_with_reference(self, build_booking: Callable[[], Booking]) -> Booking:
        attempts = self.settings.reference_max_attempts
        for attempt in range(1, attempts + 1):
            booking = build_booking()
            booking.reference = generate_reference(
                self.clock(),
                prefix=self.settings.reference_prefix,
            )
            try:
                return self.booking_repository.add(booking)
            except IntegrityError:
                logger.warning(
                    "Booking reference collision on %s (attempt %d of %d)",
                    booking.reference,
                    attempt,
                    attempts,
                )

        raise DuplicateReferenceError(
            "Could not allocate a unique booking reference, please try again",
        )


def _copy_item(item: BookingItem) -> BookingItem:
    # A SAVEPOINT rollback expunges everything added inside it, so each
    # attempt gets fresh line rows.
    return BookingItem(
        item_kind=item.item_kind,
        item_id=item.item_id,
        item_name=item.item_name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_price=item.total_price,
    )
