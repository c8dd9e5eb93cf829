import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from venue_booking.domain.exceptions import BookingNotFoundError, ValidationError
from venue_booking.domain.state_machine import BookingStateMachine, BookingStatus
from venue_booking.domain.values import to_minor_units
from venue_booking.infrastructure.payments.stripe_gateway import StripeGateway
from venue_booking.infrastructure.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentStart:
    booking_id: str
    payment_intent_id: str
    client_secret: str
    amount: Decimal
    amount_minor: int
    currency: str


class CheckoutService:
    """Opens (or reuses) the card payment for a pending booking."""

    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway
        self.booking_repository = BookingRepository(db)

    def start_payment(self, booking_id: str) -> PaymentStart:
        booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if booking is None:
            raise BookingNotFoundError("Booking not found", details={"booking_id": booking_id})

        # Only a booking that payment could still confirm may start checkout.
        BookingStateMachine.validate_transition(booking.status, BookingStatus.CONFIRMED)

        amount_minor = to_minor_units(booking.final_amount)
        if amount_minor <= 0:
            raise ValidationError(
                "Booking has nothing to pay",
                details={"booking_id": booking.id},
            )

        if booking.payment_intent_id:
            intent = self.gateway.retrieve_payment_intent(booking.payment_intent_id)
            logger.info("Reusing payment intent for booking %s", booking.reference)
        else:
            intent = self.gateway.create_payment_intent(
                amount_minor=amount_minor,
                currency=booking.currency,
                metadata={
                    "booking_id": booking.id,
                    "booking_reference": booking.reference,
                    "event_date": booking.event_date.isoformat(),
                },
                receipt_email=booking.guest_email,
            )
            booking.payment_intent_id = intent["id"]
            self.db.flush()
            logger.info("Payment intent created for booking %s", booking.reference)

        return PaymentStart(
            booking_id=booking.id,
            payment_intent_id=intent["id"],
            client_secret=intent["client_secret"],
            amount=booking.final_amount,
            amount_minor=amount_minor,
            currency=booking.currency,
        )
