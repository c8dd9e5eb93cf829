import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from venue_booking.domain.calendar import utc_now
from venue_booking.domain.exceptions import BookingNotFoundError, ValidationError
from venue_booking.domain.state_machine import BookingStateMachine, BookingStatus, PaymentStatus
from venue_booking.domain.values import from_minor_units
from venue_booking.infrastructure.db.models import Booking
from venue_booking.infrastructure.repositories.booking_repository import BookingRepository
from venue_booking.infrastructure.repositories.outbox_repository import OutboxRepository
from venue_booking.infrastructure.repositories.payment_event_repository import PaymentEventRepository

logger = logging.getLogger(__name__)

PROVIDER = "stripe"
DEFAULT_FAILURE_MESSAGE = "Payment failed"

# Ledger outcomes
PROCESSED = "PROCESSED"
IGNORED = "IGNORED"
SKIPPED = "SKIPPED"
NOOP = "NOOP"


@dataclass(frozen=True)
class ReconciliationResult:
    event_id: str
    event_type: str
    processed: bool
    duplicate: bool = False
    booking_id: str | None = None


def _safe_get(source: Any, key: str, default: Any | None = None) -> Any:
    if isinstance(source, dict):
        return source.get(key, default)
    return getattr(source, key, default)


class PaymentReconciliationService:
    """
    Applies verified provider events to bookings.

    Runs inside the caller's transaction: the ledger row and every booking
    mutation commit or roll back together.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.booking_repository = BookingRepository(db)
        self.event_repository = PaymentEventRepository(db)
        self.outbox_repository = OutboxRepository(db)
        self._handlers: dict[str, Callable[[dict], tuple[str | None, str]]] = {
            "payment_intent.succeeded": self._on_succeeded,
            "payment_intent.payment_failed": self._on_failed,
            "payment_intent.canceled": self._on_canceled,
            "payment_intent.requires_action": self._on_requires_action,
            "charge.refunded": self._on_refunded,
        }

    def handle_event(self, event: dict, raw_payload: bytes) -> ReconciliationResult:
        event_id = _safe_get(event, "id")
        event_type = _safe_get(event, "type")
        if not event_id or not event_type:
            raise ValidationError("Webhook event is missing id or type")

        payload_hash = hashlib.sha256(raw_payload or b"").hexdigest()
        existing = self.event_repository.get(PROVIDER, event_id)
        if existing is not None:
            if existing.payload_hash != payload_hash:
                logger.warning("Webhook %s replayed with a different payload", event_id)
                raise ValidationError(
                    "Event payload mismatch",
                    details={"event_id": event_id},
                )
            logger.info("Webhook %s (%s) already handled, acknowledging", event_id, event_type)
            return ReconciliationResult(
                event_id=event_id,
                event_type=event_type,
                processed=False,
                duplicate=True,
                booking_id=existing.booking_id,
            )

        payload_object = _safe_get(_safe_get(event, "data", {}) or {}, "object", {}) or {}
        handler = self._handlers.get(event_type, self._ignore)
        booking_id, outcome = handler(payload_object)

        self.event_repository.record(
            provider=PROVIDER,
            event_id=event_id,
            event_type=event_type,
            payload_hash=payload_hash,
            booking_id=booking_id,
            status=outcome,
        )
        logger.info("Webhook %s (%s) handled: %s", event_id, event_type, outcome)
        return ReconciliationResult(
            event_id=event_id,
            event_type=event_type,
            processed=outcome == PROCESSED,
            booking_id=booking_id,
        )

    # -----------------------------
    # Handlers
    # -----------------------------
    def _on_succeeded(self, intent: dict) -> tuple[str | None, str]:
        payment_intent_id = _safe_get(intent, "id")
        booking = None
        if payment_intent_id:
            booking = self.booking_repository.get_by_payment_intent_id(payment_intent_id, for_update=True)
        if booking is None:
            raise BookingNotFoundError(
                "No booking for payment intent",
                details={"payment_intent_id": payment_intent_id},
            )

        if booking.status == BookingStatus.CONFIRMED:
            return booking.id, NOOP

        if not self._transition(booking, BookingStatus.CONFIRMED):
            return booking.id, SKIPPED

        booking.payment_status = PaymentStatus.SUCCEEDED.value
        booking.paid_at = self.clock()
        booking.payment_error = None
        self._add_outbox_event(booking, "BOOKING_CONFIRMED")
        return booking.id, PROCESSED

    def _on_failed(self, intent: dict) -> tuple[str | None, str]:
        booking = self._locate_for_intent(intent)
        if booking is None:
            return None, IGNORED
        if booking.status != BookingStatus.PENDING:
            logger.warning(
                "Ignoring payment failure for booking %s in status %s",
                booking.reference,
                booking.status.value,
            )
            return booking.id, SKIPPED

        last_error = _safe_get(intent, "last_payment_error") or {}
        booking.payment_status = PaymentStatus.FAILED.value
        booking.payment_error = _safe_get(last_error, "message") or DEFAULT_FAILURE_MESSAGE
        return booking.id, PROCESSED

    def _on_canceled(self, intent: dict) -> tuple[str | None, str]:
        booking = self._locate_for_intent(intent)
        if booking is None:
            return None, IGNORED
        if not self._transition(booking, BookingStatus.CANCELLED):
            return booking.id, SKIPPED

        booking.payment_status = PaymentStatus.CANCELED.value
        self._add_outbox_event(booking, "BOOKING_CANCELLED")
        return booking.id, PROCESSED

    def _on_requires_action(self, intent: dict) -> tuple[str | None, str]:
        booking = self._locate_for_intent(intent)
        if booking is None:
            return None, IGNORED
        if booking.status != BookingStatus.PENDING:
            return booking.id, SKIPPED

        booking.payment_status = PaymentStatus.REQUIRES_ACTION.value
        return booking.id, PROCESSED

    def _on_refunded(self, charge: dict) -> tuple[str | None, str]:
        metadata = _safe_get(charge, "metadata") or {}
        booking_id = _safe_get(metadata, "booking_id")
        payment_intent_id = _safe_get(charge, "payment_intent")

        booking = None
        if booking_id:
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if booking is None and payment_intent_id:
            booking = self.booking_repository.get_by_payment_intent_id(payment_intent_id, for_update=True)
        if booking is None:
            logger.warning(
                "Refund for unknown booking (booking_id=%s, payment_intent=%s)",
                booking_id,
                payment_intent_id,
            )
            return None, IGNORED

        # A stored full refund is final; late or reordered deliveries leave it alone.
        if booking.status == BookingStatus.REFUNDED:
            booking.payment_status = PaymentStatus.REFUNDED.value
            return booking.id, NOOP

        amount = int(_safe_get(charge, "amount") or 0)
        amount_refunded = int(_safe_get(charge, "amount_refunded") or 0)
        is_full_refund = amount_refunded == amount

        # Refund facts are recorded even when the status cannot move.
        booking.refunded_at = self.clock()
        booking.refund_amount = from_minor_units(amount_refunded)

        if not is_full_refund:
            booking.payment_status = PaymentStatus.PARTIALLY_REFUNDED.value
            return booking.id, PROCESSED

        if not self._transition(booking, BookingStatus.REFUNDED):
            return booking.id, SKIPPED

        booking.payment_status = PaymentStatus.REFUNDED.value
        self._add_outbox_event(booking, "BOOKING_REFUNDED")
        return booking.id, PROCESSED

    def _ignore(self, payload_object: dict) -> tuple[str | None, str]:
        return None, IGNORED

    # -----------------------------
    # Helpers
    # -----------------------------
    def _locate_for_intent(self, intent: dict) -> Booking | None:
        payment_intent_id = _safe_get(intent, "id")
        booking = None
        if payment_intent_id:
            booking = self.booking_repository.get_by_payment_intent_id(payment_intent_id, for_update=True)
        if booking is None:
            booking_id = _safe_get(_safe_get(intent, "metadata") or {}, "booking_id")
            if booking_id:
                booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if booking is None:
            logger.warning("No booking for payment intent %s", payment_intent_id)
        return booking

    def _transition(self, booking: Booking, to_status: BookingStatus) -> bool:
        if not BookingStateMachine.can_transition(booking.status, to_status):
            logger.warning(
                "Skipping illegal transition %s -> %s for booking %s",
                booking.status.value,
                to_status.value,
                booking.reference,
            )
            return False
        booking.status = to_status
        return True

    def _add_outbox_event(self, booking: Booking, event_type: str) -> None:
        self.outbox_repository.add_event(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type=event_type,
            payload={
                "booking_id": booking.id,
                "reference": booking.reference,
                "status": booking.status.value,
                "payment_status": booking.payment_status,
            },
            dedupe_key=f"booking:{booking.id}:{event_type.lower()}",
        )
