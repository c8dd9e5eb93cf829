# venue_booking/infrastructure/repositories/payment_event_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from venue_booking.infrastructure.db.models import PaymentWebhookEvent


class PaymentEventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(self, provider: str, event_id: str) -> PaymentWebhookEvent | None:
        stmt = select(PaymentWebhookEvent).where(
            PaymentWebhookEvent.provider == provider,
            PaymentWebhookEvent.event_id == event_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def record(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        payload_hash: str,
        booking_id: str | None,
        status: str,
    ) -> PaymentWebhookEvent:
        event = PaymentWebhookEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            payload_hash=payload_hash,
            booking_id=booking_id,
            status=status,
        )
        self.db.add(event)
        self.db.flush()
        return event
