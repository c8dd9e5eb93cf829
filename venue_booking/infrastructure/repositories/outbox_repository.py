# venue_booking/infrastructure/repositories/outbox_repository.py

import json
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select

from venue_booking.infrastructure.db.models import OutboxEvent


class OutboxRepository:

    def __init__(self, db: Session):
        self.db = db

    def add_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        dedupe_key: str,
    ) -> OutboxEvent | None:
        """Queue an event unless one with the same dedupe key already exists."""

        existing = self.db.execute(
            select(OutboxEvent).where(OutboxEvent.dedupe_key == dedupe_key)
        ).scalar_one_or_none()
        if existing:
            return None

        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=json.dumps(payload, sort_keys=True, default=str),
            dedupe_key=dedupe_key,
            status="PENDING",
        )
        self.db.add(event)
        return event

    def list_events(self, status: str | None = "PENDING", limit: int = 50) -> list[OutboxEvent]:
        stmt = select(OutboxEvent).order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
        if status:
            stmt = stmt.where(OutboxEvent.status == status)
        return list(self.db.execute(stmt.limit(limit)).scalars())

    def get(self, event_id: str) -> OutboxEvent | None:
        return self.db.get(OutboxEvent, event_id)

    def mark_published(self, event: OutboxEvent, published_at: datetime) -> OutboxEvent:
        event.status = "PUBLISHED"
        event.published_at = published_at
        event.attempts = (event.attempts or 0) + 1
        return event
