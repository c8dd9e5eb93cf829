import json
from decimal import Decimal

from support import stripe_event
from venue_booking.domain.state_machine import BookingStatus


def test_payment_intent_created_for_pending_booking(client, db_session, catalog, payment_intents):
    booking = catalog.booking(final_amount=Decimal("135.50"), total_amount=Decimal("135.50"))

    response = client.post(f"/bookings/{booking.id}/payment-intent")

    assert response.status_code == 200
    body = response.json()
    assert body["payment_intent_id"] == "pi_test_1"
    assert body["client_secret"] == "pi_test_1_secret"
    assert body["amount_minor"] == 13550
    assert body["currency"] == "gbp"

    created = payment_intents.created[0]
    assert created["amount"] == 13550
    assert created["metadata"]["booking_id"] == booking.id
    assert created["receipt_email"] == "ada@example.com"

    db_session.refresh(booking)
    assert booking.payment_intent_id == "pi_test_1"


def test_existing_payment_intent_is_reused(client, catalog, payment_intents):
    booking = catalog.booking()

    client.post(f"/bookings/{booking.id}/payment-intent")
    response = client.post(f"/bookings/{booking.id}/payment-intent")

    assert response.status_code == 200
    assert response.json()["payment_intent_id"] == "pi_test_1"
    assert len(payment_intents.created) == 1
    assert payment_intents.retrieved == ["pi_test_1"]


def test_confirmed_booking_cannot_start_payment(client, catalog):
    booking = catalog.booking(status=BookingStatus.CONFIRMED)

    response = client.post(f"/bookings/{booking.id}/payment-intent")

    assert response.status_code == 409
    assert response.json()["error"] == "InvalidStateTransition"


def test_fully_discounted_booking_has_nothing_to_pay(client, catalog):
    booking = catalog.booking(discount_amount=Decimal("150.00"), final_amount=Decimal("0.00"))

    response = client.post(f"/bookings/{booking.id}/payment-intent")

    assert response.status_code == 400


def test_payment_intent_for_unknown_booking(client):
    response = client.post("/bookings/does-not-exist/payment-intent")

    assert response.status_code == 404
    assert response.json()["error"] == "BookingNotFound"


def test_checkout_then_webhook_confirms(client, post_webhook, db_session, catalog):
    booking = catalog.booking()
    intent_id = client.post(f"/bookings/{booking.id}/payment-intent").json()["payment_intent_id"]

    response = post_webhook(stripe_event("payment_intent.succeeded", {"id": intent_id}))

    assert response.json()["processed"] is True
    db_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


# -----------------------------
# Outbox
# -----------------------------
def test_outbox_feed_and_acknowledgement(client, post_webhook, catalog):
    booking = catalog.booking(payment_intent_id="pi_1")
    post_webhook(stripe_event("payment_intent.succeeded", {"id": "pi_1"}))

    pending = client.get("/outbox/events").json()

    assert len(pending) == 1
    event = pending[0]
    assert event["event_type"] == "BOOKING_CONFIRMED"
    assert event["aggregate_id"] == booking.id
    assert json.loads(event["payload"])["reference"] == booking.reference

    published = client.post(f"/outbox/events/{event['id']}/mark-published")

    assert published.status_code == 200
    assert published.json()["status"] == "PUBLISHED"
    assert published.json()["attempts"] == 1
    assert published.json()["published_at"] is not None
    assert client.get("/outbox/events").json() == []
    assert len(client.get("/outbox/events", params={"status_filter": "PUBLISHED"}).json()) == 1


def test_mark_unknown_outbox_event(client):
    response = client.post("/outbox/events/missing/mark-published")

    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
