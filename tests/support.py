import hashlib
import hmac
import json
import time as time_module
from datetime import date, datetime, timezone

WEBHOOK_SECRET = "whsec_test_secret"

# Wednesday 2030-06-05, 11:00 in London (BST).
NOW = datetime(2030, 6, 5, 10, 0, tzinfo=timezone.utc)
FRIDAY = date(2030, 6, 7)
SATURDAY = date(2030, 6, 8)
MONDAY = date(2030, 6, 10)
PAST_FRIDAY = date(2030, 5, 31)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakePaymentIntents:
    """Stands in for ``stripe.PaymentIntent``; remembers what it was asked."""

    def __init__(self):
        self.created: list[dict] = []
        self.retrieved: list[str] = []

    def create(self, **kwargs):
        self.created.append(kwargs)
        number = len(self.created)
        return {
            "id": f"pi_test_{number}",
            "client_secret": f"pi_test_{number}_secret",
            "amount": kwargs["amount"],
            "currency": kwargs["currency"],
        }

    def retrieve(self, payment_intent_id):
        self.retrieved.append(payment_intent_id)
        return {"id": payment_intent_id, "client_secret": f"{payment_intent_id}_secret"}


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time_module.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
    )
