import os
from datetime import datetime, time, timezone
from decimal import Decimal
from types import SimpleNamespace

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FORMAT"] = "plain"

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from support import FRIDAY, NOW, WEBHOOK_SECRET, FakePaymentIntents, FrozenClock, sign_payload
from venue_booking.api.routes.routes import get_clock, get_db
from venue_booking.config import Settings, get_settings
from venue_booking.domain.state_machine import BookingStatus
from venue_booking.domain.values import DiscountType, ItemKind
from venue_booking.infrastructure.db.models import (
    BlackoutDate,
    Booking,
    CutoffRule,
    DatedInventory,
    DatedPricing,
    Extra,
    Package,
    PromoCode,
)
from venue_booking.infrastructure.db.session import Base
from venue_booking.infrastructure.payments.stripe_gateway import StripeGateway
from venue_booking.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite has to leave BEGIN to SQLAlchemy or SAVEPOINT misbehaves.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = Session(bind=engine, autoflush=False)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        reference_max_attempts=3,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def payment_intents():
    return FakePaymentIntents()


@pytest.fixture
def gateway(settings, payment_intents):
    fake_sdk = SimpleNamespace(
        api_key=None,
        PaymentIntent=payment_intents,
        WebhookSignature=stripe.WebhookSignature,
    )
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        tolerance=settings.stripe_webhook_tolerance,
        stripe_sdk=fake_sdk,
    )


@pytest.fixture
def client(db_session, settings, clock, gateway):
    def _override_db():
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock
    app.state.payment_gateway = gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.payment_gateway = None


# -----------------------------
# Catalog factories
# -----------------------------
class CatalogFactory:

    def __init__(self, db: Session):
        self.db = db

    def package(self, name="Standard Booth", default_price="150.00", is_active=True, max_guests=6):
        package = Package(
            name=name,
            default_price=Decimal(default_price) if default_price is not None else None,
            is_active=is_active,
            max_guests=max_guests,
        )
        return self._save(package)

    def extra(self, name="Bottle of Prosecco", default_price="45.00", is_active=True):
        extra = Extra(
            name=name,
            default_price=Decimal(default_price) if default_price is not None else None,
            is_active=is_active,
        )
        return self._save(extra)

    def stock(self, item, event_date=FRIDAY, quantity=5, is_available=True, total=None):
        inventory = DatedInventory(
            item_kind=_kind_of(item),
            item_id=item.id,
            event_date=event_date,
            total_quantity=quantity if total is None else total,
            available_quantity=quantity,
            is_available=is_available,
        )
        return self._save(inventory)

    def price_override(self, item, event_date, price):
        pricing = DatedPricing(
            item_kind=_kind_of(item),
            item_id=item.id,
            event_date=event_date,
            price=Decimal(price),
        )
        return self._save(pricing)

    def blackout(self, event_date, reason="Private event"):
        return self._save(BlackoutDate(event_date=event_date, reason=reason))

    def cutoff_rule(self, day_of_week, cutoff_time: time, is_active=True):
        return self._save(CutoffRule(day_of_week=day_of_week, cutoff_time=cutoff_time, is_active=is_active))

    def promo(
        self,
        code="SAVE10",
        discount_type=DiscountType.PERCENTAGE,
        discount_value="10",
        valid_from=datetime(2030, 1, 1, tzinfo=timezone.utc),
        valid_until=None,
        usage_limit=None,
        usage_count=0,
        is_active=True,
        description=None,
    ):
        promo = PromoCode(
            code=code,
            description=description,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            valid_from=valid_from,
            valid_until=valid_until,
            usage_limit=usage_limit,
            usage_count=usage_count,
            is_active=is_active,
        )
        return self._save(promo)

    def booking(
        self,
        reference="NCB-20300605-AAAAAA",
        payment_intent_id=None,
        status=BookingStatus.PENDING,
        **fields,
    ):
        values = {
            "guest_name": "Ada Guest",
            "guest_email": "ada@example.com",
            "event_date": FRIDAY,
            "total_amount": Decimal("150.00"),
            "discount_amount": Decimal("0.00"),
            "final_amount": Decimal("150.00"),
            "currency": "gbp",
        }
        values.update(fields)
        booking = Booking(
            reference=reference,
            payment_intent_id=payment_intent_id,
            status=status,
            **values,
        )
        return self._save(booking)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj


def _kind_of(item) -> ItemKind:
    return ItemKind.PACKAGE if isinstance(item, Package) else ItemKind.EXTRA


@pytest.fixture
def catalog(db_session):
    return CatalogFactory(db_session)


@pytest.fixture
def post_webhook(client):
    def _post(body: str, signature: str | None = "sign"):
        headers = {"Content-Type": "application/json"}
        if signature == "sign":
            headers["Stripe-Signature"] = sign_payload(body)
        elif signature is not None:
            headers["Stripe-Signature"] = signature
        return client.post("/webhooks/stripe", content=body, headers=headers)

    return _post
