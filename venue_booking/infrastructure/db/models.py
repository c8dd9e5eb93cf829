# venue_booking/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    Date,
    DateTime,
    Time,
    Numeric,
    Enum,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import date, datetime, time
from decimal import Decimal
from uuid import uuid4

from venue_booking.infrastructure.db.session import Base
from venue_booking.domain.state_machine import BookingStatus
from venue_booking.domain.values import DiscountType, ItemKind

Money = Numeric(10, 2)


def _uuid() -> str:
    return str(uuid4())


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions.
    DB stores current state safely.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    reference: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    guest_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    final_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="gbp")
    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    promo_code_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True,
    )
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    items: Mapped[list["BookingItem"]] = relationship(
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BookingItem.item_kind",
    )

    __table_args__ = (
        UniqueConstraint("reference", name="uq_booking_reference"),
        UniqueConstraint("payment_intent_id", name="uq_booking_payment_intent_id"),
        CheckConstraint("discount_amount >= 0", name="ck_booking_discount_nonnegative"),
        CheckConstraint("discount_amount <= total_amount", name="ck_booking_discount_lte_total"),
        CheckConstraint(
            "user_id IS NOT NULL OR (guest_name IS NOT NULL AND guest_email IS NOT NULL)",
            name="ck_booking_customer_identity",
        ),
    )

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


class BookingItem(Base):
    __tablename__ = "booking_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_kind: Mapped[ItemKind] = mapped_column(Enum(ItemKind, name="item_kind"), nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    item_name: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    booking: Mapped[Booking] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_booking_item_price_nonnegative"),
    )


class Package(Base):
    __tablename__ = "packages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    default_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("max_guests > 0", name="ck_package_max_guests_positive"),
    )


class Extra(Base):
    __tablename__ = "extras"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class DatedInventory(Base):
    __tablename__ = "dated_inventory"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_kind: Mapped[ItemKind] = mapped_column(Enum(ItemKind, name="item_kind"), nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("item_kind", "item_id", "event_date", name="uq_dated_inventory_item_date"),
        CheckConstraint("total_quantity >= 0", name="ck_inventory_total_nonnegative"),
        CheckConstraint("available_quantity >= 0", name="ck_inventory_available_nonnegative"),
        CheckConstraint("available_quantity <= total_quantity", name="ck_inventory_available_lte_total"),
    )


class DatedPricing(Base):
    __tablename__ = "dated_pricing"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_kind: Mapped[ItemKind] = mapped_column(Enum(ItemKind, name="item_kind"), nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    __table_args__ = (
        UniqueConstraint("item_kind", "item_id", "event_date", name="uq_dated_pricing_item_date"),
        CheckConstraint("price >= 0", name="ck_dated_pricing_price_nonnegative"),
    )


class BlackoutDate(Base):
    __tablename__ = "blackout_dates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)


class CutoffRule(Base):
    """Latest venue-local time a booking for ``day_of_week`` (Monday=0) may be made."""

    __tablename__ = "cutoff_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    cutoff_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_cutoff_day_of_week"),
    )


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, name="discount_type"),
        nullable=False,
    )
    discount_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("discount_value >= 0", name="ck_promo_discount_value_nonnegative"),
        CheckConstraint("usage_count >= 0", name="ck_promo_usage_count_nonnegative"),
    )


class PaymentWebhookEvent(Base):
    __tablename__ = "payment_webhook_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PROCESSED")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_provider_event_id"),
    )


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    aggregate_type: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(36), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    dedupe_key: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_outbox_dedupe_key"),
    )
