from datetime import timedelta

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.orm import Session

from venue_booking.config import Settings, get_settings
from venue_booking.infrastructure.db.session import SessionLocal
from venue_booking.application.availability_service import DEFAULT_DATE_RANGE_DAYS, AvailabilityResolver
from venue_booking.application.booking_service import BookingService
from venue_booking.application.checkout_service import CheckoutService
from venue_booking.application.pricing_service import PricingResolver
from venue_booking.application.promo_service import PromoCodeValidator
from venue_booking.api.schemas.schemas import (
    AvailabilityResponse,
    AvailableDateResponse,
    AvailableDatesResponse,
    BookingItemResponse,
    BookingRequest,
    BookingResponse,
    ItemAvailabilityResponse,
    ItemPriceResponse,
    OutboxEventResponse,
    PaymentIntentResponse,
    PricingResponse,
    PromoValidateRequest,
    PromoValidateResponse,
)
from venue_booking.domain import calendar
from venue_booking.domain.exceptions import NotFoundError
from venue_booking.domain.values import CustomerDetails, RequestedItem
from venue_booking.infrastructure.db.models import Booking, OutboxEvent
from venue_booking.infrastructure.payments.stripe_gateway import StripeGateway, resolve_gateway
from venue_booking.infrastructure.repositories.outbox_repository import OutboxRepository


router = APIRouter()


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_clock():
    return calendar.utc_now


def get_payment_gateway(request: Request) -> StripeGateway:
    return resolve_gateway(request.app.state)


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.id,
        reference=booking.reference,
        status=booking.status.value,
        event_date=booking.event_date,
        total_amount=booking.total_amount,
        discount_amount=booking.discount_amount,
        final_amount=booking.final_amount,
        currency=booking.currency,
        payment_status=booking.payment_status,
        items=[
            BookingItemResponse(
                item_ref=item.item_id,
                kind=item.item_kind,
                name=item.item_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in booking.items
        ],
    )


def _outbox_response(item: OutboxEvent) -> OutboxEventResponse:
    return OutboxEventResponse(
        id=item.id,
        aggregate_type=item.aggregate_type,
        aggregate_id=item.aggregate_id,
        event_type=item.event_type,
        payload=item.payload,
        status=item.status,
        attempts=item.attempts,
        created_at=item.created_at.isoformat(),
        published_at=item.published_at.isoformat() if item.published_at else None,
    )


@router.get("/health")
def health():
    return {"status": "ok"}


# -----------------------------
# Bookings
# -----------------------------
@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingRequest,
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock=Depends(get_clock),
):
    event_date = calendar.parse_iso_date(request.date)
    customer = CustomerDetails(
        is_guest=request.customer.is_guest,
        user_id=x_user_id,
        name=request.customer.name,
        email=request.customer.email,
    )
    items = [
        RequestedItem(item_kind=item.kind, item_ref=item.item_ref, quantity=item.quantity)
        for item in request.items
    ]

    booking = BookingService(db, settings, clock).create_booking(
        event_date=event_date,
        items=items,
        customer=customer,
        promo_code=request.customer.promo_code,
        customer_notes=request.customer.notes,
    )
    db.commit()
    db.refresh(booking)
    return _booking_response(booking)


@router.get("/bookings/{reference}", response_model=BookingResponse)
def get_booking(
    reference: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    booking = BookingService(db, settings).get_by_reference(reference)
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/payment-intent", response_model=PaymentIntentResponse)
def start_payment(
    booking_id: str,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    started = CheckoutService(db, gateway).start_payment(booking_id)
    db.commit()
    return PaymentIntentResponse(
        booking_id=started.booking_id,
        payment_intent_id=started.payment_intent_id,
        client_secret=started.client_secret,
        amount=started.amount,
        amount_minor=started.amount_minor,
        currency=started.currency,
    )


# -----------------------------
# Availability & pricing
# -----------------------------
@router.get("/availability", response_model=AvailabilityResponse)
def get_availability(
    date: str | None = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock=Depends(get_clock),
):
    event_date = calendar.parse_iso_date(date)
    described = AvailabilityResolver(db, settings, clock).describe_date(event_date)
    return AvailabilityResponse(
        date=described.event_date,
        is_blackout=described.is_blackout,
        blackout_reason=described.blackout_reason,
        is_past_cutoff=described.is_past_cutoff,
        items=[
            ItemAvailabilityResponse(
                item_ref=item.item_ref,
                kind=item.item_kind,
                name=item.name,
                is_available=item.is_available,
                available_quantity=item.available_quantity,
                message=item.message,
            )
            for item in described.items
        ],
    )


@router.get("/pricing", response_model=PricingResponse)
def get_pricing(
    date: str | None = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    event_date = calendar.parse_iso_date(date)
    quotes = PricingResolver(db).quote_date(event_date)
    return PricingResponse(
        date=event_date,
        day_of_week=calendar.day_name(event_date),
        currency=settings.currency,
        items=[
            ItemPriceResponse(
                item_ref=item.id,
                kind=item_kind,
                name=item.name,
                price=quote.price,
                is_override=quote.is_override,
                message=quote.message,
            )
            for item_kind, item, quote in quotes
        ],
    )


@router.get("/available-dates", response_model=AvailableDatesResponse)
def get_available_dates(
    start_date: str | None = None,
    end_date: str | None = None,
    include_blackouts: bool = False,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock=Depends(get_clock),
):
    if start_date:
        start = calendar.parse_iso_date(start_date, "start_date")
    else:
        start = calendar.local_today(clock(), settings.venue_tz)
    if end_date:
        end = calendar.parse_iso_date(end_date, "end_date")
    else:
        end = start + timedelta(days=DEFAULT_DATE_RANGE_DAYS)

    dates = AvailabilityResolver(db, settings, clock).available_dates(start, end, include_blackouts)
    return AvailableDatesResponse(
        start_date=start,
        end_date=end,
        dates=[
            AvailableDateResponse(
                date=day.event_date,
                day_of_week=day.day_of_week,
                cutoff_time=day.cutoff_time.strftime("%H:%M"),
                is_blackout=day.is_blackout,
                blackout_reason=day.blackout_reason,
                is_past_cutoff=day.is_past_cutoff,
                timezone=day.timezone,
            )
            for day in dates
        ],
    )


# -----------------------------
# Promo codes
# -----------------------------
@router.post("/promo-codes/validate", response_model=PromoValidateResponse)
def validate_promo_code(
    request: PromoValidateRequest,
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    booking_date = (
        calendar.parse_iso_date(request.booking_date, "booking_date")
        if request.booking_date
        else None
    )
    result = PromoCodeValidator(db, clock).validate(request.code, request.subtotal, booking_date)
    promo = result.promo_code
    return PromoValidateResponse(
        valid=True,
        code=promo.code,
        description=promo.description,
        discount_type=promo.discount_type,
        discount_value=promo.discount_value,
        discount_amount=result.discount_amount,
    )


# -----------------------------
# Outbox
# -----------------------------
@router.get("/outbox/events", response_model=list[OutboxEventResponse])
def list_outbox_events(
    status_filter: str = "PENDING",
    limit: int = 50,
    db: Session = Depends(get_db),
):
    safe_limit = max(1, min(limit, 200))
    events = OutboxRepository(db).list_events(status=status_filter, limit=safe_limit)
    return [_outbox_response(item) for item in events]


@router.post("/outbox/events/{event_id}/mark-published", response_model=OutboxEventResponse)
def mark_outbox_event_published(
    event_id: str,
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    repository = OutboxRepository(db)
    item = repository.get(event_id)
    if not item:
        raise NotFoundError("Outbox event not found", details={"event_id": event_id})

    repository.mark_published(item, clock())
    db.commit()
    db.refresh(item)
    return _outbox_response(item)
