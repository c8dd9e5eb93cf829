import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from venue_booking.domain.values import DiscountType, ItemKind


class BookingItemRequest(BaseModel):
    item_ref: str = Field(min_length=1)
    kind: ItemKind
    quantity: int = Field(gt=0)


class CustomerRequest(BaseModel):
    is_guest: bool
    name: str | None = None
    email: str | None = None
    promo_code: str | None = None
    notes: str | None = Field(default=None, max_length=2000)


class BookingRequest(BaseModel):
    date: str
    items: list[BookingItemRequest] = Field(min_length=1)
    customer: CustomerRequest


class BookingItemResponse(BaseModel):
    item_ref: str
    kind: ItemKind
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class BookingResponse(BaseModel):
    booking_id: str
    reference: str
    status: str
    event_date: datetime.date
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    payment_status: str | None = None
    items: list[BookingItemResponse]


class PaymentIntentResponse(BaseModel):
    booking_id: str
    payment_intent_id: str
    client_secret: str
    amount: Decimal
    amount_minor: int
    currency: str


class ItemAvailabilityResponse(BaseModel):
    item_ref: str
    kind: ItemKind
    name: str
    is_available: bool
    available_quantity: int
    message: str | None = None


class AvailabilityResponse(BaseModel):
    date: datetime.date
    is_blackout: bool
    blackout_reason: str | None = None
    is_past_cutoff: bool
    items: list[ItemAvailabilityResponse]


class ItemPriceResponse(BaseModel):
    item_ref: str
    kind: ItemKind
    name: str
    price: Decimal
    is_override: bool
    message: str | None = None


class PricingResponse(BaseModel):
    date: datetime.date
    day_of_week: str
    currency: str
    items: list[ItemPriceResponse]


class AvailableDateResponse(BaseModel):
    date: datetime.date
    day_of_week: str
    cutoff_time: str
    is_blackout: bool
    blackout_reason: str | None = None
    is_past_cutoff: bool
    timezone: str


class AvailableDatesResponse(BaseModel):
    start_date: datetime.date
    end_date: datetime.date
    dates: list[AvailableDateResponse]


class PromoValidateRequest(BaseModel):
    code: str
    subtotal: Decimal = Field(ge=0)
    booking_date: str | None = None


class PromoValidateResponse(BaseModel):
    valid: bool
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal


class WebhookAckResponse(BaseModel):
    received: bool
    processed: bool


class OutboxEventResponse(BaseModel):
    id: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: str
    status: str
    attempts: int
    created_at: str
    published_at: str | None = None
