from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from venue_booking.api.routes.routes import get_clock, get_db, get_payment_gateway
from venue_booking.api.schemas.schemas import WebhookAckResponse
from venue_booking.application.payment_reconciliation import PaymentReconciliationService
from venue_booking.infrastructure.payments.stripe_gateway import StripeGateway


router = APIRouter()


async def get_raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/webhooks/stripe", response_model=WebhookAckResponse)
def stripe_webhook(
    request: Request,
    payload: bytes = Depends(get_raw_body),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    clock=Depends(get_clock),
):
    # Signature first: nothing is read from the body until it is verified.
    event = gateway.verify_webhook(payload, request.headers.get("stripe-signature"))

    result = PaymentReconciliationService(db, clock).handle_event(event, payload)
    db.commit()
    return WebhookAckResponse(received=True, processed=result.processed)
