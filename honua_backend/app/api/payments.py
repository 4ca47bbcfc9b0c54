import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import PaymentProviderError, WebhookSignatureError
from app.security import get_current_user_id
from app.services import orders as order_service
from app.services import payments
from models.marketplace import Order
from schemas.marketplace import PaymentIntentCreate, PaymentIntentResponse

router = APIRouter()
logger = logging.getLogger("honua.payments")


@router.post("/stripe/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payload: PaymentIntentCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    order = (await db.execute(select(Order).where(Order.id == payload.order_id))).scalar_one_or_none()
    if not order or order.buyer_id != user_id:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.payment_status != "pending":
        raise HTTPException(status_code=400, detail="Order is not awaiting payment")
    amount_cents = order_service.card_amount_cents(order)
    if amount_cents <= 0:
        raise HTTPException(status_code=400, detail="Order has no card balance")
    if payload.amount is not None and payments.to_minor_units(payload.amount) != amount_cents:
        logger.warning(
            "INTENT_AMOUNT_MISMATCH order=%s user=%s supplied_cents=%s due_cents=%s",
            order.id, user_id, payments.to_minor_units(payload.amount), amount_cents,
        )
        raise HTTPException(status_code=400, detail="Invalid payment amount")
    if payload.currency and payload.currency.upper() != (order.currency or "USD").upper():
        raise HTTPException(status_code=400, detail="Invalid currency")
    try:
        intent = await payments.create_payment_intent(
            amount_cents,
            order.currency,
            {"order_id": order.id, "user_id": user_id},
            description=f"Payment for order {order.id}",
        )
    except PaymentProviderError:
        raise HTTPException(status_code=500, detail="Payment processing failed")
    order.stripe_payment_intent_id = intent.get("id")
    await db.commit()
    return PaymentIntentResponse(client_secret=intent.get("client_secret"), payment_intent_id=intent.get("id"))


@router.post("/stripe/webhook")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        payments.verify_webhook_signature(body, signature)
    except WebhookSignatureError as exc:
        logger.warning("WEBHOOK_REJECTED reason=%s", exc)
        raise HTTPException(status_code=400, detail="Invalid signature")
    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    await order_service.apply_payment_event(db, event)
    return {"received": True}
