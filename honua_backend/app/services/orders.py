import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import OrderTransitionError
from models.marketplace import ORDER_STATUSES, Order, Product

logger = logging.getLogger("honua.orders")

# processor event -> payment_status; the webhook is the only writer of payment_status
PAYMENT_EVENTS = {
    "payment_intent.succeeded": "completed",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "canceled",
}
SELLER_FIELDS = ("order_status", "tracking_number", "notes")


def authorize_order_update(order: Order, user_id: str, changes: dict) -> dict:
    """Check who may apply ``changes`` to ``order`` and return the accepted fields.

    The seller may set any valid ``order_status`` plus tracking and notes. The
    buyer may only cancel, and only while the order is still pending.
    Nobody moves an order out of ``cancelled``.
    """
    if "payment_status" in changes:
        raise OrderTransitionError(403, "payment_status can only be changed by the payment processor")
    if user_id not in (order.buyer_id, order.seller_id):
        raise OrderTransitionError(403, "Access denied")
    accepted = {key: changes[key] for key in SELLER_FIELDS if key in changes}
    if not accepted:
        raise OrderTransitionError(400, "No changes provided")
    status = accepted.get("order_status")
    if "order_status" in accepted and status not in ORDER_STATUSES:
        raise OrderTransitionError(400, "Invalid order status")
    # cancelled is terminal; its stock has already been released
    if "order_status" in accepted and order.order_status == "cancelled" and status != "cancelled":
        raise OrderTransitionError(403, "Cancelled orders cannot be reopened")
    if user_id == order.seller_id:
        return accepted
    if set(accepted) != {"order_status"} or status != "cancelled":
        raise OrderTransitionError(403, "Buyers can only cancel their orders")
    if order.order_status != "pending":
        raise OrderTransitionError(403, "Only pending orders can be cancelled")
    return accepted


def releases_stock(order: Order, new_status: str | None) -> bool:
    return new_status == "cancelled" and order.order_status != "cancelled"


def card_amount_cents(order: Order) -> int:
    """What the processor must collect: the total less the green points applied."""
    return order.total_price_cents - (order.green_points_used or 0) * settings.GREEN_POINT_VALUE_CENTS


async def reserve_stock(db: AsyncSession, product: Product, quantity: int) -> bool:
    """Take ``quantity`` units if available. Unlimited stock always succeeds."""
    if product.type != "physical" or product.stock_quantity is None:
        return True
    result = await db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def release_stock(db: AsyncSession, order: Order) -> None:
    await db.execute(
        update(Product)
        .where(Product.id == order.product_id, Product.type == "physical", Product.stock_quantity.is_not(None))
        .values(stock_quantity=Product.stock_quantity + order.quantity)
        .execution_options(synchronize_session=False)
    )


async def adjust_stock(db: AsyncSession, product_id: int, delta: int) -> bool:
    """Shift tracked stock by ``delta``; refuses to go below zero."""
    result = await db.execute(
        update(Product)
        .where(
            Product.id == product_id,
            Product.stock_quantity.is_not(None),
            Product.stock_quantity + delta >= 0,
        )
        .values(stock_quantity=Product.stock_quantity + delta)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def _order_id_from_event(event: dict) -> int | None:
    obj = ((event.get("data") or {}).get("object") or {})
    raw = (obj.get("metadata") or {}).get("order_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


async def apply_payment_event(db: AsyncSession, event: dict) -> str:
    """Apply a verified processor event to its order.

    Returns one of ``ignored``, ``unknown_order``, ``noop`` or ``applied``.
    Store errors propagate so the processor redelivers.
    """
    event_type = event.get("type") or ""
    target = PAYMENT_EVENTS.get(event_type)
    if target is None:
        logger.info("WEBHOOK_IGNORED event=%s id=%s", event_type or "-", event.get("id", "-"))
        return "ignored"
    order_id = _order_id_from_event(event)
    order = None
    if order_id is not None:
        order = (await db.execute(select(Order).where(Order.id == order_id))).scalar_one_or_none()
    if order is None:
        logger.warning("WEBHOOK_UNKNOWN_ORDER event=%s order=%s", event_type, order_id)
        return "unknown_order"
    if order.payment_status == target:
        logger.info("WEBHOOK_NOOP event=%s order=%s status=%s", event_type, order.id, target)
        return "noop"
    order.payment_status = target
    intent_id = ((event.get("data") or {}).get("object") or {}).get("id")
    if intent_id:
        order.stripe_payment_intent_id = intent_id
    await db.commit()
    logger.info("WEBHOOK_APPLIED event=%s order=%s status=%s", event_type, order.id, target)
    return "applied"
