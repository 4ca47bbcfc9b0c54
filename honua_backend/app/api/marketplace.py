import json
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.errors import OrderTransitionError, PaymentProviderError, as_http_error
from app.services import orders as order_service
from app.services import payments
from app.services.notifications import notify
from app.services.points import award_points_best_effort, debit_points
from app.services.profiles import get_current_profile, get_profiles_map
from app.services.payments import to_minor_units
from models.marketplace import PAYMENT_METHODS, PRODUCT_TYPES, Order, Product
from models.profile import Profile
from schemas.marketplace import (
    InventoryResponse,
    InventoryUpdate,
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderUpdate,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from schemas.profile import ProfileSummary

router = APIRouter()
logger = logging.getLogger("honua.orders")

REQUIRED_PRODUCT_FIELDS = ("title", "description", "price", "currency", "category", "type", "status")


def _product_response(product: Product, seller: Optional[Profile] = None) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        seller_id=product.seller_id,
        seller=ProfileSummary.model_validate(seller) if seller else None,
        title=product.title,
        description=product.description,
        price_cents=product.price_cents,
        price=product.price_cents / 100,
        currency=product.currency,
        green_points_price=product.green_points_price,
        category=product.category,
        type=product.type,
        stock_quantity=product.stock_quantity,
        images=json.loads(product.images or "[]"),
        status=product.status,
        created_at=product.created_at,
    )


def order_response(order: Order, product_title: Optional[str] = None) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        buyer_id=order.buyer_id,
        seller_id=order.seller_id,
        product_id=order.product_id,
        product_title=product_title,
        quantity=order.quantity,
        unit_price_cents=order.unit_price_cents,
        total_price_cents=order.total_price_cents,
        currency=order.currency,
        green_points_used=order.green_points_used or 0,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        order_status=order.order_status,
        stripe_payment_intent_id=order.stripe_payment_intent_id,
        shipping_address=json.loads(order.shipping_address) if order.shipping_address else None,
        tracking_number=order.tracking_number,
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


# ---- products ----

@router.get("/products", response_model=ProductListResponse)
async def list_products(
    category: Optional[str] = None,
    type: Optional[str] = None,
    search: Optional[str] = None,
    minPrice: Optional[int] = Query(None, ge=0),
    maxPrice: Optional[int] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Product).where(Product.status == "active")
    if category:
        stmt = stmt.where(Product.category == category)
    if type:
        stmt = stmt.where(Product.type == type)
    if search and search.strip():
        term = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.title.ilike(term), Product.description.ilike(term)))
    if minPrice is not None:
        stmt = stmt.where(Product.price_cents >= minPrice)
    if maxPrice is not None:
        stmt = stmt.where(Product.price_cents <= maxPrice)
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    rows = await db.execute(
        stmt.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    products = rows.scalars().all()
    sellers = await get_profiles_map(db, [p.seller_id for p in products])
    return ProductListResponse(
        products=[_product_response(p, sellers.get(p.seller_id)) for p in products],
        page=page,
        limit=limit,
        total=total,
    )


@router.post("/products", response_model=ProductResponse, status_code=201)
async def create_product(
    payload: ProductCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    if payload.type not in PRODUCT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid product type")
    price_cents = to_minor_units(payload.price)
    if price_cents <= 0:
        raise HTTPException(status_code=400, detail="Price must be greater than zero")
    product = Product(
        seller_id=profile.id,
        title=payload.title,
        description=payload.description,
        price_cents=price_cents,
        currency=(payload.currency or "USD").upper(),
        green_points_price=payload.green_points_price,
        category=payload.category,
        type=payload.type,
        stock_quantity=payload.stock_quantity,
        images=json.dumps(payload.images or []),
    )
    db.add(product)
    await db.commit()
    logger.info("PRODUCT_CREATED product=%s seller=%s", product.id, profile.id)
    return _product_response(product, profile)


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = (await db.execute(select(Product).where(Product.id == product_id))).scalar_one_or_none()
    if not product or product.status == "deleted":
        raise HTTPException(status_code=404, detail="Product not found")
    sellers = await get_profiles_map(db, [product.seller_id])
    return _product_response(product, sellers.get(product.seller_id))


async def _owned_product(db: AsyncSession, product_id: int, user_id: str) -> Product:
    product = (await db.execute(select(Product).where(Product.id == product_id))).scalar_one_or_none()
    if not product or product.status == "deleted":
        raise HTTPException(status_code=404, detail="Product not found")
    if product.seller_id != user_id:
        logger.warning("PRODUCT_ACCESS_DENIED product=%s user=%s", product_id, user_id)
        raise HTTPException(status_code=403, detail="You can only manage your own products")
    return product


@router.put("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    product = await _owned_product(db, product_id, profile.id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")
    for key in REQUIRED_PRODUCT_FIELDS:
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be empty")
    if "type" in changes and changes["type"] not in PRODUCT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid product type")
    if "status" in changes and changes["status"] not in ("active", "inactive"):
        raise HTTPException(status_code=400, detail="Status must be active or inactive")
    if "price" in changes:
        price_cents = to_minor_units(changes.pop("price"))
        if price_cents <= 0:
            raise HTTPException(status_code=400, detail="Price must be greater than zero")
        changes["price_cents"] = price_cents
    if "currency" in changes:
        changes["currency"] = changes["currency"].upper()
    if "images" in changes:
        changes["images"] = json.dumps(changes["images"] or [])
    for key, value in changes.items():
        setattr(product, key, value)
    await db.commit()
    await db.refresh(product)
    logger.info("PRODUCT_UPDATED product=%s seller=%s fields=%s", product_id, profile.id, ",".join(sorted(changes)))
    return _product_response(product, profile)


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    product = await _owned_product(db, product_id, profile.id)
    # soft delete; orders still reference the row
    product.status = "deleted"
    await db.commit()
    logger.info("PRODUCT_DELETED product=%s seller=%s", product_id, profile.id)
    return {"message": "Product deleted successfully"}


def _inventory_response(product: Product) -> InventoryResponse:
    return InventoryResponse(product_id=product.id, stock_quantity=product.stock_quantity, status=product.status)


@router.get("/inventory", response_model=InventoryResponse)
async def get_inventory(
    product_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return _inventory_response(await _owned_product(db, product_id, profile.id))


@router.put("/inventory", response_model=InventoryResponse)
async def update_inventory(
    payload: InventoryUpdate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    if (payload.quantity is None) == (payload.adjustment is None):
        raise HTTPException(status_code=400, detail="Provide either quantity or adjustment")
    product = await _owned_product(db, payload.product_id, profile.id)
    if product.type != "physical":
        raise HTTPException(status_code=400, detail="Stock is only tracked for physical products")
    if payload.quantity is not None:
        product.stock_quantity = payload.quantity
    else:
        if product.stock_quantity is None:
            raise HTTPException(status_code=400, detail="Product has unlimited stock")
        if not await order_service.adjust_stock(db, product.id, payload.adjustment):
            raise HTTPException(status_code=400, detail="Stock cannot go below zero")
    await db.commit()
    await db.refresh(product)
    logger.info("INVENTORY_UPDATED product=%s seller=%s stock=%s", product.id, profile.id, product.stock_quantity)
    return _inventory_response(product)


# ---- orders ----

@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    type: str = "buyer",
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    role_column = Order.seller_id if type == "seller" else Order.buyer_id
    stmt = select(Order).where(role_column == profile.id)
    if status:
        stmt = stmt.where(Order.order_status == status)
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    rows = await db.execute(
        stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    orders = rows.scalars().all()
    titles = {}
    product_ids = {o.product_id for o in orders}
    if product_ids:
        title_rows = await db.execute(select(Product.id, Product.title).where(Product.id.in_(product_ids)))
        titles = {pid: title for pid, title in title_rows}
    return OrderListResponse(
        orders=[order_response(o, titles.get(o.product_id)) for o in orders],
        page=page,
        limit=limit,
        total=total,
    )


def _check_client_price(supplied: Optional[float], expected_cents: int, label: str) -> None:
    if supplied is not None and to_minor_units(supplied) != expected_cents:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


@router.post("/orders", response_model=OrderCreateResponse, status_code=201)
async def create_order(
    payload: OrderCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    buyer_id = profile.id
    if payload.payment_method not in PAYMENT_METHODS:
        raise HTTPException(status_code=400, detail="Valid payment method is required (green_points, stripe, or mixed)")
    if payload.quantity < 1:
        raise HTTPException(status_code=400, detail="Valid quantity is required")
    product = (await db.execute(select(Product).where(Product.id == payload.product_id))).scalar_one_or_none()
    if not product or product.status != "active":
        raise HTTPException(status_code=404, detail="Product not found")
    if product.seller_id == buyer_id:
        raise HTTPException(status_code=400, detail="You cannot purchase your own product")
    physical = product.type == "physical"
    if physical and not payload.shipping_address:
        raise HTTPException(status_code=400, detail="Shipping address is required for physical products")

    quantity = payload.quantity
    unit_cents = product.price_cents
    total_cents = unit_cents * quantity
    _check_client_price(payload.unit_price, unit_cents, "unit price")
    _check_client_price(payload.total_price, total_cents, "total price")

    method = payload.payment_method
    points_used = 0
    stripe_cents = 0
    if method == "green_points":
        if not product.green_points_price:
            raise HTTPException(status_code=400, detail="This product is not available for green points purchase")
        points_used = product.green_points_price * quantity
        if payload.green_points_used is not None and payload.green_points_used != points_used:
            raise HTTPException(status_code=400, detail="Invalid green points amount")
    elif method == "mixed":
        points_used = payload.green_points_used or 0
        stripe_cents = total_cents - points_used * settings.GREEN_POINT_VALUE_CENTS
    else:
        stripe_cents = total_cents
    if method != "green_points" and stripe_cents <= 0:
        raise HTTPException(status_code=400, detail="Invalid Stripe payment amount")

    product_id, product_title, seller_id = product.id, product.title, product.seller_id
    if physical and not await order_service.reserve_stock(db, product, quantity):
        raise HTTPException(status_code=400, detail="Insufficient stock available")
    order = Order(
        buyer_id=buyer_id,
        seller_id=seller_id,
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_cents,
        total_price_cents=total_cents,
        currency=product.currency or "USD",
        green_points_used=points_used,
        payment_method=method,
        payment_status="completed" if method == "green_points" else "pending",
        order_status="pending",
        shipping_address=json.dumps(payload.shipping_address) if physical else None,
        notes=payload.notes,
    )
    db.add(order)
    await db.flush()
    if points_used and not await debit_points(
        db, buyer_id, points_used, "marketplace_purchase",
        description=f"Purchase of {product_title}", reference_id=str(order.id),
    ):
        raise HTTPException(status_code=400, detail="Insufficient green points")

    intent = None
    if method in ("stripe", "mixed"):
        try:
            intent = await payments.create_payment_intent(
                stripe_cents,
                order.currency,
                {"order_id": order.id, "user_id": buyer_id, "product_name": product_title},
                description=f"Payment for {product_title}",
                receipt_email=profile.email,
            )
        except PaymentProviderError:
            raise HTTPException(status_code=500, detail="Payment processing failed")
        order.stripe_payment_intent_id = intent.get("id")
    await db.commit()
    logger.info(
        "ORDER_CREATED order=%s buyer=%s seller=%s method=%s total_cents=%s",
        order.id, buyer_id, seller_id, method, total_cents,
    )
    response = OrderCreateResponse(
        order=order_response(order, product_title),
        requires_payment=intent is not None,
        client_secret=intent.get("client_secret") if intent else None,
        payment_intent_id=intent.get("id") if intent else None,
    )
    reward = math.floor(total_cents * settings.SELLER_REWARD_RATE / 100)
    await award_points_best_effort(
        db, seller_id, reward, "marketplace_sale",
        description=f"Sale of {product_title}", reference_id=str(response.order.id),
    )
    await notify(
        db, seller_id, buyer_id, "order",
        content=f"New order for {product_title}",
    )
    return response


async def _visible_order(db: AsyncSession, order_id: int, user_id: str) -> Order:
    order = (await db.execute(select(Order).where(Order.id == order_id))).scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if user_id not in (order.buyer_id, order.seller_id):
        raise HTTPException(status_code=403, detail="Access denied")
    return order


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    order = await _visible_order(db, order_id, profile.id)
    title = (await db.execute(select(Product.title).where(Product.id == order.product_id))).scalar_one_or_none()
    return order_response(order, title)


@router.patch("/orders/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: int,
    payload: OrderUpdate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    user_id = profile.id
    order = (await db.execute(select(Order).where(Order.id == order_id))).scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    changes = payload.model_dump(exclude_unset=True)
    try:
        accepted = order_service.authorize_order_update(order, user_id, changes)
    except OrderTransitionError as exc:
        logger.warning(
            "ORDER_UPDATE_DENIED order=%s user=%s status=%s reason=%s",
            order_id, user_id, exc.status_code, exc.message,
        )
        raise as_http_error(exc)
    new_status = accepted.get("order_status")
    if order_service.releases_stock(order, new_status):
        await order_service.release_stock(db, order)
    previous = order.order_status
    for key, value in accepted.items():
        setattr(order, key, value)
    await db.commit()
    await db.refresh(order)
    logger.info("ORDER_UPDATED order=%s user=%s status=%s->%s", order_id, user_id, previous, order.order_status)
    title = (await db.execute(select(Product.title).where(Product.id == order.product_id))).scalar_one_or_none()
    return order_response(order, title)
