import httpx
import pytest
from sqlalchemy import select, update

from app.errors import PaymentProviderError
from app.services import payments
from models.marketplace import Order, Product
from models.points import GreenPointTransaction
from models.profile import Profile

pytestmark = pytest.mark.api

ADDRESS = {"line1": "1 Reef Rd", "city": "Hilo", "country": "US"}


@pytest.fixture
def intents(monkeypatch):
    """Stand-in for the processor; records every intent request."""
    calls = []

    async def fake_create(amount_cents, currency, metadata, *, description=None, receipt_email=None, client=None):
        calls.append({"amount_cents": amount_cents, "currency": currency, "metadata": metadata})
        return {"id": f"pi_test_{len(calls)}", "client_secret": f"pi_test_{len(calls)}_secret"}

    monkeypatch.setattr(payments, "create_payment_intent", fake_create)
    return calls


@pytest.fixture
def seller(make_user):
    async def _seller():
        return await make_user("seller-1")
    return _seller


async def _product(client, headers, **overrides) -> dict:
    body = {
        "title": "Bamboo toothbrush",
        "description": "Compostable handle",
        "price": 12.5,
        "category": "Personal Care",
        "type": "physical",
        "stock_quantity": 5,
        "green_points_price": 30,
    }
    body.update(overrides)
    resp = await client.post("/api/marketplace/products", headers=headers, json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _give_points(session_factory, user_id: str, points: int) -> None:
    async with session_factory() as session:
        await session.execute(update(Profile).where(Profile.id == user_id).values(green_points=points))
        await session.commit()


async def _stock(fetch, product_id: int):
    return (await fetch(select(Product).where(Product.id == product_id)))[0].stock_quantity


async def test_product_price_is_stored_in_cents(client, seller):
    product = await _product(client, await seller())
    assert product["price_cents"] == 1250
    assert product["price"] == 12.5
    assert product["seller"]["id"] == "seller-1"
    assert (await client.get(f"/api/marketplace/products/{product['id']}")).json()["title"] == "Bamboo toothbrush"
    assert (await client.get("/api/marketplace/products/999")).status_code == 404


async def test_product_validation(client, seller):
    headers = await seller()
    bad_type = await client.post("/api/marketplace/products", headers=headers, json={
        "title": "x", "description": "y", "price": 1, "category": "z", "type": "timeshare",
    })
    assert bad_type.status_code == 400
    free = await client.post("/api/marketplace/products", headers=headers, json={
        "title": "x", "description": "y", "price": 0, "category": "z",
    })
    assert free.status_code == 400


async def test_product_filters(client, seller):
    headers = await seller()
    await _product(client, headers, title="Solar lamp", category="Energy", price=40)
    await _product(client, headers, title="Seed kit", category="Garden", type="digital", price=5)

    energy = (await client.get("/api/marketplace/products", params={"category": "Energy"})).json()
    assert [p["title"] for p in energy["products"]] == ["Solar lamp"]
    assert energy["total"] == 1
    digital = (await client.get("/api/marketplace/products", params={"type": "digital"})).json()
    assert [p["title"] for p in digital["products"]] == ["Seed kit"]
    cheap = (await client.get("/api/marketplace/products", params={"maxPrice": 1000})).json()
    assert [p["title"] for p in cheap["products"]] == ["Seed kit"]
    found = (await client.get("/api/marketplace/products", params={"search": "lamp"})).json()
    assert found["total"] == 1


async def test_stripe_order_uses_real_order_id(client, seller, make_user, intents, fetch):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1", email="buyer@example.org")

    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "quantity": 2, "payment_method": "stripe",
        "shipping_address": ADDRESS, "unit_price": 12.5, "total_price": 25,
    })
    assert resp.status_code == 201, resp.text
    body = resp.json()
    order = body["order"]
    assert body["requires_payment"] is True
    assert body["client_secret"] == "pi_test_1_secret"
    assert order["total_price_cents"] == 2500
    assert order["payment_status"] == "pending"
    assert order["stripe_payment_intent_id"] == "pi_test_1"
    assert order["shipping_address"] == ADDRESS
    assert intents == [{
        "amount_cents": 2500,
        "currency": "USD",
        "metadata": {"order_id": order["id"], "user_id": "buyer-1", "product_name": "Bamboo toothbrush"},
    }]
    assert await _stock(fetch, product["id"]) == 3

    # seller earns floor(2500 * 0.05 / 100) = 1 point
    seller_row = (await fetch(select(Profile).where(Profile.id == "seller-1")))[0]
    assert seller_row.green_points == 1


async def test_order_input_checks(client, seller, make_user, intents):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    buyer = await make_user("buyer-1")
    base = {"product_id": product["id"], "payment_method": "stripe", "shipping_address": ADDRESS}

    own = await client.post("/api/marketplace/orders", headers=seller_headers, json=base)
    assert own.status_code == 400
    assert own.json() == {"error": "You cannot purchase your own product"}
    assert (await client.post("/api/marketplace/orders", headers=buyer, json={**base, "payment_method": "barter"})).status_code == 400
    assert (await client.post("/api/marketplace/orders", headers=buyer, json={**base, "quantity": 0})).status_code == 400
    no_address = {k: v for k, v in base.items() if k != "shipping_address"}
    assert (await client.post("/api/marketplace/orders", headers=buyer, json=no_address)).status_code == 400
    tampered = await client.post("/api/marketplace/orders", headers=buyer, json={**base, "unit_price": 0.01})
    assert tampered.json() == {"error": "Invalid unit price"}
    assert (await client.post("/api/marketplace/orders", headers=buyer, json={**base, "product_id": 999})).status_code == 404
    assert intents == []


async def test_insufficient_stock(client, seller, make_user, intents, fetch):
    product = await _product(client, await seller(), stock_quantity=1)
    buyer = await make_user("buyer-1")
    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "quantity": 2, "payment_method": "stripe", "shipping_address": ADDRESS,
    })
    assert resp.status_code == 400
    assert resp.json() == {"error": "Insufficient stock available"}
    assert await _stock(fetch, product["id"]) == 1
    assert await fetch(select(Order)) == []


async def test_digital_product_ignores_stock(client, seller, make_user, intents, fetch):
    product = await _product(client, await seller(), type="digital", stock_quantity=None)
    buyer = await make_user("buyer-1")
    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "stripe",
    })
    assert resp.status_code == 201
    assert resp.json()["order"]["shipping_address"] is None


async def test_green_points_purchase(client, seller, make_user, session_factory, fetch, intents):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    await _give_points(session_factory, "buyer-1", 100)

    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "quantity": 2, "payment_method": "green_points", "shipping_address": ADDRESS,
    })
    assert resp.status_code == 201
    body = resp.json()
    assert body["requires_payment"] is False
    assert body["order"]["payment_status"] == "completed"
    assert body["order"]["green_points_used"] == 60
    assert intents == []

    buyer_row = (await fetch(select(Profile).where(Profile.id == "buyer-1")))[0]
    assert buyer_row.green_points == 40
    debits = await fetch(select(GreenPointTransaction).where(GreenPointTransaction.user_id == "buyer-1"))
    assert [(t.points, t.source, t.reference_id) for t in debits] == [(-60, "marketplace_purchase", str(body["order"]["id"]))]


async def test_green_points_shortfall_leaves_no_trace(client, seller, make_user, session_factory, fetch):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    await _give_points(session_factory, "buyer-1", 10)

    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "green_points", "shipping_address": ADDRESS,
    })
    assert resp.status_code == 400
    assert resp.json() == {"error": "Insufficient green points"}
    assert await fetch(select(Order)) == []
    assert await _stock(fetch, product["id"]) == 5
    assert (await fetch(select(Profile).where(Profile.id == "buyer-1")))[0].green_points == 10


async def test_green_points_requires_points_price(client, seller, make_user):
    product = await _product(client, await seller(), green_points_price=None)
    buyer = await make_user("buyer-1")
    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "green_points", "shipping_address": ADDRESS,
    })
    assert resp.status_code == 400


async def test_mixed_payment_splits_amount(client, seller, make_user, session_factory, intents, fetch):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    await _give_points(session_factory, "buyer-1", 20)

    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "mixed", "green_points_used": 5, "shipping_address": ADDRESS,
    })
    assert resp.status_code == 201
    # 1250 cents minus 5 points at 100 cents each
    assert intents[0]["amount_cents"] == 750
    assert (await fetch(select(Profile).where(Profile.id == "buyer-1")))[0].green_points == 15

    too_many = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "mixed", "green_points_used": 13, "shipping_address": ADDRESS,
    })
    assert too_many.json() == {"error": "Invalid Stripe payment amount"}


async def test_processor_failure_persists_nothing(client, seller, make_user, monkeypatch, fetch):
    async def failing(*args, **kwargs):
        raise PaymentProviderError("Payment processing failed")

    monkeypatch.setattr(payments, "create_payment_intent", failing)
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "stripe", "shipping_address": ADDRESS,
    })
    assert resp.status_code == 500
    assert resp.json() == {"error": "Payment processing failed"}
    assert await fetch(select(Order)) == []
    assert await _stock(fetch, product["id"]) == 5


async def _order(client, buyer, product_id) -> dict:
    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product_id, "quantity": 2, "payment_method": "stripe", "shipping_address": ADDRESS,
    })
    return resp.json()["order"]


async def test_order_visibility_and_listing(client, seller, make_user, intents):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    buyer = await make_user("buyer-1")
    stranger = await make_user("stranger-1")
    order = await _order(client, buyer, product["id"])

    assert (await client.get(f"/api/marketplace/orders/{order['id']}", headers=seller_headers)).status_code == 200
    assert (await client.get(f"/api/marketplace/orders/{order['id']}", headers=stranger)).status_code == 403
    mine = (await client.get("/api/marketplace/orders", headers=buyer)).json()
    assert [o["id"] for o in mine["orders"]] == [order["id"]]
    assert mine["orders"][0]["product_title"] == "Bamboo toothbrush"
    sold = (await client.get("/api/marketplace/orders", headers=seller_headers, params={"type": "seller"})).json()
    assert sold["total"] == 1
    assert (await client.get("/api/marketplace/orders", headers=seller_headers)).json()["total"] == 0


async def test_order_update_rules(client, seller, make_user, intents, fetch):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    buyer = await make_user("buyer-1")
    order = await _order(client, buyer, product["id"])
    url = f"/api/marketplace/orders/{order['id']}"

    paid = await client.patch(url, headers=seller_headers, json={"payment_status": "completed"})
    assert paid.status_code == 403
    assert (await client.patch(url, headers=buyer, json={"order_status": "shipped"})).status_code == 403
    assert (await client.patch(url, headers=seller_headers, json={"order_status": "lost"})).status_code == 400

    shipped = await client.patch(url, headers=seller_headers, json={"order_status": "shipped", "tracking_number": "1Z999"})
    assert shipped.json()["order_status"] == "shipped"
    assert shipped.json()["tracking_number"] == "1Z999"
    late = await client.patch(url, headers=buyer, json={"order_status": "cancelled"})
    assert late.status_code == 403
    stored = (await fetch(select(Order)))[0]
    assert stored.payment_status == "pending"


async def test_buyer_cancel_restores_stock(client, seller, make_user, intents, fetch):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    order = await _order(client, buyer, product["id"])
    assert await _stock(fetch, product["id"]) == 3

    url = f"/api/marketplace/orders/{order['id']}"
    resp = await client.patch(url, headers=buyer, json={"order_status": "cancelled"})
    assert resp.json()["order_status"] == "cancelled"
    assert await _stock(fetch, product["id"]) == 5


async def test_payment_intent_endpoint(client, seller, make_user, intents):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    order = await _order(client, buyer, product["id"])

    resp = await client.post("/api/payments/stripe/create-payment-intent", headers=buyer, json={
        "order_id": order["id"], "amount": 25,
    })
    assert resp.json() == {"client_secret": "pi_test_2_secret", "payment_intent_id": "pi_test_2"}
    assert intents[1] == {
        "amount_cents": 2500,
        "currency": "USD",
        "metadata": {"order_id": order["id"], "user_id": "buyer-1"},
    }

    # without an amount the order total is charged
    resp = await client.post("/api/payments/stripe/create-payment-intent", headers=buyer, json={"order_id": order["id"]})
    assert resp.status_code == 200
    assert intents[2]["amount_cents"] == 2500

    other = await make_user("other-1")
    foreign = await client.post("/api/payments/stripe/create-payment-intent", headers=other, json={
        "order_id": order["id"], "amount": 25,
    })
    assert foreign.status_code == 404


async def test_payment_intent_amount_comes_from_order(client, seller, make_user, intents, fetch):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    order = await _order(client, buyer, product["id"])
    url = "/api/payments/stripe/create-payment-intent"

    underpaid = await client.post(url, headers=buyer, json={"order_id": order["id"], "amount": 0.01})
    assert underpaid.status_code == 400
    assert underpaid.json() == {"error": "Invalid payment amount"}
    wrong_currency = await client.post(url, headers=buyer, json={"order_id": order["id"], "currency": "eur"})
    assert wrong_currency.status_code == 400
    assert len(intents) == 1
    stored = (await fetch(select(Order).where(Order.id == order["id"])))[0]
    assert stored.stripe_payment_intent_id == "pi_test_1"


async def test_payment_intent_for_mixed_order_charges_card_share(client, seller, make_user, session_factory, intents):
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    await _give_points(session_factory, "buyer-1", 20)
    order = (await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "mixed", "green_points_used": 5, "shipping_address": ADDRESS,
    })).json()["order"]

    resp = await client.post("/api/payments/stripe/create-payment-intent", headers=buyer, json={
        "order_id": order["id"], "amount": 7.5,
    })
    assert resp.status_code == 200
    assert [i["amount_cents"] for i in intents] == [750, 750]


async def test_processor_rejection_is_not_echoed(client, seller, make_user, monkeypatch, fetch):
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {
            "type": "invalid_request_error",
            "message": "Invalid API Key provided: sk_test_****onua",
        }})

    monkeypatch.setattr(
        payments.httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    product = await _product(client, await seller())
    buyer = await make_user("buyer-1")
    resp = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "stripe", "shipping_address": ADDRESS,
    })
    assert resp.status_code == 500
    assert resp.json() == {"error": "Payment processing failed"}
    assert "sk_test" not in resp.text
    assert await fetch(select(Order)) == []
    assert await _stock(fetch, product["id"]) == 5


async def test_cancelled_order_cannot_be_reopened(client, seller, make_user, intents, fetch):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    buyer = await make_user("buyer-1")
    order = await _order(client, buyer, product["id"])
    url = f"/api/marketplace/orders/{order['id']}"
    assert await _stock(fetch, product["id"]) == 3

    assert (await client.patch(url, headers=seller_headers, json={"order_status": "cancelled"})).status_code == 200
    assert await _stock(fetch, product["id"]) == 5
    reopened = await client.patch(url, headers=seller_headers, json={"order_status": "pending"})
    assert reopened.status_code == 403
    assert reopened.json() == {"error": "Cancelled orders cannot be reopened"}
    again = await client.patch(url, headers=buyer, json={"order_status": "cancelled"})
    assert again.status_code == 403
    assert await _stock(fetch, product["id"]) == 5
    assert (await fetch(select(Order)))[0].order_status == "cancelled"


async def test_seller_edits_product(client, seller, make_user):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    url = f"/api/marketplace/products/{product['id']}"

    resp = await client.put(url, headers=seller_headers, json={
        "title": "Bamboo toothbrush, 4 pack", "price": 19.99, "images": ["a.jpg"], "status": "inactive",
    })
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["title"] == "Bamboo toothbrush, 4 pack"
    assert body["price_cents"] == 1999
    assert body["images"] == ["a.jpg"]
    assert body["status"] == "inactive"
    assert body["stock_quantity"] == 5
    listed = (await client.get("/api/marketplace/products")).json()
    assert listed["total"] == 0

    other = await make_user("other-1")
    assert (await client.put(url, headers=other, json={"title": "Mine now"})).status_code == 403
    assert (await client.put(url, headers=seller_headers, json={})).status_code == 400
    assert (await client.put(url, headers=seller_headers, json={"title": " "})).status_code == 400
    assert (await client.put(url, headers=seller_headers, json={"title": None})).status_code == 400
    assert (await client.put(url, headers=seller_headers, json={"type": "timeshare"})).status_code == 400
    assert (await client.put(url, headers=seller_headers, json={"status": "deleted"})).status_code == 400
    assert (await client.put("/api/marketplace/products/999", headers=seller_headers, json={"title": "x"})).status_code == 404


async def test_seller_deletes_product(client, seller, make_user, intents, fetch):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    buyer = await make_user("buyer-1")
    order = await _order(client, buyer, product["id"])
    url = f"/api/marketplace/products/{product['id']}"

    assert (await client.delete(url, headers=buyer)).status_code == 403
    resp = await client.delete(url, headers=seller_headers)
    assert resp.json() == {"message": "Product deleted successfully"}
    assert (await client.get(url)).status_code == 404
    assert (await client.delete(url, headers=seller_headers)).status_code == 404
    assert (await fetch(select(Product)))[0].status == "deleted"
    # existing orders still resolve
    assert (await client.get(f"/api/marketplace/orders/{order['id']}", headers=buyer)).status_code == 200
    retry = await client.post("/api/marketplace/orders", headers=buyer, json={
        "product_id": product["id"], "payment_method": "stripe", "shipping_address": ADDRESS,
    })
    assert retry.status_code == 404


async def test_inventory_updates(client, seller, make_user, fetch):
    seller_headers = await seller()
    product = await _product(client, seller_headers)
    pid = product["id"]

    shown = await client.get("/api/marketplace/inventory", headers=seller_headers, params={"product_id": pid})
    assert shown.json() == {"product_id": pid, "stock_quantity": 5, "status": "active"}

    restocked = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": pid, "quantity": 12})
    assert restocked.json()["stock_quantity"] == 12
    shifted = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": pid, "adjustment": -4})
    assert shifted.json()["stock_quantity"] == 8
    too_far = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": pid, "adjustment": -9})
    assert too_far.status_code == 400
    assert too_far.json() == {"error": "Stock cannot go below zero"}
    assert await _stock(fetch, pid) == 8

    both = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": pid, "quantity": 1, "adjustment": 1})
    assert both.status_code == 400
    negative = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": pid, "quantity": -1})
    assert negative.status_code == 400
    other = await make_user("other-1")
    assert (await client.put("/api/marketplace/inventory", headers=other, json={"product_id": pid, "quantity": 0})).status_code == 403
    assert (await client.get("/api/marketplace/inventory", headers=other, params={"product_id": pid})).status_code == 403

    digital = await _product(client, seller_headers, type="digital", stock_quantity=None)
    untracked = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": digital["id"], "quantity": 3})
    assert untracked.status_code == 400
    unlimited = await _product(client, seller_headers, stock_quantity=None)
    adjust = await client.put("/api/marketplace/inventory", headers=seller_headers, json={"product_id": unlimited["id"], "adjustment": 2})
    assert adjust.json() == {"error": "Product has unlimited stock"}
