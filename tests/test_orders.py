import re
from datetime import datetime

import pytest
from bson import ObjectId

import orders
from conftest import SHIPPING_ADDRESS
from orders import Compensations, PlaceOrderRequest, adjust_stock, place_order, tracking_number


def add(client, user, product_id, quantity=1):
    res = client.post("/api/cart/add", headers=user["headers"], json={"product_id": product_id, "quantity": quantity})
    assert res.status_code == 200, res.text


def checkout(client, user, **extra):
    body = {"shipping_address": SHIPPING_ADDRESS, "payment_method": "cash_on_delivery"}
    body.update(extra)
    return client.post("/api/orders", headers=user["headers"], json=body)


def stock(db, product_id):
    return db["product"].find_one({"_id": ObjectId(product_id)})["stock_quantity"]


def test_place_order(client, user, make_product, db):
    a = make_product(name="Product A", price=10.0, stock_quantity=10)
    b = make_product(name="Product B", price=25.0, stock_quantity=5)
    add(client, user, a, 2)
    add(client, user, b, 1)

    res = checkout(client, user)
    assert res.status_code == 201
    order = res.json()["data"]
    assert order["subtotal"] == 45.0
    assert order["tax"] == 0
    assert order["shipping"] == 0
    assert order["total"] == 45.0
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert re.fullmatch(r"ORD-\d{6}-\d{4}", order["tracking_number"])
    assert {(i["name"], i["quantity"], i["total"]) for i in order["items"]} == {("Product A", 2, 20.0), ("Product B", 1, 25.0)}

    assert stock(db, a) == 8
    assert stock(db, b) == 4
    cart = client.get("/api/cart", headers=user["headers"]).json()["data"]
    assert cart["items"] == []
    assert cart["total"] == 0


def test_place_order_empty_cart(client, user):
    res = checkout(client, user)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Cart is empty", "error": "EmptyCart"}


def test_place_order_requires_full_shipping_address(client, user, make_product):
    add(client, user, make_product(), 1)
    address = dict(SHIPPING_ADDRESS, city="")
    res = checkout(client, user, shipping_address=address)
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"


def test_place_order_insufficient_stock_changes_nothing(client, user, make_product, db):
    a = make_product(name="Product A", price=10.0, stock_quantity=10)
    b = make_product(name="Product B", price=25.0, stock_quantity=5)
    add(client, user, a, 2)
    add(client, user, b, 3)
    db["product"].update_one({"_id": ObjectId(b)}, {"$set": {"stock_quantity": 1}})

    res = checkout(client, user)
    assert res.status_code == 400
    assert res.json()["message"] == "Insufficient stock for Product B"

    assert db["order"].count_documents({}) == 0
    assert stock(db, a) == 10
    assert stock(db, b) == 1
    cart = client.get("/api/cart", headers=user["headers"]).json()["data"]
    assert len(cart["items"]) == 2


def test_place_order_missing_product(client, user, make_product, db):
    a = make_product()
    add(client, user, a, 1)
    db["product"].update_one({"_id": ObjectId(a)}, {"$set": {"is_active": False}})
    res = checkout(client, user)
    assert res.status_code == 404
    assert db["order"].count_documents({}) == 0


def test_place_order_rolls_back_when_a_later_step_fails(user, make_product, db, monkeypatch):
    a = make_product(name="Product A", stock_quantity=10)
    db["cart"].insert_one({"user_id": user["user"]["id"], "items": [{"product_id": a, "quantity": 3, "price": 10.0}]})

    def broken_clear(user_id):
        raise RuntimeError("cart store down")

    monkeypatch.setattr(orders, "clear_cart", broken_clear)
    payload = PlaceOrderRequest(shipping_address=SHIPPING_ADDRESS, payment_method="paypal")
    with pytest.raises(RuntimeError):
        place_order(user["user"]["id"], payload)

    assert stock(db, a) == 10
    assert db["order"].count_documents({}) == 0


def test_place_order_lost_stock_race_restores_earlier_lines(user, make_product, db, monkeypatch):
    a = make_product(name="Product A", stock_quantity=10)
    b = make_product(name="Product B", stock_quantity=10)
    db["cart"].insert_one({"user_id": user["user"]["id"], "items": [
        {"product_id": a, "quantity": 2, "price": 10.0},
        {"product_id": b, "quantity": 2, "price": 10.0},
    ]})

    real_adjust = orders.adjust_stock

    def racing_adjust(product_id, delta):
        if product_id == b and delta < 0:
            # another checkout took the stock after validation
            db["product"].update_one({"_id": ObjectId(b)}, {"$set": {"stock_quantity": 1}})
        return real_adjust(product_id, delta)

    monkeypatch.setattr(orders, "adjust_stock", racing_adjust)
    payload = PlaceOrderRequest(shipping_address=SHIPPING_ADDRESS, payment_method="paypal")
    with pytest.raises(orders.InsufficientStock):
        place_order(user["user"]["id"], payload)

    assert stock(db, a) == 10
    assert stock(db, b) == 1
    assert db["order"].count_documents({}) == 0


def test_adjust_stock_never_goes_negative(make_product, db):
    a = make_product(stock_quantity=5)
    assert adjust_stock(a, -6) is False
    assert stock(db, a) == 5
    assert adjust_stock(a, -5) is True
    assert stock(db, a) == 0
    assert adjust_stock(a, 3) is True
    assert stock(db, a) == 3


def test_prescription_flag(client, user, make_product):
    add(client, user, make_product(name="Vitamin C"), 1)
    add(client, user, make_product(name="Amoxicillin", prescription_required=True), 1)
    order = checkout(client, user, prescription_image="https://img.pharmacy.com/rx.jpg").json()["data"]
    assert order["prescription_required"] is True
    assert order["prescription_approved"] is False
    assert order["prescription_image"] == "https://img.pharmacy.com/rx.jpg"


def test_list_and_get_orders(client, user, other_user, make_product):
    a = make_product(name="Product A", stock_quantity=10)
    for _ in range(3):
        add(client, user, a, 1)
        checkout(client, user)

    res = client.get("/api/orders", headers=user["headers"], params={"limit": 2})
    body = res.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    assert body["data"][0]["items"][0]["product"]["name"] == "Product A"

    order_id = body["data"][0]["id"]
    res = client.get(f"/api/orders/{order_id}", headers=user["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["user"]["email"] == "jane@pharmacy.com"

    res = client.get(f"/api/orders/{order_id}", headers=other_user["headers"])
    assert res.status_code == 404
    assert client.get("/api/orders", headers=other_user["headers"]).json()["data"] == []


def test_cancel_restores_stock(client, user, make_product, db):
    a = make_product(stock_quantity=10)
    add(client, user, a, 4)
    order_id = checkout(client, user).json()["data"]["id"]
    assert stock(db, a) == 6

    res = client.put(f"/api/orders/{order_id}/cancel", headers=user["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "cancelled"
    assert stock(db, a) == 10

    res = client.put(f"/api/orders/{order_id}/cancel", headers=user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Order cannot be cancelled"
    assert stock(db, a) == 10


def test_cancel_non_pending_order(client, user, make_product, db):
    a = make_product(stock_quantity=10)
    add(client, user, a, 1)
    order_id = checkout(client, user).json()["data"]["id"]
    db["order"].update_one({"_id": ObjectId(order_id)}, {"$set": {"status": "shipped"}})

    res = client.put(f"/api/orders/{order_id}/cancel", headers=user["headers"])
    assert res.status_code == 400
    assert res.json()["error"] == "InvalidState"
    assert db["order"].find_one({"_id": ObjectId(order_id)})["status"] == "shipped"
    assert stock(db, a) == 9


def test_cancel_other_users_order(client, user, other_user, make_product):
    add(client, user, make_product(), 1)
    order_id = checkout(client, user).json()["data"]["id"]
    res = client.put(f"/api/orders/{order_id}/cancel", headers=other_user["headers"])
    assert res.status_code == 404


def test_tracking_number_format():
    number = tracking_number(datetime(2024, 3, 9, 12, 0))
    assert re.fullmatch(r"ORD-240309-\d{4}", number)


def test_compensations_run_in_reverse_and_continue_past_failures():
    calls = []
    undo = Compensations()
    undo.add(lambda: calls.append("first"))

    def failing():
        calls.append("second")
        raise RuntimeError("boom")

    undo.add(failing)
    undo.add(lambda: calls.append("third"))
    undo.rollback()
    assert calls == ["third", "second", "first"]
