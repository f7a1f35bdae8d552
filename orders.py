"""
Order workflow: cart to order conversion, stock reservation, cancellation and
the admin status/prescription operations.

Placement and cancellation touch several documents. Each write registers an
undo action on a Compensations log; if a later step fails the log is replayed
in reverse so the caller sees all-or-nothing behaviour.
"""
import logging
import random
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from carts import clear_cart
from database import create_document, get_db, paginate, to_object_id, to_str_id, utcnow
from errors import EmptyCart, InsufficientStock, InvalidState, NotFound
from responses import ok
from schemas import BillingAddress, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, ShippingAddress
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


class PlaceOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    billing_address: Optional[BillingAddress] = None
    payment_method: PaymentMethod
    prescription_image: Optional[str] = None


class Compensations:
    """Undo log for a sequence of writes that has no multi-document transaction."""

    def __init__(self):
        self._undo: List[Callable[[], None]] = []

    def add(self, action: Callable[[], None]):
        self._undo.append(action)

    def rollback(self):
        while self._undo:
            action = self._undo.pop()
            try:
                action()
            except Exception:
                logger.exception("Compensation step failed")


def tracking_number(now=None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%y%m%d}-{random.randint(0, 9999):04d}"


def order_totals(items: List[OrderItem], tax: float = 0, shipping: float = 0) -> dict:
    subtotal = sum(item.total for item in items)
    return {"subtotal": subtotal, "tax": tax, "shipping": shipping, "total": subtotal + tax + shipping}


def adjust_stock(product_id: str, delta: int) -> bool:
    """Atomically change stock; a decrement only applies while enough stock remains."""
    query = {"_id": to_object_id(product_id)}
    if delta < 0:
        query["stock_quantity"] = {"$gte": -delta}
    res = get_db()["product"].update_one(query, {"$inc": {"stock_quantity": delta}})
    return res.modified_count == 1


def build_order_items(cart: dict):
    ids = [to_object_id(item["product_id"]) for item in cart["items"]]
    products = {str(p["_id"]): p for p in get_db()["product"].find({"_id": {"$in": ids}})}

    items = []
    prescription_required = False
    for line in cart["items"]:
        product = products.get(line["product_id"])
        if not product or not product.get("is_active", True):
            raise NotFound("Product not found")
        if product.get("stock_quantity", 0) < line["quantity"]:
            raise InsufficientStock(f"Insufficient stock for {product['name']}")
        if product.get("prescription_required"):
            prescription_required = True
        items.append(OrderItem(
            product_id=line["product_id"],
            name=product["name"],
            quantity=line["quantity"],
            price=product["price"],
            total=product["price"] * line["quantity"],
        ))
    return items, prescription_required


def place_order(user_id: str, payload: PlaceOrderRequest) -> dict:
    cart = get_db()["cart"].find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise EmptyCart()

    items, prescription_required = build_order_items(cart)
    order = Order(
        user_id=user_id,
        items=items,
        payment_method=payload.payment_method,
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address,
        tracking_number=tracking_number(),
        prescription_required=prescription_required,
        prescription_image=payload.prescription_image,
        **order_totals(items),
    )

    undo = Compensations()
    try:
        for item in items:
            if not adjust_stock(item.product_id, -item.quantity):
                raise InsufficientStock(f"Insufficient stock for {item.name}")
            undo.add(lambda pid=item.product_id, qty=item.quantity: adjust_stock(pid, qty))

        order_id = create_document("order", order)
        undo.add(lambda: get_db()["order"].delete_one({"_id": to_object_id(order_id)}))

        clear_cart(user_id)
    except Exception:
        logger.warning("Order placement for user %s failed, rolling back", user_id)
        undo.rollback()
        raise

    created = get_db()["order"].find_one({"_id": to_object_id(order_id)})
    logger.info("Order %s (%s) placed by user %s", order_id, created["tracking_number"], user_id)
    return created


def get_user_order(user_id: str, order_id: str) -> dict:
    order = get_db()["order"].find_one({"_id": to_object_id(order_id, "order id"), "user_id": user_id})
    if not order:
        raise NotFound("Order not found")
    return order


def cancel_order(user_id: str, order_id: str) -> dict:
    order = get_user_order(user_id, order_id)
    if order["status"] != "pending":
        raise InvalidState("Order cannot be cancelled")

    orders = get_db()["order"]
    res = orders.update_one(
        {"_id": order["_id"], "status": "pending"},
        {"$set": {"status": "cancelled", "updated_at": utcnow()}},
    )
    if res.modified_count == 0:
        raise InvalidState("Order cannot be cancelled")

    undo = Compensations()
    undo.add(lambda: orders.update_one({"_id": order["_id"]}, {"$set": {"status": "pending"}}))
    try:
        for item in order["items"]:
            adjust_stock(item["product_id"], item["quantity"])
            undo.add(lambda pid=item["product_id"], qty=item["quantity"]: adjust_stock(pid, -qty))
    except Exception:
        logger.warning("Cancelling order %s failed, rolling back", order_id)
        undo.rollback()
        raise

    logger.info("Order %s cancelled by user %s", order_id, user_id)
    return orders.find_one({"_id": order["_id"]})


def get_order(order_id: str) -> dict:
    order = get_db()["order"].find_one({"_id": to_object_id(order_id, "order id")})
    if not order:
        raise NotFound("Order not found")
    return order


def update_status(order_id: str, status: OrderStatus, payment_status: Optional[PaymentStatus] = None) -> dict:
    order = get_order(order_id)
    update = {"status": status, "updated_at": utcnow()}
    if payment_status:
        update["payment_status"] = payment_status
    get_db()["order"].update_one({"_id": order["_id"]}, {"$set": update})
    logger.info("Order %s status %s -> %s", order_id, order["status"], status)
    return get_order(order_id)


def approve_prescription(order_id: str, approved: bool, notes: Optional[str] = None) -> dict:
    order = get_order(order_id)
    update = {"prescription_approved": approved, "updated_at": utcnow()}
    if notes:
        update["notes"] = notes
    get_db()["order"].update_one({"_id": order["_id"]}, {"$set": update})
    logger.info("Prescription for order %s %s", order_id, "approved" if approved else "rejected")
    return get_order(order_id)


# ---------- Serialization ----------
def populate_orders(orders: List[dict], product_fields=("name", "images"), with_user: bool = False) -> List[dict]:
    db = get_db()
    product_ids = {item["product_id"] for o in orders for item in o.get("items", [])}
    projection = {f: 1 for f in product_fields}
    products = {}
    if product_ids:
        for p in db["product"].find({"_id": {"$in": [to_object_id(i) for i in product_ids]}}, projection):
            products[str(p["_id"])] = to_str_id(p)

    users = {}
    if with_user:
        user_ids = {o["user_id"] for o in orders}
        for u in db["user"].find({"_id": {"$in": [to_object_id(i) for i in user_ids]}}, {"first_name": 1, "last_name": 1, "email": 1}):
            users[str(u["_id"])] = to_str_id(u)

    out = []
    for o in orders:
        d = to_str_id(o)
        d["items"] = [dict(item, product=products.get(item["product_id"])) for item in o.get("items", [])]
        if with_user:
            d["user"] = users.get(o["user_id"])
        out.append(d)
    return out


# ---------- Order Endpoints ----------
@router.post("", status_code=201)
def create_order(payload: PlaceOrderRequest, user: dict = Depends(get_current_user)):
    order = place_order(str(user["_id"]), payload)
    return ok("Order created successfully", to_str_id(order))


@router.get("")
def list_orders(page: int = 1, limit: int = 10, user: dict = Depends(get_current_user)):
    docs, pagination = paginate("order", {"user_id": str(user["_id"])}, page, limit)
    return ok("Orders retrieved successfully", populate_orders(docs), pagination)


@router.get("/{order_id}")
def order_detail(order_id: str, user: dict = Depends(get_current_user)):
    order = get_user_order(str(user["_id"]), order_id)
    data = populate_orders([order], product_fields=("name", "images", "description"), with_user=True)[0]
    return ok("Order retrieved successfully", data)


@router.put("/{order_id}/cancel")
def cancel(order_id: str, user: dict = Depends(get_current_user)):
    order = cancel_order(str(user["_id"]), order_id)
    return ok("Order cancelled successfully", to_str_id(order))
