"""
Cart aggregate: one cart per user, totals recomputed on every save.
"""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, to_object_id, utcnow
from errors import InsufficientStock, NotFound, ValidationError
from responses import ok
from schemas import Cart
from security import get_current_user

router = APIRouter(prefix="/api/cart", tags=["cart"])

CART_PRODUCT_FIELDS = {"name": 1, "slug": 1, "images": 1, "price": 1, "stock_quantity": 1, "prescription_required": 1}


class AddToCart(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartItem(BaseModel):
    quantity: int


def compute_totals(items: List[dict]) -> dict:
    subtotal = sum(item["price"] * item["quantity"] for item in items)
    # tax and shipping are added at checkout
    return {"subtotal": subtotal, "total": subtotal}


def get_cart(user_id: str) -> dict:
    """Return the user's cart, creating an empty one on first access."""
    carts = get_db()["cart"]
    cart = carts.find_one({"user_id": user_id})
    if cart:
        return cart
    try:
        create_document("cart", Cart(user_id=user_id))
    except DuplicateKeyError:
        # created concurrently, the unique index keeps it single
        pass
    return carts.find_one({"user_id": user_id})


def save_cart(cart: dict) -> dict:
    cart.update(compute_totals(cart["items"]))
    cart["updated_at"] = utcnow()
    get_db()["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": cart["items"], "subtotal": cart["subtotal"], "total": cart["total"], "updated_at": cart["updated_at"]}},
    )
    return cart


def find_item(cart: dict, product_id: str):
    for item in cart["items"]:
        if item["product_id"] == product_id:
            return item
    return None


def populate_cart(cart: dict) -> dict:
    ids = [to_object_id(item["product_id"]) for item in cart["items"]]
    products = {}
    if ids:
        for p in get_db()["product"].find({"_id": {"$in": ids}}, CART_PRODUCT_FIELDS):
            pid = str(p.pop("_id"))
            products[pid] = dict(p, id=pid)
    items = [dict(item, product=products.get(item["product_id"])) for item in cart["items"]]
    return {
        "id": str(cart["_id"]),
        "user_id": cart["user_id"],
        "items": items,
        "subtotal": cart.get("subtotal", 0),
        "total": cart.get("total", 0),
        "created_at": cart.get("created_at"),
        "updated_at": cart.get("updated_at"),
    }


def add_item(user_id: str, product_id: str, quantity: int) -> dict:
    product = get_db()["product"].find_one({"_id": to_object_id(product_id, "product id"), "is_active": True})
    if not product:
        raise NotFound("Product not found")
    if product.get("stock_quantity", 0) < quantity:
        raise InsufficientStock()

    cart = get_cart(user_id)
    item = find_item(cart, product_id)
    if item:
        item["quantity"] += quantity
        item["price"] = product["price"]
    else:
        cart["items"].append({"product_id": product_id, "quantity": quantity, "price": product["price"]})
    return save_cart(cart)


def update_item(user_id: str, product_id: str, quantity: int) -> dict:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    cart = get_db()["cart"].find_one({"user_id": user_id})
    if not cart:
        raise NotFound("Cart not found")
    item = find_item(cart, product_id)
    if not item:
        raise NotFound("Item not found in cart")
    product = get_db()["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if product and product.get("stock_quantity", 0) < quantity:
        raise InsufficientStock()
    item["quantity"] = quantity
    return save_cart(cart)


def remove_item(user_id: str, product_id: str) -> dict:
    cart = get_cart(user_id)
    cart["items"] = [item for item in cart["items"] if item["product_id"] != product_id]
    return save_cart(cart)


def clear_cart(user_id: str):
    get_db()["cart"].update_one(
        {"user_id": user_id},
        {"$set": {"items": [], "subtotal": 0, "total": 0, "updated_at": utcnow()}},
    )


# ---------- Cart Endpoints ----------
@router.get("")
def read_cart(user: dict = Depends(get_current_user)):
    cart = get_cart(str(user["_id"]))
    return ok("Cart retrieved successfully", populate_cart(cart))


@router.post("/add")
def add_to_cart(payload: AddToCart, user: dict = Depends(get_current_user)):
    cart = add_item(str(user["_id"]), payload.product_id, payload.quantity)
    return ok("Item added to cart successfully", populate_cart(cart))


@router.put("/update/{product_id}")
def update_cart_item(product_id: str, payload: UpdateCartItem, user: dict = Depends(get_current_user)):
    cart = update_item(str(user["_id"]), product_id, payload.quantity)
    return ok("Cart updated successfully", populate_cart(cart))


@router.delete("/remove/{product_id}")
def remove_from_cart(product_id: str, user: dict = Depends(get_current_user)):
    cart = remove_item(str(user["_id"]), product_id)
    return ok("Item removed from cart successfully", populate_cart(cart))


@router.delete("/clear")
def clear(user: dict = Depends(get_current_user)):
    clear_cart(str(user["_id"]))
    return ok("Cart cleared successfully")
