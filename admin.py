"""
Admin console routes. Every route requires an authenticated admin.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from auth import public_user
from catalog import (
    active_categories,
    derive_slug,
    ensure_no_cycle,
    get_category,
    get_product,
    serialize_categories,
    serialize_products,
)
from database import create_document, get_db, paginate, to_object_id, to_str_id, utcnow
from demo_data import MAX_QUANTITY, DemoDataGenerator
from errors import Conflict, InvalidState, NotFound, ValidationError
from orders import approve_prescription, populate_orders, update_status
from responses import ok
from reviews import delete_review, populate_reviews
from schemas import Category, Dimensions, DosageForm, OrderStatus, PaymentStatus, PregnancyCategory, Product, Role
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# ---------- Request models ----------
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    short_description: Optional[str] = None
    brand: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    images: Optional[List[str]] = None
    price: Optional[float] = Field(None, ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = None
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    active_ingredient: Optional[str] = None
    strength: Optional[str] = None
    dosage_form: Optional[DosageForm] = None
    prescription_required: Optional[bool] = None
    controlled_substance: Optional[bool] = None
    expiry_date: Optional[datetime] = None
    storage_conditions: Optional[str] = None
    side_effects: Optional[List[str]] = None
    contraindications: Optional[List[str]] = None
    drug_interactions: Optional[List[str]] = None
    pregnancy_category: Optional[PregnancyCategory] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_on_sale: Optional[bool] = None
    sale_percentage: Optional[float] = Field(None, ge=0, le=100)
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    tags: Optional[List[str]] = None
    requires_cold_storage: Optional[bool] = None
    fragile: Optional[bool] = None


class ProductCreate(ProductUpdate):
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None
    description: str
    brand: str
    category_id: str
    price: float = Field(..., ge=0)


class StatusUpdate(BaseModel):
    status: OrderStatus
    payment_status: Optional[PaymentStatus] = None


class PrescriptionDecision(BaseModel):
    prescription_approved: bool
    notes: Optional[str] = None


class RoleUpdate(BaseModel):
    role: Role


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None


class CategoryCreate(CategoryUpdate):
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None


class DemoGenerate(BaseModel):
    type: Literal["users", "categories", "products", "orders", "reviews"]
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)


class DemoQuantities(BaseModel):
    users: int = Field(10, ge=0, le=MAX_QUANTITY)
    categories: int = Field(5, ge=0, le=MAX_QUANTITY)
    products: int = Field(20, ge=0, le=MAX_QUANTITY)
    orders: int = Field(15, ge=0, le=MAX_QUANTITY)
    reviews: int = Field(30, ge=0, le=MAX_QUANTITY)


class DemoGenerateAll(BaseModel):
    quantities: DemoQuantities


# ---------- Helpers ----------
def check_product_refs(data: dict):
    for field in ("category_id", "subcategory_id"):
        if data.get(field):
            get_category(data[field])


def check_sku(sku: Optional[str], product_id=None):
    if not sku:
        return
    query = {"sku": sku}
    if product_id is not None:
        query["_id"] = {"$ne": product_id}
    if get_db()["product"].find_one(query):
        raise Conflict("A product with this SKU already exists")


def regex(term: str) -> dict:
    return {"$regex": re.escape(term), "$options": "i"}


# ---------- Dashboard ----------
@router.get("/dashboard")
def dashboard():
    db = get_db()
    revenue = list(db["order"].aggregate([
        {"$match": {"payment_status": "paid"}},
        {"$group": {"_id": None, "total": {"$sum": "$total"}}},
    ]))
    recent = list(db["order"].find().sort("created_at", -1).limit(5))
    low_stock = [
        p for p in db["product"].find({}, {"name": 1, "slug": 1, "stock_quantity": 1, "low_stock_threshold": 1})
        if p.get("stock_quantity", 0) <= p.get("low_stock_threshold", 10)
    ][:10]
    pending = list(db["order"].find({"prescription_required": True, "prescription_approved": False}).sort("created_at", -1))

    data = {
        "stats": {
            "total_products": db["product"].count_documents({}),
            "total_orders": db["order"].count_documents({}),
            "total_users": db["user"].count_documents({"role": "user"}),
            "total_revenue": revenue[0]["total"] if revenue else 0,
        },
        "recent_orders": populate_orders(recent, with_user=True),
        "low_stock_products": [to_str_id(p) for p in low_stock],
        "pending_prescriptions": populate_orders(pending, with_user=True),
    }
    return ok("Dashboard data retrieved successfully", data)


# ---------- Product Management ----------
@router.get("/products")
def list_products(page: int = 1, limit: int = 10, search: Optional[str] = None, category: Optional[str] = None, status: Optional[str] = None):
    query = {}
    if search:
        query["$or"] = [{f: regex(search)} for f in ("name", "description", "brand", "active_ingredient")]
    if category:
        query["category_id"] = category
    if status:
        query["is_active"] = status == "active"
    docs, pagination = paginate("product", query, page, limit)
    return ok("Products retrieved successfully", serialize_products(docs), pagination)


@router.post("/products", status_code=201)
def create_product(payload: ProductCreate):
    data = payload.model_dump(exclude_none=True)
    check_product_refs(data)
    check_sku(data.get("sku"))
    data["slug"] = derive_slug(data.get("slug") or data["name"])
    if not data["slug"]:
        raise ValidationError("Product name must contain letters or digits")
    if get_db()["product"].find_one({"slug": data["slug"]}):
        raise Conflict("A product with this slug already exists")
    try:
        product_id = create_document("product", Product(**data))
    except DuplicateKeyError:
        raise Conflict("A product with this slug already exists")
    product = get_product(product_id)
    return ok("Product created successfully", serialize_products([product])[0])


@router.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate):
    product = get_product(product_id)
    update = payload.model_dump(exclude_unset=True)
    update = {k: v for k, v in update.items() if v is not None or k in ("compare_price", "sale_percentage", "subcategory_id")}
    check_product_refs(update)
    check_sku(update.get("sku"), product["_id"])
    # the slug is fixed at creation; renames keep it
    update["updated_at"] = utcnow()
    get_db()["product"].update_one({"_id": product["_id"]}, {"$set": update})
    return ok("Product updated successfully", serialize_products([get_product(product_id)])[0])


@router.delete("/products/{product_id}")
def delete_product(product_id: str):
    res = get_db()["product"].delete_one({"_id": to_object_id(product_id, "product id")})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    return ok("Product deleted successfully")


# ---------- Order Management ----------
@router.get("/orders")
def list_orders(page: int = 1, limit: int = 10, status: Optional[str] = None, payment_status: Optional[str] = None):
    query = {}
    if status:
        query["status"] = status
    if payment_status:
        query["payment_status"] = payment_status
    docs, pagination = paginate("order", query, page, limit)
    return ok("Orders retrieved successfully", populate_orders(docs, with_user=True), pagination)


@router.put("/orders/{order_id}/status")
def set_order_status(order_id: str, payload: StatusUpdate):
    order = update_status(order_id, payload.status, payload.payment_status)
    return ok("Order status updated successfully", populate_orders([order], with_user=True)[0])


@router.put("/orders/{order_id}/prescription")
def review_prescription(order_id: str, payload: PrescriptionDecision):
    order = approve_prescription(order_id, payload.prescription_approved, payload.notes)
    verdict = "approved" if payload.prescription_approved else "rejected"
    return ok(f"Prescription {verdict} successfully", populate_orders([order], with_user=True)[0])


# ---------- Sales Analytics ----------
@router.get("/analytics/sales")
def sales_analytics(period: int = 30):
    db = get_db()
    start = utcnow() - timedelta(days=max(1, period))
    match = {"created_at": {"$gte": start}, "payment_status": "paid"}

    buckets: Dict[str, dict] = {}
    for order in db["order"].find(match, {"created_at": 1, "total": 1}):
        day = order["created_at"].strftime("%Y-%m-%d")
        bucket = buckets.setdefault(day, {"date": day, "total_sales": 0, "order_count": 0})
        bucket["total_sales"] += order.get("total", 0)
        bucket["order_count"] += 1
    sales_data = [buckets[d] for d in sorted(buckets)]

    top = list(db["order"].aggregate([
        {"$match": match},
        {"$unwind": "$items"},
        {"$group": {"_id": "$items.product_id", "total_sold": {"$sum": "$items.quantity"}, "total_revenue": {"$sum": "$items.total"}}},
        {"$sort": {"total_sold": -1}},
        {"$limit": 10},
    ]))
    ids = [to_object_id(t["_id"]) for t in top]
    products = {str(p["_id"]): to_str_id(p) for p in db["product"].find({"_id": {"$in": ids}}, {"name": 1, "slug": 1, "images": 1, "price": 1})}
    top_products = [
        {"product_id": t["_id"], "total_sold": t["total_sold"], "total_revenue": t["total_revenue"], "product": products.get(t["_id"])}
        for t in top
        if t["_id"] in products
    ]
    return ok("Sales analytics retrieved successfully", {"sales_data": sales_data, "top_products": top_products})


# ---------- User Management ----------
@router.get("/users")
def list_users(page: int = 1, limit: int = 10, search: Optional[str] = None):
    query = {"role": "user"}
    if search:
        query["$or"] = [{f: regex(search)} for f in ("first_name", "last_name", "email")]
    docs, pagination = paginate("user", query, page, limit, projection={"password_hash": 0})
    return ok("Users retrieved successfully", [public_user(u) for u in docs], pagination)


@router.put("/users/{user_id}/role")
def set_user_role(user_id: str, payload: RoleUpdate):
    users = get_db()["user"]
    oid = to_object_id(user_id, "user id")
    res = users.update_one({"_id": oid}, {"$set": {"role": payload.role, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise NotFound("User not found")
    logger.info("User %s role set to %s", user_id, payload.role)
    return ok("User role updated successfully", public_user(users.find_one({"_id": oid})))


# ---------- Category Management ----------
@router.get("/categories")
def list_categories():
    return ok("Categories retrieved successfully", active_categories())


@router.post("/categories", status_code=201)
def create_category(payload: CategoryCreate):
    data = payload.model_dump(exclude_none=True)
    categories = get_db()["category"]
    data["slug"] = derive_slug(data.get("slug") or data["name"])
    if not data["slug"]:
        raise ValidationError("Category name must contain letters or digits")
    if categories.find_one({"$or": [{"name": data["name"]}, {"slug": data["slug"]}]}):
        raise Conflict("A category with this name or slug already exists")
    ensure_no_cycle(None, data.get("parent_id"))
    try:
        category_id = create_document("category", Category(**data))
    except DuplicateKeyError:
        raise Conflict("A category with this name or slug already exists")
    return ok("Category created successfully", serialize_categories([get_category(category_id)])[0])


@router.put("/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate):
    category = get_category(category_id)
    update = payload.model_dump(exclude_unset=True)
    categories = get_db()["category"]
    if "parent_id" in update:
        ensure_no_cycle(str(category["_id"]), update["parent_id"])
    if update.get("name") and categories.find_one({"name": update["name"], "_id": {"$ne": category["_id"]}}):
        raise Conflict("A category with this name already exists")
    update = {k: v for k, v in update.items() if v is not None or k == "parent_id"}
    update["updated_at"] = utcnow()
    try:
        categories.update_one({"_id": category["_id"]}, {"$set": update})
    except DuplicateKeyError:
        raise Conflict("A category with this name already exists")
    return ok("Category updated successfully", serialize_categories([get_category(category_id)])[0])


@router.delete("/categories/{category_id}")
def delete_category(category_id: str):
    category = get_category(category_id)
    cid = str(category["_id"])
    db = get_db()
    if db["category"].count_documents({"parent_id": cid}):
        raise InvalidState("Category has subcategories")
    if db["product"].count_documents({"$or": [{"category_id": cid}, {"subcategory_id": cid}]}):
        raise InvalidState("Category has products")
    db["category"].delete_one({"_id": category["_id"]})
    return ok("Category deleted successfully")


# ---------- Review Management ----------
@router.get("/reviews")
def list_reviews(page: int = 1, limit: int = 10, is_verified: Optional[bool] = None):
    query = {}
    if is_verified is not None:
        query["is_verified"] = is_verified
    docs, pagination = paginate("review", query, page, limit)
    return ok("Reviews retrieved successfully", populate_reviews(docs, with_product=True), pagination)


@router.put("/reviews/{review_id}/verify")
def verify_review(review_id: str):
    reviews = get_db()["review"]
    oid = to_object_id(review_id, "review id")
    res = reviews.update_one({"_id": oid}, {"$set": {"is_verified": True, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise NotFound("Review not found")
    return ok("Review verified successfully", populate_reviews([reviews.find_one({"_id": oid})], with_product=True)[0])


@router.delete("/reviews/{review_id}")
def remove_review(review_id: str):
    delete_review(review_id)
    return ok("Review deleted successfully")


# ---------- Demo Data ----------
@router.post("/demo/generate")
def demo_generate(payload: DemoGenerate):
    created = DemoDataGenerator().generate(payload.type, payload.quantity)
    logger.info("Demo data: generated %d %s", created, payload.type)
    return ok(f"Generated {created} {payload.type} successfully", {"created": created})


@router.post("/demo/generate-all")
def demo_generate_all(payload: DemoGenerateAll):
    quantities = payload.quantities.model_dump()
    created = DemoDataGenerator().generate_all(quantities)
    logger.info("Demo data: generated %s", created)
    return ok("All demo data generated successfully", {"quantities": quantities, "created": created})


@router.delete("/demo/clear")
def demo_clear():
    DemoDataGenerator().clear_all()
    return ok("All demo data cleared successfully")


@router.get("/demo/stats")
def demo_stats():
    return ok("Demo data statistics retrieved successfully", DemoDataGenerator().stats())
