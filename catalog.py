"""
Catalog: categories, products and their public routes.
"""
import re
from typing import Dict, Iterable, List, Optional

from fastapi import APIRouter
from pymongo import ASCENDING, DESCENDING

from database import get_db, get_documents, paginate, to_object_id, to_str_id
from errors import NotFound, ValidationError
from responses import ok

router = APIRouter(prefix="/api", tags=["catalog"])

SEARCH_FIELDS = ("name", "description", "brand", "active_ingredient")
SORTABLE_FIELDS = {"created_at", "price", "name", "average_rating", "stock_quantity", "total_reviews"}


# ---------- Slugs ----------
def derive_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


def unique_slug(collection_name: str, name: str) -> str:
    """Slug for name, suffixed -1, -2, ... until no document in the collection uses it."""
    base = derive_slug(name)
    slug = base
    counter = 1
    collection = get_db()[collection_name]
    while collection.find_one({"slug": slug}):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


# ---------- Products ----------
def sale_price(product: dict) -> float:
    price = product.get("price", 0)
    pct = product.get("sale_percentage")
    if product.get("is_on_sale") and pct and pct > 0:
        return price - price * pct / 100
    return price


def discount_percentage(product: dict) -> int:
    compare = product.get("compare_price")
    price = product.get("price", 0)
    if compare and compare > price:
        return round((compare - price) / compare * 100)
    return 0


def category_summaries(ids: Iterable[Optional[str]]) -> Dict[str, dict]:
    oids = [to_object_id(i) for i in set(ids) if i]
    if not oids:
        return {}
    cats = get_db()["category"].find({"_id": {"$in": oids}}, {"name": 1, "slug": 1})
    return {str(c["_id"]): {"id": str(c["_id"]), "name": c.get("name"), "slug": c.get("slug")} for c in cats}


def serialize_product(doc: dict, categories: Optional[Dict[str, dict]] = None) -> dict:
    d = to_str_id(doc)
    d["sale_price"] = sale_price(doc)
    d["discount_percentage"] = discount_percentage(doc)
    if categories is not None:
        d["category"] = categories.get(doc.get("category_id"))
        d["subcategory"] = categories.get(doc.get("subcategory_id"))
    return d


def serialize_products(docs: List[dict]) -> List[dict]:
    ids = [d.get("category_id") for d in docs] + [d.get("subcategory_id") for d in docs]
    categories = category_summaries(ids)
    return [serialize_product(d, categories) for d in docs]


def search_clause(term: str) -> dict:
    pattern = re.escape(term)
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS]}


def get_product(product_id: str) -> dict:
    product = get_db()["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not product:
        raise NotFound("Product not found")
    return product


def resolve_category_id(value: str) -> Optional[str]:
    category = get_db()["category"].find_one({"slug": value})
    if category:
        return str(category["_id"])
    return value


# ---------- Categories ----------
def get_category(category_id: str) -> dict:
    category = get_db()["category"].find_one({"_id": to_object_id(category_id, "category id")})
    if not category:
        raise NotFound("Category not found")
    return category


def ensure_no_cycle(category_id: Optional[str], parent_id: Optional[str]):
    """Reject a parent assignment that would make a category its own ancestor."""
    if not parent_id:
        return
    if category_id and parent_id == category_id:
        raise ValidationError("A category cannot be its own parent")
    categories = get_db()["category"]
    seen = set()
    current = parent_id
    while current:
        if current in seen:
            raise ValidationError("Category tree contains a cycle")
        seen.add(current)
        node = categories.find_one({"_id": to_object_id(current, "parent id")}, {"parent_id": 1})
        if not node:
            raise NotFound("Parent category not found")
        if category_id and str(node["_id"]) == category_id:
            raise ValidationError("Category cannot be moved under its own descendant")
        current = node.get("parent_id")


def serialize_categories(docs: List[dict]) -> List[dict]:
    ids = [str(d["_id"]) for d in docs]
    parents = category_summaries(d.get("parent_id") for d in docs)
    children: Dict[str, List[dict]] = {i: [] for i in ids}
    for child in get_db()["category"].find({"parent_id": {"$in": ids}}, {"name": 1, "slug": 1, "parent_id": 1}):
        children[child["parent_id"]].append({"id": str(child["_id"]), "name": child.get("name"), "slug": child.get("slug")})
    out = []
    for d in docs:
        c = to_str_id(d)
        c["parent"] = parents.get(d.get("parent_id"))
        c["children"] = children.get(str(d["_id"]), [])
        out.append(c)
    return out


def active_categories() -> List[dict]:
    docs = list(get_db()["category"].find({"is_active": True}).sort([("sort_order", ASCENDING), ("name", ASCENDING)]))
    return serialize_categories(docs)


# ---------- Product Endpoints ----------
@router.get("/products")
def list_products(
    page: int = 1,
    limit: int = 12,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    in_stock: Optional[bool] = None,
    prescription_required: Optional[bool] = None,
    is_on_sale: Optional[bool] = None,
    is_featured: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
):
    query = {"is_active": True}
    if category:
        query["category_id"] = resolve_category_id(category)
    if brand:
        query["brand"] = {"$regex": re.escape(brand), "$options": "i"}
    if price_min is not None or price_max is not None:
        query["price"] = {}
        if price_min is not None:
            query["price"]["$gte"] = price_min
        if price_max is not None:
            query["price"]["$lte"] = price_max
    if in_stock:
        query["stock_quantity"] = {"$gt": 0}
    if prescription_required:
        query["prescription_required"] = True
    if is_on_sale:
        query["is_on_sale"] = True
    if is_featured:
        query["is_featured"] = True
    if search:
        query.update(search_clause(search))

    if sort_by not in SORTABLE_FIELDS:
        sort_by = "created_at"
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    docs, pagination = paginate("product", query, page, limit, sort=[(sort_by, direction)])
    return ok("Products retrieved successfully", serialize_products(docs), pagination)


@router.get("/products/featured/featured")
def featured_products():
    docs = get_documents("product", {"is_featured": True, "is_active": True}, limit=8)
    return ok("Featured products retrieved successfully", serialize_products(docs))


@router.get("/products/sale/on-sale")
def sale_products():
    docs = get_documents("product", {"is_on_sale": True, "is_active": True}, limit=8)
    return ok("Sale products retrieved successfully", serialize_products(docs))


@router.get("/products/search/search")
def search_products(q: Optional[str] = None, page: int = 1, limit: int = 12):
    if not q:
        raise ValidationError("Search query is required")
    query = {"is_active": True}
    query.update(search_clause(q))
    docs, pagination = paginate("product", query, page, limit)
    return ok("Search results retrieved successfully", serialize_products(docs), pagination)


@router.get("/products/{slug}")
def product_detail(slug: str):
    product = get_db()["product"].find_one({"slug": slug, "is_active": True})
    if not product:
        raise NotFound("Product not found")
    return ok("Product retrieved successfully", serialize_products([product])[0])


# ---------- Category Endpoints ----------
@router.get("/categories")
def list_categories():
    return ok("Categories retrieved successfully", active_categories())


@router.get("/categories/{slug}")
def category_detail(slug: str):
    category = get_db()["category"].find_one({"slug": slug, "is_active": True})
    if not category:
        raise NotFound("Category not found")
    return ok("Category retrieved successfully", serialize_categories([category])[0])
