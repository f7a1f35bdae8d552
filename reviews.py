"""
Review aggregate. Every create/update/delete re-aggregates the product's
reviews and stores the average (one decimal, half up) and count on the product.
"""
import math
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from catalog import get_product
from database import create_document, get_db, paginate, to_object_id, to_str_id, utcnow
from errors import AlreadyReviewed, NotFound
from responses import ok
from schemas import Review
from security import get_current_user

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


class CreateReview(BaseModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = Field(None, max_length=1000)


class UpdateReview(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = Field(None, max_length=1000)


def round_rating(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def recompute_product_rating(product_id: str):
    stats = list(get_db()["review"].aggregate([
        {"$match": {"product_id": product_id}},
        {"$group": {"_id": "$product_id", "average_rating": {"$avg": "$rating"}, "total_reviews": {"$sum": 1}}},
    ]))
    if stats:
        summary = {
            "average_rating": round_rating(stats[0]["average_rating"]),
            "total_reviews": stats[0]["total_reviews"],
        }
    else:
        summary = {"average_rating": 0, "total_reviews": 0}
    get_db()["product"].update_one({"_id": to_object_id(product_id)}, {"$set": summary})
    return summary


def create_review(user_id: str, payload: CreateReview) -> dict:
    product = get_product(payload.product_id)
    product_id = str(product["_id"])
    reviews = get_db()["review"]
    if reviews.find_one({"user_id": user_id, "product_id": product_id}):
        raise AlreadyReviewed()
    review = Review(
        user_id=user_id,
        product_id=product_id,
        rating=payload.rating,
        title=payload.title,
        comment=payload.comment,
    )
    try:
        review_id = create_document("review", review)
    except DuplicateKeyError:
        raise AlreadyReviewed()
    recompute_product_rating(product_id)
    return reviews.find_one({"_id": to_object_id(review_id)})


def update_review(user_id: str, review_id: str, payload: UpdateReview) -> dict:
    reviews = get_db()["review"]
    review = reviews.find_one({"_id": to_object_id(review_id, "review id"), "user_id": user_id})
    if not review:
        raise NotFound("Review not found")
    update = payload.model_dump(exclude_unset=True)
    if update.get("rating") is None:
        update.pop("rating", None)
    update["updated_at"] = utcnow()
    reviews.update_one({"_id": review["_id"]}, {"$set": update})
    recompute_product_rating(review["product_id"])
    return reviews.find_one({"_id": review["_id"]})


def delete_review(review_id: str, user_id: Optional[str] = None):
    query = {"_id": to_object_id(review_id, "review id")}
    if user_id is not None:
        query["user_id"] = user_id
    review = get_db()["review"].find_one_and_delete(query)
    if not review:
        raise NotFound("Review not found")
    recompute_product_rating(review["product_id"])
    return review


def populate_reviews(reviews: List[dict], with_product: bool = False) -> List[dict]:
    db = get_db()
    user_ids = {to_object_id(r["user_id"]) for r in reviews}
    users = {str(u["_id"]): to_str_id(u) for u in db["user"].find({"_id": {"$in": list(user_ids)}}, {"first_name": 1, "last_name": 1})}
    products = {}
    if with_product:
        product_ids = {to_object_id(r["product_id"]) for r in reviews}
        products = {str(p["_id"]): to_str_id(p) for p in db["product"].find({"_id": {"$in": list(product_ids)}}, {"name": 1, "images": 1})}
    out = []
    for r in reviews:
        d = to_str_id(r)
        d["user"] = users.get(r["user_id"])
        if with_product:
            d["product"] = products.get(r["product_id"])
        out.append(d)
    return out


# ---------- Review Endpoints ----------
@router.get("/product/{product_id}")
def product_reviews(product_id: str, page: int = 1, limit: int = 10):
    docs, pagination = paginate("review", {"product_id": product_id, "is_verified": True}, page, limit)
    return ok("Reviews retrieved successfully", populate_reviews(docs), pagination)


@router.get("/user/reviews")
def my_reviews(page: int = 1, limit: int = 10, user: dict = Depends(get_current_user)):
    docs, pagination = paginate("review", {"user_id": str(user["_id"])}, page, limit)
    return ok("User reviews retrieved successfully", populate_reviews(docs, with_product=True), pagination)


@router.post("", status_code=201)
def create(payload: CreateReview, user: dict = Depends(get_current_user)):
    review = create_review(str(user["_id"]), payload)
    return ok("Review created successfully", populate_reviews([review], with_product=True)[0])


@router.put("/{review_id}")
def update(review_id: str, payload: UpdateReview, user: dict = Depends(get_current_user)):
    review = update_review(str(user["_id"]), review_id, payload)
    return ok("Review updated successfully", populate_reviews([review], with_product=True)[0])


@router.delete("/{review_id}")
def delete(review_id: str, user: dict = Depends(get_current_user)):
    delete_review(review_id, user_id=str(user["_id"]))
    return ok("Review deleted successfully")
