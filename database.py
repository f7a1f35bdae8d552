"""
Database access layer

Thin helpers around a pymongo database handle. Each collection is named after
the lowercased schema class (User -> "user", Product -> "product", ...).
"""
import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from errors import ServiceUnavailable, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "pharmacy")

client = None
db = None

if DATABASE_URL:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]

COLLECTIONS = ["user", "session", "category", "product", "cart", "order", "review"]


def utcnow() -> datetime:
    # stored naive, same as what pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    if db is None:
        raise ServiceUnavailable()
    return db


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    database = get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    database = get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def paginate(
    collection_name: str,
    query: dict,
    page: int = 1,
    limit: int = 10,
    sort: Optional[List[Tuple[str, int]]] = None,
    projection: Optional[dict] = None,
) -> Tuple[List[dict], Dict[str, int]]:
    """Return one page of documents plus the pagination block for the envelope."""
    database = get_db()
    page = max(1, page)
    limit = min(100, max(1, limit))
    skip = (page - 1) * limit

    cursor = database[collection_name].find(query, projection)
    cursor = cursor.sort(sort or [("created_at", DESCENDING)]).skip(skip).limit(limit)
    docs = list(cursor)
    total = database[collection_name].count_documents(query)
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
    return docs, pagination


def to_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise ValidationError(f"Invalid {label}")
    return ObjectId(str(value))


def to_str_id(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def ensure_indexes():
    """Create the indexes the domain relies on."""
    if db is None:
        return
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["session"].create_index([("token", ASCENDING)], unique=True)
    # expired sessions are purged by the server
    db["session"].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    db["category"].create_index([("slug", ASCENDING)], unique=True)
    db["category"].create_index([("name", ASCENDING)], unique=True)
    db["product"].create_index([("slug", ASCENDING)], unique=True)
    db["cart"].create_index([("user_id", ASCENDING)], unique=True)
    db["review"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    logger.info("Indexes ensured on database %s", db.name)
