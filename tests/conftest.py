import itertools
import os
from unittest import mock

import mongomock
import pytest

os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "pharmacy_test"
os.environ["BCRYPT_ROUNDS"] = "4"

# must be patched before database.py builds its client
mock.patch("pymongo.MongoClient", mongomock.MongoClient).start()

from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
from catalog import unique_slug  # noqa: E402
from database import create_document  # noqa: E402
from main import app  # noqa: E402
from schemas import Category, Product  # noqa: E402

PASSWORD = "secret123"

SHIPPING_ADDRESS = {
    "first_name": "Jane",
    "last_name": "Doe",
    "street": "12 Elm St",
    "city": "Austin",
    "state": "TX",
    "zip_code": "73301",
    "country": "United States",
    "phone": "(512) 555-0100",
}


@pytest.fixture(autouse=True)
def reset_db():
    for name in database.COLLECTIONS:
        database.db.drop_collection(name)
    database.ensure_indexes()
    yield


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client):
    def _register(email="jane@pharmacy.com", password=PASSWORD, first_name="Jane", last_name="Doe"):
        res = client.post("/api/auth/register", json={
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "password": password,
        })
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _register


@pytest.fixture
def user(register):
    """Registered customer: {"user": ..., "token": ..., "headers": ...}."""
    data = register()
    data["headers"] = bearer(data["token"])
    return data


@pytest.fixture
def other_user(register):
    data = register(email="sam@pharmacy.com", first_name="Sam", last_name="Lee")
    data["headers"] = bearer(data["token"])
    return data


@pytest.fixture
def admin(register, db):
    data = register(email="admin@pharmacy.com", first_name="Ada", last_name="Admin")
    db["user"].update_one({"email": "admin@pharmacy.com"}, {"$set": {"role": "admin"}})
    data["headers"] = bearer(data["token"])
    return data


@pytest.fixture
def make_category():
    counter = itertools.count(1)

    def _make(name=None, parent_id=None, **fields):
        name = name or f"Category {next(counter)}"
        return create_document("category", Category(
            name=name,
            slug=unique_slug("category", name),
            parent_id=parent_id,
            **fields,
        ))
    return _make


@pytest.fixture
def make_product(make_category):
    def _make(name="Ibuprofen 200mg Tablet", price=10.0, stock_quantity=50, category_id=None, **fields):
        fields.setdefault("description", f"{name} for pain relief")
        fields.setdefault("brand", "MediCare")
        return create_document("product", Product(
            name=name,
            slug=unique_slug("product", name),
            price=price,
            stock_quantity=stock_quantity,
            category_id=category_id or make_category(),
            **fields,
        ))
    return _make
