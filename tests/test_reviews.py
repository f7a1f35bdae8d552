import pytest
from bson import ObjectId

from conftest import bearer


def review(client, user, product_id, rating, **extra):
    return client.post("/api/reviews", headers=user["headers"], json=dict(product_id=product_id, rating=rating, **extra))


def summary(db, product_id):
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    return product["average_rating"], product["total_reviews"]


@pytest.fixture
def reviewers(register):
    out = []
    for i in range(3):
        data = register(email=f"reviewer{i}@pharmacy.com", first_name=f"Reviewer{i}")
        data["headers"] = bearer(data["token"])
        out.append(data)
    return out


def test_create_review_updates_product(client, user, make_product, db):
    p = make_product()
    res = review(client, user, p, 4, title="Works well", comment="Helped with my headache")
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["rating"] == 4
    assert data["is_verified"] is False
    assert data["user"]["first_name"] == "Jane"
    assert data["product"]["name"] == "Ibuprofen 200mg Tablet"
    assert summary(db, p) == (4.0, 1)


def test_average_rounds_half_up(client, reviewers, user, make_product, db):
    p = make_product()
    for reviewer, rating in zip(reviewers, [4, 4, 4]):
        review(client, reviewer, p, rating)
    review(client, user, p, 5)
    # mean 4.25
    assert summary(db, p) == (4.3, 4)


def test_one_review_per_product(client, user, make_product):
    p = make_product()
    review(client, user, p, 5)
    res = review(client, user, p, 3)
    assert res.status_code == 409
    assert res.json()["message"] == "You have already reviewed this product"
    assert res.json()["error"] == "AlreadyReviewed"


def test_review_validation(client, user, make_product):
    p = make_product()
    assert review(client, user, p, 6).status_code == 400
    assert review(client, user, p, 0).status_code == 400
    assert review(client, user, p, 3, title="x" * 101).status_code == 400
    assert review(client, user, str(ObjectId()), 3).status_code == 404


def test_update_review_recomputes(client, user, other_user, make_product, db):
    p = make_product()
    review_id = review(client, user, p, 2).json()["data"]["id"]
    review(client, other_user, p, 4)
    assert summary(db, p) == (3.0, 2)

    res = client.put(f"/api/reviews/{review_id}", headers=user["headers"], json={"rating": 5, "comment": "Changed my mind"})
    assert res.status_code == 200
    assert res.json()["data"]["comment"] == "Changed my mind"
    assert summary(db, p) == (4.5, 2)


def test_only_author_can_edit_or_delete(client, user, other_user, make_product, db):
    p = make_product()
    review_id = review(client, user, p, 2).json()["data"]["id"]

    res = client.put(f"/api/reviews/{review_id}", headers=other_user["headers"], json={"rating": 5})
    assert res.status_code == 404
    assert client.delete(f"/api/reviews/{review_id}", headers=other_user["headers"]).status_code == 404
    assert summary(db, p) == (2.0, 1)


def test_delete_last_review_resets_summary(client, user, make_product, db):
    p = make_product()
    review_id = review(client, user, p, 5).json()["data"]["id"]
    res = client.delete(f"/api/reviews/{review_id}", headers=user["headers"])
    assert res.status_code == 200
    assert summary(db, p) == (0, 0)


def test_public_listing_shows_verified_only(client, user, other_user, make_product, db):
    p = make_product()
    verified_id = review(client, user, p, 5).json()["data"]["id"]
    review(client, other_user, p, 1)
    db["review"].update_one({"_id": ObjectId(verified_id)}, {"$set": {"is_verified": True}})

    res = client.get(f"/api/reviews/product/{p}")
    body = res.json()
    assert [r["id"] for r in body["data"]] == [verified_id]
    assert body["data"][0]["user"] == {"id": user["user"]["id"], "first_name": "Jane", "last_name": "Doe"}
    assert body["pagination"]["total"] == 1


def test_my_reviews(client, user, other_user, make_product):
    review(client, user, make_product(name="One"), 5)
    review(client, user, make_product(name="Two"), 4)
    review(client, other_user, make_product(name="Three"), 3)

    res = client.get("/api/reviews/user/reviews", headers=user["headers"])
    assert sorted(r["product"]["name"] for r in res.json()["data"]) == ["One", "Two"]
