from datetime import timedelta

from conftest import PASSWORD, bearer
from database import utcnow


def login(client, email="jane@pharmacy.com", password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_register_returns_user_and_token(client):
    res = client.post("/api/auth/register", json={
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "Jane@Pharmacy.com",
        "password": PASSWORD,
    })
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["email"] == "jane@pharmacy.com"
    assert user["role"] == "user"
    assert "password_hash" not in user
    assert body["data"]["token"]


def test_register_duplicate_email(client, user):
    res = client.post("/api/auth/register", json={
        "first_name": "Other",
        "last_name": "Person",
        "email": "jane@pharmacy.com",
        "password": PASSWORD,
    })
    assert res.status_code == 409
    assert res.json() == {"success": False, "message": "User already exists with this email", "error": "Conflict"}


def test_register_short_password(client):
    res = client.post("/api/auth/register", json={
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@pharmacy.com",
        "password": "123",
    })
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"
    assert "password" in res.json()["error"]


def test_login(client, user):
    res = login(client)
    assert res.status_code == 200
    assert res.json()["data"]["user"]["id"] == user["user"]["id"]


def test_login_wrong_password(client, user):
    res = login(client, password="wrong-password")
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"


def test_me_requires_token(client):
    res = client.get("/api/auth/me")
    assert res.status_code == 401
    assert res.json()["message"] == "Not authorized, no token"

    res = client.get("/api/auth/me", headers=bearer("not-a-token"))
    assert res.status_code == 401
    assert res.json()["message"] == "Not authorized, token invalid"


def test_me(client, user):
    res = client.get("/api/auth/me", headers=user["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["email"] == "jane@pharmacy.com"
    assert "token" not in res.json()["data"]


def test_expired_token_is_rejected_and_removed(client, user, db):
    db["session"].update_one({"token": user["token"]}, {"$set": {"expires_at": utcnow() - timedelta(minutes=1)}})
    res = client.get("/api/auth/me", headers=user["headers"])
    assert res.status_code == 401
    assert db["session"].find_one({"token": user["token"]}) is None


def test_update_profile(client, user):
    res = client.put("/api/users/profile", headers=user["headers"], json={
        "phone": "555-0101",
        "medical_conditions": ["Asthma", "Asthma ", "Diabetes"],
        "address": {"city": "Austin", "country": "United States"},
    })
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["phone"] == "555-0101"
    assert data["medical_conditions"] == ["Asthma", "Diabetes"]
    assert data["address"]["city"] == "Austin"
    assert data["first_name"] == "Jane"

    res = client.get("/api/users/profile", headers=user["headers"])
    assert res.json()["data"]["phone"] == "555-0101"


def test_change_password_revokes_other_sessions(client, user):
    other_token = login(client).json()["data"]["token"]

    res = client.put("/api/auth/change-password", headers=user["headers"], json={
        "current_password": "wrong-password",
        "new_password": "newsecret",
    })
    assert res.status_code == 400
    assert res.json()["message"] == "Current password is incorrect"

    res = client.put("/api/auth/change-password", headers=user["headers"], json={
        "current_password": PASSWORD,
        "new_password": "newsecret",
    })
    assert res.status_code == 200

    assert client.get("/api/auth/me", headers=user["headers"]).status_code == 200
    assert client.get("/api/auth/me", headers=bearer(other_token)).status_code == 401
    assert login(client).status_code == 401
    assert login(client, password="newsecret").status_code == 200


def test_forgot_and_reset_password(client, user):
    res = client.post("/api/auth/forgot-password", json={"email": "jane@pharmacy.com"})
    assert res.status_code == 200
    reset_token = res.json()["data"]["reset_token"]

    # a reset token is not a login token
    assert client.get("/api/auth/me", headers=bearer(reset_token)).status_code == 401

    res = client.post("/api/auth/reset-password", json={"token": reset_token, "new_password": "brandnew"})
    assert res.status_code == 200
    assert login(client, password="brandnew").status_code == 200
    assert client.get("/api/auth/me", headers=user["headers"]).status_code == 401

    res = client.post("/api/auth/reset-password", json={"token": reset_token, "new_password": "again123"})
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid or expired reset token"


def test_forgot_password_unknown_email(client):
    res = client.post("/api/auth/forgot-password", json={"email": "nobody@pharmacy.com"})
    assert res.status_code == 404


def test_sessions_have_ttl_index(client, db):
    indexes = db["session"].index_information().values()
    assert any(i["key"] == [("expires_at", 1)] and i.get("expireAfterSeconds") == 0 for i in indexes)
