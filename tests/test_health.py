def test_root(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json() == {"message": "Pharmacy E-commerce Backend running"}


def test_database_report(client):
    body = client.get("/test").json()
    assert body["backend"] == "ok"
    assert body["db"] == "ok"
    assert body["database_url"] == "set"
    assert "user" in body["collections"]


def test_schema_lists_collections(client):
    body = client.get("/schema").json()
    assert {"user", "category", "product", "cart", "order", "review"} <= set(body)
    assert "stock_quantity" in body["product"]["properties"]


def test_unknown_route_uses_envelope(client):
    res = client.get("/api/nope")
    assert res.status_code == 404
    assert res.json()["success"] is False
    assert res.json()["message"] == "Not Found"


def test_reviews_for_unknown_product_are_empty(client):
    res = client.get("/api/reviews/product/abc")
    assert res.status_code == 200
    assert res.json()["data"] == []
