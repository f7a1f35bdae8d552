import pytest

from carts import compute_totals
from catalog import derive_slug, ensure_no_cycle, unique_slug
from errors import NotFound, ValidationError
from orders import order_totals
from reviews import round_rating
from schemas import OrderItem


@pytest.mark.parametrize("name, slug", [
    ("Acme Pain-Relief 500mg!", "acme-pain-relief-500mg"),
    ("  Vitamins & Supplements  ", "vitamins-supplements"),
    ("Cold/Flu -- Relief", "cold-flu-relief"),
    ("!!!", ""),
])
def test_derive_slug(name, slug):
    assert derive_slug(name) == slug


def test_unique_slug_appends_counter(make_product):
    make_product(name="Aspirin")
    assert unique_slug("product", "Aspirin") == "aspirin-1"
    make_product(name="Aspirin")
    assert unique_slug("product", "Aspirin") == "aspirin-2"


@pytest.mark.parametrize("value, expected", [
    (4.25, 4.3),
    (4.333333, 4.3),
    (1.75, 1.8),
    (2.5, 2.5),
    (5.0, 5.0),
])
def test_round_rating_half_up(value, expected):
    assert round_rating(value) == expected


def test_compute_totals():
    items = [{"price": 10.0, "quantity": 2}, {"price": 25.0, "quantity": 1}]
    assert compute_totals(items) == {"subtotal": 45.0, "total": 45.0}
    assert compute_totals([]) == {"subtotal": 0, "total": 0}


def test_order_totals():
    items = [OrderItem(product_id="a", quantity=2, price=10.0, total=20.0)]
    assert order_totals(items) == {"subtotal": 20.0, "tax": 0, "shipping": 0, "total": 20.0}
    assert order_totals(items, tax=1.6, shipping=5)["total"] == pytest.approx(26.6)


def test_ensure_no_cycle(make_category):
    root = make_category(name="Root")
    child = make_category(name="Child", parent_id=root)
    grandchild = make_category(name="Grandchild", parent_id=child)

    ensure_no_cycle(grandchild, root)
    ensure_no_cycle(None, child)
    with pytest.raises(ValidationError):
        ensure_no_cycle(root, root)
    with pytest.raises(ValidationError):
        ensure_no_cycle(root, grandchild)
    with pytest.raises(NotFound):
        ensure_no_cycle(root, "65f000000000000000000000")
