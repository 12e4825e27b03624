"""
Tests for line-item snapshot building and total resolution.
"""

from dataclasses import FrozenInstanceError

import pytest

from campus_market.core.exceptions import NotFoundError, ValidationError
from campus_market.models.product import Product
from campus_market.services.snapshot import (
    LineItemRequest,
    PricePolicy,
    build_line_items,
    resolve_total,
)


@pytest.fixture
def products():
    return {
        1: Product(
            id=1, title="Lab Coat", price=450.0, quantity=3,
            seller_id=10, seller_name="Asha", seller_email="asha@brainwareuniversity.ac.in",
        ),
        2: Product(
            id=2, title="Scientific Calculator", price=900.0, quantity=1,
            seller_id=11, seller_name="Ravi", seller_email="ravi@brainwareuniversity.ac.in",
        ),
    }


def test_snapshots_follow_request_order(products):
    snapshots = build_line_items(
        [LineItemRequest(2, 1), LineItemRequest(1, 2)],
        products,
    )
    assert [s.product_id for s in snapshots] == [2, 1]
    assert snapshots[0].seller_email == "ravi@brainwareuniversity.ac.in"
    assert snapshots[1].subtotal == 900.0


def test_client_policy_prefers_claimed_price(products):
    [snapshot] = build_line_items([LineItemRequest(1, 1, price=400)], products, PricePolicy.CLIENT)
    assert snapshot.unit_price == 400


def test_client_policy_falls_back_to_product_price(products):
    [snapshot] = build_line_items([LineItemRequest(1, 1)], products, PricePolicy.CLIENT)
    assert snapshot.unit_price == 450


def test_server_policy_ignores_claimed_price(products):
    [snapshot] = build_line_items([LineItemRequest(1, 1, price=1)], products, PricePolicy.SERVER)
    assert snapshot.unit_price == 450


def test_missing_product(products):
    with pytest.raises(NotFoundError):
        build_line_items([LineItemRequest(3, 1)], products)


def test_snapshots_are_immutable(products):
    [snapshot] = build_line_items([LineItemRequest(1, 1)], products)
    with pytest.raises(FrozenInstanceError):
        snapshot.unit_price = 0


def test_client_total_is_taken_as_claimed(products):
    snapshots = build_line_items([LineItemRequest(1, 2)], products)
    assert resolve_total(snapshots, 123.0, PricePolicy.CLIENT) == 123.0


def test_server_total_is_recomputed(products):
    snapshots = build_line_items([LineItemRequest(1, 2), LineItemRequest(2, 1)], products, PricePolicy.SERVER)
    assert resolve_total(snapshots, 1800.004, PricePolicy.SERVER, tolerance=0.01) == 1800.0


def test_server_total_mismatch(products):
    snapshots = build_line_items([LineItemRequest(1, 2)], products, PricePolicy.SERVER)
    with pytest.raises(ValidationError, match=r"\(900.0\)"):
        resolve_total(snapshots, 800, PricePolicy.SERVER, tolerance=0.01)
