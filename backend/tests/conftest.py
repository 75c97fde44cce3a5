"""
Shared test setup.

Settings require a JWT secret, so one is provided before any app module is imported.
"""
import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from app.core.cache import cache_service


@pytest.fixture(autouse=True)
def clear_cache():
    """Every test starts with an empty response cache."""
    cache_service.clear()
    yield
    cache_service.clear()


@pytest.fixture
def make_cursor():
    """Build a Motor-like cursor whose to_list() returns the given documents."""
    def _make_cursor(documents):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=documents)
        return cursor
    return _make_cursor


@pytest.fixture
def shop():
    return {
        "_id": ObjectId(),
        "owner_id": "owner123",
        "shop_name": "Tech Store",
        "is_active": True,
        "created_at": datetime(2024, 1, 1)
    }


def build_product(shop_id, unit_price, discount_type=None, discount_value=0, name="Product"):
    return {
        "_id": ObjectId(),
        "shop_id": shop_id,
        "product_name": name,
        "unit_price": unit_price,
        "discount_type": discount_type,
        "discount_value": discount_value,
        "icon": None,
        "stock": 50,
        "created_at": datetime(2024, 1, 1)
    }


def build_rule(shop_id, rule_type, offered_products, discount_type="flat", discount_value=0,
               priority="medium", is_active=True, conditions=None, name="Rule", stats=None):
    return {
        "_id": ObjectId(),
        "shop_id": shop_id,
        "rule_name": name,
        "rule_type": rule_type,
        "discount_type": discount_type,
        "discount_value": discount_value,
        "priority": priority,
        "offered_products": offered_products,
        "conditions": conditions or {
            "min_cart_value": 0,
            "max_cart_value": 0,
            "trigger_products": [],
            "trigger_categories": []
        },
        "description": None,
        "is_active": is_active,
        "stats": stats or {"impressions": 0, "conversions": 0, "revenue": 0.0},
        "created_at": datetime(2024, 1, 1),
        "updated_at": datetime(2024, 1, 1)
    }


@pytest.fixture
def product_factory():
    return build_product


@pytest.fixture
def rule_factory():
    return build_rule
