"""
Tests for the shopper-facing upsell endpoints.

Route functions are called directly with their dependencies supplied.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from bson import ObjectId
from fastapi import BackgroundTasks, HTTPException, status
from pymongo.errors import ServerSelectionTimeoutError

from app.api.routes.cart_upsell import (
    apply_cross_sell,
    apply_upsell,
    get_applicable_rules,
    remove_upsell,
)
from app.schemas.upsell_rule import ApplyCrossSellRequest, ApplyUpsellRequest
from app.services.upsell_service import UpsellService


def guest_cart(items):
    return {"_id": ObjectId(), "session_id": "guest-1", "items": items, "total_amount": 0, "total_items": 0}


class TestGetApplicableRules:
    """Test rule evaluation for the caller's cart."""

    @pytest.mark.asyncio
    async def test_identity_required(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_applicable_rules(
                background_tasks=BackgroundTasks(),
                session_id=None,
                product_id=None,
                current_user=None,
                db=MagicMock()
            )

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_empty_cart(self):
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=guest_cart([]))
        background_tasks = BackgroundTasks()

        response = await get_applicable_rules(
            background_tasks=background_tasks,
            session_id="guest-1",
            product_id=None,
            current_user=None,
            db=mock_db
        )

        assert response.rules == {}
        assert response.message == "No applicable rules (cart is empty)"
        assert background_tasks.tasks == []

    @pytest.mark.asyncio
    async def test_missing_cart_treated_as_empty(self):
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=None)

        response = await get_applicable_rules(
            background_tasks=BackgroundTasks(),
            session_id="guest-1",
            product_id=None,
            current_user=None,
            db=mock_db
        )

        assert response.message == "No applicable rules (cart is empty)"

    @pytest.mark.asyncio
    async def test_impressions_scheduled_for_shown_rules(self):
        cart = guest_cart([{"product_id": "p1", "shop_id": "shop1", "quantity": 1, "price_at_addition": 10}])
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=cart)
        rules = {
            "shop1": {
                "shop_id": "shop1",
                "shop_name": "Tech Store",
                "upsell": [{"id": "r1"}],
                "cross_sell": [{"id": "r2"}]
            }
        }
        background_tasks = BackgroundTasks()

        with patch.object(UpsellService, "get_applicable_rules", AsyncMock(return_value=rules)) as evaluate:
            response = await get_applicable_rules(
                background_tasks=background_tasks,
                session_id="guest-1",
                product_id="p1",
                current_user=None,
                db=mock_db
            )

        evaluate.assert_awaited_once_with(cart, mock_db, product_id="p1")
        assert response.rules == rules
        assert response.message is None
        assert len(background_tasks.tasks) == 1
        task = background_tasks.tasks[0]
        assert task.func == UpsellService.track_impressions
        assert task.args == (["r1", "r2"], mock_db)

    @pytest.mark.asyncio
    async def test_no_rules(self):
        cart = guest_cart([{"product_id": "p1", "shop_id": "shop1", "quantity": 1, "price_at_addition": 10}])
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=cart)
        background_tasks = BackgroundTasks()

        with patch.object(UpsellService, "get_applicable_rules", AsyncMock(return_value={})):
            response = await get_applicable_rules(
                background_tasks=background_tasks,
                session_id="guest-1",
                product_id=None,
                current_user=None,
                db=mock_db
            )

        assert response.rules == {}
        assert response.message == "No applicable rules"
        assert background_tasks.tasks == []

    @pytest.mark.asyncio
    async def test_database_errors_degrade_to_no_rules(self):
        cart = guest_cart([{"product_id": "p1", "shop_id": "shop1", "quantity": 1, "price_at_addition": 10}])
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=cart)

        failing = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
        with patch.object(UpsellService, "get_applicable_rules", failing):
            response = await get_applicable_rules(
                background_tasks=BackgroundTasks(),
                session_id="guest-1",
                product_id=None,
                current_user=None,
                db=mock_db
            )

        assert response.rules == {}

    @pytest.mark.asyncio
    async def test_cart_lookup_errors_degrade_to_no_rules(self):
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
        background_tasks = BackgroundTasks()

        response = await get_applicable_rules(
            background_tasks=background_tasks,
            session_id="guest-1",
            product_id=None,
            current_user=None,
            db=mock_db
        )

        assert response.rules == {}
        assert response.message == "No applicable rules"
        assert background_tasks.tasks == []


class TestCartMutations:
    """Test accepting and removing offers."""

    @pytest.mark.asyncio
    async def test_apply_upsell_recalculates_and_saves(self, make_cursor, product_factory):
        product = product_factory("shop1", 1000, name="Pro")
        product_id = str(product["_id"])
        cart = guest_cart([{"product_id": "p0", "shop_id": "shop1", "quantity": 1, "price_at_addition": 500}])

        def replace_line(cart, **kwargs):
            cart["items"][0].update({"product_id": product_id, "price_at_addition": 800})
            return cart

        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=cart)
        mock_db.carts.update_one = AsyncMock()
        mock_db.products.find = MagicMock(return_value=make_cursor([product]))

        request = ApplyUpsellRequest(
            rule_id="r1",
            selected_product_id=product_id,
            replaced_product_id="p0",
            session_id="guest-1"
        )

        with patch.object(UpsellService, "apply_upsell_rule", AsyncMock(side_effect=replace_line)) as apply:
            response = await apply_upsell(request=request, current_user=None, db=mock_db)

        apply.assert_awaited_once()
        assert apply.call_args.kwargs["replaced_product_id"] == "p0"
        assert response.message == "Upsell applied successfully"
        assert response.cart.total_amount == 800
        assert response.cart.items[0].product_id == product_id

        saved = mock_db.carts.update_one.call_args[0][1]["$set"]
        assert saved["total_amount"] == 800
        assert saved["total_items"] == 1

    @pytest.mark.asyncio
    async def test_apply_upsell_requires_existing_cart(self):
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=None)

        request = ApplyUpsellRequest(
            rule_id="r1", selected_product_id="p1", replaced_product_id="p0", session_id="guest-1"
        )

        with pytest.raises(HTTPException) as exc_info:
            await apply_upsell(request=request, current_user=None, db=mock_db)

        assert exc_info.value.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_apply_cross_sell_for_logged_in_user(self, make_cursor, product_factory):
        user_id = ObjectId()
        product = product_factory("shop1", 50, name="Case")
        product_id = str(product["_id"])
        cart = {"_id": ObjectId(), "user_id": str(user_id), "items": []}

        def add_line(cart, **kwargs):
            cart["items"].append({"product_id": product_id, "shop_id": "shop1", "quantity": 1, "price_at_addition": 45})
            return cart

        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=cart)
        mock_db.carts.update_one = AsyncMock()
        mock_db.products.find = MagicMock(return_value=make_cursor([product]))

        request = ApplyCrossSellRequest(rule_id="r2", selected_product_id=product_id)

        with patch.object(UpsellService, "apply_cross_sell_rule", AsyncMock(side_effect=add_line)):
            response = await apply_cross_sell(request=request, current_user={"_id": user_id}, db=mock_db)

        mock_db.carts.find_one.assert_called_once_with({"user_id": str(user_id)})
        assert response.message == "Cross-sell applied successfully"
        assert response.cart.total_amount == 45
        assert response.cart.total_items == 1

    @pytest.mark.asyncio
    async def test_remove_upsell_keeps_line(self, make_cursor, product_factory):
        product = product_factory("shop1", 1000, name="Pro")
        product_id = str(product["_id"])
        cart = guest_cart([{
            "item_id": "line1",
            "product_id": product_id,
            "shop_id": "shop1",
            "quantity": 2,
            "price_at_addition": 800,
            "upsell_rule_applied": {
                "rule_id": "r1",
                "rule_name": "Upgrade",
                "discount_type": "flat",
                "discount_value": 200,
                "original_product_id": "p0"
            },
            "cross_sell_rule_applied": None
        }])

        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(return_value=cart)
        mock_db.carts.update_one = AsyncMock()
        mock_db.products.find = MagicMock(return_value=make_cursor([product]))

        response = await remove_upsell(product_id=product_id, session_id="guest-1", current_user=None, db=mock_db)

        assert response.message == "Upsell/cross-sell removed"
        line = response.cart.items[0]
        assert line.upsell_rule_applied is None
        assert line.quantity == 2
        assert line.price_at_addition == 800
        assert response.cart.total_amount == 1600


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
