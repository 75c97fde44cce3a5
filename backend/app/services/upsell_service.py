"""
Upsell / cross-sell evaluation and cart mutation.

Evaluation selects the active rules of the shops present in a cart whose
cart-value bounds (and optional trigger products) match, ranks them by
priority and prices their offered products. Mutation accepts an offer:
an upsell swaps a cart line for the offered product, a cross-sell adds the
offered product (or bumps its quantity).

Accepting an offer writes twice: rule stats, then the cart. The writes are
not transactional; both are logged so they can be reconciled.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from fastapi import HTTPException, status

from app.core.cache import invalidate_upsell_cache
from app.models.cart import generate_item_id
from app.models.upsell_rule import RuleType
from app.services.cart_service import CartService
from app.services.product_service import ProductService
from app.services.upsell_rule_service import UpsellRuleService
from app.utils.helpers import to_object_id
from app.utils.pricing import offer_prices

logger = logging.getLogger(__name__)


class UpsellService:
    """Service for evaluating and applying upsell/cross-sell rules."""

    @staticmethod
    def cart_shop_ids(cart: Optional[dict]) -> List[str]:
        """Distinct shop ids of the cart lines, in cart order."""
        if not cart:
            return []
        return list(dict.fromkeys(
            item["shop_id"] for item in cart.get("items", []) if item and item.get("shop_id")
        ))

    @staticmethod
    def build_rule_query(shop_ids: List[str], cart_total: float, product_id: Optional[str] = None) -> dict:
        """Mongo filter for the candidate rules of a cart."""
        conditions = [
            {"$or": [
                {"conditions.max_cart_value": 0},  # No max limit
                {"conditions.max_cart_value": {"$gte": cart_total}}
            ]}
        ]

        if product_id:
            conditions.append({"$or": [
                {"conditions.trigger_products": {"$size": 0}},  # No specific triggers
                {"conditions.trigger_products": product_id}
            ]})

        return {
            "shop_id": {"$in": shop_ids},
            "is_active": True,
            "conditions.min_cart_value": {"$lte": cart_total},
            "$and": conditions
        }

    @staticmethod
    def enrich_offered_products(rule: dict, product_map: Dict[str, dict]) -> List[dict]:
        """Price each offered product of a rule. Products that no longer exist are skipped."""
        enriched = []
        for product_id in rule.get("offered_products", []):
            product = product_map.get(product_id)
            if not product:
                continue

            base_price, final_price = offer_prices(product, rule)
            enriched.append({
                "id": product_id,
                "product_name": product["product_name"],
                "unit_price": product["unit_price"],
                "discount_type": product.get("discount_type"),
                "discount_value": product.get("discount_value", 0),
                "icon": product.get("icon"),
                "base_price": base_price,
                "upsell_final_price": final_price,
                "upsell_discount": base_price - final_price,
                "upsell_discount_type": rule.get("discount_type"),
                "upsell_discount_value": rule.get("discount_value", 0)
            })
        return enriched

    @staticmethod
    async def get_applicable_rules(
        cart: Optional[dict],
        db: AsyncIOMotorDatabase,
        product_id: Optional[str] = None
    ) -> Dict[str, dict]:
        """
        Get the upsell/cross-sell rules applicable to a cart.

        Only shops that have products in the cart are considered. Rules are
        ordered high -> medium -> low priority.

        Args:
            cart: Cart document (None or empty yields no rules)
            product_id: Restrict to rules triggered by this product

        Returns:
            Mapping shop_id -> {"shop_id", "shop_name", "upsell": [...], "cross_sell": [...]}
        """
        shop_ids = UpsellService.cart_shop_ids(cart)
        if not shop_ids:
            return {}

        cart_total = cart.get("total_amount") or 0

        logger.debug(
            f"Evaluating upsell rules for cart {cart.get('_id')}: "
            f"{len(cart['items'])} items, total={cart_total}, product={product_id}"
        )

        query = UpsellService.build_rule_query(shop_ids, cart_total, product_id)
        rules = await db.upsell_rules.find(query).to_list(length=None)
        rules = UpsellRuleService.sort_by_priority(rules)

        if not rules:
            return {}

        product_map = await ProductService.get_products_by_ids(
            {pid for rule in rules for pid in rule.get("offered_products", [])}, db
        )

        shop_object_ids = [oid for oid in (to_object_id(sid) for sid in shop_ids) if oid]
        shops = await db.shops.find({"_id": {"$in": shop_object_ids}}).to_list(length=None)
        shop_names = {str(shop["_id"]): shop.get("shop_name", "Unknown Shop") for shop in shops}

        rules_by_shop: Dict[str, dict] = {}
        for rule in rules:
            shop_id = rule["shop_id"]
            if shop_id not in rules_by_shop:
                rules_by_shop[shop_id] = {
                    "shop_id": shop_id,
                    "shop_name": shop_names.get(shop_id, "Unknown Shop"),
                    "upsell": [],
                    "cross_sell": []
                }

            enriched_rule = UpsellRuleService.format_rule(rule)
            enriched_rule["offered_products"] = UpsellService.enrich_offered_products(rule, product_map)

            if rule["rule_type"] == RuleType.UPSELL.value:
                rules_by_shop[shop_id]["upsell"].append(enriched_rule)
            else:
                rules_by_shop[shop_id]["cross_sell"].append(enriched_rule)

        logger.info(f"Applicable upsell rules: {len(rules)} rule(s) across {len(rules_by_shop)} shop(s)")
        return rules_by_shop

    @staticmethod
    def rule_ids(rules_by_shop: Dict[str, dict]) -> List[str]:
        """Ids of every rule in an evaluation result."""
        return [
            rule["id"]
            for shop_rules in rules_by_shop.values()
            for rule in shop_rules["upsell"] + shop_rules["cross_sell"]
        ]

    @staticmethod
    async def track_impressions(rule_ids: Iterable[str], db: AsyncIOMotorDatabase) -> None:
        """Count one impression per rule shown. Analytics only: never raises."""
        object_ids = [oid for oid in (to_object_id(rid) for rid in rule_ids) if oid]
        if not object_ids:
            return

        try:
            await db.upsell_rules.update_many(
                {"_id": {"$in": object_ids}},
                {"$inc": {"stats.impressions": 1}}
            )
        except Exception as e:
            logger.error(f"Failed to track impressions for {len(object_ids)} rule(s): {str(e)}")

    @staticmethod
    async def load_active_rule(rule_id: str, rule_type: RuleType, db: AsyncIOMotorDatabase) -> dict:
        """
        Load a rule that can be applied right now.

        Raises:
            HTTPException: 404 if missing or inactive, 400 if of the wrong type
        """
        object_id = to_object_id(rule_id)
        rule = await db.upsell_rules.find_one({"_id": object_id}) if object_id else None

        if not rule or not rule.get("is_active", False):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Rule not found or inactive"
            )

        if rule["rule_type"] != rule_type.value:
            article = "an" if rule_type == RuleType.UPSELL else "a"
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"This is not {article} {rule_type.value} rule"
            )

        return rule

    @staticmethod
    async def load_offered_product(rule: dict, selected_product_id: str, db: AsyncIOMotorDatabase) -> dict:
        """The selected product, which must be one the rule offers."""
        if selected_product_id not in rule.get("offered_products", []):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selected product not in this rule"
            )
        return await ProductService.get_product(selected_product_id, db)

    @staticmethod
    def find_item_index(cart: dict, product_id: str, match_item_id: bool = False) -> int:
        """
        Index of the cart line for a product, or -1.

        With `match_item_id`, a line whose own item_id equals the given id is
        accepted when no line has that product.
        """
        items = cart.get("items", [])
        for index, item in enumerate(items):
            if item and item.get("product_id") == product_id:
                return index

        if match_item_id:
            for index, item in enumerate(items):
                if item and item.get("item_id") == product_id:
                    return index

        return -1

    @staticmethod
    def build_snapshot(rule: dict, original_product_id: Optional[str] = None) -> dict:
        """Rule terms to lock in on a cart line."""
        snapshot = {
            "rule_id": str(rule["_id"]),
            "rule_name": rule["rule_name"],
            "discount_type": rule.get("discount_type"),
            "discount_value": rule.get("discount_value", 0),
            "applied_at": datetime.utcnow()
        }
        if original_product_id is not None:
            snapshot["original_product_id"] = original_product_id
        return snapshot

    @staticmethod
    async def record_conversion(rule: dict, revenue: float, db: AsyncIOMotorDatabase) -> None:
        """
        Add one conversion and its revenue to the rule stats.

        Cached stats and listings of the rule's shop are dropped so owners see
        the conversion right away. Impressions are not invalidated: they change
        on every evaluation and may lag by up to the short cache TTL.
        """
        await db.upsell_rules.update_one(
            {"_id": rule["_id"]},
            {"$inc": {"stats.conversions": 1, "stats.revenue": revenue}}
        )
        logger.info(f"Rule {rule['_id']} conversion recorded: revenue +{revenue}")

        await invalidate_upsell_cache(rule["shop_id"], str(rule["_id"]))

    @staticmethod
    async def apply_upsell_rule(
        cart: dict,
        rule_id: str,
        selected_product_id: str,
        replaced_product_id: str,
        db: AsyncIOMotorDatabase
    ) -> dict:
        """
        Replace a cart line with the discounted product of an upsell rule.

        The line keeps its slot and quantity. Totals are left to the caller.

        Raises:
            HTTPException: 404 rule missing/inactive or line not found,
                400 wrong rule type or product not offered
        """
        logger.info(
            f"Applying upsell rule {rule_id} to cart {cart['_id']}: "
            f"{replaced_product_id} -> {selected_product_id}"
        )

        rule = await UpsellService.load_active_rule(rule_id, RuleType.UPSELL, db)
        product = await UpsellService.load_offered_product(rule, selected_product_id, db)

        item_index = UpsellService.find_item_index(cart, replaced_product_id, match_item_id=True)
        if item_index == -1:
            available_ids = ", ".join(
                item.get("product_id") or "null" for item in cart.get("items", []) if item
            )
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=(
                    f"Product to replace not found in cart. Looking for: {replaced_product_id}. "
                    f"Available in cart: {available_ids}"
                )
            )

        replaced_item = cart["items"][item_index]
        quantity = replaced_item["quantity"]
        _, final_price = offer_prices(product, rule)

        cart["items"][item_index] = {
            "item_id": replaced_item.get("item_id") or generate_item_id(),
            "product_id": selected_product_id,
            "shop_id": rule["shop_id"],
            "quantity": quantity,
            "price_at_addition": final_price,
            "added_at": datetime.utcnow(),
            "upsell_rule_applied": UpsellService.build_snapshot(
                rule, original_product_id=replaced_item["product_id"]
            ),
            "cross_sell_rule_applied": None
        }

        await UpsellService.record_conversion(rule, final_price * quantity, db)
        await CartService.save_cart(cart, db)

        logger.info(
            f"Upsell applied to cart {cart['_id']}: rule={rule['_id']} "
            f"old={replaced_item['product_id']} new={selected_product_id} qty={quantity}"
        )
        return cart

    @staticmethod
    async def apply_cross_sell_rule(
        cart: dict,
        rule_id: str,
        selected_product_id: str,
        db: AsyncIOMotorDatabase
    ) -> dict:
        """
        Add the discounted product of a cross-sell rule to the cart.

        If the product already has a line its quantity goes up by one and its
        locked-in price stays; otherwise a new line with quantity 1 is appended.

        Raises:
            HTTPException: 404 rule missing/inactive, 400 wrong rule type or product not offered
        """
        logger.info(f"Applying cross-sell rule {rule_id} to cart {cart['_id']}: product={selected_product_id}")

        rule = await UpsellService.load_active_rule(rule_id, RuleType.CROSS_SELL, db)
        product = await UpsellService.load_offered_product(rule, selected_product_id, db)

        _, final_price = offer_prices(product, rule)
        snapshot = UpsellService.build_snapshot(rule)

        item_index = UpsellService.find_item_index(cart, selected_product_id)
        if item_index != -1:
            item = cart["items"][item_index]
            item["quantity"] += 1
            item["cross_sell_rule_applied"] = snapshot
            item["upsell_rule_applied"] = None
        else:
            cart["items"].append({
                "item_id": generate_item_id(),
                "product_id": selected_product_id,
                "shop_id": rule["shop_id"],
                "quantity": 1,
                "price_at_addition": final_price,
                "added_at": datetime.utcnow(),
                "upsell_rule_applied": None,
                "cross_sell_rule_applied": snapshot
            })

        # One unit was added either way
        await UpsellService.record_conversion(rule, final_price, db)
        await CartService.save_cart(cart, db)

        logger.info(f"Cross-sell applied to cart {cart['_id']}: rule={rule['_id']} product={selected_product_id}")
        return cart

    @staticmethod
    def remove_applied_rule(cart: dict, product_id: str) -> dict:
        """
        Clear upsell/cross-sell metadata from a cart line.

        The line, its quantity and its price are left as they are.

        Raises:
            HTTPException: 404 if the product is not in the cart
        """
        item_index = UpsellService.find_item_index(cart, product_id)
        if item_index == -1:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found in cart"
            )

        item = cart["items"][item_index]
        item["upsell_rule_applied"] = None
        item["cross_sell_rule_applied"] = None

        logger.info(f"Removed applied rule from product {product_id} in cart {cart.get('_id')}")
        return cart
