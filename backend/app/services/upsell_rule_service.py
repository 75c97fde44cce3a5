"""
Upsell rule store: shop-scoped CRUD with product ownership checks.

Every mutation drops the shop's cached rule listings and public snapshots,
since evaluation results go stale as soon as a rule changes.
"""
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from fastapi import HTTPException, status

from app.core.cache import TTL, cache_service, invalidate_upsell_cache
from app.models.upsell_rule import (
    PRIORITY_RANK,
    DiscountType,
    RuleConditions,
    UpsellRule,
    conversion_rate,
)
from app.schemas.upsell_rule import UpsellRuleCreate, UpsellRuleUpdate
from app.services.product_service import ProductService
from app.utils.helpers import to_object_id

logger = logging.getLogger(__name__)


def _unique(ids: List[str]) -> List[str]:
    """Drop duplicate ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


class UpsellRuleService:
    """Service for upsell rule management."""

    @staticmethod
    def sort_by_priority(rules: List[dict]) -> List[dict]:
        """Stable sort, high priority first."""
        return sorted(rules, key=lambda rule: PRIORITY_RANK.get(rule.get("priority"), 0), reverse=True)

    @staticmethod
    def format_rule(rule: dict, product_map: Optional[Dict[str, dict]] = None) -> dict:
        """Format a rule document for API responses."""
        stats = rule.get("stats") or {}
        impressions = stats.get("impressions", 0)
        conversions = stats.get("conversions", 0)

        formatted = {
            "id": str(rule["_id"]),
            "shop_id": rule["shop_id"],
            "rule_name": rule["rule_name"],
            "rule_type": rule["rule_type"],
            "discount_type": rule.get("discount_type", DiscountType.FLAT.value),
            "discount_value": rule.get("discount_value", 0),
            "priority": rule.get("priority", "medium"),
            "offered_products": list(rule.get("offered_products", [])),
            "conditions": RuleConditions(**(rule.get("conditions") or {})).model_dump(),
            "description": rule.get("description"),
            "is_active": rule.get("is_active", True),
            "stats": {
                "impressions": impressions,
                "conversions": conversions,
                "revenue": stats.get("revenue", 0.0),
                "conversion_rate": conversion_rate(impressions, conversions)
            },
            "created_at": rule["created_at"],
            "updated_at": rule.get("updated_at", rule["created_at"])
        }

        if product_map is not None:
            formatted["offered_product_details"] = [
                {
                    "id": product_id,
                    "product_name": product_map[product_id]["product_name"],
                    "unit_price": product_map[product_id]["unit_price"],
                    "discount_type": product_map[product_id].get("discount_type"),
                    "discount_value": product_map[product_id].get("discount_value", 0),
                    "icon": product_map[product_id].get("icon")
                }
                for product_id in formatted["offered_products"]
                if product_id in product_map
            ]

        return formatted

    @staticmethod
    async def format_rules_with_products(rules: List[dict], db: AsyncIOMotorDatabase) -> List[dict]:
        """Format rules, resolving offered products with one catalog query."""
        product_ids = {pid for rule in rules for pid in rule.get("offered_products", [])}
        product_map = await ProductService.get_products_by_ids(product_ids, db)
        return [UpsellRuleService.format_rule(rule, product_map) for rule in rules]

    @staticmethod
    async def validate_shop_products(
        product_ids: List[str],
        shop_id: str,
        db: AsyncIOMotorDatabase,
        label: str = "products"
    ) -> None:
        """
        Ensure every id resolves to a product owned by the shop.

        Raises:
            HTTPException: 400 if any product is unknown or belongs to another shop
        """
        requested = set(product_ids)
        if not requested:
            return

        products = await ProductService.find_shop_products(requested, shop_id, db)
        if len(products) != len(requested):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Some {label} do not belong to your shop"
            )

    @staticmethod
    async def get_shop_rule(shop_id: str, rule_id: str, db: AsyncIOMotorDatabase) -> dict:
        """Get a rule owned by the shop or raise 404."""
        object_id = to_object_id(rule_id)
        rule = await db.upsell_rules.find_one({"_id": object_id, "shop_id": shop_id}) if object_id else None

        if not rule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Rule not found"
            )
        return rule

    @staticmethod
    async def create_rule(shop: dict, data: UpsellRuleCreate, db: AsyncIOMotorDatabase) -> dict:
        """Create a rule after checking offered and trigger products belong to the shop."""
        shop_id = str(shop["_id"])

        offered_products = _unique(data.offered_products)
        await UpsellRuleService.validate_shop_products(offered_products, shop_id, db)

        conditions = data.conditions
        conditions.trigger_products = _unique(conditions.trigger_products)
        await UpsellRuleService.validate_shop_products(
            conditions.trigger_products, shop_id, db, label="trigger products"
        )

        rule_data = UpsellRule(
            shop_id=shop_id,
            rule_name=data.rule_name,
            rule_type=data.rule_type,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            priority=data.priority,
            offered_products=offered_products,
            conditions=conditions,
            description=data.description,
            is_active=True
        ).model_dump(exclude={"id"})

        result = await db.upsell_rules.insert_one(rule_data)
        rule_data["_id"] = result.inserted_id

        logger.info(
            f"Upsell rule created: shop={shop_id} rule={rule_data['_id']} "
            f"type={rule_data['rule_type']} priority={rule_data['priority']}"
        )

        await invalidate_upsell_cache(shop_id, str(rule_data["_id"]))
        return rule_data

    @staticmethod
    async def update_rule(
        shop: dict,
        rule_id: str,
        data: UpsellRuleUpdate,
        db: AsyncIOMotorDatabase
    ) -> dict:
        """Shallow-merge the provided fields into the rule."""
        shop_id = str(shop["_id"])
        rule = await UpsellRuleService.get_shop_rule(shop_id, rule_id, db)

        update_fields = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }

        if "offered_products" in update_fields:
            update_fields["offered_products"] = _unique(update_fields["offered_products"])
            await UpsellRuleService.validate_shop_products(update_fields["offered_products"], shop_id, db)

        if "conditions" in update_fields:
            update_fields["conditions"]["trigger_products"] = _unique(
                update_fields["conditions"]["trigger_products"]
            )
            await UpsellRuleService.validate_shop_products(
                update_fields["conditions"]["trigger_products"], shop_id, db, label="trigger products"
            )

        discount_type = update_fields.get("discount_type", rule.get("discount_type"))
        discount_value = update_fields.get("discount_value", rule.get("discount_value", 0))
        if discount_type == DiscountType.PERCENTAGE.value and discount_value > 100:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Percentage discount cannot exceed 100"
            )

        if not update_fields:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid fields to update"
            )

        update_fields["updated_at"] = datetime.utcnow()
        await db.upsell_rules.update_one({"_id": rule["_id"]}, {"$set": update_fields})
        rule.update(update_fields)

        await invalidate_upsell_cache(shop_id, rule_id)

        logger.info(f"Upsell rule updated: shop={shop_id} rule={rule_id} fields={sorted(update_fields)}")
        return rule

    @staticmethod
    async def toggle_rule(shop: dict, rule_id: str, db: AsyncIOMotorDatabase) -> dict:
        """Flip a rule between active and inactive."""
        shop_id = str(shop["_id"])
        rule = await UpsellRuleService.get_shop_rule(shop_id, rule_id, db)

        rule["is_active"] = not rule.get("is_active", True)
        rule["updated_at"] = datetime.utcnow()
        await db.upsell_rules.update_one(
            {"_id": rule["_id"]},
            {"$set": {"is_active": rule["is_active"], "updated_at": rule["updated_at"]}}
        )

        await invalidate_upsell_cache(shop_id, rule_id)

        logger.info(f"Upsell rule toggled: shop={shop_id} rule={rule_id} is_active={rule['is_active']}")
        return rule

    @staticmethod
    async def delete_rule(shop: dict, rule_id: str, db: AsyncIOMotorDatabase) -> None:
        """Hard-delete a rule."""
        shop_id = str(shop["_id"])
        rule = await UpsellRuleService.get_shop_rule(shop_id, rule_id, db)

        await db.upsell_rules.delete_one({"_id": rule["_id"]})

        await invalidate_upsell_cache(shop_id, rule_id)

        logger.info(f"Upsell rule deleted: shop={shop_id} rule={rule_id}")

    @staticmethod
    async def list_rules(
        shop: dict,
        db: AsyncIOMotorDatabase,
        search: Optional[str] = None,
        rule_type: Optional[str] = None,
        rule_status: Optional[str] = None
    ) -> List[dict]:
        """
        List a shop's rules, high priority first, newest first within a priority.

        Args:
            search: Case-insensitive substring of the rule name
            rule_type: "upsell" or "cross-sell"
            rule_status: "active" or "inactive"
        """
        shop_id = str(shop["_id"])
        cache_key = f"shop:{shop_id}:upsell:rules:{search or 'all'}:{rule_type or 'all'}:{rule_status or 'all'}"

        async def compute():
            query = {"shop_id": shop_id}
            if rule_type:
                query["rule_type"] = rule_type
            if rule_status == "active":
                query["is_active"] = True
            elif rule_status == "inactive":
                query["is_active"] = False
            if search:
                query["rule_name"] = {"$regex": re.escape(search), "$options": "i"}

            rules = await db.upsell_rules.find(query).sort("created_at", -1).to_list(length=None)
            rules = UpsellRuleService.sort_by_priority(rules)
            return await UpsellRuleService.format_rules_with_products(rules, db)

        return await cache_service.remember(cache_key, TTL.SHORT, compute)

    @staticmethod
    async def get_rule(shop: dict, rule_id: str, db: AsyncIOMotorDatabase) -> dict:
        """Get one of the shop's rules with offered product details."""
        shop_id = str(shop["_id"])
        cache_key = f"shop:{shop_id}:upsell:rule:{rule_id}"

        async def compute():
            rule = await UpsellRuleService.get_shop_rule(shop_id, rule_id, db)
            return (await UpsellRuleService.format_rules_with_products([rule], db))[0]

        return await cache_service.remember(cache_key, TTL.SHORT, compute)

    @staticmethod
    async def get_rule_stats(shop: dict, rule_id: str, db: AsyncIOMotorDatabase) -> dict:
        """Impressions, conversions, revenue and conversion rate of a rule."""
        shop_id = str(shop["_id"])
        cache_key = f"shop:{shop_id}:upsell:stats:{rule_id}"

        async def compute():
            rule = await UpsellRuleService.get_shop_rule(shop_id, rule_id, db)
            return UpsellRuleService.format_rule(rule)["stats"]

        return await cache_service.remember(cache_key, TTL.SHORT, compute)

    @staticmethod
    async def list_public_rules(shop_id: str, db: AsyncIOMotorDatabase) -> List[dict]:
        """
        Active rules of a shop, as shown to shoppers.

        Raises:
            HTTPException: 404 if the id names no shop (nothing is cached)
        """
        object_id = to_object_id(shop_id)
        if object_id is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Shop not found"
            )

        cache_key = f"public:shop:{shop_id}:upsell:rules"

        async def compute():
            if not await db.shops.find_one({"_id": object_id}):
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Shop not found"
                )

            rules = await db.upsell_rules.find(
                {"shop_id": shop_id, "is_active": True}
            ).sort("created_at", -1).to_list(length=None)
            rules = UpsellRuleService.sort_by_priority(rules)
            return await UpsellRuleService.format_rules_with_products(rules, db)

        return await cache_service.remember(cache_key, TTL.LONG, compute)

    @staticmethod
    async def get_public_rule(rule_id: str, db: AsyncIOMotorDatabase) -> dict:
        """An active rule by id, as shown to shoppers."""
        cache_key = f"public:upsell:rule:{rule_id}"

        async def compute():
            object_id = to_object_id(rule_id)
            rule = await db.upsell_rules.find_one({"_id": object_id, "is_active": True}) if object_id else None
            if not rule:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Rule not found"
                )
            return (await UpsellRuleService.format_rules_with_products([rule], db))[0]

        return await cache_service.remember(cache_key, TTL.LONG, compute)
