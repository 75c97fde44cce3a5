from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_current_shop
from app.models.upsell_rule import RuleType
from app.schemas.upsell_rule import (
    RuleStatsEnvelope,
    UpsellRuleCreate,
    UpsellRuleEnvelope,
    UpsellRuleListResponse,
    UpsellRuleUpdate,
)
from app.services.upsell_rule_service import UpsellRuleService

router = APIRouter()


# Public routes (for customers). Declared first so "/public/..." is not
# captured by "/{rule_id}".

@router.get("/public/shop/{shop_id}", response_model=UpsellRuleListResponse)
async def get_public_rules(
    shop_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Get the active rules of a shop."""
    rules = await UpsellRuleService.list_public_rules(shop_id, db)
    return UpsellRuleListResponse(rules=rules)


@router.get("/public/{rule_id}", response_model=UpsellRuleEnvelope)
async def get_public_rule(
    rule_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Get an active rule by ID."""
    rule = await UpsellRuleService.get_public_rule(rule_id, db)
    return UpsellRuleEnvelope(rule=rule)


# Shopkeeper routes

@router.post("", response_model=UpsellRuleEnvelope, status_code=status.HTTP_201_CREATED)
async def create_rule(
    request: UpsellRuleCreate,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Create an upsell or cross-sell rule for the current shop.

    Validates:
    - Offered products belong to the shop
    - Trigger products (if any) belong to the shop

    New rules are active.
    """
    rule = await UpsellRuleService.create_rule(shop, request, db)
    return UpsellRuleEnvelope(rule=UpsellRuleService.format_rule(rule))


@router.get("", response_model=UpsellRuleListResponse)
async def list_rules(
    search: Optional[str] = Query(None, description="Case-insensitive match on rule name"),
    rule_type: Optional[RuleType] = Query(None),
    rule_status: Optional[str] = Query(None, alias="status", pattern="^(active|inactive)$"),
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    List the current shop's rules.

    Sorted by priority (high first), then newest first.
    """
    rules = await UpsellRuleService.list_rules(
        shop,
        db,
        search=search,
        rule_type=rule_type.value if rule_type else None,
        rule_status=rule_status
    )
    return UpsellRuleListResponse(rules=rules)


@router.get("/{rule_id}", response_model=UpsellRuleEnvelope)
async def get_rule(
    rule_id: str,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Get one of the current shop's rules."""
    rule = await UpsellRuleService.get_rule(shop, rule_id, db)
    return UpsellRuleEnvelope(rule=rule)


@router.get("/{rule_id}/stats", response_model=RuleStatsEnvelope)
async def get_rule_stats(
    rule_id: str,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get rule analytics.

    Conversion rate is conversions / impressions as a percentage (0 with no impressions).
    """
    stats = await UpsellRuleService.get_rule_stats(shop, rule_id, db)
    return RuleStatsEnvelope(stats=stats)


@router.put("/{rule_id}", response_model=UpsellRuleEnvelope)
async def update_rule(
    rule_id: str,
    request: UpsellRuleUpdate,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Update a rule. Only the fields sent are changed."""
    rule = await UpsellRuleService.update_rule(shop, rule_id, request, db)
    return UpsellRuleEnvelope(rule=UpsellRuleService.format_rule(rule))


@router.patch("/{rule_id}/toggle", response_model=UpsellRuleEnvelope)
async def toggle_rule(
    rule_id: str,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Activate or deactivate a rule."""
    rule = await UpsellRuleService.toggle_rule(shop, rule_id, db)
    return UpsellRuleEnvelope(
        rule=UpsellRuleService.format_rule(rule),
        message=f"Rule {'activated' if rule['is_active'] else 'deactivated'} successfully"
    )


@router.delete("/{rule_id}")
async def delete_rule(
    rule_id: str,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Delete a rule."""
    await UpsellRuleService.delete_rule(shop, rule_id, db)
    return {"success": True, "message": "Rule deleted successfully"}
