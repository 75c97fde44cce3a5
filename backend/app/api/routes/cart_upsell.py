import logging
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.api.deps import get_db, get_optional_user
from app.schemas.cart import CartMutationResponse
from app.schemas.upsell_rule import (
    ApplicableRulesResponse,
    ApplyCrossSellRequest,
    ApplyUpsellRequest,
)
from app.services.cart_service import CartService
from app.services.upsell_service import UpsellService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/upsell-rules", response_model=ApplicableRulesResponse)
async def get_applicable_rules(
    background_tasks: BackgroundTasks,
    session_id: Optional[str] = Query(None),
    product_id: Optional[str] = Query(None, description="Only rules triggered by this product"),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get the upsell/cross-sell rules applicable to the caller's cart.

    Rules are grouped by shop and split into upsell and cross-sell lists,
    high priority first. Each rule shown counts one impression.
    """
    owner_filter = CartService.build_owner_filter(current_user, session_id)

    try:
        cart = await db.carts.find_one(owner_filter)
        if not cart or not cart.get("items"):
            return ApplicableRulesResponse(rules={}, message="No applicable rules (cart is empty)")

        rules = await UpsellService.get_applicable_rules(cart, db, product_id=product_id)
    except PyMongoError as e:
        logger.error(f"Failed to evaluate upsell rules for {owner_filter}: {str(e)}")
        return ApplicableRulesResponse(rules={}, message="No applicable rules")

    if not rules:
        return ApplicableRulesResponse(rules={}, message="No applicable rules")

    background_tasks.add_task(UpsellService.track_impressions, UpsellService.rule_ids(rules), db)

    return ApplicableRulesResponse(rules=rules)


@router.post("/apply-upsell", response_model=CartMutationResponse)
async def apply_upsell(
    request: ApplyUpsellRequest,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Accept an upsell offer: replace a cart line with the offered product.

    The replaced line keeps its quantity. Cart totals are recalculated.
    """
    owner_filter = CartService.build_owner_filter(current_user, request.session_id)
    cart = await CartService.find_cart(owner_filter, db)

    cart = await UpsellService.apply_upsell_rule(
        cart=cart,
        rule_id=request.rule_id,
        selected_product_id=request.selected_product_id,
        replaced_product_id=request.replaced_product_id,
        db=db
    )

    CartService.recalculate_totals(cart)
    await CartService.save_cart(cart, db)

    return CartMutationResponse(
        message="Upsell applied successfully",
        cart=await CartService.describe_cart(cart, db)
    )


@router.post("/apply-cross-sell", response_model=CartMutationResponse)
async def apply_cross_sell(
    request: ApplyCrossSellRequest,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Accept a cross-sell offer: add the offered product to the cart.

    If the product is already in the cart its quantity goes up by one.
    Cart totals are recalculated.
    """
    owner_filter = CartService.build_owner_filter(current_user, request.session_id)
    cart = await CartService.find_cart(owner_filter, db)

    cart = await UpsellService.apply_cross_sell_rule(
        cart=cart,
        rule_id=request.rule_id,
        selected_product_id=request.selected_product_id,
        db=db
    )

    CartService.recalculate_totals(cart)
    await CartService.save_cart(cart, db)

    return CartMutationResponse(
        message="Cross-sell applied successfully",
        cart=await CartService.describe_cart(cart, db)
    )


@router.delete("/remove-upsell/{product_id}", response_model=CartMutationResponse)
async def remove_upsell(
    product_id: str,
    session_id: Optional[str] = Query(None),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Remove upsell/cross-sell metadata from a cart line.

    The product stays in the cart with its quantity and price.
    """
    owner_filter = CartService.build_owner_filter(current_user, session_id)
    cart = await CartService.find_cart(owner_filter, db)

    cart = UpsellService.remove_applied_rule(cart, product_id)

    CartService.recalculate_totals(cart)
    await CartService.save_cart(cart, db)

    return CartMutationResponse(
        message="Upsell/cross-sell removed",
        cart=await CartService.describe_cart(cart, db)
    )
