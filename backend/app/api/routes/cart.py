from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_optional_user
from app.schemas.cart import AddToCartRequest, UpdateCartItemRequest, CartResponse
from app.services.cart_service import CartService

router = APIRouter()


@router.post("/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    request: AddToCartRequest,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Add a product to the cart.

    Works for logged-in users and for guests identified by `session_id`.

    Validates:
    - Product exists
    - Sufficient stock available

    If product already in cart, increases quantity.
    """
    owner_filter = CartService.build_owner_filter(current_user, request.session_id)

    cart = await CartService.add_item(
        owner_filter=owner_filter,
        product_id=request.product_id,
        quantity=request.quantity,
        db=db
    )

    return await CartService.describe_cart(cart, db)


@router.get("", response_model=CartResponse)
async def get_cart(
    session_id: Optional[str] = Query(None),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get the caller's cart with full product details.

    Returns:
    - All cart items with locked-in and current prices
    - Applied upsell/cross-sell rules per line
    - Price change and stock warnings
    - Total amount and item count
    """
    owner_filter = CartService.build_owner_filter(current_user, session_id)
    return await CartService.get_cart_with_details(owner_filter, db)


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: str,
    request: UpdateCartItemRequest,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Update the quantity of an item in the cart.

    Validates stock availability before updating.
    """
    owner_filter = CartService.build_owner_filter(current_user, request.session_id)

    return await CartService.update_item_quantity(
        owner_filter=owner_filter,
        product_id=product_id,
        quantity=request.quantity,
        db=db
    )


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_from_cart(
    product_id: str,
    session_id: Optional[str] = Query(None),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Remove an item from the cart.
    """
    owner_filter = CartService.build_owner_filter(current_user, session_id)
    return await CartService.remove_item(owner_filter, product_id, db)


@router.delete("", response_model=CartResponse)
async def clear_cart(
    session_id: Optional[str] = Query(None),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Clear all items from the cart.
    """
    owner_filter = CartService.build_owner_filter(current_user, session_id)
    return await CartService.clear_cart(owner_filter, db)
