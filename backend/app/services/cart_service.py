import logging
from typing import Dict, Optional
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase
from fastapi import HTTPException, status

from app.models.cart import CartItem
from app.schemas.cart import CartItemResponse, CartResponse
from app.services.product_service import ProductService
from app.utils.pricing import product_base_price

logger = logging.getLogger(__name__)


class CartService:
    """Service for cart operations."""

    @staticmethod
    def build_owner_filter(current_user: Optional[dict], session_id: Optional[str]) -> dict:
        """
        Filter selecting the caller's cart.

        Logged-in users own their cart by user id, guests by session id.

        Raises:
            HTTPException: 401 if there is neither a user nor a session id
        """
        if current_user:
            return {"user_id": str(current_user["_id"])}
        if session_id:
            return {"session_id": session_id}
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session ID or login required"
        )

    @staticmethod
    async def find_cart(owner_filter: dict, db: AsyncIOMotorDatabase) -> dict:
        """Get an existing cart or raise 404."""
        cart = await db.carts.find_one(owner_filter)
        if not cart:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cart not found"
            )
        return cart

    @staticmethod
    async def get_or_create_cart(owner_filter: dict, db: AsyncIOMotorDatabase) -> dict:
        """Get or create a cart for a user or guest session."""
        cart = await db.carts.find_one(owner_filter)

        if not cart:
            cart_data = {
                "user_id": owner_filter.get("user_id"),
                "session_id": owner_filter.get("session_id"),
                "items": [],
                "total_amount": 0.0,
                "total_items": 0,
                "created_at": datetime.utcnow(),
                "updated_at": datetime.utcnow()
            }
            result = await db.carts.insert_one(cart_data)
            cart_data["_id"] = result.inserted_id
            return cart_data

        return cart

    @staticmethod
    def recalculate_totals(cart: dict) -> dict:
        """Recompute cart totals from the locked-in line prices."""
        items = cart.get("items", [])
        cart["total_amount"] = sum(item["price_at_addition"] * item["quantity"] for item in items)
        cart["total_items"] = sum(item["quantity"] for item in items)
        return cart

    @staticmethod
    async def save_cart(cart: dict, db: AsyncIOMotorDatabase) -> dict:
        """Persist cart lines and totals."""
        cart["updated_at"] = datetime.utcnow()
        await db.carts.update_one(
            {"_id": cart["_id"]},
            {"$set": {
                "items": cart["items"],
                "total_amount": cart.get("total_amount", 0.0),
                "total_items": cart.get("total_items", 0),
                "updated_at": cart["updated_at"]
            }}
        )
        return cart

    @staticmethod
    async def add_item(
        owner_filter: dict,
        product_id: str,
        quantity: int,
        db: AsyncIOMotorDatabase
    ) -> dict:
        """Add an item to the cart."""
        product = await ProductService.get_product(product_id, db)

        # Check stock
        if product.get("stock", 0) < quantity:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Insufficient stock. Available: {product.get('stock', 0)}"
            )

        cart = await CartService.get_or_create_cart(owner_filter, db)

        # Check if product already in cart
        item_exists = False
        for item in cart["items"]:
            if item["product_id"] == product_id:
                new_quantity = item["quantity"] + quantity
                if product.get("stock", 0) < new_quantity:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=f"Insufficient stock. Available: {product['stock']}, in cart: {item['quantity']}"
                    )
                item["quantity"] = new_quantity
                item_exists = True
                break

        if not item_exists:
            cart["items"].append(CartItem(
                product_id=product_id,
                shop_id=product["shop_id"],
                quantity=quantity,
                price_at_addition=product_base_price(product)
            ).model_dump())

        CartService.recalculate_totals(cart)
        await CartService.save_cart(cart, db)

        logger.info(f"Added product {product_id} x{quantity} to cart {cart['_id']}")
        return cart

    @staticmethod
    async def describe_cart(cart: dict, db: AsyncIOMotorDatabase) -> CartResponse:
        """Build the cart view with product details."""
        product_map: Dict[str, dict] = await ProductService.get_products_by_ids(
            [item["product_id"] for item in cart.get("items", [])], db
        )

        items_response = []
        total_amount = 0.0
        total_items = 0

        for item in cart.get("items", []):
            product = product_map.get(item["product_id"])
            if not product:
                continue

            current_price = product_base_price(product)
            price_at_addition = item["price_at_addition"]
            subtotal = price_at_addition * item["quantity"]
            total_amount += subtotal
            total_items += item["quantity"]

            has_offer = bool(item.get("upsell_rule_applied") or item.get("cross_sell_rule_applied"))

            items_response.append(CartItemResponse(
                item_id=item.get("item_id", ""),
                product_id=item["product_id"],
                shop_id=item["shop_id"],
                quantity=item["quantity"],
                price_at_addition=price_at_addition,
                current_price=current_price,
                product_name=product["product_name"],
                icon=product.get("icon"),
                stock=product.get("stock", 0),
                subtotal=subtotal,
                price_changed=not has_offer and abs(current_price - price_at_addition) > 0.01,
                stock_warning=product.get("stock", 0) < item["quantity"],
                upsell_rule_applied=item.get("upsell_rule_applied"),
                cross_sell_rule_applied=item.get("cross_sell_rule_applied")
            ))

        return CartResponse(
            items=items_response,
            total_amount=total_amount,
            total_items=total_items
        )

    @staticmethod
    async def get_cart_with_details(owner_filter: dict, db: AsyncIOMotorDatabase) -> CartResponse:
        """Get cart with full product details."""
        cart = await CartService.get_or_create_cart(owner_filter, db)
        return await CartService.describe_cart(cart, db)

    @staticmethod
    async def update_item_quantity(
        owner_filter: dict,
        product_id: str,
        quantity: int,
        db: AsyncIOMotorDatabase
    ) -> CartResponse:
        """Update item quantity in cart."""
        cart = await CartService.find_cart(owner_filter, db)

        # Find item in cart
        item_found = False
        for item in cart["items"]:
            if item["product_id"] == product_id:
                product = await ProductService.get_product(product_id, db)

                if product.get("stock", 0) < quantity:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=f"Insufficient stock. Available: {product.get('stock', 0)}"
                    )

                item["quantity"] = quantity
                item_found = True
                break

        if not item_found:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item not found in cart"
            )

        CartService.recalculate_totals(cart)
        await CartService.save_cart(cart, db)
        return await CartService.describe_cart(cart, db)

    @staticmethod
    async def remove_item(
        owner_filter: dict,
        product_id: str,
        db: AsyncIOMotorDatabase
    ) -> CartResponse:
        """Remove item from cart."""
        cart = await CartService.find_cart(owner_filter, db)

        original_length = len(cart["items"])
        cart["items"] = [item for item in cart["items"] if item["product_id"] != product_id]

        if len(cart["items"]) == original_length:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item not found in cart"
            )

        CartService.recalculate_totals(cart)
        await CartService.save_cart(cart, db)
        return await CartService.describe_cart(cart, db)

    @staticmethod
    async def clear_cart(owner_filter: dict, db: AsyncIOMotorDatabase) -> CartResponse:
        """Clear all items from cart."""
        cart = await CartService.get_or_create_cart(owner_filter, db)

        cart["items"] = []
        CartService.recalculate_totals(cart)
        await CartService.save_cart(cart, db)

        return CartResponse(items=[], total_amount=0.0, total_items=0)
