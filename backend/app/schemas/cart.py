from typing import List, Optional
from pydantic import BaseModel, Field

from app.models.cart import CrossSellSnapshot, UpsellSnapshot


class AddToCartRequest(BaseModel):
    """Schema for adding a product to cart."""
    product_id: str
    quantity: int = Field(default=1, gt=0)
    session_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "prod123",
                "quantity": 2,
                "session_id": "guest-7f3a"
            }
        }


class UpdateCartItemRequest(BaseModel):
    """Schema for updating cart item quantity."""
    quantity: int = Field(gt=0)
    session_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "quantity": 3
            }
        }


class CartItemResponse(BaseModel):
    """Schema for cart item response."""
    item_id: str
    product_id: str
    shop_id: str
    quantity: int
    price_at_addition: float
    current_price: float
    product_name: str
    icon: Optional[str] = None
    stock: int
    subtotal: float
    price_changed: bool = False
    stock_warning: bool = False
    upsell_rule_applied: Optional[UpsellSnapshot] = None
    cross_sell_rule_applied: Optional[CrossSellSnapshot] = None

    class Config:
        from_attributes = True


class CartResponse(BaseModel):
    """Schema for cart response."""
    items: List[CartItemResponse]
    total_amount: float
    total_items: int

    class Config:
        from_attributes = True


class CartMutationResponse(BaseModel):
    """Schema for the result of accepting or removing an offer."""
    success: bool = True
    message: str
    cart: CartResponse
