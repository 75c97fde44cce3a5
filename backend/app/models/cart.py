import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


def generate_item_id() -> str:
    """Generate a unique cart line id."""
    return uuid.uuid4().hex


class CrossSellSnapshot(BaseModel):
    """Cross-sell rule terms locked in on a cart line."""
    rule_id: str
    rule_name: str
    discount_type: str
    discount_value: float
    applied_at: datetime = Field(default_factory=datetime.utcnow)


class UpsellSnapshot(CrossSellSnapshot):
    """Upsell rule terms locked in on a cart line, plus the product it replaced."""
    original_product_id: str


class CartItem(BaseModel):
    """Item in a shopping cart."""
    item_id: str = Field(default_factory=generate_item_id)
    product_id: str
    shop_id: str
    quantity: int = Field(gt=0)
    price_at_addition: float = Field(ge=0)
    added_at: datetime = Field(default_factory=datetime.utcnow)
    # At most one of these is set on a line
    upsell_rule_applied: Optional[UpsellSnapshot] = None
    cross_sell_rule_applied: Optional[CrossSellSnapshot] = None


class Cart(BaseModel):
    """Shopping cart model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    user_id: Optional[str] = None
    session_id: Optional[str] = None  # For guest carts
    items: List[CartItem] = Field(default_factory=list)
    total_amount: float = 0.0
    total_items: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "user_id": "user123",
                "items": [
                    {
                        "item_id": "5f1c0e9b8a2d4c7f9e3b6a1d2c4e8f0a",
                        "product_id": "prod123",
                        "shop_id": "shop123",
                        "quantity": 2,
                        "price_at_addition": 299.99,
                        "added_at": "2024-01-01T00:00:00"
                    }
                ],
                "total_amount": 599.98,
                "total_items": 2,
                "created_at": "2024-01-01T00:00:00",
                "updated_at": "2024-01-01T00:00:00"
            }
        }
