from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from app.models.upsell_rule import DiscountType


class Product(BaseModel):
    """Product model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    shop_id: str
    product_name: str
    description: str = ""
    unit_price: float = Field(gt=0)
    discount_type: Optional[DiscountType] = None  # Product's own discount
    discount_value: float = Field(default=0, ge=0)
    icon: Optional[str] = None
    category_id: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "shop_id": "shop123",
                "product_name": "Wireless Headphones",
                "description": "Noise cancelling over-ear headphones",
                "unit_price": 1499.0,
                "discount_type": "percentage",
                "discount_value": 10,
                "icon": "https://example.com/headphones.jpg",
                "category_id": "cat123",
                "stock": 40
            }
        }
