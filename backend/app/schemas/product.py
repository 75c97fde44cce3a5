from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.models.upsell_rule import DiscountType


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    product_name: str
    description: str = ""
    unit_price: float = Field(gt=0)
    discount_type: Optional[DiscountType] = None
    discount_value: float = Field(default=0, ge=0)
    icon: Optional[str] = None
    category_id: Optional[str] = None
    stock: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True


class ProductResponse(BaseModel):
    """Schema for product response."""
    id: str
    shop_id: str
    product_name: str
    description: str
    unit_price: float
    discount_type: Optional[str] = None
    discount_value: float
    base_price: float  # unit price after the product's own discount
    icon: Optional[str] = None
    category_id: Optional[str] = None
    stock: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
