"""Upsell rule schemas for API request/response validation."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, model_validator

from app.models.upsell_rule import DiscountType, RuleConditions, RulePriority, RuleType


class UpsellRuleCreate(BaseModel):
    """Schema for creating an upsell/cross-sell rule."""
    rule_name: str = Field(min_length=1)
    rule_type: RuleType
    discount_type: DiscountType = DiscountType.FLAT
    discount_value: float = Field(default=0, ge=0)
    priority: RulePriority = RulePriority.MEDIUM
    offered_products: List[str] = Field(min_length=1)
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_percentage(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "rule_name": "Upgrade to Pro headphones",
                "rule_type": "upsell",
                "discount_type": "flat",
                "discount_value": 50,
                "priority": "high",
                "offered_products": ["65a1f0c2e4b0a1b2c3d4e5f6"],
                "conditions": {
                    "min_cart_value": 1000,
                    "max_cart_value": 0,
                    "trigger_products": [],
                    "trigger_categories": []
                },
                "description": "Offer the Pro model to anyone buying headphones"
            }
        }


class UpsellRuleUpdate(BaseModel):
    """Schema for updating a rule. Only the provided fields are changed."""
    rule_name: Optional[str] = Field(None, min_length=1)
    rule_type: Optional[RuleType] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(None, ge=0)
    priority: Optional[RulePriority] = None
    offered_products: Optional[List[str]] = Field(None, min_length=1)
    conditions: Optional[RuleConditions] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def check_percentage(self):
        if (
            self.discount_type == DiscountType.PERCENTAGE
            and self.discount_value is not None
            and self.discount_value > 100
        ):
            raise ValueError("Percentage discount cannot exceed 100")
        return self

    class Config:
        use_enum_values = True


class OfferedProductSummary(BaseModel):
    """Offered product as shown in rule listings."""
    id: str
    product_name: str
    unit_price: float
    discount_type: Optional[str] = None
    discount_value: float = 0
    icon: Optional[str] = None


class RuleStatsResponse(BaseModel):
    """Schema for rule analytics."""
    impressions: int
    conversions: int
    revenue: float
    conversion_rate: float  # percent


class UpsellRuleResponse(BaseModel):
    """Schema for rule response."""
    id: str
    shop_id: str
    rule_name: str
    rule_type: str
    discount_type: str
    discount_value: float
    priority: str
    offered_products: List[str]
    offered_product_details: Optional[List[OfferedProductSummary]] = None
    conditions: RuleConditions
    description: Optional[str] = None
    is_active: bool
    stats: RuleStatsResponse
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UpsellRuleListResponse(BaseModel):
    """Schema for a list of rules."""
    success: bool = True
    rules: List[UpsellRuleResponse]


class UpsellRuleEnvelope(BaseModel):
    """Schema wrapping a single rule with an optional message."""
    success: bool = True
    rule: UpsellRuleResponse
    message: Optional[str] = None


class RuleStatsEnvelope(BaseModel):
    """Schema wrapping rule stats."""
    success: bool = True
    stats: RuleStatsResponse


class ApplicableRulesResponse(BaseModel):
    """Schema for the rules applicable to a cart, keyed by shop id."""
    success: bool = True
    rules: Dict[str, Any]
    message: Optional[str] = None


class ApplyUpsellRequest(BaseModel):
    """Schema for accepting an upsell offer (replace a cart line)."""
    rule_id: str
    selected_product_id: str
    replaced_product_id: str  # product id of the line, or its item_id
    session_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "rule_id": "65a1f0c2e4b0a1b2c3d4e5aa",
                "selected_product_id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "replaced_product_id": "65a1f0c2e4b0a1b2c3d4e5f1",
                "session_id": "guest-7f3a"
            }
        }


class ApplyCrossSellRequest(BaseModel):
    """Schema for accepting a cross-sell offer (add a product)."""
    rule_id: str
    selected_product_id: str
    session_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "rule_id": "65a1f0c2e4b0a1b2c3d4e5bb",
                "selected_product_id": "65a1f0c2e4b0a1b2c3d4e5f7",
                "session_id": "guest-7f3a"
            }
        }
