from datetime import datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field


class RuleType(str, Enum):
    """Upsell rule type enumeration."""
    UPSELL = "upsell"
    CROSS_SELL = "cross-sell"


class DiscountType(str, Enum):
    """Discount type enumeration."""
    FLAT = "flat"
    PERCENTAGE = "percentage"


class RulePriority(str, Enum):
    """Rule priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Higher rank is evaluated first
PRIORITY_RANK = {
    RulePriority.HIGH.value: 3,
    RulePriority.MEDIUM.value: 2,
    RulePriority.LOW.value: 1,
}


class RuleConditions(BaseModel):
    """When a rule is eligible for a cart."""
    min_cart_value: float = Field(default=0, ge=0)
    max_cart_value: float = Field(default=0, ge=0)  # 0 means no upper limit
    trigger_products: List[str] = Field(default_factory=list)  # empty matches any cart
    trigger_categories: List[str] = Field(default_factory=list)


class RuleStats(BaseModel):
    """Running analytics for a rule."""
    impressions: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    revenue: float = Field(default=0.0, ge=0)

    @property
    def conversion_rate(self) -> float:
        return conversion_rate(self.impressions, self.conversions)


def conversion_rate(impressions: int, conversions: int) -> float:
    """Conversions per impression as a percentage, rounded to 2 decimals."""
    if not impressions:
        return 0.0
    return round(conversions / impressions * 100, 2)


class UpsellRule(BaseModel):
    """Upsell / cross-sell rule model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    shop_id: str
    rule_name: str
    rule_type: RuleType
    discount_type: DiscountType = DiscountType.FLAT
    discount_value: float = Field(default=0, ge=0)
    priority: RulePriority = RulePriority.MEDIUM
    offered_products: List[str] = Field(default_factory=list)
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    description: Optional[str] = None
    is_active: bool = True
    stats: RuleStats = Field(default_factory=RuleStats)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "shop_id": "shop123",
                "rule_name": "Upgrade to Pro headphones",
                "rule_type": "upsell",
                "discount_type": "flat",
                "discount_value": 50,
                "priority": "high",
                "offered_products": ["prod456"],
                "conditions": {
                    "min_cart_value": 1000,
                    "max_cart_value": 0,
                    "trigger_products": ["prod123"],
                    "trigger_categories": []
                },
                "is_active": True,
                "stats": {"impressions": 120, "conversions": 9, "revenue": 8550.0}
            }
        }
