from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Shop(BaseModel):
    """Shop model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    owner_id: str
    shop_name: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "owner_id": "user123",
                "shop_name": "Tech Store",
                "description": "Best electronics in town",
                "is_active": True
            }
        }
