from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr


class UserResponse(BaseModel):
    """Schema for user response."""
    id: str
    email: EmailStr
    role: str
    full_name: Optional[str] = None
    shop_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "user123",
                "email": "user@example.com",
                "role": "shopkeeper",
                "full_name": "Awa Kone",
                "shop_id": "shop123",
                "created_at": "2024-01-01T00:00:00"
            }
        }


class ShopResponse(BaseModel):
    """Schema for public shop profile."""
    id: str
    owner_id: str
    shop_name: str
    description: str = ""
    is_active: bool
    created_at: datetime
