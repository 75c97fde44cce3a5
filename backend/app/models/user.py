from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, EmailStr, Field


class UserRole(str, Enum):
    """User role enumeration."""
    SHOPKEEPER = "shopkeeper"
    CUSTOMER = "customer"


class User(BaseModel):
    """User model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    email: EmailStr
    password_hash: str
    role: UserRole
    full_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "role": "customer",
                "full_name": "Awa Kone"
            }
        }
