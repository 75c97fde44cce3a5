from typing import Optional
from pydantic import BaseModel, EmailStr


class Token(BaseModel):
    """Token response schema."""
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    """Login request schema."""
    email: EmailStr
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "password": "strongpassword123"
            }
        }


class RegisterRequest(BaseModel):
    """Register request schema."""
    email: EmailStr
    password: str
    role: str  # "shopkeeper" or "customer"
    full_name: Optional[str] = None
    shop_name: Optional[str] = None  # Required for shopkeepers

    class Config:
        json_schema_extra = {
            "example": {
                "email": "shopkeeper@example.com",
                "password": "strongpassword123",
                "role": "shopkeeper",
                "full_name": "Awa Kone",
                "shop_name": "Tech Store"
            }
        }
