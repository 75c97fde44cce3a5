from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from bson.errors import InvalidId
from app.core.database import get_database
from app.core.security import decode_access_token

# Security schemes
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    return get_database()


async def _load_user(token: str, db: AsyncIOMotorDatabase) -> Optional[dict]:
    """Resolve a bearer token to its user document, or None."""
    payload = decode_access_token(token)
    if payload is None:
        return None

    user_id: str = payload.get("sub")
    if user_id is None:
        return None

    try:
        return await db.users.find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        return await db.users.find_one({"_id": user_id})


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> dict:
    """
    Dependency to get the current authenticated user.

    Validates the JWT token and returns the user document from the database.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    user = await _load_user(credentials.credentials, db)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_shopkeeper(
    current_user: dict = Depends(get_current_user)
) -> dict:
    """
    Dependency to ensure the current user is a shopkeeper.

    Raises:
        HTTPException: If user is not a shopkeeper
    """
    if current_user.get("role") != "shopkeeper":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only shopkeepers can access this endpoint"
        )

    return current_user


async def get_current_shop(
    current_user: dict = Depends(get_current_shopkeeper),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> dict:
    """
    Dependency to get the active shop owned by the current shopkeeper.

    Raises:
        HTTPException: If the shopkeeper has no shop or it is deactivated
    """
    shop = await db.shops.find_one({"owner_id": str(current_user["_id"])})

    if not shop:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Shop not found"
        )

    if not shop.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Shop is not active"
        )

    return shop


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> Optional[dict]:
    """
    Dependency to optionally get the current user.
    Returns None if no valid token is provided, so guests can use their session id.
    """
    if not credentials:
        return None

    return await _load_user(credentials.credentials, db)
