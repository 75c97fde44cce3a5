from fastapi import APIRouter, Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db
from app.schemas.user import ShopResponse
from app.utils.helpers import to_object_id

router = APIRouter()


@router.get("/{shop_id}", response_model=ShopResponse)
async def get_shop(
    shop_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Get shop profile by ID."""
    object_id = to_object_id(shop_id)
    shop = await db.shops.find_one({"_id": object_id}) if object_id else None

    if not shop:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Shop not found"
        )

    return ShopResponse(
        id=str(shop["_id"]),
        owner_id=shop["owner_id"],
        shop_name=shop["shop_name"],
        description=shop.get("description") or "",
        is_active=shop.get("is_active", True),
        created_at=shop["created_at"]
    )
