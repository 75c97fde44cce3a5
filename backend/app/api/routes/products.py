from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_current_shop
from app.schemas.product import ProductCreate, ProductResponse
from app.services.product_service import ProductService

router = APIRouter()


@router.get("", response_model=List[ProductResponse])
async def list_products(
    shop_id: Optional[str] = Query(None, description="Filter by shop"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """List products, newest first."""
    products = await ProductService.list_products(db, shop_id=shop_id, skip=skip, limit=limit)
    return [ProductService.to_response(product) for product in products]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Get a single product by ID."""
    product = await ProductService.get_product(product_id, db)
    return ProductService.to_response(product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    shop: dict = Depends(get_current_shop),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Create a new product (shopkeepers only).

    The product will be associated with the current shopkeeper's shop.
    """
    product_data = await ProductService.create_product(str(shop["_id"]), product, db)
    return ProductService.to_response(product_data)
