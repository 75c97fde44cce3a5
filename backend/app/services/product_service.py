from typing import Dict, Iterable, List, Optional
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase
from fastapi import HTTPException, status

from app.models.product import Product
from app.schemas.product import ProductCreate, ProductResponse
from app.utils.helpers import to_object_id, to_object_ids
from app.utils.pricing import product_base_price


class ProductService:
    """Service for product catalog lookups."""

    @staticmethod
    async def get_product(product_id: str, db: AsyncIOMotorDatabase) -> dict:
        """Get a single product or raise 400/404."""
        object_id = to_object_id(product_id)
        if object_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid product ID"
            )

        product = await db.products.find_one({"_id": object_id})
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found"
            )
        return product

    @staticmethod
    async def find_shop_products(
        product_ids: Iterable[str],
        shop_id: str,
        db: AsyncIOMotorDatabase
    ) -> List[dict]:
        """Resolve an id-set to the products of it that belong to `shop_id`."""
        try:
            object_ids = to_object_ids(set(product_ids))
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )

        if not object_ids:
            return []

        return await db.products.find(
            {"_id": {"$in": object_ids}, "shop_id": shop_id}
        ).to_list(length=None)

    @staticmethod
    async def get_products_by_ids(
        product_ids: Iterable[str],
        db: AsyncIOMotorDatabase
    ) -> Dict[str, dict]:
        """Map product id -> product document. Invalid or missing ids are left out."""
        object_ids = [oid for oid in (to_object_id(pid) for pid in set(product_ids)) if oid]
        if not object_ids:
            return {}

        products = await db.products.find({"_id": {"$in": object_ids}}).to_list(length=None)
        return {str(product["_id"]): product for product in products}

    @staticmethod
    async def create_product(
        shop_id: str,
        data: ProductCreate,
        db: AsyncIOMotorDatabase
    ) -> dict:
        """Create a product for a shop."""
        product_data = Product(shop_id=shop_id, **data.model_dump()).model_dump(exclude={"id"})

        result = await db.products.insert_one(product_data)
        product_data["_id"] = result.inserted_id
        return product_data

    @staticmethod
    async def list_products(
        db: AsyncIOMotorDatabase,
        shop_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 20
    ) -> List[dict]:
        """List products, newest first, optionally for one shop."""
        query = {"shop_id": shop_id} if shop_id else {}
        cursor = db.products.find(query).sort("created_at", -1).skip(skip).limit(limit)
        return await cursor.to_list(length=limit)

    @staticmethod
    def to_response(product: dict) -> ProductResponse:
        """Build the API response for a product document."""
        created_at = product.get("created_at", datetime.utcnow())
        return ProductResponse(
            id=str(product["_id"]),
            shop_id=product["shop_id"],
            product_name=product["product_name"],
            description=product.get("description", ""),
            unit_price=product["unit_price"],
            discount_type=product.get("discount_type"),
            discount_value=product.get("discount_value", 0),
            base_price=product_base_price(product),
            icon=product.get("icon"),
            category_id=product.get("category_id"),
            stock=product.get("stock", 0),
            created_at=created_at,
            updated_at=product.get("updated_at", created_at)
        )
