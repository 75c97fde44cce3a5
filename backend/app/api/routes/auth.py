from fastapi import APIRouter, Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_current_user
from app.models.shop import Shop
from app.models.user import User, UserRole
from app.schemas.auth import Token, LoginRequest, RegisterRequest
from app.schemas.user import UserResponse
from app.core.security import get_password_hash, verify_password, create_access_token

router = APIRouter()


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Register a new user (shopkeeper or customer).

    For shopkeepers, a shop_name is required and their shop is created.
    """
    # Check if user already exists
    existing_user = await db.users.find_one({"email": request.email})
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    # Validate role
    if request.role not in [role.value for role in UserRole]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be either 'shopkeeper' or 'customer'"
        )

    # Validate shopkeeper requirements
    if request.role == UserRole.SHOPKEEPER.value and not request.shop_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="shop_name is required for shopkeepers"
        )

    user_data = User(
        email=request.email,
        password_hash=get_password_hash(request.password),
        role=request.role,
        full_name=request.full_name
    ).model_dump(exclude={"id"})

    result = await db.users.insert_one(user_data)
    user_id = str(result.inserted_id)

    # Create the shop if role is shopkeeper
    if request.role == UserRole.SHOPKEEPER.value:
        shop_data = Shop(owner_id=user_id, shop_name=request.shop_name).model_dump(exclude={"id"})
        await db.shops.insert_one(shop_data)

    access_token = create_access_token(data={"sub": user_id})

    return Token(access_token=access_token, token_type="bearer")


@router.post("/login", response_model=Token)
async def login(
    request: LoginRequest,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Login with email and password.

    Returns a JWT access token on success.
    """
    user = await db.users.find_one({"email": request.email})

    if not user or not verify_password(request.password, user["password_hash"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    access_token = create_access_token(data={"sub": str(user["_id"])})

    return Token(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get the current authenticated user's information.
    """
    shop_id = None
    if current_user["role"] == UserRole.SHOPKEEPER.value:
        shop = await db.shops.find_one({"owner_id": str(current_user["_id"])})
        shop_id = str(shop["_id"]) if shop else None

    return UserResponse(
        id=str(current_user["_id"]),
        email=current_user["email"],
        role=current_user["role"],
        full_name=current_user.get("full_name"),
        shop_id=shop_id,
        created_at=current_user["created_at"]
    )
