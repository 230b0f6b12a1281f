from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hangouts.core.database import get_db
from hangouts.schemas.user import UserCreate, User, LoginRequest, Token
from hangouts.services.auth import AuthService

router = APIRouter()


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user"""
    auth_service = AuthService(db)
    return await auth_service.register(user_data)


@router.post("/login", response_model=Token)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with username and password"""
    auth_service = AuthService(db)
    user = await auth_service.authenticate(login_data.username, login_data.password)
    return auth_service.create_token(user)
