import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from hangouts.core.security import create_access_token, decode_token, verify_password
from hangouts.repositories.user import UserRepository
from hangouts.schemas.user import UserCreate, Token
from hangouts.models.user import User
from hangouts.utils.exceptions import AuthenticationError, ConflictError

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession):
        self.user_repo = UserRepository(db)

    async def register(self, user_data: UserCreate) -> User:
        """Register a new user"""
        if await self.user_repo.get_by_username(user_data.username):
            raise ConflictError("User with this email or username already exists")

        user = await self.user_repo.create(user_data)
        logger.info(f"Registered user {user.id} ({user.username})")
        return user

    async def authenticate(self, username: str, password: str) -> User:
        """Authenticate user with username and password"""
        user = await self.user_repo.get_by_username(username)
        if not user or not user.hashed_password:
            raise AuthenticationError("Incorrect username or password")

        if not verify_password(password, user.hashed_password):
            raise AuthenticationError("Incorrect username or password")

        if not user.is_active:
            raise AuthenticationError("Inactive user")

        return user

    def create_token(self, user: User) -> Token:
        return Token(access_token=create_access_token(user.id), token_type="bearer")

    async def user_from_token(self, token: Optional[str]) -> User:
        """Resolve the user a token was issued to"""
        payload = decode_token(token) if token else None
        if not payload or payload.get("type") != "access":
            raise AuthenticationError("Could not validate credentials")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise AuthenticationError("Could not validate credentials")

        user = await self.user_repo.get_by_id(user_id)
        if not user or not user.is_active:
            raise AuthenticationError("Could not validate credentials")

        return user
