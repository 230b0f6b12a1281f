from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hangouts.core.database import get_db
from hangouts.core.websocket import ChatChannel
from hangouts.models.user import User
from hangouts.services.auth import AuthService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the caller from the bearer token"""
    token = credentials.credentials if credentials else None
    return await AuthService(db).user_from_token(token)


def get_chat_channel(request: Request) -> ChatChannel:
    """The application's fan-out registry, created in the lifespan"""
    return request.app.state.chat_channel
