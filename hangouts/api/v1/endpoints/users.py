from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from hangouts.core.database import get_db
from hangouts.core.websocket import ChatChannel
from hangouts.api.deps import get_current_user, get_chat_channel
from hangouts.schemas.friendship import FollowList, FollowStatus
from hangouts.schemas.user import User, UserWithRelation
from hangouts.models.user import User as UserModel
from hangouts.repositories.user import UserRepository
from hangouts.services.friendship import RelationshipService

router = APIRouter()


@router.get("/", response_model=List[UserWithRelation])
async def list_users(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Every other user, with follow and friendship flags"""
    service = RelationshipService(db)
    return await service.list_users(current_user.id)


@router.get("/me", response_model=User)
async def get_current_user_profile(
    current_user: UserModel = Depends(get_current_user)
):
    """Get current user profile"""
    return current_user


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_current_user(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    channel: ChatChannel = Depends(get_chat_channel)
):
    """Delete current user account along with its edges and chats"""
    user_id = current_user.id
    user_repo = UserRepository(db)
    chat_ids = await user_repo.delete(user_id)

    for chat_id in chat_ids:
        channel.drop_topic(chat_id)
    await channel.disconnect_user(user_id)
    return None


@router.post("/{user_id}/follow", response_model=FollowStatus, status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    channel: ChatChannel = Depends(get_chat_channel)
):
    """Follow another user"""
    service = RelationshipService(db, channel)
    return await service.follow(current_user.id, user_id)


@router.delete("/{user_id}/follow", response_model=FollowStatus)
async def unfollow_user(
    user_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Stop following a user"""
    service = RelationshipService(db)
    return await service.unfollow(current_user.id, user_id)


@router.get("/{user_id}/following-status", response_model=FollowStatus)
async def following_status(
    user_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Whether the current user follows the given user"""
    service = RelationshipService(db)
    return await service.is_following(current_user.id, user_id)


@router.get("/{user_id}/followers", response_model=FollowList)
async def list_followers(
    user_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = RelationshipService(db)
    return await service.list_followers(user_id)


@router.get("/{user_id}/following", response_model=FollowList)
async def list_following(
    user_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = RelationshipService(db)
    return await service.list_following(user_id)
