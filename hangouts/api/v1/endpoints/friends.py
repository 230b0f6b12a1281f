from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hangouts.core.database import get_db
from hangouts.api.deps import get_current_user
from hangouts.schemas.friendship import (
    ActionResult, FriendRequestCreate, FriendRequestDetail, FriendsList, PendingRequests
)
from hangouts.models.user import User as UserModel
from hangouts.services.friendship import RelationshipService

router = APIRouter()


@router.post("/requests", response_model=FriendRequestDetail, status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    request_data: FriendRequestCreate,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Send a friend request to another user"""
    service = RelationshipService(db)
    return await service.send_friend_request(current_user.id, request_data.target_id)


@router.get("/requests", response_model=PendingRequests)
async def get_pending_requests(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get all pending friend requests (sent and received)"""
    service = RelationshipService(db)
    return await service.list_pending(current_user.id)


@router.post("/requests/{request_id}/accept", response_model=FriendRequestDetail)
async def accept_friend_request(
    request_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Accept a friend request addressed to the current user"""
    service = RelationshipService(db)
    return await service.accept_friend_request(request_id, current_user.id)


@router.delete("/requests/{request_id}", response_model=ActionResult)
async def delete_friend_request(
    request_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a sent request or decline a received one"""
    service = RelationshipService(db)
    await service.cancel_friend_request(request_id, current_user.id)
    return ActionResult(message="Friend request deleted")


@router.get("/", response_model=FriendsList)
async def get_friends(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get list of current user's friends"""
    service = RelationshipService(db)
    return await service.list_friends(current_user.id)


@router.delete("/{friend_id}", response_model=ActionResult)
async def unfriend_user(
    friend_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Remove friendship with another user, on both sides"""
    service = RelationshipService(db)
    await service.unfriend(current_user.id, friend_id)
    return ActionResult(message="Unfriended successfully")
