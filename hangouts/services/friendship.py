import logging
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from hangouts.core.websocket import ChatChannel
from hangouts.repositories.friendship import RelationshipRepository
from hangouts.repositories.user import UserRepository
from hangouts.schemas.friendship import (
    FollowList, FollowStatus, FriendRequestDetail, FriendsList, PendingRequests
)
from hangouts.schemas.chat import OutgoingEvent, ServerEventType
from hangouts.schemas.user import UserSummary, UserWithRelation
from hangouts.utils.exceptions import (
    AuthorizationError, DuplicateEdgeError, InvalidArgumentError, NotFoundError
)

logger = logging.getLogger(__name__)


class RelationshipService:

    def __init__(self, db: AsyncSession, channel: Optional[ChatChannel] = None):
        self.db = db
        self.repo = RelationshipRepository(db)
        self.user_repo = UserRepository(db)
        self.channel = channel

    # Users index
    async def list_users(self, current_user_id: int) -> List[UserWithRelation]:
        """Every other user, annotated with how the current user relates to them"""
        users = await self.user_repo.list_except(current_user_id)
        following = {u.id for u in await self.repo.get_following(current_user_id)}
        friends = {u.id for u in await self.repo.get_friends(current_user_id)}
        return [
            UserWithRelation(
                id=user.id,
                username=user.username,
                is_following=user.id in following,
                is_friend=user.id in friends
            )
            for user in users
        ]

    # Follow
    async def follow(self, follower_id: int, followee_id: int) -> FollowStatus:
        if follower_id == followee_id:
            raise InvalidArgumentError("Cannot follow yourself")

        await self.user_repo.get_or_404(followee_id)
        await self.repo.create_follow(follower_id, followee_id)
        logger.info(f"User {follower_id} followed user {followee_id}")

        if self.channel is not None:
            follower = await self.user_repo.get_or_404(follower_id)
            event = OutgoingEvent(
                type=ServerEventType.NOTIFICATION,
                data={
                    "kind": "follow",
                    "user": UserSummary.model_validate(follower).model_dump()
                }
            )
            await self.channel.notify_user(followee_id, event.model_dump(mode="json", exclude_none=True))

        return FollowStatus(follower_id=follower_id, followee_id=followee_id, is_following=True)

    async def unfollow(self, follower_id: int, followee_id: int) -> FollowStatus:
        await self.repo.delete_follow(follower_id, followee_id)
        logger.info(f"User {follower_id} unfollowed user {followee_id}")
        return FollowStatus(follower_id=follower_id, followee_id=followee_id, is_following=False)

    async def is_following(self, follower_id: int, followee_id: int) -> FollowStatus:
        return FollowStatus(
            follower_id=follower_id,
            followee_id=followee_id,
            is_following=await self.repo.is_following(follower_id, followee_id)
        )

    async def list_followers(self, user_id: int) -> FollowList:
        await self.user_repo.get_or_404(user_id)
        users = await self.repo.get_followers(user_id)
        return FollowList(users=[UserSummary.model_validate(u) for u in users], total_count=len(users))

    async def list_following(self, user_id: int) -> FollowList:
        await self.user_repo.get_or_404(user_id)
        users = await self.repo.get_following(user_id)
        return FollowList(users=[UserSummary.model_validate(u) for u in users], total_count=len(users))

    # Friend requests
    async def send_friend_request(self, requester_id: int, target_id: int) -> FriendRequestDetail:
        """Send a friend request"""
        if requester_id == target_id:
            raise InvalidArgumentError("Cannot send friend request to yourself")

        await self.user_repo.get_or_404(target_id)

        if await self.repo.are_friends(requester_id, target_id):
            raise DuplicateEdgeError("You are already friends with this user")

        friend_request = await self.repo.create_friend_request(requester_id, target_id)
        logger.info(f"User {requester_id} sent friend request {friend_request.id} to user {target_id}")
        return FriendRequestDetail.model_validate(friend_request)

    async def cancel_friend_request(self, request_id: int, user_id: Optional[int] = None) -> None:
        """Delete a pending request; either endpoint may do so when user_id is given"""
        friend_request = await self.repo.get_friend_request(request_id)
        if not friend_request:
            raise NotFoundError("Friend request not found")
        if user_id is not None and user_id not in (friend_request.requester_id, friend_request.target_id):
            raise AuthorizationError("You cannot cancel this friend request")

        await self.repo.delete_friend_request(request_id)
        logger.info(f"Friend request {request_id} cancelled")

    async def accept_friend_request(self, request_id: int, user_id: Optional[int] = None) -> FriendRequestDetail:
        """Accept a request, turning it into a mutual friendship"""
        friend_request = await self.repo.get_friend_request(request_id)
        if not friend_request:
            raise NotFoundError("Friend request not found")
        if user_id is not None and user_id != friend_request.target_id:
            raise AuthorizationError("Only the recipient can accept a friend request")

        detail = FriendRequestDetail.model_validate(friend_request)
        await self.repo.accept_friend_request(request_id)
        logger.info(
            f"Friend request {request_id} accepted: users {detail.requester_id} and {detail.target_id} are friends"
        )
        return detail

    async def unfriend(self, user_id: int, friend_id: int) -> None:
        if user_id == friend_id:
            raise InvalidArgumentError("Cannot unfriend yourself")

        await self.repo.delete_friendship(user_id, friend_id)
        logger.info(f"User {user_id} unfriended user {friend_id}")

    async def list_friends(self, user_id: int) -> FriendsList:
        friends = await self.repo.get_friends(user_id)
        return FriendsList(
            friends=[UserSummary.model_validate(f) for f in friends],
            total_count=len(friends)
        )

    async def list_pending(self, user_id: int) -> PendingRequests:
        """Get pending friend requests (sent and received)"""
        sent = [FriendRequestDetail.model_validate(r) for r in await self.repo.get_pending_outgoing(user_id)]
        received = [FriendRequestDetail.model_validate(r) for r in await self.repo.get_pending_incoming(user_id)]
        return PendingRequests(
            sent_requests=sent,
            received_requests=received,
            total_sent=len(sent),
            total_received=len(received)
        )
