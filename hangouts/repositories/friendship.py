import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, and_, select, delete, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from typing import List, Optional

from hangouts.models.follow import Follow
from hangouts.models.friendship import FriendRequest, Friendship
from hangouts.models.user import User
from hangouts.utils.exceptions import DuplicateEdgeError, NotFoundError

logger = logging.getLogger(__name__)


class RelationshipRepository:
    """Follow, friend request and friendship edges between users"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Follow edges
    async def get_follow(self, follower_id: int, followee_id: int) -> Optional[Follow]:
        stmt = select(Follow).where(
            and_(Follow.follower_id == follower_id, Follow.followee_id == followee_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def is_following(self, follower_id: int, followee_id: int) -> bool:
        stmt = select(exists().where(
            and_(Follow.follower_id == follower_id, Follow.followee_id == followee_id)
        ))
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def create_follow(self, follower_id: int, followee_id: int) -> Follow:
        if await self.get_follow(follower_id, followee_id):
            raise DuplicateEdgeError("Already following this user")

        follow = Follow(follower_id=follower_id, followee_id=followee_id)
        self.db.add(follow)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEdgeError("Already following this user")
        await self.db.refresh(follow)
        return follow

    async def delete_follow(self, follower_id: int, followee_id: int) -> None:
        result = await self.db.execute(
            delete(Follow).where(
                and_(Follow.follower_id == follower_id, Follow.followee_id == followee_id)
            )
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError("Not following this user")
        await self.db.commit()

    async def get_followers(self, user_id: int) -> List[User]:
        stmt = select(User).join(Follow, Follow.follower_id == User.id).where(
            Follow.followee_id == user_id
        ).order_by(Follow.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_following(self, user_id: int) -> List[User]:
        stmt = select(User).join(Follow, Follow.followee_id == User.id).where(
            Follow.follower_id == user_id
        ).order_by(Follow.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Friend requests
    async def get_friend_request(self, request_id: int) -> Optional[FriendRequest]:
        """Get a specific friend request by ID"""
        stmt = select(FriendRequest).options(
            selectinload(FriendRequest.requester),
            selectinload(FriendRequest.target)
        ).where(FriendRequest.id == request_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_friend_request(self, requester_id: int, target_id: int) -> Optional[FriendRequest]:
        stmt = select(FriendRequest).where(
            and_(FriendRequest.requester_id == requester_id, FriendRequest.target_id == target_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_friend_request(self, requester_id: int, target_id: int) -> FriendRequest:
        """Create a new friend request"""
        if await self.find_friend_request(requester_id, target_id):
            raise DuplicateEdgeError("Friend request already sent")

        friend_request = FriendRequest(requester_id=requester_id, target_id=target_id)
        self.db.add(friend_request)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEdgeError("Friend request already sent")
        await self.db.refresh(friend_request, ['requester', 'target'])
        return friend_request

    async def delete_friend_request(self, request_id: int) -> None:
        result = await self.db.execute(
            delete(FriendRequest).where(FriendRequest.id == request_id)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError("Friend request not found")
        await self.db.commit()

    async def get_pending_outgoing(self, user_id: int) -> List[FriendRequest]:
        stmt = select(FriendRequest).options(
            selectinload(FriendRequest.requester),
            selectinload(FriendRequest.target)
        ).where(FriendRequest.requester_id == user_id).order_by(FriendRequest.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_incoming(self, user_id: int) -> List[FriendRequest]:
        stmt = select(FriendRequest).options(
            selectinload(FriendRequest.requester),
            selectinload(FriendRequest.target)
        ).where(FriendRequest.target_id == user_id).order_by(FriendRequest.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Friendships
    async def friendship_exists(self, user_id: int, friend_id: int) -> bool:
        stmt = select(exists().where(
            and_(Friendship.user_id == user_id, Friendship.friend_id == friend_id)
        ))
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def are_friends(self, user1_id: int, user2_id: int) -> bool:
        return await self.friendship_exists(user1_id, user2_id)

    async def _add_friendship_pair(self, user1_id: int, user2_id: int) -> None:
        # The inverse edge is only added when absent; no edge creation
        # ever triggers another one.
        for user_id, friend_id in ((user1_id, user2_id), (user2_id, user1_id)):
            if not await self.friendship_exists(user_id, friend_id):
                self.db.add(Friendship(user_id=user_id, friend_id=friend_id))

    async def accept_friend_request(self, request_id: int) -> None:
        """Replace a pending request with a mirrored friendship pair"""
        friend_request = await self.get_friend_request(request_id)
        if not friend_request:
            raise NotFoundError("Friend request not found")

        requester_id = friend_request.requester_id
        target_id = friend_request.target_id

        for attempt in range(2):
            await self.db.execute(delete(FriendRequest).where(
                or_(
                    and_(FriendRequest.requester_id == requester_id, FriendRequest.target_id == target_id),
                    and_(FriendRequest.requester_id == target_id, FriendRequest.target_id == requester_id)
                )
            ))
            await self._add_friendship_pair(requester_id, target_id)
            try:
                await self.db.commit()
                break
            except IntegrityError:
                # Someone else created part of the pair in the meantime
                await self.db.rollback()
                if attempt:
                    raise
                logger.info(
                    f"Friendship {requester_id}<->{target_id} raced with a concurrent writer, retrying"
                )

    async def delete_friendship(self, user1_id: int, user2_id: int) -> None:
        """Remove both directions of a friendship in one statement"""
        result = await self.db.execute(
            delete(Friendship).where(
                or_(
                    and_(Friendship.user_id == user1_id, Friendship.friend_id == user2_id),
                    and_(Friendship.user_id == user2_id, Friendship.friend_id == user1_id)
                )
            )
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError("Friendship not found")
        await self.db.commit()

    async def get_friends(self, user_id: int) -> List[User]:
        """Get list of friends for a user"""
        stmt = select(User).join(Friendship, Friendship.friend_id == User.id).where(
            Friendship.user_id == user_id
        ).order_by(Friendship.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
