from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, or_
from sqlalchemy.exc import IntegrityError

from hangouts.models.user import User
from hangouts.models.follow import Follow
from hangouts.models.friendship import FriendRequest, Friendship
from hangouts.models.chat import Chat, Message
from hangouts.schemas.user import UserCreate
from hangouts.core.security import get_password_hash
from hangouts.utils.exceptions import ConflictError, NotFoundError


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_data: UserCreate) -> User:
        """Create a new user"""
        db_user = User(
            email=user_data.email,
            username=user_data.username,
            hashed_password=get_password_hash(user_data.password),
            is_active=True,
        )
        self.db.add(db_user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("User with this email or username already exists")
        await self.db.refresh(db_user)
        return db_user

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID"""
        query = select(User).filter(User.id == user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_404(self, user_id: int) -> User:
        user = await self.get_by_id(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def get_by_username(self, username: str) -> Optional[User]:
        """Get user by username"""
        query = select(User).filter(User.username == username)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_except(self, user_id: int) -> List[User]:
        """All users other than the given one"""
        query = select(User).where(User.id != user_id).order_by(User.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete(self, user_id: int) -> List[int]:
        """Delete a user together with every edge and chat referencing it.

        Returns the ids of the chats that went with it.
        """
        user = await self.get_or_404(user_id)

        result = await self.db.execute(select(Chat.id).where(
            or_(Chat.sender_id == user_id, Chat.recipient_id == user_id)
        ))
        chat_ids = list(result.scalars().all())

        await self.db.execute(delete(Message).where(
            or_(Message.chat_id.in_(chat_ids), Message.user_id == user_id)
        ))
        await self.db.execute(delete(Chat).where(Chat.id.in_(chat_ids)))
        await self.db.execute(delete(Follow).where(
            or_(Follow.follower_id == user_id, Follow.followee_id == user_id)
        ))
        await self.db.execute(delete(FriendRequest).where(
            or_(FriendRequest.requester_id == user_id, FriendRequest.target_id == user_id)
        ))
        await self.db.execute(delete(Friendship).where(
            or_(Friendship.user_id == user_id, Friendship.friend_id == user_id)
        ))

        await self.db.delete(user)
        await self.db.commit()
        return chat_ids
