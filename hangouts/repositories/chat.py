import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from typing import List, Optional, Tuple

from hangouts.models.chat import Chat, Message
from hangouts.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

# Trailing window re-rendered when a client (re)connects
HISTORY_WINDOW = 20


def canonical_pair(user1_id: int, user2_id: int) -> Tuple[int, int]:
    return min(user1_id, user2_id), max(user1_id, user2_id)


class ChatRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    # Chat Management
    async def get_chat_by_id(self, chat_id: int) -> Optional[Chat]:
        stmt = select(Chat).where(Chat.id == chat_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_chat_by_pair(self, user1_id: int, user2_id: int) -> Optional[Chat]:
        """Get the chat between two users, in either order"""
        low, high = canonical_pair(user1_id, user2_id)
        stmt = select(Chat).where(and_(Chat.user_low_id == low, Chat.user_high_id == high))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_chat(self, sender_id: int, recipient_id: int) -> Tuple[Chat, bool]:
        """Return the pair's chat, creating it when missing.

        The unique constraint on the canonical pair decides concurrent
        first-time calls: the losing insert is rolled back and re-read.
        """
        existing = await self.get_chat_by_pair(sender_id, recipient_id)
        if existing:
            return existing, False

        low, high = canonical_pair(sender_id, recipient_id)
        chat = Chat(
            sender_id=sender_id,
            recipient_id=recipient_id,
            user_low_id=low,
            user_high_id=high
        )
        self.db.add(chat)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_chat_by_pair(sender_id, recipient_id)
            if existing is None:
                # Not a lost race: a participant row is gone
                raise NotFoundError(f"User {sender_id} or {recipient_id} not found")
            logger.info(f"Chat for pair ({low}, {high}) created concurrently, reusing {existing.id}")
            return existing, False

        await self.db.refresh(chat)
        return chat, True

    async def get_user_chats(self, user_id: int) -> List[Chat]:
        stmt = select(Chat).where(
            or_(Chat.sender_id == user_id, Chat.recipient_id == user_id)
        ).order_by(Chat.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Message Management
    async def create_message(self, chat_id: int, user_id: int, body: str) -> Message:
        """Create a new message"""
        message = Message(chat_id=chat_id, user_id=user_id, body=body)
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)

        # Load author relationship
        await self.db.refresh(message, ['author'])

        return message

    async def get_recent_messages(self, chat_id: int, limit: int = HISTORY_WINDOW) -> List[Message]:
        """Most recent messages of a chat, oldest first"""
        stmt = select(Message).options(
            selectinload(Message.author)
        ).where(
            Message.chat_id == chat_id
        ).order_by(desc(Message.id)).limit(limit)

        result = await self.db.execute(stmt)
        messages = list(result.scalars().all())

        # Return messages in chronological order (oldest first)
        messages.reverse()
        return messages

    async def delete_chat(self, chat: Chat) -> None:
        await self.db.delete(chat)
        await self.db.commit()
