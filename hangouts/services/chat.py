import logging
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from hangouts.core.websocket import ChatChannel
from hangouts.models.chat import Chat as ChatModel
from hangouts.repositories.chat import ChatRepository
from hangouts.repositories.user import UserRepository
from hangouts.schemas.chat import Chat, ChatList, Message, MessageList, OutgoingEvent, ServerEventType
from hangouts.services.rendering import MessageRenderer, render_message
from hangouts.utils.exceptions import (
    AuthorizationError, InvalidArgumentError, NotFoundError, ValidationError
)

logger = logging.getLogger(__name__)


class ChatService:

    def __init__(
        self,
        db: AsyncSession,
        channel: Optional[ChatChannel] = None,
        renderer: MessageRenderer = render_message
    ):
        self.db = db
        self.chat_repo = ChatRepository(db)
        self.user_repo = UserRepository(db)
        self.channel = channel
        self.renderer = renderer

    async def get_or_create_chat(self, user_id: int, other_user_id: int) -> Chat:
        """Return the one chat between two users, creating it on first use"""
        if user_id == other_user_id:
            raise InvalidArgumentError("Cannot start a chat with yourself")

        await self.user_repo.get_or_404(user_id)
        await self.user_repo.get_or_404(other_user_id)

        chat, created = await self.chat_repo.get_or_create_chat(user_id, other_user_id)
        if created:
            logger.info(f"Created chat {chat.id} between users {user_id} and {other_user_id}")
        return Chat.model_validate(chat)

    async def list_chats_involving(self, user_id: int) -> ChatList:
        chats = await self.chat_repo.get_user_chats(user_id)
        return ChatList(chats=[Chat.model_validate(c) for c in chats], total_count=len(chats))

    async def chat_ids_involving(self, user_id: int) -> List[int]:
        return [chat.id for chat in await self.chat_repo.get_user_chats(user_id)]

    async def _get_chat(self, chat_id: int, user_id: Optional[int] = None) -> ChatModel:
        chat = await self.chat_repo.get_chat_by_id(chat_id)
        if not chat:
            raise NotFoundError("Chat not found")
        if user_id is not None and not chat.involves(user_id):
            raise AuthorizationError("You are not a participant in this chat")
        return chat

    async def get_chat(self, chat_id: int, user_id: Optional[int] = None) -> Chat:
        """Look up a chat; with user_id, only its participants may see it"""
        return Chat.model_validate(await self._get_chat(chat_id, user_id))

    async def get_history(self, chat_id: int, user_id: Optional[int] = None) -> MessageList:
        """The trailing window of messages, oldest first"""
        await self._get_chat(chat_id, user_id)
        messages = await self.chat_repo.get_recent_messages(chat_id)
        return MessageList(
            messages=[Message.model_validate(m) for m in messages],
            total_count=len(messages)
        )

    async def post_message(self, chat_id: int, user_id: int, body: Optional[str]) -> Message:
        """Persist a message and fan it out to the chat's subscribers"""
        await self._get_chat(chat_id, user_id)

        if body is None or not body.strip():
            raise ValidationError("Message body can't be blank")

        message = await self.chat_repo.create_message(chat_id, user_id, body)

        if self.channel is not None:
            event = OutgoingEvent(
                type=ServerEventType.MESSAGE,
                chat_id=chat_id,
                message=self.renderer(message)
            )
            await self.channel.publish(chat_id, event.model_dump(mode="json", exclude_none=True))

        return Message.model_validate(message)

    async def delete_chat(self, chat_id: int, user_id: Optional[int] = None) -> None:
        """Delete a chat; its messages go with it"""
        chat = await self._get_chat(chat_id, user_id)
        await self.chat_repo.delete_chat(chat)
        if self.channel is not None:
            self.channel.drop_topic(chat_id)
        logger.info(f"Deleted chat {chat_id}")
