from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hangouts.core.database import get_db
from hangouts.core.websocket import ChatChannel
from hangouts.api.deps import get_current_user, get_chat_channel
from hangouts.schemas.chat import Chat, ChatCreate, ChatList, Message, MessageCreate, MessageList
from hangouts.models.user import User as UserModel
from hangouts.services.chat import ChatService

router = APIRouter()


@router.post("/", response_model=Chat)
async def create_or_get_chat(
    chat_data: ChatCreate,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Return the chat with another user, creating it on first use"""
    service = ChatService(db)
    return await service.get_or_create_chat(current_user.id, chat_data.user_id)


@router.get("/", response_model=ChatList)
async def get_chats(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get every chat the current user takes part in"""
    service = ChatService(db)
    return await service.list_chats_involving(current_user.id)


@router.get("/{chat_id}", response_model=Chat)
async def get_chat(
    chat_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ChatService(db)
    return await service.get_chat(chat_id, current_user.id)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    channel: ChatChannel = Depends(get_chat_channel)
):
    """Delete a chat and all of its messages"""
    service = ChatService(db, channel)
    await service.delete_chat(chat_id, current_user.id)
    return None


@router.get("/{chat_id}/messages", response_model=MessageList)
async def get_chat_messages(
    chat_id: int,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The last 20 messages of a chat, oldest first"""
    service = ChatService(db)
    return await service.get_history(chat_id, current_user.id)


@router.post("/{chat_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def post_message(
    chat_id: int,
    message_data: MessageCreate,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    channel: ChatChannel = Depends(get_chat_channel)
):
    """Send a message and push it to the chat's subscribers"""
    service = ChatService(db, channel)
    return await service.post_message(chat_id, current_user.id, message_data.body)
