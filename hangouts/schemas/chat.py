from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import List, Optional, Dict, Any
from enum import Enum

from hangouts.schemas.user import UserSummary


class ClientOp(str, Enum):
    SUBSCRIBE = "subscribe"
    SEND_MESSAGE = "send_message"
    PING = "ping"


class ServerEventType(str, Enum):
    MESSAGE = "message"
    NOTIFICATION = "notification"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    PONG = "pong"


# Message Schemas
class MessageCreate(BaseModel):
    body: str


class Message(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    user_id: int
    body: str
    created_at: Optional[datetime] = None
    author: UserSummary


class MessageList(BaseModel):
    messages: List[Message]
    total_count: int


# Chat Schemas
class ChatCreate(BaseModel):
    user_id: int


class Chat(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    created_at: Optional[datetime] = None


class ChatList(BaseModel):
    chats: List[Chat]
    total_count: int


# WebSocket Schemas
class IncomingMessage(BaseModel):
    op: ClientOp
    chat_id: Optional[int] = None
    body: Optional[str] = None


class OutgoingEvent(BaseModel):
    type: ServerEventType
    chat_id: Optional[int] = None
    chat_ids: Optional[List[int]] = None
    message: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None
