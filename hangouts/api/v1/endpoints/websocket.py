import json
import uuid
import logging
from typing import Optional
from fastapi import WebSocket, WebSocketDisconnect, status, Query
from pydantic import ValidationError as SchemaValidationError

from hangouts.core.database import AsyncSessionLocal
from hangouts.core.websocket import ChatChannel
from hangouts.schemas.chat import ClientOp, IncomingMessage, OutgoingEvent, ServerEventType
from hangouts.services.auth import AuthService
from hangouts.services.chat import ChatService
from hangouts.utils.exceptions import AuthenticationError, HangoutsException

logger = logging.getLogger(__name__)


def _event(event_type: ServerEventType, **fields) -> dict:
    return OutgoingEvent(type=event_type, **fields).model_dump(mode="json", exclude_none=True)


async def send_error(channel: ChatChannel, connection_id: str, message: str, code: str):
    await channel.send(connection_id, _event(
        ServerEventType.ERROR,
        data={"message": message, "code": code}
    ))


async def subscribe_to_chats(channel: ChatChannel, connection_id: str, user_id: int):
    """Register the connection on every chat the user is in right now"""
    async with AsyncSessionLocal() as db:
        chat_ids = await ChatService(db).chat_ids_involving(user_id)

    subscribed = channel.subscribe(connection_id, chat_ids)
    logger.info(f"User {user_id} subscribed to {len(subscribed)} chats: {subscribed}")
    await channel.send(connection_id, _event(ServerEventType.SUBSCRIBED, chat_ids=subscribed))


async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="JWT access token")
):
    """WebSocket endpoint for real-time chat"""
    channel: ChatChannel = websocket.app.state.chat_channel

    async with AsyncSessionLocal() as db:
        try:
            user = await AuthService(db).user_from_token(token)
        except AuthenticationError:
            logger.info("Rejected WebSocket connection with invalid token")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        user_id = user.id

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    channel.connect(connection_id, websocket, user_id)

    try:
        await subscribe_to_chats(channel, connection_id, user_id)

        while True:
            data = await websocket.receive_text()
            await handle_websocket_message(data, channel, connection_id, user_id)

    except WebSocketDisconnect:
        logger.info(f"WebSocket {connection_id} of user {user_id} disconnected")
    finally:
        channel.unsubscribe(connection_id)


async def handle_websocket_message(data: str, channel: ChatChannel, connection_id: str, user_id: int):
    """Dispatch one client frame; failures are reported back, never raised"""
    try:
        incoming = IncomingMessage(**json.loads(data))
    except json.JSONDecodeError:
        await send_error(channel, connection_id, "Invalid JSON format", "INVALID_JSON")
        return
    except (SchemaValidationError, TypeError) as e:
        await send_error(channel, connection_id, f"Invalid message format: {e}", "INVALID_FORMAT")
        return

    try:
        if incoming.op == ClientOp.SUBSCRIBE:
            await subscribe_to_chats(channel, connection_id, user_id)

        elif incoming.op == ClientOp.SEND_MESSAGE:
            if incoming.chat_id is None:
                await send_error(channel, connection_id, "chat_id is required for send_message", "MISSING_FIELDS")
                return

            async with AsyncSessionLocal() as db:
                await ChatService(db, channel).post_message(incoming.chat_id, user_id, incoming.body)

        elif incoming.op == ClientOp.PING:
            await channel.send(connection_id, _event(ServerEventType.PONG))

    except HangoutsException as e:
        await send_error(channel, connection_id, e.detail, e.code)
    except Exception:
        logger.exception(f"Error handling {incoming.op} for user {user_id}")
        await send_error(channel, connection_id, "Error processing message", "PROCESSING_ERROR")
