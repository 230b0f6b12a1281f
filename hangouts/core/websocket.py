import json
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from hangouts.core.config import settings

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


def chat_topic(chat_id: int) -> str:
    return f"chat:{chat_id}"


def user_topic(user_id: int) -> str:
    return f"notifications:{user_id}"


class ChatChannel:
    """In-process topic registry for chat fan-out.

    One instance lives for the lifetime of the application and is handed
    to whoever needs to publish. Connections register on one topic per
    chat they take part in, plus a personal notification topic. Delivery
    is at most once: a connection that is gone when a publish happens
    simply misses it.
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = settings.WS_SEND_TIMEOUT_SECONDS if send_timeout is None else send_timeout

        # connection_id -> connection
        self.connections: Dict[str, Connection] = {}

        # connection_id -> user_id
        self.connection_users: Dict[str, int] = {}

        # topic -> Set[connection_id]
        self.topic_listeners: Dict[str, Set[str]] = {}

        # connection_id -> Set[topic]
        self.connection_topics: Dict[str, Set[str]] = {}

        self.closed = False

    def connect(self, connection_id: str, connection: Connection, user_id: int):
        """Register a live connection and its personal notification topic"""
        if self.closed:
            raise RuntimeError("Chat channel is closed")

        self.connections[connection_id] = connection
        self.connection_users[connection_id] = user_id
        self.connection_topics.setdefault(connection_id, set())
        self._register(connection_id, user_topic(user_id))

        logger.info(f"Connection {connection_id} registered for user {user_id}")

    def subscribe(self, connection_id: str, chat_ids: Iterable[int]) -> List[int]:
        """Register the connection on each chat's topic.

        The set of chats is whatever the caller passes at this moment;
        chats created later need another subscribe call.
        """
        if connection_id not in self.connections:
            raise KeyError(f"Unknown connection {connection_id}")

        subscribed = []
        for chat_id in chat_ids:
            self._register(connection_id, chat_topic(chat_id))
            subscribed.append(chat_id)

        logger.debug(f"Connection {connection_id} subscribed to chats {subscribed}")
        return subscribed

    def unsubscribe(self, connection_id: str):
        """Drop the connection and every topic registration it holds"""
        for topic in self.connection_topics.pop(connection_id, set()):
            listeners = self.topic_listeners.get(topic)
            if listeners is None:
                continue
            listeners.discard(connection_id)
            if not listeners:
                del self.topic_listeners[topic]

        self.connections.pop(connection_id, None)
        user_id = self.connection_users.pop(connection_id, None)

        logger.info(f"Connection {connection_id} of user {user_id} unsubscribed")

    def drop_topic(self, chat_id: int):
        """Forget every registration on a deleted chat's topic"""
        topic = chat_topic(chat_id)
        for connection_id in self.topic_listeners.pop(topic, set()):
            topics = self.connection_topics.get(connection_id)
            if topics is not None:
                topics.discard(topic)

        logger.debug(f"Dropped topic {topic}")

    async def disconnect_user(self, user_id: int) -> int:
        """Unsubscribe and close every connection of a user"""
        connection_ids = [
            connection_id for connection_id, owner in self.connection_users.items()
            if owner == user_id
        ]
        for connection_id in connection_ids:
            connection = self.connections.get(connection_id)
            self.unsubscribe(connection_id)
            if connection is not None:
                await self._close_quietly(connection)

        logger.info(f"Closed {len(connection_ids)} connections of user {user_id}")
        return len(connection_ids)

    def _register(self, connection_id: str, topic: str):
        self.topic_listeners.setdefault(topic, set()).add(connection_id)
        self.connection_topics.setdefault(connection_id, set()).add(topic)

    def listeners(self, topic: str) -> Set[str]:
        return set(self.topic_listeners.get(topic, set()))

    def is_subscribed(self, connection_id: str, chat_id: int) -> bool:
        return connection_id in self.topic_listeners.get(chat_topic(chat_id), set())

    async def send(self, connection_id: str, payload: Dict[str, Any]) -> bool:
        """Push a payload to one connection; slow or broken ones are dropped"""
        connection = self.connections.get(connection_id)
        if connection is None:
            return False

        try:
            await asyncio.wait_for(
                connection.send_text(json.dumps(payload, default=str)),
                timeout=self.send_timeout
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Connection {connection_id} exceeded {self.send_timeout}s send timeout, dropping it")
        except Exception as e:
            logger.error(f"Error sending to connection {connection_id}: {e}")

        self.unsubscribe(connection_id)
        await self._close_quietly(connection)
        return False

    async def broadcast(self, topic: str, payload: Dict[str, Any]) -> int:
        """Push a payload to every current listener of a topic"""
        connection_ids = self.listeners(topic)
        if not connection_ids:
            logger.debug(f"No listeners on {topic}")
            return 0

        results = await asyncio.gather(
            *(self.send(connection_id, payload) for connection_id in connection_ids)
        )
        delivered = sum(1 for result in results if result)
        logger.info(f"Broadcast on {topic}: delivered to {delivered}/{len(connection_ids)} connections")
        return delivered

    async def publish(self, chat_id: int, payload: Dict[str, Any]) -> int:
        return await self.broadcast(chat_topic(chat_id), payload)

    async def notify_user(self, user_id: int, payload: Dict[str, Any]) -> int:
        return await self.broadcast(user_topic(user_id), payload)

    async def close(self):
        """Close every connection and forget all registrations"""
        self.closed = True
        connections = list(self.connections.items())
        for connection_id, connection in connections:
            self.unsubscribe(connection_id)
            await self._close_quietly(connection)
        logger.info(f"Chat channel closed, {len(connections)} connections released")

    async def _close_quietly(self, connection: Connection):
        try:
            await asyncio.wait_for(connection.close(), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Close handshake exceeded {self.send_timeout}s, abandoning connection")
        except Exception as e:
            logger.debug(f"Ignoring error while closing connection: {e}")
