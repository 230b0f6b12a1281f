import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import FakeConnection
from hangouts.core.database import Base
from hangouts.core.websocket import ChatChannel
from hangouts.models.chat import Chat as ChatModel, Message
from hangouts.models.friendship import FriendRequest, Friendship
from hangouts.repositories.chat import ChatRepository, HISTORY_WINDOW
from hangouts.repositories.friendship import RelationshipRepository
from hangouts.repositories.user import UserRepository
from hangouts.schemas.user import UserCreate
from hangouts.services.chat import ChatService
from hangouts.services.friendship import RelationshipService
from hangouts.utils.exceptions import (
    AuthorizationError, DuplicateEdgeError, InvalidArgumentError, NotFoundError, ValidationError
)

pytestmark = pytest.mark.anyio


async def _user(db, name):
    user = await UserRepository(db).create(
        UserCreate(username=name, email=f"{name}@example.com", password="secret123")
    )
    # Plain ids survive the rollbacks some of these paths perform
    return user.id


async def _friendship_count(db):
    result = await db.execute(select(func.count(Friendship.id)))
    return result.scalar()


async def test_accept_creates_symmetric_friendship(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    service = RelationshipService(db)

    request = await service.send_friend_request(u1, u2)
    await service.accept_friend_request(request.id)

    repo = RelationshipRepository(db)
    assert await repo.friendship_exists(u1, u2)
    assert await repo.friendship_exists(u2, u1)
    assert await repo.get_friend_request(request.id) is None

    # Destroying either side destroys both
    await service.unfriend(u2, u1)
    assert not await repo.friendship_exists(u1, u2)
    assert not await repo.friendship_exists(u2, u1)


async def test_accept_does_not_duplicate_existing_half(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    db.add(Friendship(user_id=u2, friend_id=u1))
    db.add(FriendRequest(requester_id=u1, target_id=u2))
    await db.commit()

    repo = RelationshipRepository(db)
    request = await repo.find_friend_request(u1, u2)
    await repo.accept_friend_request(request.id)

    assert await _friendship_count(db) == 2


async def test_accept_retries_after_concurrent_insert(db, monkeypatch):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    # Another writer already created one half of the pair
    db.add(Friendship(user_id=u2, friend_id=u1))
    db.add(FriendRequest(requester_id=u1, target_id=u2))
    await db.commit()

    repo = RelationshipRepository(db)
    real_exists = repo.friendship_exists
    stale_reads = {"left": 2}

    async def stale_exists(user_id, friend_id):
        if stale_reads["left"]:
            stale_reads["left"] -= 1
            return False
        return await real_exists(user_id, friend_id)

    monkeypatch.setattr(repo, "friendship_exists", stale_exists)

    request = await repo.find_friend_request(u1, u2)
    await repo.accept_friend_request(request.id)

    assert await _friendship_count(db) == 2
    assert await repo.find_friend_request(u1, u2) is None


async def test_relationship_errors(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    service = RelationshipService(db)

    with pytest.raises(InvalidArgumentError):
        await service.follow(u1, u1)
    with pytest.raises(InvalidArgumentError):
        await service.send_friend_request(u1, u1)
    with pytest.raises(NotFoundError):
        await service.unfollow(u1, u2)
    with pytest.raises(NotFoundError):
        await service.cancel_friend_request(12345)
    with pytest.raises(NotFoundError):
        await service.accept_friend_request(12345)

    await service.follow(u1, u2)
    with pytest.raises(DuplicateEdgeError):
        await service.follow(u1, u2)


async def test_follow_notifies_followee(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    channel = ChatChannel(send_timeout=1)
    conn = FakeConnection()
    channel.connect("c2", conn, u2)

    await RelationshipService(db, channel).follow(u1, u2)

    assert conn.sent == [{
        "type": "notification",
        "data": {"kind": "follow", "user": {"id": u1, "username": "u1"}},
    }]


async def test_get_or_create_chat_is_idempotent_in_either_order(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    service = ChatService(db)

    first = await service.get_or_create_chat(u1, u2)
    second = await service.get_or_create_chat(u2, u1)

    assert first.id == second.id
    assert first.sender_id == u1
    assert (await service.list_chats_involving(u2)).total_count == 1

    with pytest.raises(InvalidArgumentError):
        await service.get_or_create_chat(u1, u1)
    with pytest.raises(NotFoundError):
        await service.get_or_create_chat(u1, 999)
    with pytest.raises(NotFoundError):
        await service.get_chat(999)


async def test_get_or_create_chat_losing_writer_reads_winner(db, monkeypatch):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    repo = ChatRepository(db)
    winner, created = await repo.get_or_create_chat(u1, u2)
    assert created
    winner_id = winner.id

    real_lookup = repo.get_chat_by_pair
    calls = {"n": 0}

    async def lookup_missing_once(a, b):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return await real_lookup(a, b)

    monkeypatch.setattr(repo, "get_chat_by_pair", lookup_missing_once)

    chat, created = await repo.get_or_create_chat(u2, u1)

    assert created is False
    assert chat.id == winner_id
    assert len(await repo.get_user_chats(u1)) == 1


async def test_post_message_fans_out_rendered_message(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    channel = ChatChannel(send_timeout=1)
    listener = FakeConnection()
    channel.connect("c2", listener, u2)

    service = ChatService(db, channel)
    chat = await service.get_or_create_chat(u1, u2)
    channel.subscribe("c2", [chat.id])

    message = await service.post_message(chat.id, u1, "hi")

    assert message.body == "hi"
    assert len(listener.sent) == 1
    event = listener.sent[0]
    assert event["type"] == "message"
    assert event["chat_id"] == chat.id
    assert event["message"]["body"] == "hi"
    assert event["message"]["author"]["username"] == "u1"


async def test_post_message_uses_injected_renderer(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    channel = ChatChannel(send_timeout=1)
    listener = FakeConnection()
    channel.connect("c1", listener, u1)

    service = ChatService(db, channel, renderer=lambda m: {"html": f"<p>{m.body}</p>"})
    chat = await service.get_or_create_chat(u1, u2)
    channel.subscribe("c1", [chat.id])

    await service.post_message(chat.id, u2, "hello")

    assert listener.sent[0]["message"] == {"html": "<p>hello</p>"}


async def test_blank_message_is_rejected_and_not_persisted(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    channel = ChatChannel(send_timeout=1)
    listener = FakeConnection()
    channel.connect("c1", listener, u1)
    service = ChatService(db, channel)
    chat = await service.get_or_create_chat(u1, u2)
    channel.subscribe("c1", [chat.id])

    for body in ("", "   ", None):
        with pytest.raises(ValidationError):
            await service.post_message(chat.id, u2, body)

    count = await db.execute(select(func.count(Message.id)))
    assert count.scalar() == 0
    assert listener.sent == []


async def test_only_participants_may_post_or_read(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    u3 = await _user(db, "u3")
    service = ChatService(db)
    chat = await service.get_or_create_chat(u1, u2)

    with pytest.raises(AuthorizationError):
        await service.post_message(chat.id, u3, "let me in")
    with pytest.raises(AuthorizationError):
        await service.get_history(chat.id, u3)
    with pytest.raises(NotFoundError):
        await service.post_message(999, u1, "hi")


async def test_history_is_trailing_window_oldest_first(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    service = ChatService(db)
    chat = await service.get_or_create_chat(u1, u2)

    for i in range(25):
        await service.post_message(chat.id, u1 if i % 2 else u2, f"message {i}")

    history = await service.get_history(chat.id, u1)

    assert history.total_count == HISTORY_WINDOW == 20
    assert [m.body for m in history.messages] == [f"message {i}" for i in range(5, 25)]


async def test_deleting_chat_deletes_its_messages(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    service = ChatService(db)
    chat = await service.get_or_create_chat(u1, u2)
    await service.post_message(chat.id, u1, "bye")

    await service.delete_chat(chat.id, u2)

    count = await db.execute(select(func.count(Message.id)))
    assert count.scalar() == 0
    with pytest.raises(NotFoundError):
        await service.get_chat(chat.id)


async def test_deleted_chat_id_is_not_reused_and_stops_fan_out(db):
    u1 = await _user(db, "u1")
    u2 = await _user(db, "u2")
    u3 = await _user(db, "u3")
    channel = ChatChannel(send_timeout=1)
    bystander = FakeConnection()
    channel.connect("u2-socket", bystander, u2)
    service = ChatService(db, channel)

    old = await service.get_or_create_chat(u1, u2)
    channel.subscribe("u2-socket", [old.id])
    await service.delete_chat(old.id, u1)

    assert not channel.is_subscribed("u2-socket", old.id)

    new = await service.get_or_create_chat(u1, u3)
    assert new.id != old.id

    await service.post_message(new.id, u1, "private to u3")
    assert bystander.sent == []


async def test_get_or_create_chat_with_missing_participant_is_not_found(db):
    u1 = await _user(db, "u1")
    repo = ChatRepository(db)

    # Bypasses the service's existence checks, as a concurrent user delete would
    with pytest.raises(NotFoundError):
        await repo.get_or_create_chat(u1, 999)

    assert await repo.get_user_chats(u1) == []


async def test_schema_rejects_chat_with_oneself(db):
    u1 = await _user(db, "u1")
    db.add(ChatModel(sender_id=u1, recipient_id=u1, user_low_id=u1, user_high_id=u1))

    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()


async def test_concurrent_get_or_create_chat_persists_one_row(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    sessions = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        async with sessions() as setup:
            u1 = await _user(setup, "u1")
            u2 = await _user(setup, "u2")

        async def open_chat(a, b):
            async with sessions() as session:
                chat, created = await ChatRepository(session).get_or_create_chat(a, b)
                return chat.id, created

        results = await asyncio.gather(open_chat(u1, u2), open_chat(u2, u1))

        assert results[0][0] == results[1][0]
        assert sum(created for _, created in results) == 1

        async with sessions() as check:
            count = await check.execute(select(func.count(ChatModel.id)))
            assert count.scalar() == 1
    finally:
        await engine.dispose()
