import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import select, update

from roomchat.core.exceptions import (
    InvalidInputException,
    MessageAccessDeniedException,
    MessageNotFoundException,
    ReplyTargetNotFoundException,
    RoomAccessDeniedException,
)
from roomchat.models.message import Message
from roomchat.schemas.message import MessageType
from roomchat.schemas.room import CreateRoomRequest
from roomchat.services.chat_service import ChatService
from roomchat.services.room_service import RoomService
from roomchat.utils.file_storage import StoredFile


@pytest.fixture
def room_service(async_session, ws_manager):
    return RoomService(async_session, ws_manager)

@pytest.fixture
def chat_service(room_service, async_session, ws_manager):
    return ChatService(room_service, async_session, ws_manager)

@pytest.fixture
async def room(room_service, test_user):
    return await room_service.create_room(test_user.id, CreateRoomRequest(name="Lobby"))


def test_clean_content():
    assert ChatService.clean_content("  hi  ") == "hi"
    assert ChatService.clean_content("", has_attachment=True) == ""
    assert ChatService.clean_content("x" * 1000) == "x" * 1000

    with pytest.raises(InvalidInputException, match="required"):
        ChatService.clean_content("   ")
    with pytest.raises(InvalidInputException, match="required"):
        ChatService.clean_content(None)
    with pytest.raises(InvalidInputException, match="too long"):
        ChatService.clean_content("x" * 1001)

@pytest.mark.asyncio
async def test_send_message_bumps_last_activity(chat_service, room_service, load_room, room, test_user):
    before = room.last_activity
    response = await chat_service.send_message(test_user, room.id, "hello")
    assert response.content == "hello"
    assert response.sender.username == test_user.username
    assert response.message_type == MessageType.TEXT

    room = await load_room(room.id)
    assert room.last_activity.replace(tzinfo=None) >= before.replace(tzinfo=None)

@pytest.mark.asyncio
async def test_send_message_auto_joins_public_room(chat_service, room_service, load_room, room, second_user):
    await chat_service.send_message(second_user, room.id, "hi there")
    room = await load_room(room.id)
    assert room.is_member(second_user.id)

@pytest.mark.asyncio
async def test_send_message_to_private_room_requires_membership(chat_service, room_service, async_session, test_user, second_user):
    vault = await room_service.create_room(
        test_user.id, CreateRoomRequest(name="Vault", is_private=True, password="pw")
    )
    with pytest.raises(RoomAccessDeniedException):
        await chat_service.send_message(second_user, vault.id, "let me in")
    assert (await async_session.execute(select(Message))).scalars().all() == []

@pytest.mark.asyncio
async def test_reply_must_target_same_room(chat_service, room_service, room, test_user):
    original = await chat_service.send_message(test_user, room.id, "question?")
    reply = await chat_service.send_message(test_user, room.id, "answer", reply_to_id=original.id)
    assert reply.reply_to.id == original.id
    assert reply.reply_to.content == "question?"
    assert reply.reply_to.sender.id == test_user.id

    other = await room_service.create_room(test_user.id, CreateRoomRequest(name="Elsewhere"))
    with pytest.raises(ReplyTargetNotFoundException):
        await chat_service.send_message(test_user, other.id, "wrong room", reply_to_id=original.id)
    with pytest.raises(ReplyTargetNotFoundException):
        await chat_service.send_message(test_user, room.id, "ghost", reply_to_id=uuid.uuid4())

@pytest.mark.asyncio
async def test_send_attachment_allows_empty_content(chat_service, room, test_user):
    stored = StoredFile(path="/tmp/abc.png", url="/uploads/abc.png", original_name="cat.png", size=42, message_type=MessageType.IMAGE)
    response = await chat_service.send_message(test_user, room.id, "", attachment=stored)
    assert response.content == ""
    assert response.message_type == MessageType.IMAGE
    assert response.file_url == "/uploads/abc.png"
    assert response.file_name == "cat.png"
    assert response.file_size == 42

@pytest.mark.asyncio
async def test_list_messages_oldest_first_with_pages(chat_service, room, test_user):
    for i in range(5):
        await chat_service.send_message(test_user, room.id, f"message {i}")

    listing = await chat_service.list_messages(test_user.id, room.id, page=1, limit=10)
    assert [m.content for m in listing.messages] == [f"message {i}" for i in range(5)]
    assert listing.total == 5
    assert listing.total_pages == 1

    newest = await chat_service.list_messages(test_user.id, room.id, page=1, limit=2)
    assert [m.content for m in newest.messages] == ["message 3", "message 4"]
    assert newest.total_pages == 3

    older = await chat_service.list_messages(test_user.id, room.id, page=3, limit=2)
    assert [m.content for m in older.messages] == ["message 0"]

@pytest.mark.asyncio
async def test_list_messages_keeps_send_order_for_equal_timestamps(chat_service, async_session, room, test_user, second_user):
    for sender, content in ((test_user, "first"), (second_user, "second"), (test_user, "third")):
        await chat_service.send_message(sender, room.id, content)

    seqs = (await async_session.execute(
        select(Message.content, Message.seq).filter(Message.room_id == room.id).order_by(Message.seq)
    )).all()
    assert [tuple(row) for row in seqs] == [("first", 1), ("second", 2), ("third", 3)]

    same_instant = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await async_session.execute(
        update(Message).where(Message.room_id == room.id).values(created_at=same_instant)
    )
    await async_session.commit()

    listing = await chat_service.list_messages(test_user.id, room.id, page=1, limit=10)
    assert [m.content for m in listing.messages] == ["first", "second", "third"]

@pytest.mark.asyncio
async def test_edit_message_only_by_sender(chat_service, room, test_user, second_user):
    sent = await chat_service.send_message(test_user, room.id, "draft")

    with pytest.raises(MessageAccessDeniedException):
        await chat_service.edit_message(sent.id, second_user.id, "hijacked")

    edited = await chat_service.edit_message(sent.id, test_user.id, "final")
    assert edited.content == "final"
    assert edited.is_edited
    assert edited.edited_at is not None

@pytest.mark.asyncio
async def test_delete_message_only_by_sender(chat_service, room, test_user, second_user):
    sent = await chat_service.send_message(test_user, room.id, "oops")

    with pytest.raises(MessageAccessDeniedException):
        await chat_service.delete_message(sent.id, second_user.id)

    await chat_service.delete_message(sent.id, test_user.id)
    with pytest.raises(MessageNotFoundException):
        await chat_service.delete_message(sent.id, test_user.id)

@pytest.mark.asyncio
async def test_reaction_toggle_is_an_involution(chat_service, room, test_user, second_user):
    sent = await chat_service.send_message(test_user, room.id, "react to me")
    seeded = await chat_service.toggle_reaction(sent.id, second_user.id, "👍")
    before = [(r.user.id, r.emoji) for r in seeded]

    added = await chat_service.toggle_reaction(sent.id, test_user.id, "👍")
    assert len(added) == len(before) + 1
    assert (test_user.id, "👍") in [(r.user.id, r.emoji) for r in added]

    restored = await chat_service.toggle_reaction(sent.id, test_user.id, "👍")
    assert [(r.user.id, r.emoji) for r in restored] == before

@pytest.mark.asyncio
async def test_reaction_on_missing_message(chat_service, test_user):
    with pytest.raises(MessageNotFoundException):
        await chat_service.toggle_reaction(uuid.uuid4(), test_user.id, "👍")

@pytest.mark.asyncio
async def test_send_broadcasts_to_room_including_sender(chat_service, ws_manager, fake_websocket, room, test_user, second_user):
    sender_socket, other_socket = fake_websocket(), fake_websocket()
    await ws_manager.connect(sender_socket, test_user.id)
    await ws_manager.connect(other_socket, second_user.id)
    await ws_manager.join_room(test_user.id, room.id)
    await ws_manager.join_room(second_user.id, room.id)

    sent = await chat_service.send_message(test_user, room.id, "broadcast me")

    for socket in (sender_socket, other_socket):
        frames = socket.events("newMessage")
        assert len(frames) == 1
        assert frames[0]["data"]["id"] == str(sent.id)
        assert frames[0]["data"]["sender"]["username"] == test_user.username
