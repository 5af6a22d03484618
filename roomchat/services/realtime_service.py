import json
import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import HTTPException, WebSocket
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roomchat.schemas import events
from roomchat.schemas.user import UserStatus
from roomchat.services.chat_service import ChatService
from roomchat.services.room_service import RoomService, member_joined_payload, member_left_payload
from roomchat.services.user_service import UserService, status_payload
from roomchat.utils.websocket_manager import WebsocketManager

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """An authenticated websocket and the identity it was opened with."""
    websocket: WebSocket
    user_id: UUID
    username: str


class RealtimeService:
    """
    Handles the lifecycle and inbound events of one realtime connection.

    A new instance is built around a fresh database session for every event,
    so nothing here outlives a single frame except the WebsocketManager.
    """

    def __init__(self, db: AsyncSession, websocket_manager: WebsocketManager):
        self.db = db
        self.websocket_manager = websocket_manager
        self.user_service = UserService(db, websocket_manager)
        self.room_service = RoomService(db, websocket_manager)
        self.chat_service = ChatService(self.room_service, db, websocket_manager)

        self._handlers = {
            events.JOIN_ROOM: (events.RoomEvent, self.on_join_room),
            events.LEAVE_ROOM: (events.RoomEvent, self.on_leave_room),
            events.SEND_MESSAGE: (events.SendMessageEvent, self.on_send_message),
            events.TYPING: (events.TypingEvent, self.on_typing),
            events.REACT_TO_MESSAGE: (events.ReactToMessageEvent, self.on_react_to_message),
            events.UPDATE_STATUS: (events.UpdateStatusEvent, self.on_update_status),
        }

    async def handle_connect(self, conn: Connection):
        """
        Register the session, subscribe it to every room the user belongs to,
        mark the user online and tell everyone else.
        """
        await self.websocket_manager.connect(conn.websocket, conn.user_id)
        room_ids = await self.room_service.get_member_room_ids(conn.user_id)
        for room_id in room_ids:
            await self.websocket_manager.join_room(conn.user_id, room_id)
        logger.info(f"User {conn.username} connected, subscribed to {len(room_ids)} rooms")

        user = await self.user_service.set_status(conn.user_id, UserStatus.ONLINE, announce=False)
        await self.websocket_manager.broadcast(
            events.USER_STATUS_UPDATE, status_payload(user), exclude_user_id=conn.user_id
        )

    async def handle_disconnect(self, conn: Connection):
        """
        Drop the session and mark the user offline, unless the socket was
        already replaced by a newer connection of the same user.
        """
        if not await self.websocket_manager.disconnect(conn.user_id, conn.websocket):
            logger.debug(f"Stale socket of {conn.username} closed, user stays online")
            return
        user = await self.user_service.set_status(conn.user_id, UserStatus.OFFLINE, announce=False)
        await self.websocket_manager.broadcast(
            events.USER_STATUS_UPDATE, status_payload(user), exclude_user_id=conn.user_id
        )

    async def handle_frame(self, conn: Connection, raw: str):
        """
        Parse one inbound frame and dispatch it. Every failure is reported to
        the sending socket as an error event; the connection stays open.
        """
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON received from {conn.username}: {raw}")
            await self.send_error(conn, "Invalid JSON", 400)
            return
        if not isinstance(frame, dict):
            await self.send_error(conn, "Invalid event", 400)
            return

        event_type = frame.get("type")
        if event_type not in self._handlers:
            logger.warning(f"Unknown event '{event_type}' from {conn.username}")
            await self.send_error(conn, f"Unknown event: {event_type}", 400)
            return

        payload_model, handler = self._handlers[event_type]
        try:
            payload = payload_model.model_validate(frame)
            await handler(conn, payload)
        except ValidationError as e:
            logger.warning(f"Invalid {event_type} payload from {conn.username}: {e.errors()}")
            await self.send_error(conn, f"Invalid {event_type} payload", 400)
        except HTTPException as e:
            logger.warning(f"{event_type} from {conn.username} failed: {e.detail}")
            await self.send_error(conn, e.detail, e.status_code)
        except SQLAlchemyError as e:
            logger.error(f"Database error handling {event_type} from {conn.username}: {e}", exc_info=True)
            await self.send_error(conn, f"Failed to handle {event_type}", 500)

    async def send_error(self, conn: Connection, message: str, status_code: int):
        await self.websocket_manager.send_to_websocket(
            conn.websocket, events.ERROR, {"message": message, "status_code": status_code}
        )

    async def on_join_room(self, conn: Connection, event: events.RoomEvent):
        room = await self.room_service.admit(event.room_id, conn.user_id)

        # an auto-join inside admit already subscribed and announced the user
        if not self.websocket_manager.is_in_room(conn.user_id, room.id):
            await self.websocket_manager.join_room(conn.user_id, room.id)
            member = room.find_member(conn.user_id)
            await self.websocket_manager.broadcast_to_room(
                room.id,
                events.USER_JOINED_ROOM,
                member_joined_payload(room.id, member.user),
                exclude_user_id=conn.user_id,
            )

        await self.websocket_manager.send_to_websocket(
            conn.websocket, events.JOINED_ROOM, {"room_id": str(room.id), "room_name": room.name}
        )

    async def on_leave_room(self, conn: Connection, event: events.RoomEvent):
        # unsubscribes only, membership is left to the REST leave
        if self.websocket_manager.is_in_room(conn.user_id, event.room_id):
            await self.websocket_manager.leave_room(conn.user_id, event.room_id)
            await self.websocket_manager.broadcast_to_room(
                event.room_id,
                events.USER_LEFT_ROOM,
                member_left_payload(event.room_id, conn.user_id, conn.username),
                exclude_user_id=conn.user_id,
            )
        await self.websocket_manager.send_to_websocket(
            conn.websocket, events.LEFT_ROOM, {"room_id": str(event.room_id)}
        )

    async def on_send_message(self, conn: Connection, event: events.SendMessageEvent):
        sender = await self.user_service.get_user(conn.user_id)
        await self.chat_service.send_message(
            sender=sender,
            room_id=event.room_id,
            content=event.content,
            message_type=event.message_type,
            reply_to_id=event.reply_to,
        )

    async def on_typing(self, conn: Connection, event: events.TypingEvent):
        if not self.websocket_manager.is_in_room(conn.user_id, event.room_id):
            logger.debug(f"Dropping typing from {conn.username}, not subscribed to {event.room_id}")
            return
        await self.websocket_manager.broadcast_to_room(
            event.room_id,
            events.USER_TYPING,
            {
                "room_id": str(event.room_id),
                "user_id": str(conn.user_id),
                "username": conn.username,
                "is_typing": event.is_typing,
            },
            exclude_user_id=conn.user_id,
        )

    async def on_react_to_message(self, conn: Connection, event: events.ReactToMessageEvent):
        await self.chat_service.toggle_reaction(event.message_id, conn.user_id, event.emoji)

    async def on_update_status(self, conn: Connection, event: events.UpdateStatusEvent):
        await self.user_service.set_status(conn.user_id, event.status)
