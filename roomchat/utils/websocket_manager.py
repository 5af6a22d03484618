import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

from fastapi import WebSocket, status
import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Every instance listens here for frames addressed to all connections.
BROADCAST_CHANNEL = "broadcast"


def get_room_channel(room_id: str) -> str:
    """Returns the Redis channel name for a specific room."""
    return f"room:{room_id}"

def build_frame(event_type: str, data: Any) -> str:
    return json.dumps({"type": event_type, "data": data}, default=str)


class WebsocketManager:
    """
    Registry of live websocket sessions and the fan-out for realtime events.

    Per connected user it keeps the websocket and the set of room ids that
    connection is subscribed to. Nothing here is authoritative: it is rebuilt
    from room memberships on every connect and dropped on disconnect.

    Without a Redis URL every frame is delivered in-process, which is correct
    for a single server instance. With one, frames are published on Redis
    channels and each instance delivers to the sockets it holds locally.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url
        self.redis_client: Optional[redis.Redis] = None
        self.pubsub = None
        self.listener_task: Optional[asyncio.Task] = None

        self.active_connections: Dict[str, WebSocket] = {}
        self.user_rooms: Dict[str, Set[str]] = {}
        self.local_room_members: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    @property
    def uses_redis(self) -> bool:
        return self.redis_client is not None

    async def init_redis(self):
        """Connects to Redis and starts the Pub/Sub listener task, if configured."""
        if not self.redis_url:
            logger.info("No Redis URL configured, realtime fan-out is in-process only.")
            return
        try:
            logger.info(f"Connecting to Redis at {self.redis_url}")
            self.redis_client = redis.from_url(
                self.redis_url, encoding="utf-8", decode_responses=True
            )
            await self.redis_client.ping()
            logger.info("Redis connection successful.")
        except Exception as e:
            logger.critical(f"Failed to connect to Redis: {e}")
            self.redis_client = None
            raise

        self.pubsub = self.redis_client.pubsub()
        await self.pubsub.subscribe(BROADCAST_CHANNEL)
        self.listener_task = asyncio.create_task(self._pubsub_listener())

    async def close(self):
        """Closes Redis resources and stops the listener task."""
        if self.listener_task:
            self.listener_task.cancel()
        if self.pubsub:
            await self.pubsub.unsubscribe()
            await self.pubsub.close()
        if self.redis_client:
            await self.redis_client.close()
        self.redis_client = None
        logger.info("WebsocketManager resources closed.")

    # ------------------------------------------------------------------
    # Session registry
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket, user_id: UUID):
        """Accepts a websocket and registers it as the user's live session."""
        await websocket.accept()
        user_id_str = str(user_id)
        async with self._lock:
            previous = self.active_connections.get(user_id_str)
            self.active_connections[user_id_str] = websocket
            self.user_rooms.setdefault(user_id_str, set())
        if previous is not None and previous is not websocket:
            logger.info(f"User {user_id_str} reconnected, closing the previous session.")
            await self._close_replaced(previous)
        logger.info(f"User {user_id_str} connected.")

    async def disconnect(self, user_id: UUID, websocket: Optional[WebSocket] = None) -> bool:
        """
        Drops the user's session and room subscriptions.

        When a websocket is given and it is no longer the user's current one
        (the user reconnected), nothing is removed and False is returned.
        """
        user_id_str = str(user_id)
        emptied_rooms = []
        async with self._lock:
            current = self.active_connections.get(user_id_str)
            if current is None:
                return False
            if websocket is not None and current is not websocket:
                return False
            del self.active_connections[user_id_str]
            for room_id in self.user_rooms.pop(user_id_str, set()):
                members = self.local_room_members.get(room_id)
                if members is None:
                    continue
                members.discard(user_id_str)
                if not members:
                    del self.local_room_members[room_id]
                    emptied_rooms.append(room_id)

        if self.uses_redis:
            for room_id in emptied_rooms:
                await self.pubsub.unsubscribe(get_room_channel(room_id))
        logger.info(f"User {user_id_str} disconnected.")
        return True

    def is_in_room(self, user_id: UUID, room_id: UUID) -> bool:
        return str(room_id) in self.user_rooms.get(str(user_id), set())

    async def join_room(self, user_id: UUID, room_id: UUID) -> bool:
        """Subscribes a connected user's session to a room. Returns False if not connected."""
        user_id_str, room_id_str = str(user_id), str(room_id)
        async with self._lock:
            if user_id_str not in self.active_connections:
                return False
            first_local_member = not self.local_room_members.get(room_id_str)
            self.local_room_members.setdefault(room_id_str, set()).add(user_id_str)
            self.user_rooms.setdefault(user_id_str, set()).add(room_id_str)
        if first_local_member and self.uses_redis:
            await self.pubsub.subscribe(get_room_channel(room_id_str))
        logger.debug(f"User {user_id_str} subscribed to room {room_id_str}.")
        return True

    async def leave_room(self, user_id: UUID, room_id: UUID):
        """Unsubscribes a user's session from a room."""
        user_id_str, room_id_str = str(user_id), str(room_id)
        emptied = False
        async with self._lock:
            self.user_rooms.get(user_id_str, set()).discard(room_id_str)
            members = self.local_room_members.get(room_id_str)
            if members is not None:
                members.discard(user_id_str)
                if not members:
                    del self.local_room_members[room_id_str]
                    emptied = True
        if emptied and self.uses_redis:
            await self.pubsub.unsubscribe(get_room_channel(room_id_str))
        logger.debug(f"User {user_id_str} unsubscribed from room {room_id_str}.")

    async def close_room(self, room_id: UUID):
        """Unsubscribes every local session from a room."""
        room_id_str = str(room_id)
        async with self._lock:
            members = self.local_room_members.pop(room_id_str, set())
            for user_id_str in members:
                self.user_rooms.get(user_id_str, set()).discard(room_id_str)
        if members and self.uses_redis:
            await self.pubsub.unsubscribe(get_room_channel(room_id_str))

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def broadcast_to_room(self, room_id: UUID, event_type: str, data: Any, exclude_user_id: UUID = None):
        """Delivers an event to every session subscribed to the room."""
        frame = build_frame(event_type, data)
        exclude = str(exclude_user_id) if exclude_user_id else None
        if self.uses_redis:
            await self._publish(get_room_channel(str(room_id)), frame, exclude)
        else:
            await self._deliver_to_room(str(room_id), frame, exclude)

    async def broadcast(self, event_type: str, data: Any, exclude_user_id: UUID = None):
        """Delivers an event to every connected session."""
        frame = build_frame(event_type, data)
        exclude = str(exclude_user_id) if exclude_user_id else None
        if self.uses_redis:
            await self._publish(BROADCAST_CHANNEL, frame, exclude)
        else:
            await self._deliver_to_all(frame, exclude)

    async def send_to_websocket(self, websocket: WebSocket, event_type: str, data: Any):
        """Replies on a specific socket, whether or not it is registered."""
        try:
            await websocket.send_text(build_frame(event_type, data))
        except Exception as e:
            logger.debug(f"Failed to reply on websocket: {e}")

    async def _close_replaced(self, websocket: WebSocket):
        try:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Replaced by a newer connection")
        except Exception as e:
            logger.debug(f"Replaced websocket was already closed: {e}")

    async def _publish(self, channel: str, frame: str, exclude: Optional[str]):
        await self.redis_client.publish(channel, json.dumps({"exclude": exclude, "frame": frame}))

    async def _deliver_to_room(self, room_id: str, frame: str, exclude: Optional[str]):
        # sequential sends keep per-room delivery in processing order
        for user_id in list(self.local_room_members.get(room_id, ())):
            if user_id != exclude:
                await self._send_to_local_websocket(user_id, frame)

    async def _deliver_to_all(self, frame: str, exclude: Optional[str]):
        for user_id in list(self.active_connections):
            if user_id != exclude:
                await self._send_to_local_websocket(user_id, frame)

    async def _send_to_local_websocket(self, user_id: str, message: str):
        """Sends a message directly to a websocket connected to this instance."""
        websocket = self.active_connections.get(user_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(message)
        except Exception as e:
            logger.debug(f"Dropping frame for user {user_id}: {e}")

    async def _pubsub_listener(self):
        """Listens for frames on Redis and routes them to the correct local clients."""
        logger.info("Pub/Sub listener started.")
        try:
            async for message in self.pubsub.listen():
                if message["type"] != "message":
                    continue

                channel = message["channel"]
                envelope = json.loads(message["data"])
                frame, exclude = envelope["frame"], envelope.get("exclude")

                if channel == BROADCAST_CHANNEL:
                    await self._deliver_to_all(frame, exclude)
                elif channel.startswith("room:"):
                    await self._deliver_to_room(channel.split(":", 1)[1], frame, exclude)

        except asyncio.CancelledError:
            logger.info("Pub/Sub listener task cancelled.")
        except Exception as e:
            logger.critical(f"Pub/Sub listener crashed: {e}", exc_info=True)
        finally:
            logger.info("Pub/Sub listener stopped.")
