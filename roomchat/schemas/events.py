"""
Payloads and event names of the realtime protocol.

Inbound frames look like {"type": "<event>", ...fields}; outbound frames
look like {"type": "<event>", "data": {...}}.
"""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .message import MessageType
from .user import UserStatus

# client -> server
JOIN_ROOM = "joinRoom"
LEAVE_ROOM = "leaveRoom"
SEND_MESSAGE = "sendMessage"
TYPING = "typing"
REACT_TO_MESSAGE = "reactToMessage"
UPDATE_STATUS = "updateStatus"

# server -> client
NEW_MESSAGE = "newMessage"
USER_JOINED_ROOM = "userJoinedRoom"
USER_LEFT_ROOM = "userLeftRoom"
JOINED_ROOM = "joinedRoom"
LEFT_ROOM = "leftRoom"
USER_TYPING = "userTyping"
USER_STATUS_UPDATE = "userStatusUpdate"
MESSAGE_REACTION_UPDATE = "messageReactionUpdate"
MESSAGE_UPDATED = "messageUpdated"
MESSAGE_DELETED = "messageDeleted"
ROOM_DELETED = "roomDeleted"
ERROR = "error"


class RoomEvent(BaseModel):
    room_id: UUID

class SendMessageEvent(RoomEvent):
    # length is checked by ChatService.clean_content
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    reply_to: Optional[UUID] = None

class TypingEvent(RoomEvent):
    is_typing: bool = True

class ReactToMessageEvent(BaseModel):
    message_id: UUID
    emoji: str = Field(..., min_length=1, max_length=10)

    class Config:
        str_strip_whitespace = True

class UpdateStatusEvent(BaseModel):
    status: UserStatus
