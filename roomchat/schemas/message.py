from enum import Enum
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from .user import UserSummary

MAX_MESSAGE_LENGTH = 1000

class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"

class MessageCreateRequest(BaseModel):
    room_id: UUID = Field(..., description="ID of the room where the message is sent")
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH, description="Message content")
    message_type: MessageType = Field(default=MessageType.TEXT, description="Type of message")
    reply_to: Optional[UUID] = Field(default=None, description="ID of the message being replied to")

    class Config:
        str_strip_whitespace = True

class MessageUpdateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)

    class Config:
        str_strip_whitespace = True

class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=10)

    class Config:
        str_strip_whitespace = True

class ReactionResponse(BaseModel):
    user: UserSummary
    emoji: str
    created_at: datetime

    class Config:
        from_attributes = True

class ReadReceiptResponse(BaseModel):
    user_id: UUID
    read_at: datetime

    class Config:
        from_attributes = True

class ReplyPreview(BaseModel):
    id: UUID
    content: str
    sender: UserSummary

class MessageResponse(BaseModel):
    id: UUID
    room_id: UUID
    sender: UserSummary
    content: str
    message_type: MessageType
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    reply_to: Optional[ReplyPreview] = None
    reactions: List[ReactionResponse] = []
    read_by: List[ReadReceiptResponse] = []
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    total_pages: int
    current_page: int
    total: int

class MessageActionResponse(BaseModel):
    message: str
    data: MessageResponse

class ReactionUpdateResponse(BaseModel):
    message: str = "Reaction updated successfully"
    reactions: List[ReactionResponse]
