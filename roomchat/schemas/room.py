from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .user import UserStatus, UserSummary

def _strip(value):
    return value.strip() if isinstance(value, str) else value

def _normalize_tags(tags):
    if tags is None:
        return tags
    return [tag.strip() for tag in tags if tag and tag.strip()]

class MemberRole(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"

class CreateRoomRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="Room name")
    description: str = Field(default="", max_length=200)
    is_private: bool = False
    password: str = Field(default="", max_length=255, description="Join password for private rooms")
    max_members: int = Field(default=100, ge=2, le=1000)
    tags: List[str] = []

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, tags):
        return _normalize_tags(tags)

class UpdateRoomRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    is_private: Optional[bool] = None
    password: Optional[str] = Field(None, max_length=255)
    max_members: Optional[int] = Field(None, ge=2, le=1000)
    tags: Optional[List[str]] = None

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, tags):
        return _normalize_tags(tags)

class JoinRoomRequest(BaseModel):
    password: Optional[str] = Field(None, max_length=255)

class MemberUser(UserSummary):
    status: UserStatus = UserStatus.OFFLINE

class RoomMemberResponse(BaseModel):
    user: MemberUser
    role: MemberRole
    joined_at: datetime

    class Config:
        from_attributes = True

class RoomResponse(BaseModel):
    id: UUID
    name: str
    description: str = ""
    is_private: bool
    is_general: bool = False
    creator: UserSummary
    members: List[RoomMemberResponse] = []
    max_members: int
    tags: List[str] = []
    last_activity: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RoomListResponse(BaseModel):
    rooms: List[RoomResponse]
    total_pages: int
    current_page: int
    total: int

class RoomActionResponse(BaseModel):
    message: str
    room: RoomResponse

class RoomPasswordResponse(BaseModel):
    password: str
