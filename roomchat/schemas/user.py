from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    AWAY = "away"

class UserSummary(BaseModel):
    """Denormalized user reference embedded in rooms and messages."""
    id: UUID
    username: str
    avatar: str = ""

    class Config:
        from_attributes = True

class UserResponse(BaseModel):
    id: UUID
    username: str
    email: str
    avatar: str = ""
    status: UserStatus
    last_seen: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserListResponse(BaseModel):
    users: List[UserResponse]
    total_pages: int
    current_page: int
    total: int

class UpdateProfileRequest(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    email: Optional[EmailStr] = None
    avatar: Optional[str] = Field(None, max_length=500)

    class Config:
        str_strip_whitespace = True

class UpdateStatusRequest(BaseModel):
    status: UserStatus

class ProfileUpdateResponse(BaseModel):
    message: str = "Profile updated successfully"
    user: UserResponse

class StatusUpdateResponse(BaseModel):
    message: str = "Status updated successfully"
    status: UserStatus
    last_seen: Optional[datetime] = None
