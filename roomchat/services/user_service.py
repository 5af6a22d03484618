import logging
import math
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roomchat.core.exceptions import UserAlreadyExistsException, UserNotFoundException
from roomchat.models.base import utcnow
from roomchat.models.user import User
from roomchat.schemas.events import USER_STATUS_UPDATE
from roomchat.schemas.user import (
    UpdateProfileRequest,
    UserListResponse,
    UserResponse,
    UserStatus,
)
from roomchat.utils.websocket_manager import WebsocketManager
from roomchat.utils.text_search import LIKE_ESCAPE, contains_pattern

logger = logging.getLogger(__name__)


def status_payload(user: User) -> dict:
    return {
        "user_id": str(user.id),
        "username": user.username,
        "status": user.status.value,
        "last_seen": user.last_seen.isoformat() if user.last_seen else None,
    }


class UserService:
    def __init__(self, db: AsyncSession, websocket_manager: Optional[WebsocketManager] = None):
        self.db = db
        self.websocket_manager = websocket_manager

    async def get_user(self, user_id: UUID) -> User:
        result = await self.db.execute(
            select(User).filter(User.id == user_id).execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundException()
        return user

    async def list_users(self, search: str = "", page: int = 1, limit: int = 20) -> UserListResponse:
        """
        Directory search over username and email, case-insensitive, sorted by username.
        """
        query = select(User)
        if search:
            pattern = contains_pattern(search)
            query = query.filter(or_(
                User.username.ilike(pattern, escape=LIKE_ESCAPE),
                User.email.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(User.username.asc()).offset((page - 1) * limit).limit(limit)
        )
        return UserListResponse(
            users=[UserResponse.model_validate(user) for user in result.scalars().all()],
            total_pages=math.ceil(total / limit),
            current_page=page,
            total=total,
        )

    async def update_profile(self, user_id: UUID, request: UpdateProfileRequest) -> User:
        """
        Update username, email and avatar. Username and email must stay unique.
        """
        user = await self.get_user(user_id)

        if request.username and request.username != user.username:
            taken = await self.db.scalar(
                select(User.id).filter(User.username == request.username, User.id != user_id)
            )
            if taken:
                raise UserAlreadyExistsException(detail="Username already exists")
            user.username = request.username

        if request.email and request.email != user.email:
            taken = await self.db.scalar(
                select(User.id).filter(User.email == request.email, User.id != user_id)
            )
            if taken:
                raise UserAlreadyExistsException(detail="Email already exists")
            user.email = request.email

        if request.avatar is not None:
            user.avatar = request.avatar

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise UserAlreadyExistsException() from e
        return user

    async def set_status(self, user_id: UUID, status: UserStatus, announce: bool = True) -> User:
        """
        Persist a presence change, bump last_seen and optionally broadcast it
        to every connection.
        """
        user = await self.get_user(user_id)
        user.status = status
        user.last_seen = utcnow()
        await self.db.commit()
        logger.debug(f"User {user.username} is now {status.value}")

        if announce and self.websocket_manager is not None:
            await self.websocket_manager.broadcast(USER_STATUS_UPDATE, status_payload(user))
        return user
