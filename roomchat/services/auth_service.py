import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from roomchat.core.exceptions import InvalidCredentialsException, UserAlreadyExistsException
from roomchat.models.user import User
from roomchat.core.security import hash_password, verify_password, create_access_token
from roomchat.schemas.auth import RegisterRequest, LoginRequest
from roomchat.services.room_service import RoomService

logger = logging.getLogger(__name__)


def issue_token(user: User) -> str:
    return create_access_token(data={"user_id": str(user.id), "username": user.username})


class AuthService:
    def __init__(self, db_session: AsyncSession, room_service: Optional[RoomService] = None):
        self.db_session = db_session
        self.room_service = room_service

    async def register_user(self, request: RegisterRequest):
        """
        Handles the logic for registering a user.

        Args:
            request: Registration data

        Returns:
            A tuple (user, access_token)

        Raises:
            UserAlreadyExistsException: If the username or email is taken
        """
        existing_user = await self.db_session.execute(
            select(User).filter(
                (User.username == request.username) | (User.email == request.email)
            )
        )
        if existing_user.scalar():
            raise UserAlreadyExistsException()

        user = User(
            username=request.username,
            email=request.email,
            hashed_password=hash_password(request.password)
        )
        self.db_session.add(user)
        try:
            await self.db_session.commit()
        except IntegrityError as e:
            await self.db_session.rollback()
            raise UserAlreadyExistsException() from e
        logger.info(f"User {user.username} registered")
        access_token = issue_token(user)

        if self.room_service is not None:
            await self.room_service.enroll_in_general_room(user.id)
            await self.db_session.refresh(user)

        return user, access_token

    async def login_user(self, request: LoginRequest):
        """
        Handles the logic for logging in a user.

        Args:
            request: Login credentials

        Returns:
            A tuple (user, access_token)

        Raises:
            InvalidCredentialsException: If the email is unknown or the password is wrong
        """
        user = await self.db_session.execute(
            select(User).filter(User.email == request.email)
        )
        user = user.scalar_one_or_none()

        if not user or not verify_password(request.password, user.hashed_password):
            raise InvalidCredentialsException()

        return user, issue_token(user)
