from typing import Optional
from uuid import UUID

from fastapi import Depends, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from roomchat.database.postgres import get_db_session
from roomchat.models.user import User
from roomchat.core.security import verify_token
from roomchat.core.exceptions import (
    InvalidTokenException,
    TokenExpiredException,
    UnauthorizedAccessException,
)

security = HTTPBearer(auto_error=False)

async def get_user_from_token(token: Optional[str], db: AsyncSession) -> User:
    """
    Verify a token and fetch the corresponding user.
    This contains the core logic shared by HTTP and WebSocket auth.
    """
    if not token:
        raise InvalidTokenException(detail="Access token required")

    payload = verify_token(token)
    try:
        user_id = UUID(str(payload.get("user_id")))
    except ValueError:
        raise InvalidTokenException()

    result = await db.execute(select(User).filter(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise UnauthorizedAccessException(detail="User not found")

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session)
) -> User:
    """
    Dependency for standard HTTP routes to get the current user from a Bearer token.
    """
    return await get_user_from_token(credentials.credentials if credentials else None, db)


def get_websocket_token(websocket: WebSocket) -> Optional[str]:
    """Reads the token from the `token` query parameter, falling back to a Bearer header."""
    token = websocket.query_params.get("token")
    if token:
        return token
    scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


async def authenticate_websocket(websocket: WebSocket, db: AsyncSession) -> Optional[User]:
    """
    Resolve the user behind a websocket handshake. Returns None on failure
    so the endpoint can close the connection itself.
    """
    try:
        return await get_user_from_token(get_websocket_token(websocket), db)
    except (InvalidTokenException, TokenExpiredException, UnauthorizedAccessException):
        return None
