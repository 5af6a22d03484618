from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roomchat.globals import websocket_manager
from roomchat.utils.websocket_manager import WebsocketManager

from roomchat.database.postgres import get_db_session
from roomchat.services.auth_service import AuthService
from roomchat.services.room_service import RoomService
from roomchat.services.chat_service import ChatService
from roomchat.services.user_service import UserService

def get_websocket_manager() -> WebsocketManager:
    """
    Dependency that provides the singleton WebsocketManager instance.
    """
    return websocket_manager

def get_room_service(
    db: AsyncSession = Depends(get_db_session),
    ws_manager: WebsocketManager = Depends(get_websocket_manager),
) -> RoomService:
    """
    Dependency that provides an instance of RoomService with an active database session.
    """
    return RoomService(db, ws_manager)

def get_auth_service(
    db: AsyncSession = Depends(get_db_session),
    room_service: RoomService = Depends(get_room_service),
) -> AuthService:
    """
    Dependency that provides an instance of AuthService with an active database session.
    """
    return AuthService(db, room_service)

def get_user_service(
    db: AsyncSession = Depends(get_db_session),
    ws_manager: WebsocketManager = Depends(get_websocket_manager),
) -> UserService:
    return UserService(db, ws_manager)

def get_chat_service(
    room_service: RoomService = Depends(get_room_service),
    db: AsyncSession = Depends(get_db_session),
    ws_manager: WebsocketManager = Depends(get_websocket_manager),
) -> ChatService:
    """
    Dependency that provides an instance of ChatService with required dependencies.
    """
    return ChatService(
        room_service=room_service,
        db=db,
        websocket_manager=ws_manager,
    )
