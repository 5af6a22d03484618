from fastapi import APIRouter, Depends, Query, status
from uuid import UUID
from typing import Optional

from ..schemas.room import (
    CreateRoomRequest,
    JoinRoomRequest,
    RoomActionResponse,
    RoomListResponse,
    RoomPasswordResponse,
    RoomResponse,
    UpdateRoomRequest,
)
from ..services.room_service import RoomService
from roomchat.dependencies.service_dependencies import get_room_service
from roomchat.dependencies.auth_dependencies import get_current_user
from roomchat.models.user import User

router = APIRouter(prefix="/api/rooms", tags=["rooms"])

@router.get("", response_model=RoomListResponse)
async def list_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str = Query("", max_length=50),
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    """
    List public rooms and the private rooms the user belongs to,
    general room first, then by last activity.
    """
    return await room_service.list_rooms(
        user_id=current_user.id,
        page=page,
        limit=limit,
        search=search.strip(),
    )

@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    """
    Room detail with creator and members. Viewing a public room joins it.
    """
    return await room_service.admit(room_id, current_user.id)

@router.post("", response_model=RoomActionResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    request: CreateRoomRequest,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    """
    Create a new room.

    Args:
        request: Room creation request
        current_user: Authenticated user details
        room_service: Room service instance

    Returns:
        RoomActionResponse with the created room, creator as admin
    """
    room = await room_service.create_room(
        user_id=current_user.id,
        request=request
    )
    return RoomActionResponse(message="Room created successfully", room=RoomResponse.model_validate(room))

@router.put("/{room_id}", response_model=RoomActionResponse)
async def update_room(
    room_id: UUID,
    request: UpdateRoomRequest,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    """
    Update room settings. Room admins only.
    """
    room = await room_service.update_room(room_id, current_user.id, request)
    return RoomActionResponse(message="Room updated successfully", room=RoomResponse.model_validate(room))

@router.delete("/{room_id}")
async def delete_room(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    await room_service.delete_room(room_id, current_user.id)
    return {"message": "Room deleted successfully"}

@router.post("/{room_id}/join", response_model=RoomActionResponse)
async def join_room(
    room_id: UUID,
    request: Optional[JoinRoomRequest] = None,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    """
    Join a room.

    Args:
        room_id: ID of the room
        request: Optional body carrying the private room password
        current_user: Authenticated user details
        room_service: Room service instance
    """
    room = await room_service.join_room(
        room_id=room_id,
        user_id=current_user.id,
        password=request.password if request else None,
    )
    return RoomActionResponse(message="Successfully joined room", room=RoomResponse.model_validate(room))

@router.post("/{room_id}/leave")
async def leave_room(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    await room_service.leave_room(room_id=room_id, user_id=current_user.id)
    return {"message": "Successfully left room"}

@router.get("/{room_id}/password", response_model=RoomPasswordResponse)
async def get_room_password(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    room_service: RoomService = Depends(get_room_service)
):
    """
    Reveal the room password to its admins and moderators.
    """
    password = await room_service.reveal_password(room_id, current_user.id)
    return RoomPasswordResponse(password=password)
