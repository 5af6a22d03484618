from fastapi import APIRouter, Depends, Query
from uuid import UUID

from roomchat.dependencies.auth_dependencies import get_current_user
from roomchat.dependencies.service_dependencies import get_user_service
from roomchat.models.user import User
from roomchat.schemas.user import (
    ProfileUpdateResponse,
    StatusUpdateResponse,
    UpdateProfileRequest,
    UpdateStatusRequest,
    UserListResponse,
    UserResponse,
)
from roomchat.services.user_service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])

@router.get("", response_model=UserListResponse)
async def list_users(
    search: str = Query("", max_length=50),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """
    Search the user directory by username or email.
    """
    return await user_service.list_users(search=search.strip(), page=page, limit=limit)

@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    request: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """
    Update the authenticated user's username, email or avatar.
    """
    user = await user_service.update_profile(current_user.id, request)
    return ProfileUpdateResponse(user=UserResponse.model_validate(user))

@router.put("/status", response_model=StatusUpdateResponse)
async def update_status(
    request: UpdateStatusRequest,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """
    Set the authenticated user's presence and broadcast it to every connection.
    """
    user = await user_service.set_status(current_user.id, request.status)
    return StatusUpdateResponse(status=user.status, last_seen=user.last_seen)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    return await user_service.get_user(user_id)
