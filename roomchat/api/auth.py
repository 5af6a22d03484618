from fastapi import APIRouter, Depends, status
from roomchat.models.user import User
from roomchat.schemas.auth import RegisterRequest, LoginRequest, MeResponse, TokenResponse
from roomchat.schemas.user import UserResponse, UserStatus
from roomchat.dependencies.auth_dependencies import get_current_user
from roomchat.dependencies.service_dependencies import get_auth_service, get_user_service
from roomchat.services.auth_service import AuthService
from roomchat.services.user_service import UserService

router = APIRouter(prefix="/api/auth", tags=["auth"])

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Register a new user and enroll them in the general room.
    """
    user, access_token = await auth_service.register_user(request)
    return TokenResponse(token=access_token, user=UserResponse.model_validate(user))

@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Authenticate a user by email and return a JWT.
    """
    user, access_token = await auth_service.login_user(request)
    return TokenResponse(token=access_token, user=UserResponse.model_validate(user))

@router.get("/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)):
    """
    Get the current authenticated user's details.
    """
    return MeResponse(user=UserResponse.model_validate(current_user))

@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """
    Mark the user offline. Tokens are stateless, the client discards its own.
    """
    await user_service.set_status(current_user.id, UserStatus.OFFLINE)
    return {"message": "Logged out successfully"}
