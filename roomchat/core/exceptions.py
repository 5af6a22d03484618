# roomchat/core/exceptions.py

from fastapi import HTTPException, status

# Base Exception
class BaseAPIException(HTTPException):
    """Base class for all custom API exceptions."""
    def __init__(self, status_code: int, detail: str, headers: dict = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# Authentication & Authorization Exceptions
class InvalidCredentialsException(BaseAPIException):
    """Exception raised when login credentials are invalid."""
    def __init__(self, detail="Invalid credentials"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class UserAlreadyExistsException(BaseAPIException):
    """Exception raised when a user already exists."""
    def __init__(self, detail="Username or email already exists"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class UnauthorizedAccessException(BaseAPIException):
    """Exception raised for unauthorized access attempts."""
    def __init__(self, detail="Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class TokenExpiredException(BaseAPIException):
    """Exception raised when a token has expired."""
    def __init__(self, detail="Token has expired"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class InvalidTokenException(BaseAPIException):
    """Exception raised when a token is invalid."""
    def __init__(self, detail="Invalid token"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


# User & Profile Exceptions
class UserNotFoundException(BaseAPIException):
    """Exception raised when a user is not found."""
    def __init__(self, detail="User not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


# Room Exceptions
class RoomNotFoundException(BaseAPIException):
    """Exception raised when a room is not found."""
    def __init__(self, detail="Room not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class RoomAccessDeniedException(BaseAPIException):
    """Exception raised when a user may not read or write a room."""
    def __init__(self, detail="Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class RoomFullException(BaseAPIException):
    """Exception raised when a room has reached its maximum capacity."""
    def __init__(self, detail="Room is full"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class RoomAlreadyExistsException(BaseAPIException):
    """Exception raised when a room with the same name already exists."""
    def __init__(self, detail="Room name already exists"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class InvalidRoomPasswordException(BaseAPIException):
    """Exception raised when a private room password does not match."""
    def __init__(self, detail="Invalid room password"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class AlreadyMemberException(BaseAPIException):
    """Exception raised when joining a room the user already belongs to."""
    def __init__(self, detail="Already a member of this room"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class NotAMemberException(BaseAPIException):
    """Exception raised when leaving a room the user does not belong to."""
    def __init__(self, detail="Not a member of this room"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class CannotLeaveGeneralRoomException(BaseAPIException):
    """Exception raised when a user tries to leave the general room."""
    def __init__(self, detail="Cannot leave the general room"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class CannotDeleteGeneralRoomException(BaseAPIException):
    """Exception raised when a user tries to delete the general room."""
    def __init__(self, detail="Cannot delete the general room"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# Message Exceptions
class MessageNotFoundException(BaseAPIException):
    """Exception raised when a message is not found."""
    def __init__(self, detail="Message not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class ReplyTargetNotFoundException(BaseAPIException):
    """Exception raised when a reply points at a message outside the room."""
    def __init__(self, detail="Replied message not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class MessageAccessDeniedException(BaseAPIException):
    """Exception raised when someone other than the sender edits or deletes a message."""
    def __init__(self, detail="Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class MessageNotSentException(BaseAPIException):
    """Exception raised when a message fails to send."""
    def __init__(self, detail="Message could not be sent"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# Validation & Input Exceptions
class InvalidInputException(BaseAPIException):
    """Exception raised when input data is invalid."""
    def __init__(self, detail="Invalid input data"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class InvalidFileException(BaseAPIException):
    """Exception raised when an uploaded file is rejected."""
    def __init__(self, detail="Invalid file"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

