from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from uuid import UUID
from typing import Optional

from roomchat.dependencies.auth_dependencies import get_current_user
from roomchat.dependencies.service_dependencies import get_chat_service
from roomchat.models.user import User
from ..schemas.message import (
    MessageActionResponse,
    MessageCreateRequest,
    MessageListResponse,
    MessageUpdateRequest,
    ReactionRequest,
    ReactionUpdateResponse,
)
from ..services.chat_service import ChatService
from ..utils.file_storage import discard_upload, save_upload

router = APIRouter(prefix="/api/messages", tags=["messages"])

@router.get("/{room_id}", response_model=MessageListResponse)
async def get_room_messages(
    room_id: UUID,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
    page: int = Query(1, ge=1, description="1-based page, counted back from the newest message"),
    limit: int = Query(50, ge=1, le=100, description="Number of messages to return"),
):
    """
    Retrieve message history for a room, oldest first within the page.

    Args:
        room_id: ID of the room
        current_user: Authenticated user details
        chat_service: Chat service instance
        page: Page number
        limit: Number of messages to return

    Returns:
        MessageListResponse with the page and pagination metadata
    """
    return await chat_service.list_messages(
        user_id=current_user.id,
        room_id=room_id,
        page=page,
        limit=limit,
    )

@router.post("", response_model=MessageActionResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: MessageCreateRequest,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Send a message to a room.

    Args:
        request: Message creation request
        current_user: Authenticated user details
        chat_service: Chat service instance

    Returns:
        MessageActionResponse with created message details
    """
    message = await chat_service.send_message(
        sender=current_user,
        room_id=request.room_id,
        content=request.content,
        message_type=request.message_type,
        reply_to_id=request.reply_to,
    )
    return MessageActionResponse(message="Message sent successfully", data=message)

@router.post("/upload", response_model=MessageActionResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    room_id: UUID = Form(...),
    content: str = Form(""),
    reply_to: Optional[UUID] = Form(None),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Send a file or image message. The caption may be empty. The stored file
    is removed again when the message is rejected.
    """
    stored = await save_upload(file)
    try:
        message = await chat_service.send_message(
            sender=current_user,
            room_id=room_id,
            content=content,
            reply_to_id=reply_to,
            attachment=stored,
        )
    except Exception:
        await discard_upload(stored)
        raise
    return MessageActionResponse(message="File uploaded successfully", data=message)

@router.put("/{message_id}", response_model=MessageActionResponse)
async def edit_message(
    message_id: UUID,
    request: MessageUpdateRequest,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    message = await chat_service.edit_message(message_id, current_user.id, request.content)
    return MessageActionResponse(message="Message updated successfully", data=message)

@router.delete("/{message_id}")
async def delete_message(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    await chat_service.delete_message(message_id, current_user.id)
    return {"message": "Message deleted successfully"}

@router.post("/{message_id}/react", response_model=ReactionUpdateResponse)
async def react_to_message(
    message_id: UUID,
    request: ReactionRequest,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Toggle the current user's emoji reaction on a message.
    """
    reactions = await chat_service.toggle_reaction(message_id, current_user.id, request.emoji)
    return ReactionUpdateResponse(reactions=reactions)
