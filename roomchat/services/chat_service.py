import logging
import math
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.message import Message, MessageReaction
from ..models.room import Room
from ..models.user import User
from ..schemas.events import MESSAGE_DELETED, MESSAGE_REACTION_UPDATE, MESSAGE_UPDATED, NEW_MESSAGE
from ..schemas.message import (
    MAX_MESSAGE_LENGTH,
    MessageListResponse,
    MessageResponse,
    MessageType,
    ReactionResponse,
    ReadReceiptResponse,
    ReplyPreview,
)
from ..schemas.user import UserSummary
from .room_service import RoomService
from roomchat.core.exceptions import (
    InvalidInputException,
    MessageAccessDeniedException,
    MessageNotFoundException,
    MessageNotSentException,
    ReplyTargetNotFoundException,
)
from ..utils.file_storage import StoredFile
from ..utils.websocket_manager import WebsocketManager

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(
        self,
        room_service: RoomService,
        db: AsyncSession,
        websocket_manager: WebsocketManager,
    ):
        self.room_service = room_service
        self.db = db
        self.websocket_manager = websocket_manager

    @staticmethod
    def clean_content(content: Optional[str], has_attachment: bool = False) -> str:
        """
        Strip and length-check message text. Empty text is only allowed when
        a file supplies the content.
        """
        content = (content or "").strip()
        if not content and not has_attachment:
            raise InvalidInputException(detail="Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidInputException(detail="Message too long")
        return content

    async def _load_message(self, message_id: UUID) -> Message:
        result = await self.db.execute(
            select(Message)
            .filter(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise MessageNotFoundException()
        return message

    async def _reply_previews(self, reply_ids: Iterable[UUID]) -> Dict[UUID, ReplyPreview]:
        reply_ids = {reply_id for reply_id in reply_ids if reply_id is not None}
        if not reply_ids:
            return {}
        result = await self.db.execute(select(Message).filter(Message.id.in_(reply_ids)))
        return {
            target.id: ReplyPreview(
                id=target.id,
                content=target.content,
                sender=UserSummary.model_validate(target.sender),
            )
            for target in result.scalars().all()
        }

    def _to_response(self, message: Message, reply_previews: Dict[UUID, ReplyPreview]) -> MessageResponse:
        return MessageResponse(
            id=message.id,
            room_id=message.room_id,
            sender=UserSummary.model_validate(message.sender),
            content=message.content,
            message_type=message.message_type,
            file_url=message.file_url,
            file_name=message.file_name,
            file_size=message.file_size,
            reply_to=reply_previews.get(message.reply_to_id),
            reactions=[ReactionResponse.model_validate(r) for r in message.reactions],
            read_by=[ReadReceiptResponse.model_validate(r) for r in message.read_by],
            is_edited=message.is_edited,
            edited_at=message.edited_at,
            created_at=message.created_at,
            updated_at=message.updated_at,
        )

    async def serialize(self, message: Message) -> MessageResponse:
        """Builds the client view of a message, resolving its reply preview."""
        previews = await self._reply_previews([message.reply_to_id])
        return self._to_response(message, previews)

    async def send_message(
        self,
        sender: User,
        room_id: UUID,
        content: Optional[str],
        message_type: MessageType = MessageType.TEXT,
        reply_to_id: Optional[UUID] = None,
        attachment: Optional[StoredFile] = None,
    ) -> MessageResponse:
        """
        Persist a message and broadcast it to the room, sender included.

        Args:
            sender: The authenticated user sending the message
            room_id: Target room
            content: Message text, may be empty when an attachment is given
            message_type: Type of message, overridden by the attachment type
            reply_to_id: Optional message in the same room being replied to
            attachment: Stored upload backing a file or image message

        Returns:
            MessageResponse with sender and reply preview denormalized

        Raises:
            InvalidInputException: If the content is empty or too long
            RoomNotFoundException: If the room does not exist
            RoomAccessDeniedException: If the room is private and the sender is not a member
            ReplyTargetNotFoundException: If reply_to_id is not a message of this room
        """
        content = self.clean_content(content, has_attachment=attachment is not None)
        sender_id = sender.id
        await self.room_service.admit(room_id, sender_id)

        if reply_to_id is not None:
            target = await self.db.scalar(
                select(Message.id).filter(Message.id == reply_to_id, Message.room_id == room_id)
            )
            if target is None:
                raise ReplyTargetNotFoundException()

        # the row lock on the room serializes concurrent senders
        seq = await self.db.scalar(
            update(Room)
            .where(Room.id == room_id)
            .values(message_seq=Room.message_seq + 1, last_activity=utcnow())
            .returning(Room.message_seq)
        )
        message = Message(
            room_id=room_id,
            seq=seq,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            reply_to_id=reply_to_id,
        )
        if attachment is not None:
            message.message_type = attachment.message_type
            message.file_url = attachment.url
            message.file_name = attachment.original_name
            message.file_size = attachment.size

        self.db.add(message)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise MessageNotSentException(detail="Failed to send message") from e

        message = await self._load_message(message.id)
        message_response = await self.serialize(message)
        await self.websocket_manager.broadcast_to_room(
            room_id, NEW_MESSAGE, message_response.model_dump(mode="json")
        )
        return message_response

    async def list_messages(
        self,
        user_id: UUID,
        room_id: UUID,
        page: int = 1,
        limit: int = 50,
    ) -> MessageListResponse:
        """
        Retrieve a page of a room's history. Pages count back from the newest
        message; each page is returned oldest-first.
        """
        await self.room_service.admit(room_id, user_id)

        total = await self.db.scalar(
            select(func.count()).select_from(Message).filter(Message.room_id == room_id)
        )
        result = await self.db.execute(
            select(Message)
            .filter(Message.room_id == room_id)
            .order_by(Message.seq.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list(reversed(result.scalars().all()))
        previews = await self._reply_previews(m.reply_to_id for m in messages)

        return MessageListResponse(
            messages=[self._to_response(m, previews) for m in messages],
            total_pages=math.ceil(total / limit),
            current_page=page,
            total=total,
        )

    async def edit_message(self, message_id: UUID, user_id: UUID, content: str) -> MessageResponse:
        """
        Replace the text of a message. Only its sender may edit it.
        """
        message = await self._load_message(message_id)
        if message.sender_id != user_id:
            raise MessageAccessDeniedException(detail="You can only edit your own messages")

        message.content = self.clean_content(content)
        message.is_edited = True
        message.edited_at = utcnow()
        await self.db.commit()

        message_response = await self.serialize(await self._load_message(message_id))
        await self.websocket_manager.broadcast_to_room(
            message.room_id, MESSAGE_UPDATED, message_response.model_dump(mode="json")
        )
        return message_response

    async def delete_message(self, message_id: UUID, user_id: UUID) -> None:
        """
        Hard delete a message. Only its sender may delete it.
        """
        message = await self._load_message(message_id)
        if message.sender_id != user_id:
            raise MessageAccessDeniedException(detail="You can only delete your own messages")

        room_id = message.room_id
        await self.db.delete(message)
        await self.db.commit()

        await self.websocket_manager.broadcast_to_room(
            room_id, MESSAGE_DELETED, {"message_id": str(message_id), "room_id": str(room_id)}
        )

    async def toggle_reaction(self, message_id: UUID, user_id: UUID, emoji: str) -> List[ReactionResponse]:
        """
        Add the (user, emoji) reaction, or remove it when already present.

        Returns:
            The message's full reaction list after the toggle
        """
        message = await self._load_message(message_id)
        await self.room_service.admit(message.room_id, user_id)
        message = await self._load_message(message_id)
        room_id = message.room_id

        existing = next(
            (r for r in message.reactions if r.user_id == user_id and r.emoji == emoji), None
        )
        if existing is not None:
            message.reactions.remove(existing)
        else:
            message.reactions.append(MessageReaction(user_id=user_id, emoji=emoji))

        try:
            await self.db.commit()
        except IntegrityError:
            # a concurrent toggle added the same reaction first
            await self.db.rollback()

        message = await self._load_message(message_id)
        reactions = [ReactionResponse.model_validate(r) for r in message.reactions]
        await self.websocket_manager.broadcast_to_room(
            room_id,
            MESSAGE_REACTION_UPDATE,
            {
                "message_id": str(message_id),
                "room_id": str(room_id),
                "reactions": [r.model_dump(mode="json") for r in reactions],
            },
        )
        return reactions
