from sqlalchemy.orm import relationship
from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
)

from .base import Base, utcnow
from roomchat.schemas.message import MessageType

class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("room_id", "seq", name="uq_messages_room_seq"),
    )

    content = Column(Text, nullable=False, default="")
    message_type = Column(Enum(MessageType), nullable=False, default=MessageType.TEXT)

    # Sender information
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    sender = relationship("User", lazy="selectin")

    room_id = Column(Uuid(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    # position in the room, in send order
    seq = Column(Integer, nullable=False)

    # Attachment metadata, path relative to the uploads mount
    file_url = Column(String(500), nullable=True)
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)

    reply_to_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)

    # Metadata
    is_edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)

    reactions = relationship(
        "MessageReaction",
        back_populates="message",
        lazy="selectin",
        order_by="MessageReaction.created_at",
        cascade="all, delete-orphan",
    )
    read_by = relationship(
        "MessageRead",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Message(id={self.id}, sender_id={self.sender_id}, content='{self.content[:50]}...')>"


class MessageReaction(Base):
    __tablename__ = "message_reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reactions_message_user_emoji"),
    )

    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    emoji = Column(String(10), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    message = relationship("Message", back_populates="reactions")
    user = relationship("User", lazy="selectin")


class MessageRead(Base):
    """Read receipt. Modelled for clients, nothing writes it yet."""
    __tablename__ = "message_reads"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_reads_message_user"),
    )

    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
