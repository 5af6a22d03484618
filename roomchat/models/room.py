from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import relationship

from roomchat.models.base import Base, utcnow
from .room_membership import RoomMembership

DEFAULT_MAX_MEMBERS = 100

class Room(Base):
    __tablename__ = "rooms"

    name = Column(String(50), unique=True, nullable=False)
    description = Column(String(200), nullable=False, default="")
    is_private = Column(Boolean, nullable=False, default=False)
    # stored as entered, rooms use it only to gate joining
    password = Column(String(255), nullable=False, default="")
    creator_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    max_members = Column(Integer, nullable=False, default=DEFAULT_MAX_MEMBERS)
    tags = Column(JSON, nullable=False, default=list)
    is_general = Column(Boolean, nullable=False, default=False)
    last_activity = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # last sequence number handed to a message of this room
    message_seq = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    creator = relationship("User", lazy="selectin")
    members = relationship(
        "RoomMembership",
        back_populates="room",
        lazy="selectin",
        order_by=RoomMembership.joined_at,
        cascade="all, delete-orphan",
    )

    def find_member(self, user_id):
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id) -> bool:
        return self.find_member(user_id) is not None

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.max_members

    def __repr__(self):
        return f"<Room(id={self.id}, name='{self.name}', private={self.is_private})>"


# At most one row may carry the general flag.
Index(
    "uq_rooms_single_general",
    Room.is_general,
    unique=True,
    postgresql_where=Room.is_general.is_(True),
    sqlite_where=Room.is_general.is_(True),
)
