from sqlalchemy import Column, String, DateTime, Enum

from roomchat.models.base import Base, utcnow
from roomchat.schemas.user import UserStatus

class User(Base):
    __tablename__ = "users"

    username = Column(String(30), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    avatar = Column(String(500), nullable=False, default="")
    status = Column(Enum(UserStatus), nullable=False, default=UserStatus.OFFLINE)
    last_seen = Column(DateTime(timezone=True), default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"
