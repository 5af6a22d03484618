import logging
import math
import secrets
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roomchat.core.config import settings
from roomchat.core.security import hash_password
from roomchat.services import access_policy
from ..models.base import utcnow
from ..models.message import Message, MessageRead, MessageReaction
from ..models.room import Room
from ..models.room_membership import RoomMembership
from ..models.user import User
from ..schemas.events import ROOM_DELETED, USER_JOINED_ROOM, USER_LEFT_ROOM
from ..schemas.room import (
    CreateRoomRequest,
    MemberRole,
    RoomListResponse,
    RoomResponse,
    UpdateRoomRequest,
)
from ..core.exceptions import (
    CannotDeleteGeneralRoomException,
    InvalidInputException,
    RoomAlreadyExistsException,
)
from ..utils.websocket_manager import WebsocketManager
from ..utils.text_search import LIKE_ESCAPE, contains_pattern

logger = logging.getLogger(__name__)

GENERAL_ROOM_DESCRIPTION = "Welcome to the general chat room! This is where everyone can chat together."
GENERAL_ROOM_CAPACITY = 1000


def member_joined_payload(room_id: UUID, user: User) -> dict:
    return {
        "room_id": str(room_id),
        "user": {
            "id": str(user.id),
            "username": user.username,
            "avatar": user.avatar,
            "status": user.status.value,
        },
    }

def member_left_payload(room_id: UUID, user_id: UUID, username: str) -> dict:
    return {
        "room_id": str(room_id),
        "user": {"id": str(user_id), "username": username},
    }


class RoomService:
    def __init__(self, db: AsyncSession, websocket_manager: Optional[WebsocketManager] = None):
        self.db = db
        self.websocket_manager = websocket_manager

    async def _load_room(self, room_id: UUID) -> Optional[Room]:
        # populate_existing: the session may already hold a stale copy of the room
        result = await self.db.execute(
            select(Room)
            .filter(Room.id == room_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def admit(self, room_id: UUID, user_id: UUID) -> Room:
        """
        Resolve a room for a read or write by user_id.

        Members always pass. A public room the user does not belong to is
        joined on their behalf through auto_join, which persists a "member"
        row and announces it; this is the only read path with a side effect.
        Private rooms require an earlier explicit join.

        Raises:
            RoomNotFoundException: If the room does not exist
            RoomAccessDeniedException: If the room is private and user_id is not a member
            RoomFullException: If auto-joining would exceed max_members
        """
        room = await self._load_room(room_id)
        decision = access_policy.check_access(room, user_id)
        access_policy.raise_for(decision)
        if decision.auto_join:
            room = await self.auto_join(room, user_id)
        return room

    async def auto_join(self, room: Room, user_id: UUID) -> Room:
        """Add user_id to a public room as a plain member."""
        logger.info(f"Auto-joining user {user_id} to public room '{room.name}'")
        return await self._add_member(room, user_id, MemberRole.MEMBER)

    async def create_room(self, user_id: UUID, request: CreateRoomRequest) -> Room:
        """
        Create a new room with the creator as its admin.

        Args:
            user_id: ID of the creator
            request: Room creation request

        Returns:
            The created Room with members populated

        Raises:
            RoomAlreadyExistsException: If a room with the same name already exists
        """
        existing_room = await self.db.scalar(select(Room.id).filter(Room.name == request.name))
        if existing_room:
            raise RoomAlreadyExistsException()

        room = Room(
            name=request.name,
            description=request.description,
            is_private=request.is_private,
            password=request.password,
            creator_id=user_id,
            max_members=request.max_members,
            tags=request.tags,
            members=[RoomMembership(user_id=user_id, role=MemberRole.ADMIN)],
        )
        self.db.add(room)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # the name check above is not atomic, the unique constraint is
            await self.db.rollback()
            raise RoomAlreadyExistsException() from e

        logger.info(f"Room '{request.name}' created by {user_id}")
        if self.websocket_manager is not None:
            await self.websocket_manager.join_room(user_id, room.id)
        return await self._load_room(room.id)

    async def update_room(self, room_id: UUID, user_id: UUID, request: UpdateRoomRequest) -> Room:
        """
        Update room settings. Only admins of the room may do this.
        """
        room = await self._load_room(room_id)
        access_policy.raise_for(access_policy.check_role(room, user_id, (MemberRole.ADMIN,)))

        if request.name is not None and request.name != room.name:
            taken = await self.db.scalar(
                select(Room.id).filter(Room.name == request.name, Room.id != room_id)
            )
            if taken:
                raise RoomAlreadyExistsException()
            room.name = request.name
        if request.max_members is not None:
            if request.max_members < len(room.members):
                raise InvalidInputException(detail="Max members cannot be lower than the current member count")
            room.max_members = request.max_members
        if request.is_private is not None:
            if room.is_general and request.is_private:
                raise InvalidInputException(detail="The general room must stay public")
            room.is_private = request.is_private
        if request.description is not None:
            room.description = request.description
        if request.password is not None:
            room.password = request.password
        if request.tags is not None:
            room.tags = request.tags

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise RoomAlreadyExistsException() from e
        return await self._load_room(room_id)

    async def delete_room(self, room_id: UUID, user_id: UUID) -> None:
        """
        Delete a room with its memberships and messages. Admins only; the
        general room cannot be deleted.
        """
        room = await self._load_room(room_id)
        access_policy.raise_for(access_policy.check_role(room, user_id, (MemberRole.ADMIN,)))
        if room.is_general:
            raise CannotDeleteGeneralRoomException()

        room_messages = select(Message.id).filter(Message.room_id == room_id)
        await self.db.execute(delete(MessageReaction).filter(MessageReaction.message_id.in_(room_messages)))
        await self.db.execute(delete(MessageRead).filter(MessageRead.message_id.in_(room_messages)))
        await self.db.execute(delete(Message).filter(Message.room_id == room_id))
        await self.db.delete(room)
        await self.db.commit()
        logger.info(f"Room {room_id} deleted by {user_id}")

        if self.websocket_manager is not None:
            await self.websocket_manager.broadcast_to_room(room_id, ROOM_DELETED, {"room_id": str(room_id)})
            await self.websocket_manager.close_room(room_id)

    async def join_room(self, room_id: UUID, user_id: UUID, password: Optional[str] = None) -> Room:
        """
        Explicitly join a room. Private rooms check the supplied password.

        Raises:
            RoomNotFoundException: If room doesn't exist
            AlreadyMemberException: If user is already a member
            RoomFullException: If the room is at max_members
            InvalidRoomPasswordException: If the private room password does not match
        """
        room = await self._load_room(room_id)
        access_policy.raise_for(access_policy.check_join(room, user_id, password))
        room.last_activity = utcnow()
        return await self._add_member(room, user_id, MemberRole.MEMBER)

    async def leave_room(self, room_id: UUID, user_id: UUID) -> None:
        """
        Leave a room. Nobody can leave the general room.
        """
        room = await self._load_room(room_id)
        access_policy.raise_for(access_policy.check_leave(room, user_id))

        member = room.find_member(user_id)
        user = member.user
        room.members.remove(member)
        room.last_activity = utcnow()
        await self.db.commit()

        if self.websocket_manager is not None:
            await self.websocket_manager.broadcast_to_room(
                room_id, USER_LEFT_ROOM, member_left_payload(room_id, user_id, user.username), exclude_user_id=user_id
            )
            await self.websocket_manager.leave_room(user_id, room_id)

    async def list_rooms(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
        search: str = "",
    ) -> RoomListResponse:
        """
        Rooms visible to user_id: every public room plus the private rooms
        they belong to. The general room is pinned first, then the most
        recently active. Listing never joins anything.
        """
        member_of = select(RoomMembership.room_id).filter(RoomMembership.user_id == user_id)
        query = select(Room).filter(or_(Room.is_private.is_(False), Room.id.in_(member_of)))
        if search:
            query = query.filter(Room.name.ilike(contains_pattern(search), escape=LIKE_ESCAPE))

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Room.is_general.desc(), Room.last_activity.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        rooms = result.scalars().all()

        return RoomListResponse(
            rooms=[RoomResponse.model_validate(room) for room in rooms],
            total_pages=math.ceil(total / limit),
            current_page=page,
            total=total,
        )

    async def reveal_password(self, room_id: UUID, user_id: UUID) -> str:
        """Return the stored room password to its admins and moderators."""
        room = await self._load_room(room_id)
        access_policy.raise_for(
            access_policy.check_role(room, user_id, (MemberRole.ADMIN, MemberRole.MODERATOR))
        )
        return room.password

    async def get_member_room_ids(self, user_id: UUID) -> List[UUID]:
        """Fetches the ids of every room user_id is a member of."""
        result = await self.db.execute(
            select(RoomMembership.room_id).filter(RoomMembership.user_id == user_id)
        )
        return result.scalars().all()

    async def get_general_room(self) -> Optional[Room]:
        result = await self.db.execute(
            select(Room).filter(Room.is_general.is_(True)).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_general_room(self) -> Room:
        """
        Make sure the general room exists and every user belongs to it.
        Idempotent; a concurrent bootstrap loses on the unique index and
        reuses the winner's room.
        """
        room = await self.get_general_room()
        if room is None:
            system_user = await self._get_or_create_system_user()
            room = Room(
                name=settings.general_room_name,
                description=GENERAL_ROOM_DESCRIPTION,
                is_private=False,
                creator_id=system_user.id,
                is_general=True,
                max_members=GENERAL_ROOM_CAPACITY,
                members=[RoomMembership(user_id=system_user.id, role=MemberRole.ADMIN)],
            )
            self.db.add(room)
            try:
                await self.db.commit()
                logger.info("General room created")
            except IntegrityError:
                await self.db.rollback()
                room = await self.get_general_room()
                if room is None:
                    raise
        await self._enroll_missing_users(room)
        return await self._load_room(room.id)

    async def enroll_in_general_room(self, user_id: UUID) -> bool:
        """Add a user to the general room. Returns False when there is none or it is full."""
        room = await self.get_general_room()
        if room is None:
            return False
        if room.is_member(user_id):
            return True
        if room.is_full:
            logger.warning(f"General room is full, user {user_id} was not enrolled")
            return False
        await self._add_member(room, user_id, MemberRole.MEMBER)
        return True

    async def _enroll_missing_users(self, room: Room) -> int:
        member_ids = {member.user_id for member in room.members}
        result = await self.db.execute(select(User.id).order_by(User.created_at))
        missing = [uid for uid in result.scalars().all() if uid not in member_ids]
        free_seats = max(room.max_members - len(member_ids), 0)
        if len(missing) > free_seats:
            logger.warning(f"General room has {free_seats} free seats for {len(missing)} users")
        for uid in missing[:free_seats]:
            self.db.add(RoomMembership(room_id=room.id, user_id=uid, role=MemberRole.MEMBER))
        if missing:
            await self.db.commit()
            logger.info(f"Enrolled {min(len(missing), free_seats)} users in the general room")
        return min(len(missing), free_seats)

    async def _get_or_create_system_user(self) -> User:
        user = await self.db.scalar(select(User).filter(User.email == settings.system_user_email))
        if user is not None:
            return user
        user = User(
            username="System",
            email=settings.system_user_email,
            hashed_password=hash_password(secrets.token_urlsafe(24)),
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def _add_member(self, room: Room, user_id: UUID, role: MemberRole) -> Room:
        room_id = room.id
        self.db.add(RoomMembership(room_id=room_id, user_id=user_id, role=role))
        try:
            await self.db.commit()
        except IntegrityError:
            # a concurrent request inserted the same membership first
            await self.db.rollback()
            return await self._load_room(room_id)

        room = await self._load_room(room_id)
        if self.websocket_manager is not None:
            member = room.find_member(user_id)
            await self.websocket_manager.join_room(user_id, room_id)
            await self.websocket_manager.broadcast_to_room(
                room_id, USER_JOINED_ROOM, member_joined_payload(room_id, member.user), exclude_user_id=user_id
            )
        return room
