"""
Room access rules.

Everything here is a pure function of a loaded Room and the requesting user:
no database access and no mutation. Public rooms admit any authenticated user
(the caller performs the join, see RoomService.admit); private rooms require an
explicit, password-gated join first.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from roomchat.core.exceptions import (
    AlreadyMemberException,
    CannotLeaveGeneralRoomException,
    InvalidRoomPasswordException,
    NotAMemberException,
    RoomAccessDeniedException,
    RoomFullException,
    RoomNotFoundException,
)
from roomchat.models.room import Room
from roomchat.schemas.room import MemberRole


class Denial(str, Enum):
    NOT_FOUND = "not-found"
    ACCESS_DENIED = "access-denied"
    ROOM_FULL = "room-full"
    WRONG_PASSWORD = "wrong-password"
    ALREADY_MEMBER = "already-member"
    NOT_A_MEMBER = "not-a-member"
    GENERAL_ROOM = "general-room"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[Denial] = None
    auto_join: bool = False

    def __bool__(self):
        return self.allowed


ALLOW = AccessDecision(allowed=True)


def deny(reason: Denial) -> AccessDecision:
    return AccessDecision(allowed=False, reason=reason)


_DENIAL_EXCEPTIONS = {
    Denial.NOT_FOUND: RoomNotFoundException,
    Denial.ACCESS_DENIED: RoomAccessDeniedException,
    Denial.ROOM_FULL: RoomFullException,
    Denial.WRONG_PASSWORD: InvalidRoomPasswordException,
    Denial.ALREADY_MEMBER: AlreadyMemberException,
    Denial.NOT_A_MEMBER: NotAMemberException,
    Denial.GENERAL_ROOM: CannotLeaveGeneralRoomException,
}


def check_access(room: Optional[Room], user_id: UUID) -> AccessDecision:
    """
    Decide whether user_id may read or write the room.

    A public room the user does not belong to yet is allowed with
    auto_join=True; the caller is expected to add the membership.
    """
    if room is None:
        return deny(Denial.NOT_FOUND)
    if room.is_member(user_id):
        return ALLOW
    if room.is_private:
        return deny(Denial.ACCESS_DENIED)
    if room.is_full:
        return deny(Denial.ROOM_FULL)
    return AccessDecision(allowed=True, auto_join=True)


def check_join(room: Optional[Room], user_id: UUID, password: Optional[str] = None) -> AccessDecision:
    """
    Decide an explicit join. An empty stored password accepts anything.
    """
    if room is None:
        return deny(Denial.NOT_FOUND)
    if room.is_member(user_id):
        return deny(Denial.ALREADY_MEMBER)
    if room.is_full:
        return deny(Denial.ROOM_FULL)
    if room.is_private and room.password and room.password != password:
        return deny(Denial.WRONG_PASSWORD)
    return ALLOW


def check_leave(room: Optional[Room], user_id: UUID) -> AccessDecision:
    if room is None:
        return deny(Denial.NOT_FOUND)
    if room.is_general:
        return deny(Denial.GENERAL_ROOM)
    if not room.is_member(user_id):
        return deny(Denial.NOT_A_MEMBER)
    return ALLOW


def check_role(room: Optional[Room], user_id: UUID, roles: Iterable[MemberRole]) -> AccessDecision:
    """Allow only members holding one of the given roles."""
    if room is None:
        return deny(Denial.NOT_FOUND)
    member = room.find_member(user_id)
    if member is None or member.role not in set(roles):
        return deny(Denial.ACCESS_DENIED)
    return ALLOW


def raise_for(decision: AccessDecision) -> None:
    """Raise the API exception matching a denied decision; no-op when allowed."""
    if decision.allowed:
        return
    raise _DENIAL_EXCEPTIONS[decision.reason]()
