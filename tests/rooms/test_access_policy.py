import uuid

import pytest

from roomchat.core.exceptions import (
    CannotLeaveGeneralRoomException,
    InvalidRoomPasswordException,
    RoomAccessDeniedException,
    RoomNotFoundException,
)
from roomchat.models.room import Room
from roomchat.models.room_membership import RoomMembership
from roomchat.schemas.room import MemberRole
from roomchat.services import access_policy
from roomchat.services.access_policy import Denial

ADMIN = uuid.uuid4()
MEMBER = uuid.uuid4()
STRANGER = uuid.uuid4()


def make_room(is_private=False, password="", max_members=10, is_general=False):
    return Room(
        id=uuid.uuid4(),
        name="room",
        is_private=is_private,
        password=password,
        max_members=max_members,
        is_general=is_general,
        members=[
            RoomMembership(user_id=ADMIN, role=MemberRole.ADMIN),
            RoomMembership(user_id=MEMBER, role=MemberRole.MEMBER),
        ],
    )


def test_missing_room_is_not_found():
    for decision in (
        access_policy.check_access(None, MEMBER),
        access_policy.check_join(None, MEMBER),
        access_policy.check_leave(None, MEMBER),
        access_policy.check_role(None, MEMBER, (MemberRole.ADMIN,)),
    ):
        assert decision.reason == Denial.NOT_FOUND

def test_member_has_access_without_join():
    decision = access_policy.check_access(make_room(is_private=True), MEMBER)
    assert decision.allowed
    assert not decision.auto_join

def test_public_non_member_is_auto_joined():
    decision = access_policy.check_access(make_room(), STRANGER)
    assert decision
    assert decision.auto_join

def test_private_non_member_is_denied():
    decision = access_policy.check_access(make_room(is_private=True), STRANGER)
    assert not decision
    assert decision.reason == Denial.ACCESS_DENIED

def test_full_public_room_denies_auto_join():
    decision = access_policy.check_access(make_room(max_members=2), STRANGER)
    assert decision.reason == Denial.ROOM_FULL

def test_join_order_of_checks():
    assert access_policy.check_join(make_room(), MEMBER).reason == Denial.ALREADY_MEMBER
    full_private = make_room(is_private=True, password="secret", max_members=2)
    assert access_policy.check_join(full_private, STRANGER, "wrong").reason == Denial.ROOM_FULL

def test_join_private_password():
    room = make_room(is_private=True, password="secret")
    assert access_policy.check_join(room, STRANGER, "wrong").reason == Denial.WRONG_PASSWORD
    assert access_policy.check_join(room, STRANGER, None).reason == Denial.WRONG_PASSWORD
    assert access_policy.check_join(room, STRANGER, "secret").allowed

def test_join_private_room_without_stored_password_accepts_anything():
    room = make_room(is_private=True, password="")
    assert access_policy.check_join(room, STRANGER, None).allowed
    assert access_policy.check_join(room, STRANGER, "whatever").allowed

def test_leave_general_room_fails_for_every_role():
    room = make_room(is_general=True)
    for user_id in (ADMIN, MEMBER, STRANGER):
        assert access_policy.check_leave(room, user_id).reason == Denial.GENERAL_ROOM

def test_leave_requires_membership():
    assert access_policy.check_leave(make_room(), STRANGER).reason == Denial.NOT_A_MEMBER
    assert access_policy.check_leave(make_room(), MEMBER).allowed

def test_check_role():
    room = make_room()
    roles = (MemberRole.ADMIN, MemberRole.MODERATOR)
    assert access_policy.check_role(room, ADMIN, roles).allowed
    assert access_policy.check_role(room, MEMBER, roles).reason == Denial.ACCESS_DENIED
    assert access_policy.check_role(room, STRANGER, roles).reason == Denial.ACCESS_DENIED

@pytest.mark.parametrize(
    "reason, exception",
    [
        (Denial.NOT_FOUND, RoomNotFoundException),
        (Denial.ACCESS_DENIED, RoomAccessDeniedException),
        (Denial.WRONG_PASSWORD, InvalidRoomPasswordException),
        (Denial.GENERAL_ROOM, CannotLeaveGeneralRoomException),
    ],
)
def test_raise_for_maps_denials(reason, exception):
    with pytest.raises(exception):
        access_policy.raise_for(access_policy.deny(reason))

def test_raise_for_allowed_is_noop():
    access_policy.raise_for(access_policy.ALLOW)
