import pytest
from uuid import UUID

from roomchat.services.room_service import RoomService


@pytest.mark.asyncio
async def test_register_user_success(async_test_client):
    response = await async_test_client.post(
        "/api/auth/register",
        json={
            "username": "alice",
            "email": "alice@x.com",
            "password": "password123"
        }
    )
    assert response.status_code == 201
    data = response.json()
    assert data["token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["username"] == "alice"
    assert data["user"]["status"] == "offline"
    assert "password" not in data["user"]
    assert "hashed_password" not in data["user"]

@pytest.mark.asyncio
async def test_register_user_duplicate(async_test_client, test_user):
    response = await async_test_client.post(
        "/api/auth/register",
        json={
            "username": test_user.username,
            "email": "duplicate@example.com",
            "password": "password123"
        }
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Username or email already exists"

@pytest.mark.asyncio
async def test_register_validation_errors(async_test_client):
    response = await async_test_client.post(
        "/api/auth/register",
        json={"username": "al", "email": "not-an-email", "password": "123"}
    )
    assert response.status_code == 400
    data = response.json()
    assert data["message"] == "Validation failed"
    fields = {error["field"] for error in data["errors"]}
    assert {"username", "email", "password"} <= fields

@pytest.mark.asyncio
async def test_register_enrolls_in_general_room(async_test_client, async_session, load_room):
    general = await RoomService(async_session).ensure_general_room()

    response = await async_test_client.post(
        "/api/auth/register",
        json={"username": "newcomer", "email": "newcomer@example.com", "password": "password123"}
    )
    assert response.status_code == 201

    room = await load_room(general.id)
    assert room.is_member(UUID(response.json()["user"]["id"]))

@pytest.mark.asyncio
async def test_login_user_success(async_test_client, test_user):
    response = await async_test_client.post(
        "/api/auth/login",
        json={
            "email": test_user.email,
            "password": "password123"
        }
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["user"]["id"] == str(test_user.id)
    assert data["user"]["username"] == test_user.username

@pytest.mark.asyncio
async def test_login_user_invalid_credentials(async_test_client, test_user):
    response = await async_test_client.post(
        "/api/auth/login",
        json={
            "email": test_user.email,
            "password": "wrongpassword"
        }
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid credentials"

@pytest.mark.asyncio
async def test_login_unknown_email(async_test_client):
    response = await async_test_client.post(
        "/api/auth/login",
        json={"email": "nobody@example.com", "password": "password123"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid credentials"

@pytest.mark.asyncio
async def test_me_success(async_test_client, test_user, auth_headers):
    response = await async_test_client.get("/api/auth/me", headers=auth_headers)
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["id"] == str(test_user.id)
    assert user["email"] == test_user.email

@pytest.mark.asyncio
async def test_me_invalid_token(async_test_client):
    response = await async_test_client.get(
        "/api/auth/me",
        headers={"Authorization": "Bearer invalid_token"}
    )
    assert response.status_code == 401

@pytest.mark.asyncio
async def test_me_no_token(async_test_client):
    response = await async_test_client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["message"] == "Access token required"

@pytest.mark.asyncio
async def test_logout_marks_user_offline(async_test_client, async_session, test_user, auth_headers):
    await async_test_client.put("/api/users/status", json={"status": "online"}, headers=auth_headers)

    response = await async_test_client.post("/api/auth/logout", headers=auth_headers)
    assert response.status_code == 200

    await async_session.refresh(test_user)
    assert test_user.status.value == "offline"
