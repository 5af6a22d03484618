import os
import uuid

import pytest

from roomchat.core.config import settings


@pytest.fixture
async def room_id(async_test_client, auth_headers):
    response = await async_test_client.post("/api/rooms", json={"name": "Lobby"}, headers=auth_headers)
    return response.json()["room"]["id"]

async def _send(client, headers, room_id, content, **fields):
    return await client.post(
        "/api/messages", json={"room_id": room_id, "content": content, **fields}, headers=headers
    )


@pytest.mark.asyncio
async def test_two_senders_listed_in_send_order(async_test_client, auth_headers, second_headers, room_id, test_user, second_user):
    sent = []
    for i in range(3):
        response = await _send(async_test_client, auth_headers, room_id, f"alice {i}")
        assert response.status_code == 201
        sent.append((f"alice {i}", test_user.username))
    for i in range(2):
        response = await _send(async_test_client, second_headers, room_id, f"bob {i}")
        assert response.status_code == 201
        sent.append((f"bob {i}", second_user.username))

    response = await async_test_client.get(f"/api/messages/{room_id}?limit=10", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert [(m["content"], m["sender"]["username"]) for m in data["messages"]] == sent
    assert data["total"] == 5
    assert data["current_page"] == 1
    assert data["total_pages"] == 1

@pytest.mark.asyncio
async def test_send_message_response_shape(async_test_client, auth_headers, room_id):
    response = await _send(async_test_client, auth_headers, room_id, "  hello  ")
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Message sent successfully"
    assert body["data"]["content"] == "hello"
    assert body["data"]["reactions"] == []
    assert body["data"]["read_by"] == []
    assert body["data"]["is_edited"] is False

@pytest.mark.asyncio
async def test_send_message_validation(async_test_client, auth_headers, room_id):
    response = await _send(async_test_client, auth_headers, room_id, "")
    assert response.status_code == 400

    response = await _send(async_test_client, auth_headers, room_id, "x" * 1001)
    assert response.status_code == 400

@pytest.mark.asyncio
async def test_send_message_unknown_room(async_test_client, auth_headers):
    response = await _send(async_test_client, auth_headers, str(uuid.uuid4()), "hello")
    assert response.status_code == 404

@pytest.mark.asyncio
async def test_private_room_messages_forbidden(async_test_client, auth_headers, second_headers):
    response = await async_test_client.post(
        "/api/rooms", json={"name": "Vault", "is_private": True, "password": "pw"}, headers=auth_headers
    )
    vault_id = response.json()["room"]["id"]

    response = await async_test_client.get(f"/api/messages/{vault_id}", headers=second_headers)
    assert response.status_code == 403
    response = await _send(async_test_client, second_headers, vault_id, "hello")
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_upload_file(async_test_client, auth_headers, room_id):
    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": room_id},
        files={"file": ("notes.txt", b"some notes", "text/plain")},
        headers=auth_headers,
    )
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["message_type"] == "file"
    assert data["file_name"] == "notes.txt"
    assert data["file_size"] == len(b"some notes")
    assert data["file_url"].startswith("/uploads/")
    stored_path = os.path.join(settings.upload_dir, data["file_url"].rsplit("/", 1)[1])
    assert os.path.exists(stored_path)

@pytest.mark.asyncio
async def test_upload_image_with_caption(async_test_client, auth_headers, room_id):
    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": room_id, "content": "look"},
        files={"file": ("cat.PNG", b"\x89PNG fake", "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["data"]["message_type"] == "image"
    assert response.json()["data"]["content"] == "look"

@pytest.mark.asyncio
async def test_upload_rejects_disallowed_extension(async_test_client, auth_headers, room_id):
    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": room_id},
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "File type not allowed"

@pytest.mark.asyncio
async def test_upload_rejects_oversized_file(async_test_client, auth_headers, room_id, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 8)
    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": room_id},
        files={"file": ("big.txt", b"0123456789", "text/plain")},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "File too large"

@pytest.mark.asyncio
async def test_rejected_upload_leaves_no_file_behind(async_test_client, auth_headers, room_id):
    before = set(os.listdir(settings.upload_dir))

    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": str(uuid.uuid4())},
        files={"file": ("notes.txt", b"some notes", "text/plain")},
        headers=auth_headers,
    )
    assert response.status_code == 404

    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": room_id, "content": "x" * 1001},
        files={"file": ("notes.txt", b"some notes", "text/plain")},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Message too long"

    assert set(os.listdir(settings.upload_dir)) == before

@pytest.mark.asyncio
async def test_upload_rejects_overlong_file_name(async_test_client, auth_headers, room_id):
    response = await async_test_client.post(
        "/api/messages/upload",
        data={"room_id": room_id},
        files={"file": ("n" * 252 + ".txt", b"some notes", "text/plain")},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "File name too long"

@pytest.mark.asyncio
async def test_edit_and_delete_permissions(async_test_client, auth_headers, second_headers, room_id):
    message_id = (await _send(async_test_client, auth_headers, room_id, "mine")).json()["data"]["id"]

    response = await async_test_client.put(
        f"/api/messages/{message_id}", json={"content": "theirs"}, headers=second_headers
    )
    assert response.status_code == 403
    response = await async_test_client.delete(f"/api/messages/{message_id}", headers=second_headers)
    assert response.status_code == 403

    response = await async_test_client.put(
        f"/api/messages/{message_id}", json={"content": "still mine"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["is_edited"] is True

    response = await async_test_client.delete(f"/api/messages/{message_id}", headers=auth_headers)
    assert response.status_code == 200
    response = await async_test_client.delete(f"/api/messages/{message_id}", headers=auth_headers)
    assert response.status_code == 404

@pytest.mark.asyncio
async def test_react_toggles(async_test_client, auth_headers, second_headers, room_id, second_user):
    message_id = (await _send(async_test_client, auth_headers, room_id, "react")).json()["data"]["id"]

    response = await async_test_client.post(
        f"/api/messages/{message_id}/react", json={"emoji": "🔥"}, headers=second_headers
    )
    assert response.status_code == 200
    reactions = response.json()["reactions"]
    assert [(r["user"]["id"], r["emoji"]) for r in reactions] == [(str(second_user.id), "🔥")]

    response = await async_test_client.post(
        f"/api/messages/{message_id}/react", json={"emoji": "🔥"}, headers=second_headers
    )
    assert response.json()["reactions"] == []

    response = await async_test_client.post(
        f"/api/messages/{uuid.uuid4()}/react", json={"emoji": "🔥"}, headers=second_headers
    )
    assert response.status_code == 404
