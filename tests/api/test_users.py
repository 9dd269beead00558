# tests/api/test_users.py
import pytest
from httpx import AsyncClient
from fastapi import status


@pytest.mark.asyncio
async def test_update_notification_sound(client: AsyncClient, buyer, auth_headers):
    response = await client.put(
        "/api/users/profile", json={"notificationSound": "alert"}, headers=auth_headers(buyer)
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["notificationSound"] == "alert"

    unread = await client.get("/api/messages/unread", headers=auth_headers(buyer))
    assert unread.json() == {"count": 0, "sound": "alert"}


@pytest.mark.asyncio
async def test_update_rejects_unknown_sound(client: AsyncClient, buyer, auth_headers):
    response = await client.put(
        "/api/users/profile", json={"notificationSound": "trumpet"}, headers=auth_headers(buyer)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_rejects_taken_username(client: AsyncClient, buyer, seller, auth_headers):
    response = await client.put(
        "/api/users/profile", json={"username": seller.username}, headers=auth_headers(buyer)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_read_user_by_id(client: AsyncClient, seller):
    response = await client.get(f"/api/users/{seller.id}")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"id": seller.id, "username": seller.username, "avatar": None}

    missing = await client.get("/api/users/does-not-exist")
    assert missing.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_profile_requires_session(client: AsyncClient):
    response = await client.put("/api/users/profile", json={"avatar": "x"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
