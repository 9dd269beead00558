# tests/api/test_messages.py
from datetime import datetime

import pytest
from httpx import AsyncClient
from fastapi import status
from sqlmodel import select

from marketplace.db.models import Message

PNG = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4nGNgYGD4DwABBAEAwS2OUAAAAABJRU5ErkJggg=="


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def open_conversation(client: AsyncClient, headers: dict, buyer, seller, product=None) -> dict:
    payload = {"buyerId": buyer.id, "sellerId": seller.id, "productId": product.id if product else None}
    response = await client.post("/api/conversations", json=payload, headers=headers)
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()["conversation"]


async def send(client: AsyncClient, conversation_id: str, sender, headers: dict, **body) -> dict:
    response = await client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"senderId": sender.id, **body},
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()["message"]


async def unread(client: AsyncClient, headers: dict) -> dict:
    response = await client.get("/api/messages/unread", headers=headers)
    assert response.status_code == status.HTTP_200_OK
    return response.json()


@pytest.mark.asyncio
async def test_buyer_seller_round_trip(client: AsyncClient, buyer, seller, product, auth_headers):
    buyer_headers, seller_headers = auth_headers(buyer), auth_headers(seller)

    conversation = await open_conversation(client, buyer_headers, buyer, seller, product)
    t0 = parse_ts(conversation["updatedAt"])

    hi = await send(client, conversation["id"], buyer, buyer_headers, content="hi", type="text")
    assert hi["type"] == "text"
    assert hi["content"] == "hi"
    assert hi["mediaUrl"] is None
    assert hi["read"] is False
    assert hi["sender"] == {"id": buyer.id, "username": buyer.username}

    assert await unread(client, seller_headers) == {"count": 1, "sound": "chime"}
    assert (await unread(client, buyer_headers))["count"] == 0

    listing = await client.get("/api/conversations", headers=seller_headers)
    entry = listing.json()["conversations"][0]
    assert entry["lastMessage"]["content"] == "hi"
    assert entry["unreadCount"] == 1
    assert parse_ts(entry["updatedAt"]) > t0

    read = await client.post(f"/api/conversations/{conversation['id']}/read", headers=seller_headers)
    assert read.status_code == status.HTTP_200_OK
    assert read.json() == {"success": True}
    assert (await unread(client, seller_headers))["count"] == 0

    reply = await send(client, conversation["id"], seller, seller_headers, type="image", mediaUrl=PNG)
    assert reply["type"] == "image"
    assert reply["content"] is None
    assert reply["mediaUrl"] == PNG
    assert (await unread(client, buyer_headers))["count"] == 1

    history = await client.get(f"/api/conversations/{conversation['id']}/messages", headers=buyer_headers)
    assert [m["id"] for m in history.json()["messages"]] == [hi["id"], reply["id"]]
    assert history.json()["messages"][0]["read"] is True


@pytest.mark.asyncio
async def test_message_type_inferred_from_payload(client: AsyncClient, buyer, seller, auth_headers):
    headers = auth_headers(buyer)
    conversation = await open_conversation(client, headers, buyer, seller)

    text = await send(client, conversation["id"], buyer, headers, content="plain")
    assert text["type"] == "text"

    clip = await send(client, conversation["id"], buyer, headers, mediaUrl="data:audio/webm;base64,GkXfo59ChoEBQveBAULygQRC")
    assert clip["type"] == "audio"
    assert clip["content"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"content": ""},
        {"content": "both", "mediaUrl": PNG},
        {"type": "image", "content": "not an image"},
        {"type": "text", "mediaUrl": PNG},
        {"type": "sticker", "content": "??"},
    ],
)
async def test_invalid_payload_is_rejected(client: AsyncClient, buyer, seller, session_maker, auth_headers, body):
    headers = auth_headers(buyer)
    conversation = await open_conversation(client, headers, buyer, seller)

    response = await client.post(
        f"/api/conversations/{conversation['id']}/messages",
        json={"senderId": buyer.id, **body},
        headers=headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    async with session_maker() as session:
        result = await session.execute(select(Message).where(Message.conversation_id == conversation["id"]))
        assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_send_requires_sender(client: AsyncClient, buyer, seller, auth_headers):
    headers = auth_headers(buyer)
    conversation = await open_conversation(client, headers, buyer, seller)
    response = await client.post(
        f"/api/conversations/{conversation['id']}/messages", json={"content": "anon"}, headers=headers
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_cannot_send_as_someone_else(client: AsyncClient, buyer, seller, auth_headers):
    conversation = await open_conversation(client, auth_headers(buyer), buyer, seller)
    response = await client.post(
        f"/api/conversations/{conversation['id']}/messages",
        json={"senderId": seller.id, "content": "I am the seller, honest"},
        headers=auth_headers(buyer),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_outsider_cannot_read_or_write(client: AsyncClient, buyer, seller, stranger, auth_headers):
    conversation = await open_conversation(client, auth_headers(buyer), buyer, seller)
    outsider = auth_headers(stranger)

    listing = await client.get(f"/api/conversations/{conversation['id']}/messages", headers=outsider)
    assert listing.status_code == status.HTTP_403_FORBIDDEN

    sending = await client.post(
        f"/api/conversations/{conversation['id']}/messages",
        json={"senderId": stranger.id, "content": "hey"},
        headers=outsider,
    )
    assert sending.status_code == status.HTTP_403_FORBIDDEN

    marking = await client.post(f"/api/conversations/{conversation['id']}/read", headers=outsider)
    assert marking.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_unknown_conversation(client: AsyncClient, buyer, auth_headers):
    headers = auth_headers(buyer)
    listing = await client.get("/api/conversations/missing/messages", headers=headers)
    assert listing.status_code == status.HTTP_404_NOT_FOUND
    assert listing.json()["error_code"] == "conversation_not_found"

    sending = await client.post(
        "/api/conversations/missing/messages", json={"senderId": buyer.id, "content": "x"}, headers=headers
    )
    assert sending.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_mark_read_only_touches_received_messages(client: AsyncClient, buyer, seller, session_maker, auth_headers):
    buyer_headers, seller_headers = auth_headers(buyer), auth_headers(seller)
    conversation = await open_conversation(client, buyer_headers, buyer, seller)

    await send(client, conversation["id"], buyer, buyer_headers, content="one")
    await send(client, conversation["id"], buyer, buyer_headers, content="two")
    await send(client, conversation["id"], seller, seller_headers, content="three")

    await client.post(f"/api/conversations/{conversation['id']}/read", headers=seller_headers)

    assert (await unread(client, seller_headers))["count"] == 0
    assert (await unread(client, buyer_headers))["count"] == 1

    async with session_maker() as session:
        result = await session.execute(select(Message).where(Message.sender_id == seller.id))
        assert [m.read for m in result.scalars().all()] == [False]

    # a second pass is a no-op
    again = await client.post(f"/api/conversations/{conversation['id']}/read", headers=seller_headers)
    assert again.status_code == status.HTTP_200_OK


@pytest.mark.asyncio
async def test_delete_messages_is_scoped_to_conversation(
    client: AsyncClient, buyer, seller, stranger, product, session_maker, auth_headers
):
    buyer_headers = auth_headers(buyer)
    first = await open_conversation(client, buyer_headers, buyer, seller, product)
    second = await open_conversation(client, buyer_headers, buyer, stranger)

    keep = await send(client, first["id"], buyer, buyer_headers, content="keep me")
    drop = await send(client, first["id"], buyer, buyer_headers, content="drop me")
    foreign = await send(client, second["id"], buyer, buyer_headers, content="other thread")

    response = await client.request(
        "DELETE",
        f"/api/conversations/{first['id']}/messages",
        json={"messageIds": [drop["id"], foreign["id"], "no-such-id"]},
        headers=buyer_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"count": 1}

    async with session_maker() as session:
        result = await session.execute(select(Message.id))
        remaining = set(result.scalars().all())
    assert remaining == {keep["id"], foreign["id"]}


@pytest.mark.asyncio
@pytest.mark.parametrize("message_ids", [[], "abc", [""], None, [1, 2]])
async def test_delete_messages_rejects_bad_ids(client: AsyncClient, buyer, seller, auth_headers, message_ids):
    headers = auth_headers(buyer)
    conversation = await open_conversation(client, headers, buyer, seller)
    response = await client.request(
        "DELETE",
        f"/api/conversations/{conversation['id']}/messages",
        json={"messageIds": message_ids},
        headers=headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_unread_for_guest(client: AsyncClient):
    response = await client.get("/api/messages/unread")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"count": 0, "sound": "default"}


@pytest.mark.asyncio
async def test_unread_sums_across_conversations(client: AsyncClient, buyer, seller, stranger, product, auth_headers):
    first = await open_conversation(client, auth_headers(buyer), buyer, seller, product)
    second = await open_conversation(client, auth_headers(buyer), buyer, stranger)

    await send(client, first["id"], seller, auth_headers(seller), content="price is firm")
    await send(client, second["id"], stranger, auth_headers(stranger), content="trade?")
    await send(client, second["id"], stranger, auth_headers(stranger), mediaUrl="data:video/mp4;base64,AAAAIGZ0eXA=")

    assert await unread(client, auth_headers(buyer)) == {"count": 3, "sound": "default"}
