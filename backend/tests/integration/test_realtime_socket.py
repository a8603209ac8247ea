"""
Integration tests for the /ws realtime channel.

WHAT: Connect auth, room joins, live chat relay, notification and story pushes
WHY: Realtime delivery is what the chat UI is built on
HOW: TestClient.websocket_connect with ?token=; the server handles frames in
     order, so an unknown event's error reply marks earlier frames as done
"""

from unittest.mock import AsyncMock, patch

import pytest
from starlette.websockets import WebSocketDisconnect

from app.core.security import make_room_id

API = "/api/v1"


def connect(client, user):
    return client.websocket_connect(f"/ws?token={user.token}")


def sync(ws):
    """Round-trip a no-op frame so everything sent before it has been handled."""
    ws.send_json({"event": "sync"})
    frame = ws.receive_json()
    assert frame["event"] == "error"
    assert frame["data"]["event"] == "sync"


def join(ws, room):
    ws.send_json({"event": "join_room", "data": room})
    sync(ws)


@pytest.fixture
def chat(make_user, make_product):
    seller, buyer = make_user("Sita"), make_user("Bikash")
    product = make_product(seller, title="Vintage Kurta")
    return seller, buyer, product, make_room_id(seller.id, buyer.id, product["id"])


@pytest.mark.integration
@pytest.mark.realtime
class TestSocketAuth:

    def test_connect_without_token_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass
        assert exc_info.value.code == 1008

    def test_connect_with_bad_token_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=garbage"):
                pass

    def test_stranger_cannot_join_room(self, client, chat, make_user):
        _, _, _, room = chat
        stranger = make_user("Gita")

        with connect(client, stranger) as ws:
            ws.send_json({"event": "join_room", "data": room})
            frame = ws.receive_json()

        assert frame == {"event": "error",
                         "data": {"error": "Not a participant of this room", "event": "join_room"}}

    def test_invalid_json_answers_error(self, client, chat):
        _, buyer, _, _ = chat

        with connect(client, buyer) as ws:
            ws.send_text("{not json")
            frame = ws.receive_json()

        assert frame["event"] == "error"
        assert frame["data"]["error"] == "Invalid JSON"


@pytest.mark.integration
@pytest.mark.realtime
class TestLiveChat:

    def test_message_relayed_then_notification(self, client, chat):
        seller, buyer, product, room = chat

        with connect(client, seller) as seller_ws, connect(client, buyer) as buyer_ws:
            join(seller_ws, room)
            join(buyer_ws, room)

            buyer_ws.send_json({"event": "send_message", "data": {"room": room, "message": "Hi"}})

            relayed = seller_ws.receive_json()
            notified = seller_ws.receive_json()
            sync(buyer_ws)

        assert relayed["event"] == "receive_message"
        assert relayed["data"]["message"] == "Hi"
        assert relayed["data"]["sender_id"] == buyer.id
        assert relayed["data"]["room"] == room
        assert notified["event"] == "notification"
        assert notified["data"]["type"] == "message"
        assert notified["data"]["user_id"] == seller.id

        history = client.get(f"{API}/messages", headers=seller.headers,
                             params={"other_id": buyer.id, "product_id": product["id"]}).json()
        assert [m["message"] for m in history] == ["Hi"]

    def test_send_by_receiver_and_product(self, client, chat):
        seller, buyer, product, room = chat

        with connect(client, seller) as seller_ws, connect(client, buyer) as buyer_ws:
            join(seller_ws, room)
            buyer_ws.send_json({"event": "send_message", "data": {
                "receiver_id": seller.id, "product_id": product["id"], "message": "Still available?",
            }})

            relayed = seller_ws.receive_json()

        assert relayed["data"]["message"] == "Still available?"

    def test_rest_send_reaches_other_participant_in_order(self, client, chat):
        seller, buyer, product, room = chat

        with connect(client, seller) as seller_ws, connect(client, buyer) as buyer_ws:
            join(seller_ws, room)
            join(buyer_ws, room)

            for text in ("one", "two", "three"):
                client.post(f"{API}/messages", headers=buyer.headers, json={
                    "receiver_id": seller.id, "product_id": product["id"], "message": text,
                })

            seller_frames = [seller_ws.receive_json() for _ in range(6)]
            # The sender's own socket gets no copy; the next frame is the sync reply
            sync(buyer_ws)

        seller_seen = [f["data"]["message"] for f in seller_frames if f["event"] == "receive_message"]
        assert seller_seen == ["one", "two", "three"]
        assert sum(f["event"] == "notification" for f in seller_frames) == 3

    def test_socket_send_reaches_senders_other_connection(self, client, chat):
        _, buyer, _, room = chat

        with connect(client, buyer) as phone, connect(client, buyer) as laptop:
            join(phone, room)
            join(laptop, room)

            phone.send_json({"event": "send_message", "data": {"room": room, "message": "Hi"}})
            relayed = laptop.receive_json()
            sync(phone)

        assert relayed["event"] == "receive_message"
        assert relayed["data"]["sender_id"] == buyer.id

    def test_left_room_gets_nothing(self, client, chat):
        seller, buyer, product, room = chat

        with connect(client, seller) as seller_ws:
            join(seller_ws, room)
            seller_ws.send_json({"event": "leave_room", "data": {"room": room}})
            sync(seller_ws)

            client.post(f"{API}/messages", headers=buyer.headers, json={
                "receiver_id": seller.id, "product_id": product["id"], "message": "hello?",
            })

            # Only the notification arrives, not the room message
            frame = seller_ws.receive_json()

        assert frame["event"] == "notification"

    def test_send_error_reported_to_sender(self, client, chat):
        _, buyer, _, room = chat

        with connect(client, buyer) as ws:
            ws.send_json({"event": "send_message", "data": {"room": room, "message": "   "}})
            frame = ws.receive_json()

        assert frame["event"] == "error"
        assert frame["data"]["error"] == "Message cannot be empty"

    def test_non_text_message_keeps_socket_open(self, client, chat):
        seller, buyer, product, _ = chat

        with connect(client, buyer) as ws:
            ws.send_json({"event": "send_message", "data": {
                "receiver_id": seller.id, "product_id": product["id"], "message": 123,
            }})
            frame = ws.receive_json()
            sync(ws)

        assert frame == {"event": "error",
                         "data": {"error": "Message must be text", "event": "send_message"}}

    def test_unexpected_failure_answers_generic_error(self, client, chat):
        _, buyer, _, room = chat

        with patch("app.services.chat_service.send", new=AsyncMock(side_effect=RuntimeError("boom"))):
            with connect(client, buyer) as ws:
                ws.send_json({"event": "send_message", "data": {"room": room, "message": "Hi"}})
                frame = ws.receive_json()
                sync(ws)

        assert frame["event"] == "error"
        assert frame["data"] == {"error": "Something went wrong", "event": "send_message"}


@pytest.mark.integration
@pytest.mark.realtime
class TestPushes:

    def test_story_like_broadcast(self, client, make_user, make_story):
        alice, bob = make_user("Alice"), make_user("Bob")
        story = make_story(alice)

        with connect(client, alice) as ws:
            sync(ws)
            client.put(f"{API}/stories/{story['id']}/like", headers=bob.headers)
            frame = ws.receive_json()

        assert frame == {"event": "story_like_update", "data": {"storyId": story["id"], "likes": 1}}

    def test_follow_notification_pushed(self, client, make_user):
        alice, bob = make_user("Alice"), make_user("Bob")

        with connect(client, alice) as ws:
            sync(ws)
            client.post(f"{API}/users/{alice.id}/follow", headers=bob.headers)
            frame = ws.receive_json()

        assert frame["event"] == "notification"
        assert frame["data"]["type"] == "follow"
        assert "Bob" in frame["data"]["text"]

    def test_new_comment_broadcast(self, client, make_user, make_story):
        alice, bob = make_user("Alice"), make_user("Bob")
        story = make_story(alice)

        with connect(client, bob) as ws:
            sync(ws)
            client.post(f"{API}/stories/{story['id']}/comments", headers=alice.headers,
                        json={"comment": "Own comment"})
            frame = ws.receive_json()

        assert frame["event"] == "new_comment"
        assert frame["data"]["storyId"] == story["id"]
        assert frame["data"]["comment"]["comment"] == "Own comment"
