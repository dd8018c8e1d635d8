import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app import create_app


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as test_client:
        yield test_client


def receive(ws, event):
    """Read frames until `event` arrives, returning its data."""
    while True:
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame["data"]


def test_websocket_voice_and_signaling_flow(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        a_id = receive(a, "connected")["socketId"]
        b_id = receive(b, "connected")["socketId"]

        a.send_json({"event": "joinVoice", "data": {"channelId": "general-voice", "userId": "u1", "username": "alice"}})
        assert receive(a, "usersInCall") == []

        b.send_json({"event": "joinVoice", "data": {"channelId": "general-voice", "userId": "u2", "username": "bob"}})
        assert receive(b, "usersInCall") == [{"userId": "u1", "username": "alice", "socketId": a_id}]
        assert receive(a, "userJoinedVoice") == {"userId": "u2", "username": "bob", "socketId": b_id}

        response = client.get("/channels/general-voice/voice")
        assert response.status_code == 200
        assert [p["socketId"] for p in response.json()] == [a_id, b_id]

        a.send_json({"event": "offer", "data": {"target": b_id, "offer": {"type": "offer", "sdp": "v=0"}}})
        offer = receive(b, "offer")
        assert offer == {"offer": {"type": "offer", "sdp": "v=0"}, "sender": a_id, "userId": "u1", "username": "alice"}

        b.send_json({"event": "answer", "data": {"target": a_id, "answer": {"type": "answer", "sdp": "v=0"}}})
        assert receive(a, "answer")["sender"] == b_id

    # both sockets closed: the call is gone
    assert client.get("/channels/general-voice/voice").json() == []


def test_closing_socket_notifies_call_members(client):
    with client.websocket_connect("/ws") as a:
        receive(a, "connected")
        a.send_json({"event": "joinVoice", "data": {"channelId": "v", "userId": "u1"}})
        receive(a, "usersInCall")

        with client.websocket_connect("/ws") as b:
            b_id = receive(b, "connected")["socketId"]
            b.send_json({"event": "joinVoice", "data": {"channelId": "v", "userId": "u2"}})
            receive(b, "usersInCall")
            receive(a, "userJoinedVoice")

        assert receive(a, "userLeftVoice")["socketId"] == b_id


def test_invalid_frames_get_error_events(client):
    with client.websocket_connect("/ws") as ws:
        receive(ws, "connected")
        ws.send_text("not json")
        assert receive(ws, "error") == {"message": "Invalid JSON"}
        ws.send_json(["joinVoice"])
        assert "event" in receive(ws, "error")["message"]
        ws.send_json({"event": "leaveVoice"})
        ws.send_json({"event": "nope"})
        assert receive(ws, "error") == {"message": "Unknown event: nope"}


def test_bad_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=forged") as ws:
            ws.receive_json()


def test_chat_over_socket_and_http(client):
    with client.websocket_connect("/ws?token=tok-bob") as ws:
        receive(ws, "connected")
        ws.send_json({"event": "joinChannel", "data": "general"})
        ws.send_json({"event": "sendMessage", "data": {"channelId": "general", "message": "over the socket"}})
        assert receive(ws, "newMessage")["username"] == "bob"

        response = client.post(
            "/channels/general/messages",
            json={"message": "over http"},
            headers={"Authorization": "Bearer tok-alice"},
        )
        assert response.status_code == 200
        pushed = receive(ws, "newMessage")
        assert pushed == response.json()
        assert pushed["content"] == "over http"

    history = client.get("/channels/general/messages", headers={"Authorization": "Bearer tok-bob"})
    assert history.status_code == 200
    assert [m["content"] for m in history.json()] == ["over the socket", "over http"]


@pytest.mark.parametrize(
    "channel_id, token, body, status",
    [
        ("general", None, {"message": "hi"}, 401),
        ("general", "forged", {"message": "hi"}, 401),
        ("general", "tok-mallory", {"message": "hi"}, 403),
        ("nowhere", "tok-alice", {"message": "hi"}, 404),
        ("general", "tok-alice", {"message": "   "}, 400),
    ],
)
def test_post_message_errors(client, channel_id, token, body, status):
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    response = client.post(f"/channels/{channel_id}/messages", json=body, headers=headers)
    assert response.status_code == status


def test_history_errors(client):
    assert client.get("/channels/general/messages").status_code == 401
    assert client.get("/channels/general/messages", headers={"Authorization": "Bearer tok-mallory"}).status_code == 403
    assert client.get("/channels/nowhere/messages", headers={"Authorization": "Bearer tok-alice"}).status_code == 404
