"""
Integration tests for global chat.
"""
from pixelcanvas.models import ChatMessage
from pixelcanvas.services.chat import sanitize_text

from conftest import client, auth


def test_send_and_read_back(broadcasts):
    """Sent messages appear in history with sender and name."""
    response = client.post("/api/chat/send", json={"text": "hello"}, headers=auth("u1"))
    assert response.status_code == 200
    assert response.json()["success"] is True

    history = client.get("/api/chat/recent").json()
    assert len(history) == 1
    assert history[0]["from"] == "u1"
    assert history[0]["fromName"] == "name-u1"
    assert history[0]["text"] == "hello"


def test_send_escapes_markup(broadcasts, test_db):
    client.post("/api/chat/send", json={"text": "  <b>hi</b>  "}, headers=auth("u1"))
    assert test_db.query(ChatMessage).one().text == "&lt;b&gt;hi&lt;/b&gt;"


def test_send_broadcasts_message(broadcasts):
    client.post("/api/chat/send", json={"text": "ping all"}, headers=auth("u2"))
    assert len(broadcasts) == 1
    event, data = broadcasts[0]
    assert event == "chatMessage"
    assert data["from"] == "u2"
    assert data["text"] == "ping all"


def test_send_empty_rejected(broadcasts):
    response = client.post("/api/chat/send", json={"text": "   "}, headers=auth("u1"))
    assert response.status_code == 400
    assert response.json()["error"] == "Empty message"
    assert broadcasts == []


def test_send_requires_auth():
    assert client.post("/api/chat/send", json={"text": "hi"}).status_code == 401


def test_recent_is_chronological(broadcasts):
    for text in ("one", "two", "three"):
        client.post("/api/chat/send", json={"text": text}, headers=auth("u1"))
    history = client.get("/api/chat/recent").json()
    assert [m["text"] for m in history] == ["one", "two", "three"]


def test_sanitize_caps_length():
    assert len(sanitize_text("x" * 600)) == 500
    assert sanitize_text(None) == ""
