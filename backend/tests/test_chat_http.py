"""HTTP tests for the chat routes."""

from __future__ import annotations

import logging
import threading
import time

from conftest import auth_headers, make_token


def _wait_until_idle(client, conversation_id: str, headers: dict, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        document = client.get(f"/v1/chats/{conversation_id}", headers=headers).json()[
            "conversation"
        ]
        if document["status"] == "idle" or time.monotonic() > deadline:
            return document
        time.sleep(0.02)


def test_routes_require_bearer_token(client) -> None:
    response = client.post("/v1/chats", json={"message": "hi"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "E2000"


def test_expired_token_is_rejected(client) -> None:
    token = make_token("alice", expires_in=-60)
    response = client.get("/v1/chats", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "E2002"


def test_create_chat_starts_run_and_commits_reply(client) -> None:
    headers = auth_headers("alice")

    response = client.post("/v1/chats", json={"message": "How do I sell more?"}, headers=headers)

    assert response.status_code == 201
    assert response.headers["X-Request-ID"]
    conversation = response.json()["conversation"]
    assert conversation["status"] == "running"
    assert conversation["summary"] == "How do I sell more?"
    assert [m["role"] for m in conversation["messages"]] == ["user"]

    document = _wait_until_idle(client, conversation["id"], headers)

    assert document["status"] == "idle"
    assert [(m["role"], m["content"]) for m in document["messages"]] == [
        ("user", "How do I sell more?"),
        ("assistant", "Hello, world"),
    ]
    assert document["messages"][1]["result"]["id"] == "chatcmpl-test"


def test_send_message_to_existing_chat(client) -> None:
    headers = auth_headers("alice")
    created = client.post("/v1/chats", json={"message": "first"}, headers=headers).json()
    conversation_id = created["conversation"]["id"]
    _wait_until_idle(client, conversation_id, headers)

    response = client.post(
        f"/v1/chats/{conversation_id}/message", json={"message": "second"}, headers=headers
    )

    assert response.status_code == 202
    document = _wait_until_idle(client, conversation_id, headers)
    assert [m["content"] for m in document["messages"]] == [
        "first",
        "Hello, world",
        "second",
        "Hello, world",
    ]


def test_empty_message_is_rejected(client) -> None:
    response = client.post("/v1/chats", json={"message": "   "}, headers=auth_headers("alice"))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E1001"


def test_other_users_chat_is_not_found(client) -> None:
    owner = auth_headers("alice")
    created = client.post("/v1/chats", json={"message": "private"}, headers=owner).json()
    conversation_id = created["conversation"]["id"]
    _wait_until_idle(client, conversation_id, owner)
    intruder = auth_headers("mallory")

    get_response = client.get(f"/v1/chats/{conversation_id}", headers=intruder)
    post_response = client.post(
        f"/v1/chats/{conversation_id}/message", json={"message": "hi"}, headers=intruder
    )
    delete_response = client.delete(f"/v1/chats/{conversation_id}", headers=intruder)

    for response in (get_response, post_response, delete_response):
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E5000"


def test_concurrent_turn_returns_conflict(client, provider) -> None:
    headers = auth_headers("alice")
    provider.gate = threading.Event()
    created = client.post("/v1/chats", json={"message": "first"}, headers=headers).json()
    conversation_id = created["conversation"]["id"]

    response = client.post(
        f"/v1/chats/{conversation_id}/message", json={"message": "second"}, headers=headers
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "E1006"

    provider.gate.set()
    document = _wait_until_idle(client, conversation_id, headers)
    assert [m["content"] for m in document["messages"]] == ["first", "second", "Hello, world"]


def test_list_chats_returns_only_own_conversations(client) -> None:
    alice = auth_headers("alice")
    bob = auth_headers("bob")
    first = client.post("/v1/chats", json={"message": "one"}, headers=alice).json()
    second = client.post("/v1/chats", json={"message": "two"}, headers=alice).json()
    client.post("/v1/chats", json={"message": "bob's"}, headers=bob)
    _wait_until_idle(client, first["conversation"]["id"], alice)
    _wait_until_idle(client, second["conversation"]["id"], alice)

    body = client.get("/v1/chats", headers=alice).json()

    assert body["count"] == 2
    assert {item["summary"] for item in body["data"]} == {"one", "two"}


def test_delete_chat(client) -> None:
    headers = auth_headers("alice")
    created = client.post("/v1/chats", json={"message": "bye"}, headers=headers).json()
    conversation_id = created["conversation"]["id"]
    _wait_until_idle(client, conversation_id, headers)

    response = client.delete(f"/v1/chats/{conversation_id}", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"status": "deleted", "conversation_id": conversation_id}
    assert client.get(f"/v1/chats/{conversation_id}", headers=headers).status_code == 404


def test_request_log_carries_conversation_id(client, caplog) -> None:
    headers = auth_headers("alice")
    created = client.post("/v1/chats", json={"message": "trace me"}, headers=headers).json()
    conversation_id = created["conversation"]["id"]
    _wait_until_idle(client, conversation_id, headers)
    caplog.clear()

    with caplog.at_level(logging.INFO):
        client.get(f"/v1/chats/{conversation_id}", headers=headers)

    [record] = [r for r in caplog.records if r.getMessage() == "Request completed"]
    assert record.data["conversation_id"] == conversation_id
    assert record.data["status"] == 200
