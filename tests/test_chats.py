def _befriend(client, requester, target):
    request_id = client.post(
        "/api/v1/friends/requests", json={"target_id": target["id"]}, headers=requester["headers"]
    ).json()["id"]
    r = client.post(f"/api/v1/friends/requests/{request_id}/accept", headers=target["headers"])
    assert r.status_code == 200


def test_create_or_get_chat_returns_same_chat(client, make_user):
    u1 = make_user("u1")
    u2 = make_user("u2")

    first = client.post("/api/v1/chats/", json={"user_id": u2["id"]}, headers=u1["headers"])
    assert first.status_code == 200
    second = client.post("/api/v1/chats/", json={"user_id": u1["id"]}, headers=u2["headers"])
    assert second.json()["id"] == first.json()["id"]

    chats = client.get("/api/v1/chats/", headers=u2["headers"]).json()
    assert chats["total_count"] == 1

    chat = client.get(f"/api/v1/chats/{first.json()['id']}", headers=u1["headers"])
    assert chat.status_code == 200
    assert chat.json()["sender_id"] == u1["id"]
    assert chat.json()["recipient_id"] == u2["id"]


def test_chat_errors(client, make_user):
    u1 = make_user("u1")
    u2 = make_user("u2")
    u3 = make_user("u3")

    assert client.post("/api/v1/chats/", json={"user_id": u1["id"]}, headers=u1["headers"]).status_code == 400
    assert client.post("/api/v1/chats/", json={"user_id": 999}, headers=u1["headers"]).status_code == 404
    assert client.get("/api/v1/chats/999", headers=u1["headers"]).status_code == 404

    chat_id = client.post("/api/v1/chats/", json={"user_id": u2["id"]}, headers=u1["headers"]).json()["id"]

    # Outsiders can neither read nor write
    assert client.get(f"/api/v1/chats/{chat_id}", headers=u3["headers"]).status_code == 403
    assert client.get(f"/api/v1/chats/{chat_id}/messages", headers=u3["headers"]).status_code == 403
    r = client.post(f"/api/v1/chats/{chat_id}/messages", json={"body": "hey"}, headers=u3["headers"])
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"


def test_history_window(client, make_user):
    u1 = make_user("u1")
    u2 = make_user("u2")
    chat_id = client.post("/api/v1/chats/", json={"user_id": u2["id"]}, headers=u1["headers"]).json()["id"]

    for i in range(22):
        r = client.post(f"/api/v1/chats/{chat_id}/messages", json={"body": f"m{i}"}, headers=u1["headers"])
        assert r.status_code == 201

    history = client.get(f"/api/v1/chats/{chat_id}/messages", headers=u2["headers"]).json()
    assert history["total_count"] == 20
    assert [m["body"] for m in history["messages"]] == [f"m{i}" for i in range(2, 22)]


def test_delete_chat(client, make_user):
    u1 = make_user("u1")
    u2 = make_user("u2")
    chat_id = client.post("/api/v1/chats/", json={"user_id": u2["id"]}, headers=u1["headers"]).json()["id"]
    client.post(f"/api/v1/chats/{chat_id}/messages", json={"body": "hi"}, headers=u1["headers"])

    assert client.delete(f"/api/v1/chats/{chat_id}", headers=u2["headers"]).status_code == 204
    assert client.get(f"/api/v1/chats/{chat_id}/messages", headers=u1["headers"]).status_code == 404

    # A new chat for the same pair can be opened again
    again = client.post("/api/v1/chats/", json={"user_id": u2["id"]}, headers=u1["headers"]).json()
    assert again["id"] != chat_id
    history = client.get(f"/api/v1/chats/{again['id']}/messages", headers=u1["headers"]).json()
    assert history["messages"] == []


def test_hangout_scenario(client, make_user):
    u1 = make_user("u1")
    u2 = make_user("u2")

    _befriend(client, u1, u2)
    assert client.get("/api/v1/friends/", headers=u1["headers"]).json()["total_count"] == 1
    assert client.get("/api/v1/friends/", headers=u2["headers"]).json()["total_count"] == 1

    c1 = client.post("/api/v1/chats/", json={"user_id": u2["id"]}, headers=u1["headers"]).json()

    with client.websocket_connect(f"/ws/chat?token={u2['token']}") as ws:
        assert ws.receive_json() == {"type": "subscribed", "chat_ids": [c1["id"]]}

        r = client.post(f"/api/v1/chats/{c1['id']}/messages", json={"body": "hi"}, headers=u1["headers"])
        assert r.status_code == 201

        event = ws.receive_json()
        assert event["type"] == "message"
        assert event["chat_id"] == c1["id"]
        assert event["message"]["body"] == "hi"
        assert event["message"]["author"]["id"] == u1["id"]

    blank = client.post(f"/api/v1/chats/{c1['id']}/messages", json={"body": ""}, headers=u2["headers"])
    assert blank.status_code == 422
    assert blank.json()["code"] == "VALIDATION_ERROR"

    history = client.get(f"/api/v1/chats/{c1['id']}/messages", headers=u2["headers"]).json()
    assert [m["body"] for m in history["messages"]] == ["hi"]
