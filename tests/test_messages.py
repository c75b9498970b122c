import pytest


@pytest.fixture
def channel(fake_db, state_admin, organizer):
    channel = fake_db.add_channel("ch-la", "la-general", state_admin["id"])
    fake_db.add_membership(channel["id"], organizer["id"])
    return channel


def messages_url(channel):
    return f"/api/v1/messaging/channels/{channel['id']}/messages"


def post_messages(fake_db, channel, sender_id, count):
    return [
        fake_db.insert("messages", {"channel_id": channel["id"], "sender_id": sender_id, "content": f"message {i}"})
        for i in range(count)
    ]


def test_send_message(client, fake_db, channel, organizer):
    response = client.post(messages_url(channel), json={"content": "  hello  "}, headers=organizer["headers"])
    assert response.status_code == 201
    body = response.json()
    assert body["content"] == "hello"
    assert body["sender_id"] == organizer["id"]
    assert body["is_edited"] is False
    assert len(fake_db.rows("messages")) == 1


def test_send_blank_message_creates_nothing(client, fake_db, channel, organizer):
    response = client.post(messages_url(channel), json={"content": "   "}, headers=organizer["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Message content is required"}
    assert fake_db.rows("messages") == []


def test_send_requires_membership(client, fake_db, channel):
    outsider = fake_db.add_team_member(roles=["event_coordinator"], chapter_id="ch-la")
    response = client.post(messages_url(channel), json={"content": "hi"}, headers=outsider["headers"])
    assert response.status_code == 403


def test_send_to_archived_channel(client, fake_db, state_admin):
    archived = fake_db.add_channel("ch-la", "archived", state_admin["id"], is_archived=True)
    response = client.post(messages_url(archived), json={"content": "hi"}, headers=state_admin["headers"])
    assert response.status_code == 400


def test_list_messages_newest_first_with_senders(client, fake_db, channel, organizer):
    post_messages(fake_db, channel, organizer["id"], 3)
    response = client.get(messages_url(channel), headers=organizer["headers"])
    assert response.status_code == 200
    page = response.json()
    assert [m["content"] for m in page["messages"]] == ["message 2", "message 1", "message 0"]
    assert page["messages"][0]["sender"] == {
        "team_member_id": organizer["id"], "first_name": "Olive", "last_name": "Organizer"
    }
    assert page["has_more"] is False


def test_list_messages_pagination(client, fake_db, channel, organizer):
    post_messages(fake_db, channel, organizer["id"], 5)

    first = client.get(f"{messages_url(channel)}?limit=2", headers=organizer["headers"]).json()
    assert [m["content"] for m in first["messages"]] == ["message 4", "message 3"]
    assert first["has_more"] is True

    cursor = first["messages"][-1]["id"]
    second = client.get(f"{messages_url(channel)}?limit=2&cursor={cursor}", headers=organizer["headers"]).json()
    assert [m["content"] for m in second["messages"]] == ["message 2", "message 1"]

    cursor = second["messages"][-1]["id"]
    third = client.get(f"{messages_url(channel)}?limit=2&cursor={cursor}", headers=organizer["headers"]).json()
    assert [m["content"] for m in third["messages"]] == ["message 0"]
    assert third["has_more"] is False


def test_list_messages_limit_is_clamped(client, fake_db, channel, organizer):
    post_messages(fake_db, channel, organizer["id"], 3)
    page = client.get(f"{messages_url(channel)}?limit=0", headers=organizer["headers"]).json()
    assert len(page["messages"]) == 1
    page = client.get(f"{messages_url(channel)}?limit=500", headers=organizer["headers"]).json()
    assert len(page["messages"]) == 3


def test_list_messages_unknown_cursor(client, channel, organizer):
    response = client.get(f"{messages_url(channel)}?cursor=missing", headers=organizer["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid cursor"}


def test_cursor_from_another_channel_is_rejected(client, fake_db, channel, state_admin, organizer):
    other = fake_db.add_channel("ch-la", "la-events", state_admin["id"])
    foreign = post_messages(fake_db, other, state_admin["id"], 1)[0]
    response = client.get(f"{messages_url(channel)}?cursor={foreign['id']}", headers=organizer["headers"])
    assert response.status_code == 400


def test_list_messages_requires_membership(client, fake_db, channel):
    outsider = fake_db.add_team_member(roles=["event_coordinator"], chapter_id="ch-la")
    assert client.get(messages_url(channel), headers=outsider["headers"]).status_code == 403


def test_edit_message(client, fake_db, channel, organizer):
    message = post_messages(fake_db, channel, organizer["id"], 1)[0]
    response = client.patch(f"/api/v1/messaging/messages/{message['id']}", json={"content": "fixed"}, headers=organizer["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "fixed"
    assert body["is_edited"] is True
    assert body["updated_at"] is not None


def test_edit_message_errors(client, fake_db, channel, state_admin, organizer):
    message = post_messages(fake_db, channel, organizer["id"], 1)[0]
    url = f"/api/v1/messaging/messages/{message['id']}"
    assert client.patch("/api/v1/messaging/messages/missing", json={"content": "x"}, headers=organizer["headers"]).status_code == 404
    response = client.patch(url, json={"content": "x"}, headers=state_admin["headers"])
    assert response.status_code == 403
    assert response.json() == {"error": "Only the sender can edit this message"}
    assert client.patch(url, json={"content": " "}, headers=organizer["headers"]).status_code == 400


def test_delete_message_is_soft(client, fake_db, channel, organizer):
    message = post_messages(fake_db, channel, organizer["id"], 1)[0]
    response = client.delete(f"/api/v1/messaging/messages/{message['id']}", headers=organizer["headers"])
    assert response.status_code == 200
    assert fake_db.rows("messages")[0]["is_deleted"] is True

    page = client.get(messages_url(channel), headers=organizer["headers"]).json()
    assert page["messages"][0]["id"] == message["id"]
    assert page["messages"][0]["is_deleted"] is True
    assert page["messages"][0]["content"] is None

    response = client.patch(f"/api/v1/messaging/messages/{message['id']}", json={"content": "back"}, headers=organizer["headers"])
    assert response.status_code == 400


def test_delete_requires_sender(client, fake_db, channel, state_admin, organizer):
    message = post_messages(fake_db, channel, organizer["id"], 1)[0]
    response = client.delete(f"/api/v1/messaging/messages/{message['id']}", headers=state_admin["headers"])
    assert response.status_code == 403
    assert fake_db.rows("messages")[0]["is_deleted"] is False


def test_mark_read(client, fake_db, channel, organizer):
    response = client.post(f"/api/v1/messaging/channels/{channel['id']}/read", headers=organizer["headers"])
    assert response.status_code == 200
    membership = next(m for m in fake_db.rows("channel_members") if m["team_member_id"] == organizer["id"])
    assert membership["last_read_at"] is not None


def test_mark_read_requires_membership(client, fake_db, channel):
    outsider = fake_db.add_team_member(roles=["event_coordinator"], chapter_id="ch-la")
    response = client.post(f"/api/v1/messaging/channels/{channel['id']}/read", headers=outsider["headers"])
    assert response.status_code == 400


def test_notification_settings(client, fake_db, channel, organizer):
    url = f"/api/v1/messaging/channels/{channel['id']}/notifications"
    assert client.get(url, headers=organizer["headers"]).json() == {"notifications_enabled": True}

    response = client.put(url, json={"enabled": False}, headers=organizer["headers"])
    assert response.status_code == 200
    assert response.json() == {"notifications_enabled": False}
    assert client.get(url, headers=organizer["headers"]).json() == {"notifications_enabled": False}


def test_notification_settings_validation(client, fake_db, channel, organizer):
    url = f"/api/v1/messaging/channels/{channel['id']}/notifications"
    assert client.put(url, json={"enabled": "yes"}, headers=organizer["headers"]).status_code == 400

    outsider = fake_db.add_team_member(roles=["event_coordinator"], chapter_id="ch-la")
    assert client.get(url, headers=outsider["headers"]).json() == {"notifications_enabled": False}
    assert client.put(url, json={"enabled": True}, headers=outsider["headers"]).status_code == 400


def test_send_message_is_rate_limited(client, fake_db, channel):
    sender = fake_db.add_team_member(roles=["event_coordinator"], chapter_id="ch-la")
    fake_db.add_membership(channel["id"], sender["id"])
    for _ in range(30):
        assert client.post(messages_url(channel), json={"content": "hi"}, headers=sender["headers"]).status_code == 201
    response = client.post(messages_url(channel), json={"content": "hi"}, headers=sender["headers"])
    assert response.status_code == 429
    assert "error" in response.json()
