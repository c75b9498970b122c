import pytest


@pytest.fixture
def channel(fake_db, state_admin):
    return fake_db.add_channel("ch-la", "la-general", state_admin["id"])


def members_url(channel):
    return f"/api/v1/messaging/channels/{channel['id']}/members"


def test_join_channel(client, fake_db, channel, organizer):
    response = client.post(members_url(channel), headers=organizer["headers"])
    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "member"
    assert body["team_member_id"] == organizer["id"]
    assert body["notifications_enabled"] is True


def test_join_twice_is_rejected(client, channel, organizer):
    assert client.post(members_url(channel), headers=organizer["headers"]).status_code == 201
    response = client.post(members_url(channel), headers=organizer["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Already a member of this channel"}


def test_join_errors(client, fake_db, state_admin, organizer):
    archived = fake_db.add_channel("ch-la", "archived", state_admin["id"], is_archived=True)
    elsewhere = fake_db.add_channel("ch-ny", "ny-general", state_admin["id"])
    assert client.post("/api/v1/messaging/channels/missing/members", headers=organizer["headers"]).status_code == 404
    assert client.post(members_url(archived), headers=organizer["headers"]).status_code == 400
    assert client.post(members_url(elsewhere), headers=organizer["headers"]).status_code == 403


def test_leave_channel(client, fake_db, channel, organizer):
    fake_db.add_membership(channel["id"], organizer["id"])
    response = client.delete(members_url(channel), headers=organizer["headers"])
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert not [m for m in fake_db.rows("channel_members") if m["team_member_id"] == organizer["id"]]


def test_leave_when_not_member(client, channel, organizer):
    assert client.delete(members_url(channel), headers=organizer["headers"]).status_code == 400


def test_last_admin_cannot_leave(client, fake_db, channel, state_admin, organizer):
    fake_db.add_membership(channel["id"], organizer["id"])
    response = client.delete(members_url(channel), headers=state_admin["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot leave, you are the last admin"}
    admins = [m for m in fake_db.rows("channel_members") if m["channel_id"] == channel["id"] and m["role"] == "admin"]
    assert len(admins) == 1


def test_admin_can_leave_when_another_admin_remains(client, fake_db, channel, state_admin, organizer):
    fake_db.add_membership(channel["id"], organizer["id"], role="admin")
    assert client.delete(members_url(channel), headers=state_admin["headers"]).status_code == 200


def test_last_admin_cannot_leave_archived_channel(client, fake_db, state_admin):
    archived = fake_db.add_channel("ch-la", "archived", state_admin["id"], is_archived=True)
    response = client.delete(members_url(archived), headers=state_admin["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot leave, you are the last admin"}


def test_list_members_with_names(client, fake_db, channel, organizer):
    fake_db.add_membership(channel["id"], organizer["id"])
    response = client.get(members_url(channel), headers=organizer["headers"])
    assert response.status_code == 200
    members = response.json()
    assert [(m["first_name"], m["role"]) for m in members] == [("Stella", "admin"), ("Olive", "member")]


def test_list_members_requires_membership(client, channel, organizer):
    assert client.get(members_url(channel), headers=organizer["headers"]).status_code == 403


def test_promote_and_demote(client, fake_db, channel, state_admin, organizer):
    fake_db.add_membership(channel["id"], organizer["id"])
    url = f"{members_url(channel)}/{organizer['id']}"

    response = client.patch(url, json={"role": "admin"}, headers=state_admin["headers"])
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

    response = client.patch(url, json={"role": "member"}, headers=state_admin["headers"])
    assert response.status_code == 200
    assert response.json()["role"] == "member"


def test_cannot_demote_last_admin(client, channel, state_admin):
    url = f"{members_url(channel)}/{state_admin['id']}"
    response = client.patch(url, json={"role": "member"}, headers=state_admin["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot demote the last admin"}


def test_role_change_permissions(client, fake_db, channel, state_admin, organizer):
    fake_db.add_membership(channel["id"], organizer["id"])
    url = f"{members_url(channel)}/{state_admin['id']}"
    assert client.patch(url, json={"role": "member"}, headers=organizer["headers"]).status_code == 403
    assert client.patch(url, json={"role": "owner"}, headers=state_admin["headers"]).status_code == 400
    missing = f"{members_url(channel)}/nobody"
    assert client.patch(missing, json={"role": "admin"}, headers=state_admin["headers"]).status_code == 404
