API = "/api/v1"


def test_read_own_settings(client, register):
    headers, user = register()
    resp = client.get(f"{API}/users/{user['id']}/settings", headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user_id"] == user["id"]
    assert (data["theme"], data["language"]) == ("light", "en")


def test_update_settings_is_partial(client, register):
    headers, user = register()
    resp = client.put(f"{API}/users/{user['id']}/settings", json={"theme": "dark"}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["theme"] == "dark"
    assert data["language"] == "en"

    resp = client.put(
        f"{API}/users/{user['id']}/settings", json={"language": "de-CH", "user_id": 999}, headers=headers
    )
    data = resp.json()["data"]
    assert (data["theme"], data["language"], data["user_id"]) == ("dark", "de-CH", user["id"])


def test_invalid_settings_are_400(client, register):
    headers, user = register()
    url = f"{API}/users/{user['id']}/settings"
    assert client.put(url, json={"theme": "blue"}, headers=headers).status_code == 400
    assert client.put(url, json={"language": "x"}, headers=headers).status_code == 400
    assert client.put(url, json={"theme": None}, headers=headers).status_code == 400


def test_settings_of_other_users_are_forbidden(client, register, make_admin):
    alice_headers, alice = register()
    bob_headers, _ = register()
    resp = client.get(f"{API}/users/{alice['id']}/settings", headers=bob_headers)
    assert resp.status_code == 403
    assert client.put(f"{API}/users/{alice['id']}/settings", json={"theme": "dark"}, headers=bob_headers).status_code == 403

    admin_headers, _ = make_admin()
    assert client.get(f"{API}/users/{alice['id']}/settings", headers=admin_headers).status_code == 200
    assert client.get(f"{API}/users/9999/settings", headers=admin_headers).status_code == 404


def test_settings_are_recreated_lazily(client, register):
    headers, user = register()
    own = client.get(f"{API}/settings/", headers=headers).json()["data"]
    assert len(own) == 1

    # settings are hard-deleted so a fresh row can take the same user_id
    assert client.delete(f"{API}/settings/{own[0]['id']}", headers=headers).status_code == 200
    assert client.get(f"{API}/settings/", headers=headers).json()["data"] == []

    resp = client.get(f"{API}/users/{user['id']}/settings", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["theme"] == "light"


def test_second_settings_row_is_a_conflict(client, register):
    headers, _ = register()
    resp = client.post(f"{API}/settings/", json={"theme": "dark"}, headers=headers)
    assert resp.status_code == 409
