from conftest import PASSWORD, auth_headers, make_user


def test_staff_lists_users_without_password_hashes(client, admin_headers, user, other_user):
    body = client.get("/api/users", params={"keyword": "OTHER"}, headers=admin_headers).json()
    assert body["total"] == 1
    assert body["data"][0]["email"] == "other@example.com"
    assert "passwordHash" not in body["data"][0]

    body = client.get("/api/users", params={"role": "user", "limit": 1}, headers=admin_headers).json()
    assert body["total"] == 2
    assert body["totalPages"] == 2
    assert len(body["data"]) == 1


def test_plain_users_cannot_list_users(client, user_headers):
    assert client.get("/api/users", headers=user_headers).status_code == 403


def test_staff_creates_user_with_role(client, db, admin_headers):
    payload = {
        "userName": "helper",
        "email": "helper@example.com",
        "password": "helper123",
        "confirmPassword": "helper123",
        "role": "manager",
    }
    res = client.post("/api/users", json=payload, headers=admin_headers)
    assert res.status_code == 201
    assert res.json()["data"]["role"] == "manager"
    assert db["user"].find_one({"email": "helper@example.com"})["passwordHash"] != "helper123"


def test_owner_or_staff_can_read_user(client, user, user_headers, other_user, admin_headers):
    url = f"/api/users/{user['_id']}"
    assert client.get(url, headers=user_headers).status_code == 200
    assert client.get(url, headers=admin_headers).status_code == 200
    assert client.get(url, headers=auth_headers(other_user)).status_code == 403


def test_only_same_user_can_update(client, user, user_headers, admin_headers):
    url = f"/api/users/{user['_id']}"
    assert client.put(url, json={"userName": "renamed"}, headers=admin_headers).status_code == 403

    res = client.put(url, json={"userName": "renamed", "role": "admin"}, headers=user_headers)
    assert res.status_code == 200
    assert res.json()["data"]["userName"] == "renamed"
    assert res.json()["data"]["role"] == "user"

    assert client.put(url, json={}, headers=user_headers).status_code == 400


def test_update_email_must_stay_unique(client, user, user_headers, other_user):
    res = client.put(f"/api/users/{user['_id']}", json={"email": "other@example.com"}, headers=user_headers)
    assert res.status_code == 400


def test_my_profile_and_password_change(client, user, user_headers):
    data = client.get("/api/users/my-profile", headers=user_headers).json()["data"]
    assert data["email"] == "user@example.com"

    res = client.put(
        "/api/users/my-profile",
        json={"password": "changed99", "confirmPassword": "changed99"},
        headers=user_headers,
    )
    assert res.status_code == 200
    assert client.post("/api/auth/login", json={"email": "user@example.com", "password": PASSWORD}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "user@example.com", "password": "changed99"}).status_code == 200


def test_block_toggle(client, db, admin_headers):
    target = make_user(db, "target@example.com")
    url = f"/api/users/{target['_id']}/block"

    res = client.put(url, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["isBlocked"] is True
    res = client.post("/api/auth/login", json={"email": "target@example.com", "password": PASSWORD})
    assert res.status_code == 403

    assert client.put(url, headers=admin_headers).json()["data"]["isBlocked"] is False


def test_delete_user(client, user, user_headers):
    res = client.delete(f"/api/users/{user['_id']}", headers=user_headers)
    assert res.status_code == 200
    assert "passwordHash" not in res.json()["data"]
    assert client.get("/api/users/my-profile", headers=user_headers).status_code == 404
