def test_login_and_me_include_roles_and_permissions(client, make_user):
    make_user("lecturer@example.com", "Lecturer", name="Lecturer User")

    login_response = client.post(
        "/api/auth/login",
        json={"email": "Lecturer@Example.com", "password": "password123"},
    )
    assert login_response.status_code == 200
    login_data = login_response.json()
    assert "access_token" in login_data
    assert login_data["token_type"] == "bearer"

    me_response = client.get(
        "/api/auth/me",
        headers={"Authorization": f"Bearer {login_data['access_token']}"},
    )
    assert me_response.status_code == 200
    me_data = me_response.json()
    assert me_data["email"] == "lecturer@example.com"
    assert me_data["roles"] == ["Lecturer"]
    assert me_data["permissions"] == sorted(
        ["view-dashboard", "view-classes", "view-students", "view-class-timetables"]
    )


def test_login_rejects_bad_credentials(client, make_user):
    make_user("student@example.com", "Student")

    wrong_password = client.post("/api/auth/login", json={"email": "student@example.com", "password": "nope"})
    assert wrong_password.status_code == 401
    assert wrong_password.json()["detail"] == "Invalid email or password"

    unknown_user = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "password123"})
    assert unknown_user.status_code == 401


def test_inactive_user_cannot_log_in_or_use_token(client, make_user, headers_for):
    user = make_user("former@example.com", "Admin", is_active=False)

    login_response = client.post("/api/auth/login", json={"email": "former@example.com", "password": "password123"})
    assert login_response.status_code == 403

    roles_response = client.get("/api/roles/", headers=headers_for(user))
    assert roles_response.status_code == 403
    assert roles_response.json()["detail"] == "User account is inactive"


def test_invalid_token_is_rejected(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"
