from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.models.rbac import Role
from app.services.rbac_store import SqlAlchemyRbacStore


def role_id(db, name):
    return db.execute(select(Role.id).where(Role.name == name)).scalar_one()


def test_role_crud_flow(client, admin_headers, db_session):
    create_response = client.post(
        "/api/roles/",
        json={
            "name": "  Timetable Clerk  ",
            "description": "Keeps class timetables tidy",
            "permissions": ["view-class-timetables", "view-dashboard", "view-dashboard"],
            "is_core": True,
        },
        headers=admin_headers,
    )
    assert create_response.status_code == 201
    created = create_response.json()
    assert created["name"] == "Timetable Clerk"
    assert created["is_core"] is False
    assert created["permissions"] == ["view-class-timetables", "view-dashboard"]

    edit_response = client.get(f"/api/roles/{created['id']}/edit", headers=admin_headers)
    assert edit_response.status_code == 200
    assert edit_response.json()["description"] == "Keeps class timetables tidy"

    update_response = client.put(
        f"/api/roles/{created['id']}",
        json={"name": "Timetable Officer", "description": None, "permissions": ["edit-class-timetables"]},
        headers=admin_headers,
    )
    assert update_response.status_code == 200
    updated = update_response.json()
    assert updated["name"] == "Timetable Officer"
    assert updated["description"] is None
    assert updated["permissions"] == ["edit-class-timetables"]

    permissions_response = client.put(
        f"/api/roles/{created['id']}/permissions",
        json={"permissions": ["view-dashboard"]},
        headers=admin_headers,
    )
    assert permissions_response.status_code == 200
    assert permissions_response.json()["permissions"] == ["view-dashboard"]

    stats_response = client.get(f"/api/roles/{created['id']}/stats", headers=admin_headers)
    assert stats_response.status_code == 200
    stats = stats_response.json()
    assert stats["users_count"] == 0
    assert stats["permissions_count"] == 1
    assert stats["created_by"] == "Admin User"

    delete_response = client.delete(f"/api/roles/{created['id']}", headers=admin_headers)
    assert delete_response.status_code == 200
    assert delete_response.json()["success"] is True

    missing_response = client.get(f"/api/roles/{created['id']}/stats", headers=admin_headers)
    assert missing_response.status_code == 404
    assert missing_response.json()["message"] == f"Role with id {created['id']} not found"


def test_role_list_returns_page_and_stats(client, admin_headers):
    client.post("/api/roles/", json={"name": "Report Reader", "permissions": ["view-reports"]}, headers=admin_headers)

    response = client.get("/api/roles/", params={"filter": "dynamic"}, headers=admin_headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["filter"] == "dynamic"
    assert [item["name"] for item in payload["items"]] == ["Report Reader"]
    assert payload["items"][0]["permissions_count"] == 1
    assert payload["stats"] == {"total": 6, "core": 5, "dynamic": 1}

    invalid_filter = client.get("/api/roles/", params={"filter": "everything"}, headers=admin_headers)
    assert invalid_filter.status_code == 422


def test_core_role_is_protected_over_http(client, admin_headers, db_session):
    student_id = role_id(db_session, "Student")

    edit_response = client.get(f"/api/roles/{student_id}/edit", headers=admin_headers)
    assert edit_response.status_code == 403
    assert edit_response.json()["message"] == "Core roles cannot be edited through this interface."

    update_response = client.put(
        f"/api/roles/{student_id}",
        json={"name": "Learner", "permissions": []},
        headers=admin_headers,
    )
    assert update_response.status_code == 403
    assert update_response.json()["message"] == "Core roles cannot be modified."

    delete_response = client.delete(f"/api/roles/{student_id}", headers=admin_headers)
    assert delete_response.status_code == 403
    assert delete_response.json()["message"] == "Core roles cannot be deleted."

    stats_response = client.get(f"/api/roles/{student_id}/stats", headers=admin_headers)
    assert stats_response.status_code == 200
    assert stats_response.json()["is_core"] is True


def test_duplicate_and_unknown_permission_errors(client, admin_headers):
    first = client.post("/api/roles/", json={"name": "Porter"}, headers=admin_headers)
    assert first.status_code == 201

    duplicate = client.post("/api/roles/", json={"name": "Porter"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "Role already exists"

    unknown = client.post(
        "/api/roles/",
        json={"name": "Wizard", "permissions": ["cast-spells"]},
        headers=admin_headers,
    )
    assert unknown.status_code == 422
    assert unknown.json()["details"] == {"permissions": ["cast-spells"]}

    blank = client.post("/api/roles/", json={"name": "   "}, headers=admin_headers)
    assert blank.status_code == 422


def test_delete_held_role_reports_conflict(client, admin_headers, make_user):
    created = client.post("/api/roles/", json={"name": "Lab Assistant"}, headers=admin_headers).json()
    make_user("assistant@example.com", "Lab Assistant")

    response = client.delete(f"/api/roles/{created['id']}", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["message"] == "Role is assigned to 1 users and cannot be deleted."
    assert response.json()["details"] == {"users_count": 1}


def test_clone_and_bulk_create(client, admin_headers, db_session):
    exam_office_id = role_id(db_session, "Exam Office")

    first = client.post(f"/api/roles/{exam_office_id}/clone", headers=admin_headers)
    second = client.post(f"/api/roles/{exam_office_id}/clone", headers=admin_headers)
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["name"] == "Exam Office (Copy)"
    assert second.json()["name"] == "Exam Office (Copy 2)"
    assert first.json()["is_core"] is False

    bulk = client.post(
        "/api/roles/bulk",
        json={"roles": [{"name": "Day Porter"}, {"name": "Night Porter", "permissions": ["view-buildings"]}]},
        headers=admin_headers,
    )
    assert bulk.status_code == 201
    assert [role["name"] for role in bulk.json()] == ["Day Porter", "Night Porter"]


def test_role_endpoints_require_permissions(client, make_user, headers_for):
    student = make_user("student@example.com", "Student")
    headers = headers_for(student)

    assert client.get("/api/roles/", headers=headers).status_code == 403
    response = client.post("/api/roles/", json={"name": "Sneaky"}, headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"

    assert client.get("/api/roles/").status_code in {401, 403}


def test_role_mutations_show_up_in_activity_log(client, admin_headers):
    created = client.post("/api/roles/", json={"name": "Audited"}, headers=admin_headers).json()
    client.delete(f"/api/roles/{created['id']}", headers=admin_headers)

    response = client.get("/api/activity/logs", params={"entity_type": "role"}, headers=admin_headers)

    assert response.status_code == 200
    actions = {item["action"] for item in response.json()}
    assert {"role.created", "role.deleted"} <= actions
    assert all(item["entity_type"] == "role" for item in response.json())


def test_store_failure_outside_a_transaction_is_opaque(client, admin_headers, monkeypatch):
    def broken_lookup(self, name):
        raise OperationalError("SELECT roles", {}, Exception("connection reset by peer"))

    monkeypatch.setattr(SqlAlchemyRbacStore, "find_role_by_name", broken_lookup)

    response = client.post("/api/roles/", json={"name": "Night Porter"}, headers=admin_headers)

    assert response.status_code == 500
    assert response.json() == {"message": "The operation could not be completed.", "details": {}}
