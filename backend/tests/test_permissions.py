import pytest
from sqlalchemy import select

from app.core.exceptions import ConflictError, ForbiddenError, ValidationError
from app.core.rbac_catalog import DEFAULT_PERMISSIONS, category_label, infer_category, looks_core
from app.models.meta import PermissionMeta
from app.models.rbac import Permission
from app.schemas.permission import PermissionCreate
from app.schemas.role import RoleFilter
from app.services.permission_catalog import PermissionCatalog
from app.services.role_lifecycle import RoleLifecycleManager


@pytest.fixture()
def catalog(db_session, admin_user):
    return PermissionCatalog(db_session, actor=admin_user)


def permission_id(db, name):
    return db.execute(select(Permission.id).where(Permission.name == name)).scalar_one()


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("edit-users", "user_management"),
        ("view-roles", "role_management"),
        ("create-exam-timetables", "timetable_management"),
        ("view-classrooms", "infrastructure"),
        ("view-class-timetables", "timetable_management"),
        ("assign-units", "academic_core"),
        ("export-reports", "reports"),
        ("view-faculty-students", "faculty_students"),
        ("view-own-timetable", "timetable_management"),
        ("custom-widget", "custom"),
        ("rotate-keys", "general"),
    ],
)
def test_infer_category(name, expected):
    assert infer_category(name) == expected


def test_core_permission_prefixes_and_labels():
    assert looks_core("view-dashboard") is True
    assert looks_core("generate-reports") is False
    assert category_label("role_management") == "Role & Permission Management"
    assert category_label("lab_safety") == "Lab Safety"


def test_list_by_category_covers_every_permission_once(catalog):
    result = catalog.list_by_category()

    listed = [permission.name for group in result.categories for permission in group.permissions]
    assert sorted(listed) == sorted(DEFAULT_PERMISSIONS)
    assert len(listed) == len(set(listed))
    assert all(group.permissions for group in result.categories)
    keys = [group.key for group in result.categories]
    assert "role_management" in keys
    assert result.labels["role_management"] == "Role & Permission Management"

    user_group = next(group for group in result.categories if group.key == "user_management")
    assert {permission.name for permission in user_group.permissions} == {
        "view-users",
        "create-users",
        "edit-users",
        "delete-users",
    }


def test_unknown_category_gets_its_own_group(catalog):
    catalog.create_permission("calibrate-projectors", "Calibrate lecture hall projectors", "lab_equipment")

    result = catalog.list_by_category()

    group = next(group for group in result.categories if group.key == "lab_equipment")
    assert group.label == "Lab Equipment"
    assert [permission.name for permission in group.permissions] == ["calibrate-projectors"]
    assert result.labels["lab_equipment"] == "Lab Equipment"


def test_dynamic_permission_lifecycle(catalog, db_session):
    created = catalog.create_permission("approve-room-swaps", "Approve room swap requests", "infrastructure")
    assert created.is_core is False
    assert created.category == "infrastructure"

    updated = catalog.update_permission(created.id, "approve-venue-swaps", "Approve venue swaps", "custom")
    assert updated.name == "approve-venue-swaps"
    assert updated.category == "custom"

    db_session.expire_all()
    metas = {meta.permission_name for meta in db_session.execute(select(PermissionMeta)).scalars()}
    assert "approve-venue-swaps" in metas
    assert "approve-room-swaps" not in metas

    stats = catalog.permission_stats(created.id)
    assert stats.roles_count == 0
    assert stats.created_by == "Admin User"

    catalog.delete_permission(created.id)
    assert db_session.execute(select(Permission).where(Permission.name == "approve-venue-swaps")).first() is None


def test_core_permissions_are_read_only(catalog, db_session):
    view_roles = permission_id(db_session, "view-roles")

    with pytest.raises(ForbiddenError):
        catalog.update_permission(view_roles, "see-roles", None, "general")
    with pytest.raises(ForbiddenError):
        catalog.delete_permission(view_roles)


def test_permission_held_by_role_cannot_be_deleted(catalog, db_session, admin_user):
    created = catalog.create_permission("sign-off-rosters", None, "custom")
    RoleLifecycleManager(db_session, actor=admin_user).create_role("Roster Lead", None, ["sign-off-rosters"])

    with pytest.raises(ConflictError) as exc_info:
        catalog.delete_permission(created.id)

    assert exc_info.value.details == {"roles_count": 1}
    stats = catalog.permission_stats(created.id)
    assert stats.roles_count == 1
    assert stats.users_count == 0


def test_bulk_create_rejects_duplicates(catalog, db_session):
    with pytest.raises(ValidationError):
        catalog.bulk_create(
            [
                PermissionCreate(name="book-labs", category="custom"),
                PermissionCreate(name="book-labs", category="custom"),
            ]
        )
    with pytest.raises(ConflictError):
        catalog.bulk_create([PermissionCreate(name="view-users", category="user_management")])
    assert db_session.execute(select(Permission).where(Permission.name == "book-labs")).first() is None


def test_assign_category_skips_core_permissions(catalog, db_session):
    dynamic = catalog.create_permission("print-badges", None, "general")
    core_id = permission_id(db_session, "view-users")

    result = catalog.assign_category([dynamic.id, core_id], "custom")

    assert result.updated == ["print-badges"]
    assert result.skipped_core == ["view-users"]
    db_session.expire_all()
    core_meta = db_session.execute(
        select(PermissionMeta).where(PermissionMeta.permission_name == "view-users")
    ).scalar_one()
    assert core_meta.category == "user_management"


def test_list_permissions_filters(catalog):
    catalog.create_permission("print-badges", None, "custom")

    dynamic = catalog.list_permissions(filter=RoleFilter.dynamic)
    dynamic_names = {item.name for item in dynamic.items}
    assert "print-badges" in dynamic_names
    assert "view-users" not in dynamic_names

    custom = catalog.list_permissions(category="custom")
    assert [item.name for item in custom.items] == ["print-badges"]

    searched = catalog.list_permissions(search="badge", page_size=5)
    assert searched.total == 1
    assert searched.stats.total == len(DEFAULT_PERMISSIONS) + 1


def test_permission_endpoints(client, admin_headers, db_session):
    categories = client.get("/api/permissions/categories", headers=admin_headers)
    assert categories.status_code == 200
    assert any(group["key"] == "dashboard" for group in categories.json()["categories"])

    created = client.post(
        "/api/permissions/",
        json={"name": "approve-timetables", "description": "Approve drafts", "category": "timetable_management"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    permission = created.json()

    duplicate = client.post(
        "/api/permissions/",
        json={"name": "approve-timetables", "category": "timetable_management"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409

    listed = client.get("/api/permissions/", params={"search": "approve"}, headers=admin_headers)
    assert listed.status_code == 200
    assert [item["name"] for item in listed.json()["items"]] == ["approve-timetables"]

    bulk = client.post(
        "/api/permissions/bulk",
        json={"permissions": [{"name": "publish-timetables", "category": "timetable_management"}]},
        headers=admin_headers,
    )
    assert bulk.status_code == 201

    assigned = client.post(
        "/api/permissions/bulk-category",
        json={"permission_ids": [permission["id"], permission_id(db_session, "view-dashboard")], "category": "custom"},
        headers=admin_headers,
    )
    assert assigned.status_code == 200
    assert assigned.json()["updated"] == ["approve-timetables"]
    assert assigned.json()["skipped_core"] == ["view-dashboard"]

    core_delete = client.delete(f"/api/permissions/{permission_id(db_session, 'view-dashboard')}", headers=admin_headers)
    assert core_delete.status_code == 403

    stats = client.get(f"/api/permissions/{permission['id']}/stats", headers=admin_headers)
    assert stats.status_code == 200
    assert stats.json()["category"] == "custom"

    deleted = client.delete(f"/api/permissions/{permission['id']}", headers=admin_headers)
    assert deleted.status_code == 200
    assert deleted.json()["success"] is True


def test_permission_endpoints_require_permissions(client, make_user, headers_for):
    lecturer = make_user("lecturer@example.com", "Lecturer")

    response = client.get("/api/permissions/categories", headers=headers_for(lecturer))

    assert response.status_code == 403
