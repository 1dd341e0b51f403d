import pytest
from sqlalchemy import select

from app.core.config import Settings
from app.core.exceptions import ConfigurationError
from app.core.rbac_catalog import DEFAULT_PERMISSIONS
from app.core.security import verify_password
from app.db import bootstrap
from app.models.meta import PermissionMeta, RoleMeta
from app.models.rbac import Permission, Role
from app.models.user import User


def _raise_error(message: str):
    raise RuntimeError(message)


def test_runtime_schema_bootstrap_raises_on_validation_failure(monkeypatch):
    monkeypatch.setattr(bootstrap.Base.metadata, "create_all", lambda bind: None)
    monkeypatch.setattr(
        bootstrap,
        "_assert_required_columns",
        lambda bind: _raise_error("missing required schema"),
    )

    with pytest.raises(RuntimeError, match="Runtime schema compatibility bootstrap failed"):
        bootstrap.ensure_runtime_schema_compatibility()


def test_provision_core_rbac_is_idempotent(db_session):
    # db_session has already been provisioned once.
    counts = bootstrap.provision_core_rbac(db_session)

    assert counts == {"permissions": 0, "roles": 0}
    permission_names = set(db_session.execute(select(Permission.name)).scalars())
    assert permission_names == set(DEFAULT_PERMISSIONS)
    core_metas = db_session.execute(select(RoleMeta).where(RoleMeta.is_core.is_(True))).scalars().all()
    assert {meta.role_name for meta in core_metas} == {"Admin", "Student", "Lecturer", "Exam Office", "Faculty Admin"}

    admin = db_session.execute(select(Role).where(Role.name == "Admin")).scalar_one()
    assert {permission.name for permission in admin.permissions} == set(DEFAULT_PERMISSIONS)

    view_users = db_session.execute(
        select(PermissionMeta).where(PermissionMeta.permission_name == "view-users")
    ).scalar_one()
    assert view_users.is_core is True
    assert view_users.category == "user_management"
    assert view_users.description == "View Users"


def test_provision_creates_bootstrap_admin(db_session):
    settings = Settings(
        bootstrap_admin_email="Root@Example.com",
        bootstrap_admin_password="s3cret-pass",
        bootstrap_admin_name="Root",
    )

    bootstrap.provision_core_rbac(db_session, settings)
    bootstrap.provision_core_rbac(db_session, settings)

    admins = db_session.execute(select(User).where(User.email == "root@example.com")).scalars().all()
    assert len(admins) == 1
    assert [role.name for role in admins[0].roles] == ["Admin"]
    assert verify_password("s3cret-pass", admins[0].hashed_password)


def test_bootstrap_admin_email_without_password_is_rejected(db_session):
    settings = Settings(bootstrap_admin_email="root@example.com", bootstrap_admin_password=None)

    with pytest.raises(ConfigurationError):
        bootstrap.provision_core_rbac(db_session, settings)
