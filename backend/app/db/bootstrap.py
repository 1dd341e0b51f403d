from __future__ import annotations

import logging

from sqlalchemy import inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import ConfigurationError
from app.core.rbac_catalog import (
    DEFAULT_CORE_ROLES,
    DEFAULT_PERMISSIONS,
    describe_permission_name,
    infer_category,
    looks_core,
)
from app.core.security import get_password_hash
from app.db.base import Base
from app.db.session import engine as default_engine
from app.models.meta import PermissionMeta, RoleMeta
from app.models.rbac import Permission, Role
from app.models.user import User

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "hashed_password", "is_active"},
    "roles": {"id", "name", "guard_name"},
    "permissions": {"id", "name", "guard_name"},
    "role_has_permissions": {"role_id", "permission_id"},
    "user_has_roles": {"user_id", "role_id"},
    "role_metas": {"id", "role_name", "description", "is_core", "metadata"},
    "permission_metas": {"id", "permission_name", "category", "is_core", "metadata"},
    "activity_logs": {"id", "action", "entity_type", "entity_name", "details"},
}


def _assert_required_columns(bind: Engine) -> None:
    with bind.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility(bind: Engine | None = None) -> None:
    bind = bind or default_engine
    try:
        Base.metadata.create_all(bind=bind)
        _assert_required_columns(bind)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc


def provision_core_rbac(db: Session, settings: Settings | None = None) -> dict[str, int]:
    """Seed the baseline permissions and core roles. Safe to run repeatedly.

    This is the provisioning path for core roles; the role lifecycle manager
    never creates or marks a role as core. Existing core roles get any missing
    baseline permissions added, never removed.
    """
    settings = settings or get_settings()
    if settings.bootstrap_admin_email and not settings.bootstrap_admin_password:
        raise ConfigurationError("BOOTSTRAP_ADMIN_PASSWORD is required when BOOTSTRAP_ADMIN_EMAIL is set")
    guard = settings.default_guard_name
    counts = {"permissions": 0, "roles": 0}

    permissions = {permission.name: permission for permission in db.execute(select(Permission)).scalars()}
    permission_metas = {meta.permission_name for meta in db.execute(select(PermissionMeta)).scalars()}
    for name in DEFAULT_PERMISSIONS:
        if name not in permissions:
            permissions[name] = Permission(name=name, guard_name=guard)
            db.add(permissions[name])
            counts["permissions"] += 1
        if name not in permission_metas:
            db.add(
                PermissionMeta(
                    permission_name=name,
                    description=describe_permission_name(name),
                    category=infer_category(name),
                    is_core=looks_core(name),
                    provenance={"created_via": "bootstrap"},
                )
            )

    roles = {role.name: role for role in db.execute(select(Role)).scalars()}
    role_metas = {meta.role_name: meta for meta in db.execute(select(RoleMeta)).scalars()}
    for role_name in settings.core_role_names:
        definition = DEFAULT_CORE_ROLES.get(role_name, {})
        role = roles.get(role_name)
        if role is None:
            role = Role(name=role_name, guard_name=guard)
            db.add(role)
            roles[role_name] = role
            counts["roles"] += 1
        granted = {permission.name for permission in role.permissions}
        for permission_name in definition.get("permissions", ()):
            if permission_name not in granted:
                role.permissions.append(permissions[permission_name])

        meta = role_metas.get(role_name)
        if meta is None:
            db.add(
                RoleMeta(
                    role_name=role_name,
                    description=definition.get("description"),
                    is_core=True,
                    provenance={"created_via": "bootstrap"},
                )
            )
        elif not meta.is_core:
            meta.is_core = True

    if settings.bootstrap_admin_email:
        email = settings.bootstrap_admin_email.strip().lower()
        admin = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if admin is None:
            admin = User(
                name=settings.bootstrap_admin_name,
                email=email,
                hashed_password=get_password_hash(settings.bootstrap_admin_password),
            )
            db.add(admin)
            logger.info("Created bootstrap administrator %s", email)
        admin_role = roles.get("Admin")
        if admin_role is not None and admin_role not in admin.roles:
            admin.roles.append(admin_role)

    db.commit()
    logger.info(
        "Provisioned core RBAC: %d new permissions, %d new roles",
        counts["permissions"],
        counts["roles"],
    )
    return counts
