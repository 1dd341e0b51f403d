from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import ConflictError, ForbiddenError, ResourceNotFoundError, ValidationError
from app.models.rbac import Role
from app.models.user import User
from app.schemas.role import (
    RoleCreate,
    RoleEditOut,
    RoleFilter,
    RoleListItem,
    RoleOut,
    RolePage,
    RoleStatsOut,
    RoleSummary,
)
from app.services.audit import log_activity
from app.services.ledger import RoleMetaLedger, RoleMetaView, utc_timestamp
from app.services.rbac_store import RbacStore, SqlAlchemyRbacStore
from app.services.transaction import atomic

logger = logging.getLogger(__name__)

CLONE_SUFFIX = " (Copy)"
CLONED_DESCRIPTION_SUFFIX = " (Cloned)"


def _unique_names(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(name.strip() for name in names if name and name.strip()))


class RoleLifecycleManager:
    """Create, edit, delete and clone dynamic roles.

    Each mutation spans the RBAC store and the role metadata ledger and is
    committed as a single transaction. Preconditions (unknown permissions,
    duplicate names, core-role protection, roles still held by users) are
    checked before anything is written.

    A role is core when its ledger row says so or when its name is listed in
    ``settings.core_role_names``. Core roles are provisioned out of band and
    are never written here.
    """

    def __init__(
        self,
        db: Session,
        *,
        actor: User | None = None,
        store: RbacStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.actor = actor
        self.store = store if store is not None else SqlAlchemyRbacStore(db)
        self.ledger = RoleMetaLedger(db)
        self.settings = settings or get_settings()
        self._core_names = frozenset(self.settings.core_role_names)

    @property
    def actor_id(self) -> str | None:
        return self.actor.id if self.actor is not None else None

    # queries

    def list_roles(
        self,
        filter: RoleFilter = RoleFilter.all,
        search: str = "",
        page: int = 1,
        page_size: int | None = None,
    ) -> RolePage:
        page = max(1, page)
        page_size = self._page_size(page_size)
        search = (search or "").strip()

        all_roles = self.store.list_roles()
        matching = self.store.list_roles(search) if search else all_roles
        metas = self.ledger.describe_many(role.name for role in all_roles)
        user_counts = self.store.user_counts_by_role()
        permission_counts = self.store.permission_counts_by_role()

        core_flags = {role.name: self._is_core(role.name, metas[role.name]) for role in all_roles}
        core_total = sum(1 for flag in core_flags.values() if flag)

        items: list[RoleListItem] = []
        for role in matching:
            meta = metas.get(role.name) or RoleMetaView()
            is_core = core_flags.get(role.name, self._is_core(role.name, meta))
            if filter == RoleFilter.core and not is_core:
                continue
            if filter == RoleFilter.dynamic and is_core:
                continue
            items.append(
                RoleListItem(
                    id=role.id,
                    name=role.name,
                    guard_name=role.guard_name,
                    description=meta.description,
                    is_core=is_core,
                    users_count=user_counts.get(role.id, 0),
                    permissions_count=permission_counts.get(role.id, 0),
                )
            )

        total = len(items)
        start = (page - 1) * page_size
        return RolePage(
            items=items[start : start + page_size],
            total=total,
            page=page,
            page_size=page_size,
            pages=max(1, math.ceil(total / page_size)),
            filter=filter,
            search=search,
            stats=RoleSummary(total=len(all_roles), core=core_total, dynamic=len(all_roles) - core_total),
        )

    def edit_load(self, role_id: str) -> RoleEditOut:
        role = self._get_role(role_id)
        meta = self.ledger.describe(role.name)
        self._ensure_not_core(role, meta, "Core roles cannot be edited through this interface.")
        return RoleEditOut(
            id=role.id,
            name=role.name,
            description=meta.description,
            is_core=False,
            permissions=self.store.role_permission_names(role),
        )

    def role_stats(self, role_id: str) -> RoleStatsOut:
        role = self._get_role(role_id)
        meta = self.ledger.describe(role.name)
        return RoleStatsOut(
            id=role.id,
            name=role.name,
            users_count=self.store.count_users_with_role(role),
            permissions_count=self.store.count_permissions_of_role(role),
            is_core=self._is_core(role.name, meta),
            description=meta.description,
            created_by=self.ledger.display_name(meta.created_by_user_id),
            last_modified_by=self.ledger.display_name(meta.last_modified_by),
            provenance=meta.provenance,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )

    # mutations

    def create_role(
        self,
        name: str,
        description: str | None = None,
        permission_names: Sequence[str] = (),
    ) -> RoleOut:
        name = self._validate_name(name)
        description = self._validate_description(description)
        permission_names = _unique_names(permission_names)

        if self.store.find_role_by_name(name) is not None:
            raise ConflictError("Role already exists", details={"name": name})
        self.store.resolve_permissions(permission_names)

        with atomic(self.db, operation="create role", conflict_message="Role already exists"):
            role = self._create_dynamic_role(
                name,
                description,
                permission_names,
                provenance={"created_via": "dynamic_interface"},
            )

        self._audit("role.created", role, permissions_count=len(permission_names))
        return self._role_out(role)

    def bulk_create(self, roles: Sequence[RoleCreate]) -> list[RoleOut]:
        prepared: list[tuple[str, str | None, list[str]]] = []
        seen: set[str] = set()
        for item in roles:
            name = self._validate_name(item.name)
            if name in seen:
                raise ValidationError("Duplicate role name in batch", details={"name": name})
            seen.add(name)
            if self.store.find_role_by_name(name) is not None:
                raise ConflictError("Role already exists", details={"name": name})
            permission_names = _unique_names(item.permissions)
            self.store.resolve_permissions(permission_names)
            prepared.append((name, self._validate_description(item.description), permission_names))

        created: list[Role] = []
        with atomic(self.db, operation="create roles", conflict_message="Role already exists"):
            for name, description, permission_names in prepared:
                created.append(
                    self._create_dynamic_role(
                        name,
                        description,
                        permission_names,
                        provenance={"created_via": "bulk_interface"},
                    )
                )

        for role in created:
            self._audit("role.created", role, bulk=True)
        return [self._role_out(role) for role in created]

    def update_role(
        self,
        role_id: str,
        name: str,
        description: str | None = None,
        permission_names: Sequence[str] = (),
    ) -> RoleOut:
        role = self._get_role(role_id)
        meta = self.ledger.describe(role.name)
        self._ensure_not_core(role, meta, "Core roles cannot be modified.")

        name = self._validate_name(name)
        description = self._validate_description(description)
        permission_names = _unique_names(permission_names)
        old_name = role.name
        renamed = name != old_name

        if renamed:
            existing = self.store.find_role_by_name(name)
            if existing is not None and existing.id != role.id:
                raise ConflictError("Role already exists", details={"name": name})
        self.store.resolve_permissions(permission_names)

        provenance = dict(meta.provenance)
        provenance.update(
            {
                "updated_via": "dynamic_interface",
                "last_updated": utc_timestamp(),
                "permissions_count": len(permission_names),
            }
        )
        if renamed:
            provenance["previous_name"] = old_name

        with atomic(self.db, operation="update role", conflict_message="Role already exists"):
            if renamed:
                # Both keys move together or not at all.
                self.store.rename_role(role, name)
                self.ledger.rename(old_name, name)
            self.store.sync_permissions(role, permission_names)
            self.ledger.upsert(
                name,
                description=description,
                is_core=False,
                last_modified_by=self.actor_id,
                provenance=provenance,
            )

        self._audit(
            "role.updated",
            role,
            old_name=old_name if renamed else None,
            permissions_count=len(permission_names),
        )
        return self._role_out(role)

    def update_permissions(self, role_id: str, permission_names: Sequence[str]) -> RoleOut:
        role = self._get_role(role_id)
        meta = self.ledger.describe(role.name)
        self._ensure_not_core(role, meta, "Core roles cannot be modified.")

        permission_names = _unique_names(permission_names)
        self.store.resolve_permissions(permission_names)

        provenance = dict(meta.provenance)
        provenance.update(
            {
                "updated_via": "permission_sync",
                "last_updated": utc_timestamp(),
                "permissions_count": len(permission_names),
            }
        )
        with atomic(self.db, operation="update role permissions", conflict_message="Role already exists"):
            self.store.sync_permissions(role, permission_names)
            self.ledger.upsert(role.name, is_core=False, last_modified_by=self.actor_id, provenance=provenance)

        self._audit("role.permissions_synced", role, permissions_count=len(permission_names))
        return self._role_out(role)

    def delete_role(self, role_id: str) -> None:
        role = self._get_role(role_id)
        meta = self.ledger.describe(role.name)
        self._ensure_not_core(role, meta, "Core roles cannot be deleted.")

        users_count = self.store.count_users_with_role(role)
        if users_count > 0:
            raise ConflictError(
                f"Role is assigned to {users_count} users and cannot be deleted.",
                details={"users_count": users_count},
            )

        role_name = role.name
        role_id = role.id
        with atomic(self.db, operation="delete role", conflict_message="Role is still referenced"):
            self.ledger.delete(role_name)
            self.store.delete_role(role)

        log_activity(
            self.db,
            user=self.actor,
            action="role.deleted",
            entity_type="role",
            entity_id=role_id,
            entity_name=role_name,
            details={},
        )

    def clone_role(self, role_id: str) -> RoleOut:
        # Core sources may be cloned; the clone itself is always dynamic.
        source = self._get_role(role_id)
        meta = self.ledger.describe(source.name)
        name = self._validate_name(self._clone_name(source.name))
        permission_names = self.store.role_permission_names(source)
        description = f"{meta.description or ''}{CLONED_DESCRIPTION_SUFFIX}"

        with atomic(self.db, operation="clone role", conflict_message="Role already exists"):
            role = self._create_dynamic_role(
                name,
                description,
                permission_names,
                provenance={
                    "created_via": "clone",
                    "cloned_from_role_id": source.id,
                    "cloned_from_role_name": source.name,
                },
            )

        self._audit("role.cloned", role, source=source.name, permissions_count=len(permission_names))
        return self._role_out(role)

    # helpers

    def is_core(self, role: Role) -> bool:
        return self._is_core(role.name, self.ledger.describe(role.name))

    def _is_core(self, name: str, meta: RoleMetaView) -> bool:
        return meta.is_core or name in self._core_names

    def _ensure_not_core(self, role: Role, meta: RoleMetaView, message: str) -> None:
        if self._is_core(role.name, meta):
            logger.info("Refused to change core role %r (actor=%s)", role.name, self.actor_id)
            raise ForbiddenError(message, details={"role": role.name})

    def _get_role(self, role_id: str) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise ResourceNotFoundError("Role", role_id)
        return role

    def _clone_name(self, base: str) -> str:
        limit = self.settings.role_name_max_length

        def fit(suffix: str) -> str:
            # Long source names are cut so the suffix always fits.
            return f"{base[: limit - len(suffix)].rstrip()}{suffix}"

        candidate = fit(CLONE_SUFFIX)
        attempt = 2
        while self.store.find_role_by_name(candidate) is not None:
            candidate = fit(f" (Copy {attempt})")
            attempt += 1
        return candidate

    def _create_dynamic_role(
        self,
        name: str,
        description: str | None,
        permission_names: list[str],
        *,
        provenance: dict,
    ) -> Role:
        role = self.store.create_role(name, self.settings.default_guard_name)
        if permission_names:
            self.store.grant_permissions(role, permission_names)
        self.ledger.create(
            name,
            description=description,
            is_core=False,
            created_by_user_id=self.actor_id,
            last_modified_by=self.actor_id,
            provenance={
                **provenance,
                "created_at": utc_timestamp(),
                "permissions_count": len(permission_names),
            },
        )
        return role

    def _validate_name(self, name: str | None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name is required")
        limit = self.settings.role_name_max_length
        if len(name) > limit:
            raise ValidationError(f"Role name may not exceed {limit} characters", details={"name": name})
        return name

    def _validate_description(self, description: str | None) -> str | None:
        if description is None:
            return None
        description = description.strip()
        limit = self.settings.role_description_max_length
        if len(description) > limit:
            raise ValidationError(f"Role description may not exceed {limit} characters")
        return description or None

    def _page_size(self, requested: int | None) -> int:
        if requested is None:
            return self.settings.default_page_size
        return min(max(1, requested), self.settings.max_page_size)

    def _role_out(self, role: Role) -> RoleOut:
        meta = self.ledger.describe(role.name)
        return RoleOut(
            id=role.id,
            name=role.name,
            guard_name=role.guard_name,
            description=meta.description,
            is_core=self._is_core(role.name, meta),
            permissions=self.store.role_permission_names(role),
        )

    def _audit(self, action: str, role: Role, **details) -> None:
        log_activity(
            self.db,
            user=self.actor,
            action=action,
            entity_type="role",
            entity_id=role.id,
            entity_name=role.name,
            details={key: value for key, value in details.items() if value is not None},
        )
