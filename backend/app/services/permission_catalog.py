from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import ConflictError, ForbiddenError, ResourceNotFoundError, ValidationError
from app.core.rbac_catalog import DEFAULT_CATEGORY, PERMISSION_CATEGORIES, category_label
from app.models.rbac import Permission
from app.models.user import User
from app.schemas.permission import (
    PermissionCatalogOut,
    PermissionCategoryAssignResult,
    PermissionCategoryGroup,
    PermissionCreate,
    PermissionListItem,
    PermissionOut,
    PermissionPage,
    PermissionStatsOut,
)
from app.schemas.role import RoleFilter, RoleSummary
from app.services.audit import log_activity
from app.services.ledger import PermissionMetaLedger, PermissionMetaView, utc_timestamp
from app.services.rbac_store import RbacStore, SqlAlchemyRbacStore
from app.services.transaction import atomic

logger = logging.getLogger(__name__)


class PermissionCatalog:
    """Category-grouped view of permissions and the dynamic permission lifecycle.

    Core permissions (ledger ``is_core``) are read-only here, mirroring the
    rules the role manager applies to core roles.
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
        self.ledger = PermissionMetaLedger(db)
        self.settings = settings or get_settings()

    @property
    def actor_id(self) -> str | None:
        return self.actor.id if self.actor is not None else None

    def list_by_category(self) -> PermissionCatalogOut:
        permissions = self.store.list_permissions()
        metas = self.ledger.describe_many(permission.name for permission in permissions)

        grouped: dict[str, list[PermissionOut]] = {key: [] for key in PERMISSION_CATEGORIES}
        for permission in permissions:
            out = self._permission_out(permission, metas[permission.name])
            grouped.setdefault(out.category, []).append(out)

        categories = [
            PermissionCategoryGroup(key=key, label=category_label(key), permissions=items)
            for key, items in grouped.items()
            if items
        ]
        labels = dict(PERMISSION_CATEGORIES)
        for group in categories:
            labels.setdefault(group.key, group.label)
        return PermissionCatalogOut(categories=categories, labels=labels)

    def list_permissions(
        self,
        filter: RoleFilter = RoleFilter.all,
        category: str = "all",
        search: str = "",
        page: int = 1,
        page_size: int | None = None,
    ) -> PermissionPage:
        page = max(1, page)
        page_size = self._page_size(page_size)
        search = (search or "").strip()
        category = (category or "all").strip() or "all"

        all_permissions = self.store.list_permissions()
        matching = self.store.list_permissions(search) if search else all_permissions
        metas = self.ledger.describe_many(permission.name for permission in all_permissions)
        role_counts = self.store.role_counts_by_permission()

        items: list[PermissionListItem] = []
        for permission in matching:
            meta = metas.get(permission.name) or PermissionMetaView()
            if filter == RoleFilter.core and not meta.is_core:
                continue
            if filter == RoleFilter.dynamic and meta.is_core:
                continue
            if category != "all" and meta.category != category:
                continue
            items.append(
                PermissionListItem(
                    **self._permission_out(permission, meta).model_dump(),
                    roles_count=role_counts.get(permission.id, 0),
                )
            )

        core_total = sum(1 for meta in metas.values() if meta.is_core)
        total = len(items)
        start = (page - 1) * page_size
        return PermissionPage(
            items=items[start : start + page_size],
            total=total,
            page=page,
            page_size=page_size,
            pages=max(1, math.ceil(total / page_size)),
            filter=filter,
            category=category,
            search=search,
            stats=RoleSummary(
                total=len(all_permissions),
                core=core_total,
                dynamic=len(all_permissions) - core_total,
            ),
        )

    def permission_stats(self, permission_id: str) -> PermissionStatsOut:
        permission = self._get_permission(permission_id)
        meta = self.ledger.describe(permission.name)
        return PermissionStatsOut(
            id=permission.id,
            name=permission.name,
            roles_count=self.store.count_roles_with_permission(permission),
            users_count=self.store.count_users_with_permission(permission),
            is_core=meta.is_core,
            category=meta.category,
            description=meta.description,
            created_by=self.ledger.display_name(meta.created_by_user_id),
            last_modified_by=self.ledger.display_name(meta.last_modified_by),
            created_at=permission.created_at,
            updated_at=permission.updated_at,
        )

    def create_permission(self, name: str, description: str | None, category: str) -> PermissionOut:
        return self.bulk_create([PermissionCreate(name=name, description=description, category=category)])[0]

    def bulk_create(self, items: Sequence[PermissionCreate]) -> list[PermissionOut]:
        via = "dynamic_interface" if len(items) == 1 else "bulk_interface"
        seen: set[str] = set()
        for item in items:
            self._validate_description(item.description)
            if item.name in seen:
                raise ValidationError("Duplicate permission name in batch", details={"name": item.name})
            seen.add(item.name)
            if self.store.find_permission_by_name(item.name) is not None:
                raise ConflictError("Permission already exists", details={"name": item.name})

        created: list[Permission] = []
        with atomic(self.db, operation="create permission", conflict_message="Permission already exists"):
            for item in items:
                permission = self.store.create_permission(item.name, self.settings.default_guard_name)
                self.ledger.create(
                    item.name,
                    description=item.description,
                    category=item.category,
                    is_core=False,
                    created_by_user_id=self.actor_id,
                    provenance={"created_via": via, "created_at": utc_timestamp()},
                )
                created.append(permission)

        for permission in created:
            self._audit("permission.created", permission)
        return [self._permission_out(permission, self.ledger.describe(permission.name)) for permission in created]

    def update_permission(
        self,
        permission_id: str,
        name: str,
        description: str | None,
        category: str,
    ) -> PermissionOut:
        permission = self._get_permission(permission_id)
        meta = self.ledger.describe(permission.name)
        if meta.is_core:
            raise ForbiddenError("Core permissions cannot be modified.", details={"permission": permission.name})
        self._validate_description(description)

        old_name = permission.name
        renamed = name != old_name
        if renamed:
            existing = self.store.find_permission_by_name(name)
            if existing is not None and existing.id != permission.id:
                raise ConflictError("Permission already exists", details={"name": name})

        provenance = dict(meta.provenance)
        provenance.update({"updated_via": "dynamic_interface", "last_updated": utc_timestamp()})
        with atomic(self.db, operation="update permission", conflict_message="Permission already exists"):
            if renamed:
                self.store.rename_permission(permission, name)
                self.ledger.rename(old_name, name)
            self.ledger.upsert(
                name,
                description=description,
                category=category,
                is_core=False,
                last_modified_by=self.actor_id,
                provenance=provenance,
            )

        self._audit("permission.updated", permission, old_name=old_name if renamed else None)
        return self._permission_out(permission, self.ledger.describe(permission.name))

    def delete_permission(self, permission_id: str) -> None:
        permission = self._get_permission(permission_id)
        meta = self.ledger.describe(permission.name)
        if meta.is_core:
            raise ForbiddenError("Core permissions cannot be deleted.", details={"permission": permission.name})

        roles_count = self.store.count_roles_with_permission(permission)
        if roles_count > 0:
            raise ConflictError(
                f"Permission is assigned to {roles_count} roles and cannot be deleted.",
                details={"roles_count": roles_count},
            )

        name = permission.name
        with atomic(self.db, operation="delete permission", conflict_message="Permission is still referenced"):
            self.ledger.delete(name)
            self.store.delete_permission(permission)

        log_activity(
            self.db,
            user=self.actor,
            action="permission.deleted",
            entity_type="permission",
            entity_id=permission_id,
            entity_name=name,
        )

    def assign_category(self, permission_ids: Sequence[str], category: str) -> PermissionCategoryAssignResult:
        permissions = [self._get_permission(permission_id) for permission_id in dict.fromkeys(permission_ids)]
        metas = self.ledger.describe_many(permission.name for permission in permissions)

        updated: list[str] = []
        skipped: list[str] = []
        with atomic(self.db, operation="assign permission category", conflict_message="Permission already exists"):
            for permission in permissions:
                meta = metas[permission.name]
                if meta.is_core:
                    skipped.append(permission.name)
                    continue
                provenance = dict(meta.provenance)
                provenance.update({"bulk_updated": utc_timestamp(), "updated_via": "bulk_category_assignment"})
                self.ledger.upsert(
                    permission.name,
                    category=category,
                    last_modified_by=self.actor_id,
                    provenance=provenance,
                )
                updated.append(permission.name)

        if skipped:
            logger.info("Left %d core permissions out of category %r", len(skipped), category)
        log_activity(
            self.db,
            user=self.actor,
            action="permission.category_assigned",
            entity_type="permission",
            details={"category": category, "count": len(updated), "permissions": updated},
        )
        return PermissionCategoryAssignResult(category=category, updated=updated, skipped_core=skipped)

    def _get_permission(self, permission_id: str) -> Permission:
        permission = self.store.get_permission(permission_id)
        if permission is None:
            raise ResourceNotFoundError("Permission", permission_id)
        return permission

    def _validate_description(self, description: str | None) -> None:
        limit = self.settings.permission_description_max_length
        if description is not None and len(description) > limit:
            raise ValidationError(f"Permission description may not exceed {limit} characters")

    def _page_size(self, requested: int | None) -> int:
        if requested is None:
            return self.settings.default_page_size
        return min(max(1, requested), self.settings.max_page_size)

    @staticmethod
    def _permission_out(permission: Permission, meta: PermissionMetaView) -> PermissionOut:
        return PermissionOut(
            id=permission.id,
            name=permission.name,
            guard_name=permission.guard_name,
            description=meta.description,
            category=meta.category or DEFAULT_CATEGORY,
            is_core=meta.is_core,
        )

    def _audit(self, action: str, permission: Permission, **details) -> None:
        log_activity(
            self.db,
            user=self.actor,
            action=action,
            entity_type="permission",
            entity_id=permission.id,
            entity_name=permission.name,
            details={key: value for key, value in details.items() if value is not None},
        )
