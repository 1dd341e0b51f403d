from __future__ import annotations

import csv
import io
import logging
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.models.rbac import Role
from app.models.user import User
from app.schemas.user import (
    BulkAssignAction,
    BulkRoleAssignResult,
    BulkRoleRemoveResult,
    RoleAssignmentStat,
    RoleAssignmentStatistics,
    RoleAssignmentSummary,
    UserRoleOut,
    UserRolesOut,
)
from app.services.audit import log_activity
from app.services.ledger import RoleMetaLedger
from app.services.rbac_store import RbacStore, SqlAlchemyRbacStore
from app.services.transaction import atomic

logger = logging.getLogger(__name__)

EXPORT_ALL = "all"
EXPORT_NO_ROLE = "no_role"
EXPORT_COLUMNS = ("user_id", "name", "email", "department", "roles", "roles_count")


class UserRoleService:
    """Assigns roles to users. Any role, core or dynamic, may be assigned."""

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

    def describe(self, user_id: str) -> UserRolesOut:
        user = self._get_user(user_id)
        metas = self.ledger.describe_many(role.name for role in user.roles)
        core_names = set(self.settings.core_role_names)
        roles = [
            UserRoleOut(
                id=role.id,
                name=role.name,
                description=metas[role.name].description,
                is_core=metas[role.name].is_core or role.name in core_names,
            )
            for role in user.roles
        ]
        return UserRolesOut(user_id=user.id, name=user.name, email=user.email, roles=roles, roles_count=len(roles))

    def set_roles(self, user_id: str, role_names: Sequence[str]) -> UserRolesOut:
        user = self._get_user(user_id)
        roles = self.store.resolve_roles(role_names)
        previous = [role.name for role in user.roles]
        with atomic(self.db, operation="update user roles", conflict_message="Role assignment conflict"):
            self.store.sync_user_roles(user, roles)
        self._audit(user, "user.roles_replaced", previous_roles=previous, roles=[role.name for role in roles])
        return self.describe(user_id)

    def add_role(self, user_id: str, role_name: str) -> UserRolesOut:
        user = self._get_user(user_id)
        (role,) = self.store.resolve_roles([role_name])
        with atomic(self.db, operation="add user role", conflict_message="Role assignment conflict"):
            self.store.assign_role(user, role)
        self._audit(user, "user.role_added", role=role_name)
        return self.describe(user_id)

    def remove_role(self, user_id: str, role_name: str) -> UserRolesOut:
        user = self._get_user(user_id)
        (role,) = self.store.resolve_roles([role_name])
        if role not in user.roles:
            raise ValidationError("User does not hold this role", details={"role": role_name})
        with atomic(self.db, operation="remove user role", conflict_message="Role assignment conflict"):
            self.store.revoke_role(user, role)
        self._audit(user, "user.role_removed", role=role_name)
        return self.describe(user_id)

    def bulk_assign(self, user_ids: Sequence[str], role_name: str, action: BulkAssignAction) -> BulkRoleAssignResult:
        (role,) = self.store.resolve_roles([role_name])
        users, missing = self._find_users(user_ids)

        with atomic(self.db, operation="bulk assign role", conflict_message="Role assignment conflict"):
            for user in users:
                if action == BulkAssignAction.replace:
                    self.store.sync_user_roles(user, [role])
                else:
                    self.store.assign_role(user, role)

        log_activity(
            self.db,
            user=self.actor,
            action="user.roles_bulk_assigned",
            entity_type="role",
            entity_name=role_name,
            details={"action": action.value, "success_count": len(users), "missing_count": len(missing)},
        )
        return BulkRoleAssignResult(
            role=role_name,
            action=action,
            success_count=len(users),
            missing_user_ids=missing,
        )

    def clear_roles(self, user_id: str) -> UserRolesOut:
        user = self._get_user(user_id)
        previous = [role.name for role in user.roles]
        with atomic(self.db, operation="remove user roles", conflict_message="Role assignment conflict"):
            self.store.sync_user_roles(user, [])
        self._audit(user, "user.roles_cleared", previous_roles=previous)
        return self.describe(user_id)

    def bulk_remove(self, user_ids: Sequence[str], role_name: str) -> BulkRoleRemoveResult:
        """Take one role away from many users at once.

        Users that exist but do not hold the role are left alone and reported
        separately from ids that match no user.
        """
        (role,) = self.store.resolve_roles([role_name])
        users, missing = self._find_users(user_ids)
        holders = [user for user in users if role in user.roles]
        not_holding = [user.id for user in users if role not in user.roles]

        with atomic(self.db, operation="bulk remove role", conflict_message="Role assignment conflict"):
            for user in holders:
                self.store.revoke_role(user, role)

        log_activity(
            self.db,
            user=self.actor,
            action="user.roles_bulk_removed",
            entity_type="role",
            entity_id=role.id,
            entity_name=role_name,
            details={
                "success_count": len(holders),
                "not_holding_count": len(not_holding),
                "missing_count": len(missing),
            },
        )
        return BulkRoleRemoveResult(
            role=role_name,
            success_count=len(holders),
            not_holding_user_ids=not_holding,
            missing_user_ids=missing,
        )

    def role_statistics(self) -> RoleAssignmentStatistics:
        roles = self.store.list_roles()
        user_counts = self.store.user_counts_by_role()
        permission_counts = self.store.permission_counts_by_role()
        metas = self.ledger.describe_many(role.name for role in roles)
        core_names = set(self.settings.core_role_names)

        items = [
            RoleAssignmentStat(
                id=role.id,
                name=role.name,
                description=metas[role.name].description,
                is_core=metas[role.name].is_core or role.name in core_names,
                users_count=user_counts.get(role.id, 0),
                permissions_count=permission_counts.get(role.id, 0),
            )
            for role in roles
        ]
        items.sort(key=lambda item: (-item.users_count, item.name))

        total_users = int(self.db.execute(select(func.count()).select_from(User)).scalar_one())
        with_roles = self.store.count_users_holding_any_role()
        return RoleAssignmentStatistics(
            role_statistics=items,
            summary=RoleAssignmentSummary(
                total_users=total_users,
                users_with_roles=with_roles,
                users_without_roles=total_users - with_roles,
                total_roles=len(roles),
            ),
        )

    def export_csv(self, role_filter: str | None = None) -> str:
        """Render user-role assignments as CSV.

        ``role_filter`` is a role name, ``"no_role"`` for users holding nothing,
        or empty/``"all"`` for everyone.
        """
        query = select(User).order_by(User.email)
        if role_filter == EXPORT_NO_ROLE:
            query = query.where(~User.roles.any())
        elif role_filter and role_filter != EXPORT_ALL:
            (role,) = self.store.resolve_roles([role_filter])
            query = query.where(User.roles.any(Role.id == role.id))
        users = self.db.execute(query).scalars().all()

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for user in users:
            names = [role.name for role in user.roles]
            writer.writerow([user.id, user.name, user.email, user.department or "", ", ".join(names), len(names)])
        logger.info("Exported role assignments for %d users (filter=%s)", len(users), role_filter or EXPORT_ALL)
        return buffer.getvalue()

    def _find_users(self, user_ids: Sequence[str]) -> tuple[list[User], list[str]]:
        wanted = list(dict.fromkeys(user_ids))
        users = list(self.db.execute(select(User).where(User.id.in_(wanted))).scalars())
        found = {user.id for user in users}
        return users, [user_id for user_id in wanted if user_id not in found]

    def _get_user(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundError("User", user_id)
        return user

    def _audit(self, user: User, action: str, **details) -> None:
        log_activity(
            self.db,
            user=self.actor,
            action=action,
            entity_type="user",
            entity_id=user.id,
            entity_name=user.email,
            details=details,
        )
