from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.models.rbac import Permission, Role, role_has_permissions, user_has_roles
from app.models.user import User


class RbacStore(Protocol):
    """The handful of RBAC verbs the role and permission managers rely on."""

    def find_role_by_name(self, name: str) -> Role | None: ...
    def get_role(self, role_id: str) -> Role | None: ...
    def list_roles(self, search: str = "") -> list[Role]: ...
    def create_role(self, name: str, guard: str) -> Role: ...
    def delete_role(self, role: Role) -> None: ...
    def rename_role(self, role: Role, new_name: str) -> None: ...
    def grant_permissions(self, role: Role, names: Sequence[str]) -> None: ...
    def sync_permissions(self, role: Role, names: Sequence[str]) -> None: ...
    def role_permission_names(self, role: Role) -> list[str]: ...
    def count_users_with_role(self, role: Role) -> int: ...
    def count_permissions_of_role(self, role: Role) -> int: ...
    def user_counts_by_role(self) -> dict[str, int]: ...
    def permission_counts_by_role(self) -> dict[str, int]: ...

    def find_permission_by_name(self, name: str) -> Permission | None: ...
    def get_permission(self, permission_id: str) -> Permission | None: ...
    def list_permissions(self, search: str = "") -> list[Permission]: ...
    def resolve_permissions(self, names: Iterable[str]) -> list[Permission]: ...
    def create_permission(self, name: str, guard: str) -> Permission: ...
    def delete_permission(self, permission: Permission) -> None: ...
    def rename_permission(self, permission: Permission, new_name: str) -> None: ...
    def count_roles_with_permission(self, permission: Permission) -> int: ...
    def count_users_with_permission(self, permission: Permission) -> int: ...
    def role_counts_by_permission(self) -> dict[str, int]: ...

    def resolve_roles(self, names: Iterable[str]) -> list[Role]: ...
    def sync_user_roles(self, user: User, roles: Sequence[Role]) -> None: ...
    def assign_role(self, user: User, role: Role) -> None: ...
    def revoke_role(self, user: User, role: Role) -> None: ...
    def user_permission_names(self, user: User) -> set[str]: ...
    def count_users_holding_any_role(self) -> int: ...


def _name_filter(column, search: str):
    return func.lower(column).contains(search.strip().lower(), autoescape=True)


class SqlAlchemyRbacStore:
    """RBAC store backed by the ``roles``/``permissions`` tables.

    Every method works on the caller's session and only flushes; committing or
    rolling back is left to the caller so several verbs can share one
    transaction.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # roles

    def find_role_by_name(self, name: str) -> Role | None:
        return self.db.execute(select(Role).where(Role.name == name)).scalar_one_or_none()

    def get_role(self, role_id: str) -> Role | None:
        return self.db.get(Role, role_id)

    def list_roles(self, search: str = "") -> list[Role]:
        query = select(Role).order_by(Role.name)
        if search and search.strip():
            query = query.where(_name_filter(Role.name, search))
        return list(self.db.execute(query).scalars())

    def create_role(self, name: str, guard: str) -> Role:
        role = Role(name=name, guard_name=guard)
        self.db.add(role)
        self.db.flush()
        return role

    def delete_role(self, role: Role) -> None:
        self.db.delete(role)
        self.db.flush()

    def rename_role(self, role: Role, new_name: str) -> None:
        role.name = new_name
        self.db.flush()

    def grant_permissions(self, role: Role, names: Sequence[str]) -> None:
        current = {permission.name for permission in role.permissions}
        for permission in self.resolve_permissions(names):
            if permission.name not in current:
                role.permissions.append(permission)
                current.add(permission.name)
        self.db.flush()

    def sync_permissions(self, role: Role, names: Sequence[str]) -> None:
        role.permissions = self.resolve_permissions(names)
        self.db.flush()

    def role_permission_names(self, role: Role) -> list[str]:
        return sorted(permission.name for permission in role.permissions)

    def count_users_with_role(self, role: Role) -> int:
        query = select(func.count()).select_from(user_has_roles).where(user_has_roles.c.role_id == role.id)
        return int(self.db.execute(query).scalar_one())

    def count_permissions_of_role(self, role: Role) -> int:
        query = (
            select(func.count())
            .select_from(role_has_permissions)
            .where(role_has_permissions.c.role_id == role.id)
        )
        return int(self.db.execute(query).scalar_one())

    def user_counts_by_role(self) -> dict[str, int]:
        query = select(user_has_roles.c.role_id, func.count()).group_by(user_has_roles.c.role_id)
        return {role_id: int(count) for role_id, count in self.db.execute(query)}

    def permission_counts_by_role(self) -> dict[str, int]:
        query = select(role_has_permissions.c.role_id, func.count()).group_by(role_has_permissions.c.role_id)
        return {role_id: int(count) for role_id, count in self.db.execute(query)}

    # permissions

    def find_permission_by_name(self, name: str) -> Permission | None:
        return self.db.execute(select(Permission).where(Permission.name == name)).scalar_one_or_none()

    def get_permission(self, permission_id: str) -> Permission | None:
        return self.db.get(Permission, permission_id)

    def list_permissions(self, search: str = "") -> list[Permission]:
        query = select(Permission).order_by(Permission.name)
        if search and search.strip():
            query = query.where(_name_filter(Permission.name, search))
        return list(self.db.execute(query).scalars())

    def resolve_permissions(self, names: Iterable[str]) -> list[Permission]:
        wanted = list(dict.fromkeys(names))
        if not wanted:
            return []
        found = {
            permission.name: permission
            for permission in self.db.execute(select(Permission).where(Permission.name.in_(wanted))).scalars()
        }
        unknown = [name for name in wanted if name not in found]
        if unknown:
            raise ValidationError("Unknown permission", details={"permissions": unknown})
        return [found[name] for name in wanted]

    def create_permission(self, name: str, guard: str) -> Permission:
        permission = Permission(name=name, guard_name=guard)
        self.db.add(permission)
        self.db.flush()
        return permission

    def delete_permission(self, permission: Permission) -> None:
        self.db.delete(permission)
        self.db.flush()

    def rename_permission(self, permission: Permission, new_name: str) -> None:
        permission.name = new_name
        self.db.flush()

    def count_roles_with_permission(self, permission: Permission) -> int:
        query = (
            select(func.count())
            .select_from(role_has_permissions)
            .where(role_has_permissions.c.permission_id == permission.id)
        )
        return int(self.db.execute(query).scalar_one())

    def count_users_with_permission(self, permission: Permission) -> int:
        query = (
            select(func.count(func.distinct(user_has_roles.c.user_id)))
            .select_from(user_has_roles)
            .join(role_has_permissions, role_has_permissions.c.role_id == user_has_roles.c.role_id)
            .where(role_has_permissions.c.permission_id == permission.id)
        )
        return int(self.db.execute(query).scalar_one())

    def role_counts_by_permission(self) -> dict[str, int]:
        query = select(role_has_permissions.c.permission_id, func.count()).group_by(
            role_has_permissions.c.permission_id
        )
        return {permission_id: int(count) for permission_id, count in self.db.execute(query)}

    # user assignments

    def resolve_roles(self, names: Iterable[str]) -> list[Role]:
        wanted = list(dict.fromkeys(names))
        if not wanted:
            return []
        found = {role.name: role for role in self.db.execute(select(Role).where(Role.name.in_(wanted))).scalars()}
        unknown = [name for name in wanted if name not in found]
        if unknown:
            raise ValidationError("Unknown role", details={"roles": unknown})
        return [found[name] for name in wanted]

    def sync_user_roles(self, user: User, roles: Sequence[Role]) -> None:
        user.roles = list(roles)
        self.db.flush()

    def assign_role(self, user: User, role: Role) -> None:
        if role not in user.roles:
            user.roles.append(role)
            self.db.flush()

    def revoke_role(self, user: User, role: Role) -> None:
        if role in user.roles:
            user.roles.remove(role)
            self.db.flush()

    def user_permission_names(self, user: User) -> set[str]:
        query = (
            select(Permission.name)
            .join(role_has_permissions, role_has_permissions.c.permission_id == Permission.id)
            .join(user_has_roles, user_has_roles.c.role_id == role_has_permissions.c.role_id)
            .where(user_has_roles.c.user_id == user.id)
        )
        return set(self.db.execute(query).scalars())

    def count_users_holding_any_role(self) -> int:
        query = select(func.count(distinct(user_has_roles.c.user_id)))
        return int(self.db.execute(query).scalar_one())
