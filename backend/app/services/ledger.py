from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.core.rbac_catalog import DEFAULT_CATEGORY
from app.models.meta import PermissionMeta, RoleMeta
from app.models.user import User

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RoleMetaView:
    description: str | None = None
    is_core: bool = False
    created_by_user_id: str | None = None
    last_modified_by: str | None = None
    provenance: dict = field(default_factory=dict)
    exists: bool = False


@dataclass(frozen=True)
class PermissionMetaView:
    description: str | None = None
    is_core: bool = False
    category: str = DEFAULT_CATEGORY
    created_by_user_id: str | None = None
    last_modified_by: str | None = None
    provenance: dict = field(default_factory=dict)
    exists: bool = False


class _MetaLedger:
    """Name-keyed metadata rows that overlay the RBAC tables.

    Rows link to roles/permissions by name only, so a rename has to go
    through :meth:`rename` inside the same transaction as the RBAC rename.
    Like the RBAC store, the ledger only flushes.
    """

    model: ClassVar[type]
    key_field: ClassVar[str]

    def __init__(self, db: Session) -> None:
        self.db = db

    @property
    def _key(self):
        return getattr(self.model, self.key_field)

    def get(self, name: str):
        return self.db.execute(select(self.model).where(self._key == name)).scalar_one_or_none()

    def get_many(self, names: Iterable[str]) -> dict[str, Any]:
        wanted = list(dict.fromkeys(names))
        if not wanted:
            return {}
        rows = self.db.execute(select(self.model).where(self._key.in_(wanted))).scalars()
        return {getattr(row, self.key_field): row for row in rows}

    def create(self, name: str, **fields):
        row = self.model(**{self.key_field: name}, **fields)
        self.db.add(row)
        self.db.flush()
        return row

    def upsert(self, name: str, **fields):
        row = self.get(name)
        if row is None:
            return self.create(name, **fields)
        for key, value in fields.items():
            setattr(row, key, value)
        self.db.flush()
        return row

    def rename(self, old_name: str, new_name: str) -> None:
        self.db.execute(
            update(self.model)
            .where(self._key == old_name)
            .values({self.key_field: new_name})
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()

    def delete(self, name: str) -> None:
        self.db.execute(
            delete(self.model).where(self._key == name).execution_options(synchronize_session="fetch")
        )
        self.db.flush()

    def display_name(self, user_id: str | None) -> str | None:
        if user_id is None:
            return None
        user = self.db.get(User, user_id)
        return user.name if user is not None else None


class RoleMetaLedger(_MetaLedger):
    model = RoleMeta
    key_field = "role_name"

    def describe(self, name: str) -> RoleMetaView:
        return self._view(name, self.get(name))

    def _view(self, name: str, row: RoleMeta | None) -> RoleMetaView:
        if row is None:
            logger.warning("Role %r has no metadata row; treating it as non-core", name)
            return RoleMetaView()
        return RoleMetaView(
            description=row.description,
            is_core=bool(row.is_core),
            created_by_user_id=row.created_by_user_id,
            last_modified_by=row.last_modified_by,
            provenance=dict(row.provenance or {}),
            exists=True,
        )

    def describe_many(self, names: Iterable[str]) -> dict[str, RoleMetaView]:
        names = list(names)
        rows = self.get_many(names)
        return {name: self._view(name, rows.get(name)) for name in names}


class PermissionMetaLedger(_MetaLedger):
    model = PermissionMeta
    key_field = "permission_name"

    def describe(self, name: str) -> PermissionMetaView:
        return self._view(name, self.get(name))

    def _view(self, name: str, row: PermissionMeta | None) -> PermissionMetaView:
        if row is None:
            logger.warning("Permission %r has no metadata row; using defaults", name)
            return PermissionMetaView()
        return PermissionMetaView(
            description=row.description,
            is_core=bool(row.is_core),
            category=row.category or DEFAULT_CATEGORY,
            created_by_user_id=row.created_by_user_id,
            last_modified_by=row.last_modified_by,
            provenance=dict(row.provenance or {}),
            exists=True,
        )

    def describe_many(self, names: Iterable[str]) -> dict[str, PermissionMetaView]:
        names = list(names)
        rows = self.get_many(names)
        return {name: self._view(name, rows.get(name)) for name in names}
