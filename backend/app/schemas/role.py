from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class RoleFilter(str, Enum):
    all = "all"
    core = "core"
    dynamic = "dynamic"


def _normalize_permission_names(value: list[str]) -> list[str]:
    names: list[str] = []
    for item in value:
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names


class RoleBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=500)
    permissions: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Role name cannot be empty")
        return trimmed

    @field_validator("description")
    @classmethod
    def normalize_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None

    @field_validator("permissions")
    @classmethod
    def normalize_permissions(cls, value: list[str]) -> list[str]:
        return _normalize_permission_names(value)


class RoleCreate(RoleBase):
    # Accepted from older admin forms and ignored: dynamic roles are never core.
    is_core: bool = False


class RoleBulkCreate(BaseModel):
    roles: list[RoleCreate] = Field(min_length=1, max_length=100)


class RoleUpdate(RoleBase):
    pass


class RolePermissionsUpdate(BaseModel):
    permissions: list[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def normalize_permissions(cls, value: list[str]) -> list[str]:
        return _normalize_permission_names(value)


class RoleOut(BaseModel):
    id: str
    name: str
    guard_name: str
    description: str | None = None
    is_core: bool = False
    permissions: list[str] = Field(default_factory=list)


class RoleListItem(BaseModel):
    id: str
    name: str
    guard_name: str
    description: str | None = None
    is_core: bool = False
    users_count: int = 0
    permissions_count: int = 0


class RoleSummary(BaseModel):
    total: int
    core: int
    dynamic: int


class RolePage(BaseModel):
    items: list[RoleListItem]
    total: int
    page: int
    page_size: int
    pages: int
    filter: RoleFilter
    search: str
    stats: RoleSummary


class RoleEditOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_core: bool = False
    permissions: list[str] = Field(default_factory=list)


class RoleStatsOut(BaseModel):
    id: str
    name: str
    users_count: int
    permissions_count: int
    is_core: bool
    description: str | None = None
    created_by: str | None = None
    last_modified_by: str | None = None
    provenance: dict = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
