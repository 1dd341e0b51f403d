from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.role import RoleFilter, RoleSummary


class PermissionBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    category: str = Field(min_length=1, max_length=100)

    @field_validator("name", "category")
    @classmethod
    def strip_required(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Value cannot be empty")
        return trimmed

    @field_validator("description")
    @classmethod
    def normalize_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None


class PermissionCreate(PermissionBase):
    pass


class PermissionUpdate(PermissionBase):
    pass


class PermissionBulkCreate(BaseModel):
    permissions: list[PermissionCreate] = Field(min_length=1, max_length=200)


class PermissionCategoryAssign(BaseModel):
    permission_ids: list[str] = Field(min_length=1)
    category: str = Field(min_length=1, max_length=100)

    @field_validator("category")
    @classmethod
    def strip_category(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Category cannot be empty")
        return trimmed


class PermissionOut(BaseModel):
    id: str
    name: str
    guard_name: str
    description: str | None = None
    category: str = "general"
    is_core: bool = False


class PermissionListItem(PermissionOut):
    roles_count: int = 0


class PermissionPage(BaseModel):
    items: list[PermissionListItem]
    total: int
    page: int
    page_size: int
    pages: int
    filter: RoleFilter
    category: str
    search: str
    stats: RoleSummary


class PermissionCategoryGroup(BaseModel):
    key: str
    label: str
    permissions: list[PermissionOut]


class PermissionCatalogOut(BaseModel):
    categories: list[PermissionCategoryGroup]
    labels: dict[str, str]


class PermissionCategoryAssignResult(BaseModel):
    category: str
    updated: list[str]
    skipped_core: list[str]


class PermissionStatsOut(BaseModel):
    id: str
    name: str
    roles_count: int
    users_count: int
    is_core: bool
    category: str
    description: str | None = None
    created_by: str | None = None
    last_modified_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
