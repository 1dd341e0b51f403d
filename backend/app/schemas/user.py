from enum import Enum

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    department: str | None = None
    is_active: bool
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)


class UserRoleOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_core: bool = False


class UserRolesOut(BaseModel):
    user_id: str
    name: str
    email: str
    roles: list[UserRoleOut]
    roles_count: int


class UserRolesUpdate(BaseModel):
    roles: list[str] = Field(default_factory=list)

    @field_validator("roles")
    @classmethod
    def normalize_roles(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(item.strip() for item in value if item.strip()))


class UserRoleAdd(BaseModel):
    role: str = Field(min_length=1, max_length=255)


class BulkAssignAction(str, Enum):
    replace = "replace"
    add = "add"


class BulkRoleAssign(BaseModel):
    user_ids: list[str] = Field(min_length=1)
    role: str = Field(min_length=1, max_length=255)
    action: BulkAssignAction = BulkAssignAction.add


class BulkRoleAssignResult(BaseModel):
    role: str
    action: BulkAssignAction
    success_count: int
    missing_user_ids: list[str] = Field(default_factory=list)


class BulkRoleRemove(BaseModel):
    user_ids: list[str] = Field(min_length=1)
    role: str = Field(min_length=1, max_length=255)


class BulkRoleRemoveResult(BaseModel):
    role: str
    success_count: int
    not_holding_user_ids: list[str] = Field(default_factory=list)
    missing_user_ids: list[str] = Field(default_factory=list)


class RoleAssignmentStat(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_core: bool = False
    users_count: int
    permissions_count: int


class RoleAssignmentSummary(BaseModel):
    total_users: int
    users_with_roles: int
    users_without_roles: int
    total_roles: int


class RoleAssignmentStatistics(BaseModel):
    role_statistics: list[RoleAssignmentStat]
    summary: RoleAssignmentSummary
