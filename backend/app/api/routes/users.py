from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.models.user import User
from app.schemas.user import (
    BulkRoleAssign,
    BulkRoleAssignResult,
    BulkRoleRemove,
    BulkRoleRemoveResult,
    RoleAssignmentStatistics,
    UserRoleAdd,
    UserRolesOut,
    UserRolesUpdate,
)
from app.services.user_roles import UserRoleService

router = APIRouter()


@router.post("/roles/bulk-assign", response_model=BulkRoleAssignResult)
def bulk_assign_role(
    payload: BulkRoleAssign,
    current_user: User = Depends(require_permissions("edit-users")),
    db: Session = Depends(get_db),
) -> BulkRoleAssignResult:
    service = UserRoleService(db, actor=current_user)
    return service.bulk_assign(payload.user_ids, payload.role, payload.action)


@router.post("/roles/bulk-remove", response_model=BulkRoleRemoveResult)
def bulk_remove_role(
    payload: BulkRoleRemove,
    current_user: User = Depends(require_permissions("edit-users")),
    db: Session = Depends(get_db),
) -> BulkRoleRemoveResult:
    return UserRoleService(db, actor=current_user).bulk_remove(payload.user_ids, payload.role)


@router.get("/roles/statistics", response_model=RoleAssignmentStatistics)
def role_assignment_statistics(
    current_user: User = Depends(require_permissions("view-users")),
    db: Session = Depends(get_db),
) -> RoleAssignmentStatistics:
    return UserRoleService(db, actor=current_user).role_statistics()


@router.get("/roles/export")
def export_user_roles(
    role: str | None = Query(default=None, max_length=255),
    current_user: User = Depends(require_permissions("view-users")),
    db: Session = Depends(get_db),
) -> Response:
    content = UserRoleService(db, actor=current_user).export_csv(role.strip() if role else None)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="user_roles.csv"'},
    )


@router.get("/{user_id}/roles", response_model=UserRolesOut)
def get_user_roles(
    user_id: str,
    current_user: User = Depends(require_permissions("view-users")),
    db: Session = Depends(get_db),
) -> UserRolesOut:
    return UserRoleService(db, actor=current_user).describe(user_id)


@router.put("/{user_id}/roles", response_model=UserRolesOut)
def set_user_roles(
    user_id: str,
    payload: UserRolesUpdate,
    current_user: User = Depends(require_permissions("edit-users")),
    db: Session = Depends(get_db),
) -> UserRolesOut:
    return UserRoleService(db, actor=current_user).set_roles(user_id, payload.roles)


@router.post("/{user_id}/roles", response_model=UserRolesOut)
def add_user_role(
    user_id: str,
    payload: UserRoleAdd,
    current_user: User = Depends(require_permissions("edit-users")),
    db: Session = Depends(get_db),
) -> UserRolesOut:
    return UserRoleService(db, actor=current_user).add_role(user_id, payload.role.strip())


@router.delete("/{user_id}/roles/{role_name}", response_model=UserRolesOut)
def remove_user_role(
    user_id: str,
    role_name: str,
    current_user: User = Depends(require_permissions("edit-users")),
    db: Session = Depends(get_db),
) -> UserRolesOut:
    return UserRoleService(db, actor=current_user).remove_role(user_id, role_name)


@router.delete("/{user_id}/roles", response_model=UserRolesOut)
def clear_user_roles(
    user_id: str,
    current_user: User = Depends(require_permissions("edit-users")),
    db: Session = Depends(get_db),
) -> UserRolesOut:
    return UserRoleService(db, actor=current_user).clear_roles(user_id)
