from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.models.user import User
from app.schemas.role import (
    RoleBulkCreate,
    RoleCreate,
    RoleEditOut,
    RoleFilter,
    RoleOut,
    RolePage,
    RolePermissionsUpdate,
    RoleStatsOut,
    RoleUpdate,
)
from app.services.role_lifecycle import RoleLifecycleManager

router = APIRouter()


@router.get("/", response_model=RolePage)
def list_roles(
    filter: RoleFilter = Query(default=RoleFilter.all),
    search: str = Query(default="", max_length=255),
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    current_user: User = Depends(require_permissions("view-roles")),
    db: Session = Depends(get_db),
) -> RolePage:
    manager = RoleLifecycleManager(db, actor=current_user)
    return manager.list_roles(filter=filter, search=search, page=page, page_size=page_size)


@router.post("/", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    payload: RoleCreate,
    current_user: User = Depends(require_permissions("create-roles")),
    db: Session = Depends(get_db),
) -> RoleOut:
    manager = RoleLifecycleManager(db, actor=current_user)
    return manager.create_role(payload.name, payload.description, payload.permissions)


@router.post("/bulk", response_model=list[RoleOut], status_code=status.HTTP_201_CREATED)
def bulk_create_roles(
    payload: RoleBulkCreate,
    current_user: User = Depends(require_permissions("create-roles")),
    db: Session = Depends(get_db),
) -> list[RoleOut]:
    return RoleLifecycleManager(db, actor=current_user).bulk_create(payload.roles)


@router.get("/{role_id}/edit", response_model=RoleEditOut)
def edit_role(
    role_id: str,
    current_user: User = Depends(require_permissions("edit-roles")),
    db: Session = Depends(get_db),
) -> RoleEditOut:
    return RoleLifecycleManager(db, actor=current_user).edit_load(role_id)


@router.put("/{role_id}", response_model=RoleOut)
def update_role(
    role_id: str,
    payload: RoleUpdate,
    current_user: User = Depends(require_permissions("edit-roles")),
    db: Session = Depends(get_db),
) -> RoleOut:
    manager = RoleLifecycleManager(db, actor=current_user)
    return manager.update_role(role_id, payload.name, payload.description, payload.permissions)


@router.put("/{role_id}/permissions", response_model=RoleOut)
def update_role_permissions(
    role_id: str,
    payload: RolePermissionsUpdate,
    current_user: User = Depends(require_permissions("edit-roles")),
    db: Session = Depends(get_db),
) -> RoleOut:
    return RoleLifecycleManager(db, actor=current_user).update_permissions(role_id, payload.permissions)


@router.delete("/{role_id}")
def delete_role(
    role_id: str,
    current_user: User = Depends(require_permissions("delete-roles")),
    db: Session = Depends(get_db),
) -> dict:
    RoleLifecycleManager(db, actor=current_user).delete_role(role_id)
    return {"success": True}


@router.post("/{role_id}/clone", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def clone_role(
    role_id: str,
    current_user: User = Depends(require_permissions("create-roles")),
    db: Session = Depends(get_db),
) -> RoleOut:
    return RoleLifecycleManager(db, actor=current_user).clone_role(role_id)


@router.get("/{role_id}/stats", response_model=RoleStatsOut)
def role_stats(
    role_id: str,
    current_user: User = Depends(require_permissions("view-roles")),
    db: Session = Depends(get_db),
) -> RoleStatsOut:
    return RoleLifecycleManager(db, actor=current_user).role_stats(role_id)
