from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.models.user import User
from app.schemas.permission import (
    PermissionBulkCreate,
    PermissionCatalogOut,
    PermissionCategoryAssign,
    PermissionCategoryAssignResult,
    PermissionCreate,
    PermissionOut,
    PermissionPage,
    PermissionStatsOut,
    PermissionUpdate,
)
from app.schemas.role import RoleFilter
from app.services.permission_catalog import PermissionCatalog

router = APIRouter()


@router.get("/", response_model=PermissionPage)
def list_permissions(
    filter: RoleFilter = Query(default=RoleFilter.all),
    category: str = Query(default="all", max_length=100),
    search: str = Query(default="", max_length=255),
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    current_user: User = Depends(require_permissions("view-permissions")),
    db: Session = Depends(get_db),
) -> PermissionPage:
    catalog = PermissionCatalog(db, actor=current_user)
    return catalog.list_permissions(filter=filter, category=category, search=search, page=page, page_size=page_size)


@router.get("/categories", response_model=PermissionCatalogOut)
def list_permission_categories(
    current_user: User = Depends(require_permissions("view-permissions")),
    db: Session = Depends(get_db),
) -> PermissionCatalogOut:
    return PermissionCatalog(db, actor=current_user).list_by_category()


@router.post("/", response_model=PermissionOut, status_code=status.HTTP_201_CREATED)
def create_permission(
    payload: PermissionCreate,
    current_user: User = Depends(require_permissions("create-permissions")),
    db: Session = Depends(get_db),
) -> PermissionOut:
    catalog = PermissionCatalog(db, actor=current_user)
    return catalog.create_permission(payload.name, payload.description, payload.category)


@router.post("/bulk", response_model=list[PermissionOut], status_code=status.HTTP_201_CREATED)
def bulk_create_permissions(
    payload: PermissionBulkCreate,
    current_user: User = Depends(require_permissions("create-permissions")),
    db: Session = Depends(get_db),
) -> list[PermissionOut]:
    return PermissionCatalog(db, actor=current_user).bulk_create(payload.permissions)


@router.post("/bulk-category", response_model=PermissionCategoryAssignResult)
def assign_permission_category(
    payload: PermissionCategoryAssign,
    current_user: User = Depends(require_permissions("edit-permissions")),
    db: Session = Depends(get_db),
) -> PermissionCategoryAssignResult:
    return PermissionCatalog(db, actor=current_user).assign_category(payload.permission_ids, payload.category)


@router.put("/{permission_id}", response_model=PermissionOut)
def update_permission(
    permission_id: str,
    payload: PermissionUpdate,
    current_user: User = Depends(require_permissions("edit-permissions")),
    db: Session = Depends(get_db),
) -> PermissionOut:
    catalog = PermissionCatalog(db, actor=current_user)
    return catalog.update_permission(permission_id, payload.name, payload.description, payload.category)


@router.delete("/{permission_id}")
def delete_permission(
    permission_id: str,
    current_user: User = Depends(require_permissions("delete-permissions")),
    db: Session = Depends(get_db),
) -> dict:
    PermissionCatalog(db, actor=current_user).delete_permission(permission_id)
    return {"success": True}


@router.get("/{permission_id}/stats", response_model=PermissionStatsOut)
def permission_stats(
    permission_id: str,
    current_user: User = Depends(require_permissions("view-permissions")),
    db: Session = Depends(get_db),
) -> PermissionStatsOut:
    return PermissionCatalog(db, actor=current_user).permission_stats(permission_id)
