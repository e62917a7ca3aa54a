"""
Folder and folder permission routes.

Each route resolves the caller's effective level on the folder before acting.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import PermissionDeniedError
from app.features.folders.dependencies import (
    FolderAccess,
    folder_response,
    load_org_context,
    require_folder_level,
    resolve_folder_level,
)
from app.features.folders.models import Folder
from app.features.folders.schemas import FolderCreate, FolderResponse, FolderUpdate
from app.features.permissions.dependencies import client_info, create_audit_log
from app.features.permissions.grants import (
    get_grants_for_folders,
    get_live_folder,
    grant_folder_permission,
    list_folder_grants,
    revoke_folder_permission,
    update_folder_permission,
)
from app.features.permissions.models import PermissionLevel, TargetKind
from app.features.permissions.resolver import level_satisfies, resolve_effective_level
from app.features.permissions.schemas import FolderGrantList, GrantCreate, GrantResponse, GrantUpdate
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["folders"])


async def visible_folders(db: AsyncSession, user: User, parent_id: Optional[str]) -> list[FolderResponse]:
    """Live folders under ``parent_id`` that the user can at least view."""
    stmt = select(Folder).where(Folder.is_deleted == False)  # noqa: E712
    if parent_id:
        stmt = stmt.where(Folder.parent_id == parent_id)
    else:
        stmt = stmt.where(Folder.parent_id.is_(None))
    result = await db.execute(stmt.order_by(Folder.name))
    folders = result.scalars().all()
    
    grants = await get_grants_for_folders(db, [folder.id for folder in folders])
    org_context = await load_org_context(db, user)
    
    visible = []
    for folder in folders:
        level = resolve_effective_level(user, folder, grants[folder.id], org_context)
        if level is not None:
            visible.append(folder_response(folder, level))
    return visible


# ============================================================================
# Folder Routes
# ============================================================================

@router.post("/", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    folder_data: FolderCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a folder owned by the current user. Sub-folders need edit on the parent."""
    if folder_data.parent_id:
        parent = await get_live_folder(db, folder_data.parent_id)
        parent_level = await resolve_folder_level(db, current_user, parent)
        if not level_satisfies(parent_level, PermissionLevel.EDIT):
            raise PermissionDeniedError("This action requires edit permission on the parent folder")
    
    folder = Folder(
        name=folder_data.name,
        parent_id=folder_data.parent_id,
        owner_user_id=current_user.id,
    )
    db.add(folder)
    await db.commit()
    await db.refresh(folder)
    
    return folder_response(folder, PermissionLevel.MANAGE)


@router.get("/", response_model=list[FolderResponse])
async def list_root_folders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List root folders the current user can access."""
    return await visible_folders(db, current_user, None)


@router.get("/{folder_id}", response_model=FolderResponse)
async def get_folder(
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.VIEW))]
):
    """Get a folder with the caller's effective level."""
    return folder_response(access.folder, access.level)


@router.get("/{folder_id}/children", response_model=list[FolderResponse])
async def list_folder_children(
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.VIEW))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    List a folder's sub-folders.
    
    Grants are not inherited, so each child is filtered by its own grants.
    """
    return await visible_folders(db, access.user, access.folder.id)


@router.patch("/{folder_id}", response_model=FolderResponse)
async def rename_folder(
    update_data: FolderUpdate,
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.EDIT))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Rename a folder (edit permission)."""
    access.folder.name = update_data.name
    await db.commit()
    await db.refresh(access.folder)
    return folder_response(access.folder, access.level)


@router.delete("/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Move a folder to the trash (manage permission)."""
    access.folder.is_deleted = True
    access.folder.deleted_at = datetime.now(timezone.utc)
    await db.commit()
    return None


# ============================================================================
# Folder Permission Routes
# ============================================================================

@router.get("/{folder_id}/permissions", response_model=FolderGrantList)
async def list_folder_permissions(
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List grants on a folder, partitioned by users, branches and departments."""
    return await list_folder_grants(db, access.folder.id)


@router.post("/{folder_id}/permissions", response_model=GrantResponse, status_code=status.HTTP_201_CREATED)
async def grant_permission(
    grant_data: GrantCreate,
    request: Request,
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Grant a level on the folder to a user, branch or department."""
    grant = await grant_folder_permission(
        db,
        folder_id=access.folder.id,
        target_kind=grant_data.target_kind,
        target_id=grant_data.target_id,
        level=grant_data.level,
        granted_by_id=access.user.id,
    )
    await create_audit_log(
        db,
        user_id=access.user.id,
        action="grant_permission",
        resource_type="folder",
        resource_id=access.folder.id,
        details={
            "target_kind": grant.target_kind.value,
            "target_id": grant.target_id,
            "target_name": grant.target_name,
            "level": grant.level.value,
        },
        **client_info(request)
    )
    await db.commit()
    return grant


@router.patch("/{folder_id}/permissions/{target_kind}/{target_id}", response_model=GrantResponse)
async def update_permission(
    target_kind: TargetKind,
    target_id: str,
    update_data: GrantUpdate,
    request: Request,
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Change the level of an existing grant."""
    grant = await update_folder_permission(
        db,
        folder_id=access.folder.id,
        target_kind=target_kind,
        target_id=target_id,
        level=update_data.level,
    )
    await create_audit_log(
        db,
        user_id=access.user.id,
        action="update_permission",
        resource_type="folder",
        resource_id=access.folder.id,
        details={"target_kind": target_kind.value, "target_id": target_id, "level": update_data.level.value},
        **client_info(request)
    )
    await db.commit()
    return grant


@router.delete("/{folder_id}/permissions/{target_kind}/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_permission(
    target_kind: TargetKind,
    target_id: str,
    request: Request,
    access: Annotated[FolderAccess, Depends(require_folder_level(PermissionLevel.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Revoke a grant. Revoking a missing grant returns 404."""
    await revoke_folder_permission(db, access.folder.id, target_kind, target_id)
    await create_audit_log(
        db,
        user_id=access.user.id,
        action="revoke_permission",
        resource_type="folder",
        resource_id=access.folder.id,
        details={"target_kind": target_kind.value, "target_id": target_id},
        **client_info(request)
    )
    await db.commit()
    return None
