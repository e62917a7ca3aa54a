"""
Folder access dependencies.

Every folder route resolves the caller's effective level first and gates
the operation on it.
"""
from dataclasses import dataclass
from typing import Annotated
from fastapi import Depends
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import PermissionDeniedError
from app.features.directory.models import Branch, Department
from app.features.folders.models import Folder
from app.features.folders.schemas import FolderResponse
from app.features.permissions.grants import get_folder_grants, get_live_folder
from app.features.permissions.models import PermissionLevel
from app.features.permissions.resolver import OrgContext, level_satisfies, resolve_effective_level
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


@dataclass
class FolderAccess:
    """A folder, the user asking for it and the level they hold."""
    folder: Folder
    user: User
    level: PermissionLevel


async def load_org_context(db: AsyncSession, user: User) -> OrgContext:
    """
    Read whether the user's branch and department are active.
    
    A missing branch or department counts as inactive.
    """
    branch_active = False
    department_active = False
    
    if user.branch_id:
        result = await db.execute(
            select(Branch.id).where(and_(Branch.id == user.branch_id, Branch.is_active == True))  # noqa: E712
        )
        branch_active = result.first() is not None
    
    if user.department_id:
        result = await db.execute(
            select(Department.id).where(
                and_(Department.id == user.department_id, Department.is_active == True)  # noqa: E712
            )
        )
        department_active = result.first() is not None
    
    return OrgContext(branch_active=branch_active, department_active=department_active)


async def resolve_folder_level(db: AsyncSession, user: User, folder: Folder) -> PermissionLevel | None:
    """Effective level of a user on a folder, read from one session."""
    grants = await get_folder_grants(db, folder.id)
    org_context = await load_org_context(db, user)
    return resolve_effective_level(user, folder, grants, org_context)


def require_folder_level(required: PermissionLevel):
    """
    FastAPI dependency to require at least ``required`` on the folder in the path.
    
    Usage:
        @router.post("/{folder_id}/permissions")
        async def grant(access: FolderAccess = Depends(require_folder_level(PermissionLevel.MANAGE))):
            ...
    
    Raises:
        NotFoundError: folder does not exist or is in the trash
        PermissionDeniedError: no access, or a lower level than required
    """
    async def folder_dependency(
        folder_id: str,
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[AsyncSession, Depends(get_db)]
    ) -> FolderAccess:
        folder = await get_live_folder(db, folder_id)
        level = await resolve_folder_level(db, current_user, folder)
        
        if not level_satisfies(level, required):
            log.debug(
                "User %s denied %s on folder %s (has %s)",
                current_user.id, required.value, folder_id, level.value if level else None
            )
            if level is None:
                raise PermissionDeniedError("You do not have access to this folder")
            raise PermissionDeniedError(f"This action requires {required.value} permission on the folder")
        
        return FolderAccess(folder=folder, user=current_user, level=level)
    
    return folder_dependency


def folder_response(folder: Folder, level: PermissionLevel) -> FolderResponse:
    return FolderResponse(
        id=folder.id,
        name=folder.name,
        owner_user_id=folder.owner_user_id,
        parent_id=folder.parent_id,
        created_at=folder.created_at,
        updated_at=folder.updated_at,
        effective_level=level,
        can_edit=level_satisfies(level, PermissionLevel.EDIT),
        can_manage=level_satisfies(level, PermissionLevel.MANAGE),
    )
