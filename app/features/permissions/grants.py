"""
Grant store: create, change, revoke and list folder permission grants.

At most one grant exists per (folder, target kind, target id). The check
below gives a readable error; the unique constraint on the table is what
keeps two concurrent grants from both landing.
"""
from sqlalchemy import select, delete, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.features.directory.dependencies import get_active_branch, get_active_department
from app.features.directory.models import Branch, Department
from app.features.folders.models import Folder
from app.features.permissions.models import FolderPermissionGrant, PermissionLevel, TargetKind
from app.features.permissions.schemas import (
    GrantResponse,
    UserGrantEntry,
    BranchGrantEntry,
    DepartmentGrantEntry,
    FolderGrantList,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def get_live_folder(db: AsyncSession, folder_id: str) -> Folder:
    """
    Get a folder that is not in the trash, or raise NotFoundError.
    """
    result = await db.execute(
        select(Folder).where(and_(Folder.id == folder_id, Folder.is_deleted == False))  # noqa: E712
    )
    folder = result.scalar_one_or_none()
    
    if folder is None:
        raise NotFoundError("Folder not found")
    
    return folder


async def resolve_target_name(db: AsyncSession, target_kind: TargetKind, target_id: str) -> str:
    """
    Validate a grant target and return its display name.
    
    Users must exist and be active; branches and departments must exist
    (NotFoundError) and be active (InactiveTargetError).
    """
    if target_kind == TargetKind.USER:
        result = await db.execute(
            select(User).where(and_(User.id == target_id, User.is_active == True))  # noqa: E712
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user.name
    
    if target_kind == TargetKind.BRANCH:
        return (await get_active_branch(db, target_id)).name
    
    return (await get_active_department(db, target_id)).name


async def find_grant(
    db: AsyncSession,
    folder_id: str,
    target_kind: TargetKind,
    target_id: str
) -> FolderPermissionGrant | None:
    result = await db.execute(
        select(FolderPermissionGrant).where(
            and_(
                FolderPermissionGrant.folder_id == folder_id,
                FolderPermissionGrant.target_kind == target_kind,
                FolderPermissionGrant.target_id == target_id
            )
        )
    )
    return result.scalar_one_or_none()


async def get_folder_grants(db: AsyncSession, folder_id: str) -> list[FolderPermissionGrant]:
    """Every grant on one folder, as the resolver consumes them."""
    result = await db.execute(
        select(FolderPermissionGrant).where(FolderPermissionGrant.folder_id == folder_id)
    )
    return list(result.scalars().all())


async def get_grants_for_folders(
    db: AsyncSession,
    folder_ids: list[str]
) -> dict[str, list[FolderPermissionGrant]]:
    """Grants for many folders in one query, keyed by folder id."""
    grants: dict[str, list[FolderPermissionGrant]] = {folder_id: [] for folder_id in folder_ids}
    if not folder_ids:
        return grants
    
    result = await db.execute(
        select(FolderPermissionGrant).where(FolderPermissionGrant.folder_id.in_(folder_ids))
    )
    for grant in result.scalars().all():
        grants[grant.folder_id].append(grant)
    return grants


def _grant_response(grant: FolderPermissionGrant, target_name: str) -> GrantResponse:
    return GrantResponse(
        id=grant.id,
        folder_id=grant.folder_id,
        target_kind=grant.target_kind,
        target_id=grant.target_id,
        target_name=target_name,
        level=grant.level,
        created_at=grant.created_at,
    )


async def grant_folder_permission(
    db: AsyncSession,
    folder_id: str,
    target_kind: TargetKind,
    target_id: str,
    level: PermissionLevel,
    granted_by_id: str | None = None
) -> GrantResponse:
    """
    Grant a permission level on a folder to a user, branch or department.
    
    Raises:
        NotFoundError: folder or target does not exist
        InactiveTargetError: branch or department is deactivated
        ConflictError: a grant for this target already exists (revoke or update it instead)
    """
    await get_live_folder(db, folder_id)
    target_name = await resolve_target_name(db, target_kind, target_id)
    
    if await find_grant(db, folder_id, target_kind, target_id) is not None:
        raise ConflictError(f"Permission already granted to this {target_kind.value}")
    
    grant = FolderPermissionGrant(
        folder_id=folder_id,
        target_kind=target_kind,
        target_id=target_id,
        level=level,
        granted_by_id=granted_by_id,
    )
    try:
        async with db.begin_nested():
            db.add(grant)
    except IntegrityError:
        raise ConflictError(f"Permission already granted to this {target_kind.value}")
    await db.refresh(grant)
    
    log.info(
        "Granted %s on folder %s to %s:%s",
        level.value, folder_id, target_kind.value, target_id
    )
    return _grant_response(grant, target_name)


async def update_folder_permission(
    db: AsyncSession,
    folder_id: str,
    target_kind: TargetKind,
    target_id: str,
    level: PermissionLevel
) -> GrantResponse:
    """
    Change the level of an existing grant, re-validating its target.
    
    Raises:
        NotFoundError: folder, target or grant does not exist
        InactiveTargetError: branch or department is deactivated
    """
    await get_live_folder(db, folder_id)
    target_name = await resolve_target_name(db, target_kind, target_id)
    
    grant = await find_grant(db, folder_id, target_kind, target_id)
    if grant is None:
        raise NotFoundError("Permission not found")
    
    grant.level = level
    await db.flush()
    await db.refresh(grant)
    
    log.info(
        "Changed grant on folder %s for %s:%s to %s",
        folder_id, target_kind.value, target_id, level.value
    )
    return _grant_response(grant, target_name)


async def revoke_folder_permission(
    db: AsyncSession,
    folder_id: str,
    target_kind: TargetKind,
    target_id: str
) -> FolderPermissionGrant:
    """
    Remove a grant. Revoking a grant that does not exist is an error.
    
    Raises:
        NotFoundError: folder or grant does not exist
    """
    await get_live_folder(db, folder_id)
    
    grant = await find_grant(db, folder_id, target_kind, target_id)
    if grant is None:
        raise NotFoundError("Permission not found")
    
    await db.delete(grant)
    await db.flush()
    
    log.info("Revoked grant on folder %s for %s:%s", folder_id, target_kind.value, target_id)
    return grant


async def delete_grants_for_target(db: AsyncSession, target_kind: TargetKind, target_id: str) -> int:
    """Drop every grant addressed to a target; used when the target itself is deleted."""
    result = await db.execute(
        delete(FolderPermissionGrant).where(
            and_(
                FolderPermissionGrant.target_kind == target_kind,
                FolderPermissionGrant.target_id == target_id
            )
        )
    )
    return result.rowcount or 0


async def list_folder_grants(db: AsyncSession, folder_id: str) -> FolderGrantList:
    """
    List a folder's grants partitioned by target kind.
    
    Display names come from the directory at read time, so renaming a branch
    shows up here without touching grant rows.
    """
    await get_live_folder(db, folder_id)
    
    user_rows = await db.execute(
        select(FolderPermissionGrant, User)
        .join(User, User.id == FolderPermissionGrant.target_id)
        .where(
            and_(
                FolderPermissionGrant.folder_id == folder_id,
                FolderPermissionGrant.target_kind == TargetKind.USER
            )
        )
        .order_by(User.name)
    )
    
    branch_rows = await db.execute(
        select(FolderPermissionGrant, Branch)
        .join(Branch, Branch.id == FolderPermissionGrant.target_id)
        .where(
            and_(
                FolderPermissionGrant.folder_id == folder_id,
                FolderPermissionGrant.target_kind == TargetKind.BRANCH
            )
        )
        .order_by(Branch.display_order, Branch.name)
    )
    
    department_rows = await db.execute(
        select(FolderPermissionGrant, Department, Branch.name, Branch.display_order)
        .join(Department, Department.id == FolderPermissionGrant.target_id)
        .outerjoin(Branch, Branch.id == Department.branch_id)
        .where(
            and_(
                FolderPermissionGrant.folder_id == folder_id,
                FolderPermissionGrant.target_kind == TargetKind.DEPARTMENT
            )
        )
        .order_by(Branch.display_order, Department.display_order, Department.name)
    )
    
    return FolderGrantList(
        folder_id=folder_id,
        users=[
            UserGrantEntry(
                **_grant_response(grant, user.name).model_dump(),
                target_email=user.email,
            )
            for grant, user in user_rows.all()
        ],
        branches=[
            BranchGrantEntry(
                **_grant_response(grant, branch.name).model_dump(),
                target_code=branch.code,
            )
            for grant, branch in branch_rows.all()
        ],
        departments=[
            DepartmentGrantEntry(
                **_grant_response(grant, department.name).model_dump(),
                target_code=department.code,
                branch_name=branch_name,
            )
            for grant, department, branch_name, _order in department_rows.all()
        ],
    )
