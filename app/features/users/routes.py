"""
User feature routes.

Visibility follows the caller's user-management scope; role changes go
through the role guard; top-role users are never deletable.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import ConflictError, EscalationError, PermissionDeniedError
from app.features.directory.dependencies import get_active_branch, get_active_department
from app.features.permissions.capabilities import CapabilityMatrix
from app.features.permissions.dependencies import client_info, create_audit_log, get_capability_matrix
from app.features.permissions.grants import delete_grants_for_target
from app.features.permissions.models import Role, TargetKind
from app.features.permissions.resolver import (
    can_assign_role,
    can_delete_user,
    can_manage_users,
    manageable_user_scope,
)
from app.features.users.models import User
from app.features.users.schemas import (
    CurrentUserResponse,
    ManagedUserResponse,
    UserCreate,
    UserProfileUpdate,
    UserResponse,
    UserUpdate,
)
from app.features.users.dependencies import get_current_user, get_user_by_id
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])


async def validate_membership(db: AsyncSession, branch_id: str | None, department_id: str | None):
    """Branch and department a user is placed in must exist and be active."""
    if branch_id:
        await get_active_branch(db, branch_id)
    if department_id:
        department = await get_active_department(db, department_id)
        if branch_id and department.branch_id and department.branch_id != branch_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Department does not belong to the selected branch"
            )


def ensure_manageable(actor: User, target: User, matrix: CapabilityMatrix):
    """Actor needs a manage-users capability and the target must be in their scope."""
    if not can_manage_users(actor, matrix) or not manageable_user_scope(actor, matrix)(target):
        raise PermissionDeniedError("You cannot manage this user")


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)]
):
    """Get current authenticated user's profile and capabilities."""
    response = CurrentUserResponse.model_validate(user)
    response.capabilities = sorted(matrix.get(user.role), key=lambda c: c.value)
    return response


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserProfileUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's display name."""
    user.name = update_data.name
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/", response_model=list[ManagedUserResponse])
async def list_users(
    actor: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)],
    include_inactive: bool = True
):
    """List the users within the caller's management scope."""
    stmt = select(User)
    if not include_inactive:
        stmt = stmt.where(User.is_active == True)  # noqa: E712
    result = await db.execute(stmt.order_by(User.created_at.desc(), User.id))
    
    in_scope = manageable_user_scope(actor, matrix)
    users = []
    for user in result.scalars().all():
        if not in_scope(user):
            continue
        entry = ManagedUserResponse.model_validate(user)
        entry.can_delete = can_delete_user(actor, user, matrix)
        users.append(entry)
    return users


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    actor: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a user inside the caller's scope with a role no higher than the caller's."""
    if not can_assign_role(actor, user_data.role):
        raise EscalationError(f"You cannot assign the {user_data.role.value} role")
    
    await validate_membership(db, user_data.branch_id, user_data.department_id)
    
    user = User(
        email=user_data.email.lower(),
        name=user_data.name,
        role=user_data.role,
        branch_id=user_data.branch_id,
        department_id=user_data.department_id,
        is_active=True,
    )
    ensure_manageable(actor, user, matrix)
    
    existing = await db.execute(select(User.id).where(User.email == user.email))
    if existing.first():
        raise ConflictError("A user with this email already exists")
    
    db.add(user)
    await db.flush()
    await create_audit_log(
        db,
        user_id=actor.id,
        action="create",
        resource_type="user",
        resource_id=user.id,
        details={"role": user.role.value, "branch_id": user.branch_id, "department_id": user.department_id},
        **client_info(request)
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    actor: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a user within the caller's scope."""
    user = await get_user_by_id(db, user_id)
    if not manageable_user_scope(actor, matrix)(user):
        raise PermissionDeniedError("You cannot view this user")
    return user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    request: Request,
    actor: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Update a user's name, role, membership or active flag.
    
    The user must be in scope before and after the change. Users ranked above
    the actor cannot be edited at all, the new role must pass the role guard,
    and top administrators are never deactivated.
    """
    user = await get_user_by_id(db, user_id)
    ensure_manageable(actor, user, matrix)
    if not can_assign_role(actor, user.role):
        raise EscalationError(f"You cannot modify a user with the {user.role.value} role")
    
    changes = update_data.model_dump(exclude_unset=True)
    
    if "role" in changes and changes["role"] != user.role:
        if user.id == actor.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot modify your own role"
            )
        if changes["role"] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role cannot be empty")
        if not can_assign_role(actor, changes["role"]):
            raise EscalationError(f"You cannot assign the {changes['role'].value} role")
    
    if "is_active" in changes and changes["is_active"] is False and user.id == actor.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account"
        )
    if changes.get("is_active") is False and user.role == Role.TOP:
        raise PermissionDeniedError("Top administrators cannot be deactivated")
    
    if "branch_id" in changes or "department_id" in changes:
        await validate_membership(
            db,
            changes.get("branch_id", user.branch_id),
            changes.get("department_id", user.department_id),
        )
    
    for key, value in changes.items():
        if key in ("name", "is_active") and value is None:
            continue
        setattr(user, key, value)
    
    ensure_manageable(actor, user, matrix)
    
    await create_audit_log(
        db,
        user_id=actor.id,
        action="update",
        resource_type="user",
        resource_id=user.id,
        details={"updated_fields": sorted(changes)},
        **client_info(request)
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    actor: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Delete a user and every folder grant addressed to them.
    
    Top-role users cannot be deleted by anyone.
    """
    user = await get_user_by_id(db, user_id)
    
    if not can_delete_user(actor, user, matrix):
        raise PermissionDeniedError("You cannot delete this user")
    
    removed = await delete_grants_for_target(db, TargetKind.USER, user.id)
    await db.delete(user)
    await create_audit_log(
        db,
        user_id=actor.id,
        action="delete",
        resource_type="user",
        resource_id=user_id,
        details={"email": user.email, "grants_removed": removed},
        **client_info(request)
    )
    await db.commit()
    
    log.info("User %s deleted by %s (%d grants removed)", user_id, actor.id, removed)
    return {"message": "User deleted successfully"}
