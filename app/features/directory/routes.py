"""
Branch and department routes.

Anyone signed in can list; changes require manage_branches / manage_departments.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import ConflictError
from app.features.directory.dependencies import (
    get_active_branch,
    get_active_department,
    get_branch_by_id,
    get_department_by_id,
)
from app.features.directory.models import Branch, Department
from app.features.directory.schemas import (
    BranchCreate,
    BranchUpdate,
    BranchResponse,
    DepartmentCreate,
    DepartmentUpdate,
    DepartmentResponse,
)
from app.features.permissions.dependencies import client_info, create_audit_log, require_capability
from app.features.permissions.models import Capability
from app.features.users.dependencies import get_current_user
from app.features.users.models import User


router = APIRouter(tags=["directory"])

# name, display_order and is_active are NOT NULL on both branches and departments
NON_NULLABLE_FIELDS = ("name", "display_order", "is_active")


async def department_response(db: AsyncSession, department: Department) -> DepartmentResponse:
    branch_name = None
    if department.branch_id:
        branch = await db.get(Branch, department.branch_id)
        branch_name = branch.name if branch else None
    response = DepartmentResponse.model_validate(department)
    response.branch_name = branch_name
    return response


async def ensure_unique_branch_code(db: AsyncSession, code: str | None, exclude_id: str | None = None):
    if not code:
        return
    stmt = select(Branch.id).where(Branch.code == code)
    if exclude_id:
        stmt = stmt.where(Branch.id != exclude_id)
    if (await db.execute(stmt)).first():
        raise ConflictError("Branch code is already in use")


async def ensure_unique_department_code(
    db: AsyncSession,
    code: str | None,
    branch_id: str | None,
    exclude_id: str | None = None
):
    """Department codes are unique within a branch (or among branchless departments)."""
    if not code:
        return
    branch_clause = Department.branch_id == branch_id if branch_id else Department.branch_id.is_(None)
    stmt = select(Department.id).where(and_(Department.code == code, branch_clause))
    if exclude_id:
        stmt = stmt.where(Department.id != exclude_id)
    if (await db.execute(stmt)).first():
        raise ConflictError("Department code is already in use in this branch")


async def ensure_no_parent_cycle(db: AsyncSession, department_id: str, parent_id: str):
    """Walk up from the new parent; reaching the department itself means a cycle."""
    seen = set()
    current = parent_id
    while current and current not in seen:
        if current == department_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A department cannot be placed under itself or one of its sub-departments"
            )
        seen.add(current)
        parent = await db.get(Department, current)
        current = parent.parent_id if parent else None


def without_null_fields(changes: dict) -> dict:
    """Drop explicit nulls for columns that cannot be empty."""
    return {
        key: value for key, value in changes.items()
        if value is not None or key not in NON_NULLABLE_FIELDS
    }


# ============================================================================
# Branch Routes
# ============================================================================

@router.get("/branches", response_model=list[BranchResponse])
async def list_branches(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    include_inactive: bool = False
):
    """List branches ordered for display."""
    stmt = select(Branch)
    if not include_inactive:
        stmt = stmt.where(Branch.is_active == True)  # noqa: E712
    result = await db.execute(stmt.order_by(Branch.display_order, Branch.created_at))
    return result.scalars().all()


@router.post("/branches", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
async def create_branch(
    branch_data: BranchCreate,
    request: Request,
    current_user: Annotated[User, Depends(require_capability(Capability.MANAGE_BRANCHES))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a branch."""
    await ensure_unique_branch_code(db, branch_data.code)
    
    branch = Branch(**branch_data.model_dump())
    db.add(branch)
    await db.flush()
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="branch",
        resource_id=branch.id,
        details=branch_data.model_dump(),
        **client_info(request)
    )
    await db.commit()
    await db.refresh(branch)
    return branch


@router.patch("/branches/{branch_id}", response_model=BranchResponse)
async def update_branch(
    branch_id: str,
    update_data: BranchUpdate,
    request: Request,
    current_user: Annotated[User, Depends(require_capability(Capability.MANAGE_BRANCHES))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Update or deactivate a branch.
    
    Deactivating a branch switches off every grant addressed to it without deleting them.
    """
    branch = await get_branch_by_id(db, branch_id)
    
    changes = without_null_fields(update_data.model_dump(exclude_unset=True))
    if "code" in changes:
        await ensure_unique_branch_code(db, changes["code"], exclude_id=branch.id)
    for key, value in changes.items():
        setattr(branch, key, value)
    
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update",
        resource_type="branch",
        resource_id=branch.id,
        details=changes,
        **client_info(request)
    )
    await db.commit()
    await db.refresh(branch)
    return branch


# ============================================================================
# Department Routes
# ============================================================================

@router.get("/departments", response_model=list[DepartmentResponse])
async def list_departments(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    branch_id: str | None = None,
    include_inactive: bool = False
):
    """List departments, optionally within one branch."""
    stmt = select(Department)
    if branch_id:
        stmt = stmt.where(Department.branch_id == branch_id)
    if not include_inactive:
        stmt = stmt.where(Department.is_active == True)  # noqa: E712
    result = await db.execute(stmt.order_by(Department.display_order, Department.name))
    return [await department_response(db, department) for department in result.scalars().all()]


@router.post("/departments", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    department_data: DepartmentCreate,
    request: Request,
    current_user: Annotated[User, Depends(require_capability(Capability.MANAGE_DEPARTMENTS))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a department. Its branch and parent must exist and be active."""
    if department_data.branch_id:
        await get_active_branch(db, department_data.branch_id)
    if department_data.parent_id:
        await get_active_department(db, department_data.parent_id)
    await ensure_unique_department_code(db, department_data.code, department_data.branch_id)
    
    department = Department(**department_data.model_dump())
    db.add(department)
    await db.flush()
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="department",
        resource_id=department.id,
        details=department_data.model_dump(),
        **client_info(request)
    )
    await db.commit()
    await db.refresh(department)
    return await department_response(db, department)


@router.patch("/departments/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: str,
    update_data: DepartmentUpdate,
    request: Request,
    current_user: Annotated[User, Depends(require_capability(Capability.MANAGE_DEPARTMENTS))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update or deactivate a department."""
    department = await get_department_by_id(db, department_id)
    changes = without_null_fields(update_data.model_dump(exclude_unset=True))
    
    if changes.get("branch_id"):
        await get_active_branch(db, changes["branch_id"])
    if changes.get("parent_id"):
        await ensure_no_parent_cycle(db, department.id, changes["parent_id"])
        await get_active_department(db, changes["parent_id"])
    if "code" in changes or "branch_id" in changes:
        await ensure_unique_department_code(
            db,
            changes.get("code", department.code),
            changes.get("branch_id", department.branch_id),
            exclude_id=department.id,
        )
    
    for key, value in changes.items():
        setattr(department, key, value)
    
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update",
        resource_type="department",
        resource_id=department.id,
        details=changes,
        **client_info(request)
    )
    await db.commit()
    await db.refresh(department)
    return await department_response(db, department)
