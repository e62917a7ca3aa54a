"""
Directory lookups shared by the grant store and the directory routes.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InactiveTargetError, NotFoundError
from app.features.directory.models import Branch, Department


async def get_branch_by_id(db: AsyncSession, branch_id: str) -> Branch:
    """Get branch by ID or raise NotFoundError."""
    result = await db.execute(select(Branch).where(Branch.id == branch_id))
    branch = result.scalar_one_or_none()
    
    if branch is None:
        raise NotFoundError("Branch not found")
    
    return branch


async def get_department_by_id(db: AsyncSession, department_id: str) -> Department:
    """Get department by ID or raise NotFoundError."""
    result = await db.execute(select(Department).where(Department.id == department_id))
    department = result.scalar_one_or_none()
    
    if department is None:
        raise NotFoundError("Department not found")
    
    return department


async def get_active_branch(db: AsyncSession, branch_id: str) -> Branch:
    branch = await get_branch_by_id(db, branch_id)
    if not branch.is_active:
        raise InactiveTargetError("Branch is not active")
    return branch


async def get_active_department(db: AsyncSession, department_id: str) -> Department:
    department = await get_department_by_id(db, department_id)
    if not department.is_active:
        raise InactiveTargetError("Department is not active")
    return department
