"""
Capability matrix and audit log API routes.

Folder grant routes live with the folders feature.
"""
import math
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.capabilities import (
    CapabilityMatrix,
    persist_capability,
    save_capability_matrix,
)
from app.features.permissions.models import AuditLog, Capability, Role
from app.features.permissions.resolver import assignable_roles
from app.features.permissions.schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    CapabilityMatrixResponse,
    CapabilityToggle,
    RoleCapabilitiesResponse,
)
from app.features.permissions.dependencies import (
    client_info,
    create_audit_log,
    get_capability_matrix,
    require_capability,
    require_top_role,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Capability Matrix Routes
# ============================================================================

@router.get("/capabilities", response_model=CapabilityMatrixResponse)
async def get_capability_matrix_route(
    current_user: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)]
):
    """Get the full role x capability grid."""
    return CapabilityMatrixResponse(matrix=matrix.as_dict())


@router.get("/capabilities/me", response_model=RoleCapabilitiesResponse)
async def get_my_capabilities(
    current_user: Annotated[User, Depends(get_current_user)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)]
):
    """Capabilities of the current user's role and the roles they may assign."""
    return RoleCapabilitiesResponse(
        role=current_user.role,
        capabilities=sorted(matrix.get(current_user.role), key=lambda c: c.value),
        assignable_roles=assignable_roles(current_user),
    )


@router.put("/capabilities/{role}/{capability}", response_model=CapabilityMatrixResponse)
async def set_capability(
    role: Role,
    capability: Capability,
    toggle: CapabilityToggle,
    request: Request,
    current_user: Annotated[User, Depends(require_top_role)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Enable or disable one capability for one role (top role only).
    
    Changing the top role itself is silently ignored.
    """
    if matrix.set(role, capability, toggle.enabled):
        await persist_capability(db, role, capability, toggle.enabled)
        await create_audit_log(
            db,
            user_id=current_user.id,
            action="set_capability",
            resource_type="capability",
            details={"role": role.value, "capability": capability.value, "enabled": toggle.enabled},
            **client_info(request)
        )
        await db.commit()
        log.info("Capability %s for %s set to %s", capability.value, role.value, toggle.enabled)
    
    return CapabilityMatrixResponse(matrix=matrix.as_dict())


@router.post("/capabilities/reset", response_model=CapabilityMatrixResponse)
async def reset_capabilities(
    request: Request,
    current_user: Annotated[User, Depends(require_top_role)],
    matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Restore the built-in default matrix (top role only)."""
    matrix.reset_to_defaults()
    await save_capability_matrix(db, matrix)
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="reset_capabilities",
        resource_type="capability",
        **client_info(request)
    )
    await db.commit()
    
    return CapabilityMatrixResponse(matrix=matrix.as_dict())


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    current_user: Annotated[User, Depends(require_capability(Capability.VIEW_AUDIT_LOGS))],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    user_id: Optional[str] = None,
):
    """List audit logs, newest first, with optional filtering."""
    stmt = select(AuditLog)
    count_stmt = select(func.count()).select_from(AuditLog)
    
    if action:
        stmt = stmt.where(AuditLog.action == action)
        count_stmt = count_stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)
        count_stmt = count_stmt.where(AuditLog.resource_type == resource_type)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
        count_stmt = count_stmt.where(AuditLog.user_id == user_id)
    
    total = (await db.execute(count_stmt)).scalar_one()
    
    stmt = (
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total else 0,
    )
