"""
Capability checking dependencies and audit logging helpers.

Implements:
- Injection of the capability matrix into routes
- FastAPI dependencies guarding admin actions by capability or role
- Audit logging helpers
"""
from typing import Annotated, Dict, Any, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import PermissionDeniedError
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.capabilities import CapabilityMatrix, load_capability_matrix
from app.features.permissions.models import AuditLog, Capability, Role
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Capability Matrix
# ============================================================================

async def get_capability_matrix(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> CapabilityMatrix:
    """
    Load the capability matrix for this request.
    
    Override this dependency in tests to inject an isolated matrix.
    """
    return await load_capability_matrix(db)


def require_capability(*capabilities: Capability):
    """
    FastAPI dependency to require ANY of the given capabilities.
    
    Usage:
        @router.post("/branches")
        async def create_branch(
            user: User = Depends(require_capability(Capability.MANAGE_BRANCHES))
        ):
            pass
    
    Raises:
        PermissionDeniedError: if the user's role holds none of them
    """
    async def capability_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        matrix: Annotated[CapabilityMatrix, Depends(get_capability_matrix)]
    ) -> User:
        held = matrix.get(current_user.role)
        if not any(capability in held for capability in capabilities):
            log.debug(
                "User %s (%s) denied: requires one of %s",
                current_user.id, current_user.role.value, [c.value for c in capabilities]
            )
            raise PermissionDeniedError(
                f"Permission denied: requires {' or '.join(c.value for c in capabilities)}"
            )
        return current_user
    
    return capability_dependency


async def require_top_role(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Only the top role may edit the capability matrix."""
    if current_user.role != Role.TOP:
        raise PermissionDeniedError("Top administrator privileges required")
    return current_user


# ============================================================================
# Audit Logging
# ============================================================================

def client_info(request: Request) -> Dict[str, Optional[str]]:
    """IP address and user agent of the caller, for audit entries."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Create an audit log entry.
    
    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "grant", "revoke", "set_capability")
        resource_type: Type of resource (e.g., "folder", "capability", "user")
        resource_id: ID of the resource
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent
    
    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )
    
    db.add(audit_log)
    await db.flush()
    
    log.info(
        "Audit: user=%s action=%s resource=%s:%s", user_id, action, resource_type, resource_id
    )
    
    return audit_log
