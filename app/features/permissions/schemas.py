"""
Pydantic schemas for permission management.

Request and response models for folder grants, the capability matrix and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.permissions.models import Capability, PermissionLevel, Role, TargetKind


# ============================================================================
# Folder Grant Schemas
# ============================================================================

class GrantCreate(BaseModel):
    """Schema for granting a permission level on a folder."""
    target_kind: TargetKind = Field(..., description="user, branch or department")
    target_id: str = Field(..., min_length=1, max_length=26, description="ID of the user, branch or department")
    level: PermissionLevel = Field(..., description="view, edit or manage")


class GrantUpdate(BaseModel):
    """Schema for changing the level of an existing grant."""
    level: PermissionLevel


class GrantResponse(BaseModel):
    """A grant with its target's display name resolved at read time."""
    id: str
    folder_id: str
    target_kind: TargetKind
    target_id: str
    target_name: str
    level: PermissionLevel
    created_at: datetime


class UserGrantEntry(GrantResponse):
    target_email: Optional[str] = None


class BranchGrantEntry(GrantResponse):
    target_code: Optional[str] = None


class DepartmentGrantEntry(GrantResponse):
    target_code: Optional[str] = None
    branch_name: Optional[str] = None


class FolderGrantList(BaseModel):
    """All grants on a folder, partitioned by target kind."""
    folder_id: str
    users: List[UserGrantEntry] = []
    branches: List[BranchGrantEntry] = []
    departments: List[DepartmentGrantEntry] = []


# ============================================================================
# Capability Matrix Schemas
# ============================================================================

class CapabilityToggle(BaseModel):
    """Schema for enabling or disabling one capability for one role."""
    enabled: bool


class CapabilityMatrixResponse(BaseModel):
    """Full role x capability grid."""
    matrix: Dict[Role, Dict[Capability, bool]]


class RoleCapabilitiesResponse(BaseModel):
    """Capabilities currently held by one role."""
    role: Role
    capabilities: List[Capability]
    assignable_roles: List[Role] = []


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
