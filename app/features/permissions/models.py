"""
Role, capability and folder grant models.

This module holds:
- The closed enumerations shared by the whole engine (roles, capabilities,
  permission levels, grant target kinds)
- Folder permission grants addressed to a user, a branch or a department
- The persisted capability matrix (one row per non-top role/capability pair)
- The audit log written by routes after successful mutations
"""
import enum
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, Boolean, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


# ============================================================================
# Enumerations
# ============================================================================

class Role(str, enum.Enum):
    """User roles, totally ordered by privilege (see ROLE_LEVELS)."""
    TOP = "top"
    BRANCH_ADMIN = "branch_admin"
    DEPT_ADMIN = "dept_admin"
    USER = "user"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]


ROLE_LEVELS: dict[Role, int] = {
    Role.TOP: 4,
    Role.BRANCH_ADMIN: 3,
    Role.DEPT_ADMIN: 2,
    Role.USER: 1,
}


class Capability(str, enum.Enum):
    """Administrative capabilities toggled per role in the capability matrix."""
    MANAGE_ALL_USERS = "manage_all_users"
    MANAGE_BRANCH_USERS = "manage_branch_users"
    MANAGE_DEPT_USERS = "manage_dept_users"
    MANAGE_BRANCHES = "manage_branches"
    MANAGE_DEPARTMENTS = "manage_departments"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    SYSTEM_SETTINGS = "system_settings"


USER_MANAGEMENT_CAPABILITIES = frozenset({
    Capability.MANAGE_ALL_USERS,
    Capability.MANAGE_BRANCH_USERS,
    Capability.MANAGE_DEPT_USERS,
})


class PermissionLevel(str, enum.Enum):
    """Folder access level, ordered view < edit < manage (see PERMISSION_LEVEL_RANK)."""
    VIEW = "view"
    EDIT = "edit"
    MANAGE = "manage"

    @property
    def rank(self) -> int:
        return PERMISSION_LEVEL_RANK[self]


PERMISSION_LEVEL_RANK: dict[PermissionLevel, int] = {
    PermissionLevel.VIEW: 1,
    PermissionLevel.EDIT: 2,
    PermissionLevel.MANAGE: 3,
}


class TargetKind(str, enum.Enum):
    """What a folder grant is addressed to."""
    USER = "user"
    BRANCH = "branch"
    DEPARTMENT = "department"


# ============================================================================
# Core Models
# ============================================================================

class FolderPermissionGrant(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    One permission level granted on one folder to one target.
    
    The target is polymorphic: target_id points at users.id, branches.id or
    departments.id depending on target_kind, so no foreign key binds it.
    Display names are resolved at read time.
    """
    __tablename__ = "folder_permission_grants"
    __table_args__ = (
        UniqueConstraint("folder_id", "target_kind", "target_id", name="uq_folder_grant_target"),
    )
    
    folder_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("folders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    target_kind: Mapped[TargetKind] = mapped_column(SQLEnum(TargetKind), nullable=False)
    target_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    level: Mapped[PermissionLevel] = mapped_column(SQLEnum(PermissionLevel), nullable=False)
    
    granted_by_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    
    def __repr__(self) -> str:
        return (
            f"<FolderPermissionGrant(folder_id={self.folder_id}, target={self.target_kind}:{self.target_id}, "
            f"level={self.level})>"
        )


class RoleCapability(Base, TimestampMixin):
    """
    Persisted cell of the capability matrix.
    
    The top role is never stored; it always holds every capability.
    """
    __tablename__ = "role_capabilities"
    
    role: Mapped[Role] = mapped_column(SQLEnum(Role), primary_key=True)
    capability: Mapped[Capability] = mapped_column(SQLEnum(Capability), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    def __repr__(self) -> str:
        return f"<RoleCapability(role={self.role}, capability={self.capability}, enabled={self.enabled})>"


class AuditLog(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    Audit log for grant, capability and user-management actions.
    
    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"
    
    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    
    # Context
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
