"""
User model with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin
from app.features.permissions.models import Role


class User(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    User model representing authenticated users.
    
    A user has one role and belongs to at most one branch and one department.
    """
    __tablename__ = "users"
    
    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    
    role: Mapped[Role] = mapped_column(SQLEnum(Role), default=Role.USER, nullable=False, index=True)
    
    # Organization membership
    branch_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    department_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    
    # Relationships
    branch: Mapped["Branch"] = relationship(  # type: ignore
        "Branch",
        foreign_keys=[branch_id],
        lazy="selectin"
    )
    
    department: Mapped["Department"] = relationship(  # type: ignore
        "Department",
        foreign_keys=[department_id],
        lazy="selectin"
    )
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role})>"
