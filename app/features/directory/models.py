"""
Branch and department models.

Users belong to at most one branch and one department. Folder grants can be
addressed to either; a grant only counts while its target is active.
"""
from sqlalchemy import String, ForeignKey, Boolean, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


class Branch(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """A branch office."""
    __tablename__ = "branches"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, name={self.name!r}, active={self.is_active})>"


class Department(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    A department, optionally inside a branch and under a parent department.
    
    Codes are unique within a branch.
    """
    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("branch_id", "code", name="uq_department_branch_code"),
    )
    
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    branch_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True
    )
    
    branch: Mapped["Branch"] = relationship("Branch", lazy="selectin")
    
    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name={self.name!r}, branch_id={self.branch_id}, active={self.is_active})>"
