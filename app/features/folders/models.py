"""
Folder model.

Only the fields the authorization engine needs: ownership, nesting and the
soft-delete flag. File content lives elsewhere.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


class Folder(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    A folder owned by one user.
    
    parent_id is for navigation only; grants are never inherited from a parent.
    """
    __tablename__ = "folders"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    owner_user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("folders.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    
    # Trash
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    
    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name={self.name!r}, owner={self.owner_user_id}, deleted={self.is_deleted})>"
