"""
Pydantic schemas for folders.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.features.permissions.models import PermissionLevel


class FolderCreate(BaseModel):
    """Schema for creating a folder."""
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[str] = Field(None, description="Parent folder (null for a root folder)")


class FolderUpdate(BaseModel):
    """Schema for renaming a folder."""
    name: str = Field(..., min_length=1, max_length=255)


class FolderResponse(BaseModel):
    """A folder together with the caller's effective access."""
    id: str
    name: str
    owner_user_id: Optional[str]
    parent_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    
    effective_level: PermissionLevel
    can_edit: bool = False
    can_manage: bool = False
    
    model_config = ConfigDict(from_attributes=True)
