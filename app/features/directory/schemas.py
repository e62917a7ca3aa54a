"""
Pydantic schemas for branches and departments.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _normalize_code(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip().upper()
    return v or None


# ============================================================================
# Branch Schemas
# ============================================================================

class BranchBase(BaseModel):
    """Base branch schema."""
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    display_order: int = 0
    
    @field_validator('code')
    @classmethod
    def code_uppercase(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_code(v)


class BranchCreate(BranchBase):
    """Schema for creating a branch."""
    pass


class BranchUpdate(BaseModel):
    """Schema for updating a branch."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
    
    @field_validator('code')
    @classmethod
    def code_uppercase(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_code(v)


class BranchResponse(BranchBase):
    """Schema for branch response."""
    id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Department Schemas
# ============================================================================

class DepartmentBase(BaseModel):
    """Base department schema."""
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    branch_id: Optional[str] = None
    parent_id: Optional[str] = None
    display_order: int = 0
    
    @field_validator('code')
    @classmethod
    def code_uppercase(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_code(v)


class DepartmentCreate(DepartmentBase):
    """Schema for creating a department."""
    pass


class DepartmentUpdate(BaseModel):
    """Schema for updating a department."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    branch_id: Optional[str] = None
    parent_id: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
    
    @field_validator('code')
    @classmethod
    def code_uppercase(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_code(v)


class DepartmentResponse(DepartmentBase):
    """Schema for department response."""
    id: str
    is_active: bool
    branch_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)
