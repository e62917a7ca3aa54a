"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.features.permissions.models import Capability, Role


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for creating a new user."""
    role: Role = Role.USER
    branch_id: str | None = None
    department_id: str | None = None


class UserProfileUpdate(BaseModel):
    """Schema for a user editing their own profile."""
    name: str = Field(..., min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    role: Role | None = None
    branch_id: str | None = None
    department_id: str | None = None
    is_active: bool | None = None


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    role: Role
    branch_id: str | None = None
    department_id: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}


class ManagedUserResponse(UserResponse):
    """A user as seen from the management list."""
    can_delete: bool = False


class CurrentUserResponse(UserResponse):
    """The signed-in user with their role's capabilities."""
    capabilities: list[Capability] = []
