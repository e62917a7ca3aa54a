"""
Effective-permission resolution, user-management scope and the role guard.

Everything here is a pure function over already-loaded data: callers fetch
the user, folder, grants and organization state, then ask for a decision.
None of these functions touch the database or raise for "no access"; the
caller turns a ``None`` level or a ``False`` answer into a denial.
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from app.features.permissions.capabilities import CapabilityMatrix
from app.features.permissions.models import (
    Capability,
    FolderPermissionGrant,
    PermissionLevel,
    Role,
    TargetKind,
    USER_MANAGEMENT_CAPABILITIES,
)

if TYPE_CHECKING:
    from app.features.folders.models import Folder
    from app.features.users.models import User


@dataclass(frozen=True)
class OrgContext:
    """Whether the acting user's branch and department are currently active."""
    branch_active: bool = False
    department_active: bool = False


# ============================================================================
# Folder access
# ============================================================================

def strongest_level(levels: Iterable[PermissionLevel]) -> PermissionLevel | None:
    """Most permissive level under view < edit < manage, or None for no levels."""
    return max(levels, key=lambda level: level.rank, default=None)


def matching_grant_levels(
    user: "User",
    grants: Iterable[FolderPermissionGrant],
    org_context: OrgContext
) -> list[PermissionLevel]:
    """
    Levels of the grants that apply to the user.
    
    A branch or department grant only applies while that branch or
    department is active, even if the grant row still exists.
    """
    targets = {(TargetKind.USER, user.id)}
    if user.branch_id and org_context.branch_active:
        targets.add((TargetKind.BRANCH, user.branch_id))
    if user.department_id and org_context.department_active:
        targets.add((TargetKind.DEPARTMENT, user.department_id))
    
    return [grant.level for grant in grants if (grant.target_kind, grant.target_id) in targets]


def resolve_effective_level(
    user: "User",
    folder: "Folder",
    grants: Iterable[FolderPermissionGrant],
    org_context: OrgContext
) -> PermissionLevel | None:
    """
    Compute the user's access level on a folder.
    
    Priority:
    1. top role -> manage
    2. folder owner -> manage
    3. most permissive of the matching user/branch/department grants
    4. None when nothing matches (no access, not an error)
    
    Grants are not inherited from parent folders; pass only this folder's grants.
    """
    if user.role == Role.TOP:
        return PermissionLevel.MANAGE
    if user.id == folder.owner_user_id:
        return PermissionLevel.MANAGE
    return strongest_level(matching_grant_levels(user, grants, org_context))


def level_satisfies(effective: PermissionLevel | None, required: PermissionLevel) -> bool:
    """True if the effective level is at least the required one."""
    return effective is not None and effective.rank >= required.rank


# ============================================================================
# User-management scope
# ============================================================================

def manageable_user_scope(actor: "User", matrix: CapabilityMatrix) -> Callable[["User"], bool]:
    """
    Predicate selecting the users the actor may see/manage.
    
    Checked in order against the actor's capabilities: all users, then the
    actor's branch, then the actor's department, then only the actor.
    Visibility alone implies no edit rights.
    """
    capabilities = matrix.get(actor.role)
    
    if Capability.MANAGE_ALL_USERS in capabilities:
        return lambda user: True
    if Capability.MANAGE_BRANCH_USERS in capabilities:
        branch_id = actor.branch_id
        return lambda user: branch_id is not None and user.branch_id == branch_id
    if Capability.MANAGE_DEPT_USERS in capabilities:
        department_id = actor.department_id
        return lambda user: department_id is not None and user.department_id == department_id
    
    actor_id = actor.id
    return lambda user: user.id == actor_id


def filter_manageable_users(
    actor: "User",
    users: Iterable["User"],
    matrix: CapabilityMatrix
) -> list["User"]:
    in_scope = manageable_user_scope(actor, matrix)
    return [user for user in users if in_scope(user)]


def can_manage_users(actor: "User", matrix: CapabilityMatrix) -> bool:
    """True if the actor holds any of the manage-users capabilities."""
    return bool(matrix.get(actor.role) & USER_MANAGEMENT_CAPABILITIES)


def can_delete_user(actor: "User", target: "User", matrix: CapabilityMatrix) -> bool:
    """
    Deletion rule layered on top of the scope.
    
    Top-role users are never deletable, whoever asks. Actors cannot delete
    themselves or anyone ranked above them.
    """
    if target.role == Role.TOP:
        return False
    if target.role.level > actor.role.level:
        return False
    if target.id == actor.id:
        return False
    if not can_manage_users(actor, matrix):
        return False
    return manageable_user_scope(actor, matrix)(target)


# ============================================================================
# Role guard
# ============================================================================

def can_assign_role(actor: "User", target_role: Role) -> bool:
    """An actor may only hand out roles at or below their own level."""
    return target_role.level <= actor.role.level


def assignable_roles(actor: "User") -> list[Role]:
    return [role for role in Role if can_assign_role(actor, role)]
