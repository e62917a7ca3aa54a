# tests/test_grants.py

"""
Tests for the folder grant store.
"""

import pytest
from sqlalchemy import func, select

from app.core.errors import ConflictError, InactiveTargetError, NotFoundError
from app.features.permissions import grants
from app.features.permissions.grants import (
    delete_grants_for_target,
    get_folder_grants,
    grant_folder_permission,
    list_folder_grants,
    revoke_folder_permission,
    update_folder_permission,
)
from app.features.permissions.models import FolderPermissionGrant, PermissionLevel, TargetKind
from tests.factories import create_branch, create_department, create_folder, create_user


async def count_grants(db, folder_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(FolderPermissionGrant).where(FolderPermissionGrant.folder_id == folder_id)
    )
    return result.scalar_one()


async def test_grant_to_branch(db):
    owner = await create_user(db)
    branch = await create_branch(db, name="North")
    folder = await create_folder(db, owner)

    grant = await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.EDIT)

    assert grant.target_name == "North"
    assert grant.level == PermissionLevel.EDIT
    assert grant.folder_id == folder.id
    assert grant.created_at is not None


async def test_second_grant_for_same_target_conflicts(db):
    owner = await create_user(db)
    member = await create_user(db)
    folder = await create_folder(db, owner)

    await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.VIEW)
    with pytest.raises(ConflictError):
        await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.MANAGE)

    grants = await get_folder_grants(db, folder.id)
    assert len(grants) == 1
    assert grants[0].level == PermissionLevel.VIEW


async def test_same_id_different_kind_is_a_separate_grant(db):
    owner = await create_user(db)
    branch = await create_branch(db)
    department = await create_department(db, branch=branch)
    folder = await create_folder(db, owner)

    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.VIEW)
    await grant_folder_permission(db, folder.id, TargetKind.DEPARTMENT, department.id, PermissionLevel.VIEW)

    assert await count_grants(db, folder.id) == 2


async def test_grant_to_inactive_branch_rejected(db):
    owner = await create_user(db)
    branch = await create_branch(db, is_active=False)
    folder = await create_folder(db, owner)

    with pytest.raises(InactiveTargetError):
        await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.VIEW)
    assert await count_grants(db, folder.id) == 0


async def test_grant_to_inactive_department_rejected(db):
    owner = await create_user(db)
    department = await create_department(db, is_active=False)
    folder = await create_folder(db, owner)

    with pytest.raises(InactiveTargetError):
        await grant_folder_permission(db, folder.id, TargetKind.DEPARTMENT, department.id, PermissionLevel.VIEW)


async def test_grant_to_unknown_target_rejected(db):
    owner = await create_user(db)
    folder = await create_folder(db, owner)

    with pytest.raises(NotFoundError):
        await grant_folder_permission(db, folder.id, TargetKind.BRANCH, "01NOSUCHBRANCH0000000000000", PermissionLevel.VIEW)
    with pytest.raises(NotFoundError):
        await grant_folder_permission(db, folder.id, TargetKind.USER, "01NOSUCHUSER000000000000000", PermissionLevel.VIEW)


async def test_grant_to_inactive_user_rejected(db):
    owner = await create_user(db)
    former = await create_user(db, is_active=False)
    folder = await create_folder(db, owner)

    with pytest.raises(NotFoundError):
        await grant_folder_permission(db, folder.id, TargetKind.USER, former.id, PermissionLevel.VIEW)


async def test_grant_on_deleted_folder_rejected(db):
    owner = await create_user(db)
    member = await create_user(db)
    folder = await create_folder(db, owner)
    folder.is_deleted = True
    await db.commit()

    with pytest.raises(NotFoundError):
        await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.VIEW)


async def test_update_changes_level(db):
    owner = await create_user(db)
    member = await create_user(db)
    folder = await create_folder(db, owner)
    await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.VIEW)

    grant = await update_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.MANAGE)

    assert grant.level == PermissionLevel.MANAGE
    assert await count_grants(db, folder.id) == 1


async def test_update_missing_grant_is_not_found(db):
    owner = await create_user(db)
    member = await create_user(db)
    folder = await create_folder(db, owner)

    with pytest.raises(NotFoundError):
        await update_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.EDIT)


async def test_revoke_removes_grant(db):
    owner = await create_user(db)
    branch = await create_branch(db)
    folder = await create_folder(db, owner)
    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.EDIT)

    await revoke_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id)

    assert await count_grants(db, folder.id) == 0


async def test_revoke_missing_grant_is_not_found(db):
    owner = await create_user(db)
    branch = await create_branch(db)
    folder = await create_folder(db, owner)

    with pytest.raises(NotFoundError):
        await revoke_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id)


async def test_revoke_after_target_deactivated(db):
    owner = await create_user(db)
    branch = await create_branch(db)
    folder = await create_folder(db, owner)
    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.VIEW)

    branch.is_active = False
    await db.commit()

    await revoke_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id)
    assert await count_grants(db, folder.id) == 0


async def test_delete_grants_for_target(db):
    owner = await create_user(db)
    member = await create_user(db)
    first = await create_folder(db, owner)
    second = await create_folder(db, owner)
    await grant_folder_permission(db, first.id, TargetKind.USER, member.id, PermissionLevel.VIEW)
    await grant_folder_permission(db, second.id, TargetKind.USER, member.id, PermissionLevel.EDIT)

    removed = await delete_grants_for_target(db, TargetKind.USER, member.id)

    assert removed == 2
    assert await count_grants(db, first.id) == 0
    assert await count_grants(db, second.id) == 0


async def test_list_partitions_and_orders_grants(db):
    owner = await create_user(db)
    zoe = await create_user(db, name="Zoe")
    adam = await create_user(db, name="Adam")
    east = await create_branch(db, name="East", display_order=2, code="EST")
    west = await create_branch(db, name="West", display_order=1, code="WST")
    sales = await create_department(db, name="Sales", branch=east, code="SAL")
    folder = await create_folder(db, owner)

    await grant_folder_permission(db, folder.id, TargetKind.USER, zoe.id, PermissionLevel.VIEW)
    await grant_folder_permission(db, folder.id, TargetKind.USER, adam.id, PermissionLevel.EDIT)
    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, east.id, PermissionLevel.VIEW)
    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, west.id, PermissionLevel.MANAGE)
    await grant_folder_permission(db, folder.id, TargetKind.DEPARTMENT, sales.id, PermissionLevel.EDIT)

    listing = await list_folder_grants(db, folder.id)

    assert [entry.target_name for entry in listing.users] == ["Adam", "Zoe"]
    assert listing.users[0].target_email == adam.email
    assert [entry.target_name for entry in listing.branches] == ["West", "East"]
    assert listing.branches[0].target_code == "WST"
    assert len(listing.departments) == 1
    assert listing.departments[0].target_name == "Sales"
    assert listing.departments[0].branch_name == "East"


async def test_list_uses_current_target_names(db):
    owner = await create_user(db)
    branch = await create_branch(db, name="Old Name")
    folder = await create_folder(db, owner)
    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.VIEW)

    branch.name = "New Name"
    await db.commit()

    listing = await list_folder_grants(db, folder.id)
    assert [entry.target_name for entry in listing.branches] == ["New Name"]


async def test_unique_constraint_rejects_duplicate_past_the_lookup(db, monkeypatch):
    owner = await create_user(db)
    member = await create_user(db)
    folder = await create_folder(db, owner)
    await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.VIEW)

    async def no_existing_grant(*_args, **_kwargs):
        return None

    # Simulate a concurrent writer that checked before the first insert landed
    monkeypatch.setattr(grants, "find_grant", no_existing_grant)

    with pytest.raises(ConflictError):
        await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.MANAGE)

    assert await count_grants(db, folder.id) == 1


async def test_failed_duplicate_insert_keeps_earlier_work(db, monkeypatch):
    owner = await create_user(db)
    member = await create_user(db)
    branch = await create_branch(db)
    folder = await create_folder(db, owner)
    await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.VIEW)

    async def no_existing_grant(*_args, **_kwargs):
        return None

    monkeypatch.setattr(grants, "find_grant", no_existing_grant)
    await grant_folder_permission(db, folder.id, TargetKind.BRANCH, branch.id, PermissionLevel.EDIT)

    with pytest.raises(ConflictError):
        await grant_folder_permission(db, folder.id, TargetKind.USER, member.id, PermissionLevel.MANAGE)

    kinds = sorted(grant.target_kind.value for grant in await get_folder_grants(db, folder.id))
    assert kinds == ["branch", "user"]
