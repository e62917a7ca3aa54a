# tests/test_users_api.py

"""
Tests for user management routes: scope, role guard and deletion rules.
"""

from sqlalchemy import select

from app.features.permissions.models import FolderPermissionGrant, PermissionLevel, Role, TargetKind
from tests.conftest import auth_headers
from tests.factories import create_branch, create_department, create_folder, create_user


async def test_me_includes_capabilities(client, db):
    branch = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch)

    response = await client.get("/users/me", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == admin.id
    assert body["capabilities"] == ["manage_branch_users"]


async def test_branch_admin_lists_own_branch(client, db):
    north = await create_branch(db)
    south = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=north)
    colleague = await create_user(db, branch=north)
    await create_user(db, branch=south)

    response = await client.get("/users/", headers=auth_headers(admin))

    assert response.status_code == 200
    assert {user["id"] for user in response.json()} == {admin.id, colleague.id}


async def test_plain_user_lists_only_self(client, db):
    branch = await create_branch(db)
    user = await create_user(db, branch=branch)
    await create_user(db, branch=branch)

    response = await client.get("/users/", headers=auth_headers(user))

    assert [entry["id"] for entry in response.json()] == [user.id]
    assert response.json()[0]["can_delete"] is False


async def test_user_outside_scope_is_forbidden(client, db):
    north = await create_branch(db)
    south = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=north)
    stranger = await create_user(db, branch=south)

    response = await client.get(f"/users/{stranger.id}", headers=auth_headers(admin))

    assert response.status_code == 403


async def test_branch_admin_cannot_create_top_user(client, db):
    branch = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch)

    response = await client.post(
        "/users/",
        json={"email": "boss@example.com", "name": "Boss", "role": "top", "branch_id": branch.id},
        headers=auth_headers(admin),
    )

    assert response.status_code == 403
    assert response.json()["error"] == "EscalationError"


async def test_branch_admin_creates_user_in_branch(client, db):
    branch = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch)

    response = await client.post(
        "/users/",
        json={"email": "New@Example.com", "name": "New", "role": "user", "branch_id": branch.id},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    assert response.json()["email"] == "new@example.com"
    assert response.json()["branch_id"] == branch.id


async def test_create_user_outside_scope_is_forbidden(client, db):
    north = await create_branch(db)
    south = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=north)

    response = await client.post(
        "/users/",
        json={"email": "far@example.com", "name": "Far", "role": "user", "branch_id": south.id},
        headers=auth_headers(admin),
    )

    assert response.status_code == 403


async def test_duplicate_email_is_conflict(client, db):
    admin = await create_user(db, role=Role.TOP)
    existing = await create_user(db)

    response = await client.post(
        "/users/",
        json={"email": existing.email, "name": "Again", "role": "user"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 409


async def test_department_must_belong_to_branch(client, db):
    admin = await create_user(db, role=Role.TOP)
    north = await create_branch(db)
    south = await create_branch(db)
    department = await create_department(db, branch=south)

    response = await client.post(
        "/users/",
        json={
            "email": "mixed@example.com",
            "name": "Mixed",
            "role": "user",
            "branch_id": north.id,
            "department_id": department.id,
        },
        headers=auth_headers(admin),
    )

    assert response.status_code == 400


async def test_dept_admin_cannot_promote_to_branch_admin(client, db):
    department = await create_department(db)
    admin = await create_user(db, role=Role.DEPT_ADMIN, department=department)
    member = await create_user(db, department=department)

    response = await client.patch(
        f"/users/{member.id}", json={"role": "branch_admin"}, headers=auth_headers(admin)
    )

    assert response.status_code == 403
    assert response.json()["error"] == "EscalationError"


async def test_cannot_change_own_role(client, db):
    admin = await create_user(db, role=Role.TOP)

    response = await client.patch(f"/users/{admin.id}", json={"role": "user"}, headers=auth_headers(admin))

    assert response.status_code == 400


async def test_top_user_is_never_deletable(client, db):
    first = await create_user(db, role=Role.TOP)
    second = await create_user(db, role=Role.TOP)

    response = await client.delete(f"/users/{second.id}", headers=auth_headers(first))

    assert response.status_code == 403


async def test_delete_user_removes_their_grants(client, db):
    admin = await create_user(db, role=Role.TOP)
    owner = await create_user(db)
    member = await create_user(db)
    folder = await create_folder(db, owner)
    await client.post(
        f"/folders/{folder.id}/permissions",
        json={"target_kind": "user", "target_id": member.id, "level": PermissionLevel.VIEW.value},
        headers=auth_headers(owner),
    )

    response = await client.delete(f"/users/{member.id}", headers=auth_headers(admin))
    assert response.status_code == 200

    result = await db.execute(
        select(FolderPermissionGrant).where(
            FolderPermissionGrant.target_kind == TargetKind.USER,
            FolderPermissionGrant.target_id == member.id,
        )
    )
    assert result.scalars().all() == []


async def test_inactive_user_is_rejected(client, db):
    user = await create_user(db, is_active=False)

    response = await client.get("/users/me", headers=auth_headers(user))

    assert response.status_code == 403


async def test_branch_admin_cannot_deactivate_top_user_in_branch(client, db):
    branch = await create_branch(db)
    top = await create_user(db, role=Role.TOP, branch=branch)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch)

    response = await client.patch(f"/users/{top.id}", json={"is_active": False}, headers=auth_headers(admin))

    assert response.status_code == 403
    assert response.json()["error"] == "EscalationError"
    assert (await client.get("/users/me", headers=auth_headers(top))).status_code == 200


async def test_branch_admin_cannot_rename_higher_ranked_user(client, db):
    branch = await create_branch(db)
    top = await create_user(db, role=Role.TOP, branch=branch, name="Chief")
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch)

    response = await client.patch(f"/users/{top.id}", json={"name": "Renamed"}, headers=auth_headers(admin))

    assert response.status_code == 403
    me = await client.get("/users/me", headers=auth_headers(top))
    assert me.json()["name"] == "Chief"


async def test_top_user_cannot_deactivate_another_top_user(client, db):
    first = await create_user(db, role=Role.TOP)
    second = await create_user(db, role=Role.TOP)

    response = await client.patch(f"/users/{second.id}", json={"is_active": False}, headers=auth_headers(first))

    assert response.status_code == 403
    assert (await client.get("/users/me", headers=auth_headers(second))).status_code == 200


async def test_branch_admin_can_deactivate_plain_user(client, db):
    branch = await create_branch(db)
    admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch)
    member = await create_user(db, branch=branch)

    response = await client.patch(f"/users/{member.id}", json={"is_active": False}, headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["is_active"] is False


async def test_dept_admin_cannot_delete_branch_admin_in_department(client, db):
    branch = await create_branch(db)
    department = await create_department(db, branch=branch)
    dept_admin = await create_user(db, role=Role.DEPT_ADMIN, branch=branch, department=department)
    branch_admin = await create_user(db, role=Role.BRANCH_ADMIN, branch=branch, department=department)

    listed = await client.get("/users/", headers=auth_headers(dept_admin))
    entry = next(user for user in listed.json() if user["id"] == branch_admin.id)
    assert entry["can_delete"] is False

    response = await client.delete(f"/users/{branch_admin.id}", headers=auth_headers(dept_admin))

    assert response.status_code == 403
    assert (await client.get("/users/me", headers=auth_headers(branch_admin))).status_code == 200
