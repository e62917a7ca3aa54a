# tests/test_directory_api.py

"""
Tests for branch and department administration.
"""

from app.features.permissions.models import Role
from tests.conftest import auth_headers
from tests.factories import create_branch, create_department, create_user


async def test_create_branch_uppercases_code(client, db):
    top = await create_user(db, role=Role.TOP)

    response = await client.post("/branches", json={"name": "North", "code": "nth"}, headers=auth_headers(top))

    assert response.status_code == 201
    assert response.json()["code"] == "NTH"


async def test_duplicate_branch_code_is_conflict(client, db):
    top = await create_user(db, role=Role.TOP)
    await create_branch(db, code="NTH")

    response = await client.post("/branches", json={"name": "Other", "code": "NTH"}, headers=auth_headers(top))

    assert response.status_code == 409


async def test_deactivated_branch_hidden_by_default(client, db):
    top = await create_user(db, role=Role.TOP)
    branch = await create_branch(db, name="Closing")

    response = await client.patch(f"/branches/{branch.id}", json={"is_active": False}, headers=auth_headers(top))
    assert response.status_code == 200

    listed = await client.get("/branches", headers=auth_headers(top))
    assert branch.id not in [entry["id"] for entry in listed.json()]

    listed = await client.get("/branches", params={"include_inactive": True}, headers=auth_headers(top))
    assert branch.id in [entry["id"] for entry in listed.json()]


async def test_department_response_includes_branch_name(client, db):
    top = await create_user(db, role=Role.TOP)
    branch = await create_branch(db, name="East")

    response = await client.post(
        "/departments",
        json={"name": "Sales", "code": "sal", "branch_id": branch.id},
        headers=auth_headers(top),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["branch_name"] == "East"
    assert body["code"] == "SAL"


async def test_department_in_inactive_branch_rejected(client, db):
    top = await create_user(db, role=Role.TOP)
    branch = await create_branch(db, is_active=False)

    response = await client.post(
        "/departments", json={"name": "Sales", "branch_id": branch.id}, headers=auth_headers(top)
    )

    assert response.status_code == 400


async def test_plain_user_cannot_create_branch(client, db):
    user = await create_user(db)

    response = await client.post("/branches", json={"name": "Nope"}, headers=auth_headers(user))

    assert response.status_code == 403


async def test_null_fields_leave_branch_unchanged(client, db):
    top = await create_user(db, role=Role.TOP)
    branch = await create_branch(db, name="North", display_order=3)

    response = await client.patch(
        f"/branches/{branch.id}",
        json={"name": None, "display_order": None, "is_active": None},
        headers=auth_headers(top),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "North"
    assert body["display_order"] == 3
    assert body["is_active"] is True


async def test_null_name_leaves_department_unchanged(client, db):
    top = await create_user(db, role=Role.TOP)
    department = await create_department(db, name="Sales")

    response = await client.patch(
        f"/departments/{department.id}", json={"name": None, "code": "ops"}, headers=auth_headers(top)
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Sales"
    assert response.json()["code"] == "OPS"


async def test_department_cannot_be_its_own_parent(client, db):
    top = await create_user(db, role=Role.TOP)
    department = await create_department(db)

    response = await client.patch(
        f"/departments/{department.id}", json={"parent_id": department.id}, headers=auth_headers(top)
    )

    assert response.status_code == 400


async def test_department_parent_cycle_rejected(client, db):
    top = await create_user(db, role=Role.TOP)
    upper = await create_department(db, name="Upper")
    middle = await create_department(db, name="Middle", parent=upper)
    lower = await create_department(db, name="Lower", parent=middle)

    response = await client.patch(
        f"/departments/{upper.id}", json={"parent_id": lower.id}, headers=auth_headers(top)
    )
    assert response.status_code == 400

    response = await client.patch(
        f"/departments/{lower.id}", json={"parent_id": upper.id}, headers=auth_headers(top)
    )
    assert response.status_code == 200
    assert response.json()["parent_id"] == upper.id
