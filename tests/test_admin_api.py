"""
Admin panel API tests: departments, categories, settings and users.

Run with: PYTHONPATH=. pytest tests/test_admin_api.py -v
"""

import pytest
from httpx import AsyncClient

from api.apps.organizations.services import seed_default_settings
from api.db.database import async_session_factory
from tests.conftest import auth, make_ticket

pytestmark = pytest.mark.asyncio


async def test_department_crud(async_client: AsyncClient, world):
    created = await async_client.post(
        "/api/admin/departments",
        json={"name": "Facilities", "color": "#112233"},
        headers=auth(world.admin),
    )
    assert created.status_code == 201
    department_id = created.json()["data"]["id"]

    duplicate = await async_client.post(
        "/api/admin/departments", json={"name": "Facilities"}, headers=auth(world.admin)
    )
    assert duplicate.status_code == 409

    bad_color = await async_client.post(
        "/api/admin/departments", json={"name": "Legal", "color": "red"}, headers=auth(world.admin)
    )
    assert bad_color.status_code == 422

    updated = await async_client.put(
        f"/api/admin/departments/{department_id}",
        json={"is_active": False},
        headers=auth(world.admin),
    )
    assert updated.json()["data"]["is_active"] is False

    visible = await async_client.get("/api/departments", headers=auth(world.alice))
    assert "Facilities" not in {d["name"] for d in visible.json()["data"]}

    deleted = await async_client.delete(
        f"/api/admin/departments/{department_id}", headers=auth(world.admin)
    )
    assert deleted.status_code == 200


async def test_department_with_tickets_cannot_be_deleted(async_client: AsyncClient, world):
    await make_ticket(world.alice, world.it)

    response = await async_client.delete(f"/api/admin/departments/{world.it.id}", headers=auth(world.admin))

    assert response.status_code == 409


async def test_department_detail_counts(async_client: AsyncClient, world):
    await make_ticket(world.alice, world.it)
    await make_ticket(world.alice, world.it, status="resolved")

    response = await async_client.get("/api/admin/departments", headers=auth(world.admin))

    it = next(d for d in response.json()["data"] if d["name"] == "IT")
    assert it["member_count"] == 4
    assert it["supervisor_count"] == 1
    assert it["ticket_count"] == 2
    assert it["open_ticket_count"] == 1


async def test_admin_routes_reject_non_admins(async_client: AsyncClient, world):
    for user in (world.supervisor, world.alice):
        response = await async_client.post(
            "/api/admin/departments", json={"name": "Shadow"}, headers=auth(user)
        )
        assert response.status_code == 403


async def test_deleting_category_clears_tickets(async_client: AsyncClient, world):
    created = await async_client.post(
        "/api/admin/categories", json={"name": "Hardware"}, headers=auth(world.admin)
    )
    category_id = created.json()["data"]["id"]
    ticket = await async_client.post(
        "/api/tickets",
        json={
            "title": "Broken mouse",
            "description": "Left button",
            "department_id": str(world.it.id),
            "category_id": category_id,
        },
        headers=auth(world.alice),
    )
    ticket_id = ticket.json()["data"]["ticket"]["id"]

    deleted = await async_client.delete(f"/api/admin/categories/{category_id}", headers=auth(world.admin))
    detail = await async_client.get(f"/api/tickets/{ticket_id}", headers=auth(world.alice))

    assert deleted.status_code == 200
    assert detail.json()["data"]["ticket"]["category_id"] is None


async def test_settings_update_validates_types_and_keys(async_client: AsyncClient, world):
    async with async_session_factory() as session:
        await seed_default_settings(session, world.org.id)
        await session.commit()

    ok = await async_client.put(
        "/api/admin/settings",
        json={"settings": {"system_name": "Acme Desk", "session_timeout": 30, "auto_approve_users": True}},
        headers=auth(world.admin),
    )
    assert ok.status_code == 200
    values = {s["setting_key"]: s["setting_value"] for s in ok.json()["data"]}
    assert values["system_name"] == "Acme Desk"
    assert values["session_timeout"] == "30"
    assert values["auto_approve_users"] == "true"

    bad_type = await async_client.put(
        "/api/admin/settings", json={"settings": {"session_timeout": "soon"}}, headers=auth(world.admin)
    )
    unknown = await async_client.put(
        "/api/admin/settings", json={"settings": {"launch_codes": "1234"}}, headers=auth(world.admin)
    )
    assert bad_type.status_code == 400
    assert unknown.status_code == 400

    reset = await async_client.post("/api/admin/settings/reset", headers=auth(world.admin))
    values = {s["setting_key"]: s["setting_value"] for s in reset.json()["data"]}
    assert values["system_name"] == "Support Ticket System"


async def test_set_departments_grants_supervision(async_client: AsyncClient, world):
    ticket = await make_ticket(world.carol, world.hr)

    promoted = await async_client.put(
        f"/api/admin/users/{world.bob.id}/role", json={"role": "supervisor"}, headers=auth(world.admin)
    )
    assert promoted.status_code == 200

    memberships = await async_client.put(
        f"/api/admin/users/{world.bob.id}/departments",
        json={"memberships": [{"department_id": str(world.hr.id), "is_supervisor": True}]},
        headers=auth(world.admin),
    )
    assert [m["department_id"] for m in memberships.json()["data"]["memberships"]] == [str(world.hr.id)]

    seen = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.bob))
    assert seen.status_code == 200
    assert seen.json()["data"]["permissions"]["can_mutate"] is True


async def test_admin_cannot_change_own_role(async_client: AsyncClient, world):
    response = await async_client.put(
        f"/api/admin/users/{world.admin.id}/role", json={"role": "user"}, headers=auth(world.admin)
    )

    assert response.status_code == 403


async def test_reject_removes_pending_registration(async_client: AsyncClient, world):
    rejected = await async_client.post(
        f"/api/admin/users/{world.pending.id}/reject", headers=auth(world.admin)
    )
    again = await async_client.post(
        f"/api/admin/users/{world.pending.id}/reject", headers=auth(world.admin)
    )
    wrong_state = await async_client.post(
        f"/api/admin/users/{world.alice.id}/approve", headers=auth(world.admin)
    )

    assert rejected.status_code == 200
    assert again.status_code == 404
    assert wrong_state.status_code == 409


async def test_users_from_other_tenant_are_invisible(async_client: AsyncClient, world):
    listed = await async_client.get("/api/admin/users", headers=auth(world.admin))
    touched = await async_client.post(
        f"/api/admin/users/{world.outsider.id}/suspend", headers=auth(world.admin)
    )

    emails = {u["email"] for u in listed.json()["data"]["items"]}
    assert world.outsider.email not in emails
    assert world.alice.email in emails
    assert touched.status_code == 404


async def test_profile_password_change(async_client: AsyncClient, world):
    wrong = await async_client.put(
        "/api/user/profile",
        json={"current_password": "nope-nope", "new_password": "NewPassword1!"},
        headers=auth(world.alice),
    )
    right = await async_client.put(
        "/api/user/profile",
        json={"full_name": "Alice Liddell", "current_password": "Password123!", "new_password": "NewPassword1!"},
        headers=auth(world.alice),
    )
    login = await async_client.post(
        "/api/auth/login", json={"email": world.alice.email, "password": "NewPassword1!"}
    )

    assert wrong.status_code == 401
    assert right.json()["data"]["full_name"] == "Alice Liddell"
    assert login.status_code == 200


async def test_assignable_users_for_supervisors_only(async_client: AsyncClient, world):
    denied = await async_client.get("/api/users/assignable", headers=auth(world.alice))
    allowed = await async_client.get(
        f"/api/users/assignable?department_id={world.it.id}", headers=auth(world.supervisor)
    )

    assert denied.status_code == 403
    names = {u["full_name"] for u in allowed.json()["data"]}
    assert names == {"Supervisor", "Alice", "Bob"}
