"""
Dashboard API tests, including stats caching and invalidation.

Run with: PYTHONPATH=. pytest tests/test_dashboard_api.py -v
"""

import pytest
from httpx import AsyncClient

from tests.conftest import auth, make_ticket

pytestmark = pytest.mark.asyncio


async def test_admin_stats_cached_until_a_ticket_changes(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)
    await make_ticket(world.carol, world.hr, status="in_progress")

    first = await async_client.get("/api/admin/stats", headers=auth(world.admin))
    data = first.json()["data"]
    assert data["cached"] is False
    assert data["tickets"]["total"] == 2
    assert data["tickets"]["open"] == 1
    assert data["users"]["pending"] == 1
    assert set(data["timings"]) == {"users", "departments", "categories", "tickets"}

    second = await async_client.get("/api/admin/stats", headers=auth(world.admin))
    assert second.json()["data"]["cached"] is True

    await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "in_progress"}, headers=auth(world.supervisor)
    )

    third = await async_client.get("/api/admin/stats", headers=auth(world.admin))
    data = third.json()["data"]
    assert data["cached"] is False
    assert data["tickets"]["in_progress"] == 2


async def test_stats_are_per_tenant(async_client: AsyncClient, world):
    await make_ticket(world.alice, world.it)

    ours = await async_client.get("/api/admin/stats", headers=auth(world.admin))
    theirs = await async_client.get("/api/admin/stats", headers=auth(world.outsider))

    assert ours.json()["data"]["tickets"]["total"] == 1
    assert theirs.json()["data"]["tickets"]["total"] == 0
    assert theirs.json()["data"]["cached"] is False


async def test_analytics_overview(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, status="in_progress")
    await make_ticket(world.carol, world.hr)
    await async_client.post(
        f"/api/tickets/{ticket.id}/assign", json={"assigned_to": str(world.supervisor.id)}, headers=auth(world.admin)
    )
    await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "resolved"}, headers=auth(world.supervisor)
    )

    response = await async_client.get("/api/admin/analytics?time_range=7d", headers=auth(world.admin))

    data = response.json()["data"]
    assert data["overview"]["total_tickets"] == 2
    assert data["overview"]["resolved_tickets"] == 1
    assert data["overview"]["resolution_rate"] == 50.0
    assert len(data["daily"]) == 7
    assert data["top_performers"][0]["user_id"] == str(world.supervisor.id)

    scoped = await async_client.get(
        f"/api/admin/analytics?department_id={world.hr.id}", headers=auth(world.admin)
    )
    assert scoped.json()["data"]["overview"]["total_tickets"] == 1


async def test_analytics_rejects_unknown_range(async_client: AsyncClient, world):
    response = await async_client.get("/api/admin/analytics?time_range=5y", headers=auth(world.admin))

    assert response.status_code == 422


async def test_supervisor_dashboard_covers_supervised_departments(async_client: AsyncClient, world):
    await make_ticket(world.alice, world.it)
    await make_ticket(world.carol, world.hr)

    response = await async_client.get("/api/supervisor/dashboard", headers=auth(world.supervisor))
    denied = await async_client.get("/api/supervisor/dashboard", headers=auth(world.alice))

    data = response.json()["data"]
    assert [d["name"] for d in data["departments"]] == ["IT"]
    assert data["stats"]["total_tickets"] == 1
    assert data["stats"]["unassigned_tickets"] == 1
    assert {m["full_name"] for m in data["team_members"]} == {"Supervisor", "Alice", "Bob"}
    assert denied.status_code == 403


async def test_user_stats(async_client: AsyncClient, world):
    await make_ticket(world.alice, world.it)
    await make_ticket(world.alice, world.it, status="resolved")
    await make_ticket(world.carol, world.hr, assigned_to=world.alice)

    response = await async_client.get("/api/user/stats", headers=auth(world.alice))

    data = response.json()["data"]
    assert data["my_tickets"]["total"] == 2
    assert data["my_tickets"]["resolved"] == 1
    assert data["assigned_tickets"]["total"] == 1
