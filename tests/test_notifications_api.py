"""
Notification inbox API tests.

Run with: PYTHONPATH=. pytest tests/test_notifications_api.py -v
"""

import pytest
from httpx import AsyncClient

from api.apps.notifications.services import create_notification
from api.db.database import async_session_factory
from tests.conftest import auth

pytestmark = pytest.mark.asyncio


async def _notify(user, title="Hello"):
    async with async_session_factory() as session:
        notification = await create_notification(
            session,
            organization_id=user.organization_id,
            user_id=user.id,
            type="ticket_assigned",
            title=title,
            message="Something happened",
            data={"ticket_id": "x"},
        )
        await session.commit()
        return notification


async def test_inbox_is_private(async_client: AsyncClient, world):
    await _notify(world.alice, "For Alice")
    await _notify(world.bob, "For Bob")

    response = await async_client.get("/api/notifications", headers=auth(world.alice))

    data = response.json()["data"]
    assert [n["title"] for n in data["items"]] == ["For Alice"]
    assert data["unread"] == 1


async def test_mark_read_and_read_all(async_client: AsyncClient, world):
    first = await _notify(world.alice, "One")
    await _notify(world.alice, "Two")
    await _notify(world.alice, "Three")

    read = await async_client.post(f"/api/notifications/{first.id}/read", headers=auth(world.alice))
    assert read.json()["data"]["is_read"] is True

    count = await async_client.get("/api/notifications/unread-count", headers=auth(world.alice))
    assert count.json()["data"]["unread"] == 2

    unread_only = await async_client.get(
        "/api/notifications?unread_only=true", headers=auth(world.alice)
    )
    assert unread_only.json()["data"]["total"] == 2

    all_read = await async_client.post("/api/notifications/read-all", headers=auth(world.alice))
    assert all_read.json()["data"]["updated"] == 2

    count = await async_client.get("/api/notifications/unread-count", headers=auth(world.alice))
    assert count.json()["data"]["unread"] == 0


async def test_cannot_touch_someone_elses_notification(async_client: AsyncClient, world):
    notification = await _notify(world.bob)

    read = await async_client.post(
        f"/api/notifications/{notification.id}/read", headers=auth(world.alice)
    )
    deleted = await async_client.delete(
        f"/api/notifications/{notification.id}", headers=auth(world.alice)
    )

    assert read.status_code == 404
    assert deleted.status_code == 404


async def test_delete_notification(async_client: AsyncClient, world):
    notification = await _notify(world.alice)

    deleted = await async_client.delete(
        f"/api/notifications/{notification.id}", headers=auth(world.alice)
    )
    inbox = await async_client.get("/api/notifications", headers=auth(world.alice))

    assert deleted.status_code == 200
    assert inbox.json()["data"]["total"] == 0
