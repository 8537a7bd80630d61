"""
Ticket API tests: visibility, workflow, assignment and deletion.

Run with: PYTHONPATH=. pytest tests/test_tickets_api.py -v
"""

import uuid

import pytest
from httpx import AsyncClient

from api.apps.attachments.models import Attachment
from api.apps.comments.models import TicketComment
from api.apps.notifications.models import Notification
from api.apps.tickets.models import Ticket, TicketActivity, TicketWatcher
from api.db.database import async_session_factory
from tests.conftest import auth, make_ticket

pytestmark = pytest.mark.asyncio


async def test_create_ticket_notifies_department_supervisor(async_client: AsyncClient, world, fake_feed):
    response = await async_client.post(
        "/api/tickets",
        json={
            "title": "  VPN keeps dropping  ",
            "description": "Every ten minutes",
            "department_id": str(world.it.id),
            "priority": "high",
        },
        headers=auth(world.alice),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    ticket = body["data"]["ticket"]
    assert ticket["title"] == "VPN keeps dropping"
    assert ticket["status"] == "open"
    assert ticket["ticket_number"].startswith("TKT-")
    assert f"ticket:{ticket['id']}" in fake_feed.channels()
    ticket_id = uuid.UUID(ticket["id"])

    async with async_session_factory() as session:
        notes = await Notification.find_many(session, filters={"user_id": world.supervisor.id})
        watchers = await TicketWatcher.find_many(session, filters={"ticket_id": ticket_id})
        comments = await TicketComment.find_many(session, filters={"ticket_id": ticket_id})
    assert [n.type for n in notes] == ["ticket_created"]
    assert [w.user_id for w in watchers] == [world.alice.id]
    assert len(comments) == 1 and comments[0].is_system_message


async def test_create_ticket_rejects_foreign_department(async_client: AsyncClient, world):
    response = await async_client.post(
        "/api/tickets",
        json={"title": "Help", "description": "x", "department_id": str(world.other_dept.id)},
        headers=auth(world.alice),
    )

    assert response.status_code == 400
    assert response.json()["error"]["field"] == "department_id"


async def test_private_ticket_is_not_found_for_other_members(async_client: AsyncClient, world):
    ticket = await make_ticket(world.bob, world.it, visibility="private")

    hidden = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.alice))
    missing = await async_client.get(
        "/api/tickets/00000000-0000-0000-0000-000000000000", headers=auth(world.alice)
    )

    assert hidden.status_code == 404
    assert missing.status_code == 404
    assert hidden.json()["message"] == missing.json()["message"]

    seen = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.supervisor))
    assert seen.status_code == 200


async def test_visible_ticket_mutation_is_forbidden(async_client: AsyncClient, world):
    ticket = await make_ticket(world.bob, world.it, visibility="public")

    seen = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.alice))
    assert seen.status_code == 200
    assert seen.json()["data"]["permissions"]["can_mutate"] is False

    response = await async_client.post(
        f"/api/tickets/{ticket.id}/status",
        json={"status": "in_progress"},
        headers=auth(world.alice),
    )
    assert response.status_code == 403


async def test_other_tenant_admin_gets_not_found(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, visibility="public")

    response = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.outsider))
    deletion = await async_client.post(
        f"/api/admin/tickets/{ticket.id}/delete", headers=auth(world.outsider)
    )

    assert response.status_code == 404
    assert deletion.status_code == 404


async def test_ticket_number_works_as_reference(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await async_client.get(
        f"/api/tickets/{ticket.ticket_number.lower()}", headers=auth(world.alice)
    )

    assert response.status_code == 200
    assert response.json()["data"]["ticket"]["id"] == str(ticket.id)


async def test_list_only_returns_visible_tickets(async_client: AsyncClient, world):
    mine = await make_ticket(world.alice, world.it, title="Mine")
    public = await make_ticket(world.bob, world.it, visibility="public", title="Public")
    await make_ticket(world.bob, world.it, visibility="private", title="Private")
    await make_ticket(world.carol, world.hr, visibility="public", title="Other dept")

    response = await async_client.get("/api/tickets", headers=auth(world.alice))

    assert response.status_code == 200
    ids = {item["id"] for item in response.json()["data"]["items"]}
    assert ids == {str(mine.id), str(public.id)}

    scoped = await async_client.get("/api/tickets?scope=mine", headers=auth(world.alice))
    assert [i["id"] for i in scoped.json()["data"]["items"]] == [str(mine.id)]


async def test_search_treats_wildcards_literally(async_client: AsyncClient, world):
    percent = await make_ticket(world.alice, world.it, title="Disk 100% full")
    await make_ticket(world.alice, world.it, title="Disk 1000 sectors bad")
    underscore = await make_ticket(world.alice, world.it, title="Share a_b missing")
    await make_ticket(world.alice, world.it, title="Share axb missing")

    by_percent = await async_client.get("/api/tickets?search=100%25", headers=auth(world.alice))
    by_underscore = await async_client.get("/api/tickets?search=a_b", headers=auth(world.alice))

    assert [i["id"] for i in by_percent.json()["data"]["items"]] == [str(percent.id)]
    assert [i["id"] for i in by_underscore.json()["data"]["items"]] == [str(underscore.id)]


async def test_supervisor_cannot_work_own_ticket(async_client: AsyncClient, world):
    ticket = await make_ticket(world.supervisor, world.it, status="in_progress")
    headers = auth(world.supervisor)

    resolved = await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "resolved"}, headers=headers
    )
    reprioritized = await async_client.post(
        f"/api/tickets/{ticket.id}/priority", json={"priority": "urgent"}, headers=headers
    )
    reassigned = await async_client.post(
        f"/api/tickets/{ticket.id}/assign", json={"assigned_to": str(world.bob.id)}, headers=headers
    )
    detail = await async_client.get(f"/api/tickets/{ticket.id}", headers=headers)

    assert resolved.status_code == 403
    assert reprioritized.status_code == 403
    assert reassigned.status_code == 403
    assert detail.json()["data"]["permissions"]["can_mutate"] is False

    by_admin = await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "resolved"}, headers=auth(world.admin)
    )
    assert by_admin.status_code == 200


async def test_assigning_open_ticket_starts_work(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await async_client.post(
        f"/api/tickets/{ticket.id}/assign",
        json={"assigned_to": str(world.bob.id)},
        headers=auth(world.supervisor),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "in_progress"
    assert data["assigned_to"] == str(world.bob.id)

    # The assignee can now see the private ticket, but not drive it.
    seen = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.bob))
    assert seen.status_code == 200
    denied = await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "resolved"}, headers=auth(world.bob)
    )
    assert denied.status_code == 403

    async with async_session_factory() as session:
        creator_notes = await Notification.find_many(session, filters={"user_id": world.alice.id})
        assignee_notes = await Notification.find_many(session, filters={"user_id": world.bob.id})
    assert {n.type for n in creator_notes} == {"ticket_assigned", "status_changed"}
    assert [n.type for n in assignee_notes] == ["ticket_assigned"]


async def test_assign_rejects_pending_user(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await async_client.post(
        f"/api/tickets/{ticket.id}/assign",
        json={"assigned_to": str(world.pending.id)},
        headers=auth(world.supervisor),
    )

    assert response.status_code == 400


async def test_status_flow_keeps_timestamps_consistent(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, status="in_progress")
    url = f"/api/tickets/{ticket.id}/status"

    resolved = await async_client.post(url, json={"status": "resolved"}, headers=auth(world.supervisor))
    assert resolved.status_code == 200
    assert resolved.json()["data"]["resolved_at"] is not None

    closed = await async_client.post(url, json={"status": "closed"}, headers=auth(world.supervisor))
    data = closed.json()["data"]
    assert data["closed_at"] is not None
    assert data["resolved_at"] is not None

    reopen = await async_client.post(url, json={"status": "open"}, headers=auth(world.supervisor))
    assert reopen.status_code == 403

    reopen = await async_client.post(url, json={"status": "open"}, headers=auth(world.admin))
    data = reopen.json()["data"]
    assert data["status"] == "open"
    assert data["resolved_at"] is None and data["closed_at"] is None


async def test_invalid_transition_is_rejected(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "closed"}, headers=auth(world.supervisor)
    )

    assert response.status_code == 400
    assert response.json()["error"]["current"] == "open"


async def test_creator_edits_only_while_open(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    edited = await async_client.patch(
        f"/api/tickets/{ticket.id}", json={"title": "Printer still on fire"}, headers=auth(world.alice)
    )
    assert edited.status_code == 200
    assert edited.json()["data"]["title"] == "Printer still on fire"

    await async_client.post(
        f"/api/tickets/{ticket.id}/status", json={"status": "in_progress"}, headers=auth(world.supervisor)
    )
    late = await async_client.patch(
        f"/api/tickets/{ticket.id}", json={"title": "Too late"}, headers=auth(world.alice)
    )
    assert late.status_code == 403


async def test_visibility_toggle_opens_ticket_to_department(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, visibility="private")

    before = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.bob))
    toggled = await async_client.post(f"/api/tickets/{ticket.id}/visibility", headers=auth(world.supervisor))
    after = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.bob))

    assert before.status_code == 404
    assert toggled.json()["data"]["visibility"] == "public"
    assert after.status_code == 200


async def test_admin_delete_cascades(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)
    async with async_session_factory() as session:
        for author in (world.alice, world.supervisor, world.alice):
            await TicketComment.create(
                session,
                commit=False,
                ticket_id=ticket.id,
                organization_id=ticket.organization_id,
                user_id=author.id,
                content="hello",
            )
        for n in range(2):
            await Attachment.create(
                session,
                commit=False,
                organization_id=ticket.organization_id,
                ticket_id=ticket.id,
                related_to="ticket",
                related_id=ticket.id,
                uploaded_by=world.alice.id,
                original_filename=f"f{n}.txt",
                storage_path=f"{ticket.organization_id}/{ticket.id}/missing-{n}.txt",
                public_url=f"/storage/missing-{n}.txt",
                mime_type="text/plain",
                file_size=5,
            )
        await TicketWatcher.create(session, commit=False, ticket_id=ticket.id, user_id=world.alice.id)
        await session.commit()

    denied = await async_client.post(
        f"/api/admin/tickets/{ticket.id}/delete", headers=auth(world.supervisor)
    )
    assert denied.status_code == 403

    response = await async_client.post(f"/api/admin/tickets/{ticket.id}/delete", headers=auth(world.admin))
    assert response.status_code == 200

    async with async_session_factory() as session:
        for model in (TicketComment, Attachment, TicketWatcher, TicketActivity):
            assert await model.count(session, ticket_id=ticket.id) == 0
        assert await Ticket.get_by_id(session, ticket.id) is None

    gone = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.admin))
    listed = await async_client.get("/api/admin/tickets", headers=auth(world.admin))
    assert gone.status_code == 404
    assert str(ticket.id) not in {i["id"] for i in listed.json()["data"]["items"]}


async def test_admin_actions_dispatch(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)
    url = f"/api/admin/tickets/{ticket.id}"

    priority = await async_client.post(
        f"{url}/change-priority", json={"priority": "urgent"}, headers=auth(world.admin)
    )
    same = await async_client.post(
        f"{url}/change-priority", json={"priority": "urgent"}, headers=auth(world.admin)
    )
    unknown = await async_client.post(f"{url}/explode", headers=auth(world.admin))
    non_admin = await async_client.post(
        f"{url}/change-priority", json={"priority": "low"}, headers=auth(world.supervisor)
    )

    assert priority.json()["data"]["priority"] == "urgent"
    assert same.status_code == 400
    assert unknown.status_code == 400
    assert non_admin.status_code == 403
