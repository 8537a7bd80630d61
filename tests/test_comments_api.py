"""
Comment API tests: internal notes, notification fan-out and uploads.

Run with: PYTHONPATH=. pytest tests/test_comments_api.py -v
"""

import pytest
from httpx import AsyncClient

from main import app
from api.apps.comments.models import TicketComment
from api.apps.notifications.models import Notification
from api.core.dependencies import get_storage
from api.core.realtime import ticket_channel
from api.core.storage import ObjectStorage
from api.db.database import async_session_factory
from api.utils.exceptions import StorageException
from tests.conftest import auth, make_ticket

pytestmark = pytest.mark.asyncio


class BrokenStorage(ObjectStorage):
    """Refuses every upload."""

    def put(self, key: str, data: bytes, content_type: str) -> None:
        raise StorageException(detail="Bucket unavailable")


async def _comment(client, ticket, user, content, internal=False, files=None):
    return await client.post(
        f"/api/tickets/{ticket.id}/comments",
        data={"content": content, "is_internal": "true" if internal else "false"},
        files=files,
        headers=auth(user),
    )


async def test_internal_note_hidden_from_creator(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    note = await _comment(async_client, ticket, world.supervisor, "Looks like a driver issue", internal=True)
    assert note.status_code == 201
    assert note.json()["data"]["comment"]["is_internal"] is True

    as_creator = await async_client.get(f"/api/tickets/{ticket.id}/comments", headers=auth(world.alice))
    as_staff = await async_client.get(f"/api/tickets/{ticket.id}/comments", headers=auth(world.supervisor))

    assert as_creator.json()["data"] == []
    assert len(as_staff.json()["data"]) == 1

    detail = await async_client.get(f"/api/tickets/{ticket.id}", headers=auth(world.alice))
    assert detail.json()["data"]["comments"] == []


async def test_internal_flag_ignored_for_plain_users(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await _comment(async_client, ticket, world.alice, "Any news?", internal=True)

    assert response.status_code == 201
    assert response.json()["data"]["comment"]["is_internal"] is False


async def test_internal_note_notifies_nobody(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await _comment(async_client, ticket, world.supervisor, "Escalating", internal=True)

    assert response.json()["data"]["notified"] == []


async def test_comment_fans_out_to_conversation(async_client: AsyncClient, world, fake_feed):
    ticket = await make_ticket(world.alice, world.it, visibility="public")

    first = await _comment(async_client, ticket, world.bob, "Same here")
    assert first.json()["data"]["notified"] == [str(world.alice.id)]

    second = await _comment(async_client, ticket, world.supervisor, "On it")
    notified = set(second.json()["data"]["notified"])
    assert notified == {str(world.alice.id), str(world.bob.id)}

    async with async_session_factory() as session:
        bob_notes = await Notification.find_many(session, filters={"user_id": world.bob.id})
    assert [n.type for n in bob_notes] == ["comment_added"]
    assert bob_notes[0].data["ticket_id"] == str(ticket.id)
    assert f"notifications:{world.bob.id}" in fake_feed.channels()


async def test_fanout_skips_users_who_lost_access(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, visibility="public")
    await _comment(async_client, ticket, world.bob, "Same here")
    await async_client.post(f"/api/tickets/{ticket.id}/visibility", headers=auth(world.supervisor))

    response = await _comment(async_client, ticket, world.supervisor, "Made it private")

    assert response.json()["data"]["notified"] == [str(world.alice.id)]


async def test_long_thread_is_listed_and_notified_in_full(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, visibility="public")
    async with async_session_factory() as session:
        await TicketComment.create_many(
            session,
            [
                {
                    "ticket_id": ticket.id,
                    "organization_id": ticket.organization_id,
                    "user_id": world.alice.id,
                    "content": f"update {n}",
                }
                for n in range(1000)
            ],
            commit=False,
        )
        await session.commit()

    await _comment(async_client, ticket, world.bob, "Still broken for me")
    latest = await _comment(async_client, ticket, world.supervisor, "Replacing the toner")

    assert set(latest.json()["data"]["notified"]) == {str(world.alice.id), str(world.bob.id)}

    listed = await async_client.get(f"/api/tickets/{ticket.id}/comments", headers=auth(world.alice))
    contents = [c["content"] for c in listed.json()["data"]]
    assert len(contents) == 1002
    assert {"Still broken for me", "Replacing the toner"} <= set(contents)


async def test_internal_and_system_authors_are_not_notified(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it, visibility="public")
    async with async_session_factory() as session:
        await TicketComment.create(
            session,
            ticket_id=ticket.id,
            organization_id=ticket.organization_id,
            user_id=world.bob.id,
            content="Ticket assigned to Bob",
            is_system_message=True,
        )
    await _comment(async_client, ticket, world.supervisor, "Check the fuser", internal=True)

    response = await _comment(async_client, ticket, world.admin, "Any update?")

    assert response.json()["data"]["notified"] == [str(world.alice.id)]


async def test_internal_note_is_announced_without_its_id(async_client: AsyncClient, world, fake_feed):
    ticket = await make_ticket(world.alice, world.it)

    note = await _comment(async_client, ticket, world.supervisor, "Vendor RMA 4411", internal=True)

    note_id = note.json()["data"]["comment"]["id"]
    events = [e for channel, e in fake_feed.published if channel == ticket_channel(ticket.id)]
    assert events
    assert all(e.resource == "ticket" and e.id == str(ticket.id) for e in events)
    assert note_id not in {e.id for e in events}


async def test_comment_on_hidden_ticket_is_not_found(async_client: AsyncClient, world):
    ticket = await make_ticket(world.bob, world.it, visibility="private")

    response = await _comment(async_client, ticket, world.alice, "Hello?")

    assert response.status_code == 404


async def test_empty_comment_rejected(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    response = await _comment(async_client, ticket, world.alice, "   ")

    assert response.status_code == 400


async def test_bad_file_is_reported_and_good_file_kept(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)
    files = [
        ("files", ("log.txt", b"error at line 4", "text/plain")),
        ("files", ("setup.exe", b"MZ....", "application/x-msdownload")),
    ]

    response = await _comment(async_client, ticket, world.alice, "Logs attached", files=files)

    assert response.status_code == 201
    body = response.json()
    assert "1 file(s) failed" in body["message"]
    data = body["data"]
    assert [a["original_filename"] for a in data["attachments"]] == ["log.txt"]
    assert data["failed_uploads"][0]["filename"] == "setup.exe"

    attachment_id = data["attachments"][0]["id"]
    download = await async_client.get(
        f"/api/attachments/{attachment_id}/download", headers=auth(world.alice)
    )
    assert download.status_code == 200
    assert download.content == b"error at line 4"


async def test_storage_outage_keeps_comment(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)
    app.dependency_overrides[get_storage] = lambda: BrokenStorage()

    response = await _comment(
        async_client,
        ticket,
        world.alice,
        "Screenshot",
        files=[("files", ("shot.png", b"\x89PNG....", "image/png"))],
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["comment"]["content"] == "Screenshot"
    assert data["attachments"] == []
    assert data["failed_uploads"] == [{"filename": "shot.png", "reason": "Bucket unavailable"}]


async def test_file_on_internal_note_hidden_from_creator(async_client: AsyncClient, world):
    ticket = await make_ticket(world.alice, world.it)

    note = await _comment(
        async_client,
        ticket,
        world.supervisor,
        "Internal trace",
        internal=True,
        files=[("files", ("trace.txt", b"stack", "text/plain"))],
    )
    attachment_id = note.json()["data"]["attachments"][0]["id"]

    as_creator = await async_client.get(f"/api/attachments/{attachment_id}", headers=auth(world.alice))
    as_staff = await async_client.get(f"/api/attachments/{attachment_id}", headers=auth(world.supervisor))

    assert as_creator.status_code == 404
    assert as_staff.status_code == 200
