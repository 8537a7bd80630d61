"""
Shared fixtures.

The app runs against a throwaway SQLite file through aiosqlite; Redis is
replaced by in-memory fakes and storage writes to a temp directory. The
environment must be set before anything under `api` is imported.
"""

import json
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

_TMP = tempfile.mkdtemp(prefix="ticketdesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-enough-length-for-hs256"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = os.path.join(_TMP, "storage")
os.environ["ENVIRONMENT"] = "test"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from main import app  # noqa: E402
from api.apps.auth.models import User, UserDepartment  # noqa: E402
from api.apps.organizations.models import Department, Organization  # noqa: E402
from api.apps.tickets.models import Ticket  # noqa: E402
from api.core.cache import CacheManager  # noqa: E402
from api.core.dependencies import get_cache, get_change_feed  # noqa: E402
from api.core.realtime import ChangeEvent, ChangeFeed  # noqa: E402
from api.db.base_model import Base  # noqa: E402
from api.db.database import async_session_factory, engine  # noqa: E402
from api.utils.security import create_access_token, generate_ticket_number, hash_password  # noqa: E402


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeCache(CacheManager):
    """Dict-backed cache with the same key scheme."""

    def __init__(self):
        self.store: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.store.get(key)
        return json.loads(value) if value else None

    async def set(self, key: str, value: Dict[str, Any], ttl: int = 60) -> None:
        self.store[key] = json.dumps(value, default=str)

    async def invalidate_organization(self, organization_id: str) -> int:
        prefix = f"stats:{organization_id}:"
        doomed = [k for k in self.store if k.startswith(prefix)]
        for key in doomed:
            del self.store[key]
        return len(doomed)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class FakeFeed(ChangeFeed):
    """Records published events instead of talking to Redis."""

    def __init__(self, cache: CacheManager):
        self.cache = cache
        self.published: List[tuple[str, ChangeEvent]] = []

    async def publish(self, channel: str, event: ChangeEvent) -> None:
        self.published.append((channel, event))

    def channels(self) -> List[str]:
        return [channel for channel, _ in self.published]

    async def close(self) -> None:
        pass


# ── World ─────────────────────────────────────────────────────────────────────

@dataclass
class World:
    """
    One organization with IT and HR departments:

    admin       admin, no memberships
    supervisor  supervisor of IT
    alice, bob  users in IT
    carol       user in HR
    pending     pending user in IT
    outsider    admin of a second organization
    """

    org: Organization
    it: Department
    hr: Department
    other_org: Organization
    other_dept: Department
    users: Dict[str, User] = field(default_factory=dict)

    def __getattr__(self, name: str) -> User:
        try:
            return self.__dict__["users"][name]
        except KeyError:
            raise AttributeError(name)


def auth(user: User) -> Dict[str, str]:
    token = create_access_token(
        user_id=str(user.id), organization_id=str(user.organization_id), role=user.role
    )
    return {"Authorization": f"Bearer {token}"}


async def make_ticket(
    creator: User,
    department: Department,
    visibility: str = "private",
    status: str = "open",
    assigned_to: Optional[User] = None,
    title: str = "Printer on fire",
) -> Ticket:
    async with async_session_factory() as session:
        return await Ticket.create(
            db=session,
            organization_id=creator.organization_id,
            department_id=department.id,
            ticket_number=generate_ticket_number(),
            title=title,
            description="Smoke everywhere",
            priority="medium",
            status=status,
            visibility=visibility,
            created_by=creator.id,
            assigned_to=assigned_to.id if assigned_to else None,
        )


async def _seed_world() -> World:
    hashed = hash_password("Password123!")
    async with async_session_factory() as session:
        org = await Organization.create(
            session, commit=False, name="Acme", slug="acme",
            admin_email="admin@acme-corp.com", admin_name="Admin",
        )
        other_org = await Organization.create(
            session, commit=False, name="Globex", slug="globex",
            admin_email="admin@globex-corp.com", admin_name="Other Admin",
        )
        it = await Department.create(session, commit=False, organization_id=org.id, name="IT")
        hr = await Department.create(session, commit=False, organization_id=org.id, name="HR")
        other_dept = await Department.create(
            session, commit=False, organization_id=other_org.id, name="IT"
        )

        def user(key, org_id, role, status="approved", departments=()):
            return User(
                organization_id=org_id,
                email=f"{key}@acme-corp.com",
                full_name=key.capitalize(),
                hashed_password=hashed,
                role=role,
                status=status,
                memberships=[
                    UserDepartment(department_id=d.id, is_supervisor=sup)
                    for d, sup in departments
                ],
            )

        users = {
            "admin": user("admin", org.id, "admin"),
            "supervisor": user("supervisor", org.id, "supervisor", departments=[(it, True)]),
            "alice": user("alice", org.id, "user", departments=[(it, False)]),
            "bob": user("bob", org.id, "user", departments=[(it, False)]),
            "carol": user("carol", org.id, "user", departments=[(hr, False)]),
            "pending": user("pending", org.id, "user", status="pending", departments=[(it, False)]),
            "outsider": user("outsider", other_org.id, "admin"),
        }
        session.add_all(users.values())
        await session.commit()

        return World(org=org, it=it, hr=hr, other_org=other_org, other_dept=other_dept, users=users)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def fake_feed(fake_cache) -> FakeFeed:
    return FakeFeed(fake_cache)


@pytest_asyncio.fixture
async def async_client(database, fake_cache, fake_feed):
    app.dependency_overrides[get_cache] = lambda: fake_cache
    app.dependency_overrides[get_change_feed] = lambda: fake_feed
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def world(database) -> World:
    return await _seed_world()
