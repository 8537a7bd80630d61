"""
Seed database script.

Creates the schema and a demo organization with a few departments, an
admin, a supervisor and two users, all approved.

Run with: PYTHONPATH=. python scripts/seed.py
"""

import asyncio

from api.db.base_model import Base
from api.db.database import async_session_factory, engine
from api.apps.auth.models import User, UserDepartment
from api.apps.organizations.models import Category, Department, Organization
from api.apps.organizations.services import seed_default_settings
from api.apps.tickets import models as _ticket_models  # noqa: F401
from api.apps.comments import models as _comment_models  # noqa: F401
from api.apps.attachments import models as _attachment_models  # noqa: F401
from api.apps.notifications import models as _notification_models  # noqa: F401
from api.utils.security import hash_password
from api.utils.logger import get_logger

logger = get_logger(__name__)

ORGANIZATION = {
    "name": "Acme Support",
    "slug": "acme",
    "admin_email": "admin@acme-corp.com",
    "admin_name": "System Admin",
}

DEPARTMENTS = [
    {"name": "IT", "color": "#2563EB"},
    {"name": "HR", "color": "#DB2777"},
    {"name": "Finance", "color": "#059669"},
]

CATEGORIES = ["Hardware", "Software", "Access", "Payroll"]

# department name -> is_supervisor
USERS_TO_SEED = [
    {
        "email": "admin@acme-corp.com",
        "full_name": "System Admin",
        "role": "admin",
        "departments": {},
    },
    {
        "email": "it.lead@acme-corp.com",
        "full_name": "IT Lead",
        "role": "supervisor",
        "departments": {"IT": True},
    },
    {
        "email": "hr.rep@acme-corp.com",
        "full_name": "HR Rep",
        "role": "user",
        "departments": {"HR": False},
    },
    {
        "email": "finance.rep@acme-corp.com",
        "full_name": "Finance Rep",
        "role": "user",
        "departments": {"Finance": False, "IT": False},
    },
]

DEFAULT_PASSWORD = "Password123!"


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        try:
            logger.info("Starting database seed process...")

            existing = await Organization.find_one(session, slug=ORGANIZATION["slug"])
            if existing:
                logger.info(f"Organization '{existing.slug}' already exists. Skipping.")
                return

            org = await Organization.create(session, commit=False, **ORGANIZATION)
            departments = {
                d["name"]: await Department.create(session, commit=False, organization_id=org.id, **d)
                for d in DEPARTMENTS
            }
            await Category.create_many(
                session,
                [{"organization_id": org.id, "name": name} for name in CATEGORIES],
                commit=False,
            )
            await seed_default_settings(session, org.id)

            hashed = hash_password(DEFAULT_PASSWORD)
            for user_data in USERS_TO_SEED:
                logger.info(f"Creating user: {user_data['email']} ({user_data['role']})")
                session.add(
                    User(
                        organization_id=org.id,
                        email=user_data["email"],
                        full_name=user_data["full_name"],
                        hashed_password=hashed,
                        role=user_data["role"],
                        status="approved",
                        memberships=[
                            UserDepartment(
                                department_id=departments[name].id,
                                is_supervisor=is_supervisor,
                            )
                            for name, is_supervisor in user_data["departments"].items()
                        ],
                    )
                )

            await session.commit()
            logger.info("Database seeded successfully")

        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to seed database: {e}")
            raise


if __name__ == "__main__":
    asyncio.run(seed())
