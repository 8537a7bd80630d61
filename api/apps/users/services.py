"""
User administration and self-service profile.

Account lifecycle:
    pending   --approve-->    approved
    pending   --reject-->     (deleted)
    approved  --suspend-->    suspended
    suspended --reactivate--> approved
"""

import uuid
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.models import User, UserDepartment
from api.apps.auth.schemas import UserResponse
from api.apps.notifications.services import announce, create_notification
from api.apps.organizations.models import Department
from api.apps.users.schemas import DepartmentsChange, ProfileUpdate, UserPage
from api.core.permissions import Caller
from api.core.realtime import ChangeFeed
from api.db.base_model import utcnow
from api.utils.exceptions import (
    ConflictException,
    InvalidCredentialsException,
    InvalidFieldException,
    PermissionDeniedException,
    ResourceNotFoundException,
)
from api.utils.logger import get_logger
from api.utils.security import hash_password, verify_password

logger = get_logger(__name__)

# action -> (required current status, new status)
ACCOUNT_TRANSITIONS = {
    "approve": ("pending", "approved"),
    "suspend": ("approved", "suspended"),
    "reactivate": ("suspended", "approved"),
}


async def _get_user(session: AsyncSession, caller: Caller, user_id: uuid.UUID) -> User:
    user = await User.get_in_org(session, user_id, caller.organization_id)
    if not user:
        raise ResourceNotFoundException(detail="User not found.")
    return user


async def list_users(
    session: AsyncSession,
    caller: Caller,
    status: Optional[str] = None,
    role: Optional[str] = None,
    department_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = 20,
) -> UserPage:
    filters = {"organization_id": caller.organization_id}
    if status:
        filters["status"] = status
    if role:
        filters["role"] = role

    where = []
    if department_id:
        where.append(User.memberships.any(UserDepartment.department_id == department_id))
    if search:
        pattern = f"%{search.strip()}%"
        where.append(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))

    result = await User.paginate(
        session,
        page=page,
        per_page=per_page,
        filters=filters,
        where=where,
        order_by="created_at",
        order_desc=True,
    )
    return UserPage(
        items=[UserResponse.model_validate(u) for u in result["items"]],
        total=result["total"],
        page=result["page"],
        per_page=result["per_page"],
        pages=result["pages"],
    )


async def list_assignable_users(
    session: AsyncSession, caller: Caller, department_id: Optional[uuid.UUID] = None
) -> list[UserResponse]:
    """Approved users a ticket can be assigned to, optionally within one department."""
    where = []
    if department_id:
        where.append(User.memberships.any(UserDepartment.department_id == department_id))
    users = await User.find_many(
        session,
        filters={"organization_id": caller.organization_id, "status": "approved"},
        where=where,
        order_by="full_name",
        limit=500,
    )
    return [UserResponse.model_validate(u) for u in users]


async def user_action(
    session: AsyncSession,
    feed: ChangeFeed,
    caller: Caller,
    user_id: uuid.UUID,
    action: str,
) -> Optional[UserResponse]:
    """Apply an account lifecycle action. Returns None when the account was removed."""
    user = await _get_user(session, caller, user_id)
    if user.id == caller.id:
        raise PermissionDeniedException(detail="You cannot change your own account status.")

    if action == "reject":
        if user.status != "pending":
            raise ConflictException(detail="Only pending registrations can be rejected.")
        await user.delete(session)
        logger.info(f"Registration of {user.email} rejected by {caller.id}")
        return None

    if action not in ACCOUNT_TRANSITIONS:
        raise InvalidFieldException("action", f"Invalid action '{action}'.")
    required, target = ACCOUNT_TRANSITIONS[action]
    if user.status != required:
        raise ConflictException(detail=f"Cannot {action} an account that is {user.status}.")

    user.status = target
    notifications = []
    if action == "approve":
        user.approved_by = caller.id
        user.approved_at = utcnow()
        notifications.append(
            await create_notification(
                session,
                organization_id=user.organization_id,
                user_id=user.id,
                type="account_approved",
                title="Your account has been approved",
                message="You can now sign in and submit tickets.",
            )
        )
    await user.save(session)
    await announce(feed, notifications)

    logger.info(f"Account {user.email} -> {target} by {caller.id}")
    return UserResponse.model_validate(user)


async def change_role(
    session: AsyncSession, caller: Caller, user_id: uuid.UUID, role: str
) -> UserResponse:
    user = await _get_user(session, caller, user_id)
    if user.id == caller.id:
        raise PermissionDeniedException(detail="You cannot change your own role.")
    previous = user.role
    user.role = role
    await user.save(session)
    logger.info(f"Role of {user.email} changed {previous} -> {role} by {caller.id}")
    return UserResponse.model_validate(user)


async def set_departments(
    session: AsyncSession, caller: Caller, user_id: uuid.UUID, data: DepartmentsChange
) -> UserResponse:
    """Replace a user's memberships with exactly the given set."""
    user = await _get_user(session, caller, user_id)

    wanted = {m.department_id: m for m in data.memberships}
    for department_id in wanted:
        department = await Department.get_in_org(session, department_id, caller.organization_id)
        if not department:
            raise InvalidFieldException("department_id", "Unknown department.")

    for membership in list(user.memberships):
        change = wanted.pop(membership.department_id, None)
        if change is None:
            user.memberships.remove(membership)
            continue
        membership.is_supervisor = change.is_supervisor
        membership.can_assign_tickets = change.can_assign_tickets

    for change in wanted.values():
        user.memberships.append(
            UserDepartment(
                department_id=change.department_id,
                is_supervisor=change.is_supervisor,
                can_assign_tickets=change.can_assign_tickets,
            )
        )

    await user.save(session)
    logger.info(f"Memberships of {user.email} set to {len(user.memberships)} department(s)")
    return UserResponse.model_validate(user)


# ── Profile ───────────────────────────────────────────────────────────────────

async def get_profile(session: AsyncSession, caller: Caller) -> UserResponse:
    user = await _get_user(session, caller, caller.id)
    return UserResponse.model_validate(user)


async def update_profile(
    session: AsyncSession, caller: Caller, data: ProfileUpdate
) -> UserResponse:
    """Own name, phone and avatar; password only with the current one."""
    user = await _get_user(session, caller, caller.id)

    changes = data.model_dump(exclude_unset=True, exclude={"current_password", "new_password"})
    if "full_name" in changes and changes["full_name"] is None:
        raise InvalidFieldException("full_name", "Name cannot be empty.")
    for field, value in changes.items():
        setattr(user, field, value)

    if data.new_password:
        if not verify_password(data.current_password or "", user.hashed_password):
            raise InvalidCredentialsException(detail="Current password is incorrect.")
        user.hashed_password = hash_password(data.new_password)
        logger.info(f"Password changed for {user.email}")

    await user.save(session)
    return UserResponse.model_validate(user)
