"""
Auth business logic.

Handles login, registration, and JWT-based user verification.
The `verify_user` function is the FastAPI dependency used by all secured routes;
it hands routes an explicit `Caller` value instead of a raw user row.
"""

import uuid
from typing import Dict, Iterable

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from api.apps.auth.models import User, UserDepartment
from api.apps.auth.schemas import (
    RegisterOrganizationRequest,
    RegisterRequest,
    LoginRequest,
    UserResponse,
    TokenPair,
    LoginResponse,
    slugify,
)
from api.apps.organizations.models import Department, Organization
from api.apps.organizations.services import seed_default_settings
from api.core.permissions import Caller, Membership
from api.db.base_model import utcnow
from api.db.session import get_session
from api.utils.security import (
    hash_password,
    verify_password,
    create_access_token,
    create_refresh_token,
    verify_token_type,
    get_device_info,
)
from api.utils.exceptions import (
    AccountNotApprovedException,
    ConflictException,
    InvalidCredentialsException,
    InvalidFieldException,
    NotAuthenticatedException,
    PermissionDeniedException,
    ResourceNotFoundException,
    UserAlreadyExistsException,
)
from api.utils.logger import get_logger

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


def caller_from_user(user: User) -> Caller:
    """Snapshot a loaded user (with memberships) into a Caller."""
    return Caller(
        id=user.id,
        organization_id=user.organization_id,
        role=user.role,
        email=user.email,
        full_name=user.full_name,
        memberships=tuple(
            Membership(
                department_id=m.department_id,
                is_supervisor=m.is_supervisor,
                can_assign_tickets=m.can_assign_tickets,
            )
            for m in user.memberships
        ),
    )


async def load_callers(
    session: AsyncSession, user_ids: Iterable[uuid.UUID]
) -> Dict[uuid.UUID, Caller]:
    """Callers for a set of user ids; unknown ids are simply absent."""
    ids = list(set(user_ids))
    if not ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(ids)))
    return {user.id: caller_from_user(user) for user in result.scalars().all()}


def _ensure_approved(user: User) -> None:
    if user.status == "pending":
        raise AccountNotApprovedException()
    if user.status == "suspended":
        raise AccountNotApprovedException(
            detail="Your account has been suspended. Contact your administrator."
        )


# ── FastAPI Auth Dependencies ─────────────────────────────────────────────────

async def verify_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
    session: AsyncSession = Depends(get_session),
) -> Caller:
    """
    FastAPI dependency: validates Bearer token and returns the active Caller.

    The account is reloaded on every request, so role changes and
    suspensions take effect immediately regardless of token claims.
    """
    if credentials is None:
        raise NotAuthenticatedException()

    # Decode JWT, raises 401 on failure
    payload = verify_token_type(credentials.credentials, expected_type="access")
    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise NotAuthenticatedException()

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise NotAuthenticatedException(detail="User not found.")

    _ensure_approved(user)

    caller = caller_from_user(user)
    logger.debug(f"Authenticated user: {user.email} role={user.role}")
    return caller


async def require_admin(caller: Caller = Depends(verify_user)) -> Caller:
    """Admin-only routes."""
    if not caller.is_admin:
        logger.warning(f"Admin route denied for {caller.id}")
        raise PermissionDeniedException()
    return caller


async def require_supervisor(caller: Caller = Depends(verify_user)) -> Caller:
    """Routes for callers with authority over at least one department."""
    if not (caller.is_admin or caller.supervised_department_ids):
        logger.warning(f"Supervisor route denied for {caller.id}")
        raise PermissionDeniedException()
    return caller


# ── Auth Services ─────────────────────────────────────────────────────────────

async def register_organization(
    session: AsyncSession,
    data: RegisterOrganizationRequest,
) -> UserResponse:
    """
    Create a tenant, its approved admin and the default settings in one commit.
    """
    slug = data.slug or slugify(data.organization_name)

    if await Organization.exists(session, slug=slug):
        raise ConflictException(detail="An organization with this slug already exists.")
    if await User.exists(session, email=data.admin_email):
        raise UserAlreadyExistsException()

    organization = await Organization.create(
        db=session,
        commit=False,
        name=data.organization_name,
        slug=slug,
        admin_email=data.admin_email,
        admin_name=data.admin_name,
        phone=data.phone,
    )
    admin = await User.create(
        db=session,
        commit=False,
        organization_id=organization.id,
        email=data.admin_email,
        full_name=data.admin_name,
        hashed_password=hash_password(data.password),
        role="admin",
        status="approved",
        approved_at=utcnow(),
        memberships=[],
    )
    await seed_default_settings(session, organization.id)
    await session.commit()

    logger.info(f"Registered organization {slug} with admin {admin.email}")
    return UserResponse.model_validate(admin)


async def register_user(
    session: AsyncSession,
    data: RegisterRequest,
) -> UserResponse:
    """
    Create a pending account inside an existing organization.

    Guard: Reject duplicate emails.
    Guard: Department must be an active department of the same organization.
    Password is hashed before storage and never stored in plaintext.
    """
    organization = await Organization.find_one(session, slug=data.organization_slug)
    if not organization or not organization.is_active:
        raise ResourceNotFoundException(detail="Organization not found.")

    if await User.exists(session, email=data.email):
        raise UserAlreadyExistsException()

    memberships = []
    if data.department_id is not None:
        department = await Department.get_in_org(session, data.department_id, organization.id)
        if not department or not department.is_active:
            raise InvalidFieldException("department_id", "Unknown department.")
        memberships.append(UserDepartment(department_id=department.id))

    user = await User.create(
        db=session,
        organization_id=organization.id,
        email=data.email,
        full_name=data.full_name,
        hashed_password=hash_password(data.password),
        role="user",
        status="pending",
        memberships=memberships,
    )

    logger.info(f"Registered new user: {user.email}, org={organization.slug}")
    return UserResponse.model_validate(user)


def _issue_tokens(user: User, platform: str) -> TokenPair:
    user_id = str(user.id)
    organization_id = str(user.organization_id)
    return TokenPair(
        access_token=create_access_token(
            user_id=user_id, organization_id=organization_id, role=user.role, platform=platform
        ),
        refresh_token=create_refresh_token(
            user_id=user_id, organization_id=organization_id, role=user.role, platform=platform
        ),
    )


async def login_user(
    session: AsyncSession,
    data: LoginRequest,
    user_agent: str = "",
) -> LoginResponse:
    """
    Authenticate user and return JWT token pair.

    Guard: Reject bad credentials with generic error (no oracle attack).
    Guard: Reject pending and suspended accounts.
    """
    user = await User.find_one(session, email=data.email)

    # Generic error: never reveal whether email exists
    if not user or not verify_password(data.password, user.hashed_password):
        raise InvalidCredentialsException()

    _ensure_approved(user)

    platform = get_device_info(user_agent)["app_platform"]
    user.last_login = utcnow()
    await user.save(session)

    logger.info(f"User logged in: {user.email} platform={platform}")
    return LoginResponse(
        user=UserResponse.model_validate(user),
        tokens=_issue_tokens(user, platform),
    )


async def refresh_tokens(session: AsyncSession, refresh_token: str) -> TokenPair:
    """Exchange a refresh token for a new pair. The account is rechecked."""
    payload = verify_token_type(refresh_token, expected_type="refresh")
    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise NotAuthenticatedException()

    user = await User.get_by_id(session, user_id)
    if not user:
        raise NotAuthenticatedException(detail="User not found.")
    _ensure_approved(user)

    return _issue_tokens(user, payload.get("platform", "web"))


async def get_profile(session: AsyncSession, caller: Caller) -> UserResponse:
    user = await User.get_by_id(session, caller.id)
    if not user:
        raise NotAuthenticatedException(detail="User not found.")
    return UserResponse.model_validate(user)
