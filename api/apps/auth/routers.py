"""
Auth router.

Entry/exit only, no logic here. Calls auth services.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.schemas import (
    RegisterOrganizationRequest,
    RegisterRequest,
    LoginRequest,
    RefreshRequest,
)
from api.apps.auth.services import (
    register_organization,
    register_user,
    login_user,
    refresh_tokens,
    get_profile,
    verify_user,
)
from api.config.settings import settings
from api.core.permissions import Caller
from api.core.rate_limit import limiter
from api.db.session import get_session
from api.utils.responses import success_response, auth_response

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/register-organization", status_code=201)
async def register_org(
    data: RegisterOrganizationRequest,
    session: AsyncSession = Depends(get_session),
):
    """Create an organization and its first admin account."""
    admin = await register_organization(session=session, data=data)
    return success_response(
        status_code=201,
        message="Organization created successfully",
        data=admin.model_dump(),
    )


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register into an organization. The account waits for admin approval."""
    user = await register_user(session=session, data=data)
    return success_response(
        status_code=201,
        message="Registration successful. Please wait for admin approval.",
        data=user.model_dump(),
    )


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    data: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate and receive JWT tokens."""
    result = await login_user(
        session=session,
        data=data,
        user_agent=request.headers.get("user-agent", ""),
    )
    return auth_response(
        status_code=200,
        message="Login successful",
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        data=result.user.model_dump(),
    )


@router.post("/refresh")
async def refresh(
    data: RefreshRequest,
    session: AsyncSession = Depends(get_session),
):
    tokens = await refresh_tokens(session=session, refresh_token=data.refresh_token)
    return auth_response(
        status_code=200,
        message="Token refreshed",
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.get("/me")
async def me(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Return the currently authenticated user's profile."""
    user = await get_profile(session=session, caller=caller)
    return success_response(
        status_code=200,
        message="User profile",
        data=user.model_dump(),
    )
