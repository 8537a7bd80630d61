from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import jwt
from jwt.exceptions import InvalidTokenError as JWTError
import secrets

from pwdlib import PasswordHash
from user_agents import parse

from api.core.config import settings
from api.utils.exceptions import NotAuthenticatedException

password_hasher = PasswordHash.recommended()


def hash_password(password: str) -> str:
    """Hash a password using Argon2."""
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hashed password."""
    try:
        return password_hasher.verify(plain_password, hashed_password)
    except Exception:
        return False


def create_access_token(
    user_id: str,
    organization_id: str,
    role: str,
    platform: str = "web",  # "mobile" or "web"
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Role and organization are informational only; verify_user always
    reloads the account so a demoted or suspended user loses access at once.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    payload = {
        "sub": user_id,
        "org": organization_id,
        "role": role,
        "platform": platform,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def create_refresh_token(
    user_id: str, organization_id: str, role: str, platform: str = "web"
) -> str:
    """
    Create a JWT refresh token.
    Mobile clients get a longer-lived refresh token than browsers.
    """

    ttl_days = (
        settings.REFRESH_TOKEN_EXPIRE_DAYS_MOBILE
        if platform == "mobile"
        else settings.REFRESH_TOKEN_EXPIRE_DAYS_WEB
    )
    expire = datetime.now(timezone.utc) + timedelta(days=ttl_days)

    payload = {
        "sub": user_id,
        "org": organization_id,
        "role": role,
        "platform": platform,
        "type": "refresh",
        "iat": datetime.now(timezone.utc),
        "exp": expire,
    }
    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def verify_token_type(token: str, expected_type: str) -> dict[str, Any]:
    """Universal token decoder and type verifier."""
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise NotAuthenticatedException()

    if payload.get("type") != expected_type:
        raise NotAuthenticatedException(
            detail=f"Invalid token type. Expected {expected_type}"
        )
    return payload


def get_device_info(user_agent_str: str) -> dict[str, Any]:
    """
    Parse user agent.
    """
    user_agent = parse(user_agent_str or "")
    return {
        "os": user_agent.os.family,
        "device": user_agent.device.family,
        "is_mobile": user_agent.is_mobile,
        "is_pc": user_agent.is_pc,
        "app_platform": "mobile" if user_agent.is_mobile else "web",
    }


def generate_ticket_number() -> str:
    """Human-facing ticket reference, e.g. TKT-5F3A91C2."""
    return f"TKT-{secrets.token_hex(4).upper()}"
