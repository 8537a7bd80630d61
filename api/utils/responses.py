"""
Success envelopes.

Mirrors the failure envelope produced by the exception handlers so clients
always see {"status", "status_code", "message", ...}.
"""

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(
    status_code: int = 200,
    message: str = "OK",
    data: Optional[Any] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "success",
            "status_code": status_code,
            "message": message,
            "data": jsonable_encoder(data) if data is not None else {},
        },
    )


def auth_response(
    status_code: int,
    message: str,
    access_token: str,
    refresh_token: str,
    data: Optional[Any] = None,
) -> JSONResponse:
    """Success envelope that also carries the JWT pair."""
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "success",
            "status_code": status_code,
            "message": message,
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "data": jsonable_encoder(data) if data is not None else {},
        },
    )
