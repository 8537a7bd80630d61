"""
Session shim.

Routers import `get_session` from here; the engine and factory live in
`api.db.database`.
"""

from api.db.database import get_db as get_session  # noqa: F401

__all__ = ["get_session"]
