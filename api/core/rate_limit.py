"""
Shared slowapi limiter.

One instance so every router's limits land in the same storage and
`app.state.limiter` can point at it.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from api.config.settings import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
