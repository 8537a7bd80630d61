"""
Server-Sent Events bridge over the change feed.

Streams carry only "something changed" signals; clients refetch through the
regular endpoints. Access is checked once, when the stream opens.
"""

import json
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import Request

from api.core.realtime import ChangeFeed
from api.utils.logger import get_logger

logger = get_logger(__name__)


async def event_stream(
    feed: ChangeFeed, request: Request, *channels: str
) -> AsyncIterator[str]:
    """Relay change events on `channels` as SSE frames until the client leaves."""
    yield f"event: ready\ndata: {json.dumps({'channels': list(channels)})}\n\n"

    async with aclosing(feed.subscribe(*channels)) as events:
        async for event in events:
            if await request.is_disconnected():
                logger.debug(f"SSE client left {channels}")
                break
            if event is None:
                yield ": keepalive\n\n"
                continue
            yield f"event: {event.get('resource', 'change')}\ndata: {json.dumps(event)}\n\n"
