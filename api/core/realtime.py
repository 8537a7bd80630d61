"""
Realtime change feed over Redis pub/sub.

Publishers announce "this resource changed"; they never ship the new state.
Subscribers (the SSE endpoints) forward the signal and the client refetches
through the normal read endpoints. Delivery and refetch stay decoupled.

Channels:
    notifications:{user_id}   a user's inbox changed
    ticket:{ticket_id}        a ticket, its comments or its activity changed
    org:{organization_id}     some ticket in the organization changed
"""

import json
import uuid
from typing import Any, AsyncIterator, Dict, Optional

import redis.asyncio as redis
from pydantic import BaseModel, Field

from api.core.cache import CacheManager
from api.db.base_model import utcnow
from api.utils.logger import get_logger

logger = get_logger(__name__)

KEEPALIVE_SECONDS = 15.0


class ChangeEvent(BaseModel):
    """The whole payload of a realtime message."""
    resource: str = Field(..., description="ticket | comment | notification | activity")
    event: str = Field(..., description="created | updated | deleted | status_changed | ...")
    id: str
    ticket_id: Optional[str] = None
    at: str = Field(default_factory=lambda: utcnow().isoformat())


def notifications_channel(user_id: Any) -> str:
    return f"notifications:{user_id}"


def ticket_channel(ticket_id: Any) -> str:
    return f"ticket:{ticket_id}"


def organization_channel(organization_id: Any) -> str:
    return f"org:{organization_id}"


class ChangeFeed:
    """
    Publishes change signals and invalidates the stats cache alongside.

    Publishing is best effort: a Redis outage is logged and the request
    that caused the change still succeeds.
    """

    def __init__(self, url: str, cache: CacheManager):
        self.redis = redis.from_url(url, decode_responses=True)
        self.cache = cache

    async def publish(self, channel: str, event: ChangeEvent) -> None:
        try:
            await self.redis.publish(channel, event.model_dump_json())
            logger.debug(f"Published {event.resource}.{event.event} on {channel}")
        except Exception as e:
            logger.error(f"Realtime publish failed on {channel}: {e}")

    async def ticket_changed(
        self,
        organization_id: uuid.UUID,
        ticket_id: uuid.UUID,
        event: str,
        resource: str = "ticket",
        resource_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Signal a ticket-level change and drop the tenant's cached stats."""
        payload = ChangeEvent(
            resource=resource,
            event=event,
            id=str(resource_id or ticket_id),
            ticket_id=str(ticket_id),
        )
        await self.publish(ticket_channel(ticket_id), payload)
        await self.publish(organization_channel(organization_id), payload)
        await self.cache.invalidate_organization(str(organization_id))

    async def notification_created(self, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
        await self.publish(
            notifications_channel(user_id),
            ChangeEvent(resource="notification", event="created", id=str(notification_id)),
        )

    async def subscribe(self, *channels: str) -> AsyncIterator[Optional[Dict[str, Any]]]:
        """
        Yield decoded events from the given channels.

        Yields None every KEEPALIVE_SECONDS of silence so the caller can
        send a heartbeat and notice a disconnected client.
        """
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(*channels)
        logger.debug(f"Subscribed to {channels}")
        try:
            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=KEEPALIVE_SECONDS
                )
                if message is None:
                    yield None
                    continue
                try:
                    decoded = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning(f"Dropping malformed realtime message on {message.get('channel')}")
                    continue
                yield decoded
        finally:
            await pubsub.unsubscribe(*channels)
            await pubsub.aclose()
            logger.debug(f"Unsubscribed from {channels}")

    async def close(self) -> None:
        await self.redis.aclose()
