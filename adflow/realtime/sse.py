"""ADFLOW — Live Campaign Status Stream.

Server-sent events for campaign status changes. The dispatcher publishes
after every committed transition; each subscriber only receives events of
its own tenant. Delivery is best effort: a slow client drops the oldest
queued events instead of holding up the publisher.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict

from adflow.core.logging import get_logger
from adflow.models.campaign_models import Campaign

logger = get_logger("realtime.sse")

CAMPAIGN_UPDATE_EVENT = "campaign:update"
KEEPALIVE_SECONDS = 25.0
QUEUE_SIZE = 100

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event_type: str, data: Dict[str, Any]) -> str:
    """Format a single SSE event."""
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n"


def format_sse_comment(comment: str = "keep-alive") -> str:
    return f": {comment}\n\n"


def campaign_snapshot(campaign: Campaign) -> Dict[str, Any]:
    """Fields a status listener needs. Attribute access reloads expired rows."""
    return {
        "id": campaign.id,
        "tenant_id": campaign.tenant_id,
        "name": campaign.name,
        "objective": campaign.objective,
        "status": campaign.status,
        "status_detail": campaign.status_detail,
        "updated_at": campaign.updated_at.isoformat() if campaign.updated_at else None,
    }


@dataclass
class Subscription:
    tenant_id: int
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=QUEUE_SIZE))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


def _offer(queue: asyncio.Queue, event: Dict[str, Any]) -> None:
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(event)


class CampaignBroadcaster:
    """In-process fan-out of campaign updates to SSE subscribers.

    ``publish`` may be called from the event loop or from a worker thread
    (scheduler jobs); events are handed to each subscriber's loop.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}

    def subscribe(self, tenant_id: int) -> Subscription:
        subscription = Subscription(tenant_id=tenant_id, loop=asyncio.get_running_loop())
        self._subscriptions[subscription.id] = subscription
        logger.info("Campaign stream opened", extra={"tenant_id": tenant_id})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.info("Campaign stream closed", extra={"tenant_id": subscription.tenant_id})

    def subscriber_count(self, tenant_id: int) -> int:
        return sum(1 for s in self._subscriptions.values() if s.tenant_id == tenant_id)

    def publish(self, tenant_id: int, campaign: Campaign) -> None:
        targets = [s for s in self._subscriptions.values() if s.tenant_id == tenant_id]
        if not targets:
            return
        event = {"event": CAMPAIGN_UPDATE_EVENT, "data": campaign_snapshot(campaign)}
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(_offer, subscription.queue, event)
            except RuntimeError:
                # Loop already closed; the stream is gone.
                self.unsubscribe(subscription)


broadcaster = CampaignBroadcaster()


async def campaign_event_stream(
    subscription: Subscription,
    is_disconnected: Callable[[], Awaitable[bool]],
    source: CampaignBroadcaster = broadcaster,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield SSE frames for ``subscription`` until the client goes away."""
    try:
        yield format_sse("connected", {"id": subscription.id})
        while True:
            try:
                event = await asyncio.wait_for(subscription.queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    break
                yield format_sse_comment()
                continue
            yield format_sse(event["event"], event["data"])
    finally:
        source.unsubscribe(subscription)
