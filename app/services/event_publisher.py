"""
Event publisher for realtime pushes.

In-process pub/sub keyed by channel name. SSE and WebSocket connections
subscribe to channels such as ``user:12`` or ``post:40``; services publish
notifications, unread counters, like/comment activity and family events
on ``family-events:<code>``.

Delivery is fire-and-forget: events for channels without subscribers are
dropped, and a subscriber whose queue is full misses the event.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncGenerator, Dict, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event types pushed to clients."""
    NOTIFICATION = "notification"
    UNREAD_COUNT = "unread_count"
    POST_LIKE = "post_like"
    POST_COMMENT = "post_comment"
    GALLERY_LIKE = "gallery_like"
    GALLERY_COMMENT = "gallery_comment"
    FAMILY_EVENT_CREATED = "family_event_created"
    FAMILY_EVENT_UPDATED = "family_event_updated"
    FAMILY_EVENT_DELETED = "family_event_deleted"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


def post_channel(post_id: int) -> str:
    return f"post:{post_id}"


def gallery_channel(gallery_id: int) -> str:
    return f"gallery:{gallery_id}"


def family_events_channel(family_code: str) -> str:
    return f"family-events:{family_code.upper()}"


@dataclass
class Event:
    """
    Event pushed to subscribers.

    Attributes:
        type: Event type (see EventType)
        channel: Channel the event is published on
        data: JSON-serializable payload
        timestamp: Creation time (UTC)
    """
    type: EventType
    channel: str
    data: Dict[str, Any]
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        event_dict = asdict(self)
        if isinstance(event_dict.get("timestamp"), datetime):
            event_dict["timestamp"] = event_dict["timestamp"].isoformat()
        if isinstance(event_dict.get("type"), EventType):
            event_dict["type"] = event_dict["type"].value
        return event_dict

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_sse(self) -> Dict[str, str]:
        """Mapping accepted by sse_starlette's EventSourceResponse."""
        return {"event": self.type.value, "data": self.to_json()}


class EventPublisher:
    """
    Singleton in-memory publisher using one asyncio.Queue per subscriber.
    """

    _instance: Optional['EventPublisher'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        # channel -> subscriber queues (one per open connection)
        self._subscribers: Dict[str, list[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()

        self._initialized = True
        logger.info("EventPublisher initialized")

    async def subscribe(self, *channels: str) -> AsyncGenerator[Event, None]:
        """
        Subscribe one connection to one or more channels.

        Yields events as they are published; on exit (disconnect or
        cancellation) the queue is detached from every channel.

        Example:
            async for event in publisher.subscribe("user:12", "post:40"):
                await websocket.send_text(event.to_json())
        """
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=100)

        async with self._lock:
            for channel in channels:
                self._subscribers.setdefault(channel, []).append(queue)

        logger.info("New realtime subscriber", extra={"channels": list(channels)})

        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                except asyncio.TimeoutError:
                    # Keepalive is handled by the transport
                    continue
                yield event
        finally:
            async with self._lock:
                for channel in channels:
                    queues = self._subscribers.get(channel)
                    if not queues:
                        continue
                    if queue in queues:
                        queues.remove(queue)
                    if not queues:
                        del self._subscribers[channel]
            logger.info("Realtime subscriber removed", extra={"channels": list(channels)})

    async def publish(self, event: Event) -> int:
        """
        Publish an event to every subscriber of its channel.

        Returns:
            Number of subscribers that received the event
        """
        async with self._lock:
            subscribers = list(self._subscribers.get(event.channel, []))

        if not subscribers:
            return 0

        delivered = 0
        for queue in subscribers:
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Subscriber queue full, event dropped",
                    extra={"channel": event.channel, "event_type": event.type.value},
                )
        return delivered

    async def publish_to_user(self, user_id: int, event_type: EventType, data: Dict[str, Any]) -> int:
        return await self.publish(Event(type=event_type, channel=user_channel(user_id), data=data))

    async def publish_notification(self, user_id: int, notification: Dict[str, Any]) -> int:
        return await self.publish_to_user(user_id, EventType.NOTIFICATION, notification)

    async def publish_unread_count(self, user_id: int, count: int) -> int:
        return await self.publish_to_user(user_id, EventType.UNREAD_COUNT, {"count": count})

    async def publish_post_activity(self, post_id: int, event_type: EventType, data: Dict[str, Any]) -> int:
        return await self.publish(Event(type=event_type, channel=post_channel(post_id), data=data))

    async def publish_gallery_activity(self, gallery_id: int, event_type: EventType, data: Dict[str, Any]) -> int:
        return await self.publish(Event(type=event_type, channel=gallery_channel(gallery_id), data=data))

    async def publish_family_event(self, family_code: str, event_type: EventType, data: Dict[str, Any]) -> int:
        return await self.publish(Event(type=event_type, channel=family_events_channel(family_code), data=data))

    def get_subscriber_count(self, channel: Optional[str] = None) -> int:
        if channel:
            return len(self._subscribers.get(channel, []))
        return sum(len(subs) for subs in self._subscribers.values())

    def channel_counts(self) -> Dict[str, int]:
        return {channel: len(queues) for channel, queues in self._subscribers.items()}


# Global singleton instance
event_publisher = EventPublisher()
