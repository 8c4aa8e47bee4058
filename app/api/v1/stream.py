"""
Realtime endpoints: Server-Sent Events and WebSocket.

Both transports subscribe to the same in-process event publisher.

Endpoints:
- GET /api/v1/stream?post_id=&gallery_id=&family_code=  (SSE, bearer token)
- WS  /api/v1/ws?token=<jwt>
- GET /api/v1/stream/status

Events pushed:
- notification: a new notification for the user
- unread_count: the user's unread notification counter changed
- post_like / post_comment: activity on a subscribed post
- gallery_like / gallery_comment: activity on a subscribed gallery
- family_event_created / _updated / _deleted: events of a subscribed family
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect, status
from sse_starlette import EventSourceResponse

from app.api.dependencies import CurrentUser
from app.core.database import session_scope
from app.core.errors import ForbiddenError
from app.core.security import decode_access_token
from app.models.user import STATUS_SUSPENDED, User
from app.services.event_publisher import (
    event_publisher,
    family_events_channel,
    gallery_channel,
    post_channel,
    user_channel,
)
from app.services.family_access import FamilyAccessService

logger = logging.getLogger(__name__)

router = APIRouter()


def _channels_for(
    user_id: int,
    post_id: Optional[int],
    gallery_id: Optional[int],
    family_code: Optional[str] = None,
) -> list[str]:
    channels = [user_channel(user_id)]
    if post_id is not None:
        channels.append(post_channel(post_id))
    if gallery_id is not None:
        channels.append(gallery_channel(gallery_id))
    if family_code:
        channels.append(family_events_channel(family_code))
    return channels


async def _can_follow_family(user_id: int, family_code: str) -> bool:
    async with session_scope() as session:
        access = FamilyAccessService(session)
        user = await session.get(User, user_id)
        if user is None:
            return False
        visible = await access.visible_family_codes(user)
        blocked = await access.blocked_family_codes(user_id)
    return family_code.upper() in visible - blocked


@router.get(
    "/stream",
    summary="SSE event stream",
    description="Server-Sent Events stream of the caller's notifications and post/gallery activity",
    response_class=EventSourceResponse,
)
async def event_stream(
    request: Request,
    current_user: CurrentUser,
    post_id: Optional[int] = Query(None, description="Also receive likes/comments for this post"),
    gallery_id: Optional[int] = Query(None, description="Also receive likes/comments for this gallery"),
    family_code: Optional[str] = Query(None, description="Also receive events of this family"),
) -> EventSourceResponse:
    """
    Open a persistent SSE connection.

    Keepalive pings are sent every 30 seconds; the browser's EventSource
    reconnects on its own after a drop.

    **Example Event:**
    ```
    event: unread_count
    data: {"type": "unread_count", "channel": "user:12", "data": {"count": 3}, "timestamp": "..."}
    ```
    """
    if family_code and not await _can_follow_family(current_user.id, family_code):
        raise ForbiddenError("Access denied: you are not connected to this family")
    channels = _channels_for(current_user.id, post_id, gallery_id, family_code)
    logger.info("SSE client connected", extra={"user_id": current_user.id, "channels": channels})

    async def event_generator():
        try:
            async for event in event_publisher.subscribe(*channels):
                if await request.is_disconnected():
                    break
                yield event.to_sse()
        except asyncio.CancelledError:
            logger.info("SSE stream cancelled", extra={"user_id": current_user.id})
            raise
        finally:
            logger.info("SSE stream ended", extra={"user_id": current_user.id})

    return EventSourceResponse(
        event_generator(),
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
        ping=30,
    )


async def _user_from_token(token: str) -> Optional[User]:
    token_data = decode_access_token(token)
    if token_data is None or token_data.is_admin:
        return None
    try:
        user_id = int(token_data.sub)
    except ValueError:
        return None
    async with session_scope() as session:
        user = await session.get(User, user_id)
    if user is None or user.status == STATUS_SUSPENDED:
        return None
    return user


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    post_id: Optional[int] = Query(None),
    gallery_id: Optional[int] = Query(None),
    family_code: Optional[str] = Query(None),
) -> None:
    """
    WebSocket variant of ``/stream``. Events are sent as JSON text frames;
    messages from the client are read only to detect disconnects.
    """
    user = await _user_from_token(token)
    if user is None or (family_code and not await _can_follow_family(user.id, family_code)):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    channels = _channels_for(user.id, post_id, gallery_id, family_code)
    logger.info("WebSocket client connected", extra={"user_id": user.id, "channels": channels})

    async def forward() -> None:
        async for event in event_publisher.subscribe(*channels):
            await websocket.send_text(event.to_json())

    async def drain() -> None:
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(forward()), asyncio.create_task(drain())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("WebSocket stream failed", extra={"user_id": user.id, "error": str(exc)})
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("WebSocket client disconnected", extra={"user_id": user.id})


@router.get(
    "/stream/status",
    summary="Stream connection status",
    description="Current realtime subscriber counts",
)
async def stream_status(
    channel: Optional[str] = Query(None, description="Channel to check, e.g. user:12"),
) -> dict:
    """
    Example response (global):
        {"total_subscribers": 3, "channels": {"user:12": 2, "post:40": 1}}
    """
    if channel:
        return {"channel": channel, "subscriber_count": event_publisher.get_subscriber_count(channel)}
    return {
        "total_subscribers": event_publisher.get_subscriber_count(),
        "channels": event_publisher.channel_counts(),
    }
