"""
Notification badge endpoints

HTTP:
    GET  /api/v1/notifications/counts    current counts (live session, else recomputed)
    POST /api/v1/notifications/refresh   recompute and return counts
    POST /api/v1/notifications/read      optimistic mark-as-read (live WebSocket session only)

WebSocket:
    WS /api/v1/notifications/ws?token=<jwt>

    Server frames:
    - {"type": "counts", "data": {messages, rfis, documents, tenders, total, connection_status}}
    - {"type": "pong"}
    - {"type": "error", "data": {"message": "..."}}

    Client frames:
    - {"type": "ping"}
    - {"type": "refresh"}
    - {"type": "mark_as_read", "data": {"type": "messages", "entity_id": "..."}}
    - {"type": "mark_all_as_read", "data": {"type": "messages"}}
"""

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect

from sitepulse.core.exceptions import InvalidTokenError
from sitepulse.core.logging_config import logger
from sitepulse.core.security import get_current_user_id, user_id_from_token
from sitepulse.schemas.notifications import (
    CountsMessage,
    MarkAsReadRequest,
    MarkAsReadResponse,
    NotificationCounts,
    NotificationCountsResponse,
)
from sitepulse.services.notification_service import NotificationAggregator, NotificationHub


router = APIRouter()


def get_notification_hub(request: Request) -> NotificationHub:
    return request.app.state.notification_hub


def _counts_response(aggregator: NotificationAggregator) -> NotificationCountsResponse:
    counts = aggregator.counts
    return NotificationCountsResponse(
        counts=counts,
        total=counts.total,
        connection_status=aggregator.connection_status.value,
    )


def _counts_frame(counts: NotificationCounts, aggregator: NotificationAggregator) -> Dict[str, Any]:
    return CountsMessage(data={
        **counts.model_dump(),
        "total": counts.total,
        "connection_status": aggregator.connection_status.value,
    }).model_dump()


@router.get("/counts", response_model=NotificationCountsResponse)
async def get_counts(
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """
    Unread/new counts for the authenticated user.

    A live aggregator is already kept fresh by realtime changes and holds any
    optimistic decrements, so its counts are returned as they are; otherwise
    the counts are computed on demand.
    """
    live = hub.get(user_id)
    if live is not None:
        return _counts_response(live)

    async with hub.borrow(user_id) as aggregator:
        return _counts_response(aggregator)


@router.post("/refresh", response_model=NotificationCountsResponse)
async def refresh_counts(
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """Recompute every badge from the store"""
    async with hub.borrow(user_id) as aggregator:
        await aggregator.refresh_counts()
        return _counts_response(aggregator)


@router.post("/read", response_model=MarkAsReadResponse)
async def mark_as_read(
    request: MarkAsReadRequest,
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """
    Optimistically decrement one badge on the user's live aggregator.

    Decrements are held in memory by the aggregator behind an open WebSocket
    session. Without one there is nothing to apply them to: the request is
    answered with accepted=False and freshly computed counts.
    """
    live = hub.get(user_id)
    if live is not None:
        accepted = live.mark_as_read(request.type, request.entity_id)
        return MarkAsReadResponse(accepted=accepted, counts=live.counts)

    logger.debug(f"[Notifications] mark_as_read for {user_id} ignored: no live session")
    async with hub.borrow(user_id) as aggregator:
        return MarkAsReadResponse(accepted=False, counts=aggregator.counts)


async def _pump(websocket: WebSocket, queue: "asyncio.Queue[Dict[str, Any]]") -> None:
    """Single writer for the socket"""
    while True:
        frame = await queue.get()
        await websocket.send_json(frame)


@router.websocket("/ws")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(...)
):
    """Live badge counts for the token's user"""
    try:
        user_id = user_id_from_token(token)
    except InvalidTokenError:
        await websocket.close(code=4001, reason="Invalid or expired token")
        return

    hub: NotificationHub = websocket.app.state.notification_hub
    await websocket.accept()

    aggregator = await hub.acquire(user_id)
    queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def on_counts(counts: NotificationCounts) -> None:
        queue.put_nowait(_counts_frame(counts, aggregator))

    aggregator.add_listener(on_counts)
    sender = asyncio.create_task(_pump(websocket, queue))
    queue.put_nowait(_counts_frame(aggregator.counts, aggregator))
    logger.info(f"[Notifications] WebSocket connected: user {user_id}")

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                queue.put_nowait({"type": "error", "data": {"message": "Invalid JSON"}})
                continue

            message_type = message.get("type", "") if isinstance(message, dict) else ""
            payload = (message.get("data") or {}) if isinstance(message, dict) else {}
            if not isinstance(payload, dict):
                payload = {}

            if message_type == "ping":
                queue.put_nowait({"type": "pong"})

            elif message_type == "refresh":
                await aggregator.refresh_counts()
                queue.put_nowait(_counts_frame(aggregator.counts, aggregator))

            elif message_type == "mark_as_read":
                if not aggregator.mark_as_read(payload.get("type"), payload.get("entity_id")):
                    queue.put_nowait({"type": "error", "data": {"message": "Unknown notification type"}})

            elif message_type == "mark_all_as_read":
                if not aggregator.mark_all_as_read(payload.get("type")):
                    queue.put_nowait({"type": "error", "data": {"message": "Unknown notification type"}})

            else:
                queue.put_nowait({"type": "error", "data": {"message": f"Unknown message type: {message_type}"}})

    except WebSocketDisconnect:
        logger.info(f"[Notifications] WebSocket disconnected: user {user_id}")
    finally:
        aggregator.remove_listener(on_counts)
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, Exception):
            pass
        await hub.release(user_id)
