"""
Change feed WebSocket.

Relays row-change events of one restaurant to a staff view. Clients treat
each event as "something changed" and refetch the affected view.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from shared.config.logging import rest_api_logger as logger
from shared.infrastructure.events import WATCHED_TABLES, RealtimeNotifier
from shared.security.auth import staff_restaurant_id, ws_auth_context
from shared.utils.exceptions import AppException
from rest_api.core.dependencies import get_notifier

router = APIRouter(tags=["realtime"])

# Maximum inbound message size; clients only send heartbeats
MAX_MESSAGE_SIZE = 64 * 1024


def parse_tables(raw: str | None) -> frozenset[str] | None:
    """Comma-separated table names; None selects every watched table."""
    if not raw:
        return None
    selected = frozenset(name.strip() for name in raw.split(",") if name.strip())
    unknown = selected - WATCHED_TABLES
    if unknown:
        raise ValueError(f"Unknown change tables: {', '.join(sorted(unknown))}")
    return selected or None


async def _forward(websocket: WebSocket, notifier: RealtimeNotifier, restaurant_id: int, tables) -> None:
    async with aclosing(notifier.subscribe(restaurant_id, tables)) as events:
        async for event in events:
            await websocket.send_text(event.to_json())


async def _receive(websocket: WebSocket, user_id: int) -> None:
    while True:
        data = await websocket.receive_text()
        if len(data) > MAX_MESSAGE_SIZE:
            logger.warning("Message size exceeded limit", user_id=user_id, size=len(data))
            await websocket.close(code=1009, reason="Message too large")
            return
        if data == "ping":
            await websocket.send_text("pong")
        elif data == '{"type":"ping"}':
            await websocket.send_text('{"type":"pong"}')
        else:
            logger.debug("Unknown message on change feed", user_id=user_id, message=data[:100])


@router.websocket("/ws/changes")
async def changes_feed(
    websocket: WebSocket,
    token: str = Query(..., description="Staff JWT"),
    tables: str | None = Query(default=None, description="Comma-separated table names"),
    restaurant_id: int | None = Query(default=None),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """
    Stream change events for the caller's restaurant.

    Close codes: 4001 bad token, 4003 restaurant not accessible,
    4400 unknown table name.
    """
    try:
        ctx = ws_auth_context(token)
        rid = staff_restaurant_id(ctx, restaurant_id)
    except AppException as e:
        await websocket.close(code=4001 if e.status_code == 401 else 4003, reason=str(e.detail))
        return

    try:
        selected = parse_tables(tables)
    except ValueError as e:
        await websocket.close(code=4400, reason=str(e))
        return

    await websocket.accept()
    logger.info(
        "Change feed connected",
        user_id=ctx["user_id"],
        restaurant_id=rid,
        tables=sorted(selected) if selected else "all",
    )

    forward = asyncio.create_task(_forward(websocket, notifier, rid, selected))
    receive = asyncio.create_task(_receive(websocket, ctx["user_id"]))
    try:
        done, pending = await asyncio.wait({forward, receive}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error("Change feed failed", user_id=ctx["user_id"], error=str(error))
    finally:
        logger.info("Change feed disconnected", user_id=ctx["user_id"], restaurant_id=rid)
