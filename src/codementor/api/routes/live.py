"""Live feedback channel (websocket).

Handshake: bearer token from ``?token=`` or the ``Authorization``
header. Rejected connections are accepted and immediately closed with
code 4401 so clients can tell auth failures from network errors.

Client frames: ``{"type": "subscribe-session" | "unsubscribe-session",
"session_id": ...}``, each answered with ``{"type": "ack", ...}``.
Server frames: ``{"event": "feedback-update" | "analysis-status",
"data": ...}`` pushed by the notification hub.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from codementor.api.hub import LiveClient, NotificationHub
from codementor.api.schemas import LiveMessage
from codementor.auth.tokens import bearer_token
from codementor.constants import WS_CLOSE_UNAUTHORIZED, ClientMessage
from codementor.resilience.errors import NotFound
from codementor.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _ack(success: bool, **extra: Any) -> dict[str, Any]:
    return {"type": "ack", "success": success, **extra}


@router.websocket("/ws/feedback")
async def live_feedback(websocket: WebSocket) -> None:
    hub: NotificationHub = websocket.app.state.hub
    service: SessionService = websocket.app.state.session_service

    token = websocket.query_params.get("token") or bearer_token(
        websocket.headers.get("authorization")
    )
    await websocket.accept()
    client = await hub.connect(websocket, token)
    if client is None:
        await websocket.close(
            code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized"
        )
        return

    try:
        while True:
            try:
                raw = await websocket.receive_json()
            except ValueError:
                await websocket.send_json(
                    _ack(False, error="Frames must be JSON objects")
                )
                continue
            await websocket.send_json(
                await _handle_message(hub, service, client, raw)
            )
    except WebSocketDisconnect as exc:
        logger.debug(
            "event=ws_closed client_id=%s code=%s",
            client.client_id,
            exc.code,
        )
    finally:
        await hub.disconnect(client.client_id)


async def _handle_message(
    hub: NotificationHub,
    service: SessionService,
    client: LiveClient,
    raw: Any,
) -> dict[str, Any]:
    try:
        message = LiveMessage.model_validate(raw)
    except ValidationError as exc:
        return _ack(
            False, error=f"Invalid message: {exc.error_count()} error(s)"
        )

    if message.type == ClientMessage.UNSUBSCRIBE:
        await hub.unsubscribe(client.client_id, message.session_id)
        return _ack(True, session_id=message.session_id)

    if not client.principal.is_admin:
        try:
            await service.get_session(client.principal, message.session_id)
        except NotFound:
            logger.info(
                "event=ws_subscribe_denied client_id=%s session_id=%s",
                client.client_id,
                message.session_id,
            )
            return _ack(
                False,
                session_id=message.session_id,
                error="Session not found",
            )
    await hub.subscribe(client.client_id, message.session_id)
    return _ack(True, session_id=message.session_id)
