"""Live notification hub: per-session fan-out over websocket connections.

One hub instance is created in the app lifespan and closed at shutdown.
Each connection is authenticated once when it registers; afterwards it
joins or leaves session groups explicitly. Delivery is fire-and-forget:
no acknowledgements, no replay for clients that subscribe late (they
fetch earlier feedback from the read endpoint instead).

A connection whose send fails is dropped from the registry; other
subscribers and the emitting pipeline are unaffected.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from codementor.auth.tokens import InvalidToken, Principal, TokenVerifier
from codementor.constants import ID_HEX_LENGTH, LiveEvent
from codementor.services.events import StatusEvent, envelope

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Transport seam; Starlette's ``WebSocket`` satisfies it."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


@dataclass
class LiveClient:
    client_id: str
    principal: Principal
    connection: Connection
    sessions: set[str] = field(default_factory=lambda: set[str]())


class NotificationHub:
    """Connection registry plus per-session subscriber sets.

    Mutations take ``_lock``; broadcasts snapshot the subscriber set
    under the lock and send outside it, so no lock is held while a
    socket write is pending.
    """

    def __init__(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier
        self._clients: dict[str, LiveClient] = {}
        self._groups: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    # ── Connection lifecycle ─────────────────────────────

    async def connect(
        self, connection: Connection, token: str | None
    ) -> LiveClient | None:
        """Verify *token* and register the connection.

        Returns None when the credential is missing or invalid; the
        caller closes the transport.
        """
        if self._closed:
            return None
        try:
            principal = self._verifier.verify(token)
        except InvalidToken as exc:
            logger.warning("event=ws_rejected reason=%s", exc)
            return None
        client = LiveClient(
            client_id=uuid.uuid4().hex[:ID_HEX_LENGTH],
            principal=principal,
            connection=connection,
        )
        async with self._lock:
            self._clients[client.client_id] = client
        logger.info(
            "event=ws_connected client_id=%s user_id=%s",
            client.client_id,
            principal.user_id,
        )
        return client

    async def disconnect(self, client_id: str) -> None:
        async with self._lock:
            self._drop_locked(client_id)
        logger.info("event=ws_disconnected client_id=%s", client_id)

    async def close(self) -> None:
        """Drop every connection; further connects are refused."""
        async with self._lock:
            self._closed = True
            self._clients.clear()
            self._groups.clear()

    # ── Subscriptions ────────────────────────────────────

    async def subscribe(self, client_id: str, session_id: str) -> bool:
        async with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return False
            client.sessions.add(session_id)
            self._groups.setdefault(session_id, set()).add(client_id)
        logger.debug(
            "event=ws_subscribe client_id=%s session_id=%s",
            client_id,
            session_id,
        )
        return True

    async def unsubscribe(self, client_id: str, session_id: str) -> bool:
        async with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return False
            client.sessions.discard(session_id)
            self._discard_member_locked(session_id, client_id)
        return True

    def subscriber_count(self, session_id: str) -> int:
        return len(self._groups.get(session_id, ()))

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    # ── Notifier ─────────────────────────────────────────

    async def emit_feedback(
        self, session_id: str, item: dict[str, Any]
    ) -> None:
        await self._broadcast(
            session_id, envelope(LiveEvent.FEEDBACK_UPDATE, item)
        )

    async def emit_status(
        self, session_id: str, status: str, message: str = ""
    ) -> None:
        await self._broadcast(
            session_id,
            envelope(
                LiveEvent.ANALYSIS_STATUS,
                StatusEvent(status, message).to_dict(),
            ),
        )

    async def _broadcast(
        self, session_id: str, frame: dict[str, Any]
    ) -> None:
        async with self._lock:
            targets = [
                self._clients[cid]
                for cid in self._groups.get(session_id, ())
                if cid in self._clients
            ]
        dead: list[str] = []
        for client in targets:
            try:
                await client.connection.send_json(frame)
            except Exception:
                logger.warning(
                    "event=ws_send_failed client_id=%s session_id=%s",
                    client.client_id,
                    session_id,
                    exc_info=True,
                )
                dead.append(client.client_id)
        if dead:
            async with self._lock:
                for cid in dead:
                    self._drop_locked(cid)

    # ── Internals (caller holds _lock) ───────────────────

    def _drop_locked(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        if client is None:
            return
        for session_id in client.sessions:
            self._discard_member_locked(session_id, client_id)

    def _discard_member_locked(
        self, session_id: str, client_id: str
    ) -> None:
        members = self._groups.get(session_id)
        if members is None:
            return
        members.discard(client_id)
        if not members:
            del self._groups[session_id]
