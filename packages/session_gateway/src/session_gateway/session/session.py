"""
Session

One state machine per tenant. A session owns its transport adapter and is
the only consumer of the adapter's event channel: a single task reads the
events in emission order and dispatches each one by type. Commands (send,
set status, logout) come from request handlers and are accepted only while
the session is Ready.

Persistence from event handlers is fire-and-forget; nothing a background
write does can change the session state or hold up teardown.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from session_gateway.contracts.event_types import SessionEventType
from session_gateway.errors import (
    AuthFailure,
    NotReady,
    PersistenceFailure,
    QrTimeout,
    TransportDisconnected,
    TransportFailure,
)
from session_gateway.persistence.credentials import CredentialStore
from session_gateway.persistence.gateway import PersistenceGateway
from session_gateway.persistence.models import ClientStatus
from session_gateway.session.state import SessionCommand, SessionState, next_state
from session_gateway.streams.producer import SessionEventProducer
from session_gateway.sync.engine import SyncEngine
from session_gateway.transport.base import (
    InboundMessage,
    SendAck,
    TransportAdapter,
    TransportEvent,
    TransportEventType,
)

logger = logging.getLogger(__name__)


class Session:
    """
    Session for one tenant.

    Lifecycle:
        session = Session(...)
        await session.start()
        qr = await session.wait_for_qr(timeout)   # None: already authenticated
        ...
        await session.logout()  # or the transport disconnects
    """

    def __init__(
        self,
        tenant_id: str,
        transport: TransportAdapter,
        persistence: PersistenceGateway,
        sync_engine: SyncEngine | None = None,
        credentials: CredentialStore | None = None,
        publisher: SessionEventProducer | None = None,
        on_closed: Callable[["Session"], Awaitable[Any]] | None = None,
    ):
        self.tenant_id = tenant_id
        self.transport = transport
        self.persistence = persistence
        self.sync_engine = sync_engine
        self.credentials = credentials
        self.publisher = publisher
        self.on_closed = on_closed

        self.state = SessionState.INITIALIZING
        self.phone_number: str | None = None
        self.status_message: str | None = None

        self._qr_waiter: asyncio.Future | None = None
        self._task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._closed = asyncio.Event()
        self._logging_out = False

        self._handlers = {
            TransportEventType.QR: self._on_qr,
            TransportEventType.AUTHENTICATED: self._on_authenticated,
            TransportEventType.READY: self._on_ready,
            TransportEventType.MESSAGE: self._on_message,
            TransportEventType.AUTH_FAILURE: self._on_auth_failure,
            TransportEventType.DISCONNECTED: self._on_disconnected,
        }

    def __repr__(self):
        return f"<Session {self.tenant_id} {self.state}>"

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Start consuming transport events and begin connecting.

        Raises:
            TransportFailure: The transport could not start connecting
        """
        self._qr_waiter = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._run(), name=f"session-{self.tenant_id}")

        logger.info("Initializing session", extra={"tenant_id": self.tenant_id})

        try:
            await self.transport.initialize()
        except TransportFailure as e:
            logger.error(
                f"Transport failed to initialize: {e}",
                extra={"tenant_id": self.tenant_id},
            )
            await self._finish(SessionState.AUTH_FAILED, str(e))
            raise

    async def wait_for_qr(self, timeout: float) -> str | None:
        """
        Wait for the first QR payload.

        Returns:
            The QR payload, or None when the session authenticated without one

        Raises:
            AuthFailure / TransportDisconnected: The session ended first
            QrTimeout: Nothing happened within timeout; the session is aborted
        """
        if self._qr_waiter is None:
            raise RuntimeError("Session not started")

        try:
            return await asyncio.wait_for(self._qr_waiter, timeout)
        except asyncio.TimeoutError:
            await self.abort("QR code was not generated in time")
            raise QrTimeout(f"No QR code for {self.tenant_id} after {timeout:g}s")

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def wait_background(self) -> None:
        """Wait for pending background work (persistence, sync, publishing)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def abort(self, reason: str) -> None:
        """Give up on the session as an authentication failure."""
        if self.state.terminal:
            return
        logger.warning("Aborting session", extra={"tenant_id": self.tenant_id, "reason": reason})
        await self._finish(SessionState.AUTH_FAILED, reason)

    async def shutdown(self) -> None:
        """End the session for process shutdown, without logging out."""
        target = next_state(self.state, SessionCommand.SHUTDOWN)
        if target is None:
            return
        if self.state == SessionState.READY:
            await self.persistence.update_client_status(self.tenant_id, ClientStatus.DISCONNECTED.value)
        await self._finish(target, "shutdown")
        await self.wait_background()

    async def _run(self) -> None:
        try:
            async for event in self.transport.events():
                try:
                    await self.handle_event(event)
                except Exception as e:
                    logger.error(
                        f"Failed to handle {event.type} event: {e}",
                        extra={"tenant_id": self.tenant_id, "event": event.type.value},
                        exc_info=True,
                    )
                if self.state.terminal:
                    break
        finally:
            if not self.state.terminal and not self._logging_out:
                await self._finish(SessionState.DISCONNECTED, "event channel closed")

    async def handle_event(self, event: TransportEvent) -> bool:
        """
        Apply one transport event.

        Returns:
            False when the event is not allowed in the current state
        """
        target = next_state(self.state, event.type)
        if target is None:
            log = logger.debug if self.state.terminal else logger.warning
            log(
                "Ignoring event",
                extra={"tenant_id": self.tenant_id, "state": self.state.value, "event": event.type.value},
            )
            return False

        await self._handlers[event.type](target, event.data)
        return True

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _on_qr(self, target: SessionState, data: dict[str, Any]) -> None:
        payload = data["payload"]
        refresh = self.state == SessionState.AWAITING_SCAN
        self._set_state(target)

        if self._qr_waiter is not None and not self._qr_waiter.done():
            self._qr_waiter.set_result(payload)

        self._spawn(self.persistence.save_qr(self.tenant_id, payload))
        self._publish(SessionEventType.SESSION_QR_RECEIVED, {"refresh": refresh})

    async def _on_authenticated(self, target: SessionState, data: dict[str, Any]) -> None:
        self._set_state(target)

        if self._qr_waiter is not None and not self._qr_waiter.done():
            self._qr_waiter.set_result(None)

        self._publish(SessionEventType.SESSION_AUTHENTICATED)

    async def _on_ready(self, target: SessionState, data: dict[str, Any]) -> None:
        self.phone_number = data.get("phone_number") or self.phone_number

        try:
            await self.persistence.upsert_client(
                self.tenant_id, ClientStatus.READY.value, self.phone_number
            )
        except PersistenceFailure as e:
            logger.error(
                f"Failed to record ready client: {e}",
                extra={"tenant_id": self.tenant_id},
                exc_info=True,
            )

        # Shut down while the record was being written
        if self.state.terminal:
            return

        self._set_state(target)
        self._publish(SessionEventType.SESSION_READY, {"phone_number": self.phone_number})

        if self.sync_engine is not None:
            self._spawn(self._sync_roster())

    async def _on_message(self, target: SessionState, data: dict[str, Any]) -> None:
        message: InboundMessage = data["message"]

        self._spawn(
            self.persistence.log_message(
                self.tenant_id, message.from_number, message.body, message.timestamp
            )
        )
        self._publish(
            SessionEventType.MESSAGE_RECEIVED,
            {
                "message_id": message.message_id,
                "from_number": message.from_number,
                "body": message.body,
                "message_type": message.message_type,
            },
        )

    async def _on_auth_failure(self, target: SessionState, data: dict[str, Any]) -> None:
        await self._finish(target, data.get("reason"))

    async def _on_disconnected(self, target: SessionState, data: dict[str, Any]) -> None:
        if self.state == SessionState.READY:
            await self.persistence.update_client_status(self.tenant_id, ClientStatus.DISCONNECTED.value)
        await self._finish(target, data.get("reason"))

    async def _sync_roster(self) -> None:
        report = await self.sync_engine.sync(self.tenant_id, self.transport)
        self._publish(SessionEventType.ROSTER_SYNCED, report.to_dict())

    # =========================================================================
    # Commands
    # =========================================================================

    async def send_message(self, peer_number: str, body: str) -> SendAck:
        """
        Send a text message and log it.

        Raises:
            NotReady: Session is not Ready (nothing is sent or logged)
            PeerUnregistered / SendFailed: The transport refused the send
        """
        self._require_ready()

        ack = await self.transport.send_message(peer_number, body)

        await self.persistence.log_message(self.tenant_id, peer_number, body)
        self._publish(SessionEventType.MESSAGE_SENT, {"to": peer_number, "message_id": ack.message_id})
        return ack

    async def send_media(
        self,
        peer_number: str,
        data: bytes,
        mime_type: str,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendAck:
        """Send a media message; the log body is the caption or "[<mime>]"."""
        self._require_ready()

        ack = await self.transport.send_media(peer_number, data, mime_type, caption, file_name)

        await self.persistence.log_message(self.tenant_id, peer_number, caption or f"[{mime_type}]")
        self._publish(
            SessionEventType.MESSAGE_SENT,
            {"to": peer_number, "message_id": ack.message_id, "mime_type": mime_type},
        )
        return ack

    async def set_status(self, text: str) -> None:
        self._require_ready()

        await self.transport.set_status(text)

        self.status_message = text
        await self.persistence.update_status_message(self.tenant_id, text)

    async def logout(self) -> None:
        """
        Log the account out.

        On success the client is marked logged_out, the session ends and its
        stored credentials are removed in the background. On failure the
        session stays Ready.

        Raises:
            NotReady: Session is not Ready
            LogoutFailed: The transport refused
        """
        self._require_ready()

        # The transport closes its channel on logout; the event loop must not
        # read that as a disconnect
        self._logging_out = True
        try:
            await self.transport.logout()
        except TransportFailure:
            self._logging_out = False
            if self.transport.terminated:
                await self._finish(SessionState.DISCONNECTED, "logout failed")
            raise

        await self.persistence.update_client_status(self.tenant_id, ClientStatus.LOGGED_OUT.value)
        target = next_state(self.state, SessionCommand.LOGOUT)
        if target is not None:
            await self._finish(target, "logout")

        if self.credentials is not None:
            self._spawn(self.credentials.remove(self.tenant_id))

    def _require_ready(self) -> None:
        if self.state != SessionState.READY:
            raise NotReady(f"Client {self.tenant_id} is not ready", details={"state": self.state.value})

    # =========================================================================
    # Internals
    # =========================================================================

    def _set_state(self, state: SessionState) -> None:
        if state == self.state:
            return
        logger.info(
            "Session state changed",
            extra={"tenant_id": self.tenant_id, "from_state": self.state.value, "state": state.value},
        )
        self.state = state

    async def _finish(self, state: SessionState, reason: str | None = None) -> None:
        """Enter a terminal state and release the transport. Runs once."""
        if self.state.terminal:
            return
        self._set_state(state)

        if self._qr_waiter is not None and not self._qr_waiter.done():
            if state == SessionState.AUTH_FAILED:
                self._qr_waiter.set_exception(AuthFailure(reason or "authentication failed"))
            else:
                self._qr_waiter.set_exception(TransportDisconnected(reason or "disconnected"))

        event_type = {
            SessionState.AUTH_FAILED: SessionEventType.SESSION_AUTH_FAILED,
            SessionState.DISCONNECTED: SessionEventType.SESSION_DISCONNECTED,
            SessionState.LOGGED_OUT: SessionEventType.SESSION_LOGGED_OUT,
        }[state]
        self._publish(event_type, {"reason": reason})

        await self.transport.close()
        self._closed.set()

        if self.on_closed is not None:
            await self.on_closed(self)

    def _publish(self, event_type: SessionEventType, payload: dict[str, Any] | None = None) -> None:
        if self.publisher is None:
            return
        self._spawn(self.publisher.publish_safely(event_type, self.tenant_id, payload))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task failed: {error}",
                extra={"tenant_id": self.tenant_id},
                exc_info=error,
            )
