"""
Gateway Service

The operations the HTTP layer (and any other caller) uses: initialize a
tenant's session, query its status, send, set status, log out, and route
Evolution webhooks to the owning session. Identifiers are validated here,
before any state changes.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from basecore.db import create_db_engine
from basecore.redis import get_redis_client
from basecore.settings import Settings, get_settings
from sqlalchemy.orm import sessionmaker

from session_gateway.errors import BadRequest, NotFound
from session_gateway.persistence.credentials import CredentialStore
from session_gateway.persistence.gateway import PersistenceGateway
from session_gateway.session.registry import SessionRegistry
from session_gateway.session.session import Session
from session_gateway.streams.producer import SessionEventProducer
from session_gateway.sync.engine import SyncEngine
from session_gateway.transport.base import SendAck, TransportAdapter
from session_gateway.transport.evolution import EvolutionTransport
from session_gateway.transport.evolution.webhook import extract_instance_name
from session_gateway.transport.factory import TransportFactory
from session_gateway.transport.peers import normalize_peer_number

logger = logging.getLogger(__name__)

# Tenant ids become directory and instance names
TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,255}$")


def validate_tenant_id(tenant_id: str | None) -> str:
    """
    Check a tenant id.

    Raises:
        BadRequest: Missing, or not usable as a directory name
    """
    if not tenant_id:
        raise BadRequest("clientId is required")
    if not TENANT_ID_PATTERN.match(tenant_id) or set(tenant_id) == {"."}:
        raise BadRequest(f"Invalid clientId: {tenant_id!r}")
    return tenant_id


@dataclass
class InitializeResult:
    """Outcome of initialize_session."""

    tenant_id: str
    qr_payload: str | None = None

    @property
    def already_authenticated(self) -> bool:
        return self.qr_payload is None


@dataclass
class SessionStatus:
    tenant_id: str
    state: str
    phone_number: str | None = None
    status_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.tenant_id,
            "state": self.state,
            "phone_number": self.phone_number,
            "status_message": self.status_message,
        }


class GatewayService:
    """
    Multi-tenant session gateway.

    One instance per process; it owns the registry of live sessions.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport_factory: Callable[[str], TransportAdapter],
        persistence: PersistenceGateway,
        sync_engine: SyncEngine | None = None,
        credentials: CredentialStore | None = None,
        publisher: SessionEventProducer | None = None,
        qr_wait_timeout: float = 150.0,
        tenant_for_instance: Callable[[str], str | None] | None = None,
    ):
        self.registry = registry
        self.transport_factory = transport_factory
        self.persistence = persistence
        self.sync_engine = sync_engine
        self.credentials = credentials
        self.publisher = publisher
        self.qr_wait_timeout = qr_wait_timeout
        self.tenant_for_instance = tenant_for_instance or (lambda name: name)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def initialize_session(self, tenant_id: str | None) -> InitializeResult:
        """
        Create a tenant's session and wait for its QR code.

        Raises:
            BadRequest: Invalid tenant id
            AlreadyActive: The tenant already has a live session
            AuthFailure / TransportDisconnected / QrTimeout: No QR code came
            TransportFailure: The transport could not start
        """
        tenant_id = validate_tenant_id(tenant_id)

        session = Session(
            tenant_id,
            transport=self.transport_factory(tenant_id),
            persistence=self.persistence,
            sync_engine=self.sync_engine,
            credentials=self.credentials,
            publisher=self.publisher,
            on_closed=self._on_session_closed,
        )
        await self.registry.register(tenant_id, session)

        await session.start()
        qr_payload = await session.wait_for_qr(self.qr_wait_timeout)

        logger.info(
            "Session initialized",
            extra={"tenant_id": tenant_id, "qr": qr_payload is not None},
        )
        return InitializeResult(tenant_id=tenant_id, qr_payload=qr_payload)

    async def _on_session_closed(self, session: Session) -> None:
        await self.registry.remove(session.tenant_id, session)

    def get_status(self, tenant_id: str | None) -> SessionStatus:
        """
        Status of a Ready session.

        Raises:
            NotFound: No session, or not Ready yet
        """
        session = self._ready_session(validate_tenant_id(tenant_id))
        return SessionStatus(
            tenant_id=session.tenant_id,
            state=session.state.value,
            phone_number=session.phone_number,
            status_message=session.status_message,
        )

    def _ready_session(self, tenant_id: str) -> Session:
        session = self.registry.get(tenant_id)
        if session is None or not session.is_ready:
            raise NotFound(f"Client {tenant_id} not found or not ready")
        return session

    # =========================================================================
    # Commands
    # =========================================================================

    async def send_message(self, tenant_id: str | None, peer_number: str | None, body: str | None) -> SendAck:
        """
        Raises:
            BadRequest: Missing tenant, peer or text
            NotFound: No live session
            NotReady: Session not Ready
            PeerUnregistered / SendFailed: Transport refused
        """
        tenant_id = validate_tenant_id(tenant_id)
        peer_number = normalize_peer_number(peer_number)
        if not body:
            raise BadRequest("message is required")

        return await self.registry.lookup(tenant_id).send_message(peer_number, body)

    async def send_media(
        self,
        tenant_id: str | None,
        peer_number: str | None,
        data: bytes,
        mime_type: str | None,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendAck:
        tenant_id = validate_tenant_id(tenant_id)
        peer_number = normalize_peer_number(peer_number)
        if not data:
            raise BadRequest("file is required")

        session = self.registry.lookup(tenant_id)
        return await session.send_media(
            peer_number,
            data,
            mime_type or "application/octet-stream",
            caption=caption or None,
            file_name=file_name,
        )

    async def set_status(self, tenant_id: str | None, text: str | None) -> None:
        tenant_id = validate_tenant_id(tenant_id)
        if not text:
            raise BadRequest("statusMessage is required")

        await self.registry.lookup(tenant_id).set_status(text)

    async def logout(self, tenant_id: str | None) -> None:
        """
        Log a Ready tenant out.

        Raises:
            NotFound: No session, or not Ready
            LogoutFailed: Transport refused; the session stays Ready
        """
        session = self._ready_session(validate_tenant_id(tenant_id))
        await session.logout()

    # =========================================================================
    # Webhooks
    # =========================================================================

    async def dispatch_evolution_webhook(self, payload: dict[str, Any]) -> bool:
        """
        Hand an Evolution webhook to the session owning the instance.

        Returns:
            False when no live Evolution session owns the instance
        """
        instance_name = extract_instance_name(payload)
        tenant_id = self.tenant_for_instance(instance_name) if instance_name else None
        session = self.registry.get(tenant_id) if tenant_id else None

        if session is None or not isinstance(session.transport, EvolutionTransport):
            logger.debug(
                "No session for webhook instance",
                extra={"instance": instance_name, "event": payload.get("event")},
            )
            return False

        await session.transport.handle_webhook(payload)
        return True

    async def shutdown(self) -> None:
        """Close every live session and release shared resources."""
        await self.registry.close_all()
        if isinstance(self.transport_factory, TransportFactory):
            await self.transport_factory.close()


def build_gateway_service(settings: Settings | None = None) -> GatewayService:
    """Wire a GatewayService from process settings."""
    settings = settings or get_settings()

    engine = create_db_engine(settings.DATABASE_URL)
    persistence = PersistenceGateway(sessionmaker(autocommit=False, autoflush=False, bind=engine))

    publisher = None
    redis_client = get_redis_client() if settings.REDIS_URL else None
    if redis_client is not None:
        publisher = SessionEventProducer(redis_client, stream_name=settings.SESSION_EVENTS_STREAM)

    factory = TransportFactory(settings)

    return GatewayService(
        registry=SessionRegistry(),
        transport_factory=factory,
        persistence=persistence,
        sync_engine=SyncEngine(persistence),
        credentials=CredentialStore(
            Path(settings.SESSIONS_DIR),
            max_attempts=settings.CREDENTIAL_CLEANUP_ATTEMPTS,
            backoff_seconds=settings.CREDENTIAL_CLEANUP_BACKOFF_SECONDS,
        ),
        publisher=publisher,
        qr_wait_timeout=settings.QR_WAIT_TIMEOUT_SECONDS,
        tenant_for_instance=factory.tenant_for_instance,
    )
