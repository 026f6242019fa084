"""
Session Registry

Concurrency-safe map from tenant id to its live Session. The single source
of truth for whether a tenant is active.
"""

import asyncio
import logging

from session_gateway.errors import AlreadyActive, NotFound
from session_gateway.session.session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Live sessions by tenant id.

    Mutations hold one asyncio.Lock, so the presence check and the insert in
    register() cannot interleave with another register() for the same tenant.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def tenants(self) -> list[str]:
        return list(self._sessions)

    async def register(self, tenant_id: str, session: Session) -> None:
        """
        Add a session.

        Raises:
            AlreadyActive: The tenant already has a live session
        """
        async with self._lock:
            if tenant_id in self._sessions:
                raise AlreadyActive(f"Client {tenant_id} is already initialized")
            self._sessions[tenant_id] = session

        logger.info("Session registered", extra={"tenant_id": tenant_id, "active": len(self._sessions)})

    def lookup(self, tenant_id: str) -> Session:
        """
        Get the live session of a tenant.

        Raises:
            NotFound: No live session
        """
        session = self._sessions.get(tenant_id)
        if session is None:
            raise NotFound(f"Client {tenant_id} not found")
        return session

    def get(self, tenant_id: str) -> Session | None:
        return self._sessions.get(tenant_id)

    async def remove(self, tenant_id: str, session: Session | None = None) -> bool:
        """
        Remove a tenant's session.

        When session is given, only that exact session is removed, so a
        late teardown cannot evict its successor.
        """
        async with self._lock:
            current = self._sessions.get(tenant_id)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[tenant_id]

        logger.info("Session removed", extra={"tenant_id": tenant_id, "active": len(self._sessions)})
        return True

    async def close_all(self) -> None:
        """Shut down every live session (process stop)."""
        async with self._lock:
            sessions = list(self._sessions.values())

        results = await asyncio.gather(*(s.shutdown() for s in sessions), return_exceptions=True)
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Failed to shut down session: {result}",
                    extra={"tenant_id": session.tenant_id},
                )

        async with self._lock:
            self._sessions.clear()
