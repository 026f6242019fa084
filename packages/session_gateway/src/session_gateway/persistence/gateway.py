"""
Persistence Gateway

Async facade over GatewayRepository. Each call runs in a worker thread with
its own database session: one statement, committed on success, rolled back
on failure. Nothing here spans more than one call.

Only upsert_client raises; every other write is best-effort and reports
failure by logging and returning False.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from session_gateway.errors import PersistenceFailure
from session_gateway.persistence.models import EntityKind
from session_gateway.persistence.repo import GatewayRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceGateway:
    """Async, per-call-session access to the gateway tables."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _run(self, operation: str, fn: Callable[[GatewayRepository], T], **context: Any) -> T:
        return await asyncio.to_thread(self._execute, operation, fn, context)

    def _execute(self, operation: str, fn: Callable[[GatewayRepository], T], context: dict[str, Any]) -> T:
        db = self.session_factory()
        try:
            result = fn(GatewayRepository(db))
            db.commit()
            return result
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceFailure(
                f"{operation} failed: {e}",
                details={"operation": operation, **context},
            ) from e
        finally:
            db.close()

    async def _best_effort(self, operation: str, fn: Callable[[GatewayRepository], Any], **context: Any) -> bool:
        try:
            result = await self._run(operation, fn, **context)
        except PersistenceFailure as e:
            logger.error(
                f"Persistence call failed: {e}",
                extra={"operation": operation, **context},
                exc_info=True,
            )
            return False
        return result is not False

    async def upsert_client(self, tenant_id: str, status: str, phone_number: str | None = None) -> bool:
        """
        Upsert the tenant's client record.

        Raises:
            PersistenceFailure: The write failed
        """
        return await self._run(
            "upsert_client",
            lambda repo: repo.upsert_client(tenant_id, status, phone_number),
            tenant_id=tenant_id,
        )

    async def update_client_status(self, tenant_id: str, status: str) -> bool:
        return await self._best_effort(
            "update_client_status",
            lambda repo: repo.update_client_status(tenant_id, status),
            tenant_id=tenant_id,
        )

    async def update_status_message(self, tenant_id: str, status_message: str) -> bool:
        return await self._best_effort(
            "update_status_message",
            lambda repo: repo.update_client_status_message(tenant_id, status_message),
            tenant_id=tenant_id,
        )

    async def log_message(
        self, tenant_id: str, peer_number: str, body: str, sent_at: datetime | None = None
    ) -> bool:
        """Returns True if a new log row was written."""
        return await self._best_effort(
            "log_message",
            lambda repo: repo.log_message(tenant_id, peer_number, body, sent_at),
            tenant_id=tenant_id,
        )

    async def save_qr(self, tenant_id: str, payload: str) -> bool:
        return await self._best_effort(
            "save_qr",
            lambda repo: repo.save_qr(tenant_id, payload),
            tenant_id=tenant_id,
        )

    async def save_contact(
        self, tenant_id: str, name: str | None, contact_number: str | None, kind: EntityKind
    ) -> bool:
        return await self._best_effort(
            "save_contact",
            lambda repo: repo.save_contact(tenant_id, name, contact_number, kind.value),
            tenant_id=tenant_id,
        )

    async def save_chat(
        self, tenant_id: str, name: str | None, contact_number: str | None, kind: EntityKind
    ) -> bool:
        return await self._best_effort(
            "save_chat",
            lambda repo: repo.save_chat(tenant_id, name, contact_number, kind.value),
            tenant_id=tenant_id,
        )

    def query(self, fn: Callable[[GatewayRepository], T]) -> T:
        """
        Run a synchronous read (CLI and tests).

        Returned rows are detached but keep their loaded attributes.
        """
        db = self.session_factory()
        try:
            return fn(GatewayRepository(db))
        finally:
            db.close()
