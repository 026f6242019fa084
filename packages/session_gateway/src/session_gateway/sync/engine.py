"""
Roster Sync Engine

Mirrors a tenant's contacts and chats into the database once the session
is Ready. Contacts and chats are synced concurrently and independently: a
failure listing one does not stop the other. Rows are written with the
idempotent insert, so re-running a sync only adds what is new.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from session_gateway.persistence.gateway import PersistenceGateway
from session_gateway.persistence.models import EntityKind
from session_gateway.transport.base import RosterEntry, TransportAdapter

logger = logging.getLogger(__name__)


@dataclass
class RosterRecord:
    """A roster entry mapped to its stored columns."""

    name: str | None
    contact_number: str | None
    kind: EntityKind


@dataclass
class EntitySyncResult:
    seen: int = 0
    saved: int = 0


@dataclass
class SyncReport:
    """Outcome of one roster sync."""

    tenant_id: str
    contacts: EntitySyncResult | None = None
    chats: EntitySyncResult | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "contacts": vars(self.contacts) if self.contacts else None,
            "chats": vars(self.chats) if self.chats else None,
            "errors": self.errors,
        }


def to_roster_record(entry: RosterEntry) -> RosterRecord:
    """Groups are stored without a number."""
    kind = EntityKind.GROUP if entry.is_group else EntityKind.PRIVATE
    return RosterRecord(name=entry.name, contact_number=entry.number, kind=kind)


class SyncEngine:
    """Roster sync for Ready sessions."""

    def __init__(self, persistence: PersistenceGateway):
        self.persistence = persistence

    async def sync(self, tenant_id: str, transport: TransportAdapter) -> SyncReport:
        """Sync contacts and chats; never raises for a failed entity."""
        report = SyncReport(tenant_id=tenant_id)

        results = await asyncio.gather(
            self.sync_contacts(tenant_id, transport),
            self.sync_chats(tenant_id, transport),
            return_exceptions=True,
        )

        for entity, result in zip(("contacts", "chats"), results):
            if isinstance(result, Exception):
                logger.error(
                    f"Failed to sync {entity}: {result}",
                    extra={"tenant_id": tenant_id, "entity": entity},
                )
                report.errors[entity] = str(result)
            else:
                setattr(report, entity, result)

        logger.info("Roster sync finished", extra={"tenant_id": tenant_id, **report.to_dict()})
        return report

    async def sync_contacts(self, tenant_id: str, transport: TransportAdapter) -> EntitySyncResult:
        entries = await transport.list_contacts()
        result = EntitySyncResult(seen=len(entries))
        for entry in entries:
            record = to_roster_record(entry)
            if await self.persistence.save_contact(
                tenant_id, record.name, record.contact_number, record.kind
            ):
                result.saved += 1
        return result

    async def sync_chats(self, tenant_id: str, transport: TransportAdapter) -> EntitySyncResult:
        entries = await transport.list_chats()
        result = EntitySyncResult(seen=len(entries))
        for entry in entries:
            record = to_roster_record(entry)
            if await self.persistence.save_chat(
                tenant_id, record.name, record.contact_number, record.kind
            ):
                result.saved += 1
        return result
