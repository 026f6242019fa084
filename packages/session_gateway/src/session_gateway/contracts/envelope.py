"""
Session Event Envelope

Wrapper written to the session events stream.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4


@dataclass
class SessionEnvelope:
    """
    One session lifecycle event.

    version is bumped when a payload shape changes incompatibly.
    """

    event_id: UUID
    event_type: str
    tenant_id: str
    occurred_at: datetime
    payload: dict[str, Any]
    version: int = 1

    @classmethod
    def create(cls, event_type: str, tenant_id: str, payload: dict[str, Any]) -> "SessionEnvelope":
        return cls(
            event_id=uuid4(),
            event_type=event_type,
            tenant_id=tenant_id,
            occurred_at=datetime.utcnow(),
            payload=payload,
        )

    def to_stream_data(self) -> dict[str, str]:
        """Flat string fields for XADD."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "tenant_id": self.tenant_id,
            "occurred_at": self.occurred_at.isoformat(),
            "version": str(self.version),
            "payload": json.dumps(self.payload, default=str),
        }
