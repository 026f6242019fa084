"""
Transports

Adapters over the external messaging network. Each adapter instance serves
exactly one tenant and exposes a single ordered event channel plus a small
command surface. Implementations: Evolution API (production), Stub
(development and tests).
"""

from session_gateway.transport.base import (
    InboundMessage,
    RosterEntry,
    SendAck,
    TransportAdapter,
    TransportEvent,
    TransportEventType,
)

__all__ = [
    "InboundMessage",
    "RosterEntry",
    "SendAck",
    "TransportAdapter",
    "TransportEvent",
    "TransportEventType",
]
