"""
Session Gateway Contracts

Event types and envelope for session lifecycle events.
"""

from session_gateway.contracts.envelope import SessionEnvelope
from session_gateway.contracts.event_types import SessionEventType

__all__ = ["SessionEnvelope", "SessionEventType"]
