"""
Sessions

Per-tenant state machines and the registry that tracks them.
"""

from session_gateway.session.registry import SessionRegistry
from session_gateway.session.session import Session
from session_gateway.session.state import SessionCommand, SessionState, next_state

__all__ = ["Session", "SessionCommand", "SessionRegistry", "SessionState", "next_state"]
