"""
Session State Machine

States a session moves through and the complete table of allowed
transitions. Anything not in the table is ignored by the session.
"""

from enum import Enum

from session_gateway.transport.base import TransportEventType


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    AWAITING_SCAN = "awaiting_scan"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"
    LOGGED_OUT = "logged_out"
    AUTH_FAILED = "auth_failed"

    def __str__(self) -> str:
        return self.value

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


class SessionCommand(str, Enum):
    """Triggers that come from callers rather than the transport."""

    LOGOUT = "logout"
    SHUTDOWN = "shutdown"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATES = frozenset(
    {SessionState.DISCONNECTED, SessionState.LOGGED_OUT, SessionState.AUTH_FAILED}
)

_E = TransportEventType
_S = SessionState

TRANSITIONS: dict[tuple[SessionState, str], SessionState] = {
    (_S.INITIALIZING, _E.QR): _S.AWAITING_SCAN,
    # Restored credentials skip the QR code
    (_S.INITIALIZING, _E.AUTHENTICATED): _S.AUTHENTICATED,
    (_S.INITIALIZING, _E.AUTH_FAILURE): _S.AUTH_FAILED,
    (_S.INITIALIZING, _E.DISCONNECTED): _S.DISCONNECTED,
    # QR refresh
    (_S.AWAITING_SCAN, _E.QR): _S.AWAITING_SCAN,
    (_S.AWAITING_SCAN, _E.AUTHENTICATED): _S.AUTHENTICATED,
    (_S.AWAITING_SCAN, _E.AUTH_FAILURE): _S.AUTH_FAILED,
    (_S.AWAITING_SCAN, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.AUTHENTICATED, _E.READY): _S.READY,
    (_S.AUTHENTICATED, _E.AUTH_FAILURE): _S.AUTH_FAILED,
    (_S.AUTHENTICATED, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.READY, _E.MESSAGE): _S.READY,
    (_S.READY, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.READY, _E.AUTH_FAILURE): _S.AUTH_FAILED,
    (_S.READY, SessionCommand.LOGOUT): _S.LOGGED_OUT,
}

# Process shutdown ends every live session
for _state in SessionState:
    if not _state.terminal:
        TRANSITIONS[(_state, SessionCommand.SHUTDOWN)] = _S.DISCONNECTED


def next_state(state: SessionState, trigger: str) -> SessionState | None:
    """Target state for a trigger, or None when the transition is not allowed."""
    return TRANSITIONS.get((state, trigger))
