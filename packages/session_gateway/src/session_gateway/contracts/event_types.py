"""
Session Event Types

Lifecycle events published by the session gateway.
"""

from enum import Enum


class SessionEventType(str, Enum):
    """
    Event types for session lifecycle.

    - SESSION_QR_RECEIVED: A QR code is waiting to be scanned
    - SESSION_AUTHENTICATED: Pairing (or credential restore) succeeded
    - SESSION_READY: Session can send and receive
    - SESSION_AUTH_FAILED: Authentication failed, session removed
    - SESSION_DISCONNECTED: The network dropped the session
    - SESSION_LOGGED_OUT: Explicit logout completed
    - MESSAGE_RECEIVED / MESSAGE_SENT: Message relay
    - ROSTER_SYNCED: Contact/chat sync finished
    """

    SESSION_QR_RECEIVED = "session_qr_received"
    SESSION_AUTHENTICATED = "session_authenticated"
    SESSION_READY = "session_ready"
    SESSION_AUTH_FAILED = "session_auth_failed"
    SESSION_DISCONNECTED = "session_disconnected"
    SESSION_LOGGED_OUT = "session_logged_out"

    MESSAGE_RECEIVED = "message_received"
    MESSAGE_SENT = "message_sent"

    ROSTER_SYNCED = "roster_synced"
