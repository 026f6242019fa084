"""
Transport Adapter Base

Abstract interface for messaging-network transports.

An adapter owns one event channel (an asyncio.Queue) consumed by exactly one
Session task. Events come out in emission order. Once the adapter reaches a
terminal state (disconnected, auth failure, logout or close) the channel is
closed and nothing further is emitted.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from session_gateway.transport.peers import is_group_jid, jid_user

logger = logging.getLogger(__name__)


class TransportEventType(str, Enum):
    """Events surfaced by a transport adapter."""

    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    MESSAGE = "message"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"

    def __str__(self) -> str:
        return self.value


# Emitting one of these closes the channel
TERMINAL_EVENTS = frozenset({TransportEventType.AUTH_FAILURE, TransportEventType.DISCONNECTED})


@dataclass
class TransportEvent:
    """
    One event from the transport.

    data keys by type:
    - qr: payload
    - ready: phone_number
    - message: message (InboundMessage)
    - auth_failure / disconnected: reason
    """

    type: TransportEventType
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class InboundMessage:
    """Provider-agnostic representation of a received message."""

    message_id: str
    from_number: str
    body: str
    timestamp: datetime
    to_number: str | None = None
    message_type: str = "text"
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class RosterEntry:
    """A contact or chat as listed by the transport."""

    jid: str
    name: str | None = None
    is_group: bool | None = None

    def __post_init__(self):
        if self.is_group is None:
            self.is_group = is_group_jid(self.jid)

    @property
    def number(self) -> str | None:
        """Per-user number; groups have none."""
        if self.is_group:
            return None
        return jid_user(self.jid)


@dataclass
class SendAck:
    """Acknowledgement returned by the transport after a send."""

    message_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class TransportAdapter(ABC):
    """
    Abstract interface for messaging-network transports.

    Implementations must:
    - Begin connecting in initialize() without waiting for pairing
    - Report progress through emit()
    - Raise TransportFailure subclasses from commands
    - Stop emitting after logout()
    """

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self._events: asyncio.Queue[TransportEvent | None] = asyncio.Queue()
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def emit(self, event_type: TransportEventType, **data: Any) -> bool:
        """
        Queue an event for the owning session.

        Returns False (and drops the event) once the adapter is terminal.
        """
        if self._terminated:
            logger.debug(
                "Dropping event from terminated transport",
                extra={"tenant_id": self.tenant_id, "event": event_type.value},
            )
            return False

        self._events.put_nowait(TransportEvent(type=event_type, data=data))

        if event_type in TERMINAL_EVENTS:
            self._terminate()

        return True

    def _terminate(self) -> None:
        """Close the event channel."""
        if not self._terminated:
            self._terminated = True
            self._events.put_nowait(None)

    async def events(self) -> AsyncIterator[TransportEvent]:
        """Iterate events in emission order until the channel closes."""
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    @abstractmethod
    async def initialize(self) -> None:
        """
        Start connecting.

        Returns as soon as the attempt is underway; the outcome arrives as
        qr / authenticated / ready / auth_failure events.
        """
        ...

    @abstractmethod
    async def send_message(self, peer_number: str, body: str) -> SendAck:
        """
        Send a text message.

        Args:
            peer_number: Normalized destination number (digits only)
            body: Message text

        Raises:
            PeerUnregistered: Destination has no account
            SendFailed: Any other send error
        """
        ...

    @abstractmethod
    async def send_media(
        self,
        peer_number: str,
        data: bytes,
        mime_type: str,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendAck:
        """Send a media message (image, video, audio or document)."""
        ...

    @abstractmethod
    async def set_status(self, text: str) -> None:
        """Set the account's profile status text."""
        ...

    @abstractmethod
    async def logout(self) -> None:
        """
        Log the account out. Terminal: no events are emitted afterwards.

        Raises:
            LogoutFailed: The network refused or the call failed
        """
        ...

    @abstractmethod
    async def list_contacts(self) -> list[RosterEntry]:
        ...

    @abstractmethod
    async def list_chats(self) -> list[RosterEntry]:
        ...

    async def close(self) -> None:
        """Release resources without logging out."""
        self._terminate()
