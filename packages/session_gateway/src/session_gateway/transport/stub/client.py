"""
Stub Transport

Development transport that logs all operations without touching a real
network. Pairing, inbound messages, drops and auth failures are driven by
the caller (tests) or happen automatically with auto_pair.

Credentials are kept as a small JSON file in the tenant's credential
directory, so a second initialize after pairing restores the session
without a QR code.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from session_gateway.errors import LogoutFailed, PeerUnregistered, SendFailed, TransportFailure
from session_gateway.transport.base import (
    InboundMessage,
    RosterEntry,
    SendAck,
    TransportAdapter,
    TransportEventType,
)

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = "creds.json"


class StubTransport(TransportAdapter):
    """
    Stub transport for development and testing.

    - Emits a fake QR code on initialize
    - Records every outbound message in sent_messages
    - Can be configured to reject peers or fail sends
    """

    def __init__(
        self,
        tenant_id: str,
        phone_number: str = "5511999999999",
        contacts: list[RosterEntry] | None = None,
        chats: list[RosterEntry] | None = None,
        credentials_dir: Path | None = None,
        auto_pair: bool = False,
        unregistered: set[str] | None = None,
        fail_sends: bool = False,
        fail_logout: bool = False,
        fail_contacts: bool = False,
        fail_chats: bool = False,
    ):
        super().__init__(tenant_id)
        self.phone_number = phone_number
        self.contacts = contacts or []
        self.chats = chats or []
        self.credentials_dir = credentials_dir
        self.auto_pair = auto_pair
        self.unregistered = unregistered or set()
        self.fail_sends = fail_sends
        self.fail_logout = fail_logout
        self.fail_contacts = fail_contacts
        self.fail_chats = fail_chats

        self.paired = False
        self.status_text: str | None = None
        self.sent_messages: list[dict[str, Any]] = []
        self.qr_count = 0

    @property
    def credentials_file(self) -> Path | None:
        if self.credentials_dir is None:
            return None
        return self.credentials_dir / CREDENTIALS_FILE

    async def initialize(self) -> None:
        """Emit a QR code, or restore a previous pairing."""
        creds = self.credentials_file
        if creds is not None and creds.exists():
            logger.info("[STUB] Restoring stored credentials", extra={"tenant_id": self.tenant_id})
            self._complete_pairing()
            return

        self.refresh_qr()

        if self.auto_pair:
            self.pair()

    def refresh_qr(self) -> None:
        self.qr_count += 1
        payload = f"stub-qr:{self.tenant_id}:{self.qr_count}:{uuid4().hex[:12]}"
        logger.info("[STUB] QR generated", extra={"tenant_id": self.tenant_id})
        self.emit(TransportEventType.QR, payload=payload)

    def pair(self) -> None:
        """Simulate the user scanning the QR code."""
        creds = self.credentials_file
        if creds is not None:
            creds.parent.mkdir(parents=True, exist_ok=True)
            creds.write_text(
                json.dumps(
                    {
                        "tenant_id": self.tenant_id,
                        "phone_number": self.phone_number,
                        "paired_at": datetime.utcnow().isoformat(),
                    }
                )
            )
        self._complete_pairing()

    def _complete_pairing(self) -> None:
        self.paired = True
        self.emit(TransportEventType.AUTHENTICATED)
        self.emit(TransportEventType.READY, phone_number=self.phone_number)

    def receive(self, from_number: str, body: str) -> None:
        """Simulate an inbound text message."""
        message = InboundMessage(
            message_id=f"stub_in_{uuid4().hex[:16]}",
            from_number=from_number,
            to_number=self.phone_number,
            body=body,
            timestamp=datetime.utcnow(),
        )
        self.emit(TransportEventType.MESSAGE, message=message)

    def drop(self, reason: str = "NAVIGATION") -> None:
        """Simulate the network dropping the connection."""
        self.emit(TransportEventType.DISCONNECTED, reason=reason)

    def fail_auth(self, reason: str = "invalid session") -> None:
        self.emit(TransportEventType.AUTH_FAILURE, reason=reason)

    async def send_message(self, peer_number: str, body: str) -> SendAck:
        return self._record_send({"type": "text", "to": peer_number, "text": body})

    async def send_media(
        self,
        peer_number: str,
        data: bytes,
        mime_type: str,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendAck:
        return self._record_send(
            {
                "type": "media",
                "to": peer_number,
                "mime_type": mime_type,
                "size": len(data),
                "caption": caption,
                "file_name": file_name,
            }
        )

    def _record_send(self, message_data: dict[str, Any]) -> SendAck:
        to = message_data["to"]

        if to in self.unregistered:
            raise PeerUnregistered(f"{to} is not registered", code="NOT_REGISTERED")

        if self.fail_sends:
            raise SendFailed("Simulated failure for testing", code="STUB_SIMULATED_FAILURE")

        message_id = f"stub_msg_{uuid4().hex[:16]}"
        message_data["message_id"] = message_id
        message_data["timestamp"] = datetime.utcnow().isoformat()
        self.sent_messages.append(message_data)

        logger.info(
            "[STUB] Sending message",
            extra={"tenant_id": self.tenant_id, "to": to, "message_id": message_id},
        )

        return SendAck(message_id=message_id, raw_response={"stub": True, "message_id": message_id})

    async def set_status(self, text: str) -> None:
        logger.info("[STUB] Setting status", extra={"tenant_id": self.tenant_id})
        self.status_text = text

    async def logout(self) -> None:
        if self.fail_logout:
            raise LogoutFailed("Simulated logout failure", code="STUB_SIMULATED_FAILURE")

        logger.info("[STUB] Logging out", extra={"tenant_id": self.tenant_id})
        self.paired = False
        self._terminate()

    async def list_contacts(self) -> list[RosterEntry]:
        self._require_paired()
        if self.fail_contacts:
            raise TransportFailure("Simulated contacts failure")
        return list(self.contacts)

    async def list_chats(self) -> list[RosterEntry]:
        self._require_paired()
        if self.fail_chats:
            raise TransportFailure("Simulated chats failure")
        return list(self.chats)

    def _require_paired(self) -> None:
        if not self.paired:
            raise TransportFailure("Roster is only available once paired")
