"""
Evolution API Transport

Drives one Evolution API instance (Baileys-based WhatsApp Web) for one
tenant. Commands go out over REST; connection progress and inbound
messages come back through the Evolution webhook, which the HTTP layer
hands to handle_webhook().

Documentation: https://doc.evolution-api.com/
"""

import asyncio
import base64
import logging
from typing import Any

from session_gateway.errors import (
    LogoutFailed,
    PeerUnregistered,
    SendFailed,
    TransportFailure,
)
from session_gateway.transport.base import RosterEntry, SendAck, TransportAdapter, TransportEventType
from session_gateway.transport.evolution.instance_manager import EvolutionInstanceManager
from session_gateway.transport.evolution.webhook import (
    CONNECTION_UPDATE,
    LOGGED_OUT_STATUS,
    LOGOUT_INSTANCE,
    MESSAGES_UPSERT,
    QRCODE_UPDATED,
    extract_qr_code,
    normalize_event_name,
    parse_message,
)
from session_gateway.transport.peers import jid_user

logger = logging.getLogger(__name__)


def media_type_for(mime_type: str) -> str:
    """Map a MIME type to the Evolution mediatype field."""
    major = mime_type.split("/", 1)[0].lower()
    if major in ("image", "video", "audio"):
        return major
    return "document"


def is_unregistered_error(error: TransportFailure) -> bool:
    """
    Check whether a send error means the number has no account.

    Evolution answers 400 with response.message = [{"exists": false, ...}].
    """
    response = error.details.get("response")
    if not isinstance(response, dict):
        return False
    entries = response.get("message")
    if not isinstance(entries, list):
        return False
    return any(isinstance(entry, dict) and entry.get("exists") is False for entry in entries)


class EvolutionTransport(TransportAdapter):
    """
    Evolution API transport for one tenant.

    Connection setup is retried internally: when nobody scans the QR code
    within connect_timeout a fresh code is requested, up to max_qr_retries
    times, after which auth_failure is emitted.
    """

    def __init__(
        self,
        tenant_id: str,
        instances: EvolutionInstanceManager,
        instance_name: str,
        webhook_url: str | None = None,
        connect_timeout: float = 120.0,
        max_qr_retries: int = 1,
    ):
        super().__init__(tenant_id)
        self.instances = instances
        self.instance_name = instance_name
        self.webhook_url = webhook_url
        self.connect_timeout = connect_timeout
        self.max_qr_retries = max_qr_retries
        self._connected = False
        self._watchdog: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    async def initialize(self) -> None:
        """Create (or reconnect) the instance and start the connection watchdog."""
        try:
            response = await self.instances.create_instance(
                self.instance_name, webhook_url=self.webhook_url
            )
        except TransportFailure as e:
            # 403: instance name already in use, reuse it
            if e.code != "403":
                raise
            logger.info(
                "Instance already exists, reconnecting",
                extra={"tenant_id": self.tenant_id, "instance": self.instance_name},
            )
            response = await self.instances.connect_instance(self.instance_name)

        await self._handle_connect_response(response)

        if not self._connected:
            self._watchdog = asyncio.create_task(self._watch_connection())

    async def _handle_connect_response(self, response: dict[str, Any]) -> None:
        instance = response.get("instance")
        if isinstance(instance, dict) and instance.get("state") == "open":
            await self._on_open(instance.get("wuid") or instance.get("owner"))
            return

        qr_code = extract_qr_code(response)
        if qr_code:
            self.emit(TransportEventType.QR, payload=qr_code)

    async def _watch_connection(self) -> None:
        retries = 0
        while True:
            await asyncio.sleep(self.connect_timeout)
            if self._connected or self.terminated:
                return

            if retries >= self.max_qr_retries:
                logger.warning(
                    "QR code not scanned in time",
                    extra={"tenant_id": self.tenant_id, "retries": retries},
                )
                self.emit(TransportEventType.AUTH_FAILURE, reason="QR code was not scanned in time")
                return

            retries += 1
            logger.info(
                "Requesting a fresh QR code",
                extra={"tenant_id": self.tenant_id, "attempt": retries},
            )
            try:
                response = await self.instances.connect_instance(self.instance_name)
            except TransportFailure as e:
                self.emit(TransportEventType.AUTH_FAILURE, reason=str(e))
                return
            await self._handle_connect_response(response)

    async def handle_webhook(self, payload: dict[str, Any]) -> None:
        """Translate one Evolution webhook into transport events."""
        event = normalize_event_name(payload.get("event"))
        data = payload.get("data") or {}

        if event == QRCODE_UPDATED:
            qr_code = extract_qr_code(data)
            if qr_code and not self._connected:
                self.emit(TransportEventType.QR, payload=qr_code)

        elif event == CONNECTION_UPDATE:
            await self._handle_connection_update(data)

        elif event == MESSAGES_UPSERT:
            message = parse_message(data)
            if message:
                self.emit(TransportEventType.MESSAGE, message=message)

        elif event == LOGOUT_INSTANCE:
            self.emit(TransportEventType.DISCONNECTED, reason="logged out from device")

        else:
            logger.debug("Ignoring Evolution event", extra={"event": event})

    async def _handle_connection_update(self, data: dict[str, Any]) -> None:
        state = data.get("state")
        status_reason = data.get("statusReason")

        if state == "open":
            await self._on_open(data.get("wuid"))
            return

        if state != "close":
            return

        if self._connected:
            self.emit(TransportEventType.DISCONNECTED, reason=f"connection closed ({status_reason})")
        elif status_reason == LOGGED_OUT_STATUS:
            self.emit(TransportEventType.AUTH_FAILURE, reason="credentials rejected")
        # Other closes during pairing (e.g. 515 restart required) are
        # reconnected by Evolution itself

    async def _on_open(self, wuid: str | None) -> None:
        if self._connected:
            return
        self._connected = True
        self._cancel_watchdog()

        phone_number = jid_user(wuid) if wuid else await self._fetch_owner_number()

        self.emit(TransportEventType.AUTHENTICATED)
        self.emit(TransportEventType.READY, phone_number=phone_number)

    async def _fetch_owner_number(self) -> str | None:
        try:
            info = await self.instances.fetch_instance(self.instance_name)
        except TransportFailure as e:
            logger.warning(f"Failed to fetch instance owner: {e}", extra={"tenant_id": self.tenant_id})
            return None
        owner = info.get("ownerJid") or info.get("owner")
        return jid_user(owner) if owner else None

    async def send_message(self, peer_number: str, body: str) -> SendAck:
        """Send a text message via Evolution API."""
        return await self._send(
            f"/message/sendText/{self.instance_name}",
            {"number": peer_number, "text": body},
            peer_number,
        )

    async def send_media(
        self,
        peer_number: str,
        data: bytes,
        mime_type: str,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendAck:
        """Send a media message via Evolution API (base64 body)."""
        payload: dict[str, Any] = {
            "number": peer_number,
            "mediatype": media_type_for(mime_type),
            "mimetype": mime_type,
            "media": base64.b64encode(data).decode("ascii"),
        }
        if caption:
            payload["caption"] = caption
        if file_name:
            payload["fileName"] = file_name

        return await self._send(f"/message/sendMedia/{self.instance_name}", payload, peer_number)

    async def _send(self, endpoint: str, payload: dict[str, Any], peer_number: str) -> SendAck:
        try:
            response = await self.instances.request("POST", endpoint, payload)
        except TransportFailure as e:
            if is_unregistered_error(e):
                raise PeerUnregistered(
                    f"{peer_number} is not registered", code=e.code, details=e.details
                ) from e
            logger.error(f"Failed to send message: {e}", extra={"tenant_id": self.tenant_id})
            raise SendFailed(str(e), code=e.code, details=e.details, retryable=e.retryable) from e

        message_id = response.get("key", {}).get("id") or response.get("id")

        logger.info(
            "Sent message via Evolution API",
            extra={"tenant_id": self.tenant_id, "message_id": message_id, "instance": self.instance_name},
        )

        return SendAck(message_id=message_id, raw_response=response)

    async def set_status(self, text: str) -> None:
        await self.instances.request(
            "POST", f"/chat/updateProfileStatus/{self.instance_name}", {"status": text}
        )

    async def logout(self) -> None:
        """Log out and delete the instance (drops its stored credentials)."""
        try:
            await self.instances.logout_instance(self.instance_name)
        except TransportFailure as e:
            raise LogoutFailed(str(e), code=e.code, details=e.details) from e

        self._cancel_watchdog()
        self._terminate()
        await self.instances.delete_instance(self.instance_name)

    async def list_contacts(self) -> list[RosterEntry]:
        response = await self.instances.request(
            "POST", f"/chat/findContacts/{self.instance_name}", {"where": {}}
        )
        return self._to_roster(response)

    async def list_chats(self) -> list[RosterEntry]:
        response = await self.instances.request(
            "POST", f"/chat/findChats/{self.instance_name}", {}
        )
        return self._to_roster(response)

    @staticmethod
    def _to_roster(items: Any) -> list[RosterEntry]:
        entries = []
        for item in items or []:
            jid = item.get("remoteJid") or item.get("id")
            if not jid or "@" not in jid:
                continue
            entries.append(RosterEntry(jid=jid, name=item.get("name") or item.get("pushName")))
        return entries

    def _cancel_watchdog(self) -> None:
        if self._watchdog and not self._watchdog.done():
            self._watchdog.cancel()
        self._watchdog = None

    async def close(self) -> None:
        self._cancel_watchdog()
        await super().close()
