"""
Evolution API Webhook Utilities

Helper functions for processing Evolution API webhooks.
"""

import logging
from datetime import datetime
from typing import Any

from session_gateway.transport.base import InboundMessage
from session_gateway.transport.peers import jid_user

logger = logging.getLogger(__name__)

QRCODE_UPDATED = "qrcode.updated"
CONNECTION_UPDATE = "connection.update"
MESSAGES_UPSERT = "messages.upsert"
LOGOUT_INSTANCE = "logout.instance"

# Baileys disconnect reason for a session revoked from the phone
LOGGED_OUT_STATUS = 401

_TEXT_TYPES = {"conversation", "extendedTextMessage"}
_CAPTION_TYPES = {"imageMessage", "videoMessage", "documentMessage"}


def normalize_event_name(event: str | None) -> str:
    """
    Normalize an event name.

    Evolution sends "QRCODE_UPDATED" or "qrcode.updated" depending on the
    webhook configuration.
    """
    return (event or "").lower().replace("_", ".")


def extract_instance_name(payload: dict[str, Any]) -> str | None:
    """
    Extract instance name from webhook payload.

    This is used for tenant resolution before full parsing.
    """
    return payload.get("instance")


def extract_qr_code(data: dict[str, Any]) -> str | None:
    """Raw QR string from a connect response or qrcode.updated data."""
    qrcode = data.get("qrcode")
    if isinstance(qrcode, dict):
        return qrcode.get("code")
    return data.get("code")


def parse_message(data: dict[str, Any]) -> InboundMessage | None:
    """
    Parse a messages.upsert data block.

    Returns None for our own outbound echoes, status broadcasts and
    messages without any text.
    """
    key = data.get("key", {})
    remote_jid = key.get("remoteJid", "")

    if key.get("fromMe") or not remote_jid or remote_jid == "status@broadcast":
        return None

    message_type = data.get("messageType", "conversation")
    message_data = data.get("message") or {}

    body = None
    if message_type in _TEXT_TYPES:
        body = message_data.get("conversation") or (
            message_data.get("extendedTextMessage") or {}
        ).get("text")
    elif message_type in _CAPTION_TYPES:
        body = (message_data.get(message_type) or {}).get("caption")

    if not body:
        logger.debug("Skipping message without text", extra={"message_type": message_type})
        return None

    timestamp = datetime.utcnow()
    if data.get("messageTimestamp"):
        try:
            timestamp = datetime.utcfromtimestamp(int(data["messageTimestamp"]))
        except (ValueError, TypeError):
            pass

    return InboundMessage(
        message_id=key.get("id", ""),
        from_number=jid_user(key.get("participant") or remote_jid),
        body=body,
        timestamp=timestamp,
        message_type=message_type,
        raw_payload=data,
    )


def validate_api_key(request_headers: dict[str, str], expected_api_key: str) -> bool:
    """
    Validate API key from request headers.

    Evolution API can send API key in:
    - Header: "apikey"
    - Header: "Authorization: Bearer <key>"
    """
    apikey_header = request_headers.get("apikey") or request_headers.get("Apikey")
    if apikey_header == expected_api_key:
        return True

    auth_header = request_headers.get("authorization") or request_headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == expected_api_key:
            return True

    return False
