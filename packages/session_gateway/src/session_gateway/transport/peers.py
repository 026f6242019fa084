"""
Peer number and JID helpers.
"""

import re

from session_gateway.errors import BadRequest

USER_JID_SUFFIX = "@s.whatsapp.net"
LEGACY_USER_JID_SUFFIX = "@c.us"
GROUP_JID_SUFFIX = "@g.us"

_NON_DIGITS = re.compile(r"\D")


def normalize_peer_number(raw: str | None) -> str:
    """
    Normalize a phone number to bare digits.

    "+1 (555) 123-4567" -> "15551234567". Raises BadRequest when nothing
    dialable is left.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        raise BadRequest(f"Invalid peer number: {raw!r}")
    return digits


def is_group_jid(jid: str) -> bool:
    return jid.endswith(GROUP_JID_SUFFIX)


def jid_user(jid: str) -> str:
    """
    Extract the user part of a JID.

    "5511999999999:12@s.whatsapp.net" -> "5511999999999"
    """
    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0]


def to_user_jid(number: str) -> str:
    return f"{normalize_peer_number(number)}{USER_JID_SUFFIX}"
