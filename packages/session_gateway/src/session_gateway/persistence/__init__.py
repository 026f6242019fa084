"""
Gateway Persistence

SQLAlchemy models, the synchronous repository, the async persistence
gateway used by sessions, and the credential directory store.
"""

from session_gateway.persistence.credentials import CredentialStore
from session_gateway.persistence.gateway import PersistenceGateway
from session_gateway.persistence.models import (
    ChatRecord,
    ClientRecord,
    ClientStatus,
    ContactRecord,
    EntityKind,
    GatewayBase,
    MessageLog,
    QRCodeRecord,
)
from session_gateway.persistence.repo import GatewayRepository

__all__ = [
    "ChatRecord",
    "ClientRecord",
    "ClientStatus",
    "ContactRecord",
    "CredentialStore",
    "EntityKind",
    "GatewayBase",
    "GatewayRepository",
    "MessageLog",
    "PersistenceGateway",
    "QRCodeRecord",
]
