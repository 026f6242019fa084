"""
Gateway Database Models

Tables owned by the session gateway.

Tables:
- clients: One row per tenant ever seen (status, status message, phone)
- contacts: Roster contacts mirrored on readiness
- chats: Roster chats mirrored on readiness
- message_logs: Sent and received messages
- qrcodes: QR payloads emitted during pairing (audit only)
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

GatewayBase = declarative_base()


class ClientStatus(str, Enum):
    """Durable status of a tenant."""

    READY = "ready"
    DISCONNECTED = "disconnected"
    LOGGED_OUT = "logged_out"


class EntityKind(str, Enum):
    """Kind of a roster entity."""

    GROUP = "group"
    PRIVATE = "private"


class ClientRecord(GatewayBase):
    """
    Durable record of a tenant.

    Upserted on readiness and never deleted; only status, status_message
    and phone_number change in place.
    """

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False)
    status_message = Column(Text, nullable=True)
    phone_number = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ClientRecord {self.client_id} {self.status}>"


class RosterMixin:
    """Columns shared by contacts and chats."""

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    contact_number = Column(String(50), nullable=True)  # NULL for groups
    type = Column(String(10), nullable=False)  # group, private


class ContactRecord(GatewayBase, RosterMixin):
    __tablename__ = "contacts"


class ChatRecord(GatewayBase, RosterMixin):
    __tablename__ = "chats"


class MessageLog(GatewayBase):
    """
    Sent or received message.

    client_id is the tenant, number the other party.
    """

    __tablename__ = "message_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(255), nullable=False)
    number = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("idx_message_logs_client_number", "client_id", "number"),)


class QRCodeRecord(GatewayBase):
    __tablename__ = "qrcodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(255), nullable=False, index=True)
    qr_code = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
