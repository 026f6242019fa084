"""
Gateway Repository

Synchronous database operations for the gateway tables. Every write is a
single statement; the caller owns the session and the commit.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import insert, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from session_gateway.persistence.models import (
    ChatRecord,
    ClientRecord,
    ContactRecord,
    GatewayBase,
    MessageLog,
    QRCodeRecord,
)


class GatewayRepository:
    """Repository for gateway database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Idempotent insert
    # =========================================================================

    def insert_if_absent(
        self,
        model: type[GatewayBase],
        match: Mapping[str, Any],
        values: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Insert a row unless one already matches.

        Runs as one INSERT ... SELECT ... WHERE NOT EXISTS statement. None in
        match compares with IS NULL. Two concurrent calls can still both
        insert; callers must tolerate the occasional duplicate.

        Returns:
            True if a row was inserted
        """
        table = model.__table__
        row = {**match, **(values or {})}
        columns = list(row)

        conditions = [
            table.c[key].is_(None) if value is None else table.c[key] == value
            for key, value in match.items()
        ]
        existing = select(table.c.id).where(*conditions).correlate(None).exists()
        source = select(
            *[literal(row[column], type_=table.c[column].type) for column in columns]
        ).where(~existing)

        result = self.db.execute(insert(table).from_select(columns, source))
        return result.rowcount > 0

    # =========================================================================
    # Clients
    # =========================================================================

    def upsert_client(self, client_id: str, status: str, phone_number: str | None = None) -> bool:
        """
        Set a tenant's status (and phone number), creating the row if needed.

        Returns:
            True if the row was created
        """
        values: dict[str, Any] = {"status": status}
        if phone_number is not None:
            values["phone_number"] = phone_number

        if self._update_client(client_id, values):
            return False

        try:
            self.db.execute(insert(ClientRecord).values(client_id=client_id, **values))
            return True
        except IntegrityError:
            # Created concurrently between the update and the insert
            self.db.rollback()
            self._update_client(client_id, values)
            return False

    def update_client_status(self, client_id: str, status: str) -> bool:
        return self._update_client(client_id, {"status": status})

    def update_client_status_message(self, client_id: str, status_message: str) -> bool:
        return self._update_client(client_id, {"status_message": status_message})

    def _update_client(self, client_id: str, values: dict[str, Any]) -> bool:
        result = self.db.execute(
            update(ClientRecord)
            .where(ClientRecord.client_id == client_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def get_client(self, client_id: str) -> ClientRecord | None:
        """Get a tenant's durable record."""
        return self.db.query(ClientRecord).filter(ClientRecord.client_id == client_id).first()

    def list_clients(self, status: str | None = None) -> list[ClientRecord]:
        """List tenants, optionally filtered by status."""
        query = self.db.query(ClientRecord)
        if status:
            query = query.filter(ClientRecord.status == status)
        return query.order_by(ClientRecord.client_id).all()

    # =========================================================================
    # Messages, QR codes, roster
    # =========================================================================

    def log_message(
        self, client_id: str, number: str, message: str, sent_at: datetime | None = None
    ) -> bool:
        """
        Log a message unless the same (tenant, number, text) is already logged.

        Two different messages with identical text from the same peer count
        as one; only the first is stored.
        """
        return self.insert_if_absent(
            MessageLog,
            {"client_id": client_id, "number": number, "message": message},
            {"sent_at": sent_at or datetime.utcnow()},
        )

    def save_qr(self, client_id: str, qr_code: str) -> None:
        self.db.execute(insert(QRCodeRecord).values(client_id=client_id, qr_code=qr_code))

    def save_contact(self, client_id: str, name: str | None, contact_number: str | None, kind: str) -> bool:
        return self.insert_if_absent(
            ContactRecord,
            {"client_id": client_id, "name": name, "contact_number": contact_number, "type": kind},
        )

    def save_chat(self, client_id: str, name: str | None, contact_number: str | None, kind: str) -> bool:
        return self.insert_if_absent(
            ChatRecord,
            {"client_id": client_id, "name": name, "contact_number": contact_number, "type": kind},
        )

    def list_message_logs(self, client_id: str, limit: int = 50) -> list[MessageLog]:
        """Most recent messages for a tenant, newest first."""
        return (
            self.db.query(MessageLog)
            .filter(MessageLog.client_id == client_id)
            .order_by(MessageLog.sent_at.desc(), MessageLog.id.desc())
            .limit(limit)
            .all()
        )

    def list_contacts(self, client_id: str) -> list[ContactRecord]:
        return (
            self.db.query(ContactRecord)
            .filter(ContactRecord.client_id == client_id)
            .order_by(ContactRecord.id)
            .all()
        )

    def list_chats(self, client_id: str) -> list[ChatRecord]:
        return (
            self.db.query(ChatRecord)
            .filter(ChatRecord.client_id == client_id)
            .order_by(ChatRecord.id)
            .all()
        )

    def list_qr_codes(self, client_id: str) -> list[QRCodeRecord]:
        return (
            self.db.query(QRCodeRecord)
            .filter(QRCodeRecord.client_id == client_id)
            .order_by(QRCodeRecord.id)
            .all()
        )
