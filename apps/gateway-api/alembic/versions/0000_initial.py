"""Gateway Tables

Revision ID: 0000_initial
Revises:
Create Date: 2026-10-19

Creates the tables owned by the session gateway:
- clients: One row per tenant (status, status message)
- contacts / chats: Roster mirrored when a session becomes ready
- message_logs: Sent and received messages
- qrcodes: QR payloads emitted during pairing
"""

from alembic import op
import sqlalchemy as sa

revision = '0000_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # =========================================================================
    # CLIENTS
    # =========================================================================

    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id'),
    )

    # =========================================================================
    # ROSTER
    # =========================================================================

    for table_name in ('contacts', 'chats'):
        op.create_table(
            table_name,
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('client_id', sa.String(255), nullable=False),
            sa.Column('name', sa.String(255), nullable=True),
            sa.Column('contact_number', sa.String(50), nullable=True),
            sa.Column('type', sa.String(10), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(f'ix_{table_name}_client_id', table_name, ['client_id'])

    # =========================================================================
    # MESSAGE LOGS
    # =========================================================================

    op.create_table(
        'message_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_id', sa.String(255), nullable=False),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_message_logs_client_number', 'message_logs', ['client_id', 'number'])

    # =========================================================================
    # QR CODES
    # =========================================================================

    op.create_table(
        'qrcodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_id', sa.String(255), nullable=False),
        sa.Column('qr_code', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_qrcodes_client_id', 'qrcodes', ['client_id'])


def downgrade():
    op.drop_table('qrcodes')
    op.drop_table('message_logs')
    op.drop_table('chats')
    op.drop_table('contacts')
    op.drop_table('clients')
