"""Client Phone Number

Revision ID: 0001_client_phone_number
Revises: 0000_initial
Create Date: 2026-10-19

Adds clients.phone_number, recorded when a session becomes ready.
"""

from alembic import op
import sqlalchemy as sa

revision = '0001_client_phone_number'
down_revision = '0000_initial'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('clients') as batch_op:
        batch_op.add_column(sa.Column('phone_number', sa.String(50), nullable=True))


def downgrade():
    with op.batch_alter_table('clients') as batch_op:
        batch_op.drop_column('phone_number')
