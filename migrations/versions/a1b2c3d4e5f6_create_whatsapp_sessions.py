"""create whatsapp_sessions table

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 12:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'whatsapp_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='disconnected'),
        sa.Column('qr_code', sa.Text, nullable=True),
        sa.Column('session_data', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    # Upserts are keyed on tenant_id
    op.create_index('ix_whatsapp_sessions_tenant_id', 'whatsapp_sessions', ['tenant_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_whatsapp_sessions_tenant_id', table_name='whatsapp_sessions')
    op.drop_table('whatsapp_sessions')
