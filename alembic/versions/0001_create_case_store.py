"""create case store tables

Revision ID: 0001_create_case_store
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_create_case_store'
down_revision: Union[str, Sequence[str], None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('order_cases',
    sa.Column('case_id', sa.String(), nullable=False),
    sa.Column('tenant_id', sa.String(), nullable=False),
    sa.Column('user_id', sa.String(), nullable=False),
    sa.Column('correlation_id', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('current_step', sa.String(), nullable=True),
    sa.Column('revision', sa.Integer(), nullable=False),
    sa.Column('file_blob_reference', sa.String(), nullable=True),
    sa.Column('file_sha256', sa.String(), nullable=True),
    sa.Column('order_snapshot', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('zoho_order_id', sa.String(), nullable=True),
    sa.Column('zoho_order_number', sa.String(), nullable=True),
    sa.Column('last_error', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('case_id')
    )
    op.create_index(op.f('ix_order_cases_tenant_id'), 'order_cases', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_order_cases_user_id'), 'order_cases', ['user_id'], unique=False)

    op.create_table('case_events',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.String(), nullable=False),
    sa.Column('sequence', sa.Integer(), nullable=False),
    sa.Column('event_type', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('actor', sa.String(), nullable=True),
    sa.Column('correlation_id', sa.String(), nullable=True),
    sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('occurred_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['case_id'], ['order_cases.case_id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_case_events_case_sequence', 'case_events', ['case_id', 'sequence'], unique=True)

    op.create_table('order_fingerprints',
    sa.Column('fingerprint', sa.String(), nullable=False),
    sa.Column('case_id', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('zoho_order_id', sa.String(), nullable=True),
    sa.Column('zoho_order_number', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('fingerprint')
    )
    op.create_index(op.f('ix_order_fingerprints_case_id'), 'order_fingerprints', ['case_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_order_fingerprints_case_id'), table_name='order_fingerprints')
    op.drop_table('order_fingerprints')
    op.drop_index('ix_case_events_case_sequence', table_name='case_events')
    op.drop_table('case_events')
    op.drop_index(op.f('ix_order_cases_user_id'), table_name='order_cases')
    op.drop_index(op.f('ix_order_cases_tenant_id'), table_name='order_cases')
    op.drop_table('order_cases')
