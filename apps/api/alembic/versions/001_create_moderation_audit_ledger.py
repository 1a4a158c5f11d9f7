"""Create moderation audit ledger and ledger head.

Revision ID: 001
Revises:
Create Date: 2025-11-23
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'moderation_audit_logs',
        sa.Column('sequence_id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('entry_hash', sa.String(length=64), nullable=False),
        sa.Column('previous_hash', sa.String(length=64), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('actor_type', sa.String(length=20), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('target_type', sa.String(length=100), nullable=True),
        sa.Column('target_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "actor_type IN ('user', 'moderator', 'system', 'api')",
            name='ck_moderation_audit_logs_actor_type',
        ),
        sa.PrimaryKeyConstraint('sequence_id'),
        sa.UniqueConstraint('entry_hash'),
        sa.UniqueConstraint('previous_hash'),
    )
    op.create_index('ix_moderation_audit_logs_event_type', 'moderation_audit_logs', ['event_type'])
    op.create_index('ix_moderation_audit_logs_timestamp', 'moderation_audit_logs', ['timestamp'])
    op.create_index('ix_moderation_audit_logs_actor', 'moderation_audit_logs', ['actor_type', 'actor_id'])
    op.create_index('ix_moderation_audit_logs_target', 'moderation_audit_logs', ['target_type', 'target_id'])
    op.create_index('ix_moderation_audit_logs_chain', 'moderation_audit_logs', ['previous_hash', 'entry_hash'])

    op.create_table(
        'ledger_head',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('last_sequence', sa.BigInteger(), nullable=False),
        sa.Column('last_hash', sa.String(length=64), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('ledger_head')
    op.drop_index('ix_moderation_audit_logs_chain', table_name='moderation_audit_logs')
    op.drop_index('ix_moderation_audit_logs_target', table_name='moderation_audit_logs')
    op.drop_index('ix_moderation_audit_logs_actor', table_name='moderation_audit_logs')
    op.drop_index('ix_moderation_audit_logs_timestamp', table_name='moderation_audit_logs')
    op.drop_index('ix_moderation_audit_logs_event_type', table_name='moderation_audit_logs')
    op.drop_table('moderation_audit_logs')
