"""Add audit integrity history and security alerts.

Revision ID: 002
Revises: 001
Create Date: 2025-11-24
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'audit_integrity_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('check_date', sa.DateTime(), nullable=False),
        sa.Column('total_checked', sa.Integer(), nullable=False),
        sa.Column('violations_found', sa.Integer(), nullable=False),
        sa.Column('integrity_score', sa.Float(), nullable=False),
        sa.Column('last_verified_hash', sa.String(length=64), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('duration_ms', sa.Float(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_integrity_history_id', 'audit_integrity_history', ['id'])
    op.create_index('ix_audit_integrity_history_check_date', 'audit_integrity_history', ['check_date'])
    op.create_index('ix_audit_integrity_history_passed', 'audit_integrity_history', ['passed'])

    op.create_table(
        'security_alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_security_alerts_id', 'security_alerts', ['id'])
    op.create_index('ix_security_alerts_type', 'security_alerts', ['type'])
    op.create_index('ix_security_alerts_created_at', 'security_alerts', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_security_alerts_created_at', table_name='security_alerts')
    op.drop_index('ix_security_alerts_type', table_name='security_alerts')
    op.drop_index('ix_security_alerts_id', table_name='security_alerts')
    op.drop_table('security_alerts')
    op.drop_index('ix_audit_integrity_history_passed', table_name='audit_integrity_history')
    op.drop_index('ix_audit_integrity_history_check_date', table_name='audit_integrity_history')
    op.drop_index('ix_audit_integrity_history_id', table_name='audit_integrity_history')
    op.drop_table('audit_integrity_history')
