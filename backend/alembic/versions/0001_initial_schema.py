"""Initial schema: users, subscriptions, payment event ledger, activity log

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), server_default='user', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("role IN ('user', 'sub_admin', 'super_admin')", name='ck_users_role'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),

        # Plan
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('monthly_quota', sa.Integer, nullable=False),

        # Usage tracking
        sa.Column('conversions_used', sa.Integer, server_default='0', nullable=False),
        sa.Column('cycle_started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),

        # Stripe subscription ID
        sa.Column('external_ref', sa.String(255)),

        sa.Column('ended_at', sa.DateTime(timezone=True)),
        sa.Column('version', sa.Integer, server_default='1', nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),

        sa.CheckConstraint("tier IN ('basic', 'standard', 'pro')", name='ck_subscriptions_tier'),
        sa.CheckConstraint("status IN ('active', 'canceled')", name='ck_subscriptions_status'),
        sa.CheckConstraint('conversions_used >= 0', name='ck_subscriptions_usage_non_negative'),
        sa.CheckConstraint(
            "status <> 'canceled' OR ended_at IS NOT NULL",
            name='ck_subscriptions_canceled_has_end',
        ),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'], unique=True)
    op.create_index('ix_subscriptions_external_ref', 'subscriptions', ['external_ref'])

    op.create_table(
        'processed_payment_events',
        sa.Column('external_ref', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('user_id', sa.Uuid()),
        sa.Column('tier', sa.String(20)),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_processed_payment_events_user_id', 'processed_payment_events', ['user_id'])

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('details', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_activity_logs_user_id', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_index('ix_processed_payment_events_user_id', table_name='processed_payment_events')
    op.drop_table('processed_payment_events')
    op.drop_index('ix_subscriptions_external_ref', table_name='subscriptions')
    op.drop_index('ix_subscriptions_user_id', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
