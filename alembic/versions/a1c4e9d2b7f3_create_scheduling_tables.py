"""create scheduling tables

Revision ID: a1c4e9d2b7f3
Revises:
Create Date: 2026-10-18 09:12:44.201937

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1c4e9d2b7f3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Directory lookups (owned by the identity and listing services)
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='buyer'),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )

    op.create_table(
        'properties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('listing_agent_id', sa.Uuid(), sa.ForeignKey('profiles.id'), nullable=True),
        sa.Column('address', sa.String(300), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(50), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True)
    )

    # 2. Providers - one row per agent, doubles as the calendar lock row
    op.create_table(
        'providers',
        sa.Column('id', sa.Uuid(), sa.ForeignKey('profiles.id'), primary_key=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('buffer_before_minutes', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('buffer_after_minutes', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('calendar_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('buffer_before_minutes BETWEEN 0 AND 60', name='ck_provider_buffer_before'),
        sa.CheckConstraint('buffer_after_minutes BETWEEN 0 AND 60', name='ck_provider_buffer_after')
    )

    # 3. Availability rules (tagged payload plus index columns)
    op.create_table(
        'availability_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('range_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('range_end', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("kind IN ('recurring', 'one_time', 'blackout')", name='ck_rule_kind'),
        sa.CheckConstraint('day_of_week IS NULL OR day_of_week BETWEEN 0 AND 6', name='ck_rule_day_of_week')
    )

    # Indexes for availability_rules
    op.create_index('idx_availability_rules_provider_kind', 'availability_rules', ['provider_id', 'kind'])
    op.create_index('idx_availability_rules_day', 'availability_rules', ['provider_id', 'day_of_week'])
    op.create_index('idx_availability_rules_range', 'availability_rules', ['provider_id', 'range_start', 'range_end'])

    # 4. Appointments
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id'), nullable=False),
        sa.Column('buyer_id', sa.Uuid(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('scheduled_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('scheduled_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('appointment_type', sa.String(20), nullable=False, server_default='in_person'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('original_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reschedule_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reschedule_reason', sa.Text(), nullable=True),
        sa.Column('reminder_24h_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reminder_1h_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.CheckConstraint('scheduled_start < scheduled_end', name='ck_appointment_time_order')
    )

    # Indexes for appointments
    op.create_index('idx_appointments_provider_start', 'appointments', ['provider_id', 'scheduled_start'])
    op.create_index('idx_appointments_provider_status', 'appointments', ['provider_id', 'status'])
    op.create_index('idx_appointments_reminders', 'appointments', ['status', 'scheduled_start'])


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_index('idx_appointments_reminders', table_name='appointments')
    op.drop_index('idx_appointments_provider_status', table_name='appointments')
    op.drop_index('idx_appointments_provider_start', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('idx_availability_rules_range', table_name='availability_rules')
    op.drop_index('idx_availability_rules_day', table_name='availability_rules')
    op.drop_index('idx_availability_rules_provider_kind', table_name='availability_rules')
    op.drop_table('availability_rules')

    op.drop_table('providers')
    op.drop_table('properties')
    op.drop_table('profiles')
