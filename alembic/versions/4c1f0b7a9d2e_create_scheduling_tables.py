"""create scheduling tables

Revision ID: 4c1f0b7a9d2e
Revises:
Create Date: 2026-10-18 09:12:44.301552

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c1f0b7a9d2e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Weekly slot grid
    op.create_table(
        'available_time_slots',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('max_bookings_per_slot', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='ck_available_time_slots_day'),
        sa.CheckConstraint('end_time > start_time', name='ck_available_time_slots_range'),
        sa.CheckConstraint('max_bookings_per_slot >= 1', name='ck_available_time_slots_capacity'),
    )
    op.create_index('ix_available_time_slots_day_of_week', 'available_time_slots', ['day_of_week'])

    op.create_table(
        'slot_day_locks',
        sa.Column('day_of_week', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'booking_blackout_dates',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_booking_blackout_dates_date', 'booking_blackout_dates', ['date'], unique=True)

    op.create_table(
        'slot_reservations',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('slot_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('booked_count', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('slot_date', 'start_time', name='uq_slot_reservations_date_start'),
    )
    op.create_index('ix_slot_reservations_slot_date', 'slot_reservations', ['slot_date'])

    # 2. Bookings
    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('customer_email', sa.String(), nullable=False),
        sa.Column('customer_phone', sa.String(), nullable=False),
        sa.Column('business_name', sa.String(), nullable=False),
        sa.Column('business_type', sa.String(), nullable=True),
        sa.Column('business_location', sa.String(), nullable=True),
        sa.Column('biggest_challenge', sa.Text(), nullable=True),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('preferred_date', sa.Date(), nullable=False),
        sa.Column('preferred_time_slot', sa.String(11), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('external_event_id', sa.String(), nullable=True, unique=True),
        sa.Column('external_meeting_link', sa.String(), nullable=True),
        sa.Column('calendar_sync_status', sa.String(20), server_default='not_synced'),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('confirmation_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name='ck_bookings_status',
        ),
    )
    op.create_index('ix_bookings_customer_email', 'bookings', ['customer_email'])
    op.create_index('ix_bookings_preferred_date', 'bookings', ['preferred_date'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])

    # 3. Recurring meetings
    op.create_table(
        'recurring_meetings',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('owner_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('subscription_tier', sa.String(20), nullable=False),
        sa.Column('meeting_type', sa.String(30), server_default='report_brief'),
        sa.Column('title', sa.String(200), server_default='Monthly Report Brief'),
        sa.Column('recurrence_frequency', sa.String(20), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('day_of_month', sa.Integer(), nullable=True),
        sa.Column('week_of_month', sa.Integer(), nullable=True),
        sa.Column('preferred_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_generated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            'day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 28)',
            name='ck_recurring_meetings_day_of_month',
        ),
        sa.CheckConstraint(
            'week_of_month IS NULL OR (week_of_month >= 1 AND week_of_month <= 5)',
            name='ck_recurring_meetings_week_of_month',
        ),
    )
    op.create_index('ix_recurring_meetings_owner_id', 'recurring_meetings', ['owner_id'])
    op.create_index(
        'uq_recurring_meetings_active_owner',
        'recurring_meetings',
        ['owner_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )

    op.create_table(
        'meeting_occurrences',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            'recurring_meeting_id',
            sa.Uuid(as_uuid=True),
            sa.ForeignKey('recurring_meetings.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('scheduled_time', sa.Time(), nullable=False),
        sa.Column('original_date', sa.Date(), nullable=True),
        sa.Column('original_time', sa.Time(), nullable=True),
        sa.Column('reschedule_reason', sa.Text(), nullable=True),
        sa.Column('external_event_id', sa.String(), nullable=True, unique=True),
        sa.Column('external_meeting_link', sa.String(), nullable=True),
        sa.Column('calendar_sync_status', sa.String(20), server_default='not_synced'),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('client_notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('recurring_meeting_id', 'scheduled_date', name='uq_meeting_occurrences_meeting_date'),
    )
    op.create_index('ix_meeting_occurrences_recurring_meeting_id', 'meeting_occurrences', ['recurring_meeting_id'])
    op.create_index('ix_meeting_occurrences_scheduled_date', 'meeting_occurrences', ['scheduled_date'])

    # 4. Calendar integration
    op.create_table(
        'calendar_integrations',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('provider', sa.String(), server_default='google'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('calendar_id', sa.String(), server_default='primary'),
        sa.Column('access_token_encrypted', sa.LargeBinary()),
        sa.Column('refresh_token_encrypted', sa.LargeBinary()),
        sa.Column('token_expires_at', sa.DateTime(timezone=True)),
        sa.Column('needs_reauth', sa.Boolean(), server_default=sa.false()),
        sa.Column('last_sync_at', sa.DateTime(timezone=True)),
        sa.Column('last_sync_status', sa.String()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('calendar_integrations')
    op.drop_index('ix_meeting_occurrences_scheduled_date', table_name='meeting_occurrences')
    op.drop_index('ix_meeting_occurrences_recurring_meeting_id', table_name='meeting_occurrences')
    op.drop_table('meeting_occurrences')
    op.drop_index('uq_recurring_meetings_active_owner', table_name='recurring_meetings')
    op.drop_index('ix_recurring_meetings_owner_id', table_name='recurring_meetings')
    op.drop_table('recurring_meetings')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_preferred_date', table_name='bookings')
    op.drop_index('ix_bookings_customer_email', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_slot_reservations_slot_date', table_name='slot_reservations')
    op.drop_table('slot_reservations')
    op.drop_index('ix_booking_blackout_dates_date', table_name='booking_blackout_dates')
    op.drop_table('booking_blackout_dates')
    op.drop_table('slot_day_locks')
    op.drop_index('ix_available_time_slots_day_of_week', table_name='available_time_slots')
    op.drop_table('available_time_slots')
