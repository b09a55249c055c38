"""Create offerings, registrations, waitlist_entries and payment_webhook_events

Revision ID: e001_create_enrollment
Revises:
Create Date: 2026-10-16

This migration creates the tables for registration and waitlist management:
- offerings: capacity-bounded events with the confirmed seat counter
- registrations: one live (pending_payment/confirmed) row per offering and subject
- waitlist_entries: FIFO queue for full offerings
- payment_webhook_events: log of payment provider callbacks
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision = 'e001_create_enrollment'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'offerings',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('confirmed_seats', sa.Integer(), nullable=False, server_default=sa.text('0')),

        # Pricing
        sa.Column('is_free', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),

        # Schedule
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registration_deadline', sa.DateTime(timezone=True), nullable=True),

        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),

        sa.CheckConstraint('capacity > 0', name='ck_offerings_capacity_positive'),
        sa.CheckConstraint('confirmed_seats >= 0', name='ck_offerings_seats_non_negative'),
        sa.CheckConstraint('confirmed_seats <= capacity', name='ck_offerings_seats_within_capacity'),
        sa.CheckConstraint('is_free OR (price_cents IS NOT NULL AND price_cents > 0)', name='ck_offerings_priced_or_free'),
    )
    op.create_index('ix_offerings_status_starts_at', 'offerings', ['status', 'starts_at'])

    op.create_table(
        'waitlist_entries',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('offering_id', sa.String(), sa.ForeignKey('offerings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=False),
        sa.Column('contact_email', sa.String(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('offered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('response_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_check_constraint(
        'check_waitlist_status',
        'waitlist_entries',
        "status IN ('waiting', 'offered', 'accepted', 'expired', 'declined')"
    )
    op.create_index('ix_waitlist_entries_offering_id', 'waitlist_entries', ['offering_id'])
    op.create_index('ix_waitlist_entries_subject_id', 'waitlist_entries', ['subject_id'])
    op.create_index(
        'ix_waitlist_offering_status_position',
        'waitlist_entries',
        ['offering_id', 'status', 'position']
    )
    op.create_index(
        'uq_waitlist_live_offering_subject',
        'waitlist_entries',
        ['offering_id', 'subject_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('waiting', 'offered')")
    )
    op.create_index(
        'idx_waitlist_offer_deadline',
        'waitlist_entries',
        ['response_deadline'],
        postgresql_where=sa.text("status = 'offered'")
    )

    op.create_table(
        'registrations',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('offering_id', sa.String(), sa.ForeignKey('offerings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=False),  # No FK - identity provider owns subjects
        sa.Column('contact_email', sa.String(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),

        # Payment shadow
        sa.Column('payment_status', sa.String(20), nullable=True),
        sa.Column('checkout_session_id', sa.String(), nullable=True),
        sa.Column('checkout_url', sa.Text(), nullable=True),
        sa.Column('payment_reference', sa.String(), nullable=True),

        # Timestamps
        sa.Column('registered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'waitlist_entry_id',
            sa.String(),
            sa.ForeignKey('waitlist_entries.id', ondelete='SET NULL'),
            nullable=True,
        ),
    )
    op.create_check_constraint(
        'check_registration_status',
        'registrations',
        "status IN ('pending_payment', 'confirmed', 'cancelled', 'completed')"
    )
    op.create_index('ix_registrations_offering_id', 'registrations', ['offering_id'])
    op.create_index('ix_registrations_subject_id', 'registrations', ['subject_id'])
    op.create_index('ix_registrations_checkout_session_id', 'registrations', ['checkout_session_id'])
    op.create_index('ix_registrations_offering_status', 'registrations', ['offering_id', 'status'])
    op.create_index(
        'uq_registrations_live_offering_subject',
        'registrations',
        ['offering_id', 'subject_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending_payment', 'confirmed')")
    )

    op.create_table(
        'payment_webhook_events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('provider_code', sa.String(50), nullable=False),
        sa.Column('provider_event_id', sa.String(255), nullable=False),
        sa.Column('provider_event_type', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('payload', JSONB(), nullable=True),
        sa.Column('related_registration_id', sa.String(), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('provider_code', 'provider_event_id', name='uq_webhook_provider_event'),
    )
    op.create_index(
        'ix_payment_webhook_events_related_registration_id',
        'payment_webhook_events',
        ['related_registration_id']
    )


def downgrade() -> None:
    op.drop_index('ix_payment_webhook_events_related_registration_id', table_name='payment_webhook_events')
    op.drop_table('payment_webhook_events')

    op.drop_index('uq_registrations_live_offering_subject', table_name='registrations')
    op.drop_index('ix_registrations_offering_status', table_name='registrations')
    op.drop_index('ix_registrations_checkout_session_id', table_name='registrations')
    op.drop_index('ix_registrations_subject_id', table_name='registrations')
    op.drop_index('ix_registrations_offering_id', table_name='registrations')
    op.drop_constraint('check_registration_status', 'registrations', type_='check')
    op.drop_table('registrations')

    op.drop_index('idx_waitlist_offer_deadline', table_name='waitlist_entries')
    op.drop_index('uq_waitlist_live_offering_subject', table_name='waitlist_entries')
    op.drop_index('ix_waitlist_offering_status_position', table_name='waitlist_entries')
    op.drop_index('ix_waitlist_entries_subject_id', table_name='waitlist_entries')
    op.drop_index('ix_waitlist_entries_offering_id', table_name='waitlist_entries')
    op.drop_constraint('check_waitlist_status', 'waitlist_entries', type_='check')
    op.drop_table('waitlist_entries')

    op.drop_index('ix_offerings_status_starts_at', table_name='offerings')
    op.drop_table('offerings')
