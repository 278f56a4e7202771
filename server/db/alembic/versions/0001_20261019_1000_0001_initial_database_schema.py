"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False))
    return columns


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('companies',
        _id(),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('vat_percentage', sa.Float(), nullable=True),
        sa.Column('default_currency', sa.String(length=3), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'vat_percentage IS NULL OR (vat_percentage >= 0 AND vat_percentage <= 100)',
            name='ck_company_vat_range',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_companies_owner_id'), 'companies', ['owner_id'], unique=False)

    op.create_table('properties',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('country', sa.String(length=120), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('check_in_time', sa.String(length=5), nullable=False),
        sa.Column('check_out_time', sa.String(length=5), nullable=False),
        sa.Column('cancellation_policy', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_listed_publicly', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('length(currency) = 3', name='ck_property_currency_length'),
        sa.CheckConstraint('length(slug) > 0', name='ck_property_slug_not_empty'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_properties_company_id'), 'properties', ['company_id'], unique=False)
    op.create_index(op.f('ix_properties_owner_id'), 'properties', ['owner_id'], unique=False)
    op.create_index(op.f('ix_properties_slug'), 'properties', ['slug'], unique=True)

    op.create_table('rooms',
        _id(),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('room_code', sa.String(length=50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('pricing_mode', sa.String(length=30), nullable=False),
        sa.Column('base_price_per_night', sa.Integer(), nullable=False),
        sa.Column('additional_person_rate', sa.Integer(), nullable=False),
        sa.Column('child_price_per_night', sa.Integer(), nullable=True),
        sa.Column('child_free_until_age', sa.Integer(), nullable=False),
        sa.Column('child_age_limit', sa.Integer(), nullable=False),
        sa.Column('max_guests', sa.Integer(), nullable=False),
        sa.Column('min_nights', sa.Integer(), nullable=False),
        sa.Column('max_nights', sa.Integer(), nullable=True),
        sa.Column('total_units', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_paused', sa.Boolean(), nullable=False),
        sa.Column('paused_reason', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('base_price_per_night >= 0', name='ck_room_base_price_non_negative'),
        sa.CheckConstraint('additional_person_rate >= 0', name='ck_room_additional_rate_non_negative'),
        sa.CheckConstraint('max_guests > 0', name='ck_room_max_guests_positive'),
        sa.CheckConstraint('min_nights > 0', name='ck_room_min_nights_positive'),
        sa.CheckConstraint('total_units > 0', name='ck_room_total_units_positive'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rooms_property_id'), 'rooms', ['property_id'], unique=False)

    op.create_table('room_seasonal_rates',
        _id(),
        sa.Column('room_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('price_per_night', sa.Integer(), nullable=False),
        sa.Column('additional_person_rate', sa.Integer(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('end_date >= start_date', name='ck_seasonal_rate_date_order'),
        sa.CheckConstraint('price_per_night >= 0', name='ck_seasonal_rate_price_non_negative'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_room_seasonal_rates_room_id'), 'room_seasonal_rates', ['room_id'], unique=False)

    op.create_table('add_ons',
        _id(),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('pricing_type', sa.String(length=30), nullable=False),
        sa.Column('max_quantity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('price >= 0', name='ck_add_on_price_non_negative'),
        sa.CheckConstraint('max_quantity > 0', name='ck_add_on_max_quantity_positive'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_add_ons_property_id'), 'add_ons', ['property_id'], unique=False)

    op.create_table('room_promotions',
        _id(),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', sa.String(length=20), nullable=False),
        sa.Column('discount_value', sa.Integer(), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('max_uses_per_customer', sa.Integer(), nullable=False),
        sa.Column('current_uses', sa.Integer(), nullable=False),
        sa.Column('min_booking_amount', sa.Integer(), nullable=True),
        sa.Column('min_nights', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('discount_value > 0', name='ck_promotion_discount_positive'),
        sa.CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name='ck_promotion_percentage_max',
        ),
        sa.CheckConstraint('current_uses >= 0', name='ck_promotion_uses_non_negative'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('property_id', 'code', name='uq_promotion_property_code')
    )
    op.create_index(op.f('ix_room_promotions_code'), 'room_promotions', ['code'], unique=False)
    op.create_index(op.f('ix_room_promotions_property_id'), 'room_promotions', ['property_id'], unique=False)
    op.create_index(op.f('ix_room_promotions_room_id'), 'room_promotions', ['room_id'], unique=False)

    op.create_table('customers',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('source', sa.String(length=30), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_bookings', sa.Integer(), nullable=False),
        sa.Column('total_spent', sa.Integer(), nullable=False),
        sa.Column('last_booking_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', 'property_id', name='uq_customer_email_property')
    )
    op.create_index(op.f('ix_customers_company_id'), 'customers', ['company_id'], unique=False)
    op.create_index(op.f('ix_customers_email'), 'customers', ['email'], unique=False)
    op.create_index(op.f('ix_customers_property_id'), 'customers', ['property_id'], unique=False)
    op.create_index(op.f('ix_customers_user_id'), 'customers', ['user_id'], unique=False)

    op.create_table('bookings',
        _id(),
        sa.Column('booking_reference', sa.String(length=20), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('guest_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('guest_name', sa.String(length=255), nullable=False),
        sa.Column('guest_email', sa.String(length=255), nullable=False),
        sa.Column('guest_phone', sa.String(length=50), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('total_nights', sa.Integer(), nullable=False),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('children', sa.Integer(), nullable=False),
        sa.Column('room_total', sa.Integer(), nullable=False),
        sa.Column('addons_total', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('discount_amount', sa.Integer(), nullable=False),
        sa.Column('tax_amount', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('total_refunded', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('coupon_code', sa.String(length=50), nullable=True),
        sa.Column('promotion_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('booking_status', sa.String(length=30), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('refund_status', sa.String(length=20), nullable=False),
        sa.Column('source', sa.String(length=30), nullable=False),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(), nullable=True),
        sa.Column('checked_out_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('check_out_date > check_in_date', name='ck_booking_date_order'),
        sa.CheckConstraint('adults >= 1', name='ck_booking_adults_positive'),
        sa.CheckConstraint('children >= 0', name='ck_booking_children_non_negative'),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('amount_paid >= 0', name='ck_booking_paid_non_negative'),
        sa.CheckConstraint('total_refunded >= 0', name='ck_booking_refunded_non_negative'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['promotion_id'], ['room_promotions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_booking_reference'), 'bookings', ['booking_reference'], unique=True)
    op.create_index(op.f('ix_bookings_property_id'), 'bookings', ['property_id'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'), 'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_guest_id'), 'bookings', ['guest_id'], unique=False)
    op.create_index(op.f('ix_bookings_guest_email'), 'bookings', ['guest_email'], unique=False)
    op.create_index(op.f('ix_bookings_check_in_date'), 'bookings', ['check_in_date'], unique=False)
    op.create_index(op.f('ix_bookings_check_out_date'), 'bookings', ['check_out_date'], unique=False)
    op.create_index(op.f('ix_bookings_booking_status'), 'bookings', ['booking_status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_status'), 'bookings', ['payment_status'], unique=False)

    op.create_table('booking_rooms',
        _id(),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_name', sa.String(length=255), nullable=False),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('children', sa.Integer(), nullable=False),
        sa.Column('children_ages', sa.JSON(), nullable=False),
        sa.Column('nightly_rates', sa.JSON(), nullable=False),
        sa.Column('room_subtotal', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_rooms_booking_id'), 'booking_rooms', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_rooms_room_id'), 'booking_rooms', ['room_id'], unique=False)

    op.create_table('booking_addons',
        _id(),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('addon_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('addon_name', sa.String(length=255), nullable=False),
        sa.Column('pricing_type', sa.String(length=30), nullable=False),
        sa.Column('unit_price', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('addon_total', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_booking_addon_quantity_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['addon_id'], ['add_ons.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_addons_booking_id'), 'booking_addons', ['booking_id'], unique=False)

    op.create_table('booking_payments',
        _id(),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('gateway_reference', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('recorded_by', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint('amount > 0', name='ck_booking_payment_amount_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_payments_booking_id'), 'booking_payments', ['booking_id'], unique=False)

    op.create_table('refund_requests',
        _id(),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('requested_amount', sa.Integer(), nullable=False),
        sa.Column('approved_amount', sa.Integer(), nullable=True),
        sa.Column('refunded_amount', sa.Integer(), nullable=False),
        sa.Column('suggested_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('cancellation_policy', sa.String(length=20), nullable=False),
        sa.Column('refund_breakdown', sa.JSON(), nullable=True),
        sa.Column('requested_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('processed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('auto_process_failed', sa.Boolean(), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('requested_amount > 0', name='ck_refund_requested_positive'),
        sa.CheckConstraint(
            'approved_amount IS NULL OR approved_amount > 0', name='ck_refund_approved_positive'
        ),
        sa.CheckConstraint('refunded_amount >= 0', name='ck_refund_refunded_non_negative'),
        sa.CheckConstraint('length(reason) > 0', name='ck_refund_reason_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_refund_requests_booking_id'), 'refund_requests', ['booking_id'], unique=False)
    op.create_index(op.f('ix_refund_requests_status'), 'refund_requests', ['status'], unique=False)
    op.create_index(op.f('ix_refund_requests_requested_by'), 'refund_requests', ['requested_by'], unique=False)

    op.create_table('refund_status_history',
        _id(),
        sa.Column('refund_request_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('from_status', sa.String(length=20), nullable=True),
        sa.Column('to_status', sa.String(length=20), nullable=False),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('change_reason', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['refund_request_id'], ['refund_requests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_refund_status_history_refund_request_id'),
        'refund_status_history',
        ['refund_request_id'],
        unique=False,
    )

    op.create_table('quote_requests',
        _id(),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('guest_name', sa.String(length=255), nullable=False),
        sa.Column('guest_email', sa.String(length=255), nullable=False),
        sa.Column('guest_phone', sa.String(length=50), nullable=True),
        sa.Column('date_flexibility', sa.String(length=20), nullable=False),
        sa.Column('preferred_check_in', sa.Date(), nullable=True),
        sa.Column('preferred_check_out', sa.Date(), nullable=True),
        sa.Column('flexible_date_start', sa.Date(), nullable=True),
        sa.Column('flexible_date_end', sa.Date(), nullable=True),
        sa.Column('nights_count', sa.Integer(), nullable=True),
        sa.Column('adults_count', sa.Integer(), nullable=False),
        sa.Column('children_count', sa.Integer(), nullable=False),
        sa.Column('group_size', sa.Integer(), nullable=False),
        sa.Column('group_type', sa.String(length=30), nullable=False),
        sa.Column('budget_min', sa.Integer(), nullable=True),
        sa.Column('budget_max', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('special_requirements', sa.Text(), nullable=True),
        sa.Column('dietary_restrictions', sa.Text(), nullable=True),
        sa.Column('accessibility_needs', sa.Text(), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=True),
        sa.Column('event_description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('owner_response', sa.Text(), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('responded_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('converted_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('source', sa.String(length=30), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('adults_count >= 1', name='ck_quote_adults_positive'),
        sa.CheckConstraint('children_count >= 0', name='ck_quote_children_non_negative'),
        sa.CheckConstraint('priority >= 0 AND priority <= 3', name='ck_quote_priority_range'),
        sa.CheckConstraint(
            'budget_min IS NULL OR budget_max IS NULL OR budget_min <= budget_max',
            name='ck_quote_budget_order',
        ),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_quote_requests_property_id'), 'quote_requests', ['property_id'], unique=False)
    op.create_index(op.f('ix_quote_requests_company_id'), 'quote_requests', ['company_id'], unique=False)
    op.create_index(op.f('ix_quote_requests_customer_id'), 'quote_requests', ['customer_id'], unique=False)
    op.create_index(op.f('ix_quote_requests_user_id'), 'quote_requests', ['user_id'], unique=False)
    op.create_index(op.f('ix_quote_requests_status'), 'quote_requests', ['status'], unique=False)
    op.create_index(op.f('ix_quote_requests_expires_at'), 'quote_requests', ['expires_at'], unique=False)

    op.create_table('audit_logs',
        _id(),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_actor_id'), 'audit_logs', ['actor_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)

    op.create_table('idempotency_records',
        _id(),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('scope', sa.String(length=150), nullable=False),
        sa.Column('request_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_hash) = 64', name='ck_idempotency_hash_length'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'scope', name='uq_idempotency_key_scope')
    )
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('audit_logs')
    op.drop_table('quote_requests')
    op.drop_table('refund_status_history')
    op.drop_table('refund_requests')
    op.drop_table('booking_payments')
    op.drop_table('booking_addons')
    op.drop_table('booking_rooms')
    op.drop_table('bookings')
    op.drop_table('customers')
    op.drop_table('room_promotions')
    op.drop_table('add_ons')
    op.drop_table('room_seasonal_rates')
    op.drop_table('rooms')
    op.drop_table('properties')
    op.drop_table('companies')
