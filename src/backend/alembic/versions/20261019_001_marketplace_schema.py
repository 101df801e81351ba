"""Marketplace schema - providers, reviews, verifications, RFQs, invitations and quotes

Revision ID: 001_marketplace
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_marketplace'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RFQ_STATUSES = ('draft', 'sent', 'quotes_received', 'awarded', 'cancelled', 'expired')
QUOTE_STATUSES = ('pending', 'submitted', 'accepted', 'rejected', 'withdrawn', 'expired')
SERVICE_CATEGORIES = (
    'plumbing', 'electrical', 'hvac', 'cleaning', 'landscaping', 'security',
    'painting', 'roofing', 'carpentry', 'locksmith', 'pest_control',
    'general_maintenance', 'elevator_maintenance', 'fire_safety',
    'waste_management', 'other',
)
CONTACT_PREFERENCES = ('email', 'phone', 'any')
VERIFICATION_TYPES = ('business_registration', 'insurance', 'certification', 'license', 'identity')
VERIFICATION_STATUSES = ('pending', 'under_review', 'verified', 'rejected')


def _in(column: str, values: Sequence[str]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def upgrade() -> None:
    # Create service_providers table
    op.create_table(
        'service_providers',
        sa.Column('id', sa.Uuid(), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('rating', sa.Numeric(3, 2), nullable=True, comment='Average review rating 0.00-5.00, NULL when unrated'),
        sa.Column('review_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_verified', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('rating IS NULL OR (rating >= 0 AND rating <= 5)', name='ck_service_providers_rating_range'),
    )
    op.create_index('ix_service_providers_company_name', 'service_providers', ['company_name'])
    op.create_index('ix_service_providers_is_active', 'service_providers', ['is_active'])

    # Create requests_for_quote table
    op.create_table(
        'requests_for_quote',
        sa.Column('id', sa.Uuid(), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('building_id', sa.Uuid(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('service_category', sa.String(32), nullable=False),
        sa.Column('scope_of_work', sa.Text, nullable=True),
        sa.Column('preferred_start_date', sa.Date, nullable=True),
        sa.Column('preferred_end_date', sa.Date, nullable=True),
        sa.Column('is_urgent', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('budget_min', sa.Numeric(12, 2), nullable=True),
        sa.Column('budget_max', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
        sa.Column('status', sa.String(32), nullable=False, server_default='draft'),
        sa.Column('quote_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('awarded_quote_id', sa.Uuid(), nullable=True),
        sa.Column('awarded_to', sa.Uuid(), nullable=True),
        sa.Column('awarded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('contact_preference', sa.String(32), nullable=False, server_default='any'),
        sa.Column('site_visit_required', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint(_in('status', RFQ_STATUSES), name='rfqstatus'),
        sa.CheckConstraint(_in('service_category', SERVICE_CATEGORIES), name='servicecategory'),
        sa.CheckConstraint(_in('contact_preference', CONTACT_PREFERENCES), name='contactpreference'),
    )
    op.create_index('ix_requests_for_quote_building_id', 'requests_for_quote', ['building_id'])
    op.create_index('ix_requests_for_quote_service_category', 'requests_for_quote', ['service_category'])
    op.create_index('ix_requests_for_quote_status', 'requests_for_quote', ['status'])
    op.create_index('ix_requests_for_quote_quote_deadline', 'requests_for_quote', ['quote_deadline'])

    # Create rfq_invitations table
    op.create_table(
        'rfq_invitations',
        sa.Column('id', sa.Uuid(), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('rfq_id', sa.Uuid(), sa.ForeignKey('requests_for_quote.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False, comment='Provider directory id'),
        sa.Column('invited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('declined', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('decline_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('rfq_id', 'provider_id', name='uq_rfq_invitations_rfq_provider'),
    )
    op.create_index('ix_rfq_invitations_rfq_id', 'rfq_invitations', ['rfq_id'])
    op.create_index('ix_rfq_invitations_provider_id', 'rfq_invitations', ['provider_id'])

    # Create provider_quotes table
    op.create_table(
        'provider_quotes',
        sa.Column('id', sa.Uuid(), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('rfq_id', sa.Uuid(), sa.ForeignKey('requests_for_quote.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False, comment='Provider directory id'),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('price_breakdown', sa.JSON, nullable=True),
        sa.Column('estimated_start_date', sa.Date, nullable=True),
        sa.Column('estimated_end_date', sa.Date, nullable=True),
        sa.Column('estimated_duration_days', sa.Integer, nullable=True),
        sa.Column('terms_and_conditions', sa.Text, nullable=True),
        sa.Column('warranty_period_days', sa.Integer, nullable=True),
        sa.Column('payment_terms', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='submitted'),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint(_in('status', QUOTE_STATUSES), name='quotestatus'),
        sa.CheckConstraint('price >= 0', name='ck_provider_quotes_price_non_negative'),
        sa.CheckConstraint(
            'estimated_duration_days IS NULL OR estimated_duration_days >= 0',
            name='ck_provider_quotes_duration_non_negative',
        ),
        sa.CheckConstraint(
            'warranty_period_days IS NULL OR warranty_period_days >= 0',
            name='ck_provider_quotes_warranty_non_negative',
        ),
    )
    op.create_index('ix_provider_quotes_rfq_id', 'provider_quotes', ['rfq_id'])
    op.create_index('ix_provider_quotes_provider_id', 'provider_quotes', ['provider_id'])
    op.create_index('ix_provider_quotes_status', 'provider_quotes', ['status'])

    # One active quote per provider and RFQ
    op.create_index(
        'uq_provider_quotes_active_per_provider',
        'provider_quotes',
        ['rfq_id', 'provider_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'submitted', 'accepted')"),
    )

    # Create provider_reviews table
    op.create_table(
        'provider_reviews',
        sa.Column('id', sa.Uuid(), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('service_providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rfq_id', sa.Uuid(), sa.ForeignKey('requests_for_quote.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reviewer_id', sa.Uuid(), nullable=True),
        sa.Column('quality_rating', sa.Integer, nullable=False),
        sa.Column('timeliness_rating', sa.Integer, nullable=False),
        sa.Column('communication_rating', sa.Integer, nullable=False),
        sa.Column('value_rating', sa.Integer, nullable=False),
        sa.Column('overall_rating', sa.Integer, nullable=False),
        sa.Column('review_title', sa.String(255), nullable=True),
        sa.Column('review_text', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('quality_rating BETWEEN 1 AND 5', name='ck_provider_reviews_quality_range'),
        sa.CheckConstraint('timeliness_rating BETWEEN 1 AND 5', name='ck_provider_reviews_timeliness_range'),
        sa.CheckConstraint('communication_rating BETWEEN 1 AND 5', name='ck_provider_reviews_communication_range'),
        sa.CheckConstraint('value_rating BETWEEN 1 AND 5', name='ck_provider_reviews_value_range'),
        sa.CheckConstraint('overall_rating BETWEEN 1 AND 5', name='ck_provider_reviews_overall_range'),
        sa.UniqueConstraint('provider_id', 'rfq_id', name='uq_provider_reviews_provider_rfq'),
    )
    op.create_index('ix_provider_reviews_provider_id', 'provider_reviews', ['provider_id'])

    # Create provider_verifications table
    op.create_table(
        'provider_verifications',
        sa.Column('id', sa.Uuid(), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('service_providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('verification_type', sa.String(32), nullable=False),
        sa.Column('document_name', sa.String(255), nullable=False),
        sa.Column('document_number', sa.String(100), nullable=True),
        sa.Column('issuing_authority', sa.String(255), nullable=True),
        sa.Column('issue_date', sa.Date, nullable=True),
        sa.Column('expiry_date', sa.Date, nullable=True),
        sa.Column('document_url', sa.String(2048), nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('reviewed_by', sa.Uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint(_in('verification_type', VERIFICATION_TYPES), name='verificationtype'),
        sa.CheckConstraint(_in('status', VERIFICATION_STATUSES), name='verificationstatus'),
    )
    op.create_index('ix_provider_verifications_provider_id', 'provider_verifications', ['provider_id'])
    op.create_index('ix_provider_verifications_status', 'provider_verifications', ['status'])


def downgrade() -> None:
    op.drop_table('provider_verifications')
    op.drop_table('provider_reviews')
    op.drop_table('provider_quotes')
    op.drop_table('rfq_invitations')
    op.drop_table('requests_for_quote')
    op.drop_table('service_providers')
