"""campaigns, donations, payment event log and provider tokens

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('organizer_id', sa.String(length=36), nullable=True),
        sa.Column('goal_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('collected_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('donor_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('percentage_funded', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'donations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('campaign_id', sa.String(length=36), nullable=False),
        sa.Column('donor_id', sa.String(length=36), nullable=True),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tip_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='BOB'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payment_provider', sa.String(length=20), nullable=False, server_default='none'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, server_default='credit_card'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('card_payment_id', sa.String(length=120), nullable=True),
        sa.Column('card_payment_link_id', sa.String(length=120), nullable=True),
        sa.Column('card_session_id', sa.String(length=255), nullable=True),
        sa.Column('card_checkout_url', sa.String(length=500), nullable=True),
        sa.Column('qr_alias', sa.String(length=120), nullable=True),
        sa.Column('qr_id', sa.String(length=120), nullable=True),
        sa.Column('qr_image', sa.Text(), nullable=True),
        sa.Column('qr_expires_at', sa.DateTime(), nullable=True),
        sa.Column('qr_transaction_id', sa.String(length=120), nullable=True),
        sa.Column('qr_payer_name', sa.String(length=200), nullable=True),
        sa.Column('qr_payer_account', sa.String(length=120), nullable=True),
        sa.Column('qr_payer_document', sa.String(length=60), nullable=True),
        sa.Column('qr_processed_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.String(length=200), nullable=True),
        sa.Column('cancelled_by', sa.String(length=36), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('qr_alias')
    )
    op.create_index('ix_donations_campaign_id', 'donations', ['campaign_id'])
    op.create_index('ix_donations_payment_status', 'donations', ['payment_status'])
    op.create_index('ix_donations_card_payment_id', 'donations', ['card_payment_id'])

    op.create_table(
        'payment_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('provider_payment_id', sa.String(length=120), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=True),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('donation_id', sa.String(length=36), nullable=True),
        sa.Column('campaign_id', sa.String(length=36), nullable=True),
        sa.Column('donor_id', sa.String(length=36), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'provider_payment_id', name='uq_payment_logs_provider_payment')
    )
    op.create_index('ix_payment_logs_donation_id', 'payment_logs', ['donation_id'])

    op.create_table(
        'provider_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('token', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_provider_tokens_provider', 'provider_tokens', ['provider'])


def downgrade():
    op.drop_index('ix_provider_tokens_provider', table_name='provider_tokens')
    op.drop_table('provider_tokens')
    op.drop_index('ix_payment_logs_donation_id', table_name='payment_logs')
    op.drop_table('payment_logs')
    op.drop_index('ix_donations_card_payment_id', table_name='donations')
    op.drop_index('ix_donations_payment_status', table_name='donations')
    op.drop_index('ix_donations_campaign_id', table_name='donations')
    op.drop_table('donations')
    op.drop_table('campaigns')
