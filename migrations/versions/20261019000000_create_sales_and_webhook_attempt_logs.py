"""Create sales and webhook_attempt_logs tables

Revision ID: 20261019000000
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019000000'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'sales',
        sa.Column('id', sa.String(length=36), primary_key=True, nullable=False),
        sa.Column('vehicle_id', sa.String(length=50), nullable=False),
        sa.Column('buyer_tax_id', sa.String(length=11), nullable=False, comment='11-digit buyer tax id, digits only'),
        sa.Column('amount_paid', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default=sa.text("'pending'"),
                  comment='pending, processing, approved, rejected, canceled'),
        sa.Column('payment_code', sa.String(length=100), nullable=False, comment='Idempotency key for payment callbacks'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('webhook_notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('webhook_attempts', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status in ('pending','processing','approved','rejected','canceled')",
            name='ck_sales_status',
        ),
        sa.CheckConstraint(
            "payment_method in ('pix','credit_card','debit_card','boleto','bank_transfer')",
            name='ck_sales_payment_method',
        ),
        sa.UniqueConstraint('payment_code', name='uq_sales_payment_code'),
    )
    op.create_index('ix_sales_vehicle_id', 'sales', ['vehicle_id'])
    op.create_index('ix_sales_buyer_tax_id', 'sales', ['buyer_tax_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_webhook_pending', 'sales', ['webhook_notified', 'status'])

    op.create_table(
        'webhook_attempt_logs',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True),
        sa.Column('sale_id', sa.String(length=36), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=False, server_default=sa.text('0'),
                  comment='0 when no response was received'),
        sa.Column('response', sa.Text(), nullable=True),
        sa.Column('attempted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_webhook_attempt_logs_sale_id', 'webhook_attempt_logs', ['sale_id'])
    op.create_index('ix_webhook_attempt_logs_attempted_at', 'webhook_attempt_logs', ['attempted_at'])
    op.create_index('ix_webhook_attempt_logs_success', 'webhook_attempt_logs', ['success'])


def downgrade() -> None:
    op.drop_index('ix_webhook_attempt_logs_success', table_name='webhook_attempt_logs')
    op.drop_index('ix_webhook_attempt_logs_attempted_at', table_name='webhook_attempt_logs')
    op.drop_index('ix_webhook_attempt_logs_sale_id', table_name='webhook_attempt_logs')
    op.drop_table('webhook_attempt_logs')

    op.drop_index('ix_sales_webhook_pending', table_name='sales')
    op.drop_index('ix_sales_status', table_name='sales')
    op.drop_index('ix_sales_buyer_tax_id', table_name='sales')
    op.drop_index('ix_sales_vehicle_id', table_name='sales')
    op.drop_table('sales')
