"""create ledger tables

Revision ID: 4c1d8e2a7b90
Revises:
Create Date: 2025-10-20 09:30:12.418202

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c1d8e2a7b90'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def upgrade():
    op.create_table(
        'course_fees',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('course_name', sa.String(length=128), nullable=True),
        sa.Column('registration_fee', MONEY, nullable=False),
        sa.Column('monthly_fee', MONEY, nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_course_fees'),
        sa.CheckConstraint('registration_fee >= 0', name='ck_course_fees_registration_fee_positive'),
        sa.CheckConstraint('monthly_fee >= 0', name='ck_course_fees_monthly_fee_positive'),
        sa.CheckConstraint('duration_months >= 1', name='ck_course_fees_duration_min'),
    )
    op.create_index('ix_course_fees_course_id', 'course_fees', ['course_id'], unique=True)

    op.create_table(
        'course_registrations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('student_name', sa.String(length=128), nullable=True),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('registration_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('plan_generated', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_course_registrations'),
        sa.UniqueConstraint('student_id', 'course_id', name='student_course'),
        sa.CheckConstraint("status IN ('ACTIVE','CANCELLED','COMPLETED')", name='ck_course_registrations_registration_status'),
    )
    op.create_index('ix_course_registrations_student_id', 'course_registrations', ['student_id'])
    op.create_index('ix_course_registrations_course_id', 'course_registrations', ['course_id'])

    op.create_table(
        'payment_plans',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('registration_id', sa.Uuid(), nullable=True),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('month_reference', sa.String(length=7), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('base_amount', MONEY, nullable=False),
        sa.Column('discount_amount', MONEY, nullable=False),
        sa.Column('paid_total', MONEY, nullable=False),
        sa.Column('observations', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_payment_plans'),
        sa.ForeignKeyConstraint(
            ['registration_id'], ['course_registrations.id'],
            name='fk_payment_plans_registration_id_course_registrations', ondelete='SET NULL'
        ),
        sa.UniqueConstraint('student_id', 'course_id', 'month_reference', name='student_course_month'),
        sa.CheckConstraint('base_amount >= 0', name='ck_payment_plans_base_amount_positive'),
        sa.CheckConstraint('paid_total >= 0', name='ck_payment_plans_paid_total_positive'),
        sa.CheckConstraint(
            'discount_amount >= 0 AND discount_amount <= base_amount', name='ck_payment_plans_discount_range'
        ),
    )
    op.create_index('ix_payment_plans_registration_id', 'payment_plans', ['registration_id'])
    op.create_index('ix_payment_plans_student_course_due', 'payment_plans', ['student_id', 'course_id', 'due_date'])

    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=24), nullable=False),
        sa.Column('amount_paid', MONEY, nullable=False),
        sa.Column('credit_amount', MONEY, nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('alloc_mode', sa.String(length=24), nullable=True),
        sa.Column('paid_date', sa.Date(), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('observations', sa.Text(), nullable=True),
        sa.Column('reversed_at', sa.DateTime(), nullable=True),
        sa.Column('reversal_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_payment_transactions'),
        sa.UniqueConstraint('receipt_number', name='uq_payment_transactions_receipt_number'),
        sa.CheckConstraint('amount_paid > 0', name='ck_payment_transactions_amount_paid_positive'),
        sa.CheckConstraint('credit_amount >= 0', name='ck_payment_transactions_credit_amount_positive'),
        sa.CheckConstraint(
            "payment_method IN ('cash','mpesa','transfer','card','other')", name='ck_payment_transactions_payment_method'
        ),
        sa.CheckConstraint("status IN ('confirmed','reversed')", name='ck_payment_transactions_transaction_status'),
        sa.CheckConstraint(
            "kind IN ('TUITION','REGISTRATION_FEE','WALLET_APPLICATION')", name='ck_payment_transactions_transaction_kind'
        ),
    )
    op.create_index(
        'ix_payment_transactions_student_course', 'payment_transactions', ['student_id', 'course_id', 'paid_date']
    )

    op.create_table(
        'payment_allocations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('payment_id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=False),
        sa.Column('month_reference', sa.String(length=7), nullable=False),
        sa.Column('amount_allocated', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_payment_allocations'),
        sa.ForeignKeyConstraint(
            ['payment_id'], ['payment_transactions.id'],
            name='fk_payment_allocations_payment_id_payment_transactions', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['plan_id'], ['payment_plans.id'],
            name='fk_payment_allocations_plan_id_payment_plans', ondelete='RESTRICT'
        ),
        sa.CheckConstraint('amount_allocated > 0', name='ck_payment_allocations_amount_allocated_positive'),
    )
    op.create_index('ix_payment_allocations_payment_id', 'payment_allocations', ['payment_id'])
    op.create_index('ix_payment_allocations_plan_id', 'payment_allocations', ['plan_id'])

    op.create_table(
        'wallet_balances',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('balance', MONEY, nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_wallet_balances'),
        sa.UniqueConstraint('student_id', 'course_id', name='wallet_student_course'),
        sa.CheckConstraint('balance >= 0', name='ck_wallet_balances_balance_positive'),
    )

    op.create_table(
        'wallet_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('wallet_id', sa.Uuid(), nullable=False),
        sa.Column('payment_id', sa.Uuid(), nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_wallet_entries'),
        sa.ForeignKeyConstraint(
            ['wallet_id'], ['wallet_balances.id'],
            name='fk_wallet_entries_wallet_id_wallet_balances', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['payment_id'], ['payment_transactions.id'],
            name='fk_wallet_entries_payment_id_payment_transactions', ondelete='SET NULL'
        ),
    )
    op.create_index('ix_wallet_entries_wallet_id', 'wallet_entries', ['wallet_id'])
    op.create_index('ix_wallet_entries_payment_id', 'wallet_entries', ['payment_id'])

    op.create_table(
        'receipt_counters',
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('last_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('year', name='pk_receipt_counters'),
    )

    op.create_table(
        'system_settings',
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('updated_by', sa.String(length=128), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('key', name='pk_system_settings'),
    )


def downgrade():
    op.drop_table('system_settings')
    op.drop_table('receipt_counters')
    op.drop_index('ix_wallet_entries_payment_id', table_name='wallet_entries')
    op.drop_index('ix_wallet_entries_wallet_id', table_name='wallet_entries')
    op.drop_table('wallet_entries')
    op.drop_table('wallet_balances')
    op.drop_index('ix_payment_allocations_plan_id', table_name='payment_allocations')
    op.drop_index('ix_payment_allocations_payment_id', table_name='payment_allocations')
    op.drop_table('payment_allocations')
    op.drop_index('ix_payment_transactions_student_course', table_name='payment_transactions')
    op.drop_table('payment_transactions')
    op.drop_index('ix_payment_plans_student_course_due', table_name='payment_plans')
    op.drop_index('ix_payment_plans_registration_id', table_name='payment_plans')
    op.drop_table('payment_plans')
    op.drop_index('ix_course_registrations_course_id', table_name='course_registrations')
    op.drop_index('ix_course_registrations_student_id', table_name='course_registrations')
    op.drop_table('course_registrations')
    op.drop_index('ix_course_fees_course_id', table_name='course_fees')
    op.drop_table('course_fees')
