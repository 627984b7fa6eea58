"""create transactions, wallets, appointments, messages and notifications

Revision ID: 003
Revises: 002
Create Date: 2026-10-05 09:30:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APPOINTMENT_STATUSES = ('pending', 'approved', 'in_progress', 'completed', 'rejected', 'cancelled', 'rescheduled')
PAYMENT_STATUSES = ('initiated', 'pending', 'completed', 'refunded')


def upgrade() -> None:
    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('payer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('receiver_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('coin_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('external_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_mode', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('external_payment_id', sa.String(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('refund_timer', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    for column in ('type', 'payer_id', 'receiver_id', 'status', 'external_payment_id', 'created_at'):
        op.create_index(op.f(f'ix_transactions_{column}'), 'transactions', [column], unique=False)

    op.create_table(
        'star_wallets',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('star_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('escrow', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jackpot', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_star_wallets_star_id'), 'star_wallets', ['star_id'], unique=True)

    op.create_table(
        'star_transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('star_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('transactions.id'), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('escrow_movement', sa.String(), nullable=False, server_default='deposit'),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_star_transactions_star_id'), 'star_transactions', ['star_id'], unique=False)
    op.create_index(op.f('ix_star_transactions_appointment_id'), 'star_transactions', ['appointment_id'], unique=False)
    op.create_index(op.f('ix_star_transactions_status'), 'star_transactions', ['status'], unique=False)

    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('star_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('fan_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('availability_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('availabilities.id', ondelete='SET NULL'), nullable=True),
        sa.Column('time_slot_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('time_slots.id', ondelete='SET NULL'), nullable=True),
        sa.Column('date', sa.String(), nullable=False),
        sa.Column('time', sa.String(), nullable=False),
        sa.Column('utc_start_time', sa.DateTime(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum(*APPOINTMENT_STATUSES, name='appointment_status'), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.Enum(*PAYMENT_STATUSES, name='appointment_payment_status'), nullable=False, server_default='pending'),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('transactions.id'), nullable=True),
        sa.Column('external_payment_id', sa.String(), nullable=True),
        sa.Column('coin_amount_reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('call_duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('is_rescheduled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('parent_appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id'), nullable=True),
        sa.Column('reschedule_reason', sa.Enum('fan_request', 'no_show', name='reschedule_reason'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    for column in ('star_id', 'fan_id', 'availability_id', 'utc_start_time', 'status', 'payment_status',
                   'transaction_id', 'external_payment_id'):
        op.create_index(op.f(f'ix_appointments_{column}'), 'appointments', [column], unique=False)

    op.create_table(
        'messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('receiver_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_messages_sender_id'), 'messages', ['sender_id'], unique=False)
    op.create_index(op.f('ix_messages_receiver_id'), 'messages', ['receiver_id'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('event', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.Enum('system', 'appointment', name='notification_type'), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
    op.create_index(op.f('ix_notifications_appointment_id'), 'notifications', ['appointment_id'], unique=False)


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('messages')
    op.drop_table('appointments')
    op.drop_table('star_transactions')
    op.drop_table('star_wallets')
    op.drop_table('transactions')
    bind = op.get_bind()
    for name in ('notification_type', 'reschedule_reason', 'appointment_payment_status', 'appointment_status'):
        sa.Enum(name=name).drop(bind, checkfirst=True)
