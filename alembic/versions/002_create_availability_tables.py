"""create availabilities and time_slots tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-05 09:10:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'availabilities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.String(), nullable=False),
        sa.Column('is_weekly', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_daily', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'date', name='uq_availability_user_date'),
    )
    op.create_index(op.f('ix_availabilities_user_id'), 'availabilities', ['user_id'], unique=False)
    op.create_index(op.f('ix_availabilities_date'), 'availabilities', ['date'], unique=False)

    op.create_table(
        'time_slots',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('availability_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('availabilities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('slot', sa.String(), nullable=False),
        sa.Column('status', sa.Enum('available', 'unavailable', 'locked', name='slot_status'), nullable=False, server_default='available'),
        sa.Column('payment_reference_id', sa.String(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_time_slots_availability_id'), 'time_slots', ['availability_id'], unique=False)
    op.create_index(op.f('ix_time_slots_status'), 'time_slots', ['status'], unique=False)
    op.create_index(op.f('ix_time_slots_payment_reference_id'), 'time_slots', ['payment_reference_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_time_slots_payment_reference_id'), table_name='time_slots')
    op.drop_index(op.f('ix_time_slots_status'), table_name='time_slots')
    op.drop_index(op.f('ix_time_slots_availability_id'), table_name='time_slots')
    op.drop_table('time_slots')
    op.drop_index(op.f('ix_availabilities_date'), table_name='availabilities')
    op.drop_index(op.f('ix_availabilities_user_id'), table_name='availabilities')
    op.drop_table('availabilities')
    sa.Enum(name='slot_status').drop(op.get_bind(), checkfirst=True)
