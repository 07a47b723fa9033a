"""create activity, enrollment, membership and settings tables

Revision ID: a3c91e5d7b20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a3c91e5d7b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Activities (one row per scheduled occurrence)
    op.create_table('activities',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('name', sa.String(length=120), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('location', sa.String(length=120), nullable=True),
    sa.Column('trainer_id', sa.String(length=64), nullable=False),
    sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('duration_minutes', sa.Integer(), nullable=False),
    sa.Column('max_participants', sa.Integer(), nullable=False),
    sa.Column('current_participants', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
    sa.Column('recurrence', sa.JSON(), nullable=True),
    sa.Column('predecessor_id', sa.Uuid(), nullable=True),
    sa.Column('created_by', sa.String(length=64), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('last_modified_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint('duration_minutes > 0', name='ck_activities_duration_positive'),
    sa.CheckConstraint('max_participants > 0', name='ck_activities_capacity_positive'),
    sa.CheckConstraint(
        'current_participants >= 0 AND current_participants <= max_participants',
        name='ck_activities_participants_bounds'
    ),
    sa.ForeignKeyConstraint(['predecessor_id'], ['activities.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('predecessor_id')
    )
    op.create_index('idx_activities_start_at', 'activities', ['start_at'], unique=False)
    op.create_index('idx_activities_status_start', 'activities', ['status', 'start_at'], unique=False)
    op.create_index('idx_activities_trainer', 'activities', ['trainer_id'], unique=False)

    # Enrollments with attendance
    op.create_table('enrollments',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('activity_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.String(length=64), nullable=False),
    sa.Column('attendance_status', sa.String(length=20), nullable=False, server_default='PENDING'),
    sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('attendance_marked_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('attendance_marked_by', sa.String(length=64), nullable=True),
    sa.ForeignKeyConstraint(['activity_id'], ['activities.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('activity_id', 'user_id', name='uq_enrollments_activity_user')
    )
    op.create_index('idx_enrollments_user', 'enrollments', ['user_id'], unique=False)

    # Membership snapshots synced from the payment ledger
    op.create_table('member_eligibility',
    sa.Column('user_id', sa.String(length=64), nullable=False),
    sa.Column('membership_status', sa.String(length=20), nullable=False),
    sa.Column('last_payment_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('has_pending_payment_under_review', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('user_id')
    )

    # Runtime policy settings
    op.create_table('engine_settings',
    sa.Column('key', sa.String(length=100), nullable=False),
    sa.Column('value', sa.String(length=255), nullable=False),
    sa.Column('description', sa.String(length=255), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('key')
    )


def downgrade() -> None:
    op.drop_table('engine_settings')
    op.drop_table('member_eligibility')
    op.drop_index('idx_enrollments_user', table_name='enrollments')
    op.drop_table('enrollments')
    op.drop_index('idx_activities_trainer', table_name='activities')
    op.drop_index('idx_activities_status_start', table_name='activities')
    op.drop_index('idx_activities_start_at', table_name='activities')
    op.drop_table('activities')
