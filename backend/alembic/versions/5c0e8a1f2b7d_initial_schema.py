"""Initial schema: flows, snapshots, assignments and progress

Revision ID: 5c0e8a1f2b7d
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5c0e8a1f2b7d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    'flowstatus': ('DRAFT', 'PUBLISHED', 'ARCHIVED'),
    'componenttype': ('ARTICLE', 'QUIZ', 'TASK'),
    'assignmentstatus': ('ASSIGNED', 'IN_PROGRESS', 'PAUSED', 'COMPLETED', 'CANCELLED', 'OVERDUE'),
    'progressstatus': ('NOT_STARTED', 'IN_PROGRESS', 'COMPLETED', 'FAILED'),
}


def enum_column_type(name: str):
    # Created once in upgrade(); several tables share the same type
    return sa.Enum(*ENUMS[name], name=name).with_variant(
        postgresql.ENUM(*ENUMS[name], name=name, create_type=False), 'postgresql'
    )


flow_status = enum_column_type('flowstatus')
component_type = enum_column_type('componenttype')
assignment_status = enum_column_type('assignmentstatus')
progress_status = enum_column_type('progressstatus')


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    # === Flow templates ===
    op.create_table('flows',
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', flow_status, nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('require_sequential_completion', sa.Boolean(), nullable=False),
        sa.Column('days_per_step', sa.Integer(), nullable=True),
        sa.Column('allow_pause', sa.Boolean(), nullable=False),
        sa.Column('created_by_id', sa.Uuid(), nullable=True),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('flow_steps',
        sa.Column('flow_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_key', sa.String(length=255), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('estimated_minutes', sa.Integer(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['flow_id'], ['flows.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('flow_id', 'order_key', name='uq_flow_steps_flow_order_key')
    )
    op.create_index('ix_flow_steps_flow_id', 'flow_steps', ['flow_id'], unique=False)
    op.create_table('flow_components',
        sa.Column('step_id', sa.Uuid(), nullable=False),
        sa.Column('component_type', component_type, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_key', sa.String(length=255), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('estimated_minutes', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('minimum_score', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['step_id'], ['flow_steps.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('step_id', 'order_key', name='uq_flow_components_step_order_key')
    )
    op.create_index('ix_flow_components_step_id', 'flow_components', ['step_id'], unique=False)

    # === Snapshots ===
    op.create_table('flow_snapshots',
        sa.Column('original_flow_id', sa.Uuid(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', flow_status, nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('require_sequential_completion', sa.Boolean(), nullable=False),
        sa.Column('days_per_step', sa.Integer(), nullable=True),
        sa.Column('allow_pause', sa.Boolean(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('original_flow_id', 'version', name='uq_flow_snapshots_flow_version')
    )
    op.create_index('ix_flow_snapshots_original_flow_id', 'flow_snapshots', ['original_flow_id'], unique=False)
    op.create_index('ix_flow_snapshots_created_at', 'flow_snapshots', ['created_at'], unique=False)
    op.create_table('step_snapshots',
        sa.Column('flow_snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('original_step_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_key', sa.String(length=255), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('estimated_minutes', sa.Integer(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['flow_snapshot_id'], ['flow_snapshots.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_step_snapshots_flow_snapshot_id', 'step_snapshots', ['flow_snapshot_id'], unique=False)
    op.create_table('component_snapshots',
        sa.Column('step_snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('original_component_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('component_type', component_type, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_key', sa.String(length=255), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('estimated_minutes', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('minimum_score', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['step_snapshot_id'], ['step_snapshots.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_component_snapshots_step_snapshot_id', 'component_snapshots', ['step_snapshot_id'], unique=False)

    # === Assignments ===
    op.create_table('flow_assignments',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('flow_id', sa.Uuid(), nullable=False),
        sa.Column('flow_snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('status', assignment_status, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(), nullable=False),
        sa.Column('deadline', sa.Date(), nullable=False),
        sa.Column('assigned_by_id', sa.Uuid(), nullable=False),
        sa.Column('buddy_id', sa.Uuid(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('paused_at', sa.DateTime(), nullable=True),
        sa.Column('pause_reason', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['flow_id'], ['flows.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['flow_snapshot_id'], ['flow_snapshots.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_flow_assignments_user_id', 'flow_assignments', ['user_id'], unique=False)
    op.create_index('ix_flow_assignments_flow_id', 'flow_assignments', ['flow_id'], unique=False)
    op.create_index('ix_flow_assignments_flow_snapshot_id', 'flow_assignments', ['flow_snapshot_id'], unique=False)
    # At most one active assignment per (user, flow)
    op.create_index(
        'uq_flow_assignments_active_user_flow',
        'flow_assignments',
        ['user_id', 'flow_id'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    # === Progress ===
    op.create_table('flow_progress',
        sa.Column('assignment_id', sa.Uuid(), nullable=False),
        sa.Column('flow_snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('status', assignment_status, nullable=False),
        sa.Column('overall_progress', sa.Float(), nullable=False),
        sa.Column('completed_required_components', sa.Integer(), nullable=False),
        sa.Column('total_required_components', sa.Integer(), nullable=False),
        sa.Column('completed_steps', sa.Integer(), nullable=False),
        sa.Column('total_steps', sa.Integer(), nullable=False),
        sa.Column('time_spent_minutes', sa.Integer(), nullable=False),
        sa.Column('current_step_snapshot_id', sa.Uuid(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['assignment_id'], ['flow_assignments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['flow_snapshot_id'], ['flow_snapshots.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('assignment_id')
    )
    op.create_index('ix_flow_progress_flow_snapshot_id', 'flow_progress', ['flow_snapshot_id'], unique=False)
    op.create_index('ix_flow_progress_user_id', 'flow_progress', ['user_id'], unique=False)
    op.create_table('step_progress',
        sa.Column('flow_progress_id', sa.Uuid(), nullable=False),
        sa.Column('step_snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('status', progress_status, nullable=False),
        sa.Column('is_unlocked', sa.Boolean(), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['flow_progress_id'], ['flow_progress.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['step_snapshot_id'], ['step_snapshots.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('flow_progress_id', 'step_snapshot_id', name='uq_step_progress_flow_step')
    )
    op.create_index('ix_step_progress_flow_progress_id', 'step_progress', ['flow_progress_id'], unique=False)
    op.create_table('component_progress',
        sa.Column('step_progress_id', sa.Uuid(), nullable=False),
        sa.Column('component_snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('status', progress_status, nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('last_score', sa.Integer(), nullable=True),
        sa.Column('best_score', sa.Integer(), nullable=True),
        sa.Column('time_spent_minutes', sa.Integer(), nullable=False),
        sa.Column('progress_data', sa.JSON(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['step_progress_id'], ['step_progress.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['component_snapshot_id'], ['component_snapshots.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('step_progress_id', 'component_snapshot_id', name='uq_component_progress_step_component')
    )
    op.create_index('ix_component_progress_step_progress_id', 'component_progress', ['step_progress_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_component_progress_step_progress_id', table_name='component_progress')
    op.drop_table('component_progress')
    op.drop_index('ix_step_progress_flow_progress_id', table_name='step_progress')
    op.drop_table('step_progress')
    op.drop_index('ix_flow_progress_user_id', table_name='flow_progress')
    op.drop_index('ix_flow_progress_flow_snapshot_id', table_name='flow_progress')
    op.drop_table('flow_progress')
    op.drop_index('uq_flow_assignments_active_user_flow', table_name='flow_assignments')
    op.drop_index('ix_flow_assignments_flow_snapshot_id', table_name='flow_assignments')
    op.drop_index('ix_flow_assignments_flow_id', table_name='flow_assignments')
    op.drop_index('ix_flow_assignments_user_id', table_name='flow_assignments')
    op.drop_table('flow_assignments')
    op.drop_index('ix_component_snapshots_step_snapshot_id', table_name='component_snapshots')
    op.drop_table('component_snapshots')
    op.drop_index('ix_step_snapshots_flow_snapshot_id', table_name='step_snapshots')
    op.drop_table('step_snapshots')
    op.drop_index('ix_flow_snapshots_created_at', table_name='flow_snapshots')
    op.drop_index('ix_flow_snapshots_original_flow_id', table_name='flow_snapshots')
    op.drop_table('flow_snapshots')
    op.drop_index('ix_flow_components_step_id', table_name='flow_components')
    op.drop_table('flow_components')
    op.drop_index('ix_flow_steps_flow_id', table_name='flow_steps')
    op.drop_table('flow_steps')
    op.drop_table('flows')

    bind = op.get_bind()
    for name, values in reversed(list(ENUMS.items())):
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
