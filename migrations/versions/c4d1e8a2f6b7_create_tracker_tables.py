"""create_tracker_tables

Revision ID: c4d1e8a2f6b7
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'c4d1e8a2f6b7'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create project, task, notification and outbox tables."""

    # --- projects ---
    op.create_table('projects',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('key', sa.String(length=10), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False,
                  server_default='ACTIVE'),
        sa.Column('owner_id', sa.UUID(), nullable=False),
        sa.Column('settings', postgresql.JSONB(), nullable=True,
                  server_default='{}'),
        sa.Column('task_counter', sa.Integer(), nullable=False,
                  server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False,
                  server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=True,
                  server_default=sa.text("(NOW() AT TIME ZONE 'utc')")),
        sa.Column('updated_at', sa.DateTime(), nullable=True,
                  server_default=sa.text("(NOW() AT TIME ZONE 'utc')")),
        sa.CheckConstraint("status IN ('ACTIVE', 'ARCHIVED', 'COMPLETED')"),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
    )

    # --- project_members ---
    op.create_table('project_members',
        sa.Column('project_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False,
                  server_default='member'),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.Column('invited_by', sa.UUID(), nullable=True),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member', 'viewer')"),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'],
                                ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('project_id', 'user_id'),
    )
    op.create_index('ix_project_members_user_id', 'project_members', ['user_id'])
    # One owner per project; role changes demote before they promote
    op.create_index('uq_project_members_single_owner', 'project_members',
                    ['project_id'], unique=True,
                    postgresql_where=sa.text("role = 'owner'"))

    # --- tasks ---
    op.create_table('tasks',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('project_id', sa.UUID(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('assignee_id', sa.UUID(), nullable=True),
        sa.Column('reporter_id', sa.UUID(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  server_default='TODO'),
        sa.Column('priority', sa.String(length=20), nullable=False,
                  server_default='MEDIUM'),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('estimated_hours', sa.Float(), nullable=True),
        sa.Column('labels', postgresql.JSONB(), nullable=True,
                  server_default='[]'),
        sa.Column('parent_id', sa.UUID(), nullable=True),
        sa.Column('attachments', postgresql.JSONB(), nullable=True,
                  server_default='[]'),
        sa.Column('watchers', postgresql.JSONB(), nullable=True,
                  server_default='[]'),
        sa.Column('version', sa.Integer(), nullable=False,
                  server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('TODO', 'IN_PROGRESS', 'IN_REVIEW', 'DONE')"),
        sa.CheckConstraint("priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')"),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'],
                                ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['tasks.id'],
                                ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'number',
                            name='uq_tasks_project_number'),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_assignee_id', 'tasks', ['assignee_id'])
    op.create_index('ix_tasks_parent_id', 'tasks', ['parent_id'])

    # --- task_comments ---
    op.create_table('task_comments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('task_id', sa.UUID(), nullable=False),
        sa.Column('author_id', sa.UUID(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])

    # --- notifications (in-app inbox) ---
    op.create_table('notifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('recipient_id', sa.UUID(), nullable=False),
        sa.Column('kind', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.UUID(), nullable=False),
        sa.Column('project_id', sa.UUID(), nullable=True),
        sa.Column('event_id', sa.UUID(), nullable=False),
        sa.Column('delivery_id', sa.String(length=64), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False,
                  server_default='false'),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('delivery_id'),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications',
                    ['recipient_id'])
    op.create_index('ix_notifications_recipient_unread', 'notifications',
                    ['recipient_id', 'is_read'])
    op.create_index('ix_notifications_expires_at', 'notifications',
                    ['expires_at'])

    # --- notification_preferences ---
    op.create_table('notification_preferences',
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), nullable=False,
                  server_default='true'),
        sa.Column('push_enabled', sa.Boolean(), nullable=False,
                  server_default='true'),
        sa.Column('in_app_enabled', sa.Boolean(), nullable=False,
                  server_default='true'),
        sa.Column('overrides', postgresql.JSONB(), nullable=True,
                  server_default='{}'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )

    # --- notification_deliveries (email/push ledger) ---
    op.create_table('notification_deliveries',
        sa.Column('delivery_id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.UUID(), nullable=False),
        sa.Column('recipient_id', sa.UUID(), nullable=False),
        sa.Column('channel', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False,
                  server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("status IN ('delivered', 'failed')"),
        sa.PrimaryKeyConstraint('delivery_id'),
    )
    op.create_index('ix_notification_deliveries_event_id',
                    'notification_deliveries', ['event_id'])

    # --- outbox_events ---
    op.create_table('outbox_events',
        sa.Column('event_id', sa.UUID(), nullable=False),
        sa.Column('kind', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.UUID(), nullable=False),
        sa.Column('project_id', sa.UUID(), nullable=True),
        sa.Column('actor_id', sa.UUID(), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=True,
                  server_default='{}'),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False,
                  server_default='0'),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('event_id'),
    )
    op.create_index('ix_outbox_events_published_at', 'outbox_events',
                    ['published_at'])
    # The relay only ever scans unpublished rows
    op.create_index('ix_outbox_events_unpublished', 'outbox_events',
                    ['occurred_at', 'sequence'],
                    postgresql_where=sa.text('published_at IS NULL'))


def downgrade() -> None:
    """Drop all tracker tables."""
    op.drop_index('ix_outbox_events_unpublished', table_name='outbox_events')
    op.drop_index('ix_outbox_events_published_at', table_name='outbox_events')
    op.drop_table('outbox_events')
    op.drop_index('ix_notification_deliveries_event_id',
                  table_name='notification_deliveries')
    op.drop_table('notification_deliveries')
    op.drop_table('notification_preferences')
    op.drop_index('ix_notifications_expires_at', table_name='notifications')
    op.drop_index('ix_notifications_recipient_unread', table_name='notifications')
    op.drop_index('ix_notifications_recipient_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_task_comments_task_id', table_name='task_comments')
    op.drop_table('task_comments')
    op.drop_index('ix_tasks_parent_id', table_name='tasks')
    op.drop_index('ix_tasks_assignee_id', table_name='tasks')
    op.drop_index('ix_tasks_project_id', table_name='tasks')
    op.drop_table('tasks')
    op.drop_index('uq_project_members_single_owner', table_name='project_members')
    op.drop_index('ix_project_members_user_id', table_name='project_members')
    op.drop_table('project_members')
    op.drop_table('projects')
