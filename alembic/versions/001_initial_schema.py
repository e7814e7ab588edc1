"""Initial idea bank schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Durable id watermark
    op.create_table(
        'id_counters',
        sa.Column('name', sa.String(50), primary_key=True),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'chapters',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), unique=True, nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    # Ideas (ids come from id_counters, not a sequence)
    op.create_table(
        'ideas',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('quote', sa.Text(), nullable=False),
        sa.Column('refined_quote', sa.Text(), nullable=True),
        sa.Column('source', sa.String(30), nullable=False, server_default='human'),
        sa.Column('captured_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='new'),
        sa.Column('chapter_id', sa.Integer(), sa.ForeignKey('chapters.id'), nullable=True),
        sa.Column('idempotency_key', sa.String(200), unique=True, nullable=True),
        sa.Column('hold_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_ideas_status', 'ideas', ['status'])
    op.create_index('ix_ideas_chapter_id', 'ideas', ['chapter_id'])
    op.create_index('ix_ideas_captured_at', 'ideas', ['captured_at'])

    op.create_table(
        'idea_tags',
        sa.Column('idea_id', sa.Integer(), sa.ForeignKey('ideas.id'), primary_key=True),
        sa.Column('tag', sa.String(100), primary_key=True),
    )
    op.create_index('ix_idea_tags_tag', 'idea_tags', ['tag'])

    # Cross-references, stored in both directions
    op.create_table(
        'idea_links',
        sa.Column('idea_id', sa.Integer(), sa.ForeignKey('ideas.id'), primary_key=True),
        sa.Column('target_id', sa.Integer(), sa.ForeignKey('ideas.id'), primary_key=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.CheckConstraint('idea_id <> target_id', name='ck_idea_links_no_self'),
    )
    op.create_index('ix_idea_links_target_id', 'idea_links', ['target_id'])

    op.create_table(
        'chapter_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('idea_id', sa.Integer(), sa.ForeignKey('ideas.id'), nullable=False),
        sa.Column('chapter_id', sa.Integer(), sa.ForeignKey('chapters.id'), nullable=False),
        sa.Column('previous_chapter_id', sa.Integer(), sa.ForeignKey('chapters.id'), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_chapter_assignments_idea_id', 'chapter_assignments', ['idea_id'])

    # Channel drafts and their publish state
    op.create_table(
        'derived_content',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('idea_id', sa.Integer(), sa.ForeignKey('ideas.id'), nullable=False),
        sa.Column('channel', sa.String(50), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('lifecycle', sa.String(20), nullable=False, server_default='drafted'),
        sa.Column('waived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('retry_of_id', sa.Integer(), sa.ForeignKey('derived_content.id'), nullable=True),
        sa.Column('enqueued_at', sa.DateTime(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('publish_started_at', sa.DateTime(), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('external_ref', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )
    # At most one non-failed entry per (idea, channel)
    op.create_index(
        'uq_derived_content_active_channel',
        'derived_content',
        ['idea_id', 'channel'],
        unique=True,
        postgresql_where=sa.text("lifecycle <> 'failed'"),
        sqlite_where=sa.text("lifecycle <> 'failed'"),
    )
    op.create_index(
        'ix_derived_content_channel_lifecycle', 'derived_content', ['channel', 'lifecycle']
    )

    # Append-only audit log
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('idea_id', sa.Integer(), nullable=True),
        sa.Column('content_id', sa.Integer(), nullable=True),
        sa.Column('event', sa.String(40), nullable=False),
        sa.Column('from_state', sa.String(200), nullable=True),
        sa.Column('to_state', sa.String(200), nullable=True),
        sa.Column('detail', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_audit_events_idea_id', 'audit_events', ['idea_id'])
    op.create_index('ix_audit_events_content_id', 'audit_events', ['content_id'])

    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('idea_id', sa.Integer(), nullable=True),
        sa.Column('content_id', sa.Integer(), nullable=True),
        sa.Column('channel', sa.String(50), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_alerts_acknowledged_at', 'alerts', ['acknowledged_at'])


def downgrade() -> None:
    op.drop_table('alerts')
    op.drop_table('audit_events')
    op.drop_table('derived_content')
    op.drop_table('chapter_assignments')
    op.drop_table('idea_links')
    op.drop_table('idea_tags')
    op.drop_table('ideas')
    op.drop_table('chapters')
    op.drop_table('id_counters')
