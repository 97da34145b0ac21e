"""create earnings schema

Revision ID: c7e1a9d2f4b3
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c7e1a9d2f4b3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('handle', sa.String(50), nullable=False),
        sa.Column('tier', sa.String(20), nullable=True),
        sa.Column('has_bonus_pass', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_handle', 'users', ['handle'], unique=True)

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), server_default='', nullable=False),
        sa.Column('content_kind', sa.String(20), server_default='text', nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('reading_time_minutes', sa.Float(), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('views_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('authenticated_views_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('public_views_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('likes_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('comments_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('shares_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('average_scroll_depth', sa.Float(), nullable=True),
        sa.Column('average_watch_percentage', sa.Float(), nullable=True),
        sa.Column('total_completions', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_posts_author_id', 'posts', ['author_id'])

    op.create_table(
        'engagements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('actor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('engagement_type', sa.String(20), nullable=False),
        sa.Column('content_length', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('uncredited_reason', sa.String(30), nullable=True),
        sa.UniqueConstraint('post_id', 'actor_id', 'engagement_type', name='uq_engagement'),
    )
    op.create_index('ix_engagement_actor_created', 'engagements', ['actor_id', 'created_at'])

    op.create_table(
        'view_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_authenticated', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_view_logs_post_id', 'view_logs', ['post_id'])

    op.create_table(
        'consumption_samples',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('session_id', sa.String(100), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('scroll_depth', sa.Float(), nullable=True),
        sa.Column('watch_percentage', sa.Float(), nullable=True),
        sa.Column('listen_percentage', sa.Float(), nullable=True),
        sa.Column('time_spent', sa.Float(), server_default='0', nullable=False),
        sa.Column('completed', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('observed_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('post_id', 'session_id', name='uq_consumption_session'),
    )
    op.create_index('ix_consumption_samples_post_id', 'consumption_samples', ['post_id'])

    op.create_table(
        'earnings_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('creator_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'triggering_engagement_id', sa.Integer(),
            sa.ForeignKey('engagements.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('mode', sa.String(20), server_default='live', nullable=False),
        sa.Column('quality_score', sa.Integer(), server_default='0', nullable=False),
        sa.Column('base_rate', sa.Float(), nullable=False),
        sa.Column('content_multiplier', sa.Float(), server_default='1.0', nullable=False),
        sa.Column('completion_multiplier', sa.Float(), server_default='1.0', nullable=False),
        sa.Column('tier_multiplier', sa.Float(), server_default='1.0', nullable=False),
        sa.Column('bonus_multiplier', sa.Float(), server_default='1.0', nullable=False),
        sa.Column('uncapped_amount', sa.Float(), nullable=False),
        sa.Column('cap_applied', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('computed_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('post_id', 'triggering_engagement_id', name='uq_earnings_trigger'),
    )
    op.create_index('ix_earnings_records_creator_id', 'earnings_records', ['creator_id'])
    op.create_index('ix_earnings_creator_computed', 'earnings_records', ['creator_id', 'computed_at'])


def downgrade() -> None:
    op.drop_index('ix_earnings_creator_computed', table_name='earnings_records')
    op.drop_index('ix_earnings_records_creator_id', table_name='earnings_records')
    op.drop_table('earnings_records')
    op.drop_index('ix_consumption_samples_post_id', table_name='consumption_samples')
    op.drop_table('consumption_samples')
    op.drop_index('ix_view_logs_post_id', table_name='view_logs')
    op.drop_table('view_logs')
    op.drop_index('ix_engagement_actor_created', table_name='engagements')
    op.drop_table('engagements')
    op.drop_index('ix_posts_author_id', table_name='posts')
    op.drop_table('posts')
    op.drop_index('ix_users_handle', table_name='users')
    op.drop_table('users')
