"""add achievement and user_achievement tables

Revision ID: 2b8f4d1c6e57
Revises: 1a7c3e9d2b40
Create Date: 2026-10-19 12:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '2b8f4d1c6e57'
down_revision = '1a7c3e9d2b40'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'achievement' not in existing_tables:
        achievement = op.create_table(
            'achievement',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False, unique=True),
            sa.Column('description', sa.String(length=255), nullable=False),
            sa.Column('badge_icon', sa.String(length=16), nullable=True),
            sa.Column('category', sa.String(length=32), nullable=False),
        )
        op.bulk_insert(achievement, [
            {'name': 'First Play', 'description': 'Finish your first arcade game',
             'badge_icon': '🎮', 'category': 'milestone'},
            {'name': 'Personal Best', 'description': 'Beat your own best score in a game',
             'badge_icon': '🏆', 'category': 'score'},
            {'name': 'Century', 'description': 'Score 100 or more in a single game',
             'badge_icon': '💯', 'category': 'score'},
            {'name': 'Arcade Explorer', 'description': 'Play every arcade game at least once',
             'badge_icon': '🕹️', 'category': 'milestone'},
        ])

    if 'user_achievement' not in existing_tables:
        op.create_table(
            'user_achievement',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('achievement_id', sa.Integer(), sa.ForeignKey('achievement.id'), nullable=False),
            sa.Column('unlocked_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievement'),
        )
        op.create_index('ix_user_achievement_user_id', 'user_achievement', ['user_id'])


def downgrade():
    op.drop_index('ix_user_achievement_user_id', table_name='user_achievement')
    op.drop_table('user_achievement')
    op.drop_table('achievement')
