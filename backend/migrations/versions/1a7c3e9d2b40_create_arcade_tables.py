"""create user, game_score and high_score tables

Revision ID: 1a7c3e9d2b40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'game_score' not in existing_tables:
        op.create_table(
            'game_score',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('game_name', sa.String(length=32), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False),
            sa.Column('level_reached', sa.Integer(), nullable=True),
            sa.Column('time_taken', sa.Integer(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_score_user_id', 'game_score', ['user_id'])
        op.create_index('ix_game_score_game_name', 'game_score', ['game_name'])
        op.create_index('ix_game_score_completed_at', 'game_score', ['completed_at'])

    if 'high_score' not in existing_tables:
        op.create_table(
            'high_score',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('game_name', sa.String(length=32), nullable=False),
            sa.Column('best_score', sa.Integer(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('user_id', 'game_name', name='uq_high_score_user_game'),
        )
        op.create_index('ix_high_score_user_id', 'high_score', ['user_id'])


def downgrade():
    op.drop_index('ix_high_score_user_id', table_name='high_score')
    op.drop_table('high_score')
    op.drop_index('ix_game_score_completed_at', table_name='game_score')
    op.drop_index('ix_game_score_game_name', table_name='game_score')
    op.drop_index('ix_game_score_user_id', table_name='game_score')
    op.drop_table('game_score')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
