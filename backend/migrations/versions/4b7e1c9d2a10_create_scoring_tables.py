"""create user, player stats, score, session, achievement and collection tables

Revision ID: 4b7e1c9d2a10
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e1c9d2a10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=True),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'player_stats' not in existing_tables:
        op.create_table(
            'player_stats',
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), primary_key=True),
            sa.Column('highest_level_reached', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_levels_completed', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_games_played', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_score_all_time', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('best_single_game_score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_territory_claimed', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('coverage_total', sa.Float(), nullable=False, server_default='0'),
            sa.Column('average_coverage', sa.Float(), nullable=False, server_default='0'),
            sa.Column('best_coverage', sa.Float(), nullable=False, server_default='0'),
            sa.Column('fastest_level_seconds', sa.Integer(), nullable=True),
            sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('best_streak', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('quiz_correct_total', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('quiz_attempts_total', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_play_time_seconds', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('unique_collectibles_revealed', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('first_played_at', sa.DateTime(), nullable=True),
            sa.Column('last_played_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_player_stats_total_score_all_time', 'player_stats', ['total_score_all_time'])

    if 'player_score' not in existing_tables:
        op.create_table(
            'player_score',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('game_id', sa.String(length=64), nullable=True),
            sa.Column('session_id', sa.String(length=64), nullable=False),
            sa.Column('level', sa.Integer(), nullable=False),
            sa.Column('territory_score', sa.Integer(), nullable=False),
            sa.Column('time_bonus', sa.Integer(), nullable=False),
            sa.Column('life_bonus', sa.Integer(), nullable=False),
            sa.Column('quiz_bonus', sa.Integer(), nullable=False),
            sa.Column('streak_bonus', sa.Integer(), nullable=False),
            sa.Column('level_multiplier', sa.Float(), nullable=False),
            sa.Column('total_score', sa.Integer(), nullable=False),
            sa.Column('territory_percentage', sa.Float(), nullable=False),
            sa.Column('time_taken_seconds', sa.Integer(), nullable=False),
            sa.Column('lives_remaining', sa.Integer(), nullable=False),
            sa.Column('quiz_attempts', sa.Integer(), nullable=False),
            sa.Column('collectible_id', sa.Integer(), nullable=True),
            sa.Column('collectible_name', sa.String(length=64), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_player_score_user_id', 'player_score', ['user_id'])
        op.create_index('ix_player_score_game_id', 'player_score', ['game_id'])
        op.create_index('ix_player_score_session_id', 'player_score', ['session_id'])
        op.create_index('ix_player_score_level', 'player_score', ['level'])

    if 'game_session' not in existing_tables:
        op.create_table(
            'game_session',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('game_id', sa.String(length=64), nullable=True),
            sa.Column('started_at', sa.DateTime(), nullable=False),
            sa.Column('ended_at', sa.DateTime(), nullable=True),
            sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('levels_completed', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('highest_level', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('max_streak', sa.Integer(), nullable=False, server_default='0'),
        )
        op.create_index('ix_game_session_user_id', 'game_session', ['user_id'])
        op.create_index('ix_game_session_total_score', 'game_session', ['total_score'])

    if 'achievement' not in existing_tables:
        op.create_table(
            'achievement',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
            sa.Column('description', sa.String(length=256), nullable=False),
            sa.Column('icon', sa.String(length=16), nullable=False),
            sa.Column('category', sa.String(length=32), nullable=False),
            sa.Column('points', sa.Integer(), nullable=False),
            sa.Column('requirement_type', sa.String(length=32), nullable=False),
            sa.Column('requirement_value', sa.Integer(), nullable=False),
            sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        )

    if 'player_achievement' not in existing_tables:
        op.create_table(
            'player_achievement',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('achievement_id', sa.String(length=64), sa.ForeignKey('achievement.id'), nullable=False),
            sa.Column('progress', sa.Float(), nullable=True),
            sa.Column('unlocked_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('user_id', 'achievement_id', name='uq_player_achievement'),
        )
        op.create_index('ix_player_achievement_user_id', 'player_achievement', ['user_id'])

    if 'player_collection' not in existing_tables:
        op.create_table(
            'player_collection',
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), primary_key=True),
            sa.Column('collectible_id', sa.Integer(), primary_key=True),
            sa.Column('collectible_name', sa.String(length=64), nullable=True),
            sa.Column('first_revealed_at', sa.DateTime(), nullable=False),
            sa.Column('times_revealed', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('best_coverage', sa.Float(), nullable=False, server_default='0'),
            sa.Column('fastest_reveal_seconds', sa.Integer(), nullable=True),
        )


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    # Children before parents
    for table in ('player_collection', 'player_achievement', 'achievement',
                  'game_session', 'player_score', 'player_stats', 'user'):
        if table in existing_tables:
            op.drop_table(table)
