"""create user, finished_game, invite and room_snapshot tables

Revision ID: 3c7a91d0b2e4
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7a91d0b2e4'
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
            sa.Column('email', sa.String(length=254), nullable=True),
            sa.Column('rating', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('draws', sa.Integer(), nullable=False, server_default='0'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)
        op.create_index('ix_user_rating', 'user', ['rating'])

    if 'finished_game' not in existing_tables:
        op.create_table(
            'finished_game',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_id', sa.String(length=64), nullable=False),
            sa.Column('game_number', sa.Integer(), nullable=False),
            sa.Column('white_player_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('black_player_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('position', sa.Text(), nullable=True),
            sa.Column('result', sa.String(length=128), nullable=True),
            sa.Column('winner_seat', sa.String(length=1), nullable=True),
            sa.Column('created_at', sa.Float(), nullable=False),
            sa.UniqueConstraint('room_id', 'game_number', name='uq_finished_game_room_number'),
        )
        op.create_index('ix_finished_game_room_id', 'finished_game', ['room_id'])
        op.create_index('ix_finished_game_white_player_id', 'finished_game', ['white_player_id'])
        op.create_index('ix_finished_game_black_player_id', 'finished_game', ['black_player_id'])

    if 'invite' not in existing_tables:
        op.create_table(
            'invite',
            sa.Column('id', sa.String(length=8), primary_key=True),
            sa.Column('from_user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('from_username', sa.String(length=64), nullable=False),
            sa.Column('to_user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('room_id', sa.String(length=64), nullable=False),
            sa.Column('created_at', sa.Float(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
        )
        op.create_index('ix_invite_to_user_id', 'invite', ['to_user_id'])

    if 'room_snapshot' not in existing_tables:
        op.create_table(
            'room_snapshot',
            sa.Column('room_id', sa.String(length=64), primary_key=True),
            sa.Column('phase', sa.String(length=16), nullable=False),
            sa.Column('white_id', sa.Integer(), nullable=True),
            sa.Column('white_username', sa.String(length=64), nullable=True),
            sa.Column('black_id', sa.Integer(), nullable=True),
            sa.Column('black_username', sa.String(length=64), nullable=True),
            sa.Column('white_player_id', sa.Integer(), nullable=True),
            sa.Column('white_player_username', sa.String(length=64), nullable=True),
            sa.Column('black_player_id', sa.Integer(), nullable=True),
            sa.Column('black_player_username', sa.String(length=64), nullable=True),
            sa.Column('position', sa.Text(), nullable=True),
            sa.Column('started', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('game_number', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('finished', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('revision', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('updated_at', sa.Float(), nullable=False),
        )


def downgrade():
    op.drop_table('room_snapshot')
    op.drop_index('ix_invite_to_user_id', table_name='invite')
    op.drop_table('invite')
    op.drop_index('ix_finished_game_black_player_id', table_name='finished_game')
    op.drop_index('ix_finished_game_white_player_id', table_name='finished_game')
    op.drop_index('ix_finished_game_room_id', table_name='finished_game')
    op.drop_table('finished_game')
    op.drop_index('ix_user_rating', table_name='user')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
