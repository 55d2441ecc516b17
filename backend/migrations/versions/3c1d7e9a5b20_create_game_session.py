"""create game_session table for saved scores

Revision ID: 3c1d7e9a5b20
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c1d7e9a5b20'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # Tables created by `flask db-reset` already have the final shape
    if 'game_session' in set(insp.get_table_names()):
        return

    op.create_table(
        'game_session',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player_nickname', sa.String(length=50), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('rounds_completed', sa.Integer(), nullable=False),
        sa.Column('total_rounds', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_game_session_completed_at', 'game_session', ['completed_at'])


def downgrade():
    op.drop_index('ix_game_session_completed_at', table_name='game_session')
    op.drop_table('game_session')
