"""create question, round_state and participant_score

Revision ID: b7c41e9d2a10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c41e9d2a10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'question' not in existing_tables:
        op.create_table(
            'question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('expression', sa.String(length=128), nullable=False),
            sa.Column('answer_value', sa.Float(), nullable=False),
            sa.Column('difficulty_tier', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('round_index', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.Float(), nullable=False),
        )

    if 'round_state' not in existing_tables:
        op.create_table(
            'round_state',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('current_question_id', sa.Integer(), sa.ForeignKey('question.id', name='fk_round_state_question_id'), nullable=True),
            sa.Column('phase', sa.String(length=16), nullable=False, server_default='active'),
            sa.Column('winner_id', sa.String(length=64), nullable=True),
            sa.Column('winner_name', sa.String(length=64), nullable=True),
            sa.Column('updated_at', sa.Float(), nullable=False),
            sa.CheckConstraint('id = 1', name='ck_round_state_singleton'),
            sa.CheckConstraint("phase IN ('active', 'answered')", name='ck_round_state_phase'),
        )
        # Exactly one round_state row ever exists
        op.execute("INSERT INTO round_state (id, phase, updated_at) VALUES (1, 'active', 0)")

    if 'participant_score' not in existing_tables:
        op.create_table(
            'participant_score',
            sa.Column('participant_id', sa.String(length=64), primary_key=True),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('win_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_win_at', sa.Float(), nullable=True),
            sa.Column('joined_at', sa.Float(), nullable=False),
            sa.CheckConstraint('win_count <= attempt_count', name='ck_participant_score_wins_le_attempts'),
        )
        op.create_index('ix_participant_score_ranking', 'participant_score', ['win_count', 'last_win_at'])


def downgrade():
    op.drop_index('ix_participant_score_ranking', table_name='participant_score')
    op.drop_table('participant_score')
    op.drop_table('round_state')
    op.drop_table('question')
