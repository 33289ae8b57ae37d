"""add bracket and match tables

Revision ID: 002_brackets
Revises: 001_initial
Create Date: 2026-09-21 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_brackets'
down_revision = '001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'bracket',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tournament_id', sa.Integer(), nullable=False),
        sa.Column('category_age', sa.String(), nullable=True),
        sa.Column('category_weight', sa.String(), nullable=True),
        sa.Column('category_belt', sa.String(), nullable=True),
        sa.Column('category_name', sa.String(), nullable=False),
        sa.Column('total_participants', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='DRAFT'),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tournament_id'], ['tournament.id']),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_bracket_tournament_id', 'bracket', ['tournament_id'])

    op.create_table(
        'match',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bracket_id', sa.Integer(), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('round_name', sa.String(), nullable=False),
        sa.Column('match_number', sa.Integer(), nullable=False),
        sa.Column('fighter_a_id', sa.Integer(), nullable=True),
        sa.Column('fighter_a_name', sa.String(), nullable=True),
        sa.Column('fighter_b_id', sa.Integer(), nullable=True),
        sa.Column('fighter_b_name', sa.String(), nullable=True),
        sa.Column('fighter_a_score', sa.Float(), nullable=True),
        sa.Column('fighter_b_score', sa.Float(), nullable=True),
        sa.Column('winner_id', sa.Integer(), nullable=True),
        sa.Column('is_bye', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('source_match_a_id', sa.Integer(), nullable=True),
        sa.Column('source_match_b_id', sa.Integer(), nullable=True),
        sa.Column('next_match_id', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['bracket_id'], ['bracket.id']),
        sa.ForeignKeyConstraint(['source_match_a_id'], ['match.id']),
        sa.ForeignKeyConstraint(['source_match_b_id'], ['match.id']),
        sa.ForeignKeyConstraint(['next_match_id'], ['match.id']),
        sa.UniqueConstraint('bracket_id', 'round_number', 'match_number', name='uq_bracket_round_match'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_match_bracket_id', 'match', ['bracket_id'])


def downgrade() -> None:
    op.drop_index('ix_match_bracket_id', table_name='match')
    op.drop_table('match')
    op.drop_index('ix_bracket_tournament_id', table_name='bracket')
    op.drop_table('bracket')
