"""Initial migration: create tournament and registration tables

Revision ID: 001_initial
Revises:
Create Date: 2026-09-14 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="UPCOMING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "registration",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("competitor_id", sa.Integer(), nullable=False),
        sa.Column("competitor_name", sa.String(), nullable=False),
        sa.Column("dojo_name", sa.String(), nullable=True),
        sa.Column("category_age", sa.String(), nullable=True),
        sa.Column("category_weight", sa.String(), nullable=True),
        sa.Column("category_belt", sa.String(), nullable=True),
        sa.Column("approval_status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
    )
    op.create_index("ix_registration_tournament_id", "registration", ["tournament_id"])


def downgrade() -> None:
    op.drop_index("ix_registration_tournament_id", table_name="registration")
    op.drop_table("registration")
    op.drop_table("tournament")
