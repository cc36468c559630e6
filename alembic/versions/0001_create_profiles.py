"""create profiles table

Revision ID: 0001
Revises:
Create Date: 2026-09-14 10:02:11

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("achievements", sa.JSON(), nullable=False),
        sa.Column("top_three", sa.JSON(), nullable=False),
        sa.Column("common_denominators", sa.JSON(), nullable=False),
        sa.Column("performance_pattern", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_profiles")),
    )
    op.create_index("ix_profiles_created_at_desc", "profiles", [sa.text("created_at DESC")])


def downgrade() -> None:
    op.drop_index("ix_profiles_created_at_desc", table_name="profiles")
    op.drop_table("profiles")
