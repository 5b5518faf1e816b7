"""stored collections

Revision ID: 202410180900
Revises:
Create Date: 2024-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410180900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stored_collections",
        sa.Column("name", sa.String(length=40), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("stored_collections")
