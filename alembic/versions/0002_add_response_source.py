"""add source to assessment_responses

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 12:00:00
"""
import sqlalchemy as sa
from alembic import op

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("assessment_responses") as batch_op:
        batch_op.add_column(sa.Column("source", sa.String(length=50), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("assessment_responses") as batch_op:
        batch_op.drop_column("source")
