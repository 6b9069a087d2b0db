"""Catalog and transfer history

Revision ID: 5c1d9e7a2b40
Revises:
Create Date: 2026-09-28 14:05:12.418230

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c1d9e7a2b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_STATES = ("PENDING", "RUNNING", "COMPLETED", "CANCELLED", "CRASHED")
OUTCOMES = ("SUCCESSFUL", "FAILED", "SKIPPED")
REASONS = (
    "NO_EPISODE_NUMBER",
    "DUPLICATE_EPISODE",
    "TRANSFER_ERROR",
    "STALLED",
    "PERSIST_ERROR",
)


def upgrade() -> None:
    op.create_table(
        "anime",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_anime_title", "anime", ["title"], unique=False)
    op.create_index("ix_anime_updated_at", "anime", ["updated_at"], unique=False)

    op.create_table(
        "transfer_job",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("anime_id", sa.String(), nullable=False),
        sa.Column("anime_title", sa.String(), nullable=True),
        sa.Column("season_number", sa.Integer(), nullable=False),
        sa.Column("folder_id", sa.String(), nullable=False),
        sa.Column(
            "state", sa.Enum(*JOB_STATES, name="transferjobstate"), nullable=False
        ),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("processed", sa.Integer(), nullable=False),
        sa.Column("successful", sa.Integer(), nullable=False),
        sa.Column("failed", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_transfer_job_anime_id", "transfer_job", ["anime_id"], unique=False
    )
    op.create_index("ix_transfer_job_state", "transfer_job", ["state"], unique=False)
    op.create_index(
        "ix_transfer_job_created_at", "transfer_job", ["created_at"], unique=False
    )

    op.create_table(
        "transfer_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("file_id", sa.String(), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("episode_number", sa.Integer(), nullable=True),
        sa.Column(
            "outcome", sa.Enum(*OUTCOMES, name="transferoutcome"), nullable=False
        ),
        sa.Column("reason", sa.Enum(*REASONS, name="transferreason"), nullable=True),
        sa.Column("cdn_url", sa.String(), nullable=True),
        sa.Column("bytes_transferred", sa.BigInteger(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["job_id"],
            ["transfer_job.id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_transfer_item_job_id", "transfer_item", ["job_id"], unique=False
    )
    op.create_index(
        "ix_transfer_item_outcome", "transfer_item", ["outcome"], unique=False
    )
    op.create_index(
        "ix_transfer_item_job_position",
        "transfer_item",
        ["job_id", "position"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_transfer_item_job_position", table_name="transfer_item")
    op.drop_index("ix_transfer_item_outcome", table_name="transfer_item")
    op.drop_index("ix_transfer_item_job_id", table_name="transfer_item")
    op.drop_table("transfer_item")
    op.drop_index("ix_transfer_job_created_at", table_name="transfer_job")
    op.drop_index("ix_transfer_job_state", table_name="transfer_job")
    op.drop_index("ix_transfer_job_anime_id", table_name="transfer_job")
    op.drop_table("transfer_job")
    op.drop_index("ix_anime_updated_at", table_name="anime")
    op.drop_index("ix_anime_title", table_name="anime")
    op.drop_table("anime")
