"""scoring_tables: configs, cache, cache logs, errors, scoring logs

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    # Scoring configs (weight profiles); at most one active
    op.create_table(
        "scoring_configs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("model", sa.String(), nullable=False),
        sa.Column("version", sa.String(), nullable=False),
        sa.Column("weights", _json(), nullable=True),
        sa.Column("prompt_template", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_scoring_configs_single_active",
        "scoring_configs",
        ["is_active"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active"),
    )

    # Score cache: one row per (image_hash, model_id)
    op.create_table(
        "scoring_cache",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("image_hash", sa.String(), nullable=False),
        sa.Column("model_id", sa.String(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("data", _json(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("image_hash", "model_id", name="uq_scoring_cache_image_model"),
    )
    op.create_index(op.f("ix_scoring_cache_image_hash"), "scoring_cache", ["image_hash"])
    op.create_index("ix_scoring_cache_created_at", "scoring_cache", ["created_at"])

    op.create_table(
        "scoring_cache_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("image_hash", sa.String(), nullable=False),
        sa.Column("model_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "scoring_errors",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("error_message", sa.String(), nullable=False),
        sa.Column("image_id", sa.String(), nullable=False),
        sa.Column("model_id", sa.String(), nullable=False),
        sa.Column("context", _json(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_scoring_errors_model_id"), "scoring_errors", ["model_id"])

    op.create_table(
        "scoring_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("image_name", sa.String(), nullable=False),
        sa.Column("image_size", sa.BigInteger(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("response_time_ms", sa.Float(), nullable=False),
        sa.Column("is_mock", sa.Boolean(), nullable=False),
        sa.Column("is_test", sa.Boolean(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("model_name", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("cache_status", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scoring_logs_created_at", "scoring_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_scoring_logs_created_at", table_name="scoring_logs")
    op.drop_table("scoring_logs")
    op.drop_index(op.f("ix_scoring_errors_model_id"), table_name="scoring_errors")
    op.drop_table("scoring_errors")
    op.drop_table("scoring_cache_logs")
    op.drop_index("ix_scoring_cache_created_at", table_name="scoring_cache")
    op.drop_index(op.f("ix_scoring_cache_image_hash"), table_name="scoring_cache")
    op.drop_table("scoring_cache")
    op.drop_index("uq_scoring_configs_single_active", table_name="scoring_configs")
    op.drop_table("scoring_configs")
