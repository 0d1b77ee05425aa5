"""SQLModel table definitions for the scoring store. JSONB on PostgreSQL, JSON elsewhere."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_column() -> Column:
    return Column(JSON().with_variant(JSONB(), "postgresql"))


def _ts_column() -> Column:
    return Column(DateTime(timezone=True), nullable=False, default=_utcnow)


# --- Enums (stored as strings in DB) ---


class CacheStatus(str, Enum):
    hit = "hit"
    miss = "miss"
    error = "error"


class ScoringStatus(str, Enum):
    success = "success"
    error = "error"


# --- Tables ---


class ScoringConfigRow(SQLModel, table=True):
    """Weight profile. At most one row has is_active = true (partial unique index)."""

    __tablename__ = "scoring_configs"
    __table_args__ = (
        Index(
            "uq_scoring_configs_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id: str = Field(primary_key=True)
    name: str = ""
    model: str = "default"
    version: str = "1.0"
    weights: dict[str, Any] = Field(default_factory=dict, sa_column=_json_column())
    prompt_template: str = ""
    is_active: bool = False
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_ts_column())


class ScoreCacheRow(SQLModel, table=True):
    """One cached score per (image_hash, model_id)."""

    __tablename__ = "scoring_cache"
    __table_args__ = (
        UniqueConstraint("image_hash", "model_id", name="uq_scoring_cache_image_model"),
    )

    id: int | None = Field(default=None, primary_key=True)
    image_hash: str = Field(index=True)
    model_id: str = Field(nullable=False)
    score: float = 0.0
    data: dict[str, Any] | None = Field(default=None, sa_column=_json_column())
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_ts_column())


class ScoreCacheLogRow(SQLModel, table=True):
    """Append-only: one row per cache lookup with its resolved status."""

    __tablename__ = "scoring_cache_logs"

    id: int | None = Field(default=None, primary_key=True)
    image_hash: str = ""
    model_id: str = ""
    status: CacheStatus = Field(default=CacheStatus.miss)
    score: float | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_ts_column())


class ScoringErrorRow(SQLModel, table=True):
    """Append-only: per-config scoring failures and cache backend errors."""

    __tablename__ = "scoring_errors"

    id: int | None = Field(default=None, primary_key=True)
    error_message: str = ""
    image_id: str = ""
    model_id: str = Field(default="", index=True)
    context: dict[str, Any] | None = Field(default=None, sa_column=_json_column())
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_ts_column())


class ScoringLogRow(SQLModel, table=True):
    """Append-only: one row per scored (image, model) with latency and outcome."""

    __tablename__ = "scoring_logs"

    id: int | None = Field(default=None, primary_key=True)
    image_name: str = ""
    image_size: int = 0
    project_id: str | None = Field(default=None)
    user_id: str | None = Field(default=None)
    response_time_ms: float = 0.0
    is_mock: bool = False
    is_test: bool = False
    retry_count: int = 0
    model_name: str = "default"
    status: ScoringStatus = Field(default=ScoringStatus.success)
    error_message: str | None = Field(default=None)
    cache_status: CacheStatus | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_ts_column())
