"""Telemetry repository: append-only scoring/cache/error log rows and aggregate stats."""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session

from scoutscore.models.entities import (
    CacheStatus,
    ScoreCacheLogRow,
    ScoringErrorRow,
    ScoringLogRow,
    ScoringStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TelemetryRepository:
    """
    Writes scoring_logs, scoring_cache_logs and scoring_errors rows, and answers the
    operational questions: cache hit rate, average latency, which models error most.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session_scope(self, write: bool = False) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            if write:
                session.commit()
        finally:
            session.close()

    def insert_scoring_log(
        self,
        *,
        image_name: str,
        image_size: int,
        response_time_ms: float,
        status: ScoringStatus,
        model_name: str = "default",
        project_id: str | None = None,
        user_id: str | None = None,
        is_mock: bool = False,
        is_test: bool = False,
        retry_count: int = 0,
        error_message: str | None = None,
        cache_status: CacheStatus | None = None,
    ) -> None:
        with self._session_scope(write=True) as session:
            session.add(
                ScoringLogRow(
                    image_name=image_name,
                    image_size=image_size,
                    project_id=project_id,
                    user_id=user_id,
                    response_time_ms=response_time_ms,
                    is_mock=is_mock,
                    is_test=is_test,
                    retry_count=retry_count,
                    model_name=model_name or "default",
                    status=status,
                    error_message=error_message,
                    cache_status=cache_status,
                )
            )

    def insert_cache_log(
        self, image_hash: str, model_id: str, status: CacheStatus, score: float | None = None
    ) -> None:
        with self._session_scope(write=True) as session:
            session.add(
                ScoreCacheLogRow(image_hash=image_hash, model_id=model_id, status=status, score=score)
            )

    def insert_error(
        self,
        error_message: str,
        image_id: str,
        model_id: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        with self._session_scope(write=True) as session:
            session.add(
                ScoringErrorRow(
                    error_message=error_message,
                    image_id=image_id,
                    model_id=model_id,
                    context=context,
                )
            )

    def get_scoring_stats(self) -> dict[str, float]:
        """Return total_scores, success_rate (%), avg_response_time (ms), mock_percentage (%)."""
        with self._session_scope() as session:
            row = session.execute(
                select(
                    func.count(ScoringLogRow.id),
                    func.sum(case((ScoringLogRow.status == ScoringStatus.success, 1), else_=0)),
                    func.avg(ScoringLogRow.response_time_ms),
                    func.sum(case((ScoringLogRow.is_mock.is_(True), 1), else_=0)),
                )
            ).one()
        total = int(row[0] or 0)
        successes = int(row[1] or 0)
        mocks = int(row[3] or 0)
        return {
            "total_scores": total,
            "success_rate": (successes / total) * 100 if total else 0.0,
            "avg_response_time": float(row[2] or 0.0),
            "mock_percentage": (mocks / total) * 100 if total else 0.0,
        }

    def get_cache_hit_rate(self) -> float:
        """Fraction of logged cache lookups that were hits (0.0 when nothing logged)."""
        with self._session_scope() as session:
            row = session.execute(
                select(
                    func.count(ScoreCacheLogRow.id),
                    func.sum(case((ScoreCacheLogRow.status == CacheStatus.hit, 1), else_=0)),
                )
            ).one()
        total = int(row[0] or 0)
        return (int(row[1] or 0) / total) if total else 0.0

    def get_error_counts_by_model(self, limit: int = 10) -> list[tuple[str, int]]:
        """Models with the most scoring errors, most first."""
        with self._session_scope() as session:
            n = func.count(ScoringErrorRow.id).label("n")
            rows = session.execute(
                select(ScoringErrorRow.model_id, n)
                .group_by(ScoringErrorRow.model_id)
                .order_by(n.desc(), ScoringErrorRow.model_id)
                .limit(limit)
            ).all()
        return [(r[0], int(r[1])) for r in rows]

    def list_recent_errors(self, limit: int = 50) -> list[ScoringErrorRow]:
        with self._session_scope() as session:
            result = session.execute(
                select(ScoringErrorRow).order_by(ScoringErrorRow.id.desc()).limit(limit)
            )
            return list(result.scalars().all())

    def prune_older_than(self, max_age_days: int) -> int:
        """Delete log rows older than max_age_days from all three log tables. Returns count deleted."""
        cutoff = _utcnow() - timedelta(days=max_age_days)
        deleted = 0
        with self._session_scope(write=True) as session:
            for table in (ScoringLogRow, ScoreCacheLogRow, ScoringErrorRow):
                result = session.execute(delete(table).where(table.created_at < cutoff))
                deleted += result.rowcount or 0
        return deleted
