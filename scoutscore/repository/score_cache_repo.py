"""Score cache repository: (image_key, model_id) -> score + vision data.

The cache is a performance optimization, never a correctness dependency: no method
raises on backend failure. get() treats a backend error as a miss for the caller but
records it separately, so "never scored" and "store unreachable" stay distinguishable.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from scoutscore.ai.schema import VisionData
from scoutscore.core.telemetry import ScoringErrorEvent, ScoringTelemetry
from scoutscore.models.entities import CacheStatus, ScoreCacheRow

_log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ScoreCacheEntry:
    """One cached scoring result."""

    image_hash: str
    model_id: str
    score: float
    vision_data: VisionData
    created_at: datetime


class ScoreCacheRepository:
    """Database access for scoring_cache. Every get() emits one cache-access telemetry record."""

    def __init__(self, session_factory: Callable[[], Session], telemetry: ScoringTelemetry) -> None:
        self._session_factory = session_factory
        self._telemetry = telemetry

    @contextmanager
    def _session_scope(self, write: bool = False) -> Iterator[Session]:
        """
        Provide a transactional scope for a series of ORM operations.

        When write=True, the session is committed on successful exit; on error it is
        rolled back. In all cases, the session is closed in a finally block.
        """
        session = self._session_factory()
        try:
            yield session
            if write:
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _backend_error(self, operation: str, image_key: str, model_id: str, err: Exception) -> None:
        _log.error(
            "Score cache backend error during %s (image=%s, model=%s): %s",
            operation,
            image_key,
            model_id,
            err,
        )
        self._telemetry.log_error(
            ScoringErrorEvent(
                error=str(err),
                image_id=image_key,
                model_id=model_id,
                context={"source": "score_cache", "operation": operation, "backend_error": True},
            )
        )

    def get(self, image_key: str, model_id: str) -> ScoreCacheEntry | None:
        """Return the cached entry or None. Backend errors resolve to None (logged as a miss plus an error)."""
        if not image_key or not model_id:
            _log.warning("Invalid parameters for score cache get: %r, %r", image_key, model_id)
            self._telemetry.log_cache_access(image_key or "", model_id or "", CacheStatus.miss)
            return None
        try:
            with self._session_scope() as session:
                row = session.execute(
                    select(ScoreCacheRow).where(
                        ScoreCacheRow.image_hash == image_key,
                        ScoreCacheRow.model_id == model_id,
                    )
                ).scalar_one_or_none()
                entry = (
                    ScoreCacheEntry(
                        image_hash=row.image_hash,
                        model_id=row.model_id,
                        score=row.score,
                        vision_data=VisionData.model_validate(row.data or {}),
                        created_at=row.created_at,
                    )
                    if row is not None
                    else None
                )
        except (SQLAlchemyError, ValidationError) as e:
            self._telemetry.log_cache_access(image_key, model_id, CacheStatus.miss)
            self._backend_error("get", image_key, model_id, e)
            return None

        if entry is None:
            self._telemetry.log_cache_access(image_key, model_id, CacheStatus.miss)
            return None
        self._telemetry.log_cache_access(image_key, model_id, CacheStatus.hit, entry.score)
        return entry

    def _upsert(self, image_key: str, model_id: str, score: float, payload: dict) -> None:
        with self._session_scope(write=True) as session:
            row = session.execute(
                select(ScoreCacheRow).where(
                    ScoreCacheRow.image_hash == image_key,
                    ScoreCacheRow.model_id == model_id,
                )
            ).scalar_one_or_none()
            if row is None:
                session.add(
                    ScoreCacheRow(image_hash=image_key, model_id=model_id, score=score, data=payload)
                )
            else:
                row.score = score
                row.data = payload
                row.created_at = _utcnow()

    def put(self, image_key: str, model_id: str, score: float, vision_data: VisionData) -> bool:
        """Insert or overwrite the entry for (image_key, model_id). Returns False on failure, never raises."""
        if not image_key or not model_id:
            _log.warning("Invalid parameters for score cache put: %r, %r", image_key, model_id)
            return False
        payload = vision_data.to_wire()
        try:
            try:
                self._upsert(image_key, model_id, score, payload)
            except IntegrityError:
                # A concurrent writer inserted the same key first; overwrite it.
                self._upsert(image_key, model_id, score, payload)
            return True
        except SQLAlchemyError as e:
            self._backend_error("put", image_key, model_id, e)
            return False

    def clear_all(self) -> bool:
        """Delete every cache entry."""
        try:
            with self._session_scope(write=True) as session:
                result = session.execute(delete(ScoreCacheRow))
            _log.info("Cleared score cache (%s entries)", result.rowcount)
            return True
        except SQLAlchemyError as e:
            self._backend_error("clear_all", "*", "*", e)
            return False

    def clear_one(self, image_key: str) -> bool:
        """Delete all entries (every model) for one image key."""
        if not image_key:
            _log.warning("Invalid image key for clear_one")
            return False
        try:
            with self._session_scope(write=True) as session:
                session.execute(delete(ScoreCacheRow).where(ScoreCacheRow.image_hash == image_key))
            return True
        except SQLAlchemyError as e:
            self._backend_error("clear_one", image_key, "*", e)
            return False

    def count(self) -> int:
        with self._session_scope() as session:
            return session.scalar(select(func.count()).select_from(ScoreCacheRow)) or 0

    def prune_older_than(self, max_age_hours: int) -> int:
        """Delete entries created more than max_age_hours ago. Returns count deleted."""
        cutoff = _utcnow() - timedelta(hours=max_age_hours)
        with self._session_scope(write=True) as session:
            result = session.execute(delete(ScoreCacheRow).where(ScoreCacheRow.created_at < cutoff))
            return result.rowcount or 0
