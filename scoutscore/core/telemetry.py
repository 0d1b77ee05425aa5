"""Scoring telemetry: one injectable interface for success/failure/cache/error events.

All methods are fire-and-forget. A failure to record telemetry is logged and dropped;
it never raises into, or blocks, the scoring path.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from scoutscore.models.entities import CacheStatus, ScoringStatus

if TYPE_CHECKING:
    from scoutscore.repository.telemetry_repo import TelemetryRepository

_log = logging.getLogger(__name__)

TELEMETRY_BUFFER_CAPACITY = 50_000


@dataclass(frozen=True)
class ScoreEvent:
    """One scored (image, model) attempt."""

    image_name: str
    image_size: int
    response_time_ms: float
    model_name: str = "default"
    project_id: str | None = None
    user_id: str | None = None
    is_mock: bool = False
    is_test: bool = False
    retry_count: int = 0
    cache_status: CacheStatus | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ScoringErrorEvent:
    """A per-config scoring failure, or a cache backend error."""

    error: str
    image_id: str
    model_id: str
    context: dict[str, Any] = field(default_factory=dict)


class ScoringTelemetry(ABC):
    """Sink for scoring telemetry. Implementations must never raise."""

    @abstractmethod
    def log_success(self, event: ScoreEvent) -> None: ...

    @abstractmethod
    def log_failure(self, event: ScoreEvent) -> None: ...

    @abstractmethod
    def log_cache_access(
        self, image_key: str, model_id: str, status: CacheStatus, score: float | None = None
    ) -> None: ...

    @abstractmethod
    def log_error(self, event: ScoringErrorEvent) -> None: ...

    def flush(self) -> None:
        """Block until queued events are written. No-op for synchronous sinks."""


@dataclass(frozen=True)
class TelemetryRecord:
    kind: str
    payload: Any
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class InMemoryTelemetry(ScoringTelemetry):
    """
    Bounded ring buffer of telemetry records. Used in tests, in dev mode, and anywhere a
    database-backed sink is not wanted. deque.append is atomic, so concurrent writers
    from comparison tasks are safe.
    """

    def __init__(self, capacity: int = TELEMETRY_BUFFER_CAPACITY) -> None:
        self._buffer: deque[TelemetryRecord] = deque(maxlen=capacity)

    def log_success(self, event: ScoreEvent) -> None:
        self._buffer.append(TelemetryRecord("success", event))

    def log_failure(self, event: ScoreEvent) -> None:
        self._buffer.append(TelemetryRecord("failure", event))

    def log_cache_access(
        self, image_key: str, model_id: str, status: CacheStatus, score: float | None = None
    ) -> None:
        self._buffer.append(
            TelemetryRecord(
                "cache_access",
                {"image_key": image_key, "model_id": model_id, "status": status, "score": score},
            )
        )

    def log_error(self, event: ScoringErrorEvent) -> None:
        self._buffer.append(TelemetryRecord("error", event))

    def events(self, kind: str | None = None) -> list[Any]:
        """Payloads of buffered records, oldest first, optionally filtered by kind."""
        return [r.payload for r in list(self._buffer) if kind is None or r.kind == kind]

    def cache_hit_ratio(self) -> float:
        accesses = self.events("cache_access")
        if not accesses:
            return 0.0
        hits = sum(1 for a in accesses if a["status"] == CacheStatus.hit)
        return hits / len(accesses)

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)


class RepositoryTelemetry(ScoringTelemetry):
    """
    Persists telemetry through TelemetryRepository.

    With background=True (default) writes are handed to a single worker thread so the
    scoring path never waits on the log tables; call flush() or close() to drain.
    """

    def __init__(self, repo: "TelemetryRepository", *, background: bool = True) -> None:
        self._repo = repo
        self._executor: ThreadPoolExecutor | None = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="telemetry") if background else None
        )
        self._pending: set = set()
        self._lock = threading.Lock()

    def _write(self, label: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            _log.warning("Failed to record %s telemetry", label, exc_info=True)

    def _submit(self, label: str, fn: Callable[[], None]) -> None:
        if self._executor is None:
            self._write(label, fn)
            return
        try:
            future = self._executor.submit(self._write, label, fn)
        except RuntimeError:
            _log.warning("Telemetry sink closed; dropping %s event", label)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _insert_score(self, event: ScoreEvent, status: ScoringStatus) -> None:
        self._repo.insert_scoring_log(
            image_name=event.image_name,
            image_size=event.image_size,
            response_time_ms=event.response_time_ms,
            status=status,
            model_name=event.model_name,
            project_id=event.project_id,
            user_id=event.user_id,
            is_mock=event.is_mock,
            is_test=event.is_test,
            retry_count=event.retry_count,
            error_message=event.error_message,
            cache_status=event.cache_status,
        )

    def log_success(self, event: ScoreEvent) -> None:
        self._submit("success", lambda: self._insert_score(event, ScoringStatus.success))

    def log_failure(self, event: ScoreEvent) -> None:
        self._submit("failure", lambda: self._insert_score(event, ScoringStatus.error))

    def log_cache_access(
        self, image_key: str, model_id: str, status: CacheStatus, score: float | None = None
    ) -> None:
        self._submit(
            "cache access", lambda: self._repo.insert_cache_log(image_key, model_id, status, score)
        )

    def log_error(self, event: ScoringErrorEvent) -> None:
        self._submit(
            "error",
            lambda: self._repo.insert_error(
                event.error, event.image_id, event.model_id, event.context or None
            ),
        )

    def flush(self) -> None:
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.result()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
