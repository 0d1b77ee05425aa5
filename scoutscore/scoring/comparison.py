"""Comparison engine: score one image under N scoring configs with cache reuse.

Each config is an independent task. Tasks fan out on a bounded thread pool and are
joined back by index, so the result list always has one entry per input config, in
input order, whatever order the tasks finish in. A failure in one config (provider
error, scoring bug) is caught, logged, and turned into a zero-score result for that
config only; it never poisons the others and never escapes compare().
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from scoutscore.ai.schema import VisionData
from scoutscore.ai.vision_base import BaseVisionAnalyzer, MockVisionAnalyzer
from scoutscore.core.telemetry import ScoreEvent, ScoringErrorEvent, ScoringTelemetry
from scoutscore.models.entities import CacheStatus
from scoutscore.repository.score_cache_repo import ScoreCacheRepository
from scoutscore.scoring.calculator import calculate_score
from scoutscore.scoring.image_key import ImageFile
from scoutscore.scoring.weights import ScoreWeights, ScoringConfig

_log = logging.getLogger(__name__)

CACHE_DISPLAY_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheProvenance(BaseModel):
    """Where a cached result came from. expires_at is a display convention, not an enforced TTL."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_cache: bool = Field(default=True, alias="fromCache")
    cache_date: datetime = Field(alias="cacheDate")
    cache_key: str = Field(alias="cacheKey")
    expires_at: datetime = Field(alias="expiresAt")


class ModelComparisonResult(BaseModel):
    """One config's outcome for one image. Never persisted on its own."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())

    model_id: str = Field(alias="modelId")
    model_name: str = Field(alias="modelName")
    score: float
    vision_data: VisionData = Field(alias="visionData")
    weights: ScoreWeights
    version: str
    execution_time_ms: float = Field(alias="executionTimeMs")
    cached: bool = False
    cache_status: CacheProvenance | None = Field(default=None, alias="cacheStatus")
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True, mode="json", exclude={"vision_data"})
        payload["visionData"] = self.vision_data.to_wire()
        return payload


@dataclass(frozen=True)
class CompareOptions:
    """Per-run switches. force_mock uses the mock analyzer and bypasses the cache entirely."""

    force_mock: bool = False
    skip_cache: bool = False
    project_id: str | None = None
    user_id: str | None = None
    image_id: str | None = None
    compare_mode: bool = True


class ComparisonEngine:
    """
    Runs the cache-or-analyze-then-score pipeline for each config.

    Collaborators (analyzer, cache, telemetry) are injected so tests can observe every
    emitted event without a real backend. cache may be None (no persistence at all).
    """

    def __init__(
        self,
        analyzer: BaseVisionAnalyzer,
        cache: ScoreCacheRepository | None,
        telemetry: ScoringTelemetry,
        *,
        mock_analyzer: BaseVisionAnalyzer | None = None,
        max_workers: int = 4,
        dev_mode: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._analyzer = analyzer
        self._mock_analyzer = mock_analyzer or MockVisionAnalyzer()
        self._cache = cache
        self._telemetry = telemetry
        self._max_workers = max(1, max_workers)
        self._dev_mode = dev_mode
        self._clock = clock

    def _score_one(
        self,
        image: ImageFile,
        image_key: str,
        config: ScoringConfig,
        options: CompareOptions,
    ) -> ModelComparisonResult:
        """Cache lookup, then analyze + score + write-back on miss. Raises on failure."""
        started = time.perf_counter()
        use_cache = self._cache is not None and not options.force_mock and not options.skip_cache

        cached_entry = self._cache.get(image_key, config.id) if use_cache else None
        if cached_entry is not None:
            vision_data = cached_entry.vision_data
            score = cached_entry.score
        else:
            analyzer = self._mock_analyzer if options.force_mock else self._analyzer
            vision_data = analyzer.analyze_image(image)
            score = calculate_score(vision_data, config)
            if self._cache is not None and not options.force_mock and not self._dev_mode:
                self._cache.put(image_key, config.id, score, vision_data)

        elapsed_ms = (time.perf_counter() - started) * 1000
        cache_status = None
        if cached_entry is not None:
            now = self._clock()
            cache_status = CacheProvenance(
                from_cache=True,
                cache_date=now,
                cache_key=f"{image_key}:{config.id}",
                expires_at=now + CACHE_DISPLAY_TTL,
            )

        self._telemetry.log_success(
            ScoreEvent(
                image_name=image.filename,
                image_size=image.size,
                response_time_ms=elapsed_ms,
                model_name=config.model or config.id,
                project_id=options.project_id,
                user_id=options.user_id,
                is_mock=options.force_mock,
                cache_status=CacheStatus.hit if cached_entry is not None else CacheStatus.miss,
            )
        )
        return ModelComparisonResult(
            model_id=config.id,
            model_name=config.name,
            score=score,
            vision_data=vision_data,
            weights=config.weights,
            version=config.version,
            execution_time_ms=elapsed_ms,
            cached=cached_entry is not None,
            cache_status=cache_status,
        )

    def _failed_result(
        self,
        image: ImageFile,
        image_key: str,
        config: ScoringConfig,
        options: CompareOptions,
        err: BaseException,
        elapsed_ms: float,
    ) -> ModelComparisonResult:
        message = str(err) or type(err).__name__
        _log.error("Error scoring %s with model %s: %s", image.filename, config.name, message)
        self._telemetry.log_error(
            ScoringErrorEvent(
                error=message,
                image_id=options.image_id or image_key,
                model_id=config.id,
                context={
                    "filename": image.filename,
                    "size": image.size,
                    "compare_mode": options.compare_mode,
                    "error_type": type(err).__name__,
                },
            )
        )
        self._telemetry.log_failure(
            ScoreEvent(
                image_name=image.filename,
                image_size=image.size,
                response_time_ms=elapsed_ms,
                model_name=config.model or config.id,
                project_id=options.project_id,
                user_id=options.user_id,
                is_mock=options.force_mock,
                error_message=message,
            )
        )
        return ModelComparisonResult(
            model_id=config.id,
            model_name=config.name,
            score=0,
            vision_data=VisionData.empty(error=message),
            weights=config.weights,
            version=config.version,
            execution_time_ms=0,
            cached=False,
            error=message,
        )

    def _run_isolated(
        self,
        image: ImageFile,
        image_key: str,
        config: ScoringConfig,
        options: CompareOptions,
    ) -> ModelComparisonResult:
        started = time.perf_counter()
        try:
            return self._score_one(image, image_key, config, options)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            return self._failed_result(image, image_key, config, options, e, elapsed_ms)

    def compare(
        self,
        image: ImageFile,
        image_key: str,
        configs: Sequence[ScoringConfig],
        options: CompareOptions | None = None,
    ) -> list[ModelComparisonResult]:
        """
        Score image under every config. Returns exactly len(configs) results in input order.
        Per-config failures become score-0 results with error set.
        """
        options = options or CompareOptions()
        if not configs:
            return []
        if len(configs) == 1 or self._max_workers == 1:
            return [self._run_isolated(image, image_key, c, options) for c in configs]

        by_index: dict[int, ModelComparisonResult] = {}
        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(configs)),
            thread_name_prefix="compare",
        ) as executor:
            futures = {
                executor.submit(self._run_isolated, image, image_key, config, options): idx
                for idx, config in enumerate(configs)
            }
            for future in as_completed(futures):
                by_index[futures[future]] = future.result()
        return [by_index[idx] for idx in range(len(configs))]
