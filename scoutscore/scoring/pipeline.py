"""Scoring entry points: score_image (multi- or single-model) and calculate_score.

score_image validates input, resolves which configs to run, and races the comparison
run against the global timeout. On expiry the slower branch is discarded, not
cancelled: worker threads finish in the background and their results are dropped.
Only InvalidScoringInputError and ScoringTimeoutError reach the caller.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Sequence

from pydantic import ValidationError

from scoutscore.ai.factory import get_vision_analyzer
from scoutscore.ai.vision_base import BaseVisionAnalyzer
from scoutscore.core.config import Settings
from scoutscore.core.logging import get_flight_logger
from scoutscore.core.telemetry import InMemoryTelemetry, ScoringTelemetry
from scoutscore.repository.score_cache_repo import ScoreCacheRepository
from scoutscore.repository.scoring_config_repo import ScoringConfigRepository
from scoutscore.scoring.calculator import calculate_score
from scoutscore.scoring.comparison import CompareOptions, ComparisonEngine, ModelComparisonResult
from scoutscore.scoring.errors import InvalidScoringInputError, ScoringTimeoutError
from scoutscore.scoring.image_key import ImageFile, compute_image_key
from scoutscore.scoring.weights import DEFAULT_SCORING_CONFIG, ScoringConfig

_log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

__all__ = [
    "AnalysisReport",
    "ScoringOptions",
    "ScoringPipeline",
    "build_pipeline",
    "calculate_score",
]


@dataclass
class ScoringOptions:
    """Options accepted by ScoringPipeline.score_image."""

    project_id: str | None = None
    user_id: str | None = None
    force_mock: bool = False
    compare_models: bool = False
    models_to_compare: Sequence[ScoringConfig | dict] | None = None
    skip_cache: bool = False
    scoring_config: ScoringConfig | dict | None = None
    image_id: str | None = None


@dataclass
class AnalysisReport:
    """Outer-boundary result: never raises, failures are reported with zeroed scores."""

    success: bool
    results: list[ModelComparisonResult] = field(default_factory=list)
    overall_score: float = 0
    processing_time_ms: float = 0
    image_key: str | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "overallScore": self.overall_score,
            "processingTimeMs": self.processing_time_ms,
            "imageKey": self.image_key,
            "results": [r.to_wire() for r in self.results],
        }


def _coerce_config(raw: ScoringConfig | dict) -> ScoringConfig:
    if isinstance(raw, ScoringConfig):
        return raw
    if isinstance(raw, dict):
        try:
            return ScoringConfig.model_validate(raw)
        except ValidationError as e:
            raise InvalidScoringInputError(f"Malformed scoring config: {e}") from e
    raise InvalidScoringInputError(f"Malformed scoring config: expected mapping, got {type(raw).__name__}")


class ScoringPipeline:
    """
    Public facade over the comparison engine.

    config_repo is optional; without it single-model runs fall back to
    DEFAULT_SCORING_CONFIG when no explicit scoring_config is given.
    """

    def __init__(
        self,
        engine: ComparisonEngine,
        *,
        config_repo: ScoringConfigRepository | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        image_key_strategy: str = "sha256",
    ) -> None:
        self._engine = engine
        self._config_repo = config_repo
        self._timeout = timeout_seconds
        self._key_strategy = image_key_strategy

    def _resolve_configs(self, options: ScoringOptions) -> tuple[list[ScoringConfig], bool]:
        if options.compare_models:
            if not options.models_to_compare:
                raise InvalidScoringInputError("compare_models is set but models_to_compare is empty")
            configs = [_coerce_config(c) for c in options.models_to_compare]
            ids = [c.id for c in configs]
            if len(set(ids)) != len(ids):
                raise InvalidScoringInputError(f"Duplicate scoring config ids: {ids}")
            return configs, True
        if options.scoring_config is not None:
            return [_coerce_config(options.scoring_config)], False
        if self._config_repo is not None:
            return [self._config_repo.get_active()], False
        return [DEFAULT_SCORING_CONFIG], False

    def image_key(self, image: ImageFile) -> str:
        return compute_image_key(image, self._key_strategy)

    def score_image(
        self,
        image: ImageFile | None,
        options: ScoringOptions | None = None,
        *,
        image_key: str | None = None,
    ) -> list[ModelComparisonResult]:
        """
        Score image under one config (single-model mode) or several (compare_models).
        Always returns a list; length 1 in single-model mode.

        Pass image_key when the caller already derived it, so the image is not hashed
        (or decoded, under phash) a second time.

        Raises InvalidScoringInputError for a missing/empty/undecodable image or
        malformed configs, ScoringTimeoutError when the run exceeds the global timeout.
        """
        if image is None:
            raise InvalidScoringInputError("No file provided for scoring")
        if not image.data:
            raise InvalidScoringInputError(f"Image {image.filename!r} is empty")
        options = options or ScoringOptions()
        configs, compare_mode = self._resolve_configs(options)
        if image_key is None:
            image_key = self.image_key(image)
        compare_opts = CompareOptions(
            force_mock=options.force_mock,
            skip_cache=options.skip_cache,
            project_id=options.project_id,
            user_id=options.user_id,
            image_id=options.image_id,
            compare_mode=compare_mode,
        )

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scoring-run")
        try:
            future = executor.submit(self._engine.compare, image, image_key, configs, compare_opts)
            try:
                return future.result(timeout=self._timeout)
            except FutureTimeoutError:
                _log.error(
                    "Scoring %s (%s) timed out after %ss", image.filename, image_key, self._timeout
                )
                raise ScoringTimeoutError(self._timeout) from None
        finally:
            executor.shutdown(wait=False)

    def analyze(self, image: ImageFile | None, options: ScoringOptions | None = None) -> AnalysisReport:
        """
        Outer pipeline boundary. Never raises for invalid input or timeouts: returns a
        report with success=False, zeroed scores and the error message. On timeout the
        in-memory flight log is dumped for forensics.
        """
        started = time.perf_counter()
        image_key: str | None = None
        try:
            if image is not None and image.data:
                image_key = self.image_key(image)
            results = self.score_image(image, options, image_key=image_key)
        except ScoringTimeoutError as e:
            flight = get_flight_logger()
            if flight is not None:
                try:
                    path = flight.dump("scoring_timeout", image_key)
                    _log.warning("Flight log written to %s", path)
                except OSError:
                    _log.warning("Could not write flight log", exc_info=True)
            return AnalysisReport(
                success=False,
                error=str(e),
                processing_time_ms=(time.perf_counter() - started) * 1000,
                image_key=image_key,
            )
        except InvalidScoringInputError as e:
            return AnalysisReport(
                success=False,
                error=str(e),
                processing_time_ms=(time.perf_counter() - started) * 1000,
                image_key=image_key,
            )
        scored = [r for r in results if r.error is None]
        overall = round(sum(r.score for r in scored) / len(scored)) if scored else 0
        return AnalysisReport(
            success=bool(scored),
            results=results,
            overall_score=overall,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            image_key=image_key,
            error=None if scored else "All scoring models failed",
        )


def build_pipeline(
    settings: Settings,
    *,
    cache: ScoreCacheRepository | None = None,
    config_repo: ScoringConfigRepository | None = None,
    telemetry: ScoringTelemetry | None = None,
    analyzer: BaseVisionAnalyzer | None = None,
) -> ScoringPipeline:
    """Wire a ScoringPipeline from settings. Without a cache, nothing is persisted."""
    engine = ComparisonEngine(
        analyzer or get_vision_analyzer(settings.vision_analyzer, settings),
        cache,
        telemetry or InMemoryTelemetry(),
        max_workers=settings.max_concurrency,
        dev_mode=settings.dev_mode,
    )
    return ScoringPipeline(
        engine,
        config_repo=config_repo,
        timeout_seconds=settings.pipeline_timeout_seconds,
        image_key_strategy=settings.image_key_strategy,
    )
