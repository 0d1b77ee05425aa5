"""ComparisonEngine: failure isolation, order preservation, cache reuse and provenance."""

import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from scoutscore.ai.vision_base import BaseVisionAnalyzer, MockVisionAnalyzer
from scoutscore.models.entities import CacheStatus
from scoutscore.scoring import calculator
from scoutscore.scoring.comparison import CACHE_DISPLAY_TTL, CompareOptions, ComparisonEngine
from scoutscore.scoring.errors import VisionProviderError
from scoutscore.scoring.image_key import compute_image_key
from scoutscore.scoring.weights import ScoreWeights, ScoringConfig

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

CONFIGS = [
    ScoringConfig(id="a", name="Alpha"),
    ScoringConfig(id="b", name="Beta", weights=ScoreWeights(labels=2)),
    ScoringConfig(id="c", name="Gamma", weights=ScoreWeights(base_score=20)),
]

_real_calculate = calculator.calculate_score


def _errors_by_model(telemetry):
    return sorted(e.model_id for e in telemetry.events("error"))


def _failing_on(config_id: str):
    def _calc(vision_data, config, **kwargs):
        if config.id == config_id:
            raise RuntimeError(f"weights for {config_id} exploded")
        return _real_calculate(vision_data, config, **kwargs)

    return _calc


def _slow_on(config_id: str, delay: float):
    def _calc(vision_data, config, **kwargs):
        if config.id == config_id:
            time.sleep(delay)
        return _real_calculate(vision_data, config, **kwargs)

    return _calc


@pytest.mark.fast
def test_one_failing_config_does_not_poison_the_others(image, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), None, telemetry, max_workers=3)
    with patch("scoutscore.scoring.comparison.calculate_score", side_effect=_failing_on("b")):
        results = engine.compare(image, "sha256:img", CONFIGS, CompareOptions(image_id="img-1"))

    assert [r.model_id for r in results] == ["a", "b", "c"]
    assert results[0].error is None and results[0].score == 20
    assert results[2].error is None and results[2].score == 30
    failed = results[1]
    assert failed.score == 0
    assert failed.error == "weights for b exploded"
    assert failed.vision_data.error == "weights for b exploded"
    assert failed.cached is False
    assert failed.model_name == "Beta"

    errors = telemetry.events("error")
    assert len(errors) == 1
    assert errors[0].model_id == "b"
    assert errors[0].image_id == "img-1"
    assert errors[0].context["filename"] == image.filename
    assert errors[0].context["size"] == image.size
    assert errors[0].context["compare_mode"] is True
    assert [e.error_message for e in telemetry.events("failure")] == ["weights for b exploded"]
    assert len(telemetry.events("success")) == 2


class _FailsOnSecondCall(MockVisionAnalyzer):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def analyze_image(self, image):
        self.calls += 1
        if self.calls == 2:
            raise VisionProviderError("Vision API error: 503 - unavailable", transient=True)
        return super().analyze_image(image)


@pytest.mark.fast
def test_adapter_failure_on_second_config_is_isolated(image, telemetry):
    analyzer = _FailsOnSecondCall()
    engine = ComparisonEngine(analyzer, None, telemetry, max_workers=1)
    results = engine.compare(image, "sha256:img", CONFIGS)

    assert analyzer.calls == 3
    assert [r.model_id for r in results] == ["a", "b", "c"]
    assert [r.score for r in results] == [20, 0, 30]
    assert results[1].error == "Vision API error: 503 - unavailable"
    assert results[1].vision_data.error == "Vision API error: 503 - unavailable"
    assert results[0].error is None and results[2].error is None
    assert _errors_by_model(telemetry) == ["b"]


@pytest.mark.fast
def test_results_keep_input_order_when_first_config_is_slowest(image, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), None, telemetry, max_workers=3)
    with patch("scoutscore.scoring.comparison.calculate_score", side_effect=_slow_on("a", 0.3)):
        results = engine.compare(image, "sha256:img", CONFIGS)
    assert [r.model_id for r in results] == ["a", "b", "c"]
    assert results[0].execution_time_ms >= 300
    assert all(r.execution_time_ms < 300 for r in results[1:])


@pytest.mark.fast
def test_provider_error_becomes_per_config_failure(image, telemetry):
    analyzer = MagicMock(spec=BaseVisionAnalyzer)
    analyzer.analyze_image.side_effect = VisionProviderError("Vision API error: 500 - boom", transient=True)
    engine = ComparisonEngine(analyzer, None, telemetry, max_workers=2)
    results = engine.compare(image, "sha256:img", CONFIGS[:2])
    assert [r.score for r in results] == [0, 0]
    assert all(r.error == "Vision API error: 500 - boom" for r in results)
    assert _errors_by_model(telemetry) == ["a", "b"]


@pytest.mark.fast
def test_empty_config_list(image, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), None, telemetry)
    assert engine.compare(image, "sha256:img", []) == []


@pytest.mark.slow
def test_second_run_is_served_from_cache_with_provenance(image, cache_repo, telemetry):
    analyzer = MagicMock(wraps=MockVisionAnalyzer())
    engine = ComparisonEngine(analyzer, cache_repo, telemetry, clock=lambda: FIXED_NOW)
    key = compute_image_key(image)

    first = engine.compare(image, key, CONFIGS[:1])[0]
    assert first.cached is False
    assert first.cache_status is None

    second = engine.compare(image, key, CONFIGS[:1])[0]
    assert second.cached is True
    assert second.score == first.score
    assert second.vision_data == first.vision_data
    assert second.cache_status.from_cache is True
    assert second.cache_status.cache_key == f"{key}:a"
    assert second.cache_status.cache_date == FIXED_NOW
    assert second.cache_status.expires_at == FIXED_NOW + CACHE_DISPLAY_TTL
    assert analyzer.analyze_image.call_count == 1

    statuses = [e.cache_status for e in telemetry.events("success")]
    assert statuses == [CacheStatus.miss, CacheStatus.hit]


@pytest.mark.slow
def test_cache_is_per_config(image, cache_repo, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), cache_repo, telemetry, max_workers=1)
    key = compute_image_key(image)
    engine.compare(image, key, CONFIGS[:1])
    results = engine.compare(image, key, CONFIGS[:2])
    assert [r.cached for r in results] == [True, False]
    assert cache_repo.count() == 2


@pytest.mark.slow
def test_force_mock_bypasses_cache_entirely(image, cache_repo, telemetry):
    analyzer = MagicMock(spec=BaseVisionAnalyzer)
    engine = ComparisonEngine(analyzer, cache_repo, telemetry)
    results = engine.compare(image, "sha256:img", CONFIGS[:1], CompareOptions(force_mock=True))
    assert results[0].score == 20
    analyzer.analyze_image.assert_not_called()
    assert cache_repo.count() == 0
    assert telemetry.events("cache_access") == []
    assert telemetry.events("success")[0].is_mock is True


@pytest.mark.slow
def test_skip_cache_reanalyzes_but_still_writes(image, cache_repo, telemetry):
    analyzer = MagicMock(wraps=MockVisionAnalyzer())
    engine = ComparisonEngine(analyzer, cache_repo, telemetry)
    engine.compare(image, "sha256:img", CONFIGS[:1])
    result = engine.compare(image, "sha256:img", CONFIGS[:1], CompareOptions(skip_cache=True))[0]
    assert result.cached is False
    assert analyzer.analyze_image.call_count == 2
    assert cache_repo.count() == 1


@pytest.mark.slow
def test_dev_mode_never_writes_cache(image, cache_repo, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), cache_repo, telemetry, dev_mode=True)
    engine.compare(image, "sha256:img", CONFIGS[:1])
    engine.compare(image, "sha256:img", CONFIGS[:1])
    assert cache_repo.count() == 0
    assert [a["status"] for a in telemetry.events("cache_access")] == [CacheStatus.miss, CacheStatus.miss]


@pytest.mark.slow
def test_parallel_configs_share_the_cache(image, cache_repo, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), cache_repo, telemetry, max_workers=3)
    key = compute_image_key(image)
    first = engine.compare(image, key, CONFIGS)
    second = engine.compare(image, key, CONFIGS)
    assert [r.score for r in first] == [r.score for r in second] == [20, 25, 30]
    assert all(r.cached for r in second)


@pytest.mark.fast
def test_result_wire_shape(image, telemetry):
    engine = ComparisonEngine(MockVisionAnalyzer(), None, telemetry)
    wire = engine.compare(image, "sha256:img", CONFIGS[:1])[0].to_wire()
    assert set(wire) >= {"modelId", "modelName", "score", "visionData", "weights", "version", "executionTimeMs", "cached"}
    assert "safeSearch" in wire["visionData"]
    assert wire["weights"]["baseScore"] == 10
