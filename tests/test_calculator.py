"""Tests for calculate_score and the content heuristics."""

import random

import pytest

from scoutscore.ai.schema import Likelihood, SafeSearch, VisionData
from scoutscore.scoring.calculator import (
    calculate_content_weights,
    calculate_score,
    check_content_safety,
    determine_primary_content_type,
    validate_vision_data,
)
from scoutscore.scoring.weights import DEFAULT_SCORING_CONFIG, ScoreWeights, ScoringConfig

pytestmark = [pytest.mark.fast]


def _vd(labels=0, objects=0, landmarks=0, colors=0) -> VisionData:
    return VisionData(
        labels=[f"label{i}" for i in range(labels)],
        objects=[f"object{i}" for i in range(objects)],
        landmarks=[f"landmark{i}" for i in range(landmarks)],
        colors=[f"rgb({i}, {i}, {i})" for i in range(colors)],
    )


def test_end_to_end_scenario_rounds_21_8_to_22():
    """5 labels, 3 objects, 4 colors with mixed weights gives 10+5+3.6+0+3.2=21.8 -> 22."""
    config = ScoringConfig(
        id="mixed",
        weights=ScoreWeights(labels=1, objects=1.2, landmarks=1.5, colors=0.8, base_score=10, max_score=100),
    )
    assert calculate_score(_vd(labels=5, objects=3, colors=4), config) == 22


def test_score_is_deterministic():
    vd = _vd(labels=7, objects=4, landmarks=1, colors=3)
    scores = {calculate_score(vd, DEFAULT_SCORING_CONFIG) for _ in range(20)}
    assert scores == {10 + 7 + 4 + 1 + 3}


def test_accepts_bare_weights():
    vd = _vd(labels=2)
    assert calculate_score(vd, ScoreWeights()) == calculate_score(vd, DEFAULT_SCORING_CONFIG) == 12


def test_per_item_caps_apply():
    """Labels cap at 25, objects at 20, colors at 15; landmarks are uncapped."""
    weights = ScoreWeights(labels=10, objects=10, landmarks=10, colors=10, base_score=0, max_score=1000)
    assert calculate_score(_vd(labels=9), weights) == 25
    assert calculate_score(_vd(objects=9), weights) == 20
    assert calculate_score(_vd(colors=9), weights) == 15
    assert calculate_score(_vd(landmarks=9), weights) == 90


def test_score_clamped_to_max_score():
    weights = ScoreWeights(labels=5, objects=5, landmarks=20, colors=5, base_score=50, max_score=60)
    assert calculate_score(_vd(labels=10, objects=10, landmarks=5, colors=10), weights) == 60


@pytest.mark.parametrize(
    "weights",
    [
        ScoreWeights(),
        ScoreWeights(labels=0, objects=0, landmarks=0, colors=0, base_score=0, max_score=0),
        ScoreWeights(labels=3.3, objects=0.1, landmarks=7, colors=2.5, base_score=5, max_score=42.5),
    ],
)
def test_score_within_bounds(weights):
    for counts in [(0, 0, 0, 0), (1, 1, 1, 1), (30, 30, 30, 30)]:
        score = calculate_score(_vd(*counts), weights)
        assert isinstance(score, int)
        assert 0 <= score <= weights.max_score


def test_score_monotonic_in_each_count():
    """Adding one item to any list never lowers the score."""
    weights = ScoreWeights(labels=1.7, objects=2.2, landmarks=3.1, colors=0.9)
    base = [3, 2, 1, 2]
    before = calculate_score(_vd(*base), weights)
    for i in range(4):
        bumped = list(base)
        bumped[i] += 1
        assert calculate_score(_vd(*bumped), weights) >= before


WEIGHT_FIELDS = ("labels", "objects", "landmarks", "colors", "base_score", "max_score")


def _random_pair(rng: random.Random) -> tuple[VisionData, ScoreWeights]:
    max_score = round(rng.uniform(0, 200), 2)
    weights = ScoreWeights(
        labels=round(rng.uniform(0, 10), 3),
        objects=round(rng.uniform(0, 10), 3),
        landmarks=round(rng.uniform(0, 10), 3),
        colors=round(rng.uniform(0, 10), 3),
        base_score=round(rng.uniform(0, max_score), 2),
        max_score=max_score,
    )
    counts = [rng.randint(0, 40) for _ in range(4)]
    return _vd(*counts), weights


def _raise_weight(weights: ScoreWeights, name: str, delta: float) -> ScoreWeights:
    raised = getattr(weights, name) + delta
    if name == "base_score":
        raised = min(raised, weights.max_score)
    return weights.model_copy(update={name: raised})


def test_random_pairs_are_deterministic_and_bounded():
    rng = random.Random(20240501)
    for _ in range(1000):
        vd, weights = _random_pair(rng)
        score = calculate_score(vd, weights)
        assert isinstance(score, int)
        assert 0 <= score <= weights.max_score
        assert calculate_score(vd, weights) == score
        assert calculate_score(vd.model_copy(deep=True), ScoringConfig(id="p", weights=weights)) == score


def test_raising_any_weight_never_lowers_the_score():
    rng = random.Random(31337)
    for _ in range(1000):
        vd, weights = _random_pair(rng)
        before = calculate_score(vd, weights)
        for name in WEIGHT_FIELDS:
            raised = _raise_weight(weights, name, round(rng.uniform(0, 5), 3))
            assert calculate_score(vd, raised) >= before, (name, weights, raised)


def test_rounds_half_up():
    weights = ScoreWeights(labels=0.5, objects=0, landmarks=0, colors=0, base_score=10, max_score=100)
    assert calculate_score(_vd(labels=1), weights) == 11  # 10.5
    assert calculate_score(_vd(labels=5), weights) == 13  # 12.5


def test_empty_vision_data_scores_base():
    assert calculate_score(VisionData.empty(error="provider down"), DEFAULT_SCORING_CONFIG) == 10


def test_no_vision_data_falls_back_to_random_range():
    """No vision data is degraded mode: base_score + 0..45, never an error."""
    rng = random.Random(1234)
    scores = [calculate_score(None, DEFAULT_SCORING_CONFIG, rng=rng) for _ in range(500)]
    assert all(10 <= s <= 55 for s in scores)
    assert len(set(scores)) > 1


def test_no_vision_data_fallback_respects_max_score():
    weights = ScoreWeights(base_score=10, max_score=20)
    rng = random.Random(7)
    assert all(10 <= calculate_score(None, weights, rng=rng) <= 20 for _ in range(200))


def test_content_weights_defaults_without_data():
    assert calculate_content_weights(None) == {
        "descriptive": 0.5,
        "technical": 0.5,
        "emotional": 0.5,
        "location_based": 0.5,
    }


def test_content_weights_are_bounded():
    weights = calculate_content_weights(_vd(labels=100, objects=100, landmarks=100, colors=100))
    assert weights == {"descriptive": 0.9, "technical": 0.8, "emotional": 0.85, "location_based": 0.8}


def test_primary_content_type():
    assert determine_primary_content_type(None) == "descriptive"
    assert determine_primary_content_type(_vd(labels=10)) == "descriptive"
    assert determine_primary_content_type(_vd(landmarks=5)) == "location_based"


def test_content_safety():
    assert check_content_safety(None) is True
    assert check_content_safety(_vd(labels=1)) is True
    unsafe = VisionData(safe_search=SafeSearch(adult=Likelihood.VERY_UNLIKELY, violence=Likelihood.LIKELY))
    assert check_content_safety(unsafe) is False


def test_validate_vision_data():
    missing = validate_vision_data(None)
    assert missing.is_valid is False
    assert missing.missing_fields == ["entire vision_data object"]

    no_safety = validate_vision_data(_vd(labels=2))
    assert no_safety.is_valid is False
    assert no_safety.missing_fields == ["safe_search"]
    assert no_safety.has_safety_data is False

    ok = validate_vision_data(VisionData(labels=["a"], safe_search={"adult": "UNLIKELY"}))
    assert ok.is_valid is True
    assert ok.has_safety_data is True
