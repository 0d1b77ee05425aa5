"""Opportunity score calculation and content heuristics over VisionData.

calculate_score is pure when vision data is present: no I/O and no randomness, so
comparison runs are reproducible for equal inputs. Only the no-data fallback draws
a random number.
"""

import math
import random
from dataclasses import dataclass, field

from scoutscore.ai.schema import UNSAFE_LIKELIHOODS, VisionData
from scoutscore.scoring.weights import ScoreWeights, ScoringConfig

LABEL_SCORE_CAP = 25
OBJECT_SCORE_CAP = 20
COLOR_SCORE_CAP = 15
FALLBACK_SPREAD = 45


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _weights_of(config: ScoringConfig | ScoreWeights) -> ScoreWeights:
    return config.weights if isinstance(config, ScoringConfig) else config


def calculate_score(
    vision_data: VisionData | None,
    config: ScoringConfig | ScoreWeights,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Map vision data to an integer opportunity score in [0, max_score].

    - No vision data: degraded mode, base_score + a random 0..45 (capped at max_score).
    - Otherwise: base_score + capped label/object/color terms + uncapped landmark term,
      clamped to [0, max_score] and rounded half up.
    """
    w = _weights_of(config)
    ceiling = math.floor(w.max_score)

    if vision_data is None:
        draw = (rng or random).randint(0, FALLBACK_SPREAD)
        return max(0, min(_round_half_up(w.base_score) + draw, ceiling))

    label_score = min(len(vision_data.labels) * w.labels, LABEL_SCORE_CAP)
    object_score = min(len(vision_data.objects) * w.objects, OBJECT_SCORE_CAP)
    landmark_score = len(vision_data.landmarks) * w.landmarks
    color_score = min(len(vision_data.colors) * w.colors, COLOR_SCORE_CAP)

    total = w.base_score + label_score + object_score + landmark_score + color_score
    total = max(0.0, min(total, w.max_score))
    return min(_round_half_up(total), ceiling)


def calculate_content_weights(vision_data: VisionData | None) -> dict[str, float]:
    """Relative strength of descriptive/technical/emotional/location content (0..1)."""
    if vision_data is None:
        return {
            "descriptive": 0.5,
            "technical": 0.5,
            "emotional": 0.5,
            "location_based": 0.5,
        }
    return {
        "descriptive": min(0.9, 0.3 + len(vision_data.labels) * 0.05),
        "technical": min(0.8, 0.2 + len(vision_data.objects) * 0.06),
        "emotional": min(0.85, 0.3 + len(vision_data.colors) * 0.04),
        "location_based": min(0.8, 0.1 + len(vision_data.landmarks) * 0.15),
    }


def determine_primary_content_type(vision_data: VisionData | None) -> str:
    """Content type with the highest weight; ties resolve to the later key."""
    if vision_data is None:
        return "descriptive"
    weights = calculate_content_weights(vision_data)
    primary = "descriptive"
    for name, value in weights.items():
        if value >= weights[primary]:
            primary = name
    return primary


def check_content_safety(vision_data: VisionData | None) -> bool:
    """False if any safe-search rating is LIKELY or VERY_LIKELY. Missing data counts as safe."""
    if vision_data is None:
        return True
    ss = vision_data.safe_search
    return not any(r in UNSAFE_LIKELIHOODS for r in (ss.adult, ss.violence, ss.racy))


@dataclass(frozen=True)
class VisionDataValidation:
    is_valid: bool
    missing_fields: list[str] = field(default_factory=list)
    has_safety_data: bool = False


def validate_vision_data(vision_data: VisionData | None) -> VisionDataValidation:
    """Report which parts of the vision data are missing or carry no information."""
    if vision_data is None:
        return VisionDataValidation(
            is_valid=False, missing_fields=["entire vision_data object"], has_safety_data=False
        )
    missing: list[str] = []
    if vision_data.error is not None:
        missing.append("error")
    ss = vision_data.safe_search
    has_safety = any(str(r.value) != "UNKNOWN" for r in (ss.adult, ss.violence, ss.racy))
    if not has_safety:
        missing.append("safe_search")
    return VisionDataValidation(
        is_valid=not missing, missing_fields=missing, has_safety_data=has_safety
    )
