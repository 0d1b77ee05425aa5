"""Scoring core: weights, score calculation, image keys, comparison engine and pipeline."""

from scoutscore.scoring.weights import DEFAULT_SCORING_CONFIG, ScoreWeights, ScoringConfig
from scoutscore.scoring.calculator import calculate_score

__all__ = [
    "DEFAULT_SCORING_CONFIG",
    "ScoreWeights",
    "ScoringConfig",
    "calculate_score",
]
