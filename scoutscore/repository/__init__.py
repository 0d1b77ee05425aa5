"""Repository layer: database access only. No ORM calls in business logic."""

from scoutscore.repository.score_cache_repo import ScoreCacheEntry, ScoreCacheRepository
from scoutscore.repository.scoring_config_repo import ScoringConfigRepository
from scoutscore.repository.telemetry_repo import TelemetryRepository

__all__ = [
    "ScoreCacheEntry",
    "ScoreCacheRepository",
    "ScoringConfigRepository",
    "TelemetryRepository",
]
