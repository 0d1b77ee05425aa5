"""SQLModel table/entity definitions. Used by Repository layer only."""

from scoutscore.models.entities import (
    CacheStatus,
    ScoreCacheLogRow,
    ScoreCacheRow,
    ScoringConfigRow,
    ScoringErrorRow,
    ScoringLogRow,
    ScoringStatus,
)

__all__ = [
    "CacheStatus",
    "ScoreCacheLogRow",
    "ScoreCacheRow",
    "ScoringConfigRow",
    "ScoringErrorRow",
    "ScoringLogRow",
    "ScoringStatus",
]
