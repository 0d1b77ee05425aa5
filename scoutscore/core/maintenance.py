"""Maintenance service: prune old cache rows, prune telemetry, cleanup stale forensics dumps."""

import logging
import time
from pathlib import Path

from scoutscore.repository.score_cache_repo import ScoreCacheRepository
from scoutscore.repository.telemetry_repo import TelemetryRepository

_log = logging.getLogger(__name__)

DEFAULT_CACHE_MAX_AGE_HOURS = 24 * 30
DEFAULT_TELEMETRY_MAX_AGE_DAYS = 90
MAX_FORENSICS_AGE_SECONDS = 14 * 24 * 3600  # 14 days


class MaintenanceService:
    """
    Central service for janitor tasks.

    The score cache has no TTL of its own: entries live until cleared or pruned here.
    """

    def __init__(
        self,
        cache_repo: ScoreCacheRepository,
        telemetry_repo: TelemetryRepository,
        forensics_dir: Path | str | None = None,
    ) -> None:
        self._cache_repo = cache_repo
        self._telemetry_repo = telemetry_repo
        self._forensics_dir = Path(forensics_dir) if forensics_dir is not None else None

    def run_all(self) -> dict[str, int]:
        """Execute all maintenance tasks in order with default ages. Returns counts per task."""
        return {
            "cache": self.prune_cache(),
            "telemetry": self.prune_telemetry(),
            "forensics": self.cleanup_forensics(),
        }

    def prune_cache(self, max_age_hours: int = DEFAULT_CACHE_MAX_AGE_HOURS) -> int:
        """Delete cache entries older than max_age_hours. Returns count deleted."""
        deleted = self._cache_repo.prune_older_than(max_age_hours)
        _log.info("Pruned %d cache entries older than %dh", deleted, max_age_hours)
        return deleted

    def prune_telemetry(self, max_age_days: int = DEFAULT_TELEMETRY_MAX_AGE_DAYS) -> int:
        """Delete scoring/cache/error log rows older than max_age_days. Returns count deleted."""
        deleted = self._telemetry_repo.prune_older_than(max_age_days)
        _log.info("Pruned %d telemetry rows older than %dd", deleted, max_age_days)
        return deleted

    def cleanup_forensics(self, max_age_seconds: int = MAX_FORENSICS_AGE_SECONDS) -> int:
        """Delete flight-log dumps older than max_age_seconds. Returns count deleted."""
        if self._forensics_dir is None or not self._forensics_dir.is_dir():
            return 0
        cutoff = time.time() - max_age_seconds
        deleted = 0
        try:
            for entry in self._forensics_dir.glob("*.log"):
                if entry.is_symlink() or not entry.is_file():
                    continue
                try:
                    if entry.stat().st_mtime < cutoff:
                        entry.unlink()
                        deleted += 1
                except (PermissionError, OSError) as e:
                    _log.warning("Could not delete %s: %s", entry, e)
        except (PermissionError, OSError) as e:
            _log.warning("Error during forensics cleanup: %s", e)
        return deleted
