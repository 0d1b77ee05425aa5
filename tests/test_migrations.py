"""Alembic schema on PostgreSQL (testcontainers). Skipped when Docker is unavailable."""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from scoutscore.repository.scoring_config_repo import ScoringConfigRepository
from scoutscore.scoring.weights import ScoringConfig

pytestmark = [pytest.mark.slow, pytest.mark.postgres]


def test_upgrade_creates_all_tables(pg_session_factory):
    with pg_session_factory() as session:
        tables = set(inspect(session.get_bind()).get_table_names())
    assert {
        "scoring_configs",
        "scoring_cache",
        "scoring_cache_logs",
        "scoring_errors",
        "scoring_logs",
        "alembic_version",
    } <= tables


def test_single_active_config_enforced_by_index(pg_session_factory):
    repo = ScoringConfigRepository(pg_session_factory)
    repo.add(ScoringConfig(id="pg-a"))
    repo.add(ScoringConfig(id="pg-b"))
    repo.activate("pg-a")
    repo.activate("pg-b")
    assert repo.get_active().id == "pg-b"
    with pytest.raises(IntegrityError):
        with pg_session_factory() as session:
            session.execute(text("UPDATE scoring_configs SET is_active = true WHERE id = 'pg-a'"))
            session.commit()
