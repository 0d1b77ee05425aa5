"""Pytest fixtures. File-backed SQLite for repository tests; PostgreSQL via testcontainers when Docker is available."""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import scoutscore.models.entities  # noqa: F401 - register tables with metadata
from scoutscore.core.db import _reset_session_factory_for_tests
from scoutscore.core.telemetry import InMemoryTelemetry
from scoutscore.repository.score_cache_repo import ScoreCacheRepository
from scoutscore.repository.scoring_config_repo import ScoringConfigRepository
from scoutscore.repository.telemetry_repo import TelemetryRepository
from scoutscore.scoring.image_key import ImageFile


def clear_app_db_caches() -> None:
    """
    Clear the app's config and DB-related caches. Call this in any fixture that
    sets DATABASE_URL so the app uses the new URL instead of a previously cached
    connection.
    """
    from scoutscore.api.main import (
        _get_cache_repo,
        _get_config_repo,
        _get_pipeline,
        _get_session_factory,
        _get_telemetry,
        _get_telemetry_repo,
    )
    from scoutscore.core import config as config_module

    config_module._config = None  # type: ignore[attr-defined]
    _get_session_factory.cache_clear()
    _get_telemetry_repo.cache_clear()
    _get_telemetry.cache_clear()
    _get_cache_repo.cache_clear()
    _get_config_repo.cache_clear()
    _get_pipeline.cache_clear()
    _reset_session_factory_for_tests()


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'scoutscore.db'}"


@pytest.fixture
def engine(sqlite_url):
    """Function-scoped SQLite engine with all tables created. Safe to use from worker threads."""
    eng = create_engine(sqlite_url, connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def telemetry():
    return InMemoryTelemetry()


@pytest.fixture
def cache_repo(session_factory, telemetry):
    return ScoreCacheRepository(session_factory, telemetry)


@pytest.fixture
def config_repo(session_factory):
    return ScoringConfigRepository(session_factory)


@pytest.fixture
def telemetry_repo(session_factory):
    return TelemetryRepository(session_factory)


@pytest.fixture
def app_database(sqlite_url, engine):
    """Point DATABASE_URL at the test SQLite file so the app's lazy factories use it."""
    prev = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = sqlite_url
    clear_app_db_caches()
    try:
        yield sqlite_url
    finally:
        if prev is not None:
            os.environ["DATABASE_URL"] = prev
        else:
            os.environ.pop("DATABASE_URL", None)
        clear_app_db_caches()


@pytest.fixture
def image():
    return ImageFile(filename="beach.jpg", data=b"\xff\xd8\xff\xe0" + b"sand and sea" * 64, content_type="image/jpeg")


@pytest.fixture(scope="module")
def postgres_container():
    """Module-scoped PostgreSQL 16 container (testcontainers). Skips when Docker is unavailable."""
    from testcontainers.postgres import PostgresContainer

    try:
        container = PostgresContainer("postgres:16-alpine")
        container.start()
    except Exception as e:
        pytest.skip(f"PostgreSQL container unavailable: {e}")
    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="module")
def pg_session_factory(postgres_container):
    """Session factory bound to the Postgres container with the alembic schema applied."""
    from alembic import command
    from alembic.config import Config

    url = postgres_container.get_connection_url()
    prev = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = url
    clear_app_db_caches()
    try:
        alembic_cfg = Config("alembic.ini")
        alembic_cfg.set_main_option("script_location", "migrations")
        command.upgrade(alembic_cfg, "head")
        eng = create_engine(url, pool_pre_ping=True)
        yield sessionmaker(eng, autocommit=False, autoflush=False, expire_on_commit=False)
        eng.dispose()
    finally:
        if prev is not None:
            os.environ["DATABASE_URL"] = prev
        else:
            os.environ.pop("DATABASE_URL", None)
        clear_app_db_caches()
