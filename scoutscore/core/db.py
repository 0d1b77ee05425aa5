"""Lazy engine/session factory built from config database_url."""

from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from scoutscore.core.config import get_config

_engine = None
_session_factory = None


def _reset_session_factory_for_tests() -> None:
    """Clear cached engine/session factory (for tests that switch DATABASE_URL)."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None


def get_session_factory() -> Callable[[], Session]:
    """Lazy session factory from config database_url."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_engine(get_config().database_url, pool_pre_ping=True)
        _session_factory = sessionmaker(
            _engine, autocommit=False, autoflush=False, expire_on_commit=False
        )
    return _session_factory
