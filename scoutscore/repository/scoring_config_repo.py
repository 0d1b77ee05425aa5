"""Scoring config repository: weight profiles and the single-active-config invariant."""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from scoutscore.models.entities import ScoringConfigRow
from scoutscore.scoring.weights import DEFAULT_SCORING_CONFIG, ScoringConfig

_log = logging.getLogger(__name__)


def _to_config(row: ScoringConfigRow) -> ScoringConfig:
    return ScoringConfig.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "model": row.model,
            "version": row.version,
            "weights": row.weights or {},
            "prompt_template": row.prompt_template,
            "is_active": row.is_active,
        }
    )


class ScoringConfigRepository:
    """
    CRUD for scoring_configs.

    At most one config is active. activate() deactivates the current one and activates
    the target in a single transaction, then re-checks the invariant before committing;
    the partial unique index on is_active backs this up at the database level.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session_scope(self, write: bool = False) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            if write:
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def add(self, config: ScoringConfig) -> ScoringConfig:
        """Insert or replace a config. Always stored inactive; use activate() to switch."""
        with self._session_scope(write=True) as session:
            row = session.get(ScoringConfigRow, config.id)
            weights = config.weights.model_dump()
            if row is None:
                row = ScoringConfigRow(
                    id=config.id,
                    name=config.name,
                    model=config.model,
                    version=config.version,
                    weights=weights,
                    prompt_template=config.prompt_template,
                    is_active=False,
                )
                session.add(row)
            else:
                row.name = config.name
                row.model = config.model
                row.version = config.version
                row.weights = weights
                row.prompt_template = config.prompt_template
            session.flush()
            return _to_config(row)

    def get(self, config_id: str) -> ScoringConfig | None:
        with self._session_scope() as session:
            row = session.get(ScoringConfigRow, config_id)
            return _to_config(row) if row is not None else None

    def list_all(self) -> list[ScoringConfig]:
        """All configs, newest first. Rows with invalid weights are skipped and logged."""
        with self._session_scope() as session:
            rows = session.execute(
                select(ScoringConfigRow).order_by(
                    ScoringConfigRow.created_at.desc(), ScoringConfigRow.id
                )
            ).scalars().all()
        configs: list[ScoringConfig] = []
        for row in rows:
            try:
                configs.append(_to_config(row))
            except ValidationError as e:
                _log.error("Skipping invalid scoring config %s: %s", row.id, e)
        return configs

    def get_by_ids(self, config_ids: list[str]) -> list[ScoringConfig]:
        """Configs for the given ids, in the order the ids were given. Unknown ids are skipped."""
        if not config_ids:
            return []
        with self._session_scope() as session:
            rows = session.execute(
                select(ScoringConfigRow).where(ScoringConfigRow.id.in_(config_ids))
            ).scalars().all()
        by_id = {row.id: _to_config(row) for row in rows}
        return [by_id[cid] for cid in config_ids if cid in by_id]

    def get_active(self) -> ScoringConfig:
        """The active config, or DEFAULT_SCORING_CONFIG when none is active or it is invalid."""
        with self._session_scope() as session:
            row = session.execute(
                select(ScoringConfigRow).where(ScoringConfigRow.is_active.is_(True))
            ).scalars().first()
        if row is None:
            _log.warning("No active scoring config found, using default")
            return DEFAULT_SCORING_CONFIG
        try:
            return _to_config(row)
        except ValidationError as e:
            _log.error("Active scoring config %s is invalid, using default: %s", row.id, e)
            return DEFAULT_SCORING_CONFIG

    def activate(self, config_id: str) -> ScoringConfig:
        """Make config_id the only active config. Raises ValueError if it does not exist."""
        with self._session_scope(write=True) as session:
            row = session.get(ScoringConfigRow, config_id)
            if row is None:
                raise ValueError(f"Scoring config {config_id!r} does not exist.")
            session.execute(
                update(ScoringConfigRow)
                .where(ScoringConfigRow.is_active.is_(True))
                .values(is_active=False)
            )
            session.execute(
                update(ScoringConfigRow)
                .where(ScoringConfigRow.id == config_id)
                .values(is_active=True)
            )
            active = session.scalar(
                select(func.count()).select_from(ScoringConfigRow).where(
                    ScoringConfigRow.is_active.is_(True)
                )
            )
            if active != 1:
                raise RuntimeError(f"Expected exactly one active scoring config, found {active}")
            session.refresh(row)
            return _to_config(row)

    def remove(self, config_id: str) -> bool:
        """Delete a config. Refuses to delete the active one. Returns False if not found."""
        with self._session_scope(write=True) as session:
            row = session.get(ScoringConfigRow, config_id)
            if row is None:
                return False
            if row.is_active:
                raise ValueError(
                    f"Cannot delete active scoring config {config_id!r}. Activate another config first."
                )
            session.delete(row)
            return True
