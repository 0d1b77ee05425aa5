"""Scoring API: score uploads, manage scoring configs, cache and stats."""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, File, Form, HTTPException, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session

from scoutscore.ai.schema import VisionData
from scoutscore.core.config import get_config
from scoutscore.core.db import get_session_factory
from scoutscore.core.logging import setup_logging
from scoutscore.core.telemetry import RepositoryTelemetry
from scoutscore.repository.score_cache_repo import ScoreCacheRepository
from scoutscore.repository.scoring_config_repo import ScoringConfigRepository
from scoutscore.repository.telemetry_repo import TelemetryRepository
from scoutscore.scoring.calculator import calculate_score
from scoutscore.scoring.errors import InvalidScoringInputError, ScoringTimeoutError
from scoutscore.scoring.image_key import ImageFile
from scoutscore.scoring.pipeline import ScoringOptions, ScoringPipeline, build_pipeline
from scoutscore.scoring.weights import ScoringConfig


@lru_cache(maxsize=1)
def _get_session_factory() -> Callable[[], Session]:
    return get_session_factory()


@lru_cache(maxsize=1)
def _get_telemetry_repo() -> TelemetryRepository:
    return TelemetryRepository(_get_session_factory())


@lru_cache(maxsize=1)
def _get_telemetry() -> RepositoryTelemetry:
    return RepositoryTelemetry(_get_telemetry_repo(), background=get_config().telemetry_background)


@lru_cache(maxsize=1)
def _get_cache_repo() -> ScoreCacheRepository:
    return ScoreCacheRepository(_get_session_factory(), _get_telemetry())


@lru_cache(maxsize=1)
def _get_config_repo() -> ScoringConfigRepository:
    return ScoringConfigRepository(_get_session_factory())


@lru_cache(maxsize=1)
def _get_pipeline() -> ScoringPipeline:
    return build_pipeline(
        get_config(),
        cache=_get_cache_repo(),
        config_repo=_get_config_repo(),
        telemetry=_get_telemetry(),
    )


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    yield
    if _get_telemetry.cache_info().currsize:
        _get_telemetry().close()


app = FastAPI(title="ScoutScore", lifespan=_lifespan)


class ScoreOut(BaseModel):
    image_key: str
    results: list[dict[str, Any]]


class CalculateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vision_data: dict[str, Any] | None = Field(default=None, alias="visionData")
    scoring_config: dict[str, Any] | None = Field(default=None, alias="scoringConfig")


class CalculateOut(BaseModel):
    score: int
    model_id: str


class StatsOut(BaseModel):
    total_scores: int
    success_rate: float
    avg_response_time: float
    mock_percentage: float
    cache_hit_rate: float
    cache_entries: int
    errors_by_model: dict[str, int]


def _config_out(config: ScoringConfig) -> dict[str, Any]:
    return config.model_dump(by_alias=True)


@app.post("/api/score", response_model=ScoreOut)
def score_image(
    file: UploadFile | None = File(None),
    project_id: str | None = Form(None),
    user_id: str | None = Form(None),
    image_id: str | None = Form(None),
    force_mock: bool = Form(False),
    skip_cache: bool = Form(False),
    compare_models: bool = Form(False),
    model_ids: list[str] | None = Form(None),
    pipeline: ScoringPipeline = Depends(_get_pipeline),
    config_repo: ScoringConfigRepository = Depends(_get_config_repo),
) -> ScoreOut:
    """Score an uploaded image under the active config, or several configs when compare_models is set."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided for scoring")
    image = ImageFile(
        filename=file.filename or "upload",
        data=file.file.read(),
        content_type=file.content_type or "application/octet-stream",
    )
    models_to_compare = None
    if compare_models:
        model_ids = model_ids or []
        models_to_compare = config_repo.get_by_ids(model_ids)
        missing = [mid for mid in model_ids if mid not in {c.id for c in models_to_compare}]
        if missing:
            raise HTTPException(status_code=404, detail=f"Unknown scoring config(s): {', '.join(missing)}")
    options = ScoringOptions(
        project_id=project_id,
        user_id=user_id,
        image_id=image_id,
        force_mock=force_mock,
        skip_cache=skip_cache,
        compare_models=compare_models,
        models_to_compare=models_to_compare,
    )
    try:
        image_key = pipeline.image_key(image)
        results = pipeline.score_image(image, options, image_key=image_key)
    except InvalidScoringInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScoringTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    return ScoreOut(image_key=image_key, results=[r.to_wire() for r in results])


@app.post("/api/score/calculate", response_model=CalculateOut)
def calculate(
    body: CalculateIn,
    config_repo: ScoringConfigRepository = Depends(_get_config_repo),
) -> CalculateOut:
    """Score already-extracted vision data. Missing scoringConfig uses the active config."""
    try:
        vision_data = VisionData.model_validate(body.vision_data) if body.vision_data is not None else None
        config = (
            ScoringConfig.model_validate(body.scoring_config)
            if body.scoring_config is not None
            else config_repo.get_active()
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CalculateOut(score=calculate_score(vision_data, config), model_id=config.id)


@app.get("/api/configs")
def list_configs(
    config_repo: ScoringConfigRepository = Depends(_get_config_repo),
) -> list[dict[str, Any]]:
    return [_config_out(c) for c in config_repo.list_all()]


@app.get("/api/configs/active")
def active_config(
    config_repo: ScoringConfigRepository = Depends(_get_config_repo),
) -> dict[str, Any]:
    return _config_out(config_repo.get_active())


@app.post("/api/configs", status_code=201)
def add_config(
    body: dict[str, Any],
    config_repo: ScoringConfigRepository = Depends(_get_config_repo),
) -> dict[str, Any]:
    """Create or replace a scoring config. New configs start inactive."""
    try:
        config = ScoringConfig.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _config_out(config_repo.add(config))


@app.post("/api/configs/{config_id}/activate")
def activate_config(
    config_id: str,
    config_repo: ScoringConfigRepository = Depends(_get_config_repo),
) -> dict[str, Any]:
    try:
        return _config_out(config_repo.activate(config_id))
    except ValueError:
        raise HTTPException(status_code=404, detail="Scoring config not found")


@app.delete("/api/cache", status_code=204)
def clear_cache(
    cache_repo: ScoreCacheRepository = Depends(_get_cache_repo),
) -> Response:
    if not cache_repo.clear_all():
        raise HTTPException(status_code=500, detail="Failed to clear score cache")
    return Response(status_code=204)


@app.delete("/api/cache/{image_key:path}", status_code=204)
def clear_cache_entry(
    image_key: str,
    cache_repo: ScoreCacheRepository = Depends(_get_cache_repo),
) -> Response:
    if not cache_repo.clear_one(image_key):
        raise HTTPException(status_code=500, detail="Failed to clear score cache entry")
    return Response(status_code=204)


@app.get("/api/stats", response_model=StatsOut)
def stats(
    telemetry_repo: TelemetryRepository = Depends(_get_telemetry_repo),
    cache_repo: ScoreCacheRepository = Depends(_get_cache_repo),
) -> StatsOut:
    scoring = telemetry_repo.get_scoring_stats()
    return StatsOut(
        total_scores=int(scoring["total_scores"]),
        success_rate=scoring["success_rate"],
        avg_response_time=scoring["avg_response_time"],
        mock_percentage=scoring["mock_percentage"],
        cache_hit_rate=telemetry_repo.get_cache_hit_rate(),
        cache_entries=cache_repo.count(),
        errors_by_model=dict(telemetry_repo.get_error_counts_by_model()),
    )
