"""Typer admin CLI: score images, manage scoring configs, cache and stats."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from scoutscore.core.config import get_config
from scoutscore.core.db import get_session_factory
from scoutscore.core.logging import setup_logging
from scoutscore.core.maintenance import DEFAULT_CACHE_MAX_AGE_HOURS, DEFAULT_TELEMETRY_MAX_AGE_DAYS, MaintenanceService
from scoutscore.core.telemetry import RepositoryTelemetry
from scoutscore.repository.score_cache_repo import ScoreCacheRepository
from scoutscore.repository.scoring_config_repo import ScoringConfigRepository
from scoutscore.repository.telemetry_repo import TelemetryRepository
from scoutscore.scoring.errors import InvalidScoringInputError, ScoringTimeoutError
from scoutscore.scoring.image_key import ImageFile
from scoutscore.scoring.pipeline import ScoringOptions, build_pipeline
from scoutscore.scoring.weights import ScoreWeights, ScoringConfig

app = typer.Typer(no_args_is_help=True)
config_app = typer.Typer(help="List, add and activate scoring configs.")
app.add_typer(config_app, name="config")
cache_app = typer.Typer(help="Clear or prune the score cache.")
app.add_typer(cache_app, name="cache")


def _telemetry(session_factory) -> RepositoryTelemetry:
    # CLI runs are short-lived; write telemetry inline so nothing is lost on exit.
    return RepositoryTelemetry(TelemetryRepository(session_factory), background=False)


@app.command("score")
def score(
    file: Path = typer.Argument(..., help="Image file to score"),
    model: list[str] = typer.Option([], "--model", "-m", help="Scoring config id; repeat to compare"),
    mock: bool = typer.Option(False, "--mock", help="Use the mock vision analyzer and bypass the cache"),
    skip_cache: bool = typer.Option(False, "--skip-cache", help="Always run fresh analysis"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Score FILE under the active config, or under each --model config side by side."""
    if not file.is_file():
        typer.secho(f"File not found: {file}", fg=typer.colors.RED)
        raise typer.Exit(1)
    if not as_json:
        setup_logging()
    session_factory = get_session_factory()
    telemetry = _telemetry(session_factory)
    config_repo = ScoringConfigRepository(session_factory)
    pipeline = build_pipeline(
        get_config(),
        cache=ScoreCacheRepository(session_factory, telemetry),
        config_repo=config_repo,
        telemetry=telemetry,
    )

    options = ScoringOptions(force_mock=mock, skip_cache=skip_cache)
    if len(model) > 1:
        configs = config_repo.get_by_ids(model)
        missing = [m for m in model if m not in {c.id for c in configs}]
        if missing:
            typer.secho(f"Unknown scoring config(s): {', '.join(missing)}", fg=typer.colors.RED)
            raise typer.Exit(1)
        options.compare_models = True
        options.models_to_compare = configs
    elif model:
        config = config_repo.get(model[0])
        if config is None:
            typer.secho(f"Unknown scoring config: {model[0]}", fg=typer.colors.RED)
            raise typer.Exit(1)
        options.scoring_config = config

    try:
        results = pipeline.score_image(ImageFile.from_path(file), options)
    except (InvalidScoringInputError, ScoringTimeoutError) as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps([r.to_wire() for r in results], indent=2))
        return
    table = Table(title=file.name)
    table.add_column("Model")
    table.add_column("Score", justify="right")
    table.add_column("Cached")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Error")
    for r in results:
        table.add_row(
            f"{r.model_name} ({r.model_id})",
            str(int(r.score)),
            "yes" if r.cached else "",
            f"{r.execution_time_ms:.0f}",
            r.error or "",
        )
    Console().print(table)


@config_app.command("list")
def config_list() -> None:
    """List scoring configs (Id | Name | Model | Version | Active | Weights)."""
    configs = ScoringConfigRepository(get_session_factory()).list_all()
    if not configs:
        typer.echo("No scoring configs. The built-in default is used.")
        return
    table = Table(title=None)
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Version")
    table.add_column("Active")
    table.add_column("Weights")
    for c in configs:
        w = c.weights
        table.add_row(
            c.id,
            c.name,
            c.model,
            c.version,
            "*" if c.is_active else "",
            f"L{w.labels:g} O{w.objects:g} M{w.landmarks:g} C{w.colors:g} "
            f"base {w.base_score:g} max {w.max_score:g}",
        )
    Console().print(table)


@config_app.command("add")
def config_add(
    config_id: str = typer.Argument(..., help="Unique config id"),
    name: str = typer.Option("", "--name", help="Display name (defaults to id)"),
    model: str = typer.Option("default", "--model", help="Vision model label"),
    version: str = typer.Option("1.0", "--version"),
    labels: float = typer.Option(1.0, "--labels"),
    objects: float = typer.Option(1.0, "--objects"),
    landmarks: float = typer.Option(1.0, "--landmarks"),
    colors: float = typer.Option(1.0, "--colors"),
    base_score: float = typer.Option(10.0, "--base-score"),
    max_score: float = typer.Option(100.0, "--max-score"),
) -> None:
    """Add or replace a scoring config. It starts inactive."""
    try:
        config = ScoringConfig(
            id=config_id,
            name=name or config_id,
            model=model,
            version=version,
            weights=ScoreWeights(
                labels=labels,
                objects=objects,
                landmarks=landmarks,
                colors=colors,
                base_score=base_score,
                max_score=max_score,
            ),
        )
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)
    saved = ScoringConfigRepository(get_session_factory()).add(config)
    typer.echo(f"Saved scoring config '{saved.id}'.")


@config_app.command("activate")
def config_activate(
    config_id: str = typer.Argument(..., help="Config id to make active"),
) -> None:
    """Make CONFIG_ID the single active scoring config."""
    try:
        ScoringConfigRepository(get_session_factory()).activate(config_id)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.echo(f"Active scoring config is now '{config_id}'.")


@cache_app.command("clear")
def cache_clear(
    image_key: str = typer.Option(None, "--image-key", help="Only clear entries for this image key"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation"),
) -> None:
    """Clear the whole score cache, or one image's entries."""
    session_factory = get_session_factory()
    repo = ScoreCacheRepository(session_factory, _telemetry(session_factory))
    if image_key:
        ok = repo.clear_one(image_key)
    else:
        if not force:
            typer.confirm("Delete every cached score?", abort=True)
        ok = repo.clear_all()
    if not ok:
        typer.secho("Failed to clear score cache.", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.echo("Score cache cleared.")


@cache_app.command("prune")
def cache_prune(
    max_age_hours: int = typer.Option(DEFAULT_CACHE_MAX_AGE_HOURS, "--max-age-hours"),
    telemetry_days: int = typer.Option(DEFAULT_TELEMETRY_MAX_AGE_DAYS, "--telemetry-days"),
) -> None:
    """Delete cache entries and telemetry rows older than the given ages, plus old forensics dumps."""
    session_factory = get_session_factory()
    telemetry_repo = TelemetryRepository(session_factory)
    service = MaintenanceService(
        ScoreCacheRepository(session_factory, RepositoryTelemetry(telemetry_repo, background=False)),
        telemetry_repo,
        forensics_dir=get_config().forensics_dir,
    )
    cache_n = service.prune_cache(max_age_hours)
    log_n = service.prune_telemetry(telemetry_days)
    dump_n = service.cleanup_forensics()
    typer.echo(f"Pruned {cache_n} cache entries, {log_n} telemetry rows, {dump_n} forensics dumps.")


@app.command("stats")
def stats() -> None:
    """Show scoring, cache and error statistics."""
    session_factory = get_session_factory()
    telemetry_repo = TelemetryRepository(session_factory)
    scoring = telemetry_repo.get_scoring_stats()
    table = Table(title="Scoring stats")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total scores", str(int(scoring["total_scores"])))
    table.add_row("Success rate", f"{scoring['success_rate']:.1f}%")
    table.add_row("Avg response time", f"{scoring['avg_response_time']:.0f} ms")
    table.add_row("Mock results", f"{scoring['mock_percentage']:.1f}%")
    table.add_row("Cache hit rate", f"{telemetry_repo.get_cache_hit_rate() * 100:.1f}%")
    console = Console()
    console.print(table)

    errors = telemetry_repo.get_error_counts_by_model()
    if errors:
        err_table = Table(title="Errors by model")
        err_table.add_column("Model")
        err_table.add_column("Errors", justify="right")
        for model_id, n in errors:
            err_table.add_row(model_id, str(n))
        console.print(err_table)


if __name__ == "__main__":
    app()
