"""Application configuration (Pydantic v2). Load from scoutscore.yml with optional env override."""

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, field_validator


DEFAULT_DATABASE_URL = "postgresql+psycopg2://localhost/scoutscore"
DEFAULT_CONFIG_ENV_VAR = "SCOUTSCORE_CONFIG"
DEFAULT_CONFIG_FILENAME = "scoutscore.yml"
VISION_API_KEY_ENV = "SCOUTSCORE_VISION_API_KEY"
DEV_MODE_ENV = "SCOUTSCORE_DEV_MODE"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class Settings(BaseModel):
    """
    Scoring service config loaded from YAML.

    When loading the default config, DATABASE_URL, SCOUTSCORE_VISION_API_KEY and
    SCOUTSCORE_DEV_MODE override the file (but not when an explicit config_path is given).
    """

    model_config = {"extra": "ignore"}

    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    forensics_dir: str = "logs/forensics"

    vision_analyzer: str = "mock"
    vision_api_key: str | None = None
    vision_endpoint: str | None = None
    vision_timeout_seconds: float = 20.0
    vision_max_retries: int = 2

    # Dev mode scores with fresh analysis but never writes the cache.
    dev_mode: bool = False
    pipeline_timeout_seconds: float = 30.0
    max_concurrency: int = 4
    image_key_strategy: str = "sha256"
    telemetry_background: bool = True

    @field_validator("vision_api_key", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> str | None:
        if v is None or str(v).strip() == "":
            return None
        return str(v).strip()

    @field_validator("max_concurrency")
    @classmethod
    def at_least_one_worker(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrency must be >= 1")
        return v

    @field_validator("pipeline_timeout_seconds")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("pipeline_timeout_seconds must be > 0")
        return v

    @field_validator("image_key_strategy")
    @classmethod
    def known_strategy(cls, v: str) -> str:
        if v not in ("sha256", "legacy", "phash"):
            raise ValueError(f"Unknown image_key_strategy: {v}")
        return v


_config: Settings | None = None


class ConfigLoader:
    """
    Helper responsible for loading Settings from YAML and environment.

    - load_from_yaml(path, apply_env_override): read a YAML file and optionally apply env overrides.
    - load_default(): resolve the default config path from SCOUTSCORE_CONFIG / scoutscore.yml and
      apply environment overrides when present.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _apply_env(self, data: dict[str, Any]) -> dict[str, Any]:
        if self._env.get("DATABASE_URL"):
            data["database_url"] = self._env["DATABASE_URL"]
        if self._env.get(VISION_API_KEY_ENV):
            data["vision_api_key"] = self._env[VISION_API_KEY_ENV]
        if self._env.get(DEV_MODE_ENV):
            data["dev_mode"] = self._env[DEV_MODE_ENV].strip().lower() in _TRUTHY
        return data

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            data = {}
        if apply_env_override:
            data = self._apply_env(data)
        return Settings.model_validate(data)

    def load_default(self) -> Settings:
        """
        Load the default Settings, using SCOUTSCORE_CONFIG or scoutscore.yml.

        Environment values win over the YAML file so deployments can keep secrets and
        connection strings out of the config file.
        """
        path_str = self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME
        path = Path(path_str)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return Settings.model_validate(self._apply_env({}))


_loader = ConfigLoader()


def get_config(config_path: str | Path | None = None) -> Settings:
    """
    Return singleton config.

    - If config_path is given, load from it (without env overrides) and update the cache.
    - Otherwise, return the cached config if available, or load via ConfigLoader.load_default().
    """
    global _config
    if config_path is not None:
        _config = _loader.load_from_yaml(Path(config_path), apply_env_override=False)
        return _config
    if _config is not None:
        return _config
    _config = ConfigLoader().load_default()
    return _config


def reset_config() -> None:
    """Clear cached config (for tests)."""
    global _config
    _config = None
