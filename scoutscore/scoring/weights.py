"""Scoring weight profiles. Fixed-shape records, validated on load."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ScoreWeights(BaseModel):
    """
    Per-item multipliers plus floor and ceiling for the opportunity score.

    Invariants: all multipliers finite and >= 0, and max_score >= base_score >= 0.
    Unknown keys are rejected so a misspelt weight never silently scores as zero.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True, allow_inf_nan=False)

    labels: float = Field(default=1.0, ge=0)
    objects: float = Field(default=1.0, ge=0)
    landmarks: float = Field(default=1.0, ge=0)
    colors: float = Field(default=1.0, ge=0)
    base_score: float = Field(default=10.0, ge=0, alias="baseScore")
    max_score: float = Field(default=100.0, ge=0, alias="maxScore")

    @model_validator(mode="after")
    def check_bounds(self) -> "ScoreWeights":
        if self.max_score < self.base_score:
            raise ValueError(
                f"max_score ({self.max_score}) must be >= base_score ({self.base_score})"
            )
        return self

    def to_wire(self) -> dict[str, float]:
        return self.model_dump(by_alias=True)


class ScoringConfig(BaseModel):
    """Named, versioned weight profile used to turn VisionData into a score."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str = ""
    model: str = "default"
    version: str = "1.0"
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    prompt_template: str = Field(default="", alias="promptTemplate")
    is_active: bool = Field(default=False, alias="isActive")

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("scoring config id must not be empty")
        return v.strip()

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name") and data.get("id"):
            data = {**data, "name": str(data["id"]).strip()}
        return data

    @classmethod
    def from_row(cls, data: dict[str, Any]) -> "ScoringConfig":
        """Validate a loose mapping (e.g. a DB row or API payload) into a config."""
        return cls.model_validate(data)


DEFAULT_SCORING_CONFIG = ScoringConfig(
    id="default",
    name="Default Model",
    model="default",
    version="1.0",
    weights=ScoreWeights(
        labels=1, objects=1, landmarks=1, colors=1, base_score=10, max_score=100
    ),
    prompt_template="",
    is_active=True,
)
