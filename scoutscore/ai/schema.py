"""Pydantic data contracts for vision providers and their analysis output."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ModelCard(BaseModel):
    """Metadata identifying a vision provider."""

    name: str
    version: str


class Likelihood(str, Enum):
    """Safe-search likelihood rating as reported by the vision provider."""

    VERY_UNLIKELY = "VERY_UNLIKELY"
    UNLIKELY = "UNLIKELY"
    POSSIBLE = "POSSIBLE"
    LIKELY = "LIKELY"
    VERY_LIKELY = "VERY_LIKELY"
    UNKNOWN = "UNKNOWN"


UNSAFE_LIKELIHOODS = frozenset({Likelihood.LIKELY, Likelihood.VERY_LIKELY})


class SafeSearch(BaseModel):
    """Safe-search ratings. Unrecognised or missing ratings become UNKNOWN."""

    model_config = ConfigDict(frozen=True)

    adult: Likelihood = Likelihood.UNKNOWN
    violence: Likelihood = Likelihood.UNKNOWN
    racy: Likelihood = Likelihood.UNKNOWN

    @field_validator("adult", "violence", "racy", mode="before")
    @classmethod
    def coerce_likelihood(cls, v: Any) -> Likelihood:
        if isinstance(v, Likelihood):
            return v
        if isinstance(v, str):
            try:
                return Likelihood(v.strip().upper())
            except ValueError:
                return Likelihood.UNKNOWN
        return Likelihood.UNKNOWN


class VisionData(BaseModel):
    """
    Result of analyzing one image.

    Every field is always present: missing sequences default to empty and missing
    ratings to UNKNOWN, so scoring only has to handle "no vision data at all".
    Label order is the provider's rank order and is preserved.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    labels: list[str] = Field(default_factory=list)
    objects: list[str] = Field(default_factory=list)
    landmarks: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    safe_search: SafeSearch = Field(default_factory=SafeSearch, alias="safeSearch")
    error: str | None = None

    @field_validator("labels", "objects", "landmarks", "colors", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("safe_search", mode="before")
    @classmethod
    def none_to_unknown(cls, v: Any) -> Any:
        return SafeSearch() if v is None else v

    @classmethod
    def empty(cls, error: str | None = None) -> "VisionData":
        """All-empty vision data, optionally carrying the error that produced it."""
        return cls(error=error)

    def to_wire(self) -> dict[str, Any]:
        """Provider JSON shape: {labels, colors, objects, landmarks, safeSearch}."""
        payload: dict[str, Any] = {
            "labels": list(self.labels),
            "colors": list(self.colors),
            "objects": list(self.objects),
            "landmarks": list(self.landmarks),
            "safeSearch": {
                "adult": self.safe_search.adult.value,
                "violence": self.safe_search.violence.value,
                "racy": self.safe_search.racy.value,
            },
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload
