"""Exception taxonomy for the scoring core.

Only InvalidScoringInputError and ScoringTimeoutError are meant to reach callers of
ScoringPipeline.score_image. Provider errors are caught per model config by the
comparison engine; cache backend errors never leave the cache repository.
"""


class ScoringError(Exception):
    """Base for scoring-core errors."""


class InvalidScoringInputError(ScoringError, ValueError):
    """No image, empty image data, or a malformed scoring config. Not retried."""


class ScoringTimeoutError(ScoringError, TimeoutError):
    """The whole scoring run exceeded the global timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Analysis timed out after {timeout_seconds:g} seconds")


class VisionProviderError(ScoringError):
    """The vision provider failed (transport error, bad status, unparseable body)."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
