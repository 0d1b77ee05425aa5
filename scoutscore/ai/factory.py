"""Factory for vision analyzers. Provider modules are imported lazily."""

import logging

from scoutscore.ai.vision_base import BaseVisionAnalyzer
from scoutscore.core.config import Settings

_log = logging.getLogger(__name__)


def get_vision_analyzer(analyzer_name: str, settings: Settings | None = None) -> BaseVisionAnalyzer:
    """
    Return a vision analyzer by name ("mock" or "google").

    A google analyzer with no API key configured falls back to the mock analyzer so a
    misconfigured environment still produces (clearly mock) results instead of failing.
    """
    if analyzer_name == "mock":
        from scoutscore.ai.vision_base import MockVisionAnalyzer

        return MockVisionAnalyzer()
    if analyzer_name == "google":
        from scoutscore.ai.vision_base import MockVisionAnalyzer
        from scoutscore.ai.vision_google import DEFAULT_ENDPOINT, GoogleVisionAnalyzer

        settings = settings or Settings()
        if not settings.vision_api_key:
            _log.warning("No vision API key configured; using mock vision analyzer.")
            return MockVisionAnalyzer()
        return GoogleVisionAnalyzer(
            settings.vision_api_key,
            endpoint=settings.vision_endpoint or DEFAULT_ENDPOINT,
            timeout_seconds=settings.vision_timeout_seconds,
            max_retries=settings.vision_max_retries,
        )
    raise ValueError(f"Unknown vision analyzer: {analyzer_name}")
