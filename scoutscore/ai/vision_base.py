"""Abstract base and deterministic mock implementation for vision analyzers."""

import logging
import time
from abc import ABC, abstractmethod

from scoutscore.ai.schema import Likelihood, ModelCard, SafeSearch, VisionData
from scoutscore.scoring.image_key import ImageFile

_log = logging.getLogger(__name__)

MOCK_LABEL_SETS: tuple[tuple[str, ...], ...] = (
    ("person", "outdoor", "nature", "landscape", "mountain"),
    ("dog", "animal", "pet", "mammal", "canine"),
    ("food", "meal", "restaurant", "cuisine", "dish"),
    ("building", "architecture", "urban", "city", "skyline"),
    ("beach", "ocean", "water", "sand", "coast"),
)

MOCK_COLOR_SETS: tuple[tuple[str, ...], ...] = (
    ("rgb(42, 75, 153)", "rgb(89, 156, 231)", "rgb(235, 245, 251)"),
    ("rgb(67, 122, 50)", "rgb(120, 173, 59)", "rgb(238, 240, 214)"),
    ("rgb(153, 42, 42)", "rgb(231, 89, 89)", "rgb(251, 235, 235)"),
    ("rgb(42, 42, 42)", "rgb(120, 120, 120)", "rgb(200, 200, 200)"),
    ("rgb(201, 148, 21)", "rgb(247, 202, 24)", "rgb(253, 235, 180)"),
)


class BaseVisionAnalyzer(ABC):
    """Abstract base for image content analysis (labels, objects, landmarks, colors, safety)."""

    @abstractmethod
    def get_model_card(self) -> ModelCard:
        """Return provider identity (name, version)."""
        ...

    @abstractmethod
    def analyze_image(self, image: ImageFile) -> VisionData:
        """Analyze image; return fully-populated VisionData or raise VisionProviderError."""
        ...


class MockVisionAnalyzer(BaseVisionAnalyzer):
    """
    Deterministic analyzer for tests and dev mode.

    The output is picked from five fixed label/color sets by the character sum of the
    filename, so repeated runs over the same file name give identical vision data.
    """

    def __init__(self, latency_seconds: float = 0.0) -> None:
        self._latency = latency_seconds

    def get_model_card(self) -> ModelCard:
        return ModelCard(name="mock-analyzer", version="1.0")

    @staticmethod
    def set_index(filename: str) -> int:
        return sum(ord(c) for c in filename) % len(MOCK_LABEL_SETS)

    def analyze_image(self, image: ImageFile) -> VisionData:
        if self._latency > 0:
            time.sleep(self._latency)
        idx = self.set_index(image.filename)
        labels = list(MOCK_LABEL_SETS[idx])
        _log.debug("Mock vision analysis for %s uses set %s", image.filename, idx)
        return VisionData(
            labels=labels,
            colors=list(MOCK_COLOR_SETS[idx]),
            objects=labels[:2],
            landmarks=[],
            safe_search=SafeSearch(
                adult=Likelihood.VERY_UNLIKELY,
                violence=Likelihood.UNLIKELY,
                racy=Likelihood.UNLIKELY,
            ),
        )


def analyze_image_safely(analyzer: BaseVisionAnalyzer, image: ImageFile) -> VisionData:
    """
    Run analyzer and never raise: on any provider failure return empty VisionData
    with UNKNOWN ratings and the error message attached.
    """
    try:
        return analyzer.analyze_image(image)
    except Exception as e:
        _log.error("Vision analysis failed for %s: %s", image.filename, e, exc_info=True)
        return VisionData.empty(error=str(e) or type(e).__name__)
