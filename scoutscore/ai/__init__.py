"""AI module: vision data contracts and analyzer abstraction."""

from scoutscore.ai.schema import Likelihood, ModelCard, SafeSearch, VisionData
from scoutscore.ai.vision_base import BaseVisionAnalyzer, MockVisionAnalyzer, analyze_image_safely
from scoutscore.ai.factory import get_vision_analyzer

__all__ = [
    "BaseVisionAnalyzer",
    "Likelihood",
    "MockVisionAnalyzer",
    "ModelCard",
    "SafeSearch",
    "VisionData",
    "analyze_image_safely",
    "get_vision_analyzer",
]
