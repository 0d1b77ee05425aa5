from scoutscore.core.config import get_config
from scoutscore.core.logging import setup_logging

__all__ = ["get_config", "setup_logging"]
