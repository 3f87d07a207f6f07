"""
Core Components

Provides foundational infrastructure for generation job orchestration:
- Configuration objects passed into adapter construction
- Error taxonomy with HTTP-equivalent status codes
- Failure classification for provider calls
"""

from .classifier import ErrorKind, classify
from .config import Config, PollingConfig, ProviderConfig
from .errors import GenerationError

__all__ = [
    "Config",
    "PollingConfig",
    "ProviderConfig",
    "ErrorKind",
    "classify",
    "GenerationError",
]
