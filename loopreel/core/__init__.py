"""
Core Module
===========

Core utilities, configuration, channels and exceptions for LoopReel.
"""

from .config import (
    Config,
    GenerationConfig,
    BackendConfig,
    KlingConfig,
    SeedanceConfig,
    PlaybackConfig,
    get_config,
    set_config,
    reset_config,
)
from .events import Channel
from .exceptions import (
    LoopReelError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    GenerationError,
    ValidationError,
    TimeoutError,
    PlaybackFault,
)
from .security import sanitize_prompt, redact_api_key

__all__ = [
    # Configuration
    "Config",
    "GenerationConfig",
    "BackendConfig",
    "KlingConfig",
    "SeedanceConfig",
    "PlaybackConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Channels
    "Channel",
    # Exceptions
    "LoopReelError",
    "ConfigurationError",
    "ProviderError",
    "RateLimitError",
    "GenerationError",
    "ValidationError",
    "TimeoutError",
    "PlaybackFault",
    # Security
    "sanitize_prompt",
    "redact_api_key",
]
