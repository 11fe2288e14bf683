"""
Configuration System
====================

Centralized, validated configuration management with typed dataclasses.

Every value has a documented default and can be overridden from YAML, where
``${VAR}`` and ``${VAR:-default}`` patterns are interpolated from the
environment.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class GenerationConfig:
    """Orchestration settings."""

    backend: str = "seedance"
    default_duration: int = 5

    VALID_BACKENDS = {"seedance", "kling"}

    def __post_init__(self):
        self.backend = (self.backend or "seedance").strip().lower()
        self.default_duration = int(self.default_duration)
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.backend not in self.VALID_BACKENDS:
            raise ConfigurationError(
                f"Invalid backend: {self.backend}",
                config_key="generation.backend",
            )
        if not 1 <= self.default_duration <= 60:
            raise ConfigurationError(
                f"Duration must be 1-60 seconds, got {self.default_duration}",
                config_key="generation.default_duration",
            )


@dataclass
class BackendConfig:
    """Settings shared by every task backend."""

    base_url: str = ""
    create_attempts: int = 3
    retry_delay: float = 0.7
    transport_retry_delay: float = 0.6
    poll_interval: float = 1.5
    timeout: float = 300.0
    request_timeout: float = 30.0

    section = "backend"

    def __post_init__(self):
        self._coerce()
        self.validate()

    def _coerce(self) -> None:
        # Interpolated YAML values arrive as strings
        self.create_attempts = int(self.create_attempts)
        for name in ("retry_delay", "transport_retry_delay", "poll_interval", "timeout", "request_timeout"):
            setattr(self, name, float(getattr(self, name)))

    def validate(self) -> None:
        """Validate retry and timing values."""
        if not 1 <= self.create_attempts <= 10:
            raise ConfigurationError(
                f"create_attempts must be 1-10, got {self.create_attempts}",
                config_key=f"{self.section}.create_attempts",
            )
        for name in ("retry_delay", "transport_retry_delay", "poll_interval"):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"{name} must not be negative",
                    config_key=f"{self.section}.{name}",
                )
        if self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive, got {self.timeout}",
                config_key=f"{self.section}.timeout",
            )


@dataclass
class KlingConfig(BackendConfig):
    """Kling image-to-video backend."""

    base_url: str = "https://api-beijing.klingai.com"
    create_path: str = "/v1/videos/image2video"
    task_path: str = "/v1/videos/image2video/{taskId}"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    token_ttl_seconds: int = 1800
    model_name: str = "kling-v2-5-turbo"
    mode: str = "pro"
    rate_limit_delay: float = 3.0
    rate_limit_step: float = 1.0
    timeout: float = 600.0
    request_timeout: float = 5.0

    section = "kling"

    def _coerce(self) -> None:
        super()._coerce()
        self.token_ttl_seconds = int(self.token_ttl_seconds)
        self.rate_limit_delay = float(self.rate_limit_delay)
        self.rate_limit_step = float(self.rate_limit_step)
        self.access_key = (self.access_key or "").strip() or None
        self.secret_key = (self.secret_key or "").strip() or None

    def validate(self) -> None:
        super().validate()
        if "{taskId}" not in self.task_path:
            raise ConfigurationError(
                "task_path must contain a {taskId} placeholder",
                config_key="kling.task_path",
            )


@dataclass
class SeedanceConfig(BackendConfig):
    """ByteDance Seedance (ARK) backend."""

    base_url: str = "https://ark.cn-beijing.volces.com/api/v3"
    tasks_path: str = "/contents/generations/tasks"
    api_key: Optional[str] = None
    model: str = "doubao-seedance-1-5-pro-251215"
    timeout: float = 180.0
    debug_task_ids: List[str] = field(default_factory=list)

    section = "seedance"

    def _coerce(self) -> None:
        super()._coerce()
        self.api_key = (self.api_key or "").strip() or None
        if isinstance(self.debug_task_ids, str):
            self.debug_task_ids = [t.strip() for t in self.debug_task_ids.split(",") if t.strip()]


@dataclass
class PlaybackConfig:
    """Continuity scheduler timing."""

    swap_at_seconds: float = 4.8
    min_swap_interval: float = 0.5
    ready_timeout: float = 10.0
    settle_delay: float = 0.2
    frame_interval: float = 1 / 60
    max_splice_attempts: int = 3

    def __post_init__(self):
        for name in ("swap_at_seconds", "min_swap_interval", "ready_timeout", "settle_delay", "frame_interval"):
            setattr(self, name, float(getattr(self, name)))
        self.max_splice_attempts = int(self.max_splice_attempts)
        self.validate()

    def validate(self) -> None:
        """Validate timing values."""
        if self.swap_at_seconds <= 0:
            raise ConfigurationError(
                f"swap_at_seconds must be positive, got {self.swap_at_seconds}",
                config_key="playback.swap_at_seconds",
            )
        if self.ready_timeout <= 0:
            raise ConfigurationError(
                f"ready_timeout must be positive, got {self.ready_timeout}",
                config_key="playback.ready_timeout",
            )
        if self.frame_interval <= 0:
            raise ConfigurationError(
                "frame_interval must be positive",
                config_key="playback.frame_interval",
            )
        if self.max_splice_attempts < 1:
            raise ConfigurationError(
                "max_splice_attempts must be at least 1",
                config_key="playback.max_splice_attempts",
            )


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides a unified interface to all configuration settings with:
    - Type-safe access to configuration values
    - Validation on load and modification
    - Environment variable interpolation
    - Sensible defaults for all values
    """

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    kling: KlingConfig = field(default_factory=KlingConfig)
    seedance: SeedanceConfig = field(default_factory=SeedanceConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    # Raw config for backend-specific extensions
    _raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    SECTIONS = ("generation", "kling", "seedance", "playback")

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to YAML config file (defaults.yaml)

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/defaults.yaml"),
            Path("./defaults.yaml"),
            Path.home() / ".loopreel" / "config.yaml",
        ]

        if path:
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        try:
            return cls(
                generation=GenerationConfig(**_section(data, "generation")),
                kling=KlingConfig(**_section(data, "kling")),
                seedance=SeedanceConfig(**_section(data, "seedance")),
                playback=PlaybackConfig(**_section(data, "playback")),
                _raw=data,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    def backend_config(self, backend: str) -> BackendConfig:
        """Get the settings section for a backend name."""
        name = backend.lower()
        if name not in GenerationConfig.VALID_BACKENDS:
            raise ConfigurationError(
                f"No settings for backend: {backend}",
                config_key=f"{name}",
            )
        return getattr(self, name)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a config section with blank interpolated values dropped."""
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"Section '{name}' must be a mapping",
            config_key=name,
            expected_type="mapping",
        )
    # An unset ${VAR} interpolates to "", which means "use the default"
    return {k: v for k, v in section.items() if v != ""}


# =============================================================================
# Convenience Functions
# =============================================================================


_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance (lazily loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = Config.load()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload on next access)."""
    global _global_config
    _global_config = None
