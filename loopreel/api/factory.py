"""
Task Client Factory
===================

Maps the configured backend name to one task client class. Selection happens
once when an orchestrator is built, never per call.
"""

import logging
from enum import Enum
from typing import Optional, List, Dict, Type, Union

from ..core.config import Config, get_config
from ..core.exceptions import ConfigurationError
from .base import BaseTaskClient

logger = logging.getLogger(__name__)


class Backend(str, Enum):
    """Closed set of supported generation backends."""

    SEEDANCE = "seedance"
    KLING = "kling"

    @classmethod
    def from_name(cls, name: str) -> "Backend":
        """
        Resolve a configured backend name.

        Raises:
            ConfigurationError: If the name is not a known backend
        """
        try:
            return cls((name or "").strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown backend: {name!r} (expected one of {[b.value for b in cls]})",
                config_key="generation.backend",
            )


# Registry of available task clients
_CLIENTS: Dict[Backend, Type[BaseTaskClient]] = {}


def register_task_client(backend: Backend):
    """Decorator to register a task client class for a backend."""
    def decorator(cls: Type[BaseTaskClient]):
        _CLIENTS[backend] = cls
        return cls
    return decorator


def _load_clients() -> None:
    # Client modules register themselves on import
    from . import kling, seedance  # noqa: F401


def get_task_client(
    backend: Optional[Union[str, Backend]] = None,
    config: Optional[Config] = None,
    **kwargs,
) -> BaseTaskClient:
    """
    Build the task client for a backend.

    Args:
        backend: Backend name or member (defaults to ``generation.backend``)
        config: Configuration (defaults to the global config)
        **kwargs: Passed to the client constructor (e.g. ``transport``)

    Returns:
        Configured task client

    Raises:
        ConfigurationError: If the backend is unknown
    """
    config = config or get_config()

    if backend is None:
        backend = config.generation.backend
    selected = backend if isinstance(backend, Backend) else Backend.from_name(backend)

    _load_clients()
    client_class = _CLIENTS.get(selected)
    if client_class is None:
        raise ConfigurationError(
            f"Backend '{selected.value}' has no registered client",
            config_key="generation.backend",
        )

    logger.info(f"Using {selected.value} backend")
    return client_class(settings=config.backend_config(selected.value), **kwargs)


def list_backends() -> List[str]:
    """
    List all available backend names.

    Returns:
        List of backend names
    """
    _load_clients()
    return [backend.value for backend in Backend if backend in _CLIENTS]
