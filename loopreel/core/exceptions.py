"""
Custom Exceptions
=================

Exception hierarchy shared by the task clients, the orchestrator and the
playback scheduler.

Every error carries a machine-readable ``code`` (the class name unless
overridden), a ``details`` mapping of context fields, and a ``recoverable``
flag telling callers whether trying again can help.
"""

from typing import Optional, Dict, Any


# HTTP statuses that indicate a transient backend condition
RETRYABLE_STATUS_CODES = (408, 425, 429)


def is_retryable_status(status_code: int) -> bool:
    """Whether an HTTP status is worth retrying (rate limit or server error)."""
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def _merge_details(kwargs: Dict[str, Any], **context: Any) -> Dict[str, Any]:
    """Fold non-empty context fields into the ``details`` keyword argument."""
    details = dict(kwargs.pop("details", None) or {})
    details.update({key: value for key, value in context.items() if value not in (None, "")})
    return details


def _clip(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    return text if len(text) <= limit else text[:limit]


class LoopReelError(Exception):
    """Base exception for all LoopReel errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or type(self).__name__
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(LoopReelError):
    """Invalid or missing configuration (including credentials)."""

    def __init__(self, message: str, config_key: Optional[str] = None,
                 expected_type: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, config_key=config_key, expected_type=expected_type)
        super().__init__(message, details=details, **kwargs)


class ProviderError(LoopReelError):
    """
    A generation backend rejected a request or could not be reached.

    Recoverable by default when the HTTP status is a transient one.
    """

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None, response_body: Optional[str] = None, **kwargs):
        details = _merge_details(
            kwargs,
            provider=provider,
            status_code=status_code,
            response_body=_clip(response_body, 500),
        )
        kwargs.setdefault("recoverable", bool(status_code) and is_retryable_status(status_code))
        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code


class RateLimitError(ProviderError):
    """The backend answered 429."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        details = _merge_details(kwargs, retry_after_seconds=retry_after)
        kwargs["recoverable"] = True
        super().__init__(message, status_code=429, details=details, **kwargs)


class GenerationError(LoopReelError):
    """A task failed remotely, finished without a result, or a clip set was incomplete."""

    def __init__(self, message: str, job_id: Optional[str] = None,
                 stage: Optional[str] = None, prompt: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, job_id=job_id, stage=stage, prompt=_clip(prompt, 200))
        super().__init__(message, details=details, **kwargs)


class ValidationError(LoopReelError):
    """Bad input at a module boundary (frame list, clip set, duration)."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Optional[Any] = None, constraint: Optional[str] = None, **kwargs):
        details = _merge_details(
            kwargs,
            field=field,
            value=None if value is None else str(value)[:100],
            constraint=constraint,
        )
        super().__init__(message, details=details, **kwargs)


class TimeoutError(LoopReelError):
    """A bounded wait expired (e.g. a task never reached a terminal status)."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 timeout_seconds: Optional[float] = None, **kwargs):
        details = _merge_details(kwargs, operation=operation, timeout_seconds=timeout_seconds)
        kwargs["recoverable"] = False
        super().__init__(message, details=details, **kwargs)


class PlaybackFault(LoopReelError):
    """A playback buffer failed to load, decode or start a clip."""

    def __init__(self, message: str, buffer: Optional[str] = None, url: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, buffer=buffer, url=_clip(url, 200))
        kwargs.setdefault("recoverable", True)
        super().__init__(message, details=details, **kwargs)
