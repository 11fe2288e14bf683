"""
Response Extraction
===================

Backends return task ids and video URLs under field names that vary by
provider and API version. Each backend declares an ordered list of named
strategies; the first one that yields a value wins. ``deep_scan`` walks the
whole payload for anything that looks like a playable video and is meant to
be listed last.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple, Union

PathKey = Union[str, int]


@dataclass(frozen=True)
class ExtractionStrategy:
    """A named way of pulling one string out of a response payload."""

    name: str
    extract: Callable[[Any], Optional[str]]

    def __call__(self, data: Any) -> Optional[str]:
        return self.extract(data)


def _walk(data: Any, path: Tuple[PathKey, ...]) -> Any:
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def field_path(*path: PathKey) -> ExtractionStrategy:
    """
    Strategy reading a non-empty string at a fixed path.

    Integer keys index into lists, so ``field_path("data", "videos", 0)``
    reads ``data["videos"][0]``.
    """
    name = ".".join(str(key) for key in path)

    def extract(data: Any) -> Optional[str]:
        value = _walk(data, path)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            value = str(value).strip()
            return value or None
        return None

    return ExtractionStrategy(name, extract)


def looks_like_video_url(value: str) -> bool:
    """Whether a string is an absolute URL that points at a video."""
    if not value.startswith(("http://", "https://")):
        return False
    return ".mp4" in value.lower() or "/video" in value


def find_first_video_url(value: Any) -> Optional[str]:
    """Depth-first search for the first string that looks like a video URL."""
    if not value:
        return None
    if isinstance(value, str):
        return value if looks_like_video_url(value) else None
    if isinstance(value, list):
        for item in value:
            found = find_first_video_url(item)
            if found:
                return found
        return None
    if isinstance(value, dict):
        for item in value.values():
            found = find_first_video_url(item)
            if found:
                return found
    return None


deep_scan = ExtractionStrategy("deep_scan", find_first_video_url)


def extract_first(
    data: Any,
    strategies: Iterable[ExtractionStrategy],
) -> Optional[Tuple[str, str]]:
    """
    Try strategies in order.

    Returns:
        ``(strategy_name, value)`` for the first hit, or None
    """
    for strategy in strategies:
        value = strategy(data)
        if value:
            return strategy.name, value
    return None


def first_value(data: Any, strategies: Iterable[ExtractionStrategy]) -> Optional[str]:
    """Like ``extract_first`` but returns only the value."""
    hit = extract_first(data, strategies)
    return hit[1] if hit else None


def normalize_video_url(base_url: str, value: str) -> str:
    """
    Turn a backend-relative video reference into an absolute URL.

    ``/path`` is resolved against the base URL; a bare file id is resolved
    under ``/v1/files/``.
    """
    if value.startswith(("http://", "https://")):
        return value
    base = base_url.rstrip("/")
    if value.startswith("/"):
        return f"{base}{value}"
    return f"{base}/v1/files/{value}"
