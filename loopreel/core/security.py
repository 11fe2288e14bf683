"""
Security Utilities
==================

Prompt cleanup before text reaches a backend, and credential redaction
before backend errors reach a log line or a result.
"""

import re
import logging

logger = logging.getLogger(__name__)


# Chat-template markers and override phrases stripped from prompts
_PROMPT_MARKERS = re.compile(
    r"ignore previous instructions|disregard above|\[/?INST\]|<\|im_(?:start|end)\|>",
    re.IGNORECASE,
)

_CREDENTIAL_ENV_NAMES = (
    "KLING_ACCESS_KEY",
    "KLING_SECRET_KEY",
    "ARK_API_KEY",
    "SEEDANCE_API_KEY",
    "SEEDREAM_API_KEY",
)

# (pattern, replacement), applied in order
_REDACTIONS = [
    (re.compile(r"Bearer\s+[\w\-.]+", re.IGNORECASE), "Bearer ***REDACTED***"),
    (re.compile(r"eyJ[\w\-]+\.[\w\-]+\.[\w\-]+"), "***REDACTED_JWT***"),
    (
        re.compile(r"\b(%s)=\S+" % "|".join(_CREDENTIAL_ENV_NAMES), re.IGNORECASE),
        r"\1=***REDACTED***",
    ),
    (re.compile(r"(api[_-]?key|secret[_-]?key)['\"]?\s*[:=]\s*['\"]?[\w\-]+", re.IGNORECASE), r"\1: ***REDACTED***"),
]


def sanitize_prompt(prompt: str, max_length: int = 2000) -> str:
    """
    Clean a motion/style prompt.

    Drops control characters and template markers, then truncates.

    Args:
        prompt: Caller-supplied prompt
        max_length: Maximum allowed length

    Returns:
        Cleaned prompt ("" for empty input)
    """
    if not prompt:
        return ""

    printable = "".join(ch for ch in prompt if ch.isprintable() or ch in "\n\t")
    cleaned = _PROMPT_MARKERS.sub("", printable)

    if len(cleaned) > max_length:
        logger.warning(f"Prompt truncated from {len(cleaned)} to {max_length} characters")
        cleaned = cleaned[:max_length]

    return cleaned.strip()


def redact_api_key(text: str) -> str:
    """Replace bearer tokens, JWTs and key assignments in ``text``."""
    if not text:
        return text
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text
