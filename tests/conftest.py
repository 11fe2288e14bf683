"""Shared fixtures: fast configs and a scripted HTTP backend."""

import json
from typing import Any, Dict, List, Union

import httpx
import pytest

from loopreel.core.config import (
    Config,
    GenerationConfig,
    KlingConfig,
    PlaybackConfig,
    SeedanceConfig,
    reset_config,
)

CREDENTIAL_ENV_VARS = (
    "KLING_ACCESS_KEY",
    "KLING_SECRET_KEY",
    "ARK_API_KEY",
    "SEEDANCE_API_KEY",
    "SEEDREAM_API_KEY",
    "VIDEO_GEN_MODEL",
)

KLING_ACCESS_KEY = "test-access-key"
KLING_SECRET_KEY = "test-secret-key-0123456789abcdef0123456789"
SEEDANCE_API_KEY = "test-ark-key"

# Sentinel reply: raise a transport error instead of answering
CONNECT_ERROR = "connect-error"

Reply = Union[tuple, str]


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """No real credentials or cached global config leak into tests."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


# ============================================================================
# Configuration
# ============================================================================


FAST_BACKEND = dict(
    retry_delay=0,
    transport_retry_delay=0,
    poll_interval=0,
    timeout=5,
)


@pytest.fixture
def kling_settings() -> KlingConfig:
    return KlingConfig(
        access_key=KLING_ACCESS_KEY,
        secret_key=KLING_SECRET_KEY,
        rate_limit_delay=0,
        rate_limit_step=0,
        **FAST_BACKEND,
    )


@pytest.fixture
def seedance_settings() -> SeedanceConfig:
    return SeedanceConfig(api_key=SEEDANCE_API_KEY, **FAST_BACKEND)


@pytest.fixture
def playback_settings() -> PlaybackConfig:
    return PlaybackConfig(
        swap_at_seconds=4.8,
        min_swap_interval=0,
        ready_timeout=0.05,
        settle_delay=0,
        frame_interval=0.001,
    )


@pytest.fixture
def config(kling_settings, seedance_settings, playback_settings) -> Config:
    return Config(
        generation=GenerationConfig(backend="seedance", default_duration=5),
        kling=kling_settings,
        seedance=seedance_settings,
        playback=playback_settings,
    )


# ============================================================================
# Scripted Backend
# ============================================================================


def reply(status: int, body: Any = None) -> tuple:
    """A scripted response: dict/list bodies are sent as JSON, str as text."""
    return (status, body)


class FakeBackend:
    """
    Scripted HTTP backend for ``httpx.MockTransport``.

    Create replies are consumed in order; poll replies are consumed per task
    id. The last reply of each script repeats once the script runs out.
    """

    def __init__(self):
        self.creates: List[httpx.Request] = []
        self.polls: List[httpx.Request] = []
        self._create_script: List[Reply] = []
        self._poll_scripts: Dict[str, List[Reply]] = {}
        self.transport = httpx.MockTransport(self.handle)

    def on_create(self, *replies: Reply) -> "FakeBackend":
        self._create_script.extend(replies)
        return self

    def on_poll(self, task_id: str, *replies: Reply) -> "FakeBackend":
        self._poll_scripts.setdefault(task_id, []).extend(replies)
        return self

    def polls_for(self, task_id: str) -> List[httpx.Request]:
        return [r for r in self.polls if r.url.path.rstrip("/").endswith(f"/{task_id}")]

    def create_payload(self, index: int = 0) -> Dict[str, Any]:
        return json.loads(self.creates[index].content)

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.creates.append(request)
            script = self._create_script
        else:
            self.polls.append(request)
            task_id = request.url.path.rstrip("/").rsplit("/", 1)[-1]
            script = self._poll_scripts.get(task_id, [])

        if not script:
            return httpx.Response(404, json={"error": "unscripted request"})
        item = script.pop(0) if len(script) > 1 else script[0]

        if item == CONNECT_ERROR:
            raise httpx.ConnectError("connection refused", request=request)
        status, body = item
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
