"""Tests for the create/poll task clients (Kling and Seedance)."""

import dataclasses

import jwt
import pytest

from conftest import CONNECT_ERROR, KLING_ACCESS_KEY, KLING_SECRET_KEY, reply
from loopreel.api import Backend, ClipRequest, GenerationStatus, get_task_client, list_backends
from loopreel.api.kling import KlingTaskClient, create_jwt_token, format_auth_header
from loopreel.api.seedance import SeedanceTaskClient
from loopreel.core.config import KlingConfig, SeedanceConfig
from loopreel.core.exceptions import ConfigurationError

FRAME_0 = "https://frames.example.com/0.png"
FRAME_1 = "https://frames.example.com/1.png"


def clip_request(**kwargs) -> ClipRequest:
    return ClipRequest(start_frame=FRAME_0, end_frame=FRAME_1, **kwargs)


# ============================================================================
# Kling Authentication
# ============================================================================


class TestKlingToken:
    def test_claims(self):
        token = create_jwt_token("ak", KLING_SECRET_KEY, ttl_seconds=1800, now=1_700_000_000)

        claims = jwt.decode(
            token,
            KLING_SECRET_KEY,
            algorithms=["HS256"],
            options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
        )
        assert claims == {
            "iss": "ak",
            "iat": 1_700_000_000,
            "nbf": 1_700_000_000 - 5,
            "exp": 1_700_000_000 + 1800,
        }
        assert jwt.get_unverified_header(token) == {"alg": "HS256", "typ": "JWT"}

    def test_ttl_has_a_floor_of_one_minute(self):
        token = create_jwt_token("ak", KLING_SECRET_KEY, ttl_seconds=10, now=1_000)
        claims = jwt.decode(
            token,
            KLING_SECRET_KEY,
            algorithms=["HS256"],
            options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
        )
        assert claims["exp"] == 1_060

    def test_auth_headers_carry_a_valid_bearer_token(self, kling_settings):
        client = KlingTaskClient(settings=kling_settings)
        header = client.auth_headers()["Authorization"]

        assert header.startswith("Bearer ")
        claims = jwt.decode(header[len("Bearer "):], KLING_SECRET_KEY, algorithms=["HS256"])
        assert claims["iss"] == KLING_ACCESS_KEY

    def test_bearer_prefix_not_doubled(self):
        assert format_auth_header("abc") == "Bearer abc"
        assert format_auth_header("Bearer abc") == "Bearer abc"

    def test_credentials_from_environment(self, monkeypatch):
        monkeypatch.setenv("KLING_ACCESS_KEY", "env-ak")
        monkeypatch.setenv("KLING_SECRET_KEY", KLING_SECRET_KEY)
        client = KlingTaskClient(settings=KlingConfig())
        assert client.access_key == "env-ak"
        assert client.auth_headers()["Authorization"].startswith("Bearer ")

    def test_missing_credentials_raise(self):
        client = KlingTaskClient(settings=KlingConfig())
        with pytest.raises(ConfigurationError):
            client.auth_headers()

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_without_a_request(self, backend):
        client = KlingTaskClient(settings=KlingConfig(), transport=backend.transport)

        result = await client.generate_clip(clip_request())

        assert result.status == GenerationStatus.FAILED
        assert result.error_code == "ConfigurationError"
        assert backend.creates == []
        await client.close()


# ============================================================================
# Create Retries
# ============================================================================


class TestCreateRetries:
    @pytest.mark.asyncio
    async def test_two_failures_then_success(self, backend, seedance_settings):
        backend.on_create(
            reply(503, "unavailable"),
            reply(502, "bad gateway"),
            reply(200, {"id": "task-1"}),
        )
        backend.on_poll("task-1", reply(200, {
            "status": "succeeded",
            "content": {"video_url": "https://cdn.example.com/task-1.mp4"},
        }))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.is_complete()
        assert result.video_url == "https://cdn.example.com/task-1.mp4"
        assert result.task_id == "task-1"
        assert len(backend.creates) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, backend, seedance_settings):
        backend.on_create(reply(500, "boom"))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.is_failed()
        assert result.error_code == "ProviderError"
        assert len(backend.creates) == 3
        assert backend.polls == []

    @pytest.mark.asyncio
    async def test_non_retryable_status_fails_at_once(self, backend, seedance_settings):
        backend.on_create(reply(400, {"error": {"message": "bad image"}}))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.is_failed()
        assert result.error_code == "ProviderError"
        assert "400" in result.error_message
        assert len(backend.creates) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, backend, kling_settings):
        backend.on_create(reply(429, {"code": 1303, "message": "parallel task over resource pack limit"}))

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.error_code == "RateLimitError"
        assert len(backend.creates) == kling_settings.create_attempts

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self, backend, seedance_settings):
        backend.on_create(CONNECT_ERROR, reply(200, {"video_url": "https://cdn.example.com/now.mp4"}))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.is_complete()
        assert len(backend.creates) == 2

    @pytest.mark.asyncio
    async def test_transport_errors_exhausted(self, backend, seedance_settings):
        backend.on_create(CONNECT_ERROR)

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.error_code == "ProviderError"
        assert len(backend.creates) == 3

    def test_kling_account_rate_limit_backoff(self):
        client = KlingTaskClient(settings=KlingConfig(
            access_key="ak",
            secret_key=KLING_SECRET_KEY,
            retry_delay=0.7,
            rate_limit_delay=3.0,
            rate_limit_step=1.0,
        ))

        assert client._retry_delay(429, '{"code": 1303}', 2) == pytest.approx(5.0)
        assert client._retry_delay(429, '{"code": 1000}', 2) == pytest.approx(1.4)
        assert client._retry_delay(503, "not json", 1) == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_create_response_without_task_or_url(self, backend, seedance_settings):
        backend.on_create(reply(200, {"ok": True}))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.error_code == "GenerationError"
        assert "no task id" in result.error_message


# ============================================================================
# Polling
# ============================================================================


KLING_CREATED = reply(200, {"code": 0, "data": {"task_id": "k-1", "task_status": "submitted"}})


def kling_done(url: str) -> tuple:
    return reply(200, {
        "code": 0,
        "data": {
            "task_id": "k-1",
            "task_status": "succeed",
            "task_result": {"videos": [{"id": "v1", "url": url, "duration": "5"}]},
        },
    })


class TestPolling:
    @pytest.mark.asyncio
    async def test_transient_poll_errors_mean_not_ready(self, backend, kling_settings):
        backend.on_create(KLING_CREATED)
        backend.on_poll(
            "k-1",
            reply(500, "oops"),
            reply(200, "<html>gateway</html>"),
            reply(200, {"code": 0, "data": {"task_status": "processing"}}),
            kling_done("https://cdn.example.com/k-1.mp4"),
        )

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.is_complete()
        assert result.video_url == "https://cdn.example.com/k-1.mp4"
        assert result.polls == 4

    @pytest.mark.asyncio
    async def test_polls_reuse_the_creation_headers(self, backend, kling_settings):
        backend.on_create(KLING_CREATED)
        backend.on_poll("k-1", reply(200, {"data": {"task_status": "processing"}}), kling_done("https://cdn/x.mp4"))

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            await client.generate_clip(clip_request())

        auth = backend.creates[0].headers["Authorization"]
        assert len(backend.polls) == 2
        assert all(poll.headers["Authorization"] == auth for poll in backend.polls)
        assert backend.polls[0].url.path == "/v1/videos/image2video/k-1"

    @pytest.mark.asyncio
    async def test_terminal_failure(self, backend, kling_settings):
        backend.on_create(KLING_CREATED)
        backend.on_poll("k-1", reply(200, {"data": {"task_status": "failed", "task_status_msg": "content policy"}}))

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.status == GenerationStatus.FAILED
        assert result.error_code == "GenerationError"
        assert "content policy" in result.error_message
        assert result.task_id == "k-1"

    @pytest.mark.asyncio
    async def test_finished_without_url(self, backend, kling_settings):
        backend.on_create(KLING_CREATED)
        backend.on_poll("k-1", reply(200, {"data": {"task_status": "succeed", "task_result": {}}}))

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.error_code == "GenerationError"
        assert "without a video URL" in result.error_message

    @pytest.mark.asyncio
    async def test_timeout(self, backend, kling_settings):
        settings = dataclasses.replace(kling_settings, poll_interval=0.01, timeout=0.1)
        backend.on_create(KLING_CREATED)
        backend.on_poll("k-1", reply(200, {"data": {"task_status": "processing"}}))

        async with KlingTaskClient(settings=settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.status == GenerationStatus.FAILED
        assert result.error_code == "TimeoutError"
        assert len(backend.polls) >= 1

    @pytest.mark.asyncio
    async def test_relative_result_url_is_normalized(self, backend, kling_settings):
        backend.on_create(KLING_CREATED)
        backend.on_poll("k-1", reply(200, {"data": {"task_status": "succeed", "video_url": "/files/k-1.mp4"}}))

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.video_url == "https://api-beijing.klingai.com/files/k-1.mp4"

    @pytest.mark.asyncio
    async def test_deep_scan_finds_an_unusual_shape(self, backend, seedance_settings):
        backend.on_create(reply(200, {"id": "s-1"}))
        backend.on_poll("s-1", reply(200, {
            "status": "succeeded",
            "result": {"assets": [{"kind": "poster", "href": "https://cdn/poster.jpg"},
                                  {"kind": "clip", "href": "https://cdn/video/s-1"}]},
        }))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.video_url == "https://cdn/video/s-1"


# ============================================================================
# Request Bodies
# ============================================================================


class TestPayloads:
    @pytest.mark.asyncio
    async def test_kling_payload(self, backend, kling_settings):
        backend.on_create(KLING_CREATED)
        backend.on_poll("k-1", kling_done("https://cdn/x.mp4"))
        request = ClipRequest(
            start_frame="data:image/png;base64,AAAA",
            end_frame="data:image/png;base64,BBBB",
            duration=5,
            prompt="slow dolly in",
        )

        async with KlingTaskClient(settings=kling_settings, transport=backend.transport) as client:
            await client.generate_clip(request)

        assert backend.create_payload() == {
            "model_name": "kling-v2-5-turbo",
            "image": "AAAA",
            "image_tail": "BBBB",
            "duration": 5,
            "mode": "pro",
            "prompt": "slow dolly in",
        }

    @pytest.mark.asyncio
    async def test_seedance_payload(self, backend, seedance_settings):
        backend.on_create(reply(200, {"video_url": "https://cdn/now.mp4"}))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            await client.generate_clip(clip_request(duration=4))

        payload = backend.create_payload()
        assert payload["model"] == "doubao-seedance-1-5-pro-251215"
        text, first, last = payload["content"]
        assert text == {"type": "text", "text": "Generate a cinematic 4-second clip. --dur 4"}
        assert first["role"] == "first_frame"
        assert first["image_url"] == {"url": FRAME_0}
        assert last["role"] == "last_frame"
        assert last["image_url"] == {"url": FRAME_1}
        assert backend.creates[0].headers["Authorization"] == "Bearer test-ark-key"


# ============================================================================
# Seedance Specifics
# ============================================================================


class TestSeedance:
    @pytest.mark.asyncio
    async def test_immediate_url_skips_polling(self, backend, seedance_settings):
        backend.on_create(reply(200, {"id": "ignored", "video_url": "https://cdn/fast.mp4"}))

        async with SeedanceTaskClient(settings=seedance_settings, transport=backend.transport) as client:
            result = await client.generate_clip(clip_request())

        assert result.video_url == "https://cdn/fast.mp4"
        assert result.polls == 0
        assert backend.polls == []

    @pytest.mark.asyncio
    async def test_debug_replay_polls_existing_tasks(self, backend, seedance_settings):
        settings = dataclasses.replace(seedance_settings, debug_task_ids=["cgt-1", "cgt-2"])
        for task_id in ("cgt-1", "cgt-2"):
            backend.on_poll(task_id, reply(200, {
                "status": "succeeded",
                "content": {"video_url": f"https://cdn/{task_id}.mp4"},
            }))

        async with SeedanceTaskClient(settings=settings, transport=backend.transport) as client:
            first = await client.generate_clip(clip_request())
            second = await client.generate_clip(clip_request())

        assert backend.creates == []
        assert [first.task_id, second.task_id] == ["cgt-1", "cgt-2"]
        assert second.video_url == "https://cdn/cgt-2.mp4"

    def test_debug_task_ids_from_comma_string(self):
        settings = SeedanceConfig(debug_task_ids="a, b,,c")
        assert settings.debug_task_ids == ["a", "b", "c"]

    def test_api_key_fallback_env_names(self, monkeypatch):
        monkeypatch.setenv("SEEDREAM_API_KEY", "legacy-key")
        client = SeedanceTaskClient(settings=SeedanceConfig())
        assert client.auth_headers()["Authorization"] == "Bearer legacy-key"


# ============================================================================
# Backend Selection
# ============================================================================


class TestFactory:
    def test_selects_configured_backend(self, config):
        assert isinstance(get_task_client(config=config), SeedanceTaskClient)
        assert isinstance(get_task_client("KLING", config=config), KlingTaskClient)
        assert isinstance(get_task_client(Backend.KLING, config=config), KlingTaskClient)

    def test_client_uses_its_config_section(self, config):
        client = get_task_client("kling", config=config)
        assert client.settings is config.kling

    def test_unknown_backend(self, config):
        with pytest.raises(ConfigurationError):
            get_task_client("veo", config=config)

    def test_list_backends(self):
        assert sorted(list_backends()) == ["kling", "seedance"]
