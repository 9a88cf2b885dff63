"""Unit tests for access-token caching, refresh and coalescing."""
from __future__ import annotations

import asyncio

import pytest

from adapters.qywechat import AccessTokenManager
from models.wecom import PlatformConfig
from utils.exceptions import PlatformRequestError, TokenAcquisitionError

from helpers.fake_http import FakeClock, FakeHttpClient
from helpers.wecom import token_ok


class TestCaching:
    async def test_second_call_is_served_from_cache(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1"))
        assert await tokens.get_access_token(platform_config) == "T1"
        assert await tokens.get_access_token(platform_config) == "T1"
        assert len(fake_http.calls_to("gettoken")) == 1

    async def test_request_carries_corp_credentials(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        await tokens.get_access_token(platform_config)
        call = fake_http.calls_to("gettoken")[0]
        assert call.method == "GET"
        assert call.params == {"corpid": platform_config.corp_id, "corpsecret": platform_config.secret}

    async def test_refreshes_inside_margin(self, tokens, fake_http, clock: FakeClock, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1", 7200), token_ok("T2", 7200))
        assert await tokens.get_access_token(platform_config) == "T1"

        clock.advance(7200 - 300 - 1)
        assert await tokens.get_access_token(platform_config) == "T1"

        clock.advance(1)
        assert await tokens.get_access_token(platform_config) == "T2"
        assert len(fake_http.calls_to("gettoken")) == 2

    async def test_force_refresh_skips_cache(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1"), token_ok("T2"))
        await tokens.get_access_token(platform_config)
        assert await tokens.get_access_token(platform_config, force_refresh=True) == "T2"

    async def test_invalidate_drops_cached_token(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1"), token_ok("T2"))
        await tokens.get_access_token(platform_config)
        await tokens.invalidate(platform_config)
        assert await tokens.get_access_token(platform_config) == "T2"

    async def test_secret_rotation_uses_new_cache_entry(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("OLD"), token_ok("NEW"))
        await tokens.get_access_token(platform_config)
        rotated = platform_config.model_copy(update={"secret": "rotated-secret"})
        assert await tokens.get_access_token(rotated) == "NEW"
        assert AccessTokenManager.cache_key(rotated) != AccessTokenManager.cache_key(platform_config)

    async def test_corps_are_cached_separately(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("A"), token_ok("B"))
        other = platform_config.model_copy(update={"corp_id": "wwother"})
        assert await tokens.get_access_token(platform_config) == "A"
        assert await tokens.get_access_token(other) == "B"
        assert await tokens.get_access_token(platform_config) == "A"

    async def test_unreadable_cache_entry_is_refetched(self, tokens, fake_http, platform_config) -> None:
        await tokens.cache.set_with_ttl(AccessTokenManager.cache_key(platform_config), "garbage", 60)
        fake_http.queue("gettoken", token_ok("T1"))
        assert await tokens.get_access_token(platform_config) == "T1"


class TestCoalescing:
    async def test_concurrent_callers_trigger_one_fetch(self, tokens, fake_http, platform_config) -> None:
        fake_http.gate = asyncio.Event()
        fake_http.queue("gettoken", token_ok("T1"))

        waiters = [asyncio.ensure_future(tokens.get_access_token(platform_config)) for _ in range(10)]
        await asyncio.sleep(0.01)
        fake_http.gate.set()

        assert await asyncio.gather(*waiters) == ["T1"] * 10
        assert len(fake_http.calls_to("gettoken")) == 1


class TestFailures:
    async def test_platform_error_is_raised_and_not_cached(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue(
            "gettoken",
            {"errcode": 40013, "errmsg": "invalid corpid"},
            token_ok("T1"),
        )
        with pytest.raises(TokenAcquisitionError) as exc_info:
            await tokens.get_access_token(platform_config)
        assert exc_info.value.errcode == 40013
        assert exc_info.value.errmsg == "invalid corpid"
        assert not exc_info.value.retryable

        assert await tokens.get_access_token(platform_config) == "T1"
        assert len(fake_http.calls_to("gettoken")) == 2

    async def test_missing_token_field_is_an_error(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", {"errcode": 0, "errmsg": "ok"})
        with pytest.raises(TokenAcquisitionError):
            await tokens.get_access_token(platform_config)

    async def test_system_busy_is_retryable(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", {"errcode": -1, "errmsg": "system busy"})
        with pytest.raises(TokenAcquisitionError) as exc_info:
            await tokens.get_access_token(platform_config)
        assert exc_info.value.retryable

    async def test_network_failure_is_retryable(self, tokens, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", PlatformRequestError("request timed out", timeout=True))
        with pytest.raises(TokenAcquisitionError) as exc_info:
            await tokens.get_access_token(platform_config)
        assert exc_info.value.errcode == -1
        assert exc_info.value.retryable

    async def test_broken_cache_falls_back_to_platform(self, fake_http, platform_config) -> None:
        class BrokenCache:
            async def get(self, key):
                raise ConnectionError("redis down")

            async def set_with_ttl(self, key, value, ttl):
                raise ConnectionError("redis down")

            async def delete(self, key):
                raise ConnectionError("redis down")

        manager = AccessTokenManager(fake_http, BrokenCache())
        fake_http.queue("gettoken", token_ok("T1"))
        assert await manager.get_access_token(platform_config) == "T1"


def test_cache_key_does_not_contain_secret(platform_config: PlatformConfig) -> None:
    key = AccessTokenManager.cache_key(platform_config)
    assert platform_config.secret not in key
    assert key.startswith(f"wecom:access_token:{platform_config.corp_id}:")


def test_default_cache_is_in_memory() -> None:
    manager = AccessTokenManager(FakeHttpClient())
    assert manager.cache is not None
