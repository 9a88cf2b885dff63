"""Shared test fixtures for the WeCom gateway.

Fixture tiers:
  platform_config: credentials for one fake corp (valid 43-char AES key)
  fake_http      : FakeHttpClient with per-path response queues
  clock          : FakeClock driving token/ticket expiry
  tokens         : AccessTokenManager over fake_http + in-memory cache
"""
from __future__ import annotations

import os

# Must be set before config.settings is imported anywhere.
os.environ.setdefault("LOGGER__TO_FILE", "false")
os.environ.setdefault("LOGGER__LEVEL", "DEBUG")

import pytest
from sanic import Sanic

from adapters.qywechat import AccessTokenManager
from models.wecom import PlatformConfig
from utils.cache import MemoryTokenCache

from helpers.fake_http import FakeClock, FakeHttpClient
from helpers.wecom import AGENT_ID, CORP_ID, ENCODING_AES_KEY, SECRET, TOKEN

Sanic.test_mode = True


@pytest.fixture
def platform_config() -> PlatformConfig:
    return PlatformConfig(
        corp_id=CORP_ID,
        agent_id=AGENT_ID,
        secret=SECRET,
        token=TOKEN,
        encoding_aes_key=ENCODING_AES_KEY,
    )


@pytest.fixture
def fake_http() -> FakeHttpClient:
    return FakeHttpClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokens(fake_http: FakeHttpClient, clock: FakeClock) -> AccessTokenManager:
    return AccessTokenManager(fake_http, MemoryTokenCache(clock), refresh_margin=300, clock=clock)

