from unittest.mock import AsyncMock

import pytest

from fakes import FakeProvider, FakeSigner, make_api_client
from zuno_sdk import ZunoSDK


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep developer ZUNO_* variables out of config tests."""
    for name in ("ZUNO_API_KEY", "ZUNO_NETWORK", "ZUNO_RPC_URL", "ZUNO_API_BASE_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def signer(provider):
    return FakeSigner(provider)


@pytest.fixture
def api_client():
    return make_api_client()


@pytest.fixture
def sdk_config():
    return {
        "api_key": "test-key",
        "network": "sepolia",
        "retry_policy": {"max_retries": 3, "initial_delay_seconds": 1.0},
        "confirmation_timeout_seconds": 5,
        "poll_interval_seconds": 0.01,
    }


@pytest.fixture
def sdk(sdk_config, provider, signer, api_client, no_sleep):
    return ZunoSDK(sdk_config, provider=provider, signer=signer, api_client=api_client, sleep=no_sleep)


@pytest.fixture
def read_only_sdk(sdk_config, provider, api_client, no_sleep):
    return ZunoSDK(sdk_config, provider=provider, api_client=api_client, sleep=no_sleep)
