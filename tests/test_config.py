import pytest
from pydantic import ValidationError as PydanticValidationError

from zuno_sdk.config import NETWORKS, RetrySettings, SDKConfig
from zuno_sdk.core.retry import BackoffKind


def test_defaults():
    config = SDKConfig(api_key="key", network="sepolia")

    assert config.chain_id == 11155111
    assert config.retry_policy.max_retries == 3
    assert config.cache.ttl_seconds == 300
    assert config.confirmation_timeout_seconds == 300
    assert config.batch_max_concurrency == 3
    assert not config.configure_logging


@pytest.mark.parametrize("network,chain_id", [(" Polygon ", 137), ("BASE", 8453), ("31337", 31337), (84532, 84532)])
def test_network_is_normalized(network, chain_id):
    assert SDKConfig(api_key="key", network=network).chain_id == chain_id


@pytest.mark.parametrize("network", ["", "moonnet", "0", "-5", True])
def test_unknown_network_is_rejected(network):
    with pytest.raises(PydanticValidationError):
        SDKConfig(api_key="key", network=network)


@pytest.mark.parametrize("key", ["", "   "])
def test_blank_api_key_is_rejected(key):
    with pytest.raises(PydanticValidationError):
        SDKConfig(api_key=key, network="sepolia")


def test_log_level_is_uppercased_and_checked():
    assert SDKConfig(api_key="key", network="sepolia", log_level="debug").log_level == "DEBUG"
    with pytest.raises(PydanticValidationError):
        SDKConfig(api_key="key", network="sepolia", log_level="loud")


def test_retry_settings_build_policy():
    policy = RetrySettings(max_retries=5, initial_delay_seconds=0.5, backoff="fixed").to_policy()

    assert policy.max_attempts == 6
    assert policy.backoff == BackoffKind.FIXED
    assert policy.get_delay(1) == 1.0


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("ZUNO_API_KEY", "env-key")
    monkeypatch.setenv("ZUNO_NETWORK", "mainnet")
    monkeypatch.setenv("ZUNO_RETRY_POLICY__MAX_RETRIES", "1")
    monkeypatch.setenv("ZUNO_CACHE__TTL_SECONDS", "30")

    config = SDKConfig()

    assert config.api_key == "env-key"
    assert config.chain_id == NETWORKS["mainnet"]
    assert config.retry_policy.max_retries == 1
    assert config.cache.ttl_seconds == 30


def test_explicit_values_beat_environment(monkeypatch):
    monkeypatch.setenv("ZUNO_NETWORK", "mainnet")

    assert SDKConfig(api_key="key", network="sepolia").network == "sepolia"
