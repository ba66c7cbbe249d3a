import httpx
import pytest
from structlog.testing import capture_logs

from fakes import ERC721_ABI
from zuno_sdk.cache import TTLCache
from zuno_sdk.core.errors import ApiRequestError, ConfigurationError
from zuno_sdk.core.models import ContractType
from zuno_sdk.providers.api_client import ZunoAPIClient

BASE_URL = "https://abi.test/v1"
RECORD = {
    "address": "0x1234567890123456789012345678901234567890",
    "abi": ERC721_ABI,
    "network": "sepolia",
    "contractType": "ERC721",
}


def make_client(handler, cache=None, network="sepolia"):
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return ZunoAPIClient("secret-key", base_url=BASE_URL, network=network, cache=cache, client=http), requests


@pytest.mark.asyncio
async def test_contract_info_sends_key_and_network():
    client, requests = make_client(lambda r: httpx.Response(200, json=RECORD))

    record = await client.get_contract_info(ContractType.ERC721)

    assert record == RECORD
    request = requests[0]
    assert request.url.path == "/v1/contracts/ERC721"
    assert request.url.params["network"] == "sepolia"
    assert request.headers["X-API-Key"] == "secret-key"
    await client.close()


@pytest.mark.asyncio
async def test_wrapped_responses_are_unwrapped():
    client, _ = make_client(lambda r: httpx.Response(200, json={"success": True, "data": {"abi": ERC721_ABI}}))

    abi = await client.get_abi("ERC721", "polygon")

    assert abi == ERC721_ABI
    await client.close()


@pytest.mark.asyncio
async def test_reported_failure_raises():
    client, _ = make_client(lambda r: httpx.Response(200, json={"success": False, "data": None, "message": "unknown type"}))

    with pytest.raises(ApiRequestError, match="unknown type"):
        await client.get_contract_info("Nope")
    await client.close()


@pytest.mark.asyncio
async def test_lookup_by_address_path():
    client, requests = make_client(lambda r: httpx.Response(200, json=RECORD))

    await client.get_contract_by_address("0x6666666666666666666666666666666666666666", "base")

    assert requests[0].url.path == "/v1/contracts/address/0x6666666666666666666666666666666666666666"
    assert requests[0].url.params["network"] == "base"
    await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("status,transient", [(503, True), (429, True), (500, True), (404, False), (401, False)])
async def test_http_status_sets_transience(status, transient):
    client, _ = make_client(lambda r: httpx.Response(status, json={"error": "nope"}))

    with capture_logs() as logs, pytest.raises(ApiRequestError) as excinfo:
        await client.get_contract_info("ERC721")

    assert excinfo.value.status_code == status
    assert excinfo.value.transient is transient
    assert excinfo.value.details["body"] == {"error": "nope"}
    assert logs[0]["event"] == "abi service error"
    assert logs[0]["status"] == status
    await client.close()


@pytest.mark.asyncio
async def test_connection_errors_are_transient():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(refuse)

    with pytest.raises(ApiRequestError) as excinfo:
        await client.get_contract_info("ERC721")

    assert excinfo.value.transient
    await client.close()


@pytest.mark.asyncio
async def test_malformed_json_is_not_transient():
    client, _ = make_client(lambda r: httpx.Response(200, content=b"<html>"))

    with pytest.raises(ApiRequestError) as excinfo:
        await client.get_contract_info("ERC721")

    assert not excinfo.value.transient
    await client.close()


@pytest.mark.asyncio
async def test_cache_hit_skips_the_request():
    cache = TTLCache(default_ttl=60)
    client, requests = make_client(lambda r: httpx.Response(200, json=RECORD), cache=cache)

    await client.get_contract_info("ERC721")
    again = await client.get_contract_info("ERC721")

    assert again == RECORD
    assert len(requests) == 1
    assert cache.size() == 1
    await client.close()


@pytest.mark.asyncio
async def test_errors_are_not_cached():
    cache = TTLCache(default_ttl=60)
    responses = [httpx.Response(503), httpx.Response(200, json=RECORD)]
    client, requests = make_client(lambda r: responses.pop(0), cache=cache)

    with pytest.raises(ApiRequestError):
        await client.get_contract_info("ERC721")
    assert await client.get_contract_info("ERC721") == RECORD
    assert len(requests) == 2
    await client.close()


@pytest.mark.parametrize("key", ["", "   "])
def test_blank_api_key_is_rejected(key):
    with pytest.raises(ConfigurationError):
        ZunoAPIClient(key)
