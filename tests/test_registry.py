import asyncio

import pytest

from fakes import COLLECTION_ABI, EXCHANGE_ADDRESS, FakeProvider, FakeSigner, make_api_client
from zuno_sdk.core.errors import MissingProviderError
from zuno_sdk.core.models import ContractType
from zuno_sdk.core.registry import ContractRegistry
from zuno_sdk.core.resolver import ContractResolver


def make_registry():
    api_client = make_api_client()
    return ContractRegistry(ContractResolver(api_client)), api_client


@pytest.mark.asyncio
async def test_identical_requests_share_one_handle():
    registry, api_client = make_registry()
    provider = FakeProvider()

    first = await registry.get_contract(ContractType.ERC721_NFT_EXCHANGE, "sepolia", provider=provider)
    second = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)

    assert first is second
    assert first.address == EXCHANGE_ADDRESS
    assert registry.handle_count() == 1
    api_client.get_contract_info.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_handle():
    registry, api_client = make_registry()
    provider = FakeProvider()

    handles = await asyncio.gather(*(
        registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider) for _ in range(4)
    ))

    assert all(h is handles[0] for h in handles)
    assert api_client.get_contract_info.await_count == 1


@pytest.mark.asyncio
async def test_signer_and_provider_are_part_of_the_key():
    registry, api_client = make_registry()
    provider = FakeProvider()
    signer_a = FakeSigner(provider)
    signer_b = FakeSigner(provider)

    read = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)
    write_a = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider, signer=signer_a)
    write_b = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider, signer=signer_b)

    assert len({id(read), id(write_a), id(write_b)}) == 3
    assert write_a.signer is signer_a
    assert not read.has_signer
    # the descriptor is resolved once and shared
    assert api_client.get_contract_info.await_count == 1


@pytest.mark.asyncio
async def test_signer_alone_supplies_the_provider():
    registry, _ = make_registry()
    provider = FakeProvider()

    handle = await registry.get_contract("ERC721NFTExchange", "sepolia", signer=FakeSigner(provider))

    assert handle.provider is provider


@pytest.mark.asyncio
async def test_missing_provider_raises_before_resolution():
    registry, api_client = make_registry()

    with pytest.raises(MissingProviderError):
        await registry.get_contract("ERC721NFTExchange", "sepolia")

    api_client.get_contract_info.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_cache_rebuilds_handles_from_fresh_records():
    registry, api_client = make_registry()
    provider = FakeProvider()

    before = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)
    registry.clear_cache()
    after = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)

    assert before is not after
    assert api_client.get_contract_info.await_count == 2


@pytest.mark.asyncio
async def test_clearing_resolver_directly_invalidates_handles():
    registry, _ = make_registry()
    provider = FakeProvider()

    before = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)
    registry.resolver.clear()
    after = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)

    assert before is not after


@pytest.mark.asyncio
async def test_drop_handles_keeps_resolved_records():
    registry, api_client = make_registry()
    provider = FakeProvider()

    before = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)
    registry.drop_handles()
    after = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)

    assert before is not after
    assert registry.handle_count() == 1
    api_client.get_contract_info.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_contract_at_caches_by_address():
    registry, api_client = make_registry()
    provider = FakeProvider()
    collection = "0x6666666666666666666666666666666666666666"

    first = await registry.get_contract_at(collection, "sepolia", provider=provider)
    second = await registry.get_contract_at(collection, "sepolia", provider=provider)

    assert first is second
    assert first.abi == COLLECTION_ABI
    api_client.get_contract_by_address.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_contract_at_with_abi_is_not_cached():
    registry, api_client = make_registry()
    provider = FakeProvider()
    collection = "0x6666666666666666666666666666666666666666"
    abi = COLLECTION_ABI[:1]

    first = await registry.get_contract_at(collection, "sepolia", provider=provider, abi=abi)
    second = await registry.get_contract_at(collection, "sepolia", provider=provider, abi=abi)

    assert first is not second
    assert registry.handle_count() == 0
    api_client.get_contract_by_address.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_during_resolution_does_not_cache_stale_handle():
    gate = asyncio.Event()
    registry, api_client = make_registry()
    provider = FakeProvider()
    original = api_client.get_contract_info.side_effect
    addresses = iter(["0x1111111111111111111111111111111111111111", EXCHANGE_ADDRESS])

    async def redeployed(contract_type, network):
        address = next(addresses)
        if address != EXCHANGE_ADDRESS:
            await gate.wait()
        return dict(original(contract_type, network), address=address)

    api_client.get_contract_info.side_effect = redeployed

    pending = asyncio.create_task(registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider))
    await asyncio.sleep(0)
    registry.clear_cache()
    gate.set()
    stale = await pending

    fresh = await registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider)

    assert stale.address == "0x1111111111111111111111111111111111111111"
    assert fresh.address == EXCHANGE_ADDRESS
    assert api_client.get_contract_info.await_count == 2
    assert registry.handle_count() == 1


@pytest.mark.asyncio
async def test_drop_during_resolution_does_not_cache_handle():
    gate = asyncio.Event()
    registry, api_client = make_registry()
    provider = FakeProvider()
    original = api_client.get_contract_info.side_effect

    async def slow_contract_info(contract_type, network):
        await gate.wait()
        return original(contract_type, network)

    api_client.get_contract_info.side_effect = slow_contract_info

    pending = asyncio.create_task(registry.get_contract("ERC721NFTExchange", "sepolia", provider=provider))
    await asyncio.sleep(0)
    registry.drop_handles()
    gate.set()
    await pending

    assert registry.handle_count() == 0
