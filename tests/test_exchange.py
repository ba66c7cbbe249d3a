"""
Tests for the exchange module: listing, buying, cancelling and reads.
"""

from datetime import datetime, timezone

import pytest

from fakes import (
    COLLECTION_ADDRESS,
    EXCHANGE_ABI,
    EXCHANGE_ADDRESS,
    SELLER_ADDRESS,
    encode_result,
    event_topic,
    address_topic,
    make_log,
    selector_of,
    uint_topic,
)
from zuno_sdk.core.contract import selector
from zuno_sdk.core.errors import LogDecodingError, MissingSignerError, ValidationError
from zuno_sdk.modules.exchange import APPROVAL_ABI
from zuno_sdk.types import ListingStatus, ListNFTParams

LISTING_CREATED = event_topic("ListingCreated(bytes32,address,uint256,address,uint256)")
IS_APPROVED = selector(APPROVAL_ABI[0])
SET_APPROVAL = selector(APPROVAL_ABI[1])
LIST_NFT = selector_of(EXCHANGE_ABI, "listNFT")
S_LISTINGS = selector_of(EXCHANGE_ABI, "s_listings")
LISTING_ID = "0x" + "ab" * 32

LISTING_TYPES = ["address", "uint256", "uint256", "address", "uint256", "uint256", "uint8", "uint256"]


def listing_params(token_id="1", price="1.5", **overrides):
    params = {
        "collection_address": COLLECTION_ADDRESS,
        "token_id": token_id,
        "price": price,
        "duration": 86400,
    }
    params.update(overrides)
    return params


def emit_listing_created(tx):
    """Listing id is the token id word of the listNFT calldata."""
    if tx["to"].lower() != EXCHANGE_ADDRESS.lower() or not tx["data"].startswith(LIST_NFT):
        return []
    token_word = tx["data"][10 + 64:10 + 128]
    return [
        make_log(
            EXCHANGE_ADDRESS,
            LISTING_CREATED,
            "0x" + token_word,
            address_topic(COLLECTION_ADDRESS),
            "0x" + token_word,
        )
    ]


def approve(provider, approved=True):
    provider.respond(COLLECTION_ADDRESS, IS_APPROVED, encode_result(["bool"], [approved]))


class TestListNFT:

    @pytest.mark.asyncio
    async def test_without_signer_fails_before_any_network_call(self, read_only_sdk, provider, api_client):
        with pytest.raises(MissingSignerError):
            await read_only_sdk.exchange.list_nft(listing_params())

        api_client.get_contract_info.assert_not_awaited()
        assert provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"collection_address": "0x1234"},
            {"price": "0"},
            {"price": "abc"},
            {"duration": 0},
            {"token_id": ""},
            {"token_id": "abc"},
            {"token_id": "1.5"},
            {"token_id": "-1"},
            {"token_id": hex(2**256)},
            {"price": "0.0000000000000000001"},
            {"options": {"gasLimit": 1}},
            {"options": "fast"},
        ],
    )
    async def test_invalid_params_fail_before_any_network_call(self, sdk, provider, signer, api_client, overrides):
        with pytest.raises(ValidationError):
            await sdk.exchange.list_nft(listing_params(**overrides))

        api_client.get_contract_info.assert_not_awaited()
        assert provider.calls == []
        assert signer.sent == []

    @pytest.mark.asyncio
    async def test_unknown_param_fields_are_rejected(self, sdk):
        with pytest.raises(ValidationError, match="colour"):
            await sdk.exchange.list_nft(listing_params(colour="red"))

    @pytest.mark.asyncio
    async def test_approves_exchange_before_listing(self, sdk, provider, signer):
        approve(provider, False)
        signer.logs_for = emit_listing_created

        result = await sdk.exchange.list_nft(listing_params(token_id="7"))

        assert [tx["data"][:10] for tx in signer.sent] == [SET_APPROVAL, LIST_NFT]
        assert signer.sent[0]["to"] == COLLECTION_ADDRESS
        assert result.listing_id == uint_topic(7)
        assert result.tx.is_success
        # the approval check asks about the seller and the exchange
        approval_call = provider.calls[0][0]
        assert SELLER_ADDRESS[2:].lower() in approval_call["data"].lower()
        assert EXCHANGE_ADDRESS[2:].lower() in approval_call["data"].lower()

    @pytest.mark.asyncio
    async def test_existing_approval_is_reused(self, sdk, provider, signer):
        approve(provider)
        signer.logs_for = emit_listing_created

        await sdk.exchange.list_nft(ListNFTParams(COLLECTION_ADDRESS, 2, "0.25", 3600))

        assert len(signer.sent) == 1
        listing_tx = signer.sent[0]
        assert listing_tx["to"] == EXCHANGE_ADDRESS
        assert listing_tx["value"] == 0

    @pytest.mark.asyncio
    async def test_missing_listing_event_is_log_decoding_error(self, sdk, provider, signer):
        approve(provider)

        with pytest.raises(LogDecodingError) as excinfo:
            await sdk.exchange.list_nft(listing_params())

        assert excinfo.value.context.tx_hash == "0x" + f"{1:064x}"
        assert excinfo.value.receipt is not None


class TestBatchListNFT:

    @pytest.mark.asyncio
    async def test_results_keep_input_order_and_report_failures(self, sdk, provider, signer):
        approve(provider)
        signer.logs_for = emit_listing_created
        params = [listing_params(token_id=str(i)) for i in range(5)]
        params[2] = listing_params(token_id="2", price="0")

        results = await sdk.exchange.batch_list_nft(params)

        assert [r.index for r in results] == [0, 1, 2, 3, 4]
        assert [r.success for r in results] == [True, True, False, True, True]
        assert isinstance(results[2].error, ValidationError)
        assert results[4].data.listing_id == uint_topic(4)
        assert len(signer.sent_to(EXCHANGE_ADDRESS, LIST_NFT)) == 4

    @pytest.mark.asyncio
    async def test_halt_on_error_stops_launching_operations(self, sdk, provider, signer):
        approve(provider)
        signer.logs_for = emit_listing_created
        params = [listing_params(price="-1")] + [listing_params(token_id=str(i)) for i in range(1, 4)]

        with pytest.raises(ValidationError):
            await sdk.exchange.batch_list_nft(params, continue_on_error=False, max_concurrency=1)

        assert signer.sent == []

    @pytest.mark.asyncio
    async def test_empty_batch_is_rejected(self, sdk):
        with pytest.raises(ValidationError):
            await sdk.exchange.batch_list_nft([])

    @pytest.mark.asyncio
    async def test_concurrency_must_be_positive(self, sdk, provider):
        approve(provider)

        with pytest.raises(ValidationError):
            await sdk.exchange.batch_list_nft([listing_params()], max_concurrency=0)


class TestTrading:

    @pytest.mark.asyncio
    async def test_buy_attaches_value_in_wei(self, sdk, signer):
        await sdk.exchange.buy_nft({"listing_id": LISTING_ID, "value": "1.5"})

        tx = signer.sent[0]
        assert tx["data"].startswith(selector_of(EXCHANGE_ABI, "buyNFT"))
        assert tx["data"].endswith("ab" * 32)
        assert tx["value"] == 1_500_000_000_000_000_000

    @pytest.mark.asyncio
    async def test_buy_with_bad_value_is_rejected(self, sdk, signer):
        with pytest.raises(ValidationError):
            await sdk.exchange.buy_nft({"listing_id": LISTING_ID, "value": "-1"})
        assert signer.sent == []

    @pytest.mark.asyncio
    async def test_batch_buy_sends_one_transaction(self, sdk, signer):
        ids = ["0x" + "01" * 32, "0x" + "02" * 32]

        result = await sdk.exchange.batch_buy_nft({"listing_ids": ids, "value": "2"})

        assert result.tx.is_success
        assert len(signer.sent) == 1
        assert signer.sent[0]["data"].startswith(selector_of(EXCHANGE_ABI, "batchBuyNFT"))
        assert signer.sent[0]["value"] == 2 * 10**18

    @pytest.mark.asyncio
    async def test_cancel_listing(self, sdk, signer):
        await sdk.exchange.cancel_listing(LISTING_ID)

        assert signer.sent[0]["data"].startswith(selector_of(EXCHANGE_ABI, "cancelListing"))

    @pytest.mark.asyncio
    async def test_batch_cancel_requires_ids(self, sdk, signer):
        with pytest.raises(ValidationError):
            await sdk.exchange.batch_cancel_listing({"listing_ids": []})

        await sdk.exchange.batch_cancel_listing({"listing_ids": [LISTING_ID]})
        assert signer.sent[0]["data"].startswith(selector_of(EXCHANGE_ABI, "batchCancelListing"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("listing_id", ["abc", "1", "0x" + "ab" * 33, "0xzz"])
    async def test_malformed_listing_id_fails_before_any_network_call(self, sdk, provider, signer, api_client, listing_id):
        with pytest.raises(ValidationError) as excinfo:
            await sdk.exchange.buy_nft({"listing_id": listing_id, "value": "1"})

        assert excinfo.value.field_name == "listing_id"
        api_client.get_contract_info.assert_not_awaited()
        assert provider.calls == []
        assert signer.sent == []

    @pytest.mark.asyncio
    async def test_bad_cancel_options_fail_before_any_network_call(self, sdk, signer, api_client):
        with pytest.raises(ValidationError) as excinfo:
            await sdk.exchange.cancel_listing(LISTING_ID, {"gasLimit": 1})

        assert excinfo.value.field_name == "options"
        api_client.get_contract_info.assert_not_awaited()
        assert signer.sent == []

    @pytest.mark.asyncio
    async def test_options_mapping_reaches_the_transaction(self, sdk, signer):
        await sdk.exchange.buy_nft({"listing_id": LISTING_ID, "value": "1", "options": {"gas_limit": 90000}})

        assert signer.sent[0]["gas"] == 90000
        assert signer.sent[0]["value"] == 10**18

    @pytest.mark.asyncio
    async def test_trading_requires_signer(self, read_only_sdk):
        with pytest.raises(MissingSignerError):
            await read_only_sdk.exchange.buy_nft({"listing_id": LISTING_ID})
        with pytest.raises(MissingSignerError):
            await read_only_sdk.exchange.cancel_listing(LISTING_ID)


class TestReads:

    @pytest.mark.asyncio
    async def test_get_listing_formats_on_chain_record(self, read_only_sdk, provider):
        start = 1_700_000_000
        provider.respond(
            EXCHANGE_ADDRESS,
            S_LISTINGS,
            encode_result(
                LISTING_TYPES,
                [COLLECTION_ADDRESS, 9, 1_500_000_000_000_000_000, SELLER_ADDRESS, 86400, start, 1, 1],
            ),
        )

        listing = await read_only_sdk.exchange.get_listing(LISTING_ID)

        assert listing.id == LISTING_ID
        assert listing.collection_address == COLLECTION_ADDRESS
        assert listing.token_id == "9"
        assert listing.price == "1.5"
        assert listing.seller == SELLER_ADDRESS
        assert listing.status == ListingStatus.ACTIVE
        assert listing.end_time == start + 86400
        assert listing.created_at == datetime.fromtimestamp(start, tz=timezone.utc).isoformat()

    @pytest.mark.asyncio
    async def test_get_listings_by_collection_loads_each_listing(self, read_only_sdk, provider):
        ids = [bytes.fromhex("01" * 32), bytes.fromhex("02" * 32)]
        provider.respond(
            EXCHANGE_ADDRESS,
            selector_of(EXCHANGE_ABI, "getListingsByCollection"),
            encode_result(["bytes32[]"], [ids]),
        )

        def listing_for(tx):
            sold = tx["data"].endswith("02" * 32)
            return encode_result(
                LISTING_TYPES,
                [COLLECTION_ADDRESS, 1, 10**18, SELLER_ADDRESS, 60, 1_700_000_000, 2 if sold else 1, 1],
            )

        provider.respond(EXCHANGE_ADDRESS, S_LISTINGS, listing_for)

        listings = await read_only_sdk.exchange.get_listings(COLLECTION_ADDRESS)

        assert [item.id for item in listings] == ["0x" + "01" * 32, "0x" + "02" * 32]
        assert [item.status for item in listings] == [ListingStatus.ACTIVE, ListingStatus.SOLD]

    @pytest.mark.asyncio
    async def test_get_listings_by_seller_with_none(self, read_only_sdk, provider):
        provider.respond(
            EXCHANGE_ADDRESS,
            selector_of(EXCHANGE_ABI, "getListingsBySeller"),
            encode_result(["bytes32[]"], [[]]),
        )

        assert await read_only_sdk.exchange.get_listings_by_seller(SELLER_ADDRESS) == []
