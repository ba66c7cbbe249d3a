"""
Exchange Module

Listing, buying and cancelling NFTs on the marketplace exchange.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import structlog

from ..core.contract import ContractHandle
from ..core.errors import ValidationError
from ..core.models import ContractType, TransactionOptions
from ..core.validation import (
    format_ether,
    parse_ether,
    validate_address,
    validate_amount,
    validate_duration,
    validate_listing_id,
    validate_listing_ids,
    validate_token_id,
)
from ..types import (
    BatchBuyNFTParams,
    BatchCancelListingParams,
    BatchResult,
    BuyNFTParams,
    ListingResult,
    ListingStatus,
    ListNFTParams,
    Listing,
    TxResult,
    coerce_params,
)
from .base import BaseModule

logger = structlog.stdlib.get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Operator approval subset of ERC721/ERC1155
APPROVAL_ABI = [
    {
        "type": "function",
        "name": "isApprovedForAll",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "operator", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "setApprovalForAll",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "operator", "type": "address"},
            {"name": "approved", "type": "bool"},
        ],
        "outputs": [],
    },
]

LISTING_EVENTS = ("ListingCreated", "NFTListed", "Listed")

# Exchange enum: Pending, Active, Sold, Failed, Cancelled
_LISTING_STATUS = {
    0: ListingStatus.PENDING,
    1: ListingStatus.ACTIVE,
    2: ListingStatus.SOLD,
    3: ListingStatus.EXPIRED,
    4: ListingStatus.CANCELLED,
}

_LISTING_FIELDS = (
    "contractAddress",
    "tokenId",
    "price",
    "seller",
    "listingDuration",
    "listingStart",
    "status",
    "amount",
)


class ExchangeModule(BaseModule):
    """Marketplace trading operations on the ERC721 exchange."""

    module_name = "Exchange"
    exchange_type = ContractType.ERC721_NFT_EXCHANGE

    async def list_nft(self, params: Any) -> ListingResult:
        """
        List an NFT for sale.

        Approves the exchange as operator for the collection first when
        needed; the listing is only submitted once that approval is mined.

        Args:
            params: ``ListNFTParams`` or a mapping of its fields

        Returns:
            ListingResult with the bytes32 listing id as hex
        """
        params = coerce_params(ListNFTParams, params)
        collection = validate_address(params.collection_address, "collection_address")
        token_id = validate_token_id(params.token_id)
        validate_amount(params.price, "price")
        duration = validate_duration(params.duration)

        signer = self.ensure_signer()
        seller = await signer.get_address()

        exchange = await self.get_contract(self.exchange_type, write=True)
        await self._ensure_approval(collection, seller, exchange.address)

        receipt = await self.send(
            exchange,
            "listNFT",
            (collection, token_id, parse_ether(params.price), duration),
            params.options,
        )
        listing_id = self.extract_topic(receipt, exchange, LISTING_EVENTS)

        logger.info("nft listed", listing_id=listing_id, collection=collection, token_id=token_id)
        return ListingResult(listing_id=listing_id, tx=receipt)

    async def batch_list_nft(
        self,
        params_list: Sequence[Any],
        continue_on_error: bool = True,
        max_concurrency: Optional[int] = None,
    ) -> List[BatchResult[ListingResult]]:
        """List several NFTs concurrently; results keep the input order."""
        if not params_list:
            raise ValidationError("Parameters list cannot be empty", field_name="params_list")

        operations = [lambda p=p: self.list_nft(p) for p in params_list]
        return await self.batch_execute(
            operations,
            continue_on_error=continue_on_error,
            max_concurrency=max_concurrency,
        )

    async def buy_nft(self, params: Any) -> TxResult:
        """Buy a listed NFT; ``value`` (ether) is attached to the purchase."""
        params = coerce_params(BuyNFTParams, params)
        listing_id = validate_listing_id(params.listing_id)
        value_wei = self._value_wei(params.value)

        self.ensure_signer()
        exchange = await self.get_contract(self.exchange_type, write=True)
        receipt = await self.send(exchange, "buyNFT", (listing_id,), self.with_value(params.options, value_wei))
        return TxResult(tx=receipt)

    async def batch_buy_nft(self, params: Any) -> TxResult:
        """Buy several listings in one transaction."""
        params = coerce_params(BatchBuyNFTParams, params)
        listing_ids = validate_listing_ids(params.listing_ids)
        value_wei = self._value_wei(params.value)

        self.ensure_signer()
        exchange = await self.get_contract(self.exchange_type, write=True)
        receipt = await self.send(
            exchange,
            "batchBuyNFT",
            (listing_ids,),
            self.with_value(params.options, value_wei),
        )
        return TxResult(tx=receipt)

    async def cancel_listing(self, listing_id: str, options: Any = None) -> TxResult:
        listing_id = validate_listing_id(listing_id)
        options = TransactionOptions.coerce(options)

        self.ensure_signer()
        exchange = await self.get_contract(self.exchange_type, write=True)
        receipt = await self.send(exchange, "cancelListing", (listing_id,), options)
        return TxResult(tx=receipt)

    async def batch_cancel_listing(self, params: Any) -> TxResult:
        params = coerce_params(BatchCancelListingParams, params)
        listing_ids = validate_listing_ids(params.listing_ids)

        self.ensure_signer()
        exchange = await self.get_contract(self.exchange_type, write=True)
        receipt = await self.send(exchange, "batchCancelListing", (listing_ids,), params.options)
        return TxResult(tx=receipt)

    async def get_listing(self, listing_id: str) -> Listing:
        """Read a listing from the exchange's ``s_listings`` mapping."""
        listing_id = validate_listing_id(listing_id)
        exchange = await self.get_contract(self.exchange_type)
        raw = await self.call(exchange, "s_listings", (listing_id,))
        return self._format_listing(listing_id, raw)

    async def get_listings(self, collection_address: str) -> List[Listing]:
        """All listings for a collection."""
        collection = validate_address(collection_address, "collection_address")
        exchange = await self.get_contract(self.exchange_type)
        listing_ids = await self.call(exchange, "getListingsByCollection", (collection,))
        return await self._load_listings(exchange, listing_ids)

    async def get_listings_by_seller(self, seller: str) -> List[Listing]:
        """All listings created by ``seller``."""
        seller = validate_address(seller, "seller")
        exchange = await self.get_contract(self.exchange_type)
        listing_ids = await self.call(exchange, "getListingsBySeller", (seller,))
        return await self._load_listings(exchange, listing_ids)

    async def _load_listings(self, exchange: ContractHandle, listing_ids: Sequence[str]) -> List[Listing]:
        async def load(listing_id: str) -> Listing:
            raw = await self.call(exchange, "s_listings", (listing_id,))
            return self._format_listing(listing_id, raw)

        return list(await asyncio.gather(*(load(i) for i in listing_ids or ())))

    async def _ensure_approval(self, collection: str, owner: str, operator: str) -> None:
        """Approve ``operator`` for all of ``owner``'s tokens in ``collection`` if needed."""
        nft = await self.get_contract_at(collection, write=True, abi=APPROVAL_ABI, contract_type=ContractType.ERC721)
        approved = await self.call(nft, "isApprovedForAll", (owner, operator))
        if approved:
            return

        logger.info("approving exchange for collection", collection=collection, operator=operator)
        await self.send(nft, "setApprovalForAll", (operator, True))

    @staticmethod
    def _value_wei(value: Any) -> Optional[int]:
        if value is None:
            return None
        validate_amount(value, "value")
        return parse_ether(value)

    @staticmethod
    def _format_listing(listing_id: str, raw: Any) -> Listing:
        if isinstance(raw, dict):
            data = raw
        else:
            data = dict(zip(_LISTING_FIELDS, raw))

        start_time = int(data.get("listingStart", 0))
        end_time = start_time + int(data.get("listingDuration", 0))

        return Listing(
            id=listing_id,
            seller=data.get("seller", ZERO_ADDRESS),
            collection_address=data.get("contractAddress", ZERO_ADDRESS),
            token_id=str(data.get("tokenId", 0)),
            price=format_ether(data.get("price", 0)),
            payment_token=ZERO_ADDRESS,
            start_time=start_time,
            end_time=end_time,
            status=_LISTING_STATUS.get(int(data.get("status", 1)), ListingStatus.ACTIVE),
            amount=int(data.get("amount", 1) or 1),
            created_at=datetime.fromtimestamp(start_time, tz=timezone.utc).isoformat(),
        )
