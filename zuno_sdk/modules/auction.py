"""
Auction Module

English (ascending bid) and Dutch (descending price) auctions. Both kinds
share the ``createAuction`` entry point and differ in the auction type
argument and in how the price arguments are read.
"""

from datetime import datetime, timezone
from typing import Any

import structlog

from ..core.contract import ContractHandle
from ..core.errors import ValidationError
from ..core.models import ContractType, TransactionOptions, TransactionReceipt
from ..core.validation import (
    format_ether,
    parse_ether,
    validate_address,
    validate_amount,
    validate_auction_id,
    validate_duration,
    validate_positive_int,
    validate_token_id,
)
from ..types import (
    Auction,
    AuctionKind,
    AuctionResult,
    AuctionStatus,
    CreateDutchAuctionParams,
    CreateEnglishAuctionParams,
    PlaceBidParams,
    coerce_params,
)
from .base import BaseModule

logger = structlog.stdlib.get_logger(__name__)

AUCTION_TYPE_ENGLISH = 0
AUCTION_TYPE_DUTCH = 1

AUCTION_EVENTS = ("AuctionCreated",)

_AUCTION_STATUS = {
    0: AuctionStatus.ACTIVE,
    1: AuctionStatus.ENDED,
    2: AuctionStatus.CANCELLED,
}

_AUCTION_FIELDS = (
    "seller",
    "nftAddress",
    "tokenId",
    "startPrice",
    "endPrice",
    "currentBid",
    "highestBidder",
    "startTime",
    "endTime",
    "status",
)

# Where an auction id may live, most common first
_AUCTION_CANDIDATES = (ContractType.ENGLISH_AUCTION, ContractType.DUTCH_AUCTION)

_KIND_BY_CONTRACT = {
    ContractType.ENGLISH_AUCTION: AuctionKind.ENGLISH,
    ContractType.DUTCH_AUCTION: AuctionKind.DUTCH,
}


class AuctionModule(BaseModule):
    """Auction creation, bidding, settlement and reads."""

    module_name = "Auction"

    async def create_english_auction(self, params: Any) -> AuctionResult:
        """
        Start an English auction.

        Args:
            params: ``CreateEnglishAuctionParams`` or a mapping of its fields

        Returns:
            AuctionResult with the decimal auction id
        """
        params = coerce_params(CreateEnglishAuctionParams, params)
        nft_address = validate_address(params.nft_address, "nft_address")
        token_id = validate_token_id(params.token_id)
        amount = validate_positive_int(params.amount, "amount")
        validate_amount(params.starting_bid, "starting_bid")
        duration = validate_duration(params.duration)
        reserve_wei = 0
        if params.reserve_price is not None:
            validate_amount(params.reserve_price, "reserve_price")
            reserve_wei = parse_ether(params.reserve_price)
        seller = validate_address(params.seller, "seller") if params.seller else None

        return await self._create_auction(
            ContractType.ENGLISH_AUCTION,
            AUCTION_TYPE_ENGLISH,
            nft_address,
            token_id,
            amount,
            parse_ether(params.starting_bid),
            reserve_wei,
            duration,
            seller,
            params.options,
        )

    async def create_dutch_auction(self, params: Any) -> AuctionResult:
        """Start a Dutch auction whose price falls from ``start_price`` to ``end_price``."""
        params = coerce_params(CreateDutchAuctionParams, params)
        nft_address = validate_address(params.nft_address, "nft_address")
        token_id = validate_token_id(params.token_id)
        amount = validate_positive_int(params.amount, "amount")
        start_price = validate_amount(params.start_price, "start_price")
        end_price = validate_amount(params.end_price, "end_price")
        duration = validate_duration(params.duration)
        if end_price > start_price:
            raise ValidationError("end_price must not exceed start_price", field_name="end_price")
        seller = validate_address(params.seller, "seller") if params.seller else None

        return await self._create_auction(
            ContractType.DUTCH_AUCTION,
            AUCTION_TYPE_DUTCH,
            nft_address,
            token_id,
            amount,
            parse_ether(params.start_price),
            parse_ether(params.end_price),
            duration,
            seller,
            params.options,
        )

    async def place_bid(self, params: Any) -> TransactionReceipt:
        """Bid on an English auction; the bid travels as the transaction value."""
        params = coerce_params(PlaceBidParams, params)
        auction_id = validate_auction_id(params.auction_id)
        validate_amount(params.amount, "amount")

        self.ensure_signer()
        auction = await self.get_contract(ContractType.ENGLISH_AUCTION, write=True)
        return await self.send(
            auction,
            "placeBid",
            (auction_id,),
            self.with_value(params.options, parse_ether(params.amount)),
        )

    async def end_auction(self, auction_id: str, options: Any = None) -> TransactionReceipt:
        """Settle an auction on whichever auction contract holds it."""
        auction_id = validate_auction_id(auction_id)
        options = TransactionOptions.coerce(options)
        self.ensure_signer()

        async def end_on(contract_type: ContractType) -> TransactionReceipt:
            handle = await self.get_contract(contract_type, write=True)
            return await self.send(handle, "endAuction", (auction_id,), options)

        return await self.try_candidates(
            [(ct, end_on) for ct in _AUCTION_CANDIDATES],
            f"end auction {auction_id}",
        )

    async def get_auction(self, auction_id: str) -> Auction:
        auction_id = validate_auction_id(auction_id)

        async def read_from(contract_type: ContractType) -> Auction:
            handle = await self.get_contract(contract_type)
            raw = await self.call(handle, "getAuction", (auction_id,))
            return self._format_auction(auction_id, raw, _KIND_BY_CONTRACT[contract_type])

        return await self.try_candidates(
            [(ct, read_from) for ct in _AUCTION_CANDIDATES],
            f"get auction {auction_id}",
        )

    async def get_current_price(self, auction_id: str) -> str:
        """Current Dutch auction price in ether."""
        auction_id = validate_auction_id(auction_id)
        handle = await self.get_contract(ContractType.DUTCH_AUCTION)
        price = await self.call(handle, "getCurrentPrice", (auction_id,))
        return format_ether(price)

    async def _create_auction(
        self,
        contract_type: ContractType,
        auction_type: int,
        nft_address: str,
        token_id: str,
        amount: int,
        start_wei: int,
        floor_wei: int,
        duration: int,
        seller: Any,
        options: Any,
    ) -> AuctionResult:
        signer = self.ensure_signer()
        seller = seller or await signer.get_address()

        handle = await self.get_contract(contract_type, write=True)
        receipt = await self.send(
            handle,
            "createAuction",
            (nft_address, token_id, amount, start_wei, floor_wei, duration, auction_type, seller),
            options,
        )
        auction_id = self._auction_id(receipt, handle)

        logger.info(
            "auction created",
            auction_id=auction_id,
            contract=handle.contract_type,
            nft_address=nft_address,
            token_id=token_id,
        )
        return AuctionResult(auction_id=auction_id, tx=receipt)

    def _auction_id(self, receipt: TransactionReceipt, handle: ContractHandle) -> str:
        return str(int(self.extract_topic(receipt, handle, AUCTION_EVENTS), 16))

    @staticmethod
    def _format_auction(auction_id: str, raw: Any, kind: AuctionKind) -> Auction:
        data = raw if isinstance(raw, dict) else dict(zip(_AUCTION_FIELDS, raw))
        start_time = int(data.get("startTime", 0))

        auction = Auction(
            id=auction_id,
            type=kind,
            seller=data.get("seller"),
            nft_address=data.get("nftAddress"),
            token_id=str(data.get("tokenId", 0)),
            start_time=start_time,
            end_time=int(data.get("endTime", 0)),
            status=_AUCTION_STATUS.get(int(data.get("status", 0)), AuctionStatus.ACTIVE),
            created_at=datetime.fromtimestamp(start_time, tz=timezone.utc).isoformat(),
        )
        if kind == AuctionKind.ENGLISH:
            auction.starting_bid = format_ether(data.get("startPrice", 0))
            auction.current_bid = format_ether(data.get("currentBid", 0))
            auction.highest_bidder = data.get("highestBidder")
        else:
            auction.start_price = format_ether(data.get("startPrice", 0))
            auction.end_price = format_ether(data.get("endPrice", 0))
        return auction
