"""
Collection Module

Creating ERC721/ERC1155 collections through the platform factories,
minting into them, and probing arbitrary contracts for their token standard.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from eth_utils import to_checksum_address

from ..core.errors import ErrorCode, ErrorContext, ReadError, ValidationError
from ..core.models import ContractType
from ..core.validation import (
    check_wei_precision,
    parse_ether,
    validate_address,
    validate_positive_int,
    validate_token_id,
)
from ..types import (
    BatchMintERC721Params,
    CollectionInfo,
    CollectionResult,
    CreateCollectionParams,
    MintERC1155Params,
    MintERC721Params,
    MintResult,
    TokenStandard,
    TxResult,
    VerificationResult,
    coerce_params,
)
from .base import BaseModule

logger = structlog.stdlib.get_logger(__name__)

ERC721_INTERFACE_ID = "0x80ac58cd"
ERC1155_INTERFACE_ID = "0xd9b67a26"

MAX_ROYALTY_BPS = 10_000

ERC165_ABI = [
    {
        "type": "function",
        "name": "supportsInterface",
        "stateMutability": "view",
        "inputs": [{"name": "interfaceId", "type": "bytes4"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

METADATA_ABI = [
    {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": output}],
    }
    for name, output in (("name", "string"), ("symbol", "string"), ("totalSupply", "uint256"))
]

TRANSFER_EVENTS = ("Transfer",)

_COLLECTION_EVENTS = {
    ContractType.ERC721_COLLECTION_FACTORY: ("ERC721CollectionCreated", "CollectionCreated"),
    ContractType.ERC1155_COLLECTION_FACTORY: ("ERC1155CollectionCreated", "CollectionCreated"),
}


def _optional_wei(value: Any, name: str) -> int:
    """Ether amount to wei where zero or absent means free."""
    if value is None or value == "":
        return 0
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} is not a number: {value!r}", field_name=name, code=ErrorCode.INVALID_AMOUNT)
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{name} must not be negative", field_name=name, code=ErrorCode.INVALID_AMOUNT)
    check_wei_precision(amount, name)
    return parse_ether(amount)


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer", field_name=name)
    return value


class CollectionModule(BaseModule):
    """Collection creation, minting and inspection."""

    module_name = "Collection"

    async def create_erc721_collection(self, params: Any) -> CollectionResult:
        return await self._create_collection(
            params, ContractType.ERC721_COLLECTION_FACTORY, "createERC721Collection"
        )

    async def create_erc1155_collection(self, params: Any) -> CollectionResult:
        return await self._create_collection(
            params, ContractType.ERC1155_COLLECTION_FACTORY, "createERC1155Collection"
        )

    async def mint_erc721(self, params: Any) -> MintResult:
        """
        Mint one token; ``value`` (ether) pays the mint price.

        The token id is read from the collection's ``Transfer`` log
        (third indexed topic).
        """
        params = coerce_params(MintERC721Params, params)
        collection = validate_address(params.collection_address, "collection_address")
        recipient = validate_address(params.recipient, "recipient")
        value_wei = _optional_wei(params.value, "value") if params.value is not None else None

        self.ensure_signer()
        handle = await self.get_contract_at(collection, write=True)
        receipt = await self.send(handle, "mint", (recipient,), self.with_value(params.options, value_wei))

        log = self.find_log(receipt, handle, TRANSFER_EVENTS, min_topics=4)
        token_id = str(int(log.topics[3], 16))
        logger.info("token minted", collection=collection, token_id=token_id, recipient=recipient)
        return MintResult(token_id=token_id, tx=receipt)

    async def batch_mint_erc721(self, params: Any) -> TxResult:
        params = coerce_params(BatchMintERC721Params, params)
        collection = validate_address(params.collection_address, "collection_address")
        recipient = validate_address(params.recipient, "recipient")
        amount = validate_positive_int(params.amount, "amount")
        value_wei = _optional_wei(params.value, "value") if params.value is not None else None

        self.ensure_signer()
        handle = await self.get_contract_at(collection, write=True)
        receipt = await self.send(
            handle,
            "batchMintERC721",
            (recipient, amount),
            self.with_value(params.options, value_wei),
        )
        return TxResult(tx=receipt)

    async def mint_erc1155(self, params: Any) -> TxResult:
        params = coerce_params(MintERC1155Params, params)
        collection = validate_address(params.collection_address, "collection_address")
        recipient = validate_address(params.recipient, "recipient")
        token_id = validate_token_id(params.token_id)
        amount = validate_positive_int(params.amount, "amount")

        self.ensure_signer()
        handle = await self.get_contract_at(collection, write=True)
        receipt = await self.send(
            handle,
            "mint",
            (recipient, token_id, amount, params.data or "0x"),
            params.options,
        )
        return TxResult(tx=receipt)

    async def verify_collection(self, address: str) -> VerificationResult:
        """Probe ``address`` via ERC-165; contracts that do not answer are not collections."""
        address = validate_address(address, "address")
        token_type = await self._detect_standard(address)
        return VerificationResult(is_valid=token_type != TokenStandard.UNKNOWN, token_type=token_type)

    async def get_collection_info(self, address: str) -> CollectionInfo:
        """Name, symbol and total supply, read concurrently."""
        address = validate_address(address, "address")
        token_type = await self._detect_standard(address)
        if token_type == TokenStandard.UNKNOWN:
            raise ReadError(
                "Unable to detect token standard",
                context=ErrorContext(contract=address, network=self.network, module=self.module_name),
            )

        handle = await self.get_contract_at(address, abi=METADATA_ABI, contract_type=token_type.value)
        name, symbol, total_supply = await asyncio.gather(
            self.call(handle, "name"),
            self.call(handle, "symbol"),
            self.call(handle, "totalSupply"),
        )
        return CollectionInfo(
            address=address,
            name=name,
            symbol=symbol,
            total_supply=str(total_supply),
            token_type=token_type,
        )

    async def _detect_standard(self, address: str) -> TokenStandard:
        handle = await self.get_contract_at(address, abi=ERC165_ABI, contract_type="ERC165")
        probes = (
            (ERC721_INTERFACE_ID, TokenStandard.ERC721),
            (ERC1155_INTERFACE_ID, TokenStandard.ERC1155),
        )
        for interface_id, standard in probes:
            try:
                supported = await self.call(handle, "supportsInterface", (interface_id,))
            except ReadError as e:
                if not e.reverted:
                    raise
                # No ERC-165 support at all
                return TokenStandard.UNKNOWN
            if supported:
                return standard
        return TokenStandard.UNKNOWN

    async def _create_collection(
        self,
        params: Any,
        factory_type: ContractType,
        method: str,
    ) -> CollectionResult:
        params = coerce_params(CreateCollectionParams, params)
        if not params.name or not params.name.strip():
            raise ValidationError("name is required", field_name="name")
        if not params.symbol or not params.symbol.strip():
            raise ValidationError("symbol is required", field_name="symbol")
        max_supply = validate_positive_int(params.max_supply, "max_supply")
        royalty_fee = _non_negative_int(params.royalty_fee, "royalty_fee")
        if royalty_fee > MAX_ROYALTY_BPS:
            raise ValidationError(f"royalty_fee must be at most {MAX_ROYALTY_BPS} basis points", field_name="royalty_fee")
        owner = validate_address(params.owner, "owner") if params.owner else None

        struct = {
            "name": params.name,
            "symbol": params.symbol,
            "owner": owner,
            "description": params.description or "",
            "mintPrice": _optional_wei(params.mint_price, "mint_price"),
            "royaltyFee": royalty_fee,
            "maxSupply": max_supply,
            "mintLimitPerWallet": _non_negative_int(params.mint_limit_per_wallet, "mint_limit_per_wallet"),
            "mintStartTime": _non_negative_int(params.mint_start_time, "mint_start_time"),
            "allowlistMintPrice": _optional_wei(params.allowlist_mint_price, "allowlist_mint_price"),
            "publicMintPrice": _optional_wei(params.public_mint_price, "public_mint_price"),
            "allowlistStageDuration": _non_negative_int(params.allowlist_stage_duration, "allowlist_stage_duration"),
            "tokenURI": params.token_uri or "",
        }

        signer = self.ensure_signer()
        if struct["owner"] is None:
            struct["owner"] = await signer.get_address()

        factory = await self.get_contract(factory_type, write=True)
        receipt = await self.send(factory, method, (struct,), params.options)

        topic = self.extract_topic(receipt, factory, _COLLECTION_EVENTS[factory_type])
        address = to_checksum_address("0x" + topic[-40:])
        logger.info("collection created", factory=factory.contract_type, address=address, name=params.name)
        return CollectionResult(address=address, tx=receipt)
