"""
Marketplace parameter, entity and result types.

Prices and bids are ether amounts (``"1.5"``); the modules convert them to
wei. Entities are projections of on-chain state and are never stored.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar, Union

from .core.errors import ValidationError, ZunoSDKError
from .core.models import TransactionOptions, TransactionReceipt
from .core.validation import Amount

T = TypeVar("T")
P = TypeVar("P")

TokenId = Union[str, int]
Options = Union[TransactionOptions, Mapping[str, Any], None]


def coerce_params(params_cls: Type[P], params: Any) -> P:
    """
    Accept a params dataclass or a mapping of its fields.

    Transaction options are coerced here too, so a bad options mapping
    fails with the rest of the input checks.
    """
    if isinstance(params, params_cls):
        return _with_options(params)
    if isinstance(params, Mapping):
        known = {f.name for f in fields(params_cls)}
        unknown = set(params) - known
        if unknown:
            raise ValidationError(
                f"Unknown {params_cls.__name__} fields: {', '.join(sorted(unknown))}",
                field_name=sorted(unknown)[0],
            )
        try:
            coerced = params_cls(**params)
        except TypeError as e:
            raise ValidationError(f"Invalid {params_cls.__name__}: {e}") from e
        return _with_options(coerced)
    raise ValidationError(f"Expected {params_cls.__name__}, got {type(params).__name__}")


def _with_options(params: P) -> P:
    if not hasattr(params, "options") or isinstance(params.options, TransactionOptions):
        return params
    return replace(params, options=TransactionOptions.coerce(params.options))


# Exchange
@dataclass
class ListNFTParams:
    collection_address: str
    token_id: TokenId
    price: Amount
    duration: int                               # Seconds
    options: Options = None


@dataclass
class BuyNFTParams:
    listing_id: str
    value: Optional[Amount] = None              # Ether attached to the purchase
    options: Options = None


@dataclass
class BatchBuyNFTParams:
    listing_ids: List[str]
    value: Optional[Amount] = None
    options: Options = None


@dataclass
class BatchCancelListingParams:
    listing_ids: List[str]
    options: Options = None


# Auctions
@dataclass
class CreateEnglishAuctionParams:
    nft_address: str
    token_id: TokenId
    starting_bid: Amount
    duration: int
    amount: int = 1
    reserve_price: Optional[Amount] = None
    seller: Optional[str] = None
    options: Options = None


@dataclass
class CreateDutchAuctionParams:
    nft_address: str
    token_id: TokenId
    start_price: Amount
    end_price: Amount
    duration: int
    amount: int = 1
    seller: Optional[str] = None
    options: Options = None


@dataclass
class PlaceBidParams:
    auction_id: str
    amount: Amount
    options: Options = None


# Collections
@dataclass
class CreateCollectionParams:
    """Factory parameters shared by ERC721 and ERC1155 collections."""
    name: str
    symbol: str
    max_supply: int
    owner: Optional[str] = None                 # Defaults to the signer
    description: str = ""
    mint_price: Optional[Amount] = None
    royalty_fee: int = 0                        # Basis points
    mint_limit_per_wallet: int = 0
    mint_start_time: int = 0
    allowlist_mint_price: Optional[Amount] = None
    public_mint_price: Optional[Amount] = None
    allowlist_stage_duration: int = 0
    token_uri: str = ""
    options: Options = None


@dataclass
class MintERC721Params:
    collection_address: str
    recipient: str
    value: Optional[Amount] = None              # Mint price in ether
    options: Options = None


@dataclass
class BatchMintERC721Params:
    collection_address: str
    recipient: str
    amount: int
    value: Optional[Amount] = None
    options: Options = None


@dataclass
class MintERC1155Params:
    collection_address: str
    recipient: str
    token_id: TokenId
    amount: int
    data: str = "0x"
    options: Options = None


# Entities
class ListingStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AuctionKind(str, Enum):
    ENGLISH = "english"
    DUTCH = "dutch"


class AuctionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"
    CANCELLED = "cancelled"


class TokenStandard(str, Enum):
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"
    UNKNOWN = "Unknown"


@dataclass
class Listing:
    id: str
    seller: str
    collection_address: str
    token_id: str
    price: str                                  # Ether
    payment_token: str
    start_time: int
    end_time: int
    status: ListingStatus
    amount: int = 1
    created_at: Optional[str] = None            # ISO-8601


@dataclass
class Auction:
    id: str
    type: AuctionKind
    seller: str
    nft_address: str
    token_id: str
    start_time: int
    end_time: int
    status: AuctionStatus
    created_at: Optional[str] = None

    # English
    starting_bid: Optional[str] = None
    current_bid: Optional[str] = None
    highest_bidder: Optional[str] = None

    # Dutch
    start_price: Optional[str] = None
    end_price: Optional[str] = None


@dataclass
class CollectionInfo:
    address: str
    name: str
    symbol: str
    total_supply: str
    token_type: TokenStandard


# Results
@dataclass
class TxResult:
    tx: TransactionReceipt


@dataclass
class ListingResult:
    listing_id: str
    tx: TransactionReceipt


@dataclass
class AuctionResult:
    auction_id: str
    tx: TransactionReceipt


@dataclass
class CollectionResult:
    address: str
    tx: TransactionReceipt


@dataclass
class MintResult:
    token_id: str
    tx: TransactionReceipt


@dataclass
class VerificationResult:
    is_valid: bool
    token_type: TokenStandard = TokenStandard.UNKNOWN


@dataclass
class BatchResult(Generic[T]):
    """Outcome of one operation in a batch, reported in input order."""
    success: bool
    data: Optional[T] = None
    error: Optional[ZunoSDKError] = None
    index: int = 0
