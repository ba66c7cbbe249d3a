"""
Zuno SDK

Async client for the Zuno NFT marketplace: listings, auctions, collections
and minting over EVM contracts resolved through the Zuno ABI service.

Usage:
    from zuno_sdk import ZunoSDK, JsonRpcProvider, JsonRpcSigner

    provider = JsonRpcProvider("https://rpc.sepolia.org")
    signer = JsonRpcSigner(provider, "0x...")

    async with ZunoSDK({"api_key": "...", "network": "sepolia"}, provider, signer) as sdk:
        listing = await sdk.exchange.list_nft({
            "collection_address": "0x...",
            "token_id": "1",
            "price": "1.0",
            "duration": 86400,
        })
"""

from .config import CacheSettings, RetrySettings, SDKConfig, NETWORKS
from .core.errors import (
    AllCandidatesFailedError,
    ApiRequestError,
    ConfigurationError,
    ConfirmationTimeoutError,
    ErrorCode,
    ErrorContext,
    ExecutionRevertedError,
    InsufficientFundsError,
    LogDecodingError,
    MissingProviderError,
    MissingSignerError,
    NotInitializedError,
    ReadError,
    ResolutionError,
    SignerRejectedError,
    SubmissionError,
    SubmissionOutcomeUnknownError,
    TransientSubmissionError,
    ValidationError,
    ZunoSDKError,
)
from .core.models import (
    ContractDescriptor,
    ContractType,
    LogEntry,
    ReceiptStatus,
    TransactionOptions,
    TransactionReceipt,
)
from .core.retry import BackoffKind, RetryPolicy
from .core.contract import ContractHandle
from .core.registry import ContractRegistry
from .core.resolver import ContractResolver
from .core.transactions import TransactionManager
from .core.validation import format_ether, parse_ether
from .providers import ChainProvider, JsonRpcProvider, JsonRpcSigner, RpcError, Signer, ZunoAPIClient
from .logging_config import setup_logging
from .sdk import (
    SDKRegistry,
    SDKState,
    ZunoSDK,
    get_logger,
    get_sdk,
    has_sdk,
    init_sdk,
    reset_sdk,
)
from .types import (
    Auction,
    AuctionResult,
    BatchResult,
    CollectionInfo,
    CollectionResult,
    CreateCollectionParams,
    CreateDutchAuctionParams,
    CreateEnglishAuctionParams,
    Listing,
    ListingResult,
    ListNFTParams,
    MintResult,
    TxResult,
    VerificationResult,
)

__version__ = "0.1.0"

__all__ = [
    # Facade
    "ZunoSDK",
    "SDKRegistry",
    "SDKState",
    "init_sdk",
    "get_sdk",
    "reset_sdk",
    "has_sdk",
    "get_logger",
    "setup_logging",
    # Config
    "SDKConfig",
    "CacheSettings",
    "RetrySettings",
    "NETWORKS",
    # Contract layer
    "ContractType",
    "ContractDescriptor",
    "ContractHandle",
    "ContractRegistry",
    "ContractResolver",
    "TransactionManager",
    "TransactionOptions",
    "TransactionReceipt",
    "LogEntry",
    "ReceiptStatus",
    "RetryPolicy",
    "BackoffKind",
    "format_ether",
    "parse_ether",
    # Providers
    "ChainProvider",
    "Signer",
    "RpcError",
    "JsonRpcProvider",
    "JsonRpcSigner",
    "ZunoAPIClient",
    # Errors
    "ZunoSDKError",
    "ErrorCode",
    "ErrorContext",
    "ValidationError",
    "ConfigurationError",
    "NotInitializedError",
    "MissingProviderError",
    "MissingSignerError",
    "ApiRequestError",
    "ResolutionError",
    "ReadError",
    "SubmissionError",
    "SubmissionOutcomeUnknownError",
    "TransientSubmissionError",
    "InsufficientFundsError",
    "SignerRejectedError",
    "ConfirmationTimeoutError",
    "ExecutionRevertedError",
    "LogDecodingError",
    "AllCandidatesFailedError",
    # Types
    "ListNFTParams",
    "CreateEnglishAuctionParams",
    "CreateDutchAuctionParams",
    "CreateCollectionParams",
    "Listing",
    "Auction",
    "CollectionInfo",
    "ListingResult",
    "AuctionResult",
    "CollectionResult",
    "MintResult",
    "TxResult",
    "BatchResult",
    "VerificationResult",
]
