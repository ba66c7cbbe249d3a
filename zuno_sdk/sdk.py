"""
SDK Facade

``ZunoSDK`` owns the configuration, the provider/signer context and the
shared resolver, registry and transaction manager. Modules are built on
first access and memoized.

``SDKRegistry`` holds at most one shared facade for applications that want
one; ``init_sdk``/``get_sdk``/``reset_sdk``/``has_sdk`` use a default
registry.

Usage:
    from zuno_sdk import ZunoSDK

    async with ZunoSDK({"api_key": "...", "network": "sepolia"}, provider=provider, signer=signer) as sdk:
        result = await sdk.exchange.list_nft({
            "collection_address": "0x...",
            "token_id": "1",
            "price": "1.0",
            "duration": 86400,
        })
"""

from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from .cache import TTLCache
from .config import SDKConfig
from .core.contract import ContractHandle
from .core.errors import ConfigurationError, MissingSignerError, NotInitializedError
from .core.models import ContractDescriptor
from .core.registry import ContractRegistry
from .core.resolver import ContractResolver
from .core.retry import Sleep
from .core.transactions import TransactionManager
from .logging_config import get_logger as _bound_logger
from .logging_config import setup_logging
from .modules.auction import AuctionModule
from .modules.base import SDKContext
from .modules.collection import CollectionModule
from .modules.exchange import ExchangeModule
from .providers.api_client import ZunoAPIClient
from .providers.base import ChainProvider, Signer
from .providers.rpc import JsonRpcProvider

ConfigInput = Union[SDKConfig, Mapping[str, Any]]


class SDKState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED_NO_CONTEXT = "configured_no_context"
    CONFIGURED_WITH_CONTEXT = "configured_with_context"


def load_config(config: ConfigInput) -> SDKConfig:
    """Validate ``config``; any problem becomes a ``ConfigurationError``."""
    if isinstance(config, SDKConfig):
        return config
    if not isinstance(config, Mapping):
        raise ConfigurationError(f"Expected SDKConfig or a mapping, got {type(config).__name__}")
    try:
        return SDKConfig(**config)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid SDK configuration: {problems}", cause=e) from e


class ZunoSDK:
    """Entry point to the marketplace modules."""

    def __init__(
        self,
        config: ConfigInput,
        provider: Optional[ChainProvider] = None,
        signer: Optional[Signer] = None,
        api_client: Optional[ZunoAPIClient] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.config = load_config(config)

        if self.config.configure_logging:
            setup_logging(self.config.log_level)
        self._logger = _bound_logger("zuno_sdk", network=self.config.network)

        self._owns_api_client = api_client is None
        self.api_client = api_client or ZunoAPIClient(
            self.config.api_key,
            base_url=self.config.api_base_url,
            network=self.config.network,
            timeout_s=self.config.request_timeout_seconds,
            cache=TTLCache(
                default_ttl=self.config.cache.ttl_seconds,
                gc_time=self.config.cache.gc_seconds,
                max_size=self.config.cache.max_size,
            ),
        )

        policy = self.config.retry_policy.to_policy()
        self.resolver = ContractResolver(self.api_client, retry_policy=policy, sleep=sleep)
        self.registry = ContractRegistry(self.resolver)
        self.tx_manager = TransactionManager(
            retry_policy=policy,
            confirmation_timeout_seconds=self.config.confirmation_timeout_seconds,
            poll_interval_seconds=self.config.poll_interval_seconds,
            network=self.config.network,
            sleep=sleep,
        )

        self._owned_provider: Optional[JsonRpcProvider] = None
        if provider is None and signer is None and self.config.rpc_url:
            provider = JsonRpcProvider(self.config.rpc_url, timeout_s=self.config.request_timeout_seconds)
            self._owned_provider = provider

        self.context = SDKContext(
            network=self.config.network,
            provider=provider,
            signer=signer,
            batch_max_concurrency=self.config.batch_max_concurrency,
        )

        self._exchange: Optional[ExchangeModule] = None
        self._auction: Optional[AuctionModule] = None
        self._collection: Optional[CollectionModule] = None

        self._logger.debug("sdk initialized", chain_id=self.config.chain_id, state=self.state.value)

    # Modules
    @property
    def exchange(self) -> ExchangeModule:
        if self._exchange is None:
            self._exchange = ExchangeModule(self.registry, self.tx_manager, self.context)
        return self._exchange

    @property
    def auction(self) -> AuctionModule:
        if self._auction is None:
            self._auction = AuctionModule(self.registry, self.tx_manager, self.context)
        return self._auction

    @property
    def collection(self) -> CollectionModule:
        if self._collection is None:
            self._collection = CollectionModule(self.registry, self.tx_manager, self.context)
        return self._collection

    # Context
    @property
    def state(self) -> SDKState:
        if self.context.provider is not None or getattr(self.context.signer, "provider", None) is not None:
            return SDKState.CONFIGURED_WITH_CONTEXT
        return SDKState.CONFIGURED_NO_CONTEXT

    @property
    def network(self) -> str:
        return self.config.network

    @property
    def logger(self):
        return self._logger

    def get_provider(self) -> Optional[ChainProvider]:
        return self.context.provider

    def get_signer(self) -> Optional[Signer]:
        return self.context.signer

    def get_config(self) -> SDKConfig:
        return self.config

    def get_api_client(self) -> ZunoAPIClient:
        return self.api_client

    def update_provider(self, provider: Optional[ChainProvider], signer: Optional[Signer] = None) -> None:
        """
        Switch the provider/signer (e.g. after a wallet change). Existing
        modules keep working against the new context; handles bound to the
        old one are dropped, resolved ABIs are kept.
        """
        self.context.provider = provider
        self.context.signer = signer
        self.registry.drop_handles()
        self._logger.info("provider updated", has_provider=provider is not None, has_signer=signer is not None)

    # Contracts
    async def get_contract(self, contract_type: Any, write: bool = False) -> ContractHandle:
        """Handle for a platform contract on the configured network."""
        signer = self.context.signer if write else None
        if write and signer is None:
            raise MissingSignerError()
        return await self.registry.get_contract(
            contract_type,
            self.network,
            provider=self.context.provider or getattr(self.context.signer, "provider", None),
            signer=signer,
        )

    async def prefetch_abis(self, contract_types: Iterable[Any]) -> List[ContractDescriptor]:
        """Resolve several contract types for the configured network up front."""
        pairs: List[Tuple[Any, str]] = [(ct, self.network) for ct in contract_types]
        return await self.registry.prefetch_abis(pairs)

    async def clear_cache(self) -> None:
        """Drop resolved contracts, handles and cached ABI service responses."""
        self.registry.clear_cache()
        if self.api_client.cache is not None:
            await self.api_client.cache.clear()

    # Lifecycle
    async def aclose(self) -> None:
        """Close the HTTP clients this instance created."""
        if self._owns_api_client:
            await self.api_client.close()
        if self._owned_provider is not None:
            await self._owned_provider.close()

    async def __aenter__(self) -> "ZunoSDK":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ZunoSDK(network={self.network!r}, state={self.state.value})"


class SDKRegistry:
    """Holds at most one shared ``ZunoSDK`` with an explicit lifecycle."""

    def __init__(self):
        self._instance: Optional[ZunoSDK] = None

    def init(self, config: ConfigInput, **kwargs: Any) -> ZunoSDK:
        """Create the shared instance. Call ``reset()`` before re-initializing."""
        if self._instance is not None:
            raise ConfigurationError("SDK is already initialized").with_context(
                suggestion="Call reset() before init() with a new configuration"
            )
        self._instance = ZunoSDK(config, **kwargs)
        return self._instance

    def get(self) -> ZunoSDK:
        if self._instance is None:
            raise NotInitializedError("SDK has not been initialized").with_context(
                suggestion="Call init() with a configuration first"
            )
        return self._instance

    def reset(self) -> Optional[ZunoSDK]:
        """Forget the shared instance and return it so the caller can ``aclose()`` it."""
        instance, self._instance = self._instance, None
        return instance

    def has_instance(self) -> bool:
        return self._instance is not None

    @property
    def state(self) -> SDKState:
        if self._instance is None:
            return SDKState.UNCONFIGURED
        return self._instance.state


default_registry = SDKRegistry()


def init_sdk(config: ConfigInput, **kwargs: Any) -> ZunoSDK:
    return default_registry.init(config, **kwargs)


def get_sdk() -> ZunoSDK:
    return default_registry.get()


def reset_sdk() -> Optional[ZunoSDK]:
    return default_registry.reset()


def has_sdk() -> bool:
    return default_registry.has_instance()


def get_logger():
    """Logger of the shared SDK instance."""
    return default_registry.get().logger
