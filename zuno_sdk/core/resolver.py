"""
Contract Resolver

Maps a logical contract type and network to its deployed address and ABI
through the remote ABI service. Results are cached per key until
``clear()``; concurrent misses for one key share a single remote fetch.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar

import structlog
from eth_utils import is_hex_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .errors import ApiRequestError, ErrorContext, ResolutionError, ZunoSDKError
from .models import ContractDescriptor, contract_type_name
from .retry import RetryPolicy, Sleep, retry_async
from .validation import validate_address

T = TypeVar("T")

logger = structlog.stdlib.get_logger(__name__)


class ContractRecord(BaseModel):
    """Deployment record returned by the ABI service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str
    abi: List[Dict[str, Any]]
    network: Optional[str] = None
    contract_type: Optional[str] = Field(default=None, alias="contractType")

    @field_validator("address")
    @classmethod
    def _checksum_address(cls, value: str) -> str:
        if not is_hex_address(value):
            raise ValueError(f"not a 20-byte hex address: {value!r}")
        return to_checksum_address(value)

    @field_validator("abi")
    @classmethod
    def _non_empty_abi(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not value:
            raise ValueError("ABI is empty")
        return value


class ContractResolver:
    """Resolves and caches ``ContractDescriptor`` objects."""

    def __init__(
        self,
        api_client: Any,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.api_client = api_client
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._descriptors: Dict[Tuple[str, str], ContractDescriptor] = {}
        self._abis: Dict[Tuple[str, str], Tuple[Dict[str, Any], ...]] = {}
        self._by_address: Dict[Tuple[str, str], ContractDescriptor] = {}
        self._inflight: Dict[Hashable, "asyncio.Task[Any]"] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        """Bumped on every ``clear()``; dependents use it to drop stale state."""
        return self._generation

    async def resolve(
        self,
        contract_type: Any,
        network: str,
        address: Optional[str] = None,
        abi: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> ContractDescriptor:
        """
        Resolve ``contract_type`` on ``network``.

        An explicit ``address`` skips the deployment lookup; the ABI still
        comes from the service unless ``abi`` is passed as well.
        """
        type_name = contract_type_name(contract_type)

        if address is not None:
            checksummed = validate_address(address, "address")
            if abi is not None:
                entries = tuple(abi)
                if not entries:
                    raise ResolutionError(
                        f"Empty ABI supplied for {type_name}",
                        context=ErrorContext(contract=type_name, network=network),
                    )
            else:
                entries = await self.get_abi(type_name, network)
            return ContractDescriptor(type_name, network, checksummed, entries)

        key = (type_name, network)
        cached = self._descriptors.get(key)
        if cached is not None:
            return cached

        return await self._single_flight(
            ("deployment", type_name, network),
            lambda: self._fetch_deployment(type_name, network),
            self._descriptors,
            key,
        )

    async def get_abi(self, contract_type: Any, network: str) -> Tuple[Dict[str, Any], ...]:
        """ABI for a contract type; reuses a cached deployment record when present."""
        type_name = contract_type_name(contract_type)
        key = (type_name, network)
        if key in self._descriptors:
            return self._descriptors[key].abi
        if key in self._abis:
            return self._abis[key]

        return await self._single_flight(
            ("abi", type_name, network),
            lambda: self._fetch_abi(type_name, network),
            self._abis,
            key,
        )

    async def resolve_by_address(self, address: str, network: str) -> ContractDescriptor:
        """Descriptor for an arbitrary deployed contract, e.g. a user collection."""
        checksummed = validate_address(address, "address")
        key = (checksummed.lower(), network)
        cached = self._by_address.get(key)
        if cached is not None:
            return cached

        return await self._single_flight(
            ("address", checksummed.lower(), network),
            lambda: self._fetch_by_address(checksummed, network),
            self._by_address,
            key,
        )

    async def prefetch(self, pairs: Iterable[Tuple[Any, str]]) -> List[ContractDescriptor]:
        """Resolve several ``(contract_type, network)`` pairs concurrently."""
        return list(await asyncio.gather(*(self.resolve(t, n) for t, n in pairs)))

    def clear(self) -> None:
        """Drop every cached record; in-flight fetches will not write back."""
        self._generation += 1
        self._descriptors.clear()
        self._abis.clear()
        self._by_address.clear()
        self._inflight.clear()
        logger.debug("resolver cache cleared", generation=self._generation)

    def is_cached(self, contract_type: Any, network: str) -> bool:
        return (contract_type_name(contract_type), network) in self._descriptors

    async def _single_flight(
        self,
        flight_key: Hashable,
        fetch: Callable[[], Awaitable[T]],
        store: Dict[Any, T],
        store_key: Any,
    ) -> T:
        task = self._inflight.get(flight_key)
        if task is None:
            task = asyncio.ensure_future(self._run(flight_key, fetch, store, store_key, self._generation))
            self._inflight[flight_key] = task
        # A cancelled waiter must not cancel the fetch other callers share
        return await asyncio.shield(task)

    async def _run(
        self,
        flight_key: Hashable,
        fetch: Callable[[], Awaitable[T]],
        store: Dict[Any, T],
        store_key: Any,
        generation: int,
    ) -> T:
        try:
            value = await fetch()
            if generation == self._generation:
                store[store_key] = value
            return value
        finally:
            if self._inflight.get(flight_key) is asyncio.current_task():
                del self._inflight[flight_key]

    async def _fetch_deployment(self, type_name: str, network: str) -> ContractDescriptor:
        raw = await self._call_service(
            lambda: self.api_client.get_contract_info(type_name, network),
            type_name,
            network,
        )
        if not raw:
            raise ResolutionError(
                f"No deployment of {type_name} on {network}",
                context=ErrorContext(contract=type_name, network=network),
            )
        record = self._parse_record(raw, type_name, network)
        logger.debug("contract resolved", contract=type_name, network=network, address=record.address)
        return ContractDescriptor(type_name, network, record.address, tuple(record.abi))

    async def _fetch_abi(self, type_name: str, network: str) -> Tuple[Dict[str, Any], ...]:
        abi = await self._call_service(
            lambda: self.api_client.get_abi(type_name, network),
            type_name,
            network,
        )
        if not isinstance(abi, list) or not abi or not all(isinstance(e, dict) for e in abi):
            raise ResolutionError(
                f"ABI service returned an invalid ABI for {type_name}",
                context=ErrorContext(contract=type_name, network=network),
            )
        return tuple(abi)

    async def _fetch_by_address(self, address: str, network: str) -> ContractDescriptor:
        raw = await self._call_service(
            lambda: self.api_client.get_contract_by_address(address, network),
            address,
            network,
        )
        if not raw:
            raise ResolutionError(
                f"No ABI known for contract {address} on {network}",
                context=ErrorContext(contract=address, network=network),
            )
        if isinstance(raw, dict) and "address" not in raw:
            raw = {**raw, "address": address}
        record = self._parse_record(raw, address, network)
        return ContractDescriptor(record.contract_type or "Unknown", network, record.address, tuple(record.abi))

    async def _call_service(self, request: Callable[[], Awaitable[T]], contract: str, network: str) -> T:
        """Call the ABI service, retrying transient failures per the policy."""
        context = ErrorContext(contract=contract, network=network)
        try:
            return await retry_async(
                request,
                self.retry_policy,
                should_retry=lambda e: isinstance(e, ApiRequestError) and e.transient,
                operation_name=f"resolve {contract}",
                sleep=self._sleep,
            )
        except ApiRequestError as e:
            raise ResolutionError(
                f"Could not resolve {contract} on {network}: {e.message}",
                transient=e.transient,
                cause=e,
                context=context,
            ) from e
        except ZunoSDKError:
            raise
        except Exception as e:
            raise ResolutionError(
                f"Could not resolve {contract} on {network}: {e}",
                cause=e,
                context=context,
            ) from e

    @staticmethod
    def _parse_record(raw: Any, contract: str, network: str) -> ContractRecord:
        try:
            return ContractRecord.model_validate(raw)
        except PydanticValidationError as e:
            raise ResolutionError(
                f"Malformed deployment record for {contract} on {network}",
                cause=e,
                context=ErrorContext(contract=contract, network=network, details={"errors": e.errors()}),
            ) from e
