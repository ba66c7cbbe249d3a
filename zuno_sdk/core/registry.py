"""
Contract Registry

Caches ``ContractHandle`` objects per contract type, network, address
override and execution context. Identical requests get the identical
handle; a different signer object gets a new one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

import structlog

from .contract import ContractHandle
from .errors import MissingProviderError
from .models import ContractDescriptor, contract_type_name
from .resolver import ContractResolver

if TYPE_CHECKING:
    from ..providers.base import ChainProvider, Signer

logger = structlog.stdlib.get_logger(__name__)

HandleKey = Tuple[str, str, Optional[str], int, int]


class ContractRegistry:
    """Owns every handle; modules borrow them and never mutate them."""

    def __init__(self, resolver: ContractResolver):
        self.resolver = resolver
        self._handles: Dict[HandleKey, ContractHandle] = {}
        self._generation = resolver.generation
        self._drops = 0

    async def get_contract(
        self,
        contract_type: Any,
        network: str,
        provider: Optional["ChainProvider"] = None,
        signer: Optional["Signer"] = None,
        address: Optional[str] = None,
    ) -> ContractHandle:
        """
        Handle for ``contract_type`` on ``network`` bound to ``provider`` and,
        for writes, ``signer``.
        """
        self._check_context(provider, signer)
        self._sync_generation()
        type_name = contract_type_name(contract_type)
        key = self._key(type_name, network, address.lower() if address else None, provider, signer)

        handle = self._handles.get(key)
        if handle is not None:
            return handle

        started = self._epoch()
        descriptor = await self.resolver.resolve(type_name, network, address=address)
        return self._store(key, descriptor, provider, signer, started)

    async def get_contract_at(
        self,
        address: str,
        network: str,
        provider: Optional["ChainProvider"] = None,
        signer: Optional["Signer"] = None,
        abi: Optional[Iterable[Dict[str, Any]]] = None,
        contract_type: Any = "Unknown",
    ) -> ContractHandle:
        """
        Handle for an arbitrary deployed contract. With an explicit minimal
        ``abi`` the handle skips the resolver and is not cached.
        """
        self._check_context(provider, signer)
        if abi is not None:
            descriptor = await self.resolver.resolve(contract_type, network, address=address, abi=abi)
            return ContractHandle(descriptor, provider, signer)

        self._sync_generation()
        key = self._key("@address", network, address.lower(), provider, signer)
        handle = self._handles.get(key)
        if handle is not None:
            return handle

        started = self._epoch()
        descriptor = await self.resolver.resolve_by_address(address, network)
        return self._store(key, descriptor, provider, signer, started)

    async def prefetch_abis(self, pairs: Iterable[Tuple[Any, str]]) -> List[ContractDescriptor]:
        return await self.resolver.prefetch(pairs)

    def clear_cache(self) -> None:
        """Clear resolved records and every handle built from them."""
        self.resolver.clear()
        self._handles.clear()
        self._generation = self.resolver.generation
        self._drops += 1

    def drop_handles(self) -> None:
        """Forget handles but keep resolved records, e.g. after a wallet switch."""
        self._handles.clear()
        self._drops += 1

    def handle_count(self) -> int:
        return len(self._handles)

    def _store(
        self,
        key: HandleKey,
        descriptor: ContractDescriptor,
        provider: Optional["ChainProvider"],
        signer: Optional["Signer"],
        started: Tuple[int, int],
    ) -> ContractHandle:
        self._sync_generation()
        if self._epoch() != started:
            # Cleared while resolving; the record may predate the clear, so hand it out uncached
            logger.debug("contract handle not cached", contract=descriptor.contract_type, network=descriptor.network)
            return ContractHandle(descriptor, provider, signer)
        # Another task may have built the handle while we awaited the resolver
        handle = self._handles.setdefault(key, ContractHandle(descriptor, provider, signer))
        logger.debug(
            "contract handle ready",
            contract=descriptor.contract_type,
            network=descriptor.network,
            address=descriptor.address,
            signer=signer is not None,
        )
        return handle

    def _epoch(self) -> Tuple[int, int]:
        return self.resolver.generation, self._drops

    def _sync_generation(self) -> None:
        if self._generation != self.resolver.generation:
            # The resolver was cleared directly; handles built before are stale
            self._handles.clear()
            self._generation = self.resolver.generation

    @staticmethod
    def _check_context(provider: Optional["ChainProvider"], signer: Optional["Signer"]) -> None:
        if provider is None and getattr(signer, "provider", None) is None:
            raise MissingProviderError()

    @staticmethod
    def _key(
        type_name: str,
        network: str,
        address: Optional[str],
        provider: Optional["ChainProvider"],
        signer: Optional["Signer"],
    ) -> HandleKey:
        # Handles keep their provider and signer alive, so ids stay unique while cached
        return (type_name, network, address, id(provider), id(signer))
