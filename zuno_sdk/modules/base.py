"""
Shared plumbing for the marketplace modules.

Every public operation follows the same shape: validate the parameters,
require a signer for writes, resolve the contract handle, run the call
through the ``TransactionManager`` and decode the result.
"""

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

import structlog

from ..core.contract import ContractHandle
from ..core.errors import (
    AllCandidatesFailedError,
    ErrorContext,
    ExecutionRevertedError,
    LogDecodingError,
    MissingProviderError,
    MissingSignerError,
    ReadError,
    ResolutionError,
    ZunoSDKError,
)
from ..core.models import ContractType, LogEntry, TransactionOptions, TransactionReceipt, contract_type_name
from ..core.registry import ContractRegistry
from ..core.transactions import TransactionManager
from ..core.validation import validate_positive_int
from ..providers.base import ChainProvider, Signer
from ..types import BatchResult

T = TypeVar("T")

logger = structlog.stdlib.get_logger(__name__)

Candidate = Tuple[ContractType, Callable[[ContractType], Awaitable[T]]]


@dataclass
class SDKContext:
    """Execution context shared by the facade and its modules."""
    network: str
    provider: Optional[ChainProvider] = None
    signer: Optional[Signer] = None
    batch_max_concurrency: int = 3


def is_contract_kind_mismatch(error: ZunoSDKError) -> bool:
    """
    True when ``error`` says the call went to the wrong kind of contract,
    as opposed to failing for an unrelated reason.
    """
    if isinstance(error, ExecutionRevertedError):
        return True
    if isinstance(error, ReadError):
        return error.reverted
    if isinstance(error, ResolutionError):
        return not error.transient
    return False


class BaseModule:
    """Base class for Exchange, Auction and Collection modules."""

    module_name = "Base"

    def __init__(
        self,
        registry: ContractRegistry,
        tx_manager: TransactionManager,
        context: SDKContext,
    ):
        self.registry = registry
        self.tx_manager = tx_manager
        self.context = context

    @property
    def network(self) -> str:
        return self.context.network

    @property
    def provider(self) -> Optional[ChainProvider]:
        return self.context.provider

    @property
    def signer(self) -> Optional[Signer]:
        return self.context.signer

    def ensure_provider(self) -> ChainProvider:
        provider = self.context.provider or getattr(self.context.signer, "provider", None)
        if provider is None:
            raise MissingProviderError()
        return provider

    def ensure_signer(self) -> Signer:
        if self.context.signer is None:
            raise MissingSignerError()
        return self.context.signer

    async def get_contract(
        self,
        contract_type: ContractType,
        write: bool = False,
        address: Optional[str] = None,
    ) -> ContractHandle:
        """Handle for a platform contract; ``write`` binds the current signer."""
        signer = self.ensure_signer() if write else None
        return await self.registry.get_contract(
            contract_type,
            self.network,
            provider=self.ensure_provider(),
            signer=signer,
            address=address,
        )

    async def get_contract_at(
        self,
        address: str,
        write: bool = False,
        abi: Optional[Sequence[dict]] = None,
        contract_type: Any = "Unknown",
    ) -> ContractHandle:
        """Handle for a user deployed contract such as a collection."""
        signer = self.ensure_signer() if write else None
        return await self.registry.get_contract_at(
            address,
            self.network,
            provider=self.ensure_provider(),
            signer=signer,
            abi=abi,
            contract_type=contract_type,
        )

    async def call(self, handle: ContractHandle, method: str, args: Sequence[Any] = ()) -> Any:
        return await self.tx_manager.call(handle, method, args)

    async def send(
        self,
        handle: ContractHandle,
        method: str,
        args: Sequence[Any] = (),
        options: Any = None,
    ) -> TransactionReceipt:
        return await self.tx_manager.send_transaction(handle, method, args, options, module=self.module_name)

    @staticmethod
    def with_value(options: Any, value_wei: Optional[int]) -> TransactionOptions:
        """Options with ``value_wei`` attached; ``None`` keeps the options' own value."""
        resolved = TransactionOptions.coerce(options)
        if value_wei is None:
            return resolved
        return dataclasses.replace(resolved, value=value_wei)

    async def batch_execute(
        self,
        operations: Sequence[Callable[[], Awaitable[T]]],
        continue_on_error: bool = True,
        max_concurrency: Optional[int] = None,
    ) -> List[BatchResult[T]]:
        """
        Run independent operations with bounded concurrency.

        Args:
            operations: Zero-argument coroutine functions
            continue_on_error: Collect failures instead of stopping
            max_concurrency: Ceiling on operations in flight

        Returns:
            One ``BatchResult`` per operation, in input order

        With ``continue_on_error=False`` no new operation starts after the
        first failure, and that failure is re-raised once in-flight
        operations finish.
        """
        limit = validate_positive_int(
            max_concurrency if max_concurrency is not None else self.context.batch_max_concurrency,
            "max_concurrency",
        )
        semaphore = asyncio.Semaphore(limit)
        results: List[Optional[BatchResult[T]]] = [None] * len(operations)
        first_failure: List[BaseException] = []

        async def run(index: int, operation: Callable[[], Awaitable[T]]) -> None:
            async with semaphore:
                if first_failure:
                    return
                try:
                    data = await operation()
                except Exception as e:
                    error = ZunoSDKError.from_exception(e)
                    results[index] = BatchResult(success=False, error=error, index=index)
                    logger.warning(
                        "batch operation failed",
                        module=self.module_name,
                        index=index,
                        code=error.code.value,
                        error=error.message,
                    )
                    if not continue_on_error:
                        first_failure.append(e)
                    return
                results[index] = BatchResult(success=True, data=data, index=index)

        await asyncio.gather(*(run(i, op) for i, op in enumerate(operations)))

        if first_failure:
            raise first_failure[0]

        succeeded = sum(1 for r in results if r is not None and r.success)
        logger.info("batch finished", module=self.module_name, total=len(results), succeeded=succeeded)
        return [r for r in results if r is not None]

    async def try_candidates(self, candidates: Sequence[Candidate], operation: str) -> Any:
        """
        Run ``operation`` against each candidate contract kind in order and
        return the first success.

        Only failures that mean "wrong kind of contract" move on to the next
        candidate; anything else propagates immediately.
        """
        errors: List[ZunoSDKError] = []
        for contract_type, action in candidates:
            try:
                return await action(contract_type)
            except ZunoSDKError as e:
                if not is_contract_kind_mismatch(e):
                    raise
                logger.debug(
                    "candidate rejected",
                    operation=operation,
                    contract=contract_type_name(contract_type),
                    error=e.message,
                )
                errors.append(e)

        tried = ", ".join(contract_type_name(ct) for ct, _ in candidates)
        raise AllCandidatesFailedError(f"{operation} failed on every candidate ({tried})", errors)

    def find_log(
        self,
        receipt: TransactionReceipt,
        emitter: ContractHandle,
        events: Sequence[str] = (),
        min_topics: int = 2,
    ) -> LogEntry:
        """
        First log emitted by ``emitter`` with at least ``min_topics`` topics.
        When the ABI declares any of ``events``, topic 0 must match one of them.
        """
        signatures = {t.lower() for t in (emitter.event_topic(e) for e in events) if t}
        for log in receipt.logs:
            if log.address.lower() != emitter.address.lower():
                continue
            if len(log.topics) < min_topics:
                continue
            if signatures and log.topics[0].lower() not in signatures:
                continue
            return log

        raise LogDecodingError(
            f"No matching {'/'.join(events) or 'event'} log from {emitter.contract_type} in transaction",
            receipt=receipt,
            context=ErrorContext(
                contract=emitter.contract_type,
                network=emitter.network,
                module=self.module_name,
            ),
        )

    def extract_topic(
        self,
        receipt: TransactionReceipt,
        emitter: ContractHandle,
        events: Sequence[str] = (),
        topic_index: int = 1,
    ) -> str:
        """Raw hex topic at ``topic_index`` of the first matching log."""
        log = self.find_log(receipt, emitter, events, min_topics=topic_index + 1)
        return log.topics[topic_index]
