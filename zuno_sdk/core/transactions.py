"""
Transaction Manager

Every contract interaction goes through here:

- ``call``: read-only, one attempt, failures become ``ReadError``
- ``send_transaction``: submit, await confirmation, inspect the receipt

Only submission failures classified as transient are retried. Reverts,
confirmed failures and confirmation timeouts never are.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Sequence

import httpx
import structlog
from eth_abi.exceptions import DecodingError

from .contract import ContractHandle
from .errors import (
    ConfirmationTimeoutError,
    ErrorCode,
    ErrorContext,
    ExecutionRevertedError,
    MissingProviderError,
    MissingSignerError,
    ReadError,
    ZunoSDKError,
    classify_submission_error,
)
from .models import TransactionOptions, TransactionReceipt, TransactionRequest
from .retry import RetryPolicy, Sleep, retry_async
from ..providers.base import BlockTag, ChainProvider, RpcError

logger = structlog.stdlib.get_logger(__name__)


class TransactionManager:
    """Uniform read and send/await/receipt pipeline shared by all modules."""

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        confirmation_timeout_seconds: float = 300.0,
        poll_interval_seconds: float = 2.0,
        network: Optional[str] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.network = network
        self._sleep = sleep or asyncio.sleep

    async def call(
        self,
        handle: ContractHandle,
        method: str,
        args: Sequence[Any] = (),
        block: BlockTag = "latest",
    ) -> Any:
        """
        Execute a read-only call and decode its result.

        Args:
            handle: Contract to call
            method: ABI function name
            args: Positional arguments in ABI order
            block: Block number or tag to read at

        Returns:
            The decoded output (bare value, dict or tuple)
        """
        provider = handle.provider
        if provider is None:
            raise MissingProviderError()

        args = tuple(args)
        data = handle.encode_call(method, args)
        context = self._context(handle, method)

        try:
            raw = await provider.call({"to": handle.address, "data": data}, block=block)
        except RpcError as e:
            reason = handle.decode_error(e.revert_data) or e.reason
            raise ReadError(
                f"Call to {method} failed: {reason or e.message}",
                reason=reason,
                reverted=e.is_revert,
                cause=e,
                context=context,
            ) from e
        except ZunoSDKError:
            raise
        except Exception as e:
            raise ReadError(f"Call to {method} failed: {e}", cause=e, context=context) from e

        if not raw or raw in ("0x", "0X"):
            if handle.function_abi(method, len(args)).get("outputs"):
                # No code at the address, or a contract of another kind
                raise ReadError(
                    f"Call to {method} returned no data",
                    reverted=True,
                    context=context.merged(
                        suggestion=f"Check that {handle.address} is a {handle.contract_type} contract"
                    ),
                )
            return None

        try:
            return handle.decode_output(method, raw, len(args))
        except DecodingError as e:
            raise ReadError(
                f"Could not decode the result of {method}: {e}",
                reverted=True,
                cause=e,
                context=context,
            ) from e

    async def send_transaction(
        self,
        handle: ContractHandle,
        method: str,
        args: Sequence[Any] = (),
        options: Any = None,
        module: Optional[str] = None,
    ) -> TransactionReceipt:
        """
        Submit a state-changing call and wait for its receipt.

        Args:
            handle: Signer-bound contract handle
            method: ABI function name
            args: Positional arguments in ABI order
            options: ``TransactionOptions`` or a mapping of its fields
            module: Calling module name, recorded in error context

        Returns:
            The successful receipt, unmodified

        Raises:
            MissingSignerError: the handle has no signer
            SubmissionError: dispatch failed (after retries when transient)
            ExecutionRevertedError: rejected at pre-flight or mined as reverted
            ConfirmationTimeoutError: no receipt in time; outcome unknown
        """
        signer = handle.signer
        if signer is None:
            raise MissingSignerError()
        provider = handle.provider
        if provider is None:
            raise MissingProviderError()

        request = TransactionRequest(handle, method, tuple(args), TransactionOptions.coerce(options))
        from_address = await signer.get_address()
        tx = request.to_tx(from_address)
        context = self._context(handle, method, module)

        tx_hash = await self._submit(signer, tx, request.options, context)
        context = context.merged(tx_hash=tx_hash)

        receipt = await self._await_confirmation(provider, tx_hash, request.options, context)

        if not receipt.is_success:
            reason = await self._replay_revert_reason(provider, handle, tx, receipt)
            logger.warning(
                "transaction reverted",
                contract=handle.contract_type,
                method=method,
                tx_hash=tx_hash,
                block=receipt.block_number,
                reason=reason,
            )
            raise ExecutionRevertedError(
                tx_hash=tx_hash,
                reason=reason,
                receipt=receipt,
                context=context,
            )

        logger.info(
            "transaction confirmed",
            contract=handle.contract_type,
            method=method,
            tx_hash=tx_hash,
            block=receipt.block_number,
            gas_used=receipt.gas_used,
        )
        return receipt

    async def _submit(
        self,
        signer: Any,
        tx: Dict[str, Any],
        options: TransactionOptions,
        context: ErrorContext,
    ) -> str:
        policy = self.retry_policy
        nonce_pinned = options.nonce is not None
        attempt = 0

        async def submit_once() -> str:
            nonlocal attempt
            attempt += 1
            try:
                tx_hash = await signer.send_transaction(dict(tx))
            except Exception as e:
                error = classify_submission_error(
                    e, context.merged(attempt=attempt, max_attempts=policy.max_attempts)
                )
                if error is e:
                    error.with_context(attempt=attempt, max_attempts=policy.max_attempts)
                    raise
                raise error from e
            logger.info(
                "transaction submitted",
                contract=context.contract,
                method=context.method,
                tx_hash=tx_hash,
                attempt=attempt,
            )
            return tx_hash

        def should_retry(error: BaseException) -> bool:
            if not isinstance(error, ZunoSDKError) or not error.retryable:
                return False
            # A caller supplied nonce will conflict again on every resubmission
            return not (nonce_pinned and error.is_code(ErrorCode.NONCE_CONFLICT))

        try:
            return await retry_async(
                submit_once,
                policy,
                should_retry=should_retry,
                operation_name=f"{context.contract}.{context.method}",
                sleep=self._sleep,
            )
        except ZunoSDKError as e:
            logger.error(
                "transaction submission failed",
                contract=context.contract,
                method=context.method,
                code=e.code.value,
                attempt=attempt,
                error=e.message,
            )
            raise

    async def _await_confirmation(
        self,
        provider: ChainProvider,
        tx_hash: str,
        options: TransactionOptions,
        context: ErrorContext,
    ) -> TransactionReceipt:
        timeout = options.confirmation_timeout_seconds or self.confirmation_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._wait_for_receipt(provider, tx_hash, options.confirmations),
                timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("confirmation timed out", tx_hash=tx_hash, timeout_seconds=timeout)
            raise ConfirmationTimeoutError(tx_hash, timeout, cause=e, context=context) from e
        except ZunoSDKError:
            raise
        except Exception as e:
            # The transaction was broadcast; whatever broke the wait says nothing about its fate
            logger.warning("confirmation wait failed", tx_hash=tx_hash, error=str(e))
            raise ConfirmationTimeoutError(tx_hash, timeout, cause=e, context=context) from e

    async def _wait_for_receipt(
        self,
        provider: ChainProvider,
        tx_hash: str,
        confirmations: int,
    ) -> TransactionReceipt:
        raw = await provider.wait_for_transaction_receipt(tx_hash, poll_interval=self.poll_interval_seconds)
        receipt = raw if isinstance(raw, TransactionReceipt) else TransactionReceipt.from_rpc(raw)

        if confirmations > 1 and receipt.is_success:
            target = receipt.block_number + confirmations - 1
            while await provider.get_block_number() < target:
                await self._sleep(self.poll_interval_seconds)

        return receipt

    async def _replay_revert_reason(
        self,
        provider: ChainProvider,
        handle: ContractHandle,
        tx: Dict[str, Any],
        receipt: TransactionReceipt,
    ) -> Optional[str]:
        """Re-run the call at the receipt's block to recover the revert reason."""
        replay = {k: v for k, v in tx.items() if k in ("from", "to", "data", "value")}
        try:
            await provider.call(replay, block=receipt.block_number)
        except RpcError as e:
            return handle.decode_error(e.revert_data) or e.reason or e.message
        except httpx.HTTPError as e:
            logger.debug("revert reason replay failed", tx_hash=receipt.transaction_hash, error=str(e))
        return None

    def _context(self, handle: ContractHandle, method: str, module: Optional[str] = None) -> ErrorContext:
        return ErrorContext(
            contract=handle.contract_type,
            method=method,
            network=handle.network or self.network,
            module=module,
        )
