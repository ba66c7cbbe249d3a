"""
Error Taxonomy

Every failure raised by the SDK is a ``ZunoSDKError`` carrying a machine
checkable code, a human message and optional structured context.
Errors are split into retryable (transient) and terminal ones; only
retryable errors ever cross a retry boundary.
"""

import asyncio
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx


class ErrorCode(str, Enum):
    """Machine readable error codes."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_TOKEN_ID = "INVALID_TOKEN_ID"
    MISSING_PROVIDER = "MISSING_PROVIDER"
    MISSING_SIGNER = "MISSING_SIGNER"
    API_REQUEST_FAILED = "API_REQUEST_FAILED"
    CONTRACT_RESOLUTION_FAILED = "CONTRACT_RESOLUTION_FAILED"
    CONTRACT_CALL_FAILED = "CONTRACT_CALL_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    SUBMISSION_OUTCOME_UNKNOWN = "SUBMISSION_OUTCOME_UNKNOWN"
    NONCE_CONFLICT = "NONCE_CONFLICT"
    NETWORK_ERROR = "NETWORK_ERROR"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    USER_REJECTED = "USER_REJECTED"
    TRANSACTION_TIMEOUT = "TRANSACTION_TIMEOUT"
    TRANSACTION_REVERTED = "TRANSACTION_REVERTED"
    LOG_DECODING_FAILED = "LOG_DECODING_FAILED"
    CANDIDATES_EXHAUSTED = "CANDIDATES_EXHAUSTED"


@dataclass
class ErrorContext:
    """Where and how an error happened."""

    contract: Optional[str] = None
    method: Optional[str] = None
    network: Optional[str] = None
    module: Optional[str] = None
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    tx_hash: Optional[str] = None
    suggestion: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def merged(self, **updates: Any) -> "ErrorContext":
        """Return a copy with the non-None ``updates`` applied."""
        values = asdict(self)
        values.update({k: v for k, v in updates.items() if v is not None})
        return ErrorContext(**values)


class ZunoSDKError(Exception):
    """Base class for all SDK errors."""

    default_code = ErrorCode.UNKNOWN_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        self.cause = cause
        self.context = context or ErrorContext()
        if cause is not None:
            self.__cause__ = cause

    def is_code(self, code: ErrorCode) -> bool:
        return self.code == code

    def with_context(self, **updates: Any) -> "ZunoSDKError":
        """Attach extra context in place and return self for re-raising."""
        self.context = self.context.merged(**updates)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "context": {k: v for k, v in asdict(self.context).items() if v not in (None, {})},
            "retryable": self.retryable,
            "cause": str(self.cause) if self.cause else None,
        }

    def to_user_message(self) -> str:
        """Render message, context fields, attempt counters and suggestion."""
        lines = [self.message]
        ctx = self.context
        if ctx.contract:
            lines.append(f"Contract: {ctx.contract}")
        if ctx.method:
            lines.append(f"Method: {ctx.method}")
        if ctx.network:
            lines.append(f"Network: {ctx.network}")
        if ctx.tx_hash:
            lines.append(f"Transaction: {ctx.tx_hash}")
        if ctx.attempt is not None and ctx.max_attempts is not None:
            lines.append(f"Attempt {ctx.attempt}/{ctx.max_attempts}")
        if ctx.suggestion:
            lines.append(f"Suggestion: {ctx.suggestion}")
        return "\n".join(lines)

    @classmethod
    def from_exception(cls, error: Any) -> "ZunoSDKError":
        """Wrap any value into a ``ZunoSDKError`` (identity for SDK errors)."""
        if isinstance(error, ZunoSDKError):
            return error
        if isinstance(error, BaseException):
            return ZunoSDKError(str(error) or type(error).__name__, cause=error)
        return ZunoSDKError(str(error))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


# Caller and context errors: never retried, raised before any I/O
class ValidationError(ZunoSDKError):
    """Bad caller input."""

    default_code = ErrorCode.INVALID_PARAMETER

    def __init__(self, message: str, field_name: Optional[str] = None, code: Optional[ErrorCode] = None):
        super().__init__(
            message,
            code=code,
            details={"field": field_name} if field_name else None,
        )
        self.field_name = field_name


class ConfigurationError(ZunoSDKError):
    """SDK configuration is missing or malformed."""

    default_code = ErrorCode.INVALID_CONFIG


class NotInitializedError(ZunoSDKError):
    """The shared SDK instance was requested before ``init``."""

    default_code = ErrorCode.NOT_INITIALIZED


class MissingProviderError(ZunoSDKError):
    default_code = ErrorCode.MISSING_PROVIDER

    def __init__(self, message: str = "A chain provider is required for this operation"):
        super().__init__(
            message,
            context=ErrorContext(suggestion="Call update_provider() with a provider first"),
        )


class MissingSignerError(ZunoSDKError):
    default_code = ErrorCode.MISSING_SIGNER

    def __init__(self, message: str = "A signer is required for state-changing operations"):
        super().__init__(
            message,
            context=ErrorContext(suggestion="Connect a wallet and call update_provider() with a signer"),
        )


# Remote service and resolution
class ApiRequestError(ZunoSDKError):
    """The ABI/metadata service request failed."""

    default_code = ErrorCode.API_REQUEST_FAILED

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        transient: bool = False,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, cause=cause, details=details)
        self.status_code = status_code
        self.transient = transient

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.transient


class ResolutionError(ZunoSDKError):
    """A contract type/network pair could not be resolved to an address and ABI."""

    default_code = ErrorCode.CONTRACT_RESOLUTION_FAILED

    def __init__(
        self,
        message: str,
        transient: bool = False,
        cause: Optional[BaseException] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, cause=cause, context=context)
        self.transient = transient

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.transient


# Chain interaction
class ReadError(ZunoSDKError):
    """A read-only contract call failed."""

    default_code = ErrorCode.CONTRACT_CALL_FAILED

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        reverted: bool = False,
        cause: Optional[BaseException] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, cause=cause, context=context)
        self.reason = reason
        self.reverted = reverted


class SubmissionError(ZunoSDKError):
    """A transaction could not be dispatched."""

    default_code = ErrorCode.TRANSACTION_FAILED


class TransientSubmissionError(SubmissionError):
    """Submission failed for a reason that may clear up on its own."""

    default_code = ErrorCode.NETWORK_ERROR
    retryable = True


class SubmissionOutcomeUnknownError(SubmissionError):
    """
    The request may have reached the node before the connection failed.

    The transaction might be pending, so it is never resubmitted
    automatically.
    """

    default_code = ErrorCode.SUBMISSION_OUTCOME_UNKNOWN
    outcome_unknown = True

    def __init__(self, message: str, cause: Optional[BaseException] = None, context: Optional[ErrorContext] = None):
        ctx = (context or ErrorContext()).merged(
            suggestion="Check the sender's pending transactions before resubmitting",
        )
        super().__init__(message, cause=cause, context=ctx)


class InsufficientFundsError(SubmissionError):
    default_code = ErrorCode.INSUFFICIENT_FUNDS


class SignerRejectedError(SubmissionError):
    default_code = ErrorCode.USER_REJECTED


class ConfirmationTimeoutError(ZunoSDKError):
    """No receipt within the confirmation window; the outcome is unknown."""

    default_code = ErrorCode.TRANSACTION_TIMEOUT
    outcome_unknown = True

    def __init__(
        self,
        tx_hash: str,
        timeout_seconds: float,
        cause: Optional[BaseException] = None,
        context: Optional[ErrorContext] = None,
    ):
        message = (
            f"Transaction {tx_hash} was not confirmed within {timeout_seconds:g}s; "
            "it may still be mined"
        )
        ctx = (context or ErrorContext()).merged(
            tx_hash=tx_hash,
            suggestion="Check the transaction hash on a block explorer before resubmitting",
        )
        super().__init__(message, cause=cause, context=ctx)
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds


class ExecutionRevertedError(ZunoSDKError):
    """The chain rejected the call. Terminal."""

    default_code = ErrorCode.TRANSACTION_REVERTED

    def __init__(
        self,
        message: str = "Transaction reverted",
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
        receipt: Optional[Any] = None,
        cause: Optional[BaseException] = None,
        context: Optional[ErrorContext] = None,
    ):
        if reason:
            message = f"{message}: {reason}"
        ctx = (context or ErrorContext()).merged(
            tx_hash=tx_hash,
            suggestion="Review the call parameters; resubmitting will revert again",
        )
        super().__init__(message, cause=cause, context=ctx)
        self.tx_hash = tx_hash
        self.reason = reason
        self.receipt = receipt

    @property
    def mined(self) -> bool:
        """True when the revert happened on-chain rather than at pre-flight."""
        return self.tx_hash is not None


class LogDecodingError(ZunoSDKError):
    """The transaction succeeded but the expected identifier was not in its logs."""

    default_code = ErrorCode.LOG_DECODING_FAILED

    def __init__(self, message: str, receipt: Any = None, context: Optional[ErrorContext] = None):
        tx_hash = getattr(receipt, "transaction_hash", None)
        ctx = (context or ErrorContext()).merged(
            tx_hash=tx_hash,
            suggestion="The transaction was mined; look up the identifier from the receipt",
        )
        super().__init__(message, context=ctx)
        self.receipt = receipt


class AllCandidatesFailedError(ZunoSDKError):
    """Every candidate contract kind was tried and none accepted the call."""

    default_code = ErrorCode.CANDIDATES_EXHAUSTED

    def __init__(self, message: str, errors: Sequence[ZunoSDKError]):
        super().__init__(
            message,
            details={"errors": [f"{type(e).__name__}: {e.message}" for e in errors]},
        )
        self.errors: List[ZunoSDKError] = list(errors)


# Submission failure classification
_NONCE_PATTERNS = (
    "nonce too low",
    "nonce has already been used",
    "already known",
    "replacement transaction underpriced",
    "nonce expired",
)
_TRANSIENT_PATTERNS = (
    "rate limit",
    "too many requests",
    "429",
    "temporarily unavailable",
    "service unavailable",
    "503",
    "connection refused",
    "econnrefused",
)
# The request may already have been accepted when these happen
_AMBIGUOUS_PATTERNS = (
    "timeout",
    "timed out",
    "connection reset",
    "econnreset",
    "connection closed",
    "broken pipe",
)
# Failures raised before the request was written to the wire
_UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)
_FUNDS_PATTERNS = (
    "insufficient funds",
    "exceeds balance",
    "not enough balance",
)
_REJECTED_PATTERNS = (
    "user rejected",
    "user denied",
    "rejected by user",
    "action_rejected",
)
_REVERT_PATTERNS = (
    "execution reverted",
    "revert",
)


def classify_submission_error(error: BaseException, context: Optional[ErrorContext] = None) -> ZunoSDKError:
    """
    Map a raw submission failure to the SDK taxonomy.

    Already classified SDK errors pass through. Connection failures that
    happen before the request is sent are transient; other transport
    failures and timeouts leave the outcome unknown and are never
    retried. Everything else is matched on its message.
    """
    if isinstance(error, ZunoSDKError):
        return error

    ctx = context or ErrorContext()
    message = str(error) or type(error).__name__
    lowered = message.lower()

    if isinstance(error, _UNSENT_ERRORS):
        return TransientSubmissionError(f"Transaction submission failed: {message}", cause=error, context=ctx)

    if isinstance(error, (httpx.TransportError, TimeoutError, asyncio.TimeoutError)):
        return SubmissionOutcomeUnknownError(
            f"Transaction submission interrupted, outcome unknown: {message}", cause=error, context=ctx
        )

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (429, 503):
            return TransientSubmissionError(
                f"RPC endpoint unavailable ({status})", cause=error, context=ctx
            )
        if status >= 500:
            # A gateway error may come back after the node accepted the request
            return SubmissionOutcomeUnknownError(
                f"RPC endpoint failed ({status}), outcome unknown", cause=error, context=ctx
            )
        return SubmissionError(f"RPC request rejected ({status})", cause=error, context=ctx)

    if any(p in lowered for p in _REJECTED_PATTERNS) or getattr(error, "code", None) == 4001:
        return SignerRejectedError(
            "Signer rejected the transaction",
            cause=error,
            context=ctx.merged(suggestion="Approve the request in the wallet"),
        )

    if any(p in lowered for p in _FUNDS_PATTERNS):
        return InsufficientFundsError(
            "Insufficient funds for value and gas",
            cause=error,
            context=ctx.merged(suggestion="Add funds to the wallet or reduce the amount"),
        )

    if any(p in lowered for p in _NONCE_PATTERNS):
        return TransientSubmissionError(
            f"Nonce conflict: {message}",
            code=ErrorCode.NONCE_CONFLICT,
            cause=error,
            context=ctx,
        )

    if any(p in lowered for p in _REVERT_PATTERNS):
        return ExecutionRevertedError(
            "Transaction would revert",
            reason=getattr(error, "reason", None) or message,
            cause=error,
            context=ctx,
        )

    if any(p in lowered for p in _AMBIGUOUS_PATTERNS):
        return SubmissionOutcomeUnknownError(
            f"Transaction submission interrupted, outcome unknown: {message}", cause=error, context=ctx
        )

    if any(p in lowered for p in _TRANSIENT_PATTERNS):
        return TransientSubmissionError(f"Transaction submission failed: {message}", cause=error, context=ctx)

    return SubmissionError(f"Transaction submission failed: {message}", cause=error, context=ctx)
