"""
Contract and transaction models.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from .errors import ValidationError

if TYPE_CHECKING:
    from .contract import ContractHandle


class ContractType(str, Enum):
    """Logical contract kinds known to the ABI service."""
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"
    ERC721_NFT_EXCHANGE = "ERC721NFTExchange"
    ERC1155_NFT_EXCHANGE = "ERC1155NFTExchange"
    ENGLISH_AUCTION = "EnglishAuction"
    DUTCH_AUCTION = "DutchAuction"
    ERC721_COLLECTION_FACTORY = "ERC721CollectionFactory"
    ERC1155_COLLECTION_FACTORY = "ERC1155CollectionFactory"


def contract_type_name(contract_type: Any) -> str:
    """Plain string name for a ``ContractType`` member or free-form type name."""
    return contract_type.value if isinstance(contract_type, Enum) else str(contract_type)


class ReceiptStatus(str, Enum):
    SUCCESS = "success"
    REVERTED = "reverted"


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith(("0x", "0X")) else int(text)


@dataclass(frozen=True)
class ContractDescriptor:
    """A deployed contract: where it lives and what it speaks."""
    contract_type: str
    network: str
    address: str                                # EIP-55 checksummed
    abi: Tuple[Dict[str, Any], ...]

    def abi_list(self) -> List[Dict[str, Any]]:
        return list(self.abi)


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: Tuple[str, ...]
    data: str = "0x"
    log_index: Optional[int] = None

    @classmethod
    def from_rpc(cls, raw: Mapping[str, Any]) -> "LogEntry":
        return cls(
            address=raw.get("address", ""),
            topics=tuple(raw.get("topics") or ()),
            data=raw.get("data") or "0x",
            log_index=_to_int(raw.get("logIndex")),
        )


@dataclass(frozen=True)
class TransactionReceipt:
    """Confirmed outcome of a submitted transaction."""
    transaction_hash: str
    block_number: int
    status: ReceiptStatus
    logs: Tuple[LogEntry, ...] = ()
    gas_used: Optional[int] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    contract_address: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == ReceiptStatus.SUCCESS

    @classmethod
    def from_rpc(cls, raw: Mapping[str, Any]) -> "TransactionReceipt":
        """Parse an ``eth_getTransactionReceipt`` result (hex or int fields)."""
        # Pre-byzantium receipts carry no status; treat them as successful
        status = _to_int(raw.get("status", 1))
        return cls(
            transaction_hash=raw["transactionHash"],
            block_number=_to_int(raw.get("blockNumber")) or 0,
            status=ReceiptStatus.SUCCESS if status == 1 else ReceiptStatus.REVERTED,
            logs=tuple(LogEntry.from_rpc(log) for log in raw.get("logs") or ()),
            gas_used=_to_int(raw.get("gasUsed")),
            from_address=raw.get("from"),
            to_address=raw.get("to"),
            contract_address=raw.get("contractAddress"),
        )


@dataclass
class TransactionOptions:
    """Per-call overrides for state-changing transactions."""
    value: int = 0                              # Wei attached to the call
    gas_limit: Optional[int] = None
    nonce: Optional[int] = None
    max_fee_per_gas: Optional[int] = None       # EIP-1559
    max_priority_fee_per_gas: Optional[int] = None
    confirmation_timeout_seconds: Optional[float] = None
    confirmations: int = 1

    @classmethod
    def coerce(cls, options: Any) -> "TransactionOptions":
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if isinstance(options, Mapping):
            unknown = set(options) - {f.name for f in fields(cls)}
            if unknown:
                raise ValidationError(
                    f"Unknown transaction options: {', '.join(sorted(unknown))}",
                    field_name="options",
                )
            return cls(**options)
        raise ValidationError(f"Unsupported transaction options: {options!r}", field_name="options")


@dataclass
class TransactionRequest:
    """One contract call to sign and send."""
    handle: "ContractHandle"
    method: str
    args: Tuple[Any, ...] = ()
    options: TransactionOptions = field(default_factory=TransactionOptions)

    @property
    def value(self) -> int:
        return self.options.value

    def to_tx(self, from_address: Optional[str] = None) -> Dict[str, Any]:
        """Render the transaction dict handed to the signer."""
        tx: Dict[str, Any] = {
            "to": self.handle.address,
            "data": self.handle.encode_call(self.method, self.args),
            "value": int(self.options.value or 0),
        }
        if from_address:
            tx["from"] = from_address
        if self.options.gas_limit is not None:
            tx["gas"] = self.options.gas_limit
        if self.options.nonce is not None:
            tx["nonce"] = self.options.nonce
        if self.options.max_fee_per_gas is not None:
            tx["maxFeePerGas"] = self.options.max_fee_per_gas
        if self.options.max_priority_fee_per_gas is not None:
            tx["maxPriorityFeePerGas"] = self.options.max_priority_fee_per_gas
        return tx
