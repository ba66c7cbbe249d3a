"""
Contract handles and ABI coding.

A ``ContractHandle`` binds a resolved ``ContractDescriptor`` to an execution
context (a provider for reads, optionally a signer for writes). Handles are
never mutated; a change of context means a new handle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak, to_bytes, to_checksum_address

from .errors import ValidationError
from .models import ContractDescriptor

if TYPE_CHECKING:
    from ..providers.base import ChainProvider, Signer


ERROR_STRING_SELECTOR = "0x08c379a0"  # Error(string)
PANIC_SELECTOR = "0x4e487b71"  # Panic(uint256)


def canonical_type(param: Mapping[str, Any]) -> str:
    """ABI type string with tuples collapsed, e.g. ``(address,uint256)[]``."""
    typ = param["type"]
    if typ.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){typ[len('tuple'):]}"
    return typ


def signature(entry: Mapping[str, Any]) -> str:
    types = ",".join(canonical_type(p) for p in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def selector(entry: Mapping[str, Any]) -> str:
    return "0x" + keccak(text=signature(entry))[:4].hex()


def _hex_to_bytes(data: Optional[str]) -> bytes:
    if not data or data in ("0x", "0X"):
        return b""
    return to_bytes(hexstr=data)


def decode_revert_reason(data: Optional[str]) -> Optional[str]:
    """Decode standard ``Error(string)`` and ``Panic(uint256)`` payloads."""
    if not data or len(data) < 10:
        return None
    prefix, payload = data[:10].lower(), _hex_to_bytes("0x" + data[10:])
    try:
        if prefix == ERROR_STRING_SELECTOR:
            return decode(["string"], payload)[0]
        if prefix == PANIC_SELECTOR:
            return f"panic code 0x{decode(['uint256'], payload)[0]:02x}"
    except Exception:  # noqa: BLE001 - undecodable payloads just have no reason
        return None
    return None


def _normalize_arg(param: Mapping[str, Any], value: Any) -> Any:
    """Coerce friendly Python values into what eth-abi expects for ``param``."""
    typ = param["type"]
    if typ.endswith("]"):
        element = dict(param, type=typ[: typ.rindex("[")])
        return [_normalize_arg(element, v) for v in value]
    if typ == "tuple":
        components = param.get("components", [])
        if isinstance(value, Mapping):
            return tuple(_normalize_arg(c, value[c["name"]]) for c in components)
        return tuple(_normalize_arg(c, v) for c, v in zip(components, value))
    if typ == "address":
        return to_checksum_address(value)
    if typ.startswith(("uint", "int")):
        if isinstance(value, str):
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        return int(value)
    if typ.startswith("bytes") and isinstance(value, str):
        return _hex_to_bytes(value)
    return value


def _present_value(param: Mapping[str, Any], value: Any) -> Any:
    """Turn decoded eth-abi values into plain, JSON friendly Python values."""
    typ = param["type"]
    if typ.endswith("]"):
        element = dict(param, type=typ[: typ.rindex("[")])
        return [_present_value(element, v) for v in value]
    if typ == "tuple":
        components = param.get("components", [])
        items = [_present_value(c, v) for c, v in zip(components, value)]
        if components and all(c.get("name") for c in components):
            return {c["name"]: item for c, item in zip(components, items)}
        return tuple(items)
    if typ == "address":
        return to_checksum_address(value)
    if isinstance(value, bytes):
        return "0x" + value.hex()
    return value


class ContractHandle:
    """A deployed contract bound to a provider and optional signer."""

    __slots__ = ("_descriptor", "_provider", "_signer")

    def __init__(
        self,
        descriptor: ContractDescriptor,
        provider: Optional["ChainProvider"] = None,
        signer: Optional["Signer"] = None,
    ):
        self._descriptor = descriptor
        self._provider = provider
        self._signer = signer

    @property
    def descriptor(self) -> ContractDescriptor:
        return self._descriptor

    @property
    def address(self) -> str:
        return self._descriptor.address

    @property
    def contract_type(self) -> str:
        return self._descriptor.contract_type

    @property
    def network(self) -> str:
        return self._descriptor.network

    @property
    def abi(self) -> List[Dict[str, Any]]:
        return self._descriptor.abi_list()

    @property
    def provider(self) -> Optional["ChainProvider"]:
        """Provider used for reads; falls back to the signer's provider."""
        if self._provider is not None:
            return self._provider
        return getattr(self._signer, "provider", None)

    @property
    def signer(self) -> Optional["Signer"]:
        return self._signer

    @property
    def has_signer(self) -> bool:
        return self._signer is not None

    def function_abi(self, method: str, num_args: Optional[int] = None) -> Dict[str, Any]:
        """Find ``method`` in the ABI, using the argument count to pick overloads."""
        candidates = [
            entry for entry in self._descriptor.abi
            if entry.get("type", "function") == "function" and entry.get("name") == method
        ]
        if num_args is not None and len(candidates) > 1:
            by_arity = [e for e in candidates if len(e.get("inputs", [])) == num_args]
            candidates = by_arity or candidates
        if not candidates:
            raise ValidationError(
                f"Method '{method}' is not part of the {self.contract_type} ABI",
                field_name="method",
            )
        return candidates[0]

    def encode_call(self, method: str, args: Sequence[Any] = ()) -> str:
        entry = self.function_abi(method, len(args))
        inputs = entry.get("inputs", [])
        if len(inputs) != len(args):
            raise ValidationError(
                f"{method} expects {len(inputs)} arguments, got {len(args)}",
                field_name="args",
            )
        try:
            values = [_normalize_arg(p, a) for p, a in zip(inputs, args)]
            encoded = encode([canonical_type(p) for p in inputs], values)
        except (EncodingError, TypeError, ValueError, KeyError) as e:
            raise ValidationError(f"Cannot encode arguments for {method}: {e}", field_name="args") from e
        return selector(entry) + encoded.hex()

    def decode_output(self, method: str, data: str, num_args: Optional[int] = None) -> Any:
        """
        Decode a call result. A single output is returned bare; several
        named outputs come back as a dict, unnamed ones as a tuple.
        """
        entry = self.function_abi(method, num_args)
        outputs = entry.get("outputs", [])
        if not outputs:
            return None
        values = decode([canonical_type(p) for p in outputs], _hex_to_bytes(data))
        presented = [_present_value(p, v) for p, v in zip(outputs, values)]
        if len(outputs) == 1:
            return presented[0]
        if all(p.get("name") for p in outputs):
            return {p["name"]: v for p, v in zip(outputs, presented)}
        return tuple(presented)

    def event_topic(self, event: str) -> Optional[str]:
        """Topic 0 of ``event`` if the ABI declares it."""
        for entry in self._descriptor.abi:
            if entry.get("type") == "event" and entry.get("name") == event:
                return "0x" + keccak(text=signature(entry)).hex()
        return None

    def decode_error(self, data: Optional[str]) -> Optional[str]:
        """Revert reason from standard payloads or custom errors in the ABI."""
        reason = decode_revert_reason(data)
        if reason is not None or not data or len(data) < 10:
            return reason
        prefix = data[:10].lower()
        for entry in self._descriptor.abi:
            if entry.get("type") == "error" and selector(entry) == prefix:
                return signature(entry)
        return None

    def __repr__(self) -> str:
        mode = "signer" if self.has_signer else "read-only"
        return f"ContractHandle({self.contract_type}@{self.address} on {self.network}, {mode})"
