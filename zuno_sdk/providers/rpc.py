"""JSON-RPC provider and signer over httpx."""

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional

import httpx
import structlog
from eth_utils import to_checksum_address

from .base import BlockTag, ChainProvider, RpcError, Signer

logger = structlog.stdlib.get_logger(__name__)

_QUANTITY_FIELDS = (
    "value",
    "gas",
    "nonce",
    "gasPrice",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "chainId",
)


def to_rpc_tx(tx: Dict[str, Any]) -> Dict[str, Any]:
    """Hex-encode integer quantities the way JSON-RPC expects them."""
    rendered = dict(tx)
    for key in _QUANTITY_FIELDS:
        value = rendered.get(key)
        if isinstance(value, int):
            rendered[key] = hex(value)
    return rendered


def _block_param(block: BlockTag) -> str:
    return hex(block) if isinstance(block, int) else block


class JsonRpcProvider(ChainProvider):
    """Chain reads against a JSON-RPC endpoint."""

    name = "json-rpc"

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._ids = itertools.count(1)

    async def request(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the chain."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        response = await self._client.post(self.rpc_url, json=payload)
        response.raise_for_status()
        result = response.json()

        error = result.get("error")
        if error:
            raise RpcError(
                error.get("message", "RPC error"),
                code=error.get("code"),
                data=error.get("data"),
            )

        return result.get("result")

    async def call(self, tx: Dict[str, Any], block: BlockTag = "latest") -> str:
        return await self.request("eth_call", [to_rpc_tx(tx), _block_param(block)])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def get_chain_id(self) -> int:
        return int(await self.request("eth_chainId", []), 16)

    async def get_block_number(self) -> int:
        return int(await self.request("eth_blockNumber", []), 16)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


class JsonRpcSigner(Signer):
    """
    An account unlocked behind the RPC endpoint (a wallet bridge or a
    development node). Signing happens remotely via ``eth_sendTransaction``;
    no key material passes through the SDK.
    """

    def __init__(self, provider: JsonRpcProvider, address: str) -> None:
        self.provider = provider
        self._address = to_checksum_address(address)

    async def get_address(self) -> str:
        return self._address

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        tx = {**tx, "from": self._address}
        tx_hash = await self.provider.request("eth_sendTransaction", [to_rpc_tx(tx)])
        logger.info("transaction submitted", tx_hash=tx_hash, sender=self._address)
        return tx_hash
