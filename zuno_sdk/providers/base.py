import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

import httpx
import structlog

from ..core.contract import decode_revert_reason

logger = structlog.stdlib.get_logger(__name__)

BlockTag = Union[int, str]


class RpcError(Exception):
    """JSON-RPC error object returned by a node or wallet."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @property
    def revert_data(self) -> Optional[str]:
        data = self.data
        if isinstance(data, dict):
            data = data.get("data")
        if isinstance(data, str) and data.startswith("0x"):
            return data
        return None

    @property
    def reason(self) -> Optional[str]:
        return decode_revert_reason(self.revert_data)

    @property
    def is_revert(self) -> bool:
        # Geth and most nodes report reverts as code 3 with the payload in ``data``
        return self.code == 3 or "revert" in self.message.lower()


class ChainProvider(ABC):
    """Read access to a chain: calls and receipts."""

    name: str = "provider"

    @abstractmethod
    async def call(self, tx: Dict[str, Any], block: BlockTag = "latest") -> str:
        """Execute a read-only call and return the raw hex result."""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Return the receipt for ``tx_hash`` or ``None`` while it is pending."""
        pass

    @abstractmethod
    async def get_block_number(self) -> int:
        pass

    async def wait_for_transaction_receipt(
        self,
        tx_hash: str,
        poll_interval: float = 2.0,
    ) -> Dict[str, Any]:
        """
        Poll until a receipt exists. Unbounded: callers wrap this in a timeout.

        Transient transport errors while polling are logged and polled through.
        """
        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
                if receipt:
                    return receipt
            except (httpx.TransportError, httpx.HTTPStatusError) as e:
                logger.warning("receipt poll failed", tx_hash=tx_hash, error=str(e))

            await asyncio.sleep(poll_interval)


class Signer(ABC):
    """Authorizes and dispatches transactions for one account."""

    provider: Optional[ChainProvider] = None

    @abstractmethod
    async def get_address(self) -> str:
        pass

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign and broadcast ``tx``; return the transaction hash."""
        pass
