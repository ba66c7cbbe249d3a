"""
Chain and ABI service collaborators.

- ChainProvider / Signer: the interfaces the SDK needs from a wallet stack
- JsonRpcProvider / JsonRpcSigner: httpx based JSON-RPC implementations
- ZunoAPIClient: the ABI/metadata service client
"""

from .base import BlockTag, ChainProvider, RpcError, Signer
from .rpc import JsonRpcProvider, JsonRpcSigner, to_rpc_tx
from .api_client import DEFAULT_API_BASE_URL, ZunoAPIClient

__all__ = [
    "BlockTag",
    "ChainProvider",
    "RpcError",
    "Signer",
    "JsonRpcProvider",
    "JsonRpcSigner",
    "to_rpc_tx",
    "DEFAULT_API_BASE_URL",
    "ZunoAPIClient",
]
