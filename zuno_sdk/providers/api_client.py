"""Async client for the Zuno ABI/metadata service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..cache import TTLCache
from ..core.errors import ApiRequestError, ConfigurationError
from ..core.models import contract_type_name

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_API_BASE_URL = "https://api.zuno.market/v1"


class ZunoAPIClient:
    """
    Thin wrapper around the ABI service endpoints:

    - ``GET /abi/{contractType}``                 -> ``{"abi": [...]}``
    - ``GET /contracts/{contractType}``           -> ``{"address", "abi", "network", "contractType"}``
    - ``GET /contracts/address/{address}``        -> same record for an arbitrary deployment

    Responses wrapped as ``{"success": ..., "data": ...}`` are unwrapped.
    Successful responses are kept in a TTL cache when one is supplied.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        network: Optional[str] = None,
        timeout_s: float = 30,
        cache: Optional[TTLCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("API key is required")
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.network = network
        self.timeout_s = timeout_s
        self.cache = cache
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "X-API-Key": self.api_key,
            "user-agent": "zuno-sdk-python/0.1",
        }

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        cache_key = path + "?" + "&".join(f"{k}={v}" for k, v in sorted(params.items()))

        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached

        url = f"{self.base_url}{path}"
        try:
            response = await self._client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("abi service error", path=path, status=status)
            raise ApiRequestError(
                f"ABI service returned {status} for {path}",
                status_code=status,
                transient=status == 429 or status >= 500,
                cause=exc,
                details={"body": _error_body(exc.response)},
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("abi service unreachable", path=path, error=str(exc))
            raise ApiRequestError(
                f"ABI service request failed for {path}: {exc}",
                transient=True,
                cause=exc,
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiRequestError(f"ABI service returned malformed JSON for {path}", cause=exc) from exc

        if isinstance(payload, dict) and "success" in payload and "data" in payload:
            if payload.get("success") is False:
                raise ApiRequestError(payload.get("message") or f"ABI service reported failure for {path}")
            payload = payload["data"]

        if self.cache is not None and payload is not None:
            await self.cache.set(cache_key, payload)
        return payload

    async def get_abi(self, contract_type: Any, network: Optional[str] = None) -> List[Dict[str, Any]]:
        """Fetch the ABI for a contract type."""
        name = contract_type_name(contract_type)
        payload = await self._get(f"/abi/{name}", {"network": network or self.network})
        if isinstance(payload, dict):
            return payload.get("abi")  # type: ignore[return-value]
        return payload

    async def get_contract_info(self, contract_type: Any, network: Optional[str] = None) -> Dict[str, Any]:
        """Fetch the deployment record (address + ABI) for a contract type."""
        name = contract_type_name(contract_type)
        return await self._get(f"/contracts/{name}", {"network": network or self.network})

    async def get_contract_by_address(self, address: str, network: Optional[str] = None) -> Dict[str, Any]:
        """Fetch the record of an arbitrary deployed contract, e.g. a user collection."""
        return await self._get(f"/contracts/address/{address}", {"network": network or self.network})

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]
