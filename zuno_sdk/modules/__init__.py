"""Marketplace modules built on the shared contract layer."""

from .base import BaseModule, SDKContext, is_contract_kind_mismatch
from .exchange import ExchangeModule
from .auction import AuctionModule
from .collection import CollectionModule

__all__ = [
    "BaseModule",
    "SDKContext",
    "is_contract_kind_mismatch",
    "ExchangeModule",
    "AuctionModule",
    "CollectionModule",
]
