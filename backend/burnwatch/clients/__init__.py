"""XRPL network clients."""

from burnwatch.clients.errors import (
    LedgerNotFoundError,
    NoNodesAvailableError,
    XrplConnectionError,
    XrplError,
    XrplRequestError,
)
from burnwatch.clients.node_pool import NodePool, QueryResponse
from burnwatch.clients.xrpl_ws import XrplNode

__all__ = [
    "LedgerNotFoundError",
    "NoNodesAvailableError",
    "XrplConnectionError",
    "XrplError",
    "XrplRequestError",
    "NodePool",
    "QueryResponse",
    "XrplNode",
]
