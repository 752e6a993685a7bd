"""Namespace-partitioned tool catalog package."""

from .cache import CatalogCache
from .dispatcher import CallKind, CallTarget, Dispatcher, classify
from .exceptions import (
    CatalogError,
    InvalidInputError,
    NotFoundError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .loader import IntelligentLoader
from .models import DiscoveryDescriptor, DiscoveryPage, NamespaceInfo, Operation, OperationSpec
from .resolver import NamespaceResolver
from .server import CatalogServer
from .upstream import HttpUpstreamClient, UpstreamCatalogClient

__all__ = [
    "CatalogCache",
    "CatalogServer",
    "CallKind",
    "CallTarget",
    "Dispatcher",
    "classify",
    "IntelligentLoader",
    "NamespaceResolver",
    "HttpUpstreamClient",
    "UpstreamCatalogClient",
    "DiscoveryDescriptor",
    "DiscoveryPage",
    "NamespaceInfo",
    "Operation",
    "OperationSpec",
    "CatalogError",
    "InvalidInputError",
    "NotFoundError",
    "UpstreamRejectedError",
    "UpstreamUnavailableError",
]
