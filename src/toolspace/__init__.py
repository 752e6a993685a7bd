"""toolspace - A namespace-partitioned tool catalog cache and lazy loader."""

from toolspace.catalog import CatalogServer, Dispatcher, IntelligentLoader, NamespaceResolver
from toolspace.catalog.cache import CatalogCache
from toolspace.config import CatalogConfig

__all__ = [
    "CatalogCache",
    "CatalogConfig",
    "CatalogServer",
    "Dispatcher",
    "IntelligentLoader",
    "NamespaceResolver",
]
__version__ = "0.1.0"
