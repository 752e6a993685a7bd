"""Configuration schema and utilities package."""

from toolspace.config.schema import CatalogConfig

__all__ = ["CatalogConfig"]
