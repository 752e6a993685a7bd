"""Configuration schema for the catalog layer using Pydantic models."""

import os
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from toolspace.catalog.constants import (
    DEFAULT_APPS_TTL,
    DEFAULT_EXECUTE_TIMEOUT,
    DEFAULT_MAX_CACHE_AGE,
    DEFAULT_MAX_NAMESPACES,
    DEFAULT_NAMESPACE_LIST_TTL,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PINNED_TOP_K,
    DEFAULT_PRIORITY_NAMESPACES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    DEFAULT_UPSTREAM_URL,
)

ENV_PREFIX = "TOOLSPACE_"


class CatalogConfig(BaseModel):
    """Construction-time settings for the catalog cache, loader and dispatcher."""

    upstream_url: str = DEFAULT_UPSTREAM_URL
    credential: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    execute_timeout: float = DEFAULT_EXECUTE_TIMEOUT
    check_connection: bool = True

    # Cache freshness and bounds
    namespace_list_ttl: float = DEFAULT_NAMESPACE_LIST_TTL
    apps_ttl: float = DEFAULT_APPS_TTL
    max_cache_age: float = DEFAULT_MAX_CACHE_AGE
    max_namespaces: int = DEFAULT_MAX_NAMESPACES
    pinned_top_k: int = DEFAULT_PINNED_TOP_K
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL

    # Loading behaviour
    preload_namespaces: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_NAMESPACES))
    parallel_preload: bool = True
    predictive_loading: bool = False
    page_size: int = DEFAULT_PAGE_SIZE
    fallback_namespaces: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_NAMESPACES))

    @field_validator("upstream_url")
    @classmethod
    def validate_upstream_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and strip the trailing slash."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid upstream URL: {v}")
        return v.rstrip("/")

    @field_validator(
        "request_timeout",
        "execute_timeout",
        "namespace_list_ttl",
        "apps_ttl",
        "max_cache_age",
        "sweep_interval",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Durations must be positive numbers of seconds")
        return v

    @field_validator("max_namespaces", "page_size")
    @classmethod
    def validate_positive_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Sizes must be at least 1")
        return v

    @field_validator("pinned_top_k")
    @classmethod
    def validate_pinned(cls, v: int) -> int:
        if v < 0:
            raise ValueError("pinned_top_k cannot be negative")
        return v

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> "CatalogConfig":
        """Build a config from ``TOOLSPACE_*`` environment variables.

        List values are comma separated; booleans accept ``1/true/yes``.
        Keyword overrides win over the environment.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if field.annotation is bool:
                values[name] = raw.strip().lower() in {"1", "true", "yes"}
            elif field.annotation == list[str]:
                values[name] = [item.strip() for item in raw.split(",") if item.strip()]
            else:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
