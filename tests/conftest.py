"""Shared fakes and fixtures for the catalog tests."""

import asyncio
from collections import Counter
from typing import Any

import pytest

from toolspace.catalog.cache import CatalogCache
from toolspace.catalog.exceptions import UpstreamUnavailableError
from toolspace.catalog.loader import IntelligentLoader
from toolspace.catalog.models import NamespaceInfo, OperationSpec
from toolspace.catalog.resolver import NamespaceResolver
from toolspace.config import CatalogConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """In-memory upstream catalog that records every call.

    ``tools`` maps source names to lists of raw tool dicts. Setting
    ``fail_namespaces`` / ``fail_apps`` makes the listing calls raise, and
    ``gate`` (an ``asyncio.Event``) holds ``list_operations`` until set.
    """

    def __init__(
        self,
        namespaces: list[dict[str, Any]] | None = None,
        tools: dict[str, list[dict[str, Any]]] | None = None,
        apps: list[str] | None = None,
    ):
        self.namespaces = namespaces or []
        self.tools = tools or {}
        self.apps = apps if apps is not None else list(self.tools)
        self.fail_namespaces: Exception | None = None
        self.fail_apps: Exception | None = None
        self.fail_operations: dict[str, Exception] = {}
        self.execute_response: Any = {"successful": True, "data": {"ok": True}}
        self.execute_error: Exception | None = None
        self.fail_health: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: Counter = Counter()
        self.operation_calls: list[tuple[str, str | None]] = []
        self.executions: list[dict[str, Any]] = []
        self.closed = False

    async def list_namespaces(self, credential=None):
        self.calls["list_namespaces"] += 1
        if self.fail_namespaces:
            raise self.fail_namespaces
        return [NamespaceInfo.from_dict(entry) for entry in self.namespaces]

    async def list_apps(self, credential=None):
        self.calls["list_apps"] += 1
        if self.fail_apps:
            raise self.fail_apps
        return list(self.apps)

    async def list_operations(self, source_name, credential=None):
        self.calls["list_operations"] += 1
        self.operation_calls.append((source_name, credential))
        if self.gate is not None:
            await self.gate.wait()
        if source_name in self.fail_operations:
            raise self.fail_operations[source_name]
        if source_name not in self.tools:
            raise UpstreamUnavailableError(f"Server error for tools of '{source_name}'", status_code=500)
        return [OperationSpec.from_dict(t, i, source_name) for i, t in enumerate(self.tools[source_name])]

    async def execute(self, operation_slug, parameters, routing_headers, credential=None, context=None):
        self.calls["execute"] += 1
        self.executions.append(
            {
                "slug": operation_slug,
                "parameters": parameters,
                "headers": routing_headers,
                "credential": credential,
                "context": context,
            }
        )
        if self.execute_error:
            raise self.execute_error
        return self.execute_response

    async def check_health(self, credential=None):
        self.calls["check_health"] += 1
        if self.fail_health:
            raise self.fail_health
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeUpstream(
        namespaces=[
            {"name": "platform", "displayName": "Platform Tools"},
            {"name": "company", "displayName": "Company"},
            {
                "name": "gmail_work",
                "connected_account_id": "acct-123",
                "server_id": "srv-9",
                "account_label": "Work",
            },
        ],
        tools={
            "platform": [
                {"name": "manage_users", "description": "Manage platform users"},
                {"name": "list_workflows", "description": "List workflows"},
            ],
            "company": [{"name": "get_profile", "description": "Company profile"}],
            "gmail_work": [
                {"name": "send_email", "description": "Send an email", "slug": "GMAIL_SEND_EMAIL"},
                {"name": "search_threads", "description": "Search threads"},
            ],
        },
    )


@pytest.fixture
def config():
    return CatalogConfig(credential="default-token", preload_namespaces=["platform", "company"])


@pytest.fixture
def resolver():
    return NamespaceResolver()


@pytest.fixture
def cache(clock):
    return CatalogCache(max_age=300, max_namespaces=20, pinned_top_k=5, clock=clock)


@pytest.fixture
def loader(upstream, resolver, cache, config, clock):
    return IntelligentLoader(upstream, resolver, cache, config, clock=clock)


@pytest.fixture
def upstream_factory():
    """Build extra fake upstreams with custom catalogs."""
    return FakeUpstream
