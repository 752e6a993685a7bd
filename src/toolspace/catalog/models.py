"""Data types shared by the catalog components."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from mcp.types import Tool as MCPTool
from mcp.types import ToolAnnotations

from .constants import CATEGORY_RANK, NAMESPACE_SEPARATOR, PRIORITY_RANK

EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("communication", ("email", "gmail", "send")),
    ("calendar", ("calendar", "meeting", "schedule")),
    ("files", ("file", "drive", "document")),
    ("administration", ("user", "manage", "admin")),
    ("automation", ("workflow", "automation")),
    ("data", ("list", "search", "fetch")),
)

_HIGH_PRIORITY_NAMESPACES = {"platform", "company"}


def derive_category(tool_name: str) -> str:
    """Return the display category for a tool name."""
    name = tool_name.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in name for k in keywords):
            return category
    return "general"


def derive_priority(tool_name: str, namespace: str) -> str:
    """Return the display priority tier for a tool in ``namespace``."""
    name = tool_name.lower()
    if any(k in name for k in ("send", "create", "list")):
        return "high"
    if namespace in _HIGH_PRIORITY_NAMESPACES:
        return "high"
    if any(k in name for k in ("get", "fetch", "search")):
        return "medium"
    return "low"


def qualify(namespace: str, original_name: str) -> str:
    """Return the fully-qualified ``<namespace>__<name>`` form."""
    return f"{namespace}{NAMESPACE_SEPARATOR}{original_name}"


@dataclass(frozen=True)
class OperationSpec:
    """One operation as returned by the upstream catalog, before qualification."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: dict(EMPTY_SCHEMA))
    slug: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0, source_name: str = "") -> OperationSpec:
        """Parse an upstream tool entry, tolerating the shapes the backend has used."""
        function = data.get("function") or {}
        name = data.get("name") or function.get("name") or data.get("id") or f"tool_{index}"
        schema = data.get("inputSchema") or function.get("parameters")
        if not isinstance(schema, dict):
            schema = dict(EMPTY_SCHEMA)
        description = data.get("description") or (f"Tool from {source_name}" if source_name else "")
        return cls(
            name=name,
            description=description,
            input_schema=schema,
            slug=data.get("slug") or data.get("id") or name,
        )


@dataclass(frozen=True)
class Operation:
    """A tool registered in the cache under its owning namespace."""

    name: str
    original_name: str
    namespace: str
    source_name: str
    description: str
    input_schema: dict[str, Any]
    slug: str
    category: str
    priority: str
    registered_at: float

    @classmethod
    def from_spec(cls, spec: OperationSpec, namespace: str, source_name: str, now: float | None = None) -> Operation:
        return cls(
            name=qualify(namespace, spec.name),
            original_name=spec.name,
            namespace=namespace,
            source_name=source_name,
            description=spec.description,
            input_schema=spec.input_schema,
            slug=spec.slug or spec.name,
            category=derive_category(spec.name),
            priority=derive_priority(spec.name, namespace),
            registered_at=time.time() if now is None else now,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "input_schema": self.input_schema,
        }

    def to_mcp_tool(self) -> MCPTool:
        return MCPTool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
            annotations=ToolAnnotations(title=self.original_name),
        )


@dataclass
class NamespaceInfo:
    """Routing metadata for one upstream connection."""

    name: str
    display_name: str | None = None
    connected_account_id: str | None = None
    server_id: str | None = None
    account_label: str | None = None
    connection_status: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str) -> NamespaceInfo:
        """Parse a namespace entry; accepts plain app-name strings from the legacy listing."""
        if isinstance(data, str):
            return cls(name=data)
        name = data.get("name") or data.get("namespace")
        if not isinstance(name, str) or not name:
            raise ValueError(f"Namespace entry without a name: {data!r}")
        return cls(
            name=name,
            display_name=data.get("displayName") or data.get("display_name"),
            connected_account_id=data.get("connected_account_id") or data.get("connectionId"),
            server_id=data.get("server_id") or data.get("serverId"),
            account_label=data.get("account_label") or data.get("accountLabel"),
            connection_status=data.get("connection_status") or data.get("status"),
        )


@dataclass(frozen=True)
class DiscoveryDescriptor:
    """A synthetic tool whose invocation lists or executes operations of a namespace."""

    name: str
    namespace: str
    source_name: str
    description: str
    input_schema: dict[str, Any]
    title: str
    category: str
    priority: str = "high"
    read_only: bool = False

    def sort_key(self) -> tuple[int, int, str]:
        return (
            -CATEGORY_RANK.get(self.category, 0),
            -PRIORITY_RANK.get(self.priority, 0),
            self.name,
        )

    def to_mcp_tool(self) -> MCPTool:
        return MCPTool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
            annotations=ToolAnnotations(title=self.title, readOnlyHint=self.read_only or None),
        )


@dataclass
class DiscoveryPage:
    """One page of the discovery listing. ``next_cursor`` is ``None`` on the last page."""

    descriptors: list[DiscoveryDescriptor]
    next_cursor: str | None = None
