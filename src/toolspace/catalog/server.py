"""Host-facing facade that owns one catalog stack per running server."""

from __future__ import annotations

import copy
import logging
from typing import Any

from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, ErrorData, ListToolsResult, TextContent, ToolAnnotations
from mcp.types import Tool as MCPTool

from toolspace.config.schema import CatalogConfig

from .cache import CatalogCache
from .constants import (
    CREDENTIAL_ARGUMENT,
    HELP_TOOL_NAME,
    LIST_TOOLS_SUFFIX,
    MCP_CODE_AUTH_FAILED,
    MCP_CODE_CONNECTION_FAILED,
    MCP_CODE_FORBIDDEN,
    MCP_CODE_GENERIC,
    MCP_CODE_INVALID_PARAMS,
    MCP_CODE_NOT_FOUND,
)
from .dispatcher import Dispatcher
from .exceptions import CatalogError, InvalidInputError, NotFoundError, UpstreamRejectedError, UpstreamUnavailableError
from .loader import IntelligentLoader
from .resolver import NamespaceResolver
from .upstream import HttpUpstreamClient, UpstreamCatalogClient

logger = logging.getLogger(__name__)

HELP_TEXT = """# Hierarchical Tool Catalog

**How to Use:**

1. **DISCOVERY**: tools/list shows namespace tools such as `platform{suffix}`.
2. **EXPLORATION**: call a `<namespace>{suffix}` tool to load and list the tools in that namespace.
3. **EXECUTION**: call a namespaced tool directly (e.g. `platform__manage_users`) or use `<namespace>__execute_tool`.
"""


def _help_tool() -> MCPTool:
    return MCPTool(
        name=HELP_TOOL_NAME,
        description="Get help with the hierarchical tool catalog and workflow",
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=ToolAnnotations(title="❓ Catalog Help", readOnlyHint=True),
    )


def to_mcp_error(exc: Exception, tool_name: str | None = None) -> McpError:
    """Map a catalog error to an MCP error with a JSON-RPC error code."""
    subject = f"tool '{tool_name}'" if tool_name else "request"
    if isinstance(exc, InvalidInputError):
        return McpError(ErrorData(code=MCP_CODE_INVALID_PARAMS, message=str(exc)))
    if isinstance(exc, NotFoundError):
        return McpError(
            ErrorData(
                code=MCP_CODE_NOT_FOUND,
                message=str(exc),
                data={"suggestion": exc.suggestion} if exc.suggestion else None,
            )
        )
    if isinstance(exc, UpstreamRejectedError):
        if exc.status_code == 401:
            return McpError(
                ErrorData(
                    code=MCP_CODE_AUTH_FAILED,
                    message="Authentication failed",
                    data={"suggestion": f"Check your {CREDENTIAL_ARGUMENT} parameter or configured credential"},
                )
            )
        if exc.status_code == 403:
            return McpError(
                ErrorData(
                    code=MCP_CODE_FORBIDDEN,
                    message=f"Access denied for {subject}",
                    data={"suggestion": "Your API key may not have the required permissions"},
                )
            )
        return McpError(
            ErrorData(code=MCP_CODE_INVALID_PARAMS, message=str(exc), data={"error": exc.detail or "Bad request"})
        )
    if isinstance(exc, UpstreamUnavailableError):
        return McpError(
            ErrorData(
                code=MCP_CODE_CONNECTION_FAILED,
                message="Cannot connect to the upstream catalog",
                data={"error": str(exc), "suggestion": "Check your internet connection and try again"},
            )
        )
    return McpError(ErrorData(code=MCP_CODE_GENERIC, message=f"Tool execution failed: {exc}", data={"tool": tool_name}))


class CatalogServer:
    """Wire resolver, cache, loader and dispatcher together for one host server.

    The server owns every component it creates, starts the cache sweeper and
    priority preloading in :meth:`start`, and stops them in :meth:`aclose`.
    """

    def __init__(self, config: CatalogConfig, upstream: UpstreamCatalogClient | None = None) -> None:
        self.config = config
        self.upstream = upstream or HttpUpstreamClient(
            config.upstream_url,
            credential=config.credential,
            timeout=config.request_timeout,
            execute_timeout=config.execute_timeout,
        )
        self.resolver = NamespaceResolver()
        self.cache = CatalogCache(
            max_age=config.max_cache_age,
            max_namespaces=config.max_namespaces,
            pinned_top_k=config.pinned_top_k,
        )
        self.loader = IntelligentLoader(self.upstream, self.resolver, self.cache, config)
        self.dispatcher = Dispatcher(
            self.loader,
            self.cache,
            self.resolver,
            self.upstream,
            default_credential=config.credential,
        )

    async def __aenter__(self) -> CatalogServer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def start(self) -> None:
        if self.config.check_connection:
            try:
                await self.upstream.check_health()
            except CatalogError as exc:
                logger.error("Failed to start catalog server: %s", exc)
                await self.upstream.aclose()
                raise
            logger.info("Upstream connection successful")
        else:
            logger.info("Skipping upstream connection check")
        self.cache.start_sweeper(self.config.sweep_interval)
        await self.loader.initialize()

    async def aclose(self) -> None:
        await self.cache.stop_sweeper()
        await self.loader.aclose()
        await self.upstream.aclose()

    async def refresh(self) -> None:
        """Drop every cached catalog and restart preloading."""
        logger.info("Forced refresh: clearing catalog caches")
        self.cache.clear()
        self.loader.clear_caches()
        await self.loader.initialize()

    def _with_credential_param(self, tool: MCPTool) -> MCPTool:
        schema = copy.deepcopy(tool.inputSchema) if tool.inputSchema else {"type": "object"}
        properties = schema.setdefault("properties", {})
        if CREDENTIAL_ARGUMENT not in properties:
            properties[CREDENTIAL_ARGUMENT] = {
                "type": "string",
                "description": (
                    "API key for authentication (optional, overrides configured token)"
                    if self.config.credential
                    else "API key for authentication with the upstream platform (required)"
                ),
            }
            if not self.config.credential:
                required = schema.setdefault("required", [])
                if CREDENTIAL_ARGUMENT not in required:
                    required.append(CREDENTIAL_ARGUMENT)
        return tool.model_copy(update={"inputSchema": schema})

    async def list_tools(self, cursor: str | None = None) -> ListToolsResult:
        await self.loader.initialize()
        try:
            page = await self.loader.get_discovery_listing(cursor)
        except CatalogError as exc:
            raise to_mcp_error(exc) from exc

        tools = [descriptor.to_mcp_tool() for descriptor in page.descriptors]
        if not cursor:
            tools.insert(0, _help_tool())
        tools = [self._with_credential_param(tool) for tool in tools]
        logger.debug("Returning %s tools (cursor: %s, next: %s)", len(tools), cursor or "start", page.next_cursor or "end")
        return ListToolsResult(tools=tools, nextCursor=page.next_cursor)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> CallToolResult:
        try:
            if name == HELP_TOOL_NAME:
                args = dict(arguments or {})
                return await self._help(self.dispatcher.resolve_credential(args))
            result = await self.dispatcher.dispatch(name, arguments)
        except CatalogError as exc:
            logger.error("Tool execution failed for '%s': %s", name, exc)
            raise to_mcp_error(exc, name) from exc
        return CallToolResult(content=[TextContent(type="text", text=result.to_text())], isError=result.is_error)

    async def _help(self, credential: str) -> CallToolResult:
        try:
            sources = await self.loader.list_sources(credential)
            namespaces = ", ".join(self.resolver.resolve(info.name) for info in sources)
            text = HELP_TEXT.format(suffix=LIST_TOOLS_SUFFIX) + f"\n**Available Namespaces:** {namespaces}"
        except Exception as exc:  # noqa: BLE001
            text = HELP_TEXT.format(suffix=LIST_TOOLS_SUFFIX) + f"\n**Error:** Could not fetch current namespaces: {exc}"
        return CallToolResult(content=[TextContent(type="text", text=text)], isError=False)

    def get_metrics(self) -> dict[str, Any]:
        return self.loader.get_metrics()
