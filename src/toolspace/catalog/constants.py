"""Constants for the catalog module.

This module defines naming conventions, defaults and message templates shared
by the resolver, cache, loader and dispatcher.
"""

# Tool naming constants
NAMESPACE_SEPARATOR = "__"
LIST_TOOLS_SUFFIX = f"{NAMESPACE_SEPARATOR}list_tools"
EXECUTE_TOOL_SUFFIX = f"{NAMESPACE_SEPARATOR}execute_tool"
HELP_TOOL_NAME = "catalog_help"
CREDENTIAL_ARGUMENT = "api_key"
EMPTY_NAMESPACE_ID = "namespace"

# Default timeout values (seconds)
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_EXECUTE_TIMEOUT = 60.0

# Cache defaults
DEFAULT_UPSTREAM_URL = "http://localhost:8000"
DEFAULT_NAMESPACE_LIST_TTL = 900.0
DEFAULT_APPS_TTL = 30.0
DEFAULT_MAX_CACHE_AGE = 300.0
DEFAULT_MAX_NAMESPACES = 20
DEFAULT_PINNED_TOP_K = 5
DEFAULT_SWEEP_INTERVAL = 60.0
DEFAULT_PAGE_SIZE = 50
DEFAULT_PRIORITY_NAMESPACES = ("platform", "company")
PREDICTIVE_LOAD_COUNT = 3

# Display ordering
CATEGORY_RANK = {
    "discovery": 10,
    "communication": 9,
    "calendar": 8,
    "files": 7,
    "administration": 6,
    "automation": 5,
    "data": 4,
    "general": 3,
}
PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}
TOOL_CATEGORIES = (
    "communication",
    "calendar",
    "files",
    "administration",
    "automation",
    "data",
    "general",
)

# Routing context
APP_CONTEXT_FIELD = "_app_context"
ACCOUNT_ID_FIELD = "_connected_account_id"
SERVER_ID_FIELD = "_server_id"
APP_CONTEXT_HEADER = "X-App-Context"
ACCOUNT_ID_HEADER = "X-Connected-Account-Id"
SERVER_ID_HEADER = "X-Server-Id"

# MCP JSON-RPC error codes
MCP_CODE_AUTH_FAILED = -32001
MCP_CODE_FORBIDDEN = -32002
MCP_CODE_CONNECTION_FAILED = -32003
MCP_CODE_GENERIC = -32000
MCP_CODE_NOT_FOUND = -32601
MCP_CODE_INVALID_PARAMS = -32602

# Error message constants
ERROR_OPERATION_NOT_FOUND = "Tool '{name}' not found in namespace '{namespace}'"
ERROR_LEGACY_NOT_FOUND = "Tool '{name}' not found in any namespace"
SUGGEST_LIST_TOOLS = "Call {namespace}{suffix} to discover available tools"
SUGGEST_DISCOVERY = "Use <namespace>__list_tools to discover available tools"
