"""Discovery descriptor synthesis, ordering and pagination."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from .constants import EXECUTE_TOOL_SUFFIX, LIST_TOOLS_SUFFIX, TOOL_CATEGORIES
from .exceptions import InvalidInputError
from .models import DiscoveryDescriptor, DiscoveryPage, NamespaceInfo
from .resolver import NamespaceResolver

KNOWN_SERVICES = {
    "gmail": "Gmail",
    "googledrive": "Google Drive",
    "googlecalendar": "Google Calendar",
    "slack": "Slack",
    "github": "GitHub",
    "trello": "Trello",
    "notion": "Notion",
    "discord": "Discord",
    "dropbox": "Dropbox",
    "linkedin": "LinkedIn",
    "quickbooks": "QuickBooks",
}

NAMESPACE_ICONS = {
    "company": "🏢",
    "platform": "⚙️",
    "calendar": "📅",
    "drive": "💾",
    "slack": "💬",
    "teams": "👥",
}

_TOKENISH = re.compile(r"^[a-z0-9_]+$", re.IGNORECASE)
_TRAILING_TOOLS = re.compile(r"\s*Tools\s*$", re.IGNORECASE)


def namespace_icon(namespace_id: str) -> str:
    if namespace_id.startswith("company_"):
        return NAMESPACE_ICONS["company"]
    return NAMESPACE_ICONS.get(namespace_id, "🔧")


def _humanize_service(source_name: str) -> str:
    parts = source_name.split("_")
    service = parts[0].lower()
    human = KNOWN_SERVICES.get(service) or service.replace("_", " ").title()
    suffix = " ".join(parts[1:])
    return f"{human} {suffix}" if suffix else human


def display_name_for(info: NamespaceInfo) -> str:
    """Return a friendly name for a namespace listing entry."""
    display = info.display_name or info.name
    label = (info.account_label or "").strip()

    if not label and _TOKENISH.match(display or ""):
        display = _humanize_service(info.name)

    display = _TRAILING_TOOLS.sub("", display)
    lowered = display.lower()
    for key in ("googledrive", "googlecalendar"):
        if lowered.startswith(key):
            display = KNOWN_SERVICES[key] + display[len(key):]

    words: list[str] = []
    for word in display.split():
        if not words or words[-1].lower() != word.lower():
            words.append(word)
    display = " ".join(words)

    if label and label.lower() not in display.lower():
        display = f"{display} ({label})"
    return display


def list_tools_descriptor(namespace_id: str, source_name: str, display_name: str | None = None) -> DiscoveryDescriptor:
    display = display_name or source_name
    return DiscoveryDescriptor(
        name=f"{namespace_id}{LIST_TOOLS_SUFFIX}",
        namespace=namespace_id,
        source_name=source_name,
        description=f"List all available tools in the {display} namespace",
        input_schema={
            "type": "object",
            "properties": {
                "filter": {
                    "type": "string",
                    "description": "Optional filter for tool names or descriptions",
                },
                "category": {
                    "type": "string",
                    "description": "Optional category filter (communication, files, administration, etc.)",
                    "enum": list(TOOL_CATEGORIES),
                },
            },
            "required": [],
        },
        title=f"{namespace_icon(namespace_id)} {display} Tool Discovery",
        category="discovery",
        read_only=True,
    )


def execute_tool_descriptor(namespace_id: str, source_name: str, display_name: str | None = None) -> DiscoveryDescriptor:
    display = display_name or source_name
    return DiscoveryDescriptor(
        name=f"{namespace_id}{EXECUTE_TOOL_SUFFIX}",
        namespace=namespace_id,
        source_name=source_name,
        description=f"Execute a specific tool in the {display} namespace",
        input_schema={
            "type": "object",
            "properties": {
                "tool_name": {
                    "type": "string",
                    "description": "Name of the tool to execute (as returned by list_tools)",
                },
                "parameters": {
                    "type": "object",
                    "description": "Parameters to pass to the tool",
                    "additionalProperties": True,
                },
            },
            "required": ["tool_name"],
        },
        title=f"{namespace_icon(namespace_id)} {display} Tool Execution",
        category="execution",
    )


def build_descriptors(
    resolver: NamespaceResolver,
    namespaces: Iterable[NamespaceInfo],
    humanize: bool = True,
) -> list[DiscoveryDescriptor]:
    """Return the list and execute descriptors for every namespace."""
    descriptors: list[DiscoveryDescriptor] = []
    for info in namespaces:
        namespace_id = resolver.resolve(info.name)
        display = display_name_for(info) if humanize else info.name
        descriptors.append(list_tools_descriptor(namespace_id, info.name, display))
        descriptors.append(execute_tool_descriptor(namespace_id, info.name, display))
    return descriptors


def sort_descriptors(descriptors: list[DiscoveryDescriptor]) -> list[DiscoveryDescriptor]:
    """Order by category rank, then priority tier, then name."""
    return sorted(descriptors, key=DiscoveryDescriptor.sort_key)


def parse_cursor(cursor: str | None) -> int:
    if cursor is None or cursor == "":
        return 0
    try:
        offset = int(cursor)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid cursor: {cursor!r}") from None
    if offset < 0:
        raise InvalidInputError(f"Invalid cursor: {cursor!r}")
    return offset


def paginate(descriptors: Sequence[DiscoveryDescriptor], cursor: str | None, page_size: int) -> DiscoveryPage:
    """Slice ``descriptors`` at the offset encoded in ``cursor``."""
    if page_size < 1:
        raise InvalidInputError("page_size must be at least 1")
    start = parse_cursor(cursor)
    end = min(start + page_size, len(descriptors))
    page = list(descriptors[start:end])
    next_cursor = str(end) if end < len(descriptors) else None
    return DiscoveryPage(descriptors=page, next_cursor=next_cursor)
