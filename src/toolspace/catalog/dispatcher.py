"""Classify inbound tool calls and route them to the right upstream context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from toolspace.common.results import ExecutionResult, normalize_execution_response

from .cache import CatalogCache
from .constants import (
    ACCOUNT_ID_FIELD,
    ACCOUNT_ID_HEADER,
    APP_CONTEXT_FIELD,
    APP_CONTEXT_HEADER,
    CREDENTIAL_ARGUMENT,
    ERROR_LEGACY_NOT_FOUND,
    ERROR_OPERATION_NOT_FOUND,
    EXECUTE_TOOL_SUFFIX,
    LIST_TOOLS_SUFFIX,
    NAMESPACE_SEPARATOR,
    SERVER_ID_FIELD,
    SERVER_ID_HEADER,
    SUGGEST_DISCOVERY,
    SUGGEST_LIST_TOOLS,
)
from .exceptions import InvalidInputError, NotFoundError, UpstreamRejectedError, UpstreamUnavailableError
from .loader import IntelligentLoader
from .models import Operation, qualify
from .resolver import NamespaceResolver
from .upstream import UpstreamCatalogClient

logger = logging.getLogger(__name__)


class CallKind(Enum):
    DISCOVERY = "discovery"
    EXECUTE = "execute"
    NAMESPACED = "namespaced"
    LEGACY = "legacy"


@dataclass(frozen=True)
class CallTarget:
    """Outcome of classifying a call name.

    ``operation`` is the unqualified operation name for namespaced and legacy
    calls and ``None`` for discovery and execute calls, whose operation (if
    any) comes from the arguments.
    """

    kind: CallKind
    namespace: str | None = None
    operation: str | None = None


def classify(call_name: str) -> CallTarget:
    """Classify ``call_name`` by its suffix and separator conventions."""
    if call_name.endswith(LIST_TOOLS_SUFFIX) and len(call_name) > len(LIST_TOOLS_SUFFIX):
        return CallTarget(CallKind.DISCOVERY, namespace=call_name[: -len(LIST_TOOLS_SUFFIX)])
    if call_name.endswith(EXECUTE_TOOL_SUFFIX) and len(call_name) > len(EXECUTE_TOOL_SUFFIX):
        return CallTarget(CallKind.EXECUTE, namespace=call_name[: -len(EXECUTE_TOOL_SUFFIX)])
    if NAMESPACE_SEPARATOR in call_name:
        namespace, operation = call_name.split(NAMESPACE_SEPARATOR, 1)
        if namespace and operation:
            return CallTarget(CallKind.NAMESPACED, namespace=namespace, operation=operation)
    return CallTarget(CallKind.LEGACY, operation=call_name)


def _not_found(namespace: str, name: str) -> NotFoundError:
    return NotFoundError(
        ERROR_OPERATION_NOT_FOUND.format(name=name, namespace=namespace),
        suggestion=SUGGEST_LIST_TOOLS.format(namespace=namespace, suffix=LIST_TOOLS_SUFFIX),
    )


def _is_fatal(exc: Exception) -> bool:
    """Auth rejections and connectivity failures abort a search instead of skipping a namespace."""
    if isinstance(exc, UpstreamRejectedError):
        return exc.is_auth_failure
    return isinstance(exc, UpstreamUnavailableError) and exc.status_code is None


class Dispatcher:
    """Resolve inbound calls to operations and execute them upstream."""

    def __init__(
        self,
        loader: IntelligentLoader,
        cache: CatalogCache,
        resolver: NamespaceResolver,
        upstream: UpstreamCatalogClient,
        default_credential: str | None = None,
    ) -> None:
        self.loader = loader
        self.cache = cache
        self.resolver = resolver
        self.upstream = upstream
        self.default_credential = default_credential

    def resolve_credential(self, arguments: dict[str, Any], credential: str | None = None) -> str:
        """Pop any per-call ``api_key`` from ``arguments`` and pick the credential for this call."""
        supplied = arguments.pop(CREDENTIAL_ARGUMENT, None)
        token = credential or supplied or self.default_credential
        if not token:
            raise InvalidInputError(
                f"Authentication required: provide an {CREDENTIAL_ARGUMENT} parameter or configure a default credential"
            )
        return token

    async def dispatch(
        self,
        call_name: str,
        arguments: dict[str, Any] | None = None,
        credential: str | None = None,
    ) -> ExecutionResult:
        if not isinstance(call_name, str) or not call_name:
            raise InvalidInputError("Tool name must be a non-empty string")
        args = dict(arguments or {})
        token = self.resolve_credential(args, credential)
        target = classify(call_name)
        logger.debug("Dispatching '%s' as %s call", call_name, target.kind.value)

        if target.kind is CallKind.DISCOVERY:
            return await self.list_namespace(target.namespace, args, token)
        if target.kind is CallKind.EXECUTE:
            tool_name = args.get("tool_name")
            if not isinstance(tool_name, str) or not tool_name:
                raise InvalidInputError(f"Missing required parameter 'tool_name' for {call_name}")
            parameters = args.get("parameters") or {}
            if not isinstance(parameters, dict):
                raise InvalidInputError(f"Parameter 'parameters' for {call_name} must be an object")
            prefix = f"{target.namespace}{NAMESPACE_SEPARATOR}"
            if tool_name.startswith(prefix):
                tool_name = tool_name[len(prefix):]
            return await self.execute_in_namespace(target.namespace, tool_name, parameters, token)
        if target.kind is CallKind.NAMESPACED:
            return await self.execute_in_namespace(target.namespace, target.operation, args, token)
        return await self.execute_legacy(target.operation, args, token)

    async def list_namespace(self, namespace: str, arguments: dict[str, Any], credential: str) -> ExecutionResult:
        """Load ``namespace`` and return its operations, optionally filtered."""
        operations = await self.loader.load_namespace(namespace, credential)
        name_filter = arguments.get("filter")
        category = arguments.get("category")

        selected = [op for op in operations if not op.name.endswith(LIST_TOOLS_SUFFIX)]
        if name_filter:
            needle = str(name_filter).lower()
            selected = [op for op in selected if needle in op.name.lower() or needle in op.description.lower()]
        if category:
            selected = [op for op in selected if op.category == category]

        return ExecutionResult.from_success(
            {
                "namespace": namespace,
                "source_name": self.resolver.reverse_resolve(namespace),
                "tool_count": len(selected),
                "tools": [op.to_dict() for op in selected],
            }
        )

    async def execute_in_namespace(
        self,
        namespace: str,
        operation_name: str,
        parameters: dict[str, Any],
        credential: str,
    ) -> ExecutionResult:
        qualified = qualify(namespace, operation_name)
        operation = self.cache.get(qualified)
        if operation is None:
            logger.debug("Loading namespace '%s' for tool '%s'", namespace, qualified)
            try:
                await self.loader.load_namespace(namespace, credential)
            except NotFoundError:
                raise _not_found(namespace, operation_name) from None
            operation = self.cache.get(qualified)
        if operation is None:
            raise _not_found(namespace, operation_name)
        return await self.execute(operation, parameters, credential)

    async def execute_legacy(self, name: str, parameters: dict[str, Any], credential: str) -> ExecutionResult:
        """Search every namespace in upstream order; the first one holding ``name`` wins."""
        logger.debug("Searching for legacy tool '%s' across all namespaces", name)
        for info in await self.loader.list_sources(credential):
            namespace = self.resolver.resolve(info.name)
            try:
                await self.loader.load_namespace(namespace, credential)
            except Exception as exc:  # noqa: BLE001
                if _is_fatal(exc):
                    raise
                logger.warning("Error checking namespace '%s' for tool '%s': %s", info.name, name, exc)
                continue
            operation = self.cache.get(qualify(namespace, name))
            if operation is not None:
                logger.debug("Found legacy tool '%s' in namespace '%s'", name, namespace)
                return await self.execute(operation, parameters, credential)
        raise NotFoundError(ERROR_LEGACY_NOT_FOUND.format(name=name), suggestion=SUGGEST_DISCOVERY)

    def routing_context(self, namespace: str) -> tuple[dict[str, Any], dict[str, str]]:
        """Return the auxiliary body fields and headers that route a call to ``namespace``'s account."""
        source_name = self.resolver.reverse_resolve(namespace)
        context: dict[str, Any] = {APP_CONTEXT_FIELD: source_name}
        headers = {APP_CONTEXT_HEADER: source_name}
        routing = self.loader.routing_for(source_name)
        if routing is not None and routing.connected_account_id:
            context[ACCOUNT_ID_FIELD] = routing.connected_account_id
            context[SERVER_ID_FIELD] = routing.server_id
            headers[ACCOUNT_ID_HEADER] = str(routing.connected_account_id)
            if routing.server_id:
                headers[SERVER_ID_HEADER] = str(routing.server_id)
        else:
            logger.debug("No connection metadata for namespace '%s', using app context only", namespace)
        return context, headers

    async def execute(self, operation: Operation, parameters: dict[str, Any], credential: str) -> ExecutionResult:
        context, headers = self.routing_context(operation.namespace)
        logger.info("Executing tool '%s' in app '%s'", operation.original_name, context[APP_CONTEXT_FIELD])
        try:
            response = await self.upstream.execute(operation.slug, parameters, headers, credential, context=context)
        except UpstreamRejectedError as exc:
            if exc.is_auth_failure:
                raise
            return ExecutionResult.from_error(
                f"Invalid parameters for tool '{operation.original_name}': {exc.detail or exc}"
            )
        except UpstreamUnavailableError as exc:
            if exc.status_code is None:
                raise
            return ExecutionResult.from_error(
                f"Server error executing tool '{operation.original_name}'. This may be a temporary issue - please try again."
            )
        except NotFoundError as exc:
            raise _not_found(operation.namespace, operation.original_name) from exc
        return normalize_execution_response(response)
