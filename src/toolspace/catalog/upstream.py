"""Upstream catalog and execution client."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from .constants import DEFAULT_EXECUTE_TIMEOUT, DEFAULT_REQUEST_TIMEOUT
from .exceptions import NotFoundError, UpstreamRejectedError, UpstreamUnavailableError
from .models import NamespaceInfo, OperationSpec

logger = logging.getLogger(__name__)

USER_AGENT = "toolspace/0.1"


class UpstreamCatalogClient(Protocol):
    """Contract consumed by the loader and dispatcher."""

    async def list_namespaces(self, credential: str | None = None) -> list[NamespaceInfo]: ...

    async def list_apps(self, credential: str | None = None) -> list[str]: ...

    async def list_operations(self, source_name: str, credential: str | None = None) -> list[OperationSpec]: ...

    async def execute(
        self,
        operation_slug: str,
        parameters: dict[str, Any],
        routing_headers: dict[str, str],
        credential: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> Any: ...

    async def check_health(self, credential: str | None = None) -> bool: ...

    async def aclose(self) -> None: ...


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or body.get("detail")
    return None


def _raise_for_status(response: httpx.Response, what: str) -> None:
    """Translate an HTTP error status into the catalog error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    detail = _error_detail(response)
    logger.error("Upstream returned HTTP %s for %s: %s", status, what, detail)
    if status == 401:
        raise UpstreamRejectedError(f"Authentication failed for {what}. Check your API key.", status, detail)
    if status == 403:
        raise UpstreamRejectedError(f"Access denied for {what}. Check your permissions.", status, detail)
    if status == 404:
        raise NotFoundError(f"Upstream resource not found for {what}")
    if status >= 500:
        raise UpstreamUnavailableError(f"Server error for {what} (status {status})", status_code=status)
    raise UpstreamRejectedError(f"Upstream rejected {what}: {detail or 'Bad request'}", status, detail)


class HttpUpstreamClient:
    """Talk to the catalog backend over HTTP with a bearer credential."""

    def __init__(
        self,
        base_url: str,
        credential: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        execute_timeout: float = DEFAULT_EXECUTE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credential = credential
        self.timeout = timeout
        self.execute_timeout = execute_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def auth_headers(self, credential: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        token = credential or self.credential
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        what: str,
        credential: str | None,
        headers: dict[str, str] | None = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> Any:
        client = self._ensure_client()
        request_headers = {**self.auth_headers(credential), **(headers or {})}
        try:
            response = await client.request(
                method,
                path,
                headers=request_headers,
                json=json,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as exc:
            msg = f"Timeout contacting upstream at {self.base_url} for {what}"
            logger.error(msg)
            raise UpstreamUnavailableError(msg) from exc
        except httpx.TransportError as exc:
            msg = f"Cannot connect to upstream at {self.base_url} for {what}: {exc}"
            logger.error(msg)
            raise UpstreamUnavailableError(msg) from exc

        _raise_for_status(response, what)
        try:
            return response.json()
        except ValueError:
            return response.text

    async def list_namespaces(self, credential: str | None = None) -> list[NamespaceInfo]:
        data = await self._request("GET", "/namespaces", "namespace listing", credential)
        entries = data.get("namespaces") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise UpstreamUnavailableError(
                "Invalid namespaces response from upstream - expected array in namespaces property"
            )
        namespaces = []
        for entry in entries:
            try:
                namespaces.append(NamespaceInfo.from_dict(entry))
            except (ValueError, AttributeError) as exc:
                logger.warning("Skipping malformed namespace entry: %s", exc)
        logger.debug("Loaded %s namespaces from upstream", len(namespaces))
        return namespaces

    async def list_apps(self, credential: str | None = None) -> list[str]:
        data = await self._request("GET", "/list/apps", "app listing", credential)
        if not isinstance(data, list):
            raise UpstreamUnavailableError("Invalid apps response from upstream - expected array")
        apps = []
        for app in data:
            if isinstance(app, str):
                apps.append(app)
            elif isinstance(app, dict) and isinstance(app.get("name"), str):
                apps.append(app["name"])
            else:
                raise UpstreamUnavailableError(f"Invalid app format: expected string or object with name, got {app!r}")
        return apps

    async def list_operations(self, source_name: str, credential: str | None = None) -> list[OperationSpec]:
        path = f"/list/apps/{quote(source_name, safe='')}/tools"
        data = await self._request("GET", path, f"tools of '{source_name}'", credential)
        if isinstance(data, list):
            entries = data
        elif isinstance(data, dict) and isinstance(data.get("tools"), list):
            entries = data["tools"]
        else:
            raise UpstreamUnavailableError(
                f"Invalid tools response for app '{source_name}' - expected array or object with tools array"
            )
        specs = [OperationSpec.from_dict(entry, i, source_name) for i, entry in enumerate(entries)]
        logger.debug("Fetched %s tools for app '%s'", len(specs), source_name)
        return specs

    async def execute(
        self,
        operation_slug: str,
        parameters: dict[str, Any],
        routing_headers: dict[str, str],
        credential: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> Any:
        body = {**parameters, **(context or {})}
        path = f"/execute/{quote(operation_slug, safe='')}"
        return await self._request(
            "POST",
            path,
            f"tool '{operation_slug}'",
            credential,
            headers=routing_headers,
            json=body,
            timeout=self.execute_timeout,
        )

    async def check_health(self, credential: str | None = None) -> bool:
        """Verify the upstream answers on /health.

        A 401 with no credential configured is accepted: callers then have to
        pass an api_key with every tool call.
        """
        try:
            await self._request("GET", "/health", "health check", credential)
        except UpstreamRejectedError as exc:
            if exc.status_code == 401 and not (credential or self.credential):
                logger.warning("No credential configured - API keys must be provided in tool arguments")
                return True
            raise
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
