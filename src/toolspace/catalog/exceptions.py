"""Exceptions for the catalog module."""


class CatalogError(Exception):
    """Base class for catalog-related errors."""


class InvalidInputError(CatalogError):
    """Raised for malformed source names or missing call parameters. Never retried."""


class UpstreamUnavailableError(CatalogError):
    """Raised when the catalog or execution backend cannot be reached.

    ``status_code`` is set when the backend answered with a server error and is
    ``None`` for connection failures and timeouts.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamRejectedError(CatalogError):
    """Raised when the upstream reports an authentication, authorization or validation failure."""

    def __init__(self, message: str, status_code: int, detail: str | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class NotFoundError(CatalogError):
    """Raised when an operation or namespace is unknown after loading."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.suggestion = suggestion
        super().__init__(message)
