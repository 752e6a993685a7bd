"""Common result types for toolspace.

This module contains the uniform result type produced by the dispatcher.
It has minimal dependencies to avoid circular imports.
"""

import json
from typing import Any


class ExecutionResult:
    """A normalized result of an upstream tool execution.

    The upstream answers in several shapes (``{data, successful, error}``,
    ``{data, success, error}`` or a bare payload); :func:`normalize_execution_response`
    folds all of them into this one type at the boundary.

    Attributes:
        payload: The result content from the tool execution
        is_error: Boolean flag indicating if the tool execution failed
    """

    def __init__(self, payload: Any = None, is_error: bool = False):
        self.payload = payload
        self.is_error = is_error

    def to_text(self) -> str:
        """Render the payload as text for protocol content blocks."""
        if self.payload is None:
            return ""
        if isinstance(self.payload, str):
            return self.payload
        try:
            return json.dumps(self.payload, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(self.payload)

    def to_dict(self) -> dict[str, Any]:
        return {"payload": self.payload, "is_error": self.is_error}

    @classmethod
    def from_error(cls, error_message: str) -> "ExecutionResult":
        return cls(payload=error_message, is_error=True)

    @classmethod
    def from_success(cls, payload: Any) -> "ExecutionResult":
        return cls(payload=payload, is_error=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExecutionResult):
            return NotImplemented
        return self.payload == other.payload and self.is_error == other.is_error

    def __repr__(self) -> str:
        return f"ExecutionResult(payload={self.payload!r}, is_error={self.is_error})"


def normalize_execution_response(response: Any) -> ExecutionResult:
    """Convert a raw upstream execution response into an :class:`ExecutionResult`."""
    if isinstance(response, dict):
        if response.get("successful") is False or response.get("success") is False:
            return ExecutionResult.from_error(f"Tool execution failed: {response.get('error') or 'Unknown error'}")
        if "data" in response:
            return ExecutionResult.from_success(response["data"])
        if "payload" in response:
            return ExecutionResult.from_success(response["payload"])
    return ExecutionResult.from_success(response)
