"""Shared result types."""

from toolspace.common.results import ExecutionResult, normalize_execution_response

__all__ = ["ExecutionResult", "normalize_execution_response"]
