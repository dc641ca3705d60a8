"""Custom exceptions for Code Auditor.

Tool-level errors (``ToolError`` and subclasses) are recovered inside the agent
loop and handed back to the model as error tool results. Backend and
configuration errors propagate to the caller.
"""

from typing import Optional


class AuditorError(Exception):
    """Base exception for all Code Auditor errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigError(AuditorError):
    """Raised when configuration cannot be loaded or is invalid."""


class RepositoryError(AuditorError):
    """Raised when the repository to analyze cannot be materialized."""


# Tool-level errors, surfaced to the model as ToolResult(is_error=True)
class ToolError(AuditorError):
    """Base exception for errors raised while executing a tool."""


class ValidationError(ToolError):
    """Raised when tool arguments are malformed or a path escapes the tree."""


class NotFoundError(ToolError):
    """Raised when a requested file or directory is not part of the tree."""


class BackendError(AuditorError):
    """Raised when the model backend is unreachable or misbehaves."""

    def __init__(self, message: str, details: Optional[str] = None, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message, details)


class BudgetExceededError(AuditorError):
    """Raised when a round or tool call budget has been used up."""

    def __init__(self, budget: str, limit: int):
        self.budget = budget
        self.limit = limit
        super().__init__(f"{budget} budget exhausted", f"limit is {limit}")
