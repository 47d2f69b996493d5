"""g8n error hierarchy.

Every failure the engine surfaces is a G8nError subclass carrying:
- a machine-readable error code
- a category for routing and reporting
- a severity
- a retry hint (the engine itself never retries; callers decide)

Errors fall into two tiers. Run-fatal errors abort the run and end up on
RunState. Node-local errors are caught by the owning node handler and turned
into text so traversal continues past that node.
"""

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """High-level error categories."""

    GRAPH = "graph"
    EXECUTION = "execution"
    LLM = "llm"
    MEMORY = "memory"
    CREDENTIAL = "credential"
    TOOL = "tool"
    BRIDGE = "bridge"


class ErrorSeverity(StrEnum):
    """Error severity levels."""

    LOW = "low"  # Recoverable, run continues
    MEDIUM = "medium"  # Degraded, caller may retry
    HIGH = "high"  # Run aborted


class G8nError(Exception):
    """Base exception for all g8n engine errors.

    Example:
        try:
            state = await engine.run(graph, "Hello")
        except G8nError as e:
            if e.retry_allowed:
                schedule_retry()
    """

    error_code: str = "G8N_ERROR"
    category: ErrorCategory = ErrorCategory.EXECUTION
    severity: ErrorSeverity = ErrorSeverity.HIGH
    retry_allowed: bool = False

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        tool_name: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.node_id = node_id
        self.tool_name = tool_name
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "retry_allowed": self.retry_allowed,
            "node_id": self.node_id,
            "tool_name": self.tool_name,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.error_code}, message={self.message!r})"


# =============================================================================
# Graph / traversal errors (run-fatal)
# =============================================================================


class GraphInvalidError(G8nError):
    """Raised when a graph cannot be run (no entry node, dangling edges, ...)."""

    error_code = "GRAPH_INVALID"
    category = ErrorCategory.GRAPH

    def __init__(self, message: str, *, problems: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.problems = problems or []


class NodeNotFoundError(G8nError):
    """Raised by graph queries for an unknown node id."""

    error_code = "NODE_NOT_FOUND"
    category = ErrorCategory.GRAPH


class RunLoopExceededError(G8nError):
    """Raised when traversal hits the iteration bound or re-enters its own path."""

    error_code = "RUN_LOOP_EXCEEDED"
    category = ErrorCategory.EXECUTION


class NodeExecutionError(G8nError):
    """Wraps an unexpected exception raised inside a node handler."""

    error_code = "NODE_EXECUTION_FAILED"
    category = ErrorCategory.EXECUTION


# =============================================================================
# Model backend errors (run-fatal inside an agent node)
# =============================================================================


class ModelUnavailableError(G8nError):
    """Raised before any model call when the backend cannot be used (no credential)."""

    error_code = "MODEL_UNAVAILABLE"
    category = ErrorCategory.LLM


class RateLimitedError(G8nError):
    """Model backend rejected the call with a 429-class response."""

    error_code = "RATE_LIMITED"
    category = ErrorCategory.LLM
    severity = ErrorSeverity.MEDIUM
    retry_allowed = True


class InvalidCredentialError(G8nError):
    """Model backend rejected the credential (401/403-class)."""

    error_code = "INVALID_CREDENTIAL"
    category = ErrorCategory.CREDENTIAL


class ModelError(G8nError):
    """Any other model backend failure."""

    error_code = "MODEL_ERROR"
    category = ErrorCategory.LLM


# =============================================================================
# Node-local errors (recoverable at workflow level)
# =============================================================================


class MemoryUnavailableError(G8nError):
    """The conversation memory store is absent or unreadable."""

    error_code = "MEMORY_UNAVAILABLE"
    category = ErrorCategory.MEMORY
    severity = ErrorSeverity.LOW


class AuthRequiredError(G8nError):
    """No valid, sufficiently-scoped Google access token is held."""

    error_code = "AUTH_REQUIRED"
    category = ErrorCategory.CREDENTIAL
    severity = ErrorSeverity.LOW


class ToolNotSupportedError(G8nError):
    """Unknown tool type or function name."""

    error_code = "TOOL_NOT_SUPPORTED"
    category = ErrorCategory.TOOL
    severity = ErrorSeverity.LOW


class ToolExecutionError(G8nError):
    """A tool call reached its backend but failed there."""

    error_code = "TOOL_EXECUTION_FAILED"
    category = ErrorCategory.TOOL
    severity = ErrorSeverity.LOW


class BridgeError(G8nError):
    """Base exception for automation bridge failures."""

    error_code = "BRIDGE_ERROR"
    category = ErrorCategory.BRIDGE
    severity = ErrorSeverity.LOW


class BridgeNotConfiguredError(BridgeError):
    """No bridge URL has been configured."""

    error_code = "BRIDGE_NOT_CONFIGURED"


class BridgeUnreachableError(BridgeError):
    """The bridge could not be reached or answered with a non-2xx status."""

    error_code = "BRIDGE_UNREACHABLE"
    severity = ErrorSeverity.MEDIUM
    retry_allowed = True


class BridgeUnauthorizedError(BridgeError):
    """The bridge rejected the shared token."""

    error_code = "BRIDGE_UNAUTHORIZED"


class BridgeTimeoutError(BridgeError):
    """The bridge call exceeded its timeout."""

    error_code = "BRIDGE_TIMEOUT"
    severity = ErrorSeverity.MEDIUM
    retry_allowed = True


class BridgeExecutionError(BridgeError):
    """The bridge answered ``success: false`` for a tool call."""

    error_code = "BRIDGE_EXECUTION_FAILED"
