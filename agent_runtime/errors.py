"""
Exception types raised by the runtime.

Only provider failures and cancellation ever end a run; tool errors and
permission denials are folded back into the conversation as failed tool
results.
"""


class AgentRuntimeError(Exception):
    """Base class for all runtime errors."""


class ConfigurationError(AgentRuntimeError):
    """Invalid options, unknown provider, missing credentials."""


class ProviderError(AgentRuntimeError):
    """A provider adapter failed to produce a response (network, malformed stream)."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class ToolExecutionError(AgentRuntimeError):
    """Raised by tool implementations; the registry turns it into a failed result."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class OperationCancelled(AgentRuntimeError):
    """The cancellation handle fired while work was in flight."""

    def __init__(self, message: str = "Operation cancelled."):
        super().__init__(message)
