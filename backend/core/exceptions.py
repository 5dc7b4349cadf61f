"""Custom exceptions for the workflow execution engine."""


class WorkflowEngineError(Exception):
    """Base exception for the workflow execution engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code used when surfaced through the API
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(WorkflowEngineError):
    """Malformed workflow document (missing or invalid fields for a step kind)."""

    def __init__(self, message: str = "Invalid workflow definition"):
        """Initialize ConfigurationError with 422 status code."""
        super().__init__(message, 422)


class TransportError(WorkflowEngineError):
    """Network/transport-level failure of a request step."""

    def __init__(self, message: str = "Transport failure"):
        """Initialize TransportError with 502 status code."""
        super().__init__(message, 502)


class ScriptError(WorkflowEngineError):
    """A script step raised or could not be compiled."""

    def __init__(self, message: str = "Script failed"):
        super().__init__(message, 500)


class RunNotFoundError(WorkflowEngineError):
    """Unknown workflow run."""

    def __init__(self, message: str = "Run not found"):
        """Initialize RunNotFoundError with 404 status code."""
        super().__init__(message, 404)
