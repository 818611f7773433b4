"""
Stateflow Exceptions

Error taxonomy shared by the session, execution and service layers.
Only SessionNotFound and GraphValidationError reach the caller as request
errors; the rest are recovered inside the turn.
"""

from typing import Optional


class StateflowError(Exception):
    """Base class for all engine errors."""
    pass


class SessionNotFound(StateflowError):
    """Raised when a session id is unknown or expired and creation was not requested."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found or expired.")


class GraphValidationError(StateflowError):
    """Raised when a request's node graph is structurally invalid."""
    pass


class FormatError(StateflowError):
    """
    A variable value does not match its declared format.

    Attributes:
        reason: Machine-readable cause ("invalid_option", "type_mismatch",
            "not_serializable", "unparseable").
    """

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason)


class ExpressionEvaluationError(StateflowError):
    """Raised when a transition condition cannot be parsed or evaluated."""
    pass


class GraphStepLimitExceeded(StateflowError):
    """Raised when a turn executes more nodes than the configured ceiling."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Graph traversal exceeded the limit of {limit} node executions.")


class NodeExecutionError(StateflowError):
    """
    A node failed while talking to an external collaborator.

    Attributes:
        error_type: Short category reported in the node_error event.
    """

    error_type = "node_execution_error"

    def __init__(self, message: str, error_type: Optional[str] = None):
        if error_type:
            self.error_type = error_type
        super().__init__(message)


class TransportError(NodeExecutionError):
    """The HTTP transport could not complete the call (network error or timeout)."""

    error_type = "transport_error"
