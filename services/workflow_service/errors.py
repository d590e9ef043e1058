# errors.py - Error taxonomy for the orchestration engines
# Step/action failures are recorded on their own record, then escalated as one top-level error string.

from typing import Optional

class OrchestrationError(Exception):
    """Base class for all workflow service errors."""

class ValidationError(OrchestrationError):
    """Malformed definition, goal or missing required field."""

class DependencyError(OrchestrationError):
    """Cyclic or unresolved step dependency."""

class CapabilityCallError(OrchestrationError):
    """A remote capability call failed or timed out."""

    def __init__(self, message: str, service: Optional[str] = None,
                 status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        # False for 4xx responses, non-JSON bodies and unknown services
        self.retryable = retryable

class IterationLimitExceeded(OrchestrationError):
    """The ReAct loop exhausted its iteration bound without reaching the goal."""

    def __init__(self, max_iterations: int):
        super().__init__(f"Workflow exceeded maximum iterations ({max_iterations})")
        self.max_iterations = max_iterations

class CancellationRequested(OrchestrationError):
    """Raised inside an engine loop once a cancel has been observed."""

class StoreError(OrchestrationError):
    """The execution state store could not read or write a record."""
