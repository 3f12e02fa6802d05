"""Exceptions for the loom runtime."""


class LoomError(Exception):
    """Base class for all loom errors."""

    pass


class ExecutionError(LoomError):
    """Raised when a workflow cannot be executed (e.g. nothing to execute)."""

    pass


class ContextStorageError(LoomError):
    """Raised when an unknown context storage strategy is requested."""

    pass


class WorkflowOutputError(LoomError):
    """Raised when a workflow output is assigned more than once.

    Attributes:
        output_id: ID of the output that was already set.
    """

    def __init__(self, output_id: str) -> None:
        self.output_id = output_id
        super().__init__(f"Workflow output '{output_id}' cannot be set multiple times")


class CheckpointPublishError(LoomError):
    """Raised by a checkpoint sink when a snapshot could not be delivered.

    The checkpoint manager always catches this; it never reaches workflow code.

    Attributes:
        status_code: HTTP status returned by the sink endpoint, if any.
        detail: Response body or transport error message.
    """

    def __init__(self, message: str, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code}): {self.detail}"
        return f"{self.message}: {self.detail}" if self.detail else self.message
