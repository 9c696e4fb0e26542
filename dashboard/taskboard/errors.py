"""
Task board error taxonomy.

ValidationError   - bad input fields, surfaced as a form error, never retried
NotFoundError     - task absent or owned by someone else
InvalidStateError - lifecycle transition not allowed from the current state
StoreError        - the database failed underneath us
ApiError          - client side: the API answered with a failure or was unreachable
"""
from typing import Optional


class TaskBoardError(Exception):
    """Base class for all task board errors."""
    pass


class ValidationError(TaskBoardError):
    """Raised when task fields are missing or invalid."""
    pass


class NotFoundError(TaskBoardError):
    """Raised when a task does not exist for the given owner."""
    pass


class InvalidStateError(TaskBoardError):
    """Raised when a lifecycle operation is not allowed in the task's current state."""
    pass


class StoreError(TaskBoardError):
    """Raised when the underlying SQLite store fails."""
    pass


class ApiError(TaskBoardError):
    """Raised by the API client. status_code is None for transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500
