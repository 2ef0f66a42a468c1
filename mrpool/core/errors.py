from __future__ import annotations
from typing import Any, Optional


class MrPoolError(Exception):
    """Base class for all exceptions raised by mrpool."""
    pass


class ArgumentError(MrPoolError, ValueError):
    """Raised for malformed input data, unresolvable functions or bad options."""
    pass


class MissingBackendError(ArgumentError):
    """Raised when a requested pool backend is not registered."""
    pass


class InvalidPoolError(MrPoolError):
    """Raised when a pool reference does not name a live worker pool."""

    def __init__(self, pool: Any):
        self.pool = pool
        super().__init__(f"invalid pool: {pool}")


class PoolProvisionError(MrPoolError):
    """Raised when a worker pool cannot be created or seeded."""
    pass


class StageError(MrPoolError):
    """
    Raised when a user function fails on one input pair of a stage.

    Attributes:
        function (str): The name of the function that failed.
        key: The input key being processed.
        message (str): The underlying error message.
        error_type (Optional[str]): The class name of the original exception,
            if known. Useful when the exception itself could not be carried
            back from a worker process.
    """

    def __init__(self, function: str, key: Any, message: str, error_type: Optional[str] = None):
        self.function = function
        self.key = key
        self.message = message
        self.error_type = error_type
        super().__init__(f"error in stage {function} (key: {key}): {message}")

    def __reduce__(self):
        return (self.__class__, (self.function, self.key, self.message, self.error_type))
