# mrpool.core
# This package contains the core of mrpool: the stage executor, the
# map-reduce orchestrator and the shared error, logging and helper modules.
# Stage and mapreduce are exported from the top-level package only, since
# mrpool.backends imports this package.

from .errors import (
    MrPoolError,
    ArgumentError,
    MissingBackendError,
    InvalidPoolError,
    PoolProvisionError,
    StageError,
)

__all__ = [
    "MrPoolError",
    "ArgumentError",
    "MissingBackendError",
    "InvalidPoolError",
    "PoolProvisionError",
    "StageError",
]
