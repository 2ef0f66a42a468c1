# mrpool
# Two-stage map-reduce over in-memory key/value collections, run inline or
# on a pool of worker threads or processes.

# Import key components to the top-level namespace for easier access
from .core.pipeline import mapreduce
from .core.stage import Stage, run_stage
from .core.errors import (
    MrPoolError,
    ArgumentError,
    MissingBackendError,
    InvalidPoolError,
    PoolProvisionError,
    StageError,
)
from .backends.base import BaseWorkerPool, WorkUnit, WorkResult
from .backends.registry import create_pool, get_pool, pool_names, register_backend
from .config import Config, load_config


__all__ = [
    # Core API
    "mapreduce",
    "run_stage",
    "Stage",

    # Pools
    "BaseWorkerPool",
    "WorkUnit",
    "WorkResult",
    "create_pool",
    "get_pool",
    "pool_names",

    # Errors
    "MrPoolError",
    "ArgumentError",
    "MissingBackendError",
    "InvalidPoolError",
    "PoolProvisionError",
    "StageError",

    # Configuration
    "Config",
    "load_config",

    # Extensibility
    "register_backend",
]

__version__ = "0.1.0"
