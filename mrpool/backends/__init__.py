# mrpool.backends
# This package contains the worker pools that stages can run on. Each backend
# (thread, process) implements BaseWorkerPool and is imported lazily through
# the registry.

from .base import BaseWorkerPool, WorkUnit, WorkResult
from .registry import create_pool, get_pool, pool_names, register_backend, get_backend

__all__ = [
    "BaseWorkerPool",
    "WorkUnit",
    "WorkResult",
    "create_pool",
    "get_pool",
    "pool_names",
    "register_backend",
    "get_backend",
]
