from __future__ import annotations

import importlib
import threading
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Type, Union

from ..core.errors import ArgumentError, InvalidPoolError, MissingBackendError

if TYPE_CHECKING:
    from .base import BaseWorkerPool

# Backend names map to fully qualified class names, imported lazily.
_backend_registry: Dict[str, str] = {
    "thread": "mrpool.backends.threading.ThreadPool",
    "process": "mrpool.backends.processing.ProcessPool",
}

# A cache for imported pool classes to avoid repeated imports.
_backend_class_cache: Dict[str, Type[BaseWorkerPool]] = {}

# Pools that have been started and not yet shut down, by name.
_live_pools: Dict[str, BaseWorkerPool] = {}
_live_lock = threading.Lock()


def register_backend(name: str, pool_class_path: str):
    """
    Registers a new pool backend by its fully qualified class path.

    Args:
        name: The name for the new backend (e.g., 'my_pool').
        pool_class_path: The fully qualified path to a `BaseWorkerPool`
                         subclass (e.g., 'my_package.pools.MyPool').

    Raises:
        ValueError: If a backend with the same name is already registered.
    """
    if name in _backend_registry:
        raise ValueError(f"Backend '{name}' is already registered.")

    _backend_registry[name] = pool_class_path


def get_backend(name: str) -> Type[BaseWorkerPool]:
    """
    Retrieves a pool class by backend name, importing it on first use.

    Raises:
        MissingBackendError: If the requested name is not in the registry.
        ImportError: If the pool class cannot be imported.
    """
    if name in _backend_class_cache:
        return _backend_class_cache[name]

    class_path = _backend_registry.get(name)
    if class_path is None:
        raise MissingBackendError(f"No backend registered with the name: '{name}'")

    try:
        module_path, class_name = class_path.rsplit(".", 1)
        module = importlib.import_module(module_path)
        pool_class = getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ImportError(f"Could not import pool for backend '{name}': {e}") from e

    _backend_class_cache[name] = pool_class
    return pool_class


def create_pool(
    backend: str,
    workers: int,
    functions: Iterable[Any] = (),
    *,
    name: Optional[str] = None,
    **options: Any,
) -> BaseWorkerPool:
    """
    Creates and starts a worker pool.

    The pool is returned without reservations; hold one for as long as the
    pool is needed, typically with ``with create_pool(...) as pool:``.

    Args:
        backend: The backend name ('thread' or 'process').
        workers: The exact number of workers to start.
        functions: The functions (or 'module:function' paths) to seed into
                   every worker.
        name: An optional pool name. It must not name another live pool.
        **options: Backend-specific options.

    Raises:
        MissingBackendError: If the backend is unknown.
        ArgumentError: If a function does not resolve or the name is taken.
        PoolProvisionError: If the workers could not be started or seeded.
    """
    pool_class = get_backend(backend)
    pool = pool_class(workers, functions, name=name, **options)
    return pool.start()


def _register_pool(pool: BaseWorkerPool) -> None:
    with _live_lock:
        if pool.name in _live_pools:
            raise ArgumentError(f"a pool named '{pool.name}' already exists")
        _live_pools[pool.name] = pool


def _unregister_pool(pool: BaseWorkerPool) -> None:
    with _live_lock:
        if _live_pools.get(pool.name) is pool:
            del _live_pools[pool.name]


def pool_names() -> List[str]:
    """Returns the names of all live pools."""
    with _live_lock:
        return [name for name, pool in _live_pools.items() if pool.alive]


def get_pool(name: str) -> BaseWorkerPool:
    """
    Looks up a live pool by name.

    Raises:
        InvalidPoolError: If no live pool has that name.
    """
    with _live_lock:
        pool = _live_pools.get(name)
    if pool is None or not pool.alive:
        raise InvalidPoolError(name)
    return pool


def resolve_pool(pool: Union[None, str, BaseWorkerPool]) -> Optional[BaseWorkerPool]:
    """
    Resolves a pool reference (None, a pool or a pool name) to a live pool.

    Raises:
        InvalidPoolError: If the reference does not name a live pool.
    """
    from .base import BaseWorkerPool

    if pool is None:
        return None
    if isinstance(pool, str):
        return get_pool(pool)
    if isinstance(pool, BaseWorkerPool) and pool.alive:
        return pool
    raise InvalidPoolError(getattr(pool, "name", pool))
