from __future__ import annotations

import itertools
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from ..core.errors import ArgumentError, InvalidPoolError, PoolProvisionError
from ..core.log import get_logger
from ..core.utils import function_name, materialize, resolve_function


@dataclass(frozen=True)
class WorkUnit:
    """One call of a seeded function on one input pair."""
    function: str
    key: Any
    value: Any


@dataclass
class WorkResult:
    """
    The outcome of a WorkUnit.

    Attributes:
        key: The input key of the unit.
        ok (bool): Whether the function returned normally.
        payload: The function's return value, with generators consumed.
        message (Optional[str]): The error message on failure.
        error_type (Optional[str]): The class name of the raised exception.
        exception (Optional[BaseException]): The exception itself, when it
            could be carried back to the caller.
    """
    key: Any
    ok: bool
    payload: Any = None
    message: Optional[str] = None
    error_type: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)

    @classmethod
    def success(cls, key: Any, payload: Any) -> "WorkResult":
        return cls(key=key, ok=True, payload=payload)

    @classmethod
    def failure(
        cls, key: Any, exc: Optional[BaseException] = None, message: Optional[str] = None
    ) -> "WorkResult":
        return cls(
            key=key,
            ok=False,
            message=message if message is not None else str(exc),
            error_type=type(exc).__name__ if exc is not None else None,
            exception=exc,
        )


def execute_unit(func: Callable[..., Any], unit: WorkUnit) -> WorkResult:
    """Runs one unit of work, turning any exception into a failed result."""
    try:
        return WorkResult.success(unit.key, materialize(func(unit.key, unit.value)))
    except Exception as e:
        return WorkResult.failure(unit.key, e)


class _Job:
    __slots__ = ("unit", "done", "result")

    def __init__(self, unit: WorkUnit):
        self.unit = unit
        self.done = threading.Event()
        self.result: Optional[WorkResult] = None


_pool_ids = itertools.count(1)


class BaseWorkerPool(ABC):
    """
    Abstract base class for worker pools.

    A pool owns a fixed number of workers, each seeded at start-up with the
    functions it may run. Jobs are posted as `WorkUnit`s and identified by an
    integer handle; every job signals its own completion event, so waiting
    on a set of handles needs no polling.

    Pools are reference counted: `preserve()` takes a reservation and
    `release()` gives it back. When the last reservation is released the
    workers are shut down and the pool leaves the table of live pools.
    """

    backend = "base"

    def __init__(
        self,
        workers: int,
        functions: Iterable[Any] = (),
        *,
        name: Optional[str] = None,
        join_timeout: float = 1.0,
    ):
        if isinstance(workers, bool) or not isinstance(workers, int) or workers <= 0:
            raise ArgumentError(f"workers must be a positive integer, got {workers!r}")

        self.workers = workers
        self.name = name or f"{self.backend}pool{next(_pool_ids)}"
        self.join_timeout = join_timeout
        self.logger = get_logger(f"mrpool.pool.{self.name}")

        self._functions: Dict[str, Callable[..., Any]] = {}
        self._keys: Dict[int, str] = {}
        for fn in functions:
            self._seed(resolve_function(fn))

        self._lock = threading.Lock()
        self._jobs: Dict[int, _Job] = {}
        self._job_ids = itertools.count(1)
        self._refcount = 0
        self._alive = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}', workers={self.workers}, alive={self._alive})"

    def _seed(self, func: Callable[..., Any]) -> None:
        if id(func) in self._keys:
            return
        base = key = function_name(func)
        n = 1
        while key in self._functions:
            n += 1
            key = f"{base}#{n}"
        self._functions[key] = func
        self._keys[id(func)] = key

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def reservations(self) -> int:
        return self._refcount

    @property
    def functions(self) -> List[str]:
        """The names under which functions were seeded into the workers."""
        return list(self._functions)

    def function_key(self, func: Callable[..., Any]) -> str:
        """Returns the seeded name of `func`."""
        key = self._keys.get(id(func))
        if key is None:
            raise ArgumentError(
                f"function {function_name(func)} was not seeded into pool '{self.name}'"
            )
        return key

    # --- Lifecycle ---

    def start(self) -> "BaseWorkerPool":
        """
        Starts the workers and registers the pool as live.

        Raises:
            PoolProvisionError: If the workers could not be started or seeded.
        """
        from .registry import _register_pool, _unregister_pool

        _register_pool(self)
        start_time = time.perf_counter()
        try:
            self._start()
        except Exception as e:
            _unregister_pool(self)
            self.logger.error("pool_start_failed", backend=self.backend, workers=self.workers, error=str(e))
            self._shutdown()
            if isinstance(e, PoolProvisionError):
                raise
            raise PoolProvisionError(
                f"could not create {self.backend} pool with {self.workers} workers: {e}"
            ) from e

        self._alive = True
        self.logger.info(
            "pool_started",
            backend=self.backend,
            workers=self.workers,
            functions=self.functions,
            duration=round(time.perf_counter() - start_time, 4),
        )
        return self

    def preserve(self) -> int:
        """Takes a reservation on the pool and returns the new count."""
        with self._lock:
            if not self._alive:
                raise InvalidPoolError(self.name)
            self._refcount += 1
            return self._refcount

    def release(self) -> int:
        """
        Gives back a reservation and returns the remaining count. The pool is
        shut down when the count reaches zero.
        """
        with self._lock:
            if not self._alive:
                raise InvalidPoolError(self.name)
            self._refcount -= 1
            if self._refcount > 0:
                return self._refcount
            self._refcount = 0
            self._alive = False
        self._stop()
        return 0

    def close(self) -> None:
        """
        Shuts the pool down regardless of outstanding reservations. Jobs that
        have not finished yet fail, so nothing waiting on them blocks.
        """
        with self._lock:
            if not self._alive:
                return
            self._alive = False
            self._refcount = 0
        self._stop()

    def _stop(self) -> None:
        from .registry import _unregister_pool

        _unregister_pool(self)
        # Jobs still pending now will never be completed by a worker. Their
        # failed results stay in the job table until harvested or forgotten.
        self._fail_unfinished(f"pool '{self.name}' was shut down")
        self._shutdown()
        self.logger.info("pool_stopped", backend=self.backend)

    @contextmanager
    def reserved(self) -> Iterator["BaseWorkerPool"]:
        """Holds a reservation for the duration of a `with` block."""
        self.preserve()
        try:
            yield self
        finally:
            self.release()

    def __enter__(self) -> "BaseWorkerPool":
        self.preserve()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    # --- Jobs ---

    def post(self, unit: WorkUnit) -> int:
        """Submits a unit of work and returns its job handle."""
        if unit.function not in self._functions:
            raise ArgumentError(f"function {unit.function} was not seeded into pool '{self.name}'")
        with self._lock:
            if not self._alive:
                raise InvalidPoolError(self.name)
            job_id = next(self._job_ids)
            self._jobs[job_id] = _Job(unit)
        self._submit(job_id, unit)
        return job_id

    def _job(self, handle: int) -> _Job:
        with self._lock:
            job = self._jobs.get(handle)
        if job is None:
            raise ArgumentError(f"unknown job handle {handle!r} for pool '{self.name}'")
        return job

    def wait(self, handles: Iterable[int], timeout: Optional[float] = None) -> List[int]:
        """
        Blocks until the given jobs have finished or `timeout` seconds have
        passed, and returns the handles that are still pending.
        """
        jobs = [(handle, self._job(handle)) for handle in handles]
        deadline = None if timeout is None else time.monotonic() + timeout
        for _, job in jobs:
            if deadline is None:
                job.done.wait()
            elif not job.done.wait(max(0.0, deadline - time.monotonic())):
                break
        return [handle for handle, job in jobs if not job.done.is_set()]

    def get(self, handle: int) -> WorkResult:
        """Removes and returns the result of a job, waiting for it if needed."""
        job = self._job(handle)
        job.done.wait()
        with self._lock:
            self._jobs.pop(handle, None)
        return job.result

    def forget(self, handles: Iterable[int]) -> None:
        """Drops the results of jobs that will not be harvested."""
        with self._lock:
            for handle in handles:
                self._jobs.pop(handle, None)

    def _complete(self, job_id: int, result: WorkResult) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None or job.done.is_set():
            # Forgotten, already failed, or the pool was stopped
            return
        job.result = result
        job.done.set()

    def _fail_unfinished(self, message: str) -> None:
        with self._lock:
            jobs = [(job_id, job) for job_id, job in self._jobs.items() if not job.done.is_set()]
        for job_id, job in jobs:
            self._complete(job_id, WorkResult.failure(job.unit.key, message=message))

    # --- Backend hooks ---

    @abstractmethod
    def _start(self) -> None:
        """Starts and seeds the workers. Raise on failure."""
        raise NotImplementedError

    @abstractmethod
    def _submit(self, job_id: int, unit: WorkUnit) -> None:
        """Hands a job to the workers."""
        raise NotImplementedError

    @abstractmethod
    def _shutdown(self) -> None:
        """Stops the workers. Must tolerate a partially started pool."""
        raise NotImplementedError
