from __future__ import annotations

import queue
import threading
from typing import Any, List, Tuple

from .base import BaseWorkerPool, WorkUnit, execute_unit


SENTINEL = object()


class ThreadPool(BaseWorkerPool):
    """
    A pool of worker threads in the calling process.

    Each worker keeps its own copy of the seed table and takes jobs from a
    shared, unbounded queue in submission order.
    """

    backend = "thread"

    def __init__(self, workers: int, functions=(), **kwargs: Any):
        super().__init__(workers, functions, **kwargs)
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._threads: List[threading.Thread] = []

    def _start(self) -> None:
        for i in range(self.workers):
            t = threading.Thread(
                target=self._worker, args=(i,), name=f"{self.name}-worker-{i}", daemon=True
            )
            t.start()
            self._threads.append(t)

    def _worker(self, worker_id: int) -> None:
        functions = dict(self._functions)
        logger = self.logger.bind(worker_id=worker_id)
        logger.debug("worker_started")

        while True:
            item = self._queue.get()
            if item is SENTINEL:
                break

            job_id, unit = item  # type: Tuple[int, WorkUnit]
            result = execute_unit(functions[unit.function], unit)
            if result.ok:
                logger.debug("item_processed", job=job_id)
            else:
                logger.warning("item_error", job=job_id, key=unit.key, error=result.message)
            self._complete(job_id, result)

        logger.debug("worker_finished")

    def _submit(self, job_id: int, unit: WorkUnit) -> None:
        self._queue.put((job_id, unit))

    def _shutdown(self) -> None:
        for _ in self._threads:
            self._queue.put(SENTINEL)
        for t in self._threads:
            t.join(timeout=self.join_timeout)
        self._threads = []
