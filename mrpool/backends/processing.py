from __future__ import annotations

import dataclasses
import multiprocessing as mp
import queue
import threading
import time
from typing import Any, List, Optional

import dill as serializer

from ..core.errors import PoolProvisionError
from .base import BaseWorkerPool, WorkResult, WorkUnit, execute_unit

SENTINEL = "__MRPOOL_SENTINEL__"
READY = "__READY__"
SEED_ERROR = "__SEED_ERROR__"
RESULT = "__RESULT__"
STOPPED = "__STOPPED__"


def _encode_result(result: WorkResult) -> bytes:
    try:
        return serializer.dumps(result)
    except Exception as e:
        if result.ok:
            result = WorkResult.failure(result.key, e, message=f"result could not be serialized: {e}")
        else:
            result = dataclasses.replace(result, exception=None)
        return serializer.dumps(result)


def _worker_process(q_in: mp.Queue, q_out: mp.Queue, seed_payload: bytes, worker_id: int):
    """Worker process that loads the seeded functions and runs jobs until told to stop."""
    from ..core.log import get_logger

    logger = get_logger(f"mrpool.worker.{worker_id}")
    try:
        functions = serializer.loads(seed_payload)
    except Exception as e:
        logger.error("worker_seed_error", error=str(e))
        q_out.put((SEED_ERROR, worker_id, f"{type(e).__name__}: {e}"))
        return

    q_out.put((READY, worker_id, None))
    logger.debug("worker_started")

    try:
        while True:
            item = q_in.get()
            if item == SENTINEL:
                break

            job_id, payload = item
            try:
                unit = serializer.loads(payload)
            except Exception as e:
                result = WorkResult.failure(None, e, message=f"work unit could not be deserialized: {e}")
            else:
                result = execute_unit(functions[unit.function], unit)
                if not result.ok:
                    logger.warning("item_error", job=job_id, error=result.message)

            q_out.put((RESULT, job_id, _encode_result(result)))
    finally:
        logger.debug("worker_finished")
        q_out.put((STOPPED, worker_id, None))


class ProcessPool(BaseWorkerPool):
    """
    A pool of worker processes.

    The seed table is serialized once with dill and loaded by every worker,
    so lambdas and closures work as long as everything they reference can be
    serialized. Work units and results cross the process boundary as dill
    payloads; a collector thread in the parent completes jobs as results
    arrive.

    Options:
        start_method (str): The multiprocessing start method. Defaults to
            'spawn', which gives every worker a fresh interpreter.
        ready_timeout (float): Seconds to wait for all workers to report
            that they loaded the seeded functions.
    """

    backend = "process"

    def __init__(
        self,
        workers: int,
        functions=(),
        *,
        start_method: str = "spawn",
        ready_timeout: float = 30.0,
        **kwargs: Any,
    ):
        super().__init__(workers, functions, **kwargs)
        self.start_method = start_method
        self.ready_timeout = ready_timeout
        self._processes: List[mp.Process] = []
        self._q_in: Optional[mp.Queue] = None
        self._q_out: Optional[mp.Queue] = None
        self._collector: Optional[threading.Thread] = None
        self._stopping = False
        self._broken: Optional[str] = None

    def _start(self) -> None:
        try:
            seed_payload = serializer.dumps(self._functions)
        except Exception as e:
            raise PoolProvisionError(f"could not serialize the seeded functions: {e}") from e

        ctx = mp.get_context(self.start_method)
        self._q_in = ctx.Queue()
        self._q_out = ctx.Queue()
        self._processes = [
            ctx.Process(
                target=_worker_process,
                args=(self._q_in, self._q_out, seed_payload, i),
                name=f"{self.name}-worker-{i}",
                daemon=True,
            )
            for i in range(self.workers)
        ]
        for p in self._processes:
            p.start()

        self._await_ready()

        self._collector = threading.Thread(target=self._collect, name=f"{self.name}-collector", daemon=True)
        self._collector.start()

    def _await_ready(self) -> None:
        deadline = time.monotonic() + self.ready_timeout
        ready = 0
        while ready < self.workers:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise PoolProvisionError(
                    f"{self.workers - ready} of {self.workers} workers did not start "
                    f"within {self.ready_timeout} seconds"
                )
            try:
                kind, worker_id, detail = self._q_out.get(timeout=min(remaining, 0.5))
            except queue.Empty:
                dead = [p for p in self._processes if p.exitcode is not None]
                if dead:
                    raise PoolProvisionError(
                        f"worker {dead[0].name} exited during start-up (exit code {dead[0].exitcode})"
                    )
                continue

            if kind == SEED_ERROR:
                raise PoolProvisionError(
                    f"worker {worker_id} could not load the seeded functions: {detail}"
                )
            ready += 1

    def _collect(self) -> None:
        finished = 0
        while finished < len(self._processes):
            try:
                kind, ident, payload = self._q_out.get(timeout=0.5)
            except queue.Empty:
                if self._stopping:
                    if not any(p.is_alive() for p in self._processes):
                        break
                else:
                    self._check_workers()
                continue
            except (EOFError, OSError, ValueError):
                # The queue was closed by a shutdown that stopped waiting for us
                break

            if kind == STOPPED:
                finished += 1
                continue
            if kind == RESULT:
                try:
                    result = serializer.loads(payload)
                except Exception as e:
                    result = WorkResult.failure(None, e, message=f"result could not be deserialized: {e}")
                self._complete(ident, result)

    def _check_workers(self) -> None:
        if self._broken is None:
            dead = [p for p in self._processes if not p.is_alive()]
            if not dead:
                return
            self._broken = f"worker process {dead[0].name} exited unexpectedly (exit code {dead[0].exitcode})"
            self.logger.error("worker_error", error=self._broken)
        # Jobs held by the dead worker would never finish
        self._fail_unfinished(self._broken)

    def _submit(self, job_id: int, unit: WorkUnit) -> None:
        try:
            payload = serializer.dumps(unit)
        except Exception as e:
            self._complete(
                job_id, WorkResult.failure(unit.key, e, message=f"work unit could not be serialized: {e}")
            )
            return
        self._q_in.put((job_id, payload))

    def _shutdown(self) -> None:
        self._stopping = True
        if self._q_in is not None:
            for p in self._processes:
                if p.is_alive():
                    self._q_in.put(SENTINEL)

        for p in self._processes:
            p.join(timeout=self.join_timeout)
            if p.is_alive():
                p.terminate()
                p.join(timeout=self.join_timeout)

        if self._collector is not None:
            self._collector.join(timeout=self.join_timeout)
            self._collector = None

        for q in (self._q_in, self._q_out):
            if q is not None:
                q.close()
                q.cancel_join_thread()
        self._processes = []
