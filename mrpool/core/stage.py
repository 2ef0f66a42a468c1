from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple, Union

from ..backends.base import WorkUnit
from ..backends.registry import resolve_pool
from .errors import ArgumentError, StageError
from .log import get_logger
from .utils import as_collection, ensure_list, function_name, iter_pairs, materialize, resolve_function

if TYPE_CHECKING:
    from ..backends.base import BaseWorkerPool

DISCIPLINES = ("map", "reduce")


class Stage:
    """
    A single map or reduce pass of a function over a key/value collection.

    In the *map* discipline the function returns (key, value) pairs and the
    values are grouped into lists under their output keys. In the *reduce*
    discipline the function returns a sequence of values that is stored
    under the original input key.

    Args:
        func: The function, or a 'package.module:function' path. It is
            called as ``func(key, value)``.
        discipline (str): 'map' (default) or 'reduce'.
        name (Optional[str]): A name used in logs and errors. Defaults to the
            function's qualified name.
    """

    def __init__(
        self,
        func: Union[str, Callable[..., Any]],
        discipline: str = "map",
        *,
        name: Optional[str] = None,
    ):
        if discipline not in DISCIPLINES:
            raise ArgumentError(f"discipline must be one of {list(DISCIPLINES)}, got {discipline!r}")

        self.func = resolve_function(func)
        self.discipline = discipline
        self.name = name or function_name(self.func)
        self.logger = get_logger(f"mrpool.stage.{self.name}")
        self.metrics: Dict[str, Any] = {
            "items_in": 0, "items_out": 0, "errors": 0, "time_total": 0.0,
        }

    def __repr__(self) -> str:
        return f"Stage(name='{self.name}', discipline='{self.discipline}')"

    @property
    def is_reduce(self) -> bool:
        return self.discipline == "reduce"

    def run(self, data: Any, pool: Union[None, str, "BaseWorkerPool"] = None) -> Dict[Any, Any]:
        """
        Runs the stage over every pair of `data`.

        :param data: A mapping, or a flat list of alternating keys and values.
        :param pool: A live worker pool (or its name). Without one, pairs are
                     processed in the calling thread in insertion order.
        :return: The aggregated output collection.
        :raises StageError: If the function fails on any pair. No partial
                            output is returned.
        """
        data = as_collection(data)
        pool = resolve_pool(pool)
        unit_name = pool.function_key(self.func) if pool is not None else None

        if not data:
            self.logger.debug("stage_skipped", reason="empty input")
            return {}

        backend = pool.backend if pool is not None else "inline"
        self.logger.info("stage_started", discipline=self.discipline, backend=backend, items_in=len(data))
        start_time = time.perf_counter()
        totals_before = dict(self.metrics)
        results: Dict[Any, Any] = {}

        try:
            if pool is None:
                self._run_inline(data, results)
            else:
                self._run_pooled(data, pool, unit_name, results)
        except StageError as e:
            self.metrics["errors"] += 1
            self.logger.error("stage_failed", key=e.key, error=e.message)
            raise
        finally:
            duration = time.perf_counter() - start_time
            self.metrics["time_total"] += duration
            self.logger.info(
                "stage_finished",
                discipline=self.discipline,
                backend=backend,
                items_in=self.metrics["items_in"] - totals_before["items_in"],
                items_out=self.metrics["items_out"] - totals_before["items_out"],
                errors=self.metrics["errors"] - totals_before["errors"],
                duration=round(duration, 4),
            )

        return results

    def _run_inline(self, data: Dict[Any, Any], results: Dict[Any, Any]) -> None:
        for key, value in data.items():
            self.metrics["items_in"] += 1
            try:
                output = materialize(self.func(key, value))
            except Exception as e:
                self.logger.warning("item_error", key=key, error=str(e))
                raise StageError(self.name, key, str(e), type(e).__name__) from e
            self._store(results, key, output)

    def _run_pooled(
        self, data: Dict[Any, Any], pool: "BaseWorkerPool", unit_name: str, results: Dict[Any, Any]
    ) -> None:
        with pool.reserved():
            ledger: Dict[int, Tuple[Any, Any]] = {}
            try:
                for key, value in data.items():
                    ledger[pool.post(WorkUnit(unit_name, key, value))] = (key, value)
                    self.metrics["items_in"] += 1

                pending = list(ledger)
                while pending:
                    pending = pool.wait(pending)

                # Harvest in submission order, whatever order the workers finished in
                for handle, (key, _) in ledger.items():
                    result = pool.get(handle)
                    if not result.ok:
                        raise StageError(self.name, key, result.message, result.error_type) from result.exception
                    self._store(results, key, result.payload)
            finally:
                pool.forget(ledger)

    def _store(self, results: Dict[Any, Any], key: Any, output: Any) -> None:
        if self.is_reduce:
            results[key] = ensure_list(output)
            self.metrics["items_out"] += 1
            return

        try:
            pairs = iter_pairs(output)
        except TypeError as e:
            raise StageError(self.name, key, str(e), type(e).__name__) from e
        for out_key, out_value in pairs:
            results.setdefault(out_key, []).append(out_value)
        self.metrics["items_out"] += len(pairs)


def run_stage(
    data: Any,
    func: Union[str, Callable[..., Any]],
    discipline: str = "map",
    *,
    pool: Union[None, str, "BaseWorkerPool"] = None,
) -> Dict[Any, Any]:
    """
    Runs a single map or reduce stage.

    This is the composable primitive behind `mapreduce`: the output of one
    call can be fed to the next to build longer pipelines by hand. When a
    pool is given, `func` must have been seeded into it.

    Example:
        >>> with create_pool("thread", 4, [split_words, count]) as pool:
        ...     words = run_stage(texts, split_words, pool=pool)
        ...     counts = run_stage(words, count, "reduce", pool=pool)
    """
    return Stage(func, discipline).run(data, pool=pool)
