from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Union

from ..backends.registry import create_pool
from .errors import ArgumentError, MrPoolError
from .log import get_logger
from .stage import Stage
from .utils import as_collection

logger = get_logger("mrpool.pipeline")

FunctionRef = Union[str, Callable[..., Any]]


def _check_threads(threads: Any) -> int:
    if isinstance(threads, bool) or not isinstance(threads, int) or threads < 0:
        raise ArgumentError(f"threads must be a non-negative integer, got {threads!r}")
    return threads


def mapreduce(
    data: Any,
    map_fn: FunctionRef,
    reduce_fn: FunctionRef,
    threads: int = 0,
    *,
    backend: str = "thread",
    **pool_options: Any,
) -> Dict[Any, Any]:
    """
    Runs a standard two-stage map-reduce computation.

    The map function is called as ``map_fn(key, value)`` for every input pair
    and returns (key, value) pairs; values are grouped by key. The reduce
    function is then called as ``reduce_fn(key, values)`` for every group and
    returns the list of results for that key.

    With ``threads > 0`` both stages run on a single pool of exactly
    `threads` workers, created for this call, seeded with both functions and
    released on every exit path. With ``threads == 0`` everything runs in
    the calling thread.

    Example:
        >>> def split_words(name, text):
        ...     return [(word, 1) for word in text.split()]
        >>> def count(word, ones):
        ...     return [sum(ones)]
        >>> mapreduce({"a": "x y", "b": "y y"}, split_words, count)
        {'x': [1], 'y': [3]}

    Args:
        data: A mapping, or a flat list of alternating keys and values.
        map_fn: The map function or a 'package.module:function' path.
        reduce_fn: The reduce function or a 'package.module:function' path.
        threads (int): The number of workers; 0 runs in the calling thread.
        backend (str): The pool backend, 'thread' (default) or 'process'.
        **pool_options: Extra options for the pool backend.

    Returns:
        The reduced collection, keyed like the map stage's output.

    Raises:
        ArgumentError: For malformed data, unresolvable functions or a bad
            thread count.
        PoolProvisionError: If the pool could not be created.
        StageError: If either function fails. A map failure never reaches
            the reduce stage.
    """
    data = as_collection(data)
    map_stage = Stage(map_fn, "map")
    reduce_stage = Stage(reduce_fn, "reduce")
    threads = _check_threads(threads)

    if not data:
        logger.debug("mapreduce_skipped", reason="empty input")
        return {}

    if threads == 0:
        return _run(data, map_stage, reduce_stage)

    pool = create_pool(backend, threads, [map_stage.func, reduce_stage.func], **pool_options)
    logger.info("pool_provisioned", pool=pool.name, backend=backend, workers=threads)
    with pool:
        return _run(data, map_stage, reduce_stage, pool)


def _run(data: Dict[Any, Any], map_stage: Stage, reduce_stage: Stage, pool: Optional[Any] = None) -> Dict[Any, Any]:
    start_time = time.perf_counter()
    try:
        mapped = map_stage.run(data, pool=pool)
        logger.info("map_finished", keys_in=len(data), keys_out=len(mapped))
        reduced = reduce_stage.run(mapped, pool=pool)
    except MrPoolError as e:
        logger.error("mapreduce_failed", error=str(e))
        raise

    logger.info(
        "mapreduce_finished",
        keys_in=len(data),
        keys_out=len(reduced),
        duration=round(time.perf_counter() - start_time, 4),
    )
    return reduced
