import threading
import time

import pytest

from mrpool import WorkUnit, create_pool, get_pool, pool_names, run_stage
from mrpool.backends.registry import get_backend, register_backend
from mrpool.backends.threading import ThreadPool
from mrpool.core.errors import ArgumentError, InvalidPoolError, MissingBackendError, StageError


def slow_double(key, value):
    time.sleep(0.1)
    return [(key, value * 2)]


def fail_on_b(key, value):
    if key == "b":
        raise ValueError("boom")
    return [(key, value)]


# --- Lifecycle ---

def test_create_pool_starts_a_live_pool():
    pool = create_pool("thread", 3, [slow_double])
    assert isinstance(pool, ThreadPool)
    assert pool.alive
    assert pool.workers == 3
    assert pool.name in pool_names()
    assert get_pool(pool.name) is pool
    assert pool.functions == [pool.function_key(slow_double)]
    pool.close()


def test_last_release_shuts_the_pool_down():
    pool = create_pool("thread", 2, [slow_double])
    assert pool.preserve() == 1
    assert pool.preserve() == 2
    assert pool.release() == 1
    assert pool.alive
    assert pool.release() == 0

    assert not pool.alive
    assert pool.name not in pool_names()
    with pytest.raises(InvalidPoolError):
        get_pool(pool.name)
    with pytest.raises(InvalidPoolError):
        pool.release()
    with pytest.raises(InvalidPoolError):
        pool.preserve()


def test_context_manager_holds_one_reservation():
    with create_pool("thread", 1, [slow_double]) as pool:
        assert pool.reservations == 1
        with pool.reserved():
            assert pool.reservations == 2
        assert pool.reservations == 1
    assert not pool.alive


def test_pool_names_must_be_unique():
    with create_pool("thread", 1, name="shared"):
        with pytest.raises(ArgumentError, match="already exists"):
            create_pool("thread", 1, name="shared")


@pytest.mark.parametrize("workers", [0, -2, 1.5, True, "4"])
def test_rejects_bad_worker_counts(workers):
    with pytest.raises(ArgumentError, match="workers"):
        create_pool("thread", workers)


def test_unknown_backend():
    with pytest.raises(MissingBackendError, match="no_such_backend"):
        create_pool("no_such_backend", 2)


def test_register_backend_rejects_duplicates_and_loads_lazily():
    with pytest.raises(ValueError, match="already registered"):
        register_backend("thread", "mrpool.backends.threading.ThreadPool")

    register_backend("test_threads", "mrpool.backends.threading.ThreadPool")
    assert get_backend("test_threads") is ThreadPool


# --- Jobs ---

def test_post_wait_get():
    with create_pool("thread", 2, [slow_double]) as pool:
        key = pool.function_key(slow_double)
        handles = [pool.post(WorkUnit(key, k, v)) for k, v in [("a", 1), ("b", 2)]]
        assert pool.wait(handles) == []

        first = pool.get(handles[0])
        assert first.ok
        assert first.key == "a"
        assert first.payload == [("a", 2)]
        assert pool.get(handles[1]).payload == [("b", 4)]

        # Results are consumed exactly once
        with pytest.raises(ArgumentError, match="unknown job handle"):
            pool.get(handles[0])


def test_failed_jobs_carry_the_exception():
    with create_pool("thread", 1, [fail_on_b]) as pool:
        handle = pool.post(WorkUnit(pool.function_key(fail_on_b), "b", 1))
        result = pool.get(handle)
        assert not result.ok
        assert result.message == "boom"
        assert result.error_type == "ValueError"
        assert isinstance(result.exception, ValueError)


def test_wait_with_timeout_returns_pending_handles():
    gate = threading.Event()

    def blocked(key, value):
        gate.wait(5)
        return [(key, value)]

    with create_pool("thread", 1, [blocked]) as pool:
        handle = pool.post(WorkUnit(pool.function_key(blocked), "a", 1))
        assert pool.wait([handle], timeout=0.05) == [handle]
        gate.set()
        assert pool.wait([handle]) == []
        pool.forget([handle])
        with pytest.raises(ArgumentError):
            pool.get(handle)


def test_close_fails_jobs_that_are_still_pending():
    gate = threading.Event()

    def blocked(key, value):
        gate.wait(5)
        return [(key, value)]

    pool = create_pool("thread", 1, [blocked], join_timeout=0.1)
    key = pool.function_key(blocked)
    running = pool.post(WorkUnit(key, "a", 1))
    queued = pool.post(WorkUnit(key, "b", 2))

    closer = threading.Timer(0.05, pool.close)
    closer.start()
    try:
        assert pool.wait([running, queued], timeout=3) == []
    finally:
        gate.set()
        closer.join()

    assert not pool.alive
    for handle in (running, queued):
        result = pool.get(handle)
        assert not result.ok
        assert "was shut down" in result.message


def test_post_rejects_unseeded_functions():
    with create_pool("thread", 1, [slow_double]) as pool:
        with pytest.raises(ArgumentError, match="not seeded"):
            pool.post(WorkUnit("somewhere.else", "a", 1))
        with pytest.raises(ArgumentError, match="not seeded"):
            pool.function_key(fail_on_b)


def test_same_named_functions_are_seeded_separately():
    first = lambda k, v: [(k, 1)]
    second = lambda k, v: [(k, 2)]
    with create_pool("thread", 1, [first, second]) as pool:
        assert pool.function_key(first) != pool.function_key(second)
        assert run_stage({"a": 0}, second, pool=pool) == {"a": [2]}


def test_workers_run_in_parallel():
    with create_pool("thread", 4, [slow_double]) as pool:
        start_time = time.perf_counter()
        result = run_stage({i: i for i in range(4)}, slow_double, pool=pool)
        elapsed = time.perf_counter() - start_time

    assert result == {i: [i * 2] for i in range(4)}
    assert elapsed < 0.35


# --- Stages on a pool ---

def test_stage_accepts_pool_names():
    with create_pool("thread", 2, [slow_double], name="by-name") as pool:
        assert run_stage({"a": 1}, slow_double, pool="by-name") == {"a": [2]}
        assert pool.reservations == 1


def test_stage_releases_its_reservation_on_failure():
    with create_pool("thread", 2, [fail_on_b]) as pool:
        with pytest.raises(StageError) as excinfo:
            run_stage({"a": 1, "b": 2, "c": 3}, fail_on_b, pool=pool)

        assert excinfo.value.key == "b"
        assert excinfo.value.message == "boom"
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert pool.reservations == 1
        assert pool.alive


def test_stage_rejects_functions_not_seeded_in_the_pool():
    with create_pool("thread", 1, [slow_double]) as pool:
        with pytest.raises(ArgumentError, match="not seeded"):
            run_stage({"a": 1}, fail_on_b, pool=pool)


def test_stage_rejects_released_pools():
    pool = create_pool("thread", 1, [slow_double])
    pool.close()
    with pytest.raises(InvalidPoolError):
        run_stage({"a": 1}, slow_double, pool=pool)


def test_empty_input_causes_no_pool_activity():
    pool = create_pool("thread", 1, [slow_double])
    assert run_stage({}, slow_double, pool=pool) == {}
    # A reservation cycle would have brought the count back to zero and stopped the pool
    assert pool.alive
    pool.close()
