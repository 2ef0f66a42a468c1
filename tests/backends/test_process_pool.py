import os

import pytest

from mrpool import WorkUnit, create_pool, mapreduce, pool_names, run_stage
from mrpool.backends.processing import ProcessPool
from mrpool.core.errors import PoolProvisionError, StageError
from mrpool.samples import wordcount as wc
from tests.helpers import functions


def test_process_pool_runs_jobs_in_other_processes():
    with create_pool("process", 2, [functions.report_pid]) as pool:
        assert isinstance(pool, ProcessPool)
        handle = pool.post(WorkUnit(pool.function_key(functions.report_pid), "a", None))
        result = pool.get(handle)
    assert result.ok
    assert result.payload[0][0] == "a"
    assert result.payload[0][1] != os.getpid()


def test_wordcount_on_processes():
    result = mapreduce({"a": "x y", "b": "y y"}, wc.map, wc.reduce, 2, backend="process")
    assert result == {"x": [1], "y": [3]}
    assert pool_names() == []


def test_module_level_lambdas_are_shipped_by_value():
    with create_pool("process", 1, [functions.square]) as pool:
        assert run_stage({"a": 3, "b": 4}, functions.square, pool=pool) == {"a": [9], "b": [16]}


def test_worker_errors_name_the_key():
    with create_pool("process", 2, [functions.fail_on_b]) as pool:
        with pytest.raises(StageError) as excinfo:
            run_stage({"a": 1, "b": 2, "c": 3}, functions.fail_on_b, pool=pool)

        assert excinfo.value.key == "b"
        assert excinfo.value.message == "boom"
        assert excinfo.value.error_type == "ValueError"
        assert pool.reservations == 1


def test_unserializable_functions_fail_provisioning():
    gen = (i for i in range(3))

    def uses_generator(key, value):
        return [(key, next(gen))]

    with pytest.raises(PoolProvisionError, match="serialize"):
        create_pool("process", 1, [uses_generator])
    assert pool_names() == []


def test_a_dead_worker_fails_its_jobs():
    pool = create_pool("process", 1, [functions.exit_worker])
    with pytest.raises(StageError, match="exited unexpectedly"):
        run_stage({"a": 1}, functions.exit_worker, pool=pool)
    pool.close()
    assert not pool.alive


def test_close_fails_jobs_that_are_still_pending():
    pool = create_pool("process", 1, [functions.slow], join_timeout=0.1)
    handle = pool.post(WorkUnit(pool.function_key(functions.slow), "a", 1))
    pool.close()

    assert pool.wait([handle], timeout=3) == []
    result = pool.get(handle)
    assert not result.ok
    assert "was shut down" in result.message
