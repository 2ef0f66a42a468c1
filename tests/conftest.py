import pytest

from mrpool import get_pool, pool_names
from mrpool.core.errors import InvalidPoolError


@pytest.fixture(autouse=True)
def close_leftover_pools():
    """Makes sure no test leaks running workers into the next one."""
    yield
    for name in pool_names():
        try:
            get_pool(name).close()
        except InvalidPoolError:
            pass
