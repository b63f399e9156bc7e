"""Shared pytest fixtures for BizChat tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from fakes import FakeStore, make_context  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_api_deps():
    """Drop any context/tasks client a test injected into the HTTP layer."""
    from bizchat.api import deps

    deps.set_context(None)
    deps.set_tasks_client(None)
    yield
    deps.set_context(None)
    deps.set_tasks_client(None)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def ctx(store):
    return make_context(store)
