# tests/unit/conftest.py: Shared fixtures for the unit tests.

import pytest

from fakes import FakeExecutor, TICK_TIME

@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()

@pytest.fixture
def clock():
    return lambda: TICK_TIME
