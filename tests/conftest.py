import pytest

from tests.fakes import MemoryHandler, StaticHandler


@pytest.fixture
def memory_handler() -> MemoryHandler:
    return MemoryHandler()


@pytest.fixture
def static_handler() -> StaticHandler:
    return StaticHandler()
