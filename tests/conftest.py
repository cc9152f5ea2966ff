"""
Pytest configuration and fixtures for dataman tests.
"""

import io
import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

# Set test environment before importing app modules
os.environ["DATAMAN_DATA_DIR"] = tempfile.mkdtemp()
os.environ["DATAMAN_APP_ID"] = "dataman-test"

from dataman.context.managed import ManagedContext
from dataman.context.manager import ContextManager
from dataman.core.config import Settings
from dataman.core.types import ManagedRecord
from dataman.storage.errorlog import ErrorLog
from dataman.storage.registry import EntityRegistry
from dataman.storage.store import BackingStore


class Person(ManagedRecord):
    __entity__ = "Person"
    
    name: str
    age: int | None = None
    email: str | None = None


class Pet(ManagedRecord):
    __entity__ = "Pet"
    
    name: str
    species: str = "cat"
    owner: str | None = None


WAIT = 5


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary data directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry() -> EntityRegistry:
    """Registry with the sample Person and Pet entities."""
    return EntityRegistry([Person, Pet])


@pytest.fixture
def error_stream() -> io.StringIO:
    """In-memory destination for error log lines."""
    return io.StringIO()


@pytest.fixture
def error_log(error_stream) -> ErrorLog:
    return ErrorLog(stream=error_stream)


@pytest.fixture
def store(temp_data_dir, registry) -> BackingStore:
    """A fresh SQLite store for the sample entities."""
    return BackingStore.open(temp_data_dir / "test.sqlite", registry)


@pytest.fixture
def root(store, registry, error_log) -> Generator[ManagedContext, None, None]:
    """Root context connected to the test store."""
    context = ManagedContext(store=store, registry=registry, error_log=error_log, name="root")
    yield context
    context.shutdown()


@pytest.fixture
def test_settings(temp_data_dir) -> Settings:
    return Settings(data_dir=temp_data_dir, app_id="contexts")


@pytest.fixture
def manager(test_settings, registry, error_log) -> Generator[ContextManager, None, None]:
    """Context manager over a store in the temporary data directory."""
    manager = ContextManager(settings=test_settings, registry=registry, error_log=error_log)
    yield manager
    manager.close()


@pytest.fixture
def log_lines(error_stream):
    """Factory returning the error log lines written so far."""
    def _lines() -> list[str]:
        return error_stream.getvalue().splitlines()
    return _lines


@pytest.fixture
def seed_people(root):
    """Factory that inserts and saves people through the root context."""
    def _seed(*people: dict) -> list[ManagedRecord]:
        records = [root.insert("Person", fields) for fields in people]
        assert root.save().result(timeout=WAIT) is None
        return records
    return _seed
