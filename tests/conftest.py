"""
Shared fixtures: an in-memory ledger wired to the arrears engine
"""

import pytest
from fastapi.testclient import TestClient

from arrears_ageing.aging import ArrearsAgingEngine, ArrearsAgingStore
from arrears_ageing.api import ArrearsSystem, create_app
from arrears_ageing.config import ArrearsConfig
from arrears_ageing.event_hooks import ArrearsEventListener
from arrears_ageing.events import EventDispatcher
from arrears_ageing.loans import LoanRepository
from arrears_ageing.schedule_source import StorageLedgerSource
from arrears_ageing.storage import InMemoryStorage

from tests.factories import TODAY


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def repository(storage):
    return LoanRepository(storage)


@pytest.fixture
def source(storage):
    return StorageLedgerSource(storage)


@pytest.fixture
def store(storage):
    return ArrearsAgingStore(storage)


@pytest.fixture
def engine(source, store):
    return ArrearsAgingEngine(source, store, clock=lambda: TODAY)


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def listener(engine, dispatcher):
    listener = ArrearsEventListener(engine, dispatcher)
    listener.register()
    yield listener
    listener.unregister()


@pytest.fixture
def system():
    settings = ArrearsConfig(database_url="memory://")
    system = ArrearsSystem(settings=settings, clock=lambda: TODAY)
    yield system
    system.close()


@pytest.fixture
def client(system):
    return TestClient(create_app(system))
