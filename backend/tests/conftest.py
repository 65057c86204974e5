import pytest
from fastapi.testclient import TestClient

from surveypulse.main import app
from surveypulse.services.notifier import ChangeNotifier
from surveypulse.services.records import MemoryRecordStore


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def client(store, notifier):
    app.state.store = store
    app.state.notifier = notifier
    with TestClient(app) as c:
        yield c
