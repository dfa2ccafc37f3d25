from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from app.main import app, get_notifier, get_public_dir, get_registry
from relay.core.linking import LinkRegistry
from relay.core.store import MemoryStore


class RecordingNotifier:
    def __init__(self, delivered: bool = True):
        self.delivered = delivered
        self.calls: List[Tuple[Optional[str], str]] = []

    def push(self, line_user_id: Optional[str], text: str) -> bool:
        self.calls.append((line_user_id, text))
        return self.delivered


class CountingStore(MemoryStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__(initial)
        self.saves = 0

    def save(self, data: Dict[str, Any]) -> None:
        super().save(data)
        self.saves += 1


@pytest.fixture
def make_store():
    return CountingStore


@pytest.fixture
def store() -> CountingStore:
    return CountingStore()


@pytest.fixture
def registry(store: CountingStore) -> LinkRegistry:
    return LinkRegistry(store)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def _client(registry, notifier, public_dir, raise_server_exceptions=True):
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_public_dir] = lambda: public_dir
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


@pytest.fixture
def client(registry, notifier, tmp_path):
    with _client(registry, notifier, tmp_path) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def opaque_client(registry, notifier, tmp_path):
    """Client that sees unhandled server errors as 500 responses."""
    with _client(registry, notifier, tmp_path, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
