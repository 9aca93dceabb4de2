"""
Pytest Configuration and Shared Fixtures for Prospect Dashboard Backend Tests.

This module provides fixtures and configuration for all backend tests, supporting:
- Async test execution with pytest-asyncio (explicit ``asyncio`` marks)
- An in-memory document store so no test touches the filesystem
- Test settings with a known ingestion key and short budgets
- A scripted fake classifier that returns canned results, optionally after a
  delay, and records how many calls were in flight at once
- Conversation and snapshot builders matching the stored document shape
- A FastAPI TestClient whose dependencies point at the fixtures above
"""

import asyncio
import os
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

os.environ.setdefault("STORE_BACKEND", "memory")

from fastapi.testclient import TestClient  # noqa: E402

from prospect_dashboard.core.config import Settings  # noqa: E402
from prospect_dashboard.core.dependencies import (  # noqa: E402
    get_classifier_dependency,
    get_lock_manager_dependency,
    get_settings_dependency,
    get_store_dependency,
)
from prospect_dashboard.core.locks import DateLockManager, KeyedMutex  # noqa: E402
from prospect_dashboard.core.store import InMemoryStore  # noqa: E402
from prospect_dashboard.models import (  # noqa: E402
    ClassificationResult,
    DailySnapshot,
    ProcessedConversation,
)
from prospect_dashboard.services.classifier import Classifier  # noqa: E402
from prospect_dashboard.services.snapshots import SnapshotRepository  # noqa: E402


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - api: Marks tests exercising the HTTP layer through TestClient
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'api: marks tests exercising the HTTP layer'
    )


# ============================================================
# FAKE CLASSIFIER
# ============================================================

ScriptedResult = Union[ClassificationResult, Exception]


class FakeClassifier(Classifier):
    """
    Classifier returning scripted results.

    Args:
        results: Result (or exception to raise) per record id.
        default: Result for ids without a script.
        delay: Seconds to sleep before answering.
        delays: Per-id delay overriding ``delay``.
    """

    model = "fake-model"

    def __init__(
        self,
        results: Optional[Dict[str, ScriptedResult]] = None,
        default: Optional[ClassificationResult] = None,
        delay: float = 0.0,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.results = results or {}
        self.default = default or ClassificationResult(cost=0.001)
        self.delay = delay
        self.delays = delays or {}
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify(self, record_id: str, text: str) -> ClassificationResult:
        self.calls.append(record_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(record_id, self.delay)
            if delay:
                await asyncio.sleep(delay)
            result = self.results.get(record_id, self.default)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1


# ============================================================
# CORE FIXTURES
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        ingest_api_key="test-ingest-key",
        classification_concurrency=4,
        processing_budget_seconds=5.0,
        classification_timeout_seconds=10.0,
        max_retries=3,
        lock_ttl_seconds=60.0,
        process_batch_size=50,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def repository(store: InMemoryStore) -> SnapshotRepository:
    return SnapshotRepository(store, max_retries=3, mutex=KeyedMutex())


@pytest.fixture
def lock_manager() -> DateLockManager:
    return DateLockManager(ttl_seconds=60.0)


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def make_classifier() -> Callable[..., FakeClassifier]:
    """Factory for classifiers with scripted results."""
    return FakeClassifier


# ============================================================
# DATA BUILDERS
# ============================================================

@pytest.fixture
def make_conversation() -> Callable[..., Dict[str, Any]]:
    """Build one raw ingest conversation; keyword arguments override fields."""

    def _make(conversation_id: str, **overrides: Any) -> Dict[str, Any]:
        conversation = {
            "conversationId": conversation_id,
            "chatStartDateTime": "2026-02-10T09:00:00.000Z",
            "maidId": "",
            "clientId": "",
            "contractId": "",
            "maidName": "",
            "clientName": "",
            "contractType": "",
            "messages": f"Transcript of {conversation_id}",
        }
        conversation.update(overrides)
        return conversation

    return _make


@pytest.fixture
def make_record() -> Callable[..., ProcessedConversation]:
    """Build one stored conversation record; keyword arguments override fields."""

    def _make(record_id: str, **overrides: Any) -> ProcessedConversation:
        fields: Dict[str, Any] = {
            "id": record_id,
            "conversationId": record_id.split(":")[-1],
            "chatStartDateTime": "2026-02-10T09:00:00.000Z",
            "messages": f"Transcript of {record_id}",
        }
        fields.update(overrides)
        return ProcessedConversation(**fields)

    return _make


@pytest.fixture
def seed_snapshot(repository: SnapshotRepository) -> Callable[..., Any]:
    """Async helper saving a snapshot built from records."""

    async def _seed(date: str, records: List[ProcessedConversation], **fields: Any) -> DailySnapshot:
        snapshot = DailySnapshot(date=date, results=records, **fields)
        return await repository.save(snapshot)

    return _seed


# ============================================================
# HTTP CLIENT
# ============================================================

@pytest.fixture
def client(
    store: InMemoryStore,
    test_settings: Settings,
    fake_classifier: FakeClassifier,
    lock_manager: DateLockManager,
):
    """
    TestClient with the store, settings, classifier and lock manager
    replaced by the test fixtures. Used as a context manager so every request
    runs on the same event loop.
    """
    from prospect_dashboard.main import app

    app.dependency_overrides[get_store_dependency] = lambda: store
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    app.dependency_overrides[get_classifier_dependency] = lambda: fake_classifier
    app.dependency_overrides[get_lock_manager_dependency] = lambda: lock_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
