"""Shared fixtures for API tests."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from linkvault.api.app import create_app
from linkvault.api.auth import verify_api_key
from linkvault.api.dependencies import get_database, get_scheduler, get_scheduler_status
from linkvault.scheduler.schemas import SchedulerState, SchedulerStatus


def _make_status(state: SchedulerState = SchedulerState.RUNNING, **kwargs) -> SchedulerStatus:
    """Helper to create a SchedulerStatus snapshot."""
    return SchedulerStatus(
        state=state,
        next_run_at=kwargs.pop(
            "next_run_at", datetime(2026, 10, 2, 3, 0, tzinfo=timezone.utc)
        ),
        started_at=kwargs.pop(
            "started_at", datetime(2026, 10, 1, 3, 0, tzinfo=timezone.utc)
        ),
        **kwargs,
    )


@pytest.fixture
def mock_db():
    """Mock Database reporting healthy with two link statuses."""
    db = AsyncMock()
    db.health_check = AsyncMock(return_value=True)
    db.fetch = AsyncMock(
        return_value=[{"status": "active", "n": 40}, {"status": "inaccessible", "n": 2}]
    )
    return db


@pytest.fixture
def mock_scheduler():
    """Mock RefreshScheduler."""
    scheduler = MagicMock()
    scheduler.refresh_link = AsyncMock()
    return scheduler


@pytest.fixture
def scheduler_status():
    """Mutable holder so tests can swap the snapshot the API sees."""
    return {"value": _make_status()}


@pytest.fixture
def link_id():
    return uuid.UUID("11111111-2222-3333-4444-555555555555")


@pytest.fixture
def client(monkeypatch, mock_db, mock_scheduler, scheduler_status):
    """TestClient with all dependencies mocked and the background loop disabled."""
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_database] = lambda: mock_db
    app.dependency_overrides[get_scheduler] = lambda: mock_scheduler
    app.dependency_overrides[get_scheduler_status] = lambda: scheduler_status["value"]

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
