"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from falconwatch.adapters.base import Collaborators
from falconwatch.adapters.mock import (
    InMemoryCommentStore,
    InMemoryStore,
    MockContentGenerator,
    MockRateLimiter,
    MockRepositoryClient,
)
from falconwatch.core.engine.orchestrator import EnhancementEngine
from falconwatch.core.models.audit import AuditLogEntry, AuditSeverity
from falconwatch.core.observability.process import MB

# Midday UTC: nothing created near NOW falls in the 02–05 night window.
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def entry(
    action: str,
    *,
    minutes_ago: float = 120,
    user_id: str | None = "u1",
    severity: AuditSeverity = AuditSeverity.INFO,
    ip: str | None = None,
    now: datetime = NOW,
) -> AuditLogEntry:
    """An audit entry ``minutes_ago`` before ``now``."""
    return AuditLogEntry(
        user_id=user_id,
        action=action,
        severity=severity,
        ip_address=ip,
        created_at=now - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_entry() -> Callable[..., AuditLogEntry]:
    return entry


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def collaborators(store: InMemoryStore) -> Collaborators:
    """In-memory collaborators with a low, fixed memory reading."""
    return Collaborators(
        store=store,
        comments=InMemoryCommentStore(),
        repos=MockRepositoryClient(),
        content=MockContentGenerator(),
        rate_limiter=MockRateLimiter(),
        memory_probe=lambda: 50 * MB,
        uptime_probe=lambda: 3600.0,
        gc_collect=MagicMock(return_value=0),
    )


@pytest.fixture
def engine(collaborators: Collaborators, tmp_path: Path):
    eng = EnhancementEngine(collaborators, reports_dir=tmp_path / "reports", stage_timeout=5.0)
    yield eng
    eng.stop()


@pytest.fixture
def audited() -> Callable[[InMemoryStore, str], list[AuditLogEntry]]:
    """Audit entries in an in-memory store with the given action."""

    def _audited(store: InMemoryStore, action: str) -> list[AuditLogEntry]:
        return [e for e in store.audit if e.action == action]

    return _audited
