"""
Mock collaborators — in-memory doubles for every engine collaborator.

Used by ``--mock`` mode and by the test suite to run full cycles
without GitHub, a content command or files on disk. Each double
records its calls and can be told to fail.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from falconwatch.adapters.base import ContentGenerator, RateLimiter, RepositoryClient
from falconwatch.core.models.audit import AuditLogEntry, AuditSeverity, SystemHealthMetric
from falconwatch.core.models.moderation import Comment, ModerationLogEntry


class MockRepositoryClient(RepositoryClient):
    """Serves canned metadata for any repository name.

    Names in ``failing`` raise; names in ``missing`` return None.
    """

    def __init__(self, failing: set[str] | None = None, missing: set[str] | None = None):
        self.failing = set(failing or ())
        self.missing = set(missing or ())
        self.calls: list[str] = []

    def get_repository(self, name: str) -> dict[str, Any] | None:
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"[mock] cannot reach {name}")
        if name in self.missing:
            return None
        return {
            "name": name,
            "full_name": f"mock/{name}",
            "stargazers_count": 0,
            "forks_count": 0,
            "language": "Python",
            "updated_at": "2024-01-01T00:00:00Z",
        }

    def get_recent_commits(self, name: str, count: int = 5) -> list[dict[str, Any]]:
        if name in self.failing:
            raise RuntimeError(f"[mock] cannot reach {name}")
        return [{"sha": f"{i:012x}", "message": f"[mock] commit {i}", "date": None} for i in range(count)]


class MockContentGenerator(ContentGenerator):

    def __init__(self, published_posts: int | None = 1, fail: bool = False):
        self.published_posts = published_posts
        self.fail = fail
        self.generated_for: list[list[str]] = []

    def generate_blogs_for_featured_repos(self, featured_repos: Sequence[str]) -> None:
        self.generated_for.append(list(featured_repos))
        if self.fail:
            raise RuntimeError("[mock] generator failure")

    def count_published_posts(self) -> int | None:
        return self.published_posts


class MockRateLimiter(RateLimiter):

    def __init__(self, fail: bool = False):
        self.strict = False
        self.fail = fail
        self.reasons: list[str] = []

    def enable_strict(self, reason: str) -> bool:
        if self.fail:
            raise RuntimeError("[mock] rate limiter unavailable")
        self.reasons.append(reason)
        self.strict = True
        return True

    def is_strict(self) -> bool:
        return self.strict


class InMemoryCommentStore:

    def __init__(self, comments: list[Comment] | None = None):
        self.comments: list[Comment] = list(comments or [])

    def list_unapproved(self, limit: int = 50) -> list[Comment]:
        pending = sorted((c for c in self.comments if not c.approved), key=lambda c: c.created_at, reverse=True)
        return pending[:limit]

    def approve(self, comment_id: str) -> bool:
        for comment in self.comments:
            if comment.id == comment_id and not comment.approved:
                comment.approved = True
                return True
        return False


class InMemoryStore:
    """AuditStore kept in lists. ``fail_writes`` makes every append raise."""

    def __init__(self):
        self.audit: list[AuditLogEntry] = []
        self.health: list[SystemHealthMetric] = []
        self.moderation: list[ModerationLogEntry] = []
        self.fail_writes = False
        self.fail_ping = False
        self._lock = threading.Lock()

    def append_audit_log(self, entry: AuditLogEntry) -> None:
        self._check_writable()
        with self._lock:
            self.audit.append(entry)

    def append_health_metric(self, metric: SystemHealthMetric) -> None:
        self._check_writable()
        with self._lock:
            self.health.append(metric)

    def append_moderation_log(self, entry: ModerationLogEntry) -> None:
        self._check_writable()
        with self._lock:
            self.moderation.append(entry)

    def query_audit_logs(
        self,
        limit: int = 100,
        *,
        user_id: str | None = None,
        severity: AuditSeverity | str | None = None,
        action: str | None = None,
    ) -> list[AuditLogEntry]:
        entries = [
            e for e in self.audit
            if (user_id is None or e.user_id == user_id)
            and (severity is None or e.severity == severity)
            and (action is None or e.action == action)
        ]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)[:limit]

    def query_failed_logins(self, hours: float, now: datetime | None = None) -> list[AuditLogEntry]:
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=hours)
        entries = [e for e in self.audit if e.is_failed_login and e.created_at > cutoff]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def query_moderation_logs(self, hours: float, now: datetime | None = None) -> list[ModerationLogEntry]:
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=hours)
        entries = [e for e in self.moderation if e.created_at > cutoff]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def query_health_metrics(
        self,
        metric_type: str | None = None,
        hours: float = 24,
        now: datetime | None = None,
    ) -> list[SystemHealthMetric]:
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=hours)
        metrics = [
            m for m in self.health
            if m.checked_at > cutoff and (metric_type is None or m.metric_type == metric_type)
        ]
        return sorted(metrics, key=lambda m: m.checked_at, reverse=True)

    def prune_moderation_logs(self, before: datetime) -> int:
        with self._lock:
            kept = [e for e in self.moderation if e.created_at >= before]
            removed = len(self.moderation) - len(kept)
            self.moderation = kept
        return removed

    def ping(self) -> None:
        if self.fail_ping:
            raise OSError("[mock] store unreachable")

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise OSError("[mock] store is read-only")
