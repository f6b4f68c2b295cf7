"""
Audit sink — the single write path for everything the engine records.

Every stage, the scanner and the remediation code record through one
``AuditSink`` instead of calling the store directly. The sink never
raises on a write: if the store rejects an entry, the full payload
goes to the process log at ERROR and ``dropped_writes`` is bumped, so
the engine's own trail is never silently lost.

Reads pass straight through to the store.

Usage::

    sink = AuditSink(store)
    sink.record("high_memory_usage", details={"heap_mb": 612}, severity="warning")
    sink.metric("performance", "memory_usage", {"heap_used_mb": 612})
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any

from falconwatch import __version__
from falconwatch.core.models.audit import (
    AuditLogEntry,
    AuditSeverity,
    HealthStatus,
    SystemHealthMetric,
)
from falconwatch.core.models.moderation import ModerationLogEntry
from falconwatch.core.persistence.store import AuditStore

logger = logging.getLogger(__name__)

ENGINE_IP = "127.0.0.1"
ENGINE_USER_AGENT = f"falconwatch/{__version__}"


class AuditSink:
    """Fire-and-forget writer with a log fallback."""

    def __init__(self, store: AuditStore):
        self._store = store
        self._dropped = 0
        self._lock = threading.Lock()

    @property
    def store(self) -> AuditStore:
        return self._store

    @property
    def dropped_writes(self) -> int:
        """Writes the store rejected since construction."""
        return self._dropped

    # ── Writes ──────────────────────────────────────────────────

    def record(
        self,
        action: str,
        *,
        resource: str = "system",
        details: dict[str, Any] | None = None,
        severity: AuditSeverity | str = AuditSeverity.INFO,
        user_id: str | None = None,
    ) -> AuditLogEntry:
        """Append an audit entry attributed to the engine."""
        entry = AuditLogEntry(
            user_id=user_id,
            action=action,
            resource=resource,
            details=details or {},
            severity=AuditSeverity(severity),
            ip_address=ENGINE_IP,
            user_agent=ENGINE_USER_AGENT,
        )
        try:
            self._store.append_audit_log(entry)
        except Exception as e:
            self._fallback("audit", entry.model_dump(mode="json"), e)
        return entry

    def metric(
        self,
        metric_type: str,
        metric_name: str,
        value: dict[str, Any] | None = None,
        status: HealthStatus | str = HealthStatus.HEALTHY,
    ) -> SystemHealthMetric:
        """Append a health metric."""
        metric = SystemHealthMetric(
            metric_type=metric_type,
            metric_name=metric_name,
            value=value or {},
            status=HealthStatus(status),
        )
        try:
            self._store.append_health_metric(metric)
        except Exception as e:
            self._fallback("health", metric.model_dump(mode="json"), e)
        return metric

    def _fallback(self, kind: str, payload: dict[str, Any], error: Exception) -> None:
        with self._lock:
            self._dropped += 1
        logger.error(
            "Sink write failed (%s): %s — payload: %s",
            kind, error, json.dumps(payload, ensure_ascii=False, default=str),
        )

    # ── Reads ───────────────────────────────────────────────────

    def query_audit_logs(self, limit: int = 100, **filters: Any) -> list[AuditLogEntry]:
        return self._store.query_audit_logs(limit, **filters)

    def query_failed_logins(self, hours: float, now: datetime | None = None) -> list[AuditLogEntry]:
        return self._store.query_failed_logins(hours, now=now)

    def query_moderation_logs(self, hours: float, now: datetime | None = None) -> list[ModerationLogEntry]:
        return self._store.query_moderation_logs(hours, now=now)

    def query_health_metrics(
        self, metric_type: str | None = None, hours: float = 24, now: datetime | None = None,
    ) -> list[SystemHealthMetric]:
        return self._store.query_health_metrics(metric_type, hours, now=now)
