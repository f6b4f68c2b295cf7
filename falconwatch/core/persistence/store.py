"""
Audit/health store — append-only NDJSON ledgers.

Three ledgers live side by side in the state directory:

    audit.ndjson       AuditLogEntry, one per line
    health.ndjson      SystemHealthMetric, one per line
    moderation.ndjson  ModerationLogEntry, one per line

Audit and health ledgers are append-only: entries are never modified
or deleted. The moderation ledger is the one exception — retention
cleanup rewrites it without the expired entries.

Reads load the whole ledger. Not the most efficient for large files,
but simple and correct; the engine only ever asks for recent windows.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol, TypeVar

from pydantic import BaseModel

from falconwatch.core.models.audit import AuditLogEntry, AuditSeverity, SystemHealthMetric
from falconwatch.core.models.moderation import ModerationLogEntry

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.ndjson"
HEALTH_FILE = "health.ndjson"
MODERATION_FILE = "moderation.ndjson"

_M = TypeVar("_M", bound=BaseModel)


class AuditStore(Protocol):
    """Storage contract the engine reads from and writes to."""

    def append_audit_log(self, entry: AuditLogEntry) -> None: ...

    def append_health_metric(self, metric: SystemHealthMetric) -> None: ...

    def append_moderation_log(self, entry: ModerationLogEntry) -> None: ...

    def query_audit_logs(
        self,
        limit: int = 100,
        *,
        user_id: str | None = None,
        severity: AuditSeverity | str | None = None,
        action: str | None = None,
    ) -> list[AuditLogEntry]: ...

    def query_failed_logins(self, hours: float, now: datetime | None = None) -> list[AuditLogEntry]: ...

    def query_moderation_logs(self, hours: float, now: datetime | None = None) -> list[ModerationLogEntry]: ...

    def query_health_metrics(
        self,
        metric_type: str | None = None,
        hours: float = 24,
        now: datetime | None = None,
    ) -> list[SystemHealthMetric]: ...

    def prune_moderation_logs(self, before: datetime) -> int: ...

    def ping(self) -> None: ...


class NdjsonStore:
    """File-backed AuditStore.

    A single lock serialises writers inside the process; each append
    is one ``write()`` of one line, so concurrent readers never see a
    partial record.
    """

    def __init__(self, root: Path):
        self._root = root
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def path(self, name: str) -> Path:
        return self._root / name

    # ── Writes ──────────────────────────────────────────────────

    def append_audit_log(self, entry: AuditLogEntry) -> None:
        self._append(AUDIT_FILE, entry)
        logger.debug("Audit entry written: %s/%s", entry.resource, entry.action)

    def append_health_metric(self, metric: SystemHealthMetric) -> None:
        self._append(HEALTH_FILE, metric)
        logger.debug("Health metric written: %s/%s", metric.metric_type, metric.metric_name)

    def append_moderation_log(self, entry: ModerationLogEntry) -> None:
        self._append(MODERATION_FILE, entry)

    def prune_moderation_logs(self, before: datetime) -> int:
        """Drop moderation entries created before ``before``.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            entries = list(self._read(MODERATION_FILE, ModerationLogEntry))
            kept = [e for e in entries if e.created_at >= before]
            removed = len(entries) - len(kept)
            if removed:
                self._rewrite(MODERATION_FILE, kept)
                logger.info("Pruned %d moderation entries older than %s", removed, before.isoformat())
            return removed

    # ── Reads ───────────────────────────────────────────────────

    def query_audit_logs(
        self,
        limit: int = 100,
        *,
        user_id: str | None = None,
        severity: AuditSeverity | str | None = None,
        action: str | None = None,
    ) -> list[AuditLogEntry]:
        """Newest-first audit entries, optionally filtered."""
        entries = self._read(AUDIT_FILE, AuditLogEntry)
        if user_id is not None:
            entries = (e for e in entries if e.user_id == user_id)
        if severity is not None:
            entries = (e for e in entries if e.severity == severity)
        if action is not None:
            entries = (e for e in entries if e.action == action)
        return _newest_first(entries, key=lambda e: e.created_at)[:limit]

    def query_failed_logins(self, hours: float, now: datetime | None = None) -> list[AuditLogEntry]:
        cutoff = _cutoff(hours, now)
        entries = (
            e for e in self._read(AUDIT_FILE, AuditLogEntry)
            if e.is_failed_login and e.created_at > cutoff
        )
        return _newest_first(entries, key=lambda e: e.created_at)

    def query_moderation_logs(self, hours: float, now: datetime | None = None) -> list[ModerationLogEntry]:
        cutoff = _cutoff(hours, now)
        entries = (e for e in self._read(MODERATION_FILE, ModerationLogEntry) if e.created_at > cutoff)
        return _newest_first(entries, key=lambda e: e.created_at)

    def query_health_metrics(
        self,
        metric_type: str | None = None,
        hours: float = 24,
        now: datetime | None = None,
    ) -> list[SystemHealthMetric]:
        cutoff = _cutoff(hours, now)
        metrics = (
            m for m in self._read(HEALTH_FILE, SystemHealthMetric)
            if m.checked_at > cutoff and (metric_type is None or m.metric_type == metric_type)
        )
        return _newest_first(metrics, key=lambda m: m.checked_at)

    def ping(self) -> None:
        """Cheap round-trip: the state directory exists and the audit ledger is readable.

        Raises:
            OSError: If the store cannot be reached.
        """
        if not self._root.is_dir():
            raise OSError(f"Store directory missing: {self._root}")
        audit = self.path(AUDIT_FILE)
        if audit.is_file():
            with audit.open("r", encoding="utf-8") as f:
                f.readline()

    # ── Internals ───────────────────────────────────────────────

    def _append(self, name: str, record: BaseModel) -> None:
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n"
        path = self.path(name)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line)

    def _read(self, name: str, model: type[_M]) -> Iterator[_M]:
        path = self.path(name)
        if not path.is_file():
            return iter(())
        with path.open("r", encoding="utf-8") as f:
            lines = f.readlines()
        return _parse(lines, model, path)

    def _rewrite(self, name: str, records: list[BaseModel]) -> None:
        """Atomic rewrite: temp file in same directory, then rename."""
        path = self.path(name)
        content = "".join(
            json.dumps(r.model_dump(mode="json"), ensure_ascii=False) + "\n" for r in records
        )
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".ledger_", suffix=".tmp")
        os.close(fd)
        tmp = Path(tmp_path)
        try:
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise


def _parse(lines: list[str], model: type[_M], path: Path) -> Iterator[_M]:
    for line_num, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield model.model_validate(json.loads(line))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Skipping corrupt entry in %s at line %d: %s", path.name, line_num, e)


def _cutoff(hours: float, now: datetime | None) -> datetime:
    return (now or datetime.now(UTC)) - timedelta(hours=hours)


def _newest_first(items, key: Callable) -> list:
    return sorted(items, key=key, reverse=True)
