"""
Audit and health records — the append-only trail the engine writes.

AuditLogEntry and SystemHealthMetric are immutable once created.
The store only ever appends them; the canonical read order is
``created_at`` / ``checked_at`` descending (newest first).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(UTC)


def _assume_utc(value: datetime) -> datetime:
    """Naive timestamps (other writers share the ledgers) are read as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# Always timezone-aware, so window cutoffs can be compared against it.
UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class AuditSeverity(StrEnum):
    """Severity of an audit entry (closed set)."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class HealthStatus(StrEnum):
    """Status of a health metric (closed set)."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditLogEntry(BaseModel):
    """A single audit event.

    ``details`` is an opaque payload; the engine never interprets it
    beyond writing it back out.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    action: str
    resource: str = "system"
    details: dict[str, Any] = Field(default_factory=dict)
    severity: AuditSeverity = AuditSeverity.INFO
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: UtcDatetime = Field(default_factory=_now)

    # ── Signal classification ───────────────────────────────────

    @property
    def is_failed_login(self) -> bool:
        return self.action == "failed_login" or "login_failed" in self.action

    @property
    def is_admin_denied(self) -> bool:
        return self.action == "admin_access_denied" or "unauthorized_admin" in self.action

    @property
    def is_critical(self) -> bool:
        return self.severity == AuditSeverity.CRITICAL

    def is_data_export(self, include_downloads: bool = False) -> bool:
        """Whether the action reads data out of the system in bulk."""
        if "data_access" in self.action or "export" in self.action:
            return True
        return include_downloads and "download" in self.action


class SystemHealthMetric(BaseModel):
    """A single health measurement, queried by type and time window."""

    model_config = ConfigDict(frozen=True)

    metric_type: str
    metric_name: str
    value: dict[str, Any] = Field(default_factory=dict)
    status: HealthStatus = HealthStatus.HEALTHY
    checked_at: UtcDatetime = Field(default_factory=_now)
