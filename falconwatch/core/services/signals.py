"""
Signal counting — the raw counts behind the risk score and the flags.

Both the scorer and the suspicious-activity detector read the same
window through ``count_signals``. They apply different thresholds to
the counts and never feed each other.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo

from falconwatch.core.models.audit import AuditLogEntry

ROLLING_WINDOW = timedelta(hours=1)
NIGHT_START_HOUR = 2
NIGHT_END_HOUR = 5  # inclusive


@dataclass(frozen=True)
class SignalCounts:
    total: int = 0
    failed_logins: int = 0
    admin_denied: int = 0
    critical: int = 0
    last_hour: int = 0
    nighttime: int = 0
    distinct_ips: int = 0
    data_exports: int = 0
    data_exports_with_downloads: int = 0
    repeated_actions: int = 0


def is_nighttime(entry: AuditLogEntry, tz: tzinfo | None = None) -> bool:
    """Whether the entry falls in 02:00–05:59 in ``tz`` (local time if None)."""
    hour = entry.created_at.astimezone(tz).hour
    return NIGHT_START_HOUR <= hour <= NIGHT_END_HOUR


def count_signals(
    logs: Sequence[AuditLogEntry],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> SignalCounts:
    """Count every signal over ``logs``.

    Only ``repeated_actions`` depends on order; it is measured on the
    canonical newest-first order, so callers may pass any permutation.
    """
    now = now or datetime.now(UTC)
    hour_ago = now - ROLLING_WINDOW

    ordered = sorted(logs, key=lambda e: (e.created_at, e.action), reverse=True)
    repeats = sum(1 for i in range(1, len(ordered)) if ordered[i].action == ordered[i - 1].action)

    return SignalCounts(
        total=len(logs),
        failed_logins=sum(1 for e in logs if e.is_failed_login),
        admin_denied=sum(1 for e in logs if e.is_admin_denied),
        critical=sum(1 for e in logs if e.is_critical),
        last_hour=sum(1 for e in logs if e.created_at > hour_ago),
        nighttime=sum(1 for e in logs if is_nighttime(e, tz)),
        distinct_ips=len({e.ip_address for e in logs if e.ip_address}),
        data_exports=sum(1 for e in logs if e.is_data_export()),
        data_exports_with_downloads=sum(1 for e in logs if e.is_data_export(include_downloads=True)),
        repeated_actions=repeats,
    )
