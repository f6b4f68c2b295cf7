"""
Suspicious-activity detector — advisory flags for an audit-log window.

Runs over the same window as the risk scorer but with its own
thresholds. The flags describe counts only; they never carry the
score and are never fed back into it.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, tzinfo

from falconwatch.core.models.audit import AuditLogEntry
from falconwatch.core.services.signals import count_signals

BRUTE_FORCE_THRESHOLD = 10
FAILED_LOGIN_NOTICE_THRESHOLD = 5
BOT_ACTIVITY_THRESHOLD = 50
HIGH_ACTIVITY_THRESHOLD = 30
NIGHTTIME_THRESHOLD = 15
DISTINCT_IP_THRESHOLD = 5
DATA_EXPORT_THRESHOLD = 10
ERROR_EVENT_THRESHOLD = 20
REPEATED_ACTION_THRESHOLD = 10


def detect(
    logs: Sequence[AuditLogEntry],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[str]:
    """Human-readable flags for every threshold the window crosses."""
    c = count_signals(logs, now=now, tz=tz)
    flags: list[str] = []

    if c.failed_logins > BRUTE_FORCE_THRESHOLD:
        flags.append(f"{c.failed_logins} failed login attempts - possible brute force")
    elif c.failed_logins > FAILED_LOGIN_NOTICE_THRESHOLD:
        flags.append(f"{c.failed_logins} failed login attempts")

    if c.admin_denied > 0:
        flags.append(f"{c.admin_denied} unauthorized admin access attempts")

    if c.critical > 0:
        flags.append(f"{c.critical} critical security events")

    if c.last_hour > BOT_ACTIVITY_THRESHOLD:
        flags.append(f"{c.last_hour} actions in last hour - possible bot activity")
    elif c.last_hour > HIGH_ACTIVITY_THRESHOLD:
        flags.append(f"{c.last_hour} actions in last hour - high activity")

    if c.nighttime > NIGHTTIME_THRESHOLD:
        flags.append(f"{c.nighttime} actions during unusual hours (2-5 AM)")

    if c.distinct_ips > DISTINCT_IP_THRESHOLD:
        flags.append(f"{c.distinct_ips} different IP addresses - possible account compromise")

    if c.data_exports_with_downloads > DATA_EXPORT_THRESHOLD:
        flags.append(f"{c.data_exports_with_downloads} data access/export attempts")

    # Error-severity events are the critical entries; the severity set is closed.
    if c.critical > ERROR_EVENT_THRESHOLD:
        flags.append(f"{c.critical} error events - possible system exploitation attempt")

    if c.repeated_actions > REPEATED_ACTION_THRESHOLD:
        flags.append(f"{c.repeated_actions} repeating action patterns - possible script/automation")

    return flags
