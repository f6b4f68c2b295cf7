"""
Risk scoring — audit-log window → bounded 0–100 risk score.

Each signal contributes a weighted amount, capped on its own, and the
sum is capped at 100:

    signal                          weight      cap
    failed logins                   12 each     40
    admin access denied             20 each     35
    critical entries                 8 each     25
    last-hour volume > 50           +15 flat    15
    last-hour volume in (20, 50]     +8 flat     8
    nighttime (02–05) volume > 10   +10 flat    10
    distinct source IPs > 5         +12 flat    12
    data access / export             5 each     15

The score is a pure function of the window: no I/O, no clock other
than the ``now`` passed in, independent of input order.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, tzinfo

from falconwatch.core.models.audit import AuditLogEntry
from falconwatch.core.services.signals import SignalCounts, count_signals

MAX_SCORE = 100

FAILED_LOGIN_WEIGHT = 12
FAILED_LOGIN_CAP = 40

ADMIN_DENIED_WEIGHT = 20
ADMIN_DENIED_CAP = 35

CRITICAL_WEIGHT = 8
CRITICAL_CAP = 25

BURST_HIGH_THRESHOLD = 50
BURST_HIGH_POINTS = 15
BURST_LOW_THRESHOLD = 20
BURST_LOW_POINTS = 8

NIGHTTIME_THRESHOLD = 10
NIGHTTIME_POINTS = 10

DISTINCT_IP_THRESHOLD = 5
DISTINCT_IP_POINTS = 12

DATA_EXPORT_WEIGHT = 5
DATA_EXPORT_CAP = 15


def breakdown_from_counts(counts: SignalCounts) -> dict[str, int]:
    """Per-signal contributions, each already capped."""
    if counts.last_hour > BURST_HIGH_THRESHOLD:
        burst = BURST_HIGH_POINTS
    elif counts.last_hour > BURST_LOW_THRESHOLD:
        burst = BURST_LOW_POINTS
    else:
        burst = 0

    return {
        "failed_logins": min(counts.failed_logins * FAILED_LOGIN_WEIGHT, FAILED_LOGIN_CAP),
        "admin_denied": min(counts.admin_denied * ADMIN_DENIED_WEIGHT, ADMIN_DENIED_CAP),
        "critical": min(counts.critical * CRITICAL_WEIGHT, CRITICAL_CAP),
        "activity_burst": burst,
        "nighttime": NIGHTTIME_POINTS if counts.nighttime > NIGHTTIME_THRESHOLD else 0,
        "distinct_ips": DISTINCT_IP_POINTS if counts.distinct_ips > DISTINCT_IP_THRESHOLD else 0,
        "data_export": min(counts.data_exports * DATA_EXPORT_WEIGHT, DATA_EXPORT_CAP),
    }


def breakdown(
    logs: Sequence[AuditLogEntry],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> dict[str, int]:
    return breakdown_from_counts(count_signals(logs, now=now, tz=tz))


def score(
    logs: Sequence[AuditLogEntry],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> int:
    """Risk score of a log window, in [0, 100]."""
    return min(MAX_SCORE, sum(breakdown(logs, now=now, tz=tz).values()))
