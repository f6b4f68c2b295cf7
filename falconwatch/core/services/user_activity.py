"""
User activity snapshots — per-user risk views built from the audit trail.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, tzinfo

from falconwatch.core.models.activity import UserActivitySnapshot
from falconwatch.core.models.audit import AuditLogEntry
from falconwatch.core.persistence.store import AuditStore
from falconwatch.core.services import risk_scoring, suspicious_activity

logger = logging.getLogger(__name__)

USER_WINDOW = 100


def build_snapshot(
    user_id: str,
    logs: Sequence[AuditLogEntry],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> UserActivitySnapshot:
    """Snapshot of one user from their audit window. Empty windows are fine."""
    logins = [e for e in logs if e.action == "login"]
    return UserActivitySnapshot(
        user_id=user_id,
        total_sessions=len(logins),
        total_actions=len(logs),
        risk_score=risk_scoring.score(logs, now=now, tz=tz),
        suspicious_activities=suspicious_activity.detect(logs, now=now, tz=tz),
        last_login=max((e.created_at for e in logins), default=None),
    )


def snapshot_user(
    store: AuditStore,
    user_id: str,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> UserActivitySnapshot:
    logs = store.query_audit_logs(USER_WINDOW, user_id=user_id)
    return build_snapshot(user_id, logs, now=now, tz=tz)


def snapshot_users(
    store: AuditStore,
    limit: int = 500,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[UserActivitySnapshot]:
    """Snapshots for every user seen in the latest ``limit`` entries, riskiest first."""
    user_ids = {e.user_id for e in store.query_audit_logs(limit) if e.user_id}
    snapshots = [snapshot_user(store, uid, now=now, tz=tz) for uid in sorted(user_ids)]
    snapshots.sort(key=lambda s: s.risk_score, reverse=True)
    logger.info("Analyzed %d user accounts", len(snapshots))
    return snapshots
