"""
Maintenance task registry — the ordered stages of one enhancement cycle.

Each stage is a named function of a ``StageContext`` that returns a
details dict for the cycle report. Stages only sequence collaborator
calls and apply thresholds; scanning, scoring and remediation live in
their own services.

Order is fixed:

    1. self_audit               bug sweep + auto-fix + health scores (fatal)
    2. repository_sync          featured repos, all-settled fan-out
    3. content_generation       trigger the content generator
    4. performance_tuning       memory/uptime snapshot, threshold alert
    5. security_loop            failed-login and moderation volume
    6. community_moderation     auto-approve clean comments, retention
    7. infrastructure           store latency, memory, composite status, report

The cycle-completion event is recorded by the orchestrator.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from falconwatch.adapters.base import Collaborators
from falconwatch.core.models.audit import AuditSeverity, HealthStatus
from falconwatch.core.models.cycle import MaintenanceCycleConfig
from falconwatch.core.observability import process
from falconwatch.core.observability.health import SystemHealth, check_memory, check_store
from falconwatch.core.persistence.reports import write_report
from falconwatch.core.reliability.timeouts import call_with_timeout, fan_out
from falconwatch.core.services.audit_sink import AuditSink
from falconwatch.core.services.auto_fix import AutoFixer
from falconwatch.core.services.bug_scanner import BugScanner

logger = logging.getLogger(__name__)

# ── Thresholds ──────────────────────────────────────────────────

FAILED_LOGIN_ALERT = 10
MODERATION_ALERT = 50
MEMORY_ALERT_MB = 500
STORE_LATENCY_HEALTHY_MS = 1000
MODERATION_RETENTION_DAYS = 30
MODERATION_QUEUE_LIMIT = 50
RECENT_COMMITS = 3

SECURITY_SCORE_ALERT, SECURITY_SCORE_OK = 60, 95
PERFORMANCE_SCORE_HIGH, PERFORMANCE_SCORE_MEDIUM, PERFORMANCE_SCORE_OK = 70, 85, 95
PERFORMANCE_MEDIUM_MB = 200
FUNCTIONALITY_SCORE_OK, FUNCTIONALITY_SCORE_EMPTY = 95, 80
HEALTH_WARNING_FINDINGS = 5
HEALTH_WARNING_MB = 300


@dataclass
class StageContext:
    """What a stage may read and call. Built once per cycle."""

    config: MaintenanceCycleConfig
    collaborators: Collaborators
    sink: AuditSink
    scanner: BugScanner
    fixer: AutoFixer
    reports_dir: Path
    timeout: float
    now: datetime
    engine_status: Callable[[], dict[str, Any]] = dict

    def call(self, fn: Callable[..., Any], *args: Any, label: str, **kwargs: Any) -> Any:
        """Call a collaborator under the per-stage time budget."""
        return call_with_timeout(fn, *args, timeout=self.timeout, label=label, **kwargs)

    def heap_mb(self) -> float:
        return self.collaborators.memory_probe() / process.MB


def _always(config: MaintenanceCycleConfig) -> bool:
    return True


@dataclass(frozen=True)
class Stage:
    name: str
    run: Callable[[StageContext], dict[str, Any]]
    enabled: Callable[[MaintenanceCycleConfig], bool] = _always
    fatal: bool = False
    failure_severity: AuditSeverity = AuditSeverity.WARNING


# ── 1. Self-audit ───────────────────────────────────────────────


def self_audit(ctx: StageContext) -> dict[str, Any]:
    findings = ctx.scanner.scan(now=ctx.now)
    fixes = ctx.fixer.apply(findings)

    for finding in findings:
        ctx.sink.metric("bug_scan", str(finding.category), finding.to_dict(), finding.health_status)

    failed_logins = len(ctx.call(
        ctx.sink.query_failed_logins, 24, now=ctx.now, label="failed-logins",
    ))
    heap_mb = ctx.heap_mb()

    issues: list[str] = []
    try:
        published = ctx.call(ctx.collaborators.content.count_published_posts, label="post-count") or 0
    except Exception as e:
        logger.warning("Published post count unavailable: %s", e)
        issues.append(f"Published post count unavailable: {e}")
        published = 0

    if failed_logins > FAILED_LOGIN_ALERT:
        issues.append(f"High failed login rate: {failed_logins} in 24h")
    if heap_mb > MEMORY_ALERT_MB:
        issues.append(f"High memory usage: {round(heap_mb)}MB")
    if published == 0:
        issues.append("No published blog posts found")

    scores = {
        "security": SECURITY_SCORE_ALERT if failed_logins > FAILED_LOGIN_ALERT else SECURITY_SCORE_OK,
        "performance": (
            PERFORMANCE_SCORE_HIGH if heap_mb > MEMORY_ALERT_MB
            else PERFORMANCE_SCORE_MEDIUM if heap_mb > PERFORMANCE_MEDIUM_MB
            else PERFORMANCE_SCORE_OK
        ),
        "functionality": FUNCTIONALITY_SCORE_OK if published > 0 else FUNCTIONALITY_SCORE_EMPTY,
    }

    severe = [f for f in findings if f.is_severe]
    if severe:
        system_health = HealthStatus.CRITICAL
    elif len(findings) > HEALTH_WARNING_FINDINGS or heap_mb > HEALTH_WARNING_MB:
        system_health = HealthStatus.WARNING
    else:
        system_health = HealthStatus.HEALTHY

    summary = {
        "scores": scores,
        "system_health": str(system_health),
        "findings": len(findings),
        "critical_findings": len(severe),
        "fixes": fixes,
        "issues": issues,
        "memory_usage_mb": round(heap_mb),
    }
    ctx.sink.metric("self_audit", "summary", summary, system_health)
    logger.info("Self-audit: %s, %d findings, %d fixes", system_health, len(findings), len(fixes))
    return summary


# ── 2. Repository sync ──────────────────────────────────────────


def repository_sync(ctx: StageContext) -> dict[str, Any]:
    repos = ctx.collaborators.repos

    def sync_one(name: str) -> dict[str, Any] | None:
        meta = repos.get_repository(name)
        if meta is None:
            return None
        commits = repos.get_recent_commits(name, RECENT_COMMITS)
        return {
            "name": name,
            "stars": meta.get("stargazers_count", 0),
            "forks": meta.get("forks_count", 0),
            "language": meta.get("language"),
            "updated_at": meta.get("updated_at"),
            "latest_commit": commits[0]["sha"] if commits else None,
        }

    results = fan_out(
        ctx.config.featured_repos, sync_one,
        timeout=ctx.timeout, label="repo-sync",
    )
    synced = [r.value for r in results if r.ok and r.value is not None]
    missing = [r.item for r in results if r.ok and r.value is None]
    failed = {r.item: r.error for r in results if not r.ok}

    value = {"synced": len(synced), "missing": missing, "failed": failed}
    ctx.sink.metric(
        "github", "repository_sync", value,
        HealthStatus.WARNING if failed else HealthStatus.HEALTHY,
    )
    logger.info("Repository sync: %d synced, %d missing, %d failed", len(synced), len(missing), len(failed))
    return {**value, "repositories": synced}


# ── 3. Content generation ───────────────────────────────────────


def content_generation(ctx: StageContext) -> dict[str, Any]:
    repos = list(ctx.config.featured_repos)
    ctx.call(ctx.collaborators.content.generate_blogs_for_featured_repos, repos, label="content")
    ctx.sink.record(
        "blog_generation_triggered",
        resource="content",
        details={"featured_repos": repos},
    )
    return {"featured_repos": len(repos)}


# ── 4. Performance tuning ───────────────────────────────────────


def performance_tuning(ctx: StageContext) -> dict[str, Any]:
    heap_mb = ctx.heap_mb()
    uptime = ctx.collaborators.uptime_probe()

    ctx.sink.metric("performance", "memory_usage", {"heap_used_mb": round(heap_mb)})
    ctx.sink.metric("performance", "uptime", {"seconds": round(uptime)})

    if heap_mb > MEMORY_ALERT_MB:
        ctx.sink.record(
            "high_memory_usage",
            details={"memory_usage_mb": round(heap_mb), "threshold": MEMORY_ALERT_MB},
            severity=AuditSeverity.WARNING,
        )

    logger.info("Performance audit: memory %dMB, uptime %ds", round(heap_mb), round(uptime))
    return {"memory_usage_mb": round(heap_mb), "uptime_seconds": round(uptime)}


# ── 5. Security loop ────────────────────────────────────────────


def security_loop(ctx: StageContext) -> dict[str, Any]:
    failures = ctx.call(ctx.sink.query_failed_logins, 24, now=ctx.now, label="failed-logins")
    moderation = ctx.call(ctx.sink.query_moderation_logs, 24, now=ctx.now, label="moderation-logs")

    alerts: list[str] = []
    if len(failures) > FAILED_LOGIN_ALERT:
        alerts.append("high_failed_login_rate")
        ctx.sink.record(
            "high_failed_login_rate",
            details={"count": len(failures), "timeframe": "24h"},
            severity=AuditSeverity.WARNING,
        )
    if len(moderation) > MODERATION_ALERT:
        alerts.append("high_moderation_activity")
        ctx.sink.record(
            "high_moderation_activity",
            details={"count": len(moderation), "timeframe": "24h"},
            severity=AuditSeverity.WARNING,
        )

    ctx.sink.metric(
        "security", "threat_status",
        {"status": "elevated" if alerts else "clear", "alerts": alerts},
        HealthStatus.WARNING if alerts else HealthStatus.HEALTHY,
    )
    return {"failed_logins": len(failures), "moderation_actions": len(moderation), "alerts": alerts}


# ── 6. Community moderation ─────────────────────────────────────


def community_moderation(ctx: StageContext) -> dict[str, Any]:
    comments = ctx.collaborators.comments
    logs = ctx.call(ctx.sink.query_moderation_logs, 24, now=ctx.now, label="moderation-logs")
    flagged = sum(1 for log in logs if log.action == "flagged")
    pending = ctx.call(comments.list_unapproved, MODERATION_QUEUE_LIMIT, label="comments")

    approved = 0
    for comment in pending:
        history = [
            log for log in logs
            if log.user_id == comment.author_id and log.content_type == "comment"
        ]
        if not history or any(log.is_bad for log in history):
            continue

        details = {
            "comment_id": comment.id,
            "author_id": comment.author_id,
            "reason": "clean moderation history",
            "history_entries": len(history),
        }
        if ctx.call(comments.approve, comment.id, label="approve-comment"):
            approved += 1
            ctx.sink.record("comment_auto_approved", resource="comment", details=details)
        else:
            # Gone or approved elsewhere between listing and approval.
            logger.info("Comment %s was not approved by the store", comment.id)
            ctx.sink.record(
                "comment_auto_approve_failed",
                resource="comment",
                details=details,
                severity=AuditSeverity.WARNING,
            )

    cutoff = ctx.now - timedelta(days=MODERATION_RETENTION_DAYS)
    pruned = ctx.call(ctx.collaborators.store.prune_moderation_logs, cutoff, label="prune-moderation")

    value = {
        "status": "active",
        "flagged_content": flagged,
        "unapproved_comments": len(pending),
        "auto_approved": approved,
        "pruned_entries": pruned,
    }
    ctx.sink.metric("moderation", "ai_filter_status", value)
    logger.info("Community moderation: %d flagged, %d auto-approved", flagged, approved)
    return value


# ── 7. Infrastructure ───────────────────────────────────────────


def infrastructure(ctx: StageContext) -> dict[str, Any]:
    latency_ms: float | None = None
    error: str | None = None
    start = time.perf_counter()
    try:
        ctx.call(ctx.collaborators.store.ping, label="store-ping")
        latency_ms = (time.perf_counter() - start) * 1000
    except Exception as e:
        error = str(e)
        ctx.sink.record(
            "database_connection_failed",
            details={"error": error},
            severity=AuditSeverity.CRITICAL,
        )

    heap_mb = ctx.heap_mb()
    uptime = ctx.collaborators.uptime_probe()

    health = SystemHealth()
    health.add(check_store(latency_ms, error, STORE_LATENCY_HEALTHY_MS))
    health.add(check_memory(heap_mb, MEMORY_ALERT_MB))

    if latency_ms is not None:
        ctx.sink.metric("infrastructure", "database_health", {
            "response_time_ms": round(latency_ms, 1),
            "status": "healthy" if latency_ms < STORE_LATENCY_HEALTHY_MS else "degraded",
        })
    if heap_mb > MEMORY_ALERT_MB:
        ctx.sink.record(
            "high_memory_usage",
            details={"heap_used_mb": round(heap_mb)},
            severity=AuditSeverity.WARNING,
        )
    ctx.sink.metric("infrastructure", "memory_usage", {"heap_used_mb": round(heap_mb)})
    ctx.sink.metric("infrastructure", "uptime", {"hours": round(uptime / 3600, 2)})

    recent = ctx.call(ctx.sink.query_health_metrics, "infrastructure", 24, now=ctx.now, label="health-metrics")
    ctx.sink.metric(
        "infrastructure", "overall_status",
        {
            **health.to_dict(),
            "health_check_count": len(recent),
            "uptime": process.format_uptime(uptime),
            "cpu": process.cpu_snapshot(),
        },
        health.metric_status,
    )

    report_path = _write_agent_report(ctx, health, heap_mb, uptime)
    logger.info("Infrastructure: %s, memory %dMB", health.status, round(heap_mb))
    return {
        "overall_status": health.status,
        "database": health.component("database").to_dict(),
        "memory_usage_mb": round(heap_mb),
        "report": str(report_path),
    }


def _write_agent_report(ctx: StageContext, health: SystemHealth, heap_mb: float, uptime: float) -> Path:
    failed = ctx.sink.query_failed_logins(24, now=ctx.now)
    moderation = ctx.sink.query_moderation_logs(24, now=ctx.now)
    metrics = ctx.sink.query_health_metrics(None, 24, now=ctx.now)
    data = {
        "timestamp": ctx.now.isoformat(),
        "system_status": health.status,
        "engine": ctx.engine_status(),
        "performance": {
            "memory_mb": round(heap_mb),
            "uptime_seconds": round(uptime),
            "pid": os.getpid(),
        },
        "audit": {
            "recent_failed_logins": len(failed),
            "recent_moderation_activity": len(moderation),
            "health_metrics": len(metrics),
        },
    }
    return write_report(ctx.reports_dir, data, now=ctx.now)


# ── Registry ────────────────────────────────────────────────────

STAGES: tuple[Stage, ...] = (
    Stage("self_audit", self_audit, fatal=True),
    Stage("repository_sync", repository_sync, enabled=lambda c: c.enable_auto_generation),
    Stage("content_generation", content_generation, enabled=lambda c: c.enable_auto_generation),
    Stage("performance_tuning", performance_tuning, enabled=lambda c: c.enable_performance_monitoring),
    Stage("security_loop", security_loop, enabled=lambda c: c.enable_security_audit),
    Stage("community_moderation", community_moderation, enabled=lambda c: c.enable_community_moderation),
    Stage("infrastructure", infrastructure, failure_severity=AuditSeverity.CRITICAL),
)
