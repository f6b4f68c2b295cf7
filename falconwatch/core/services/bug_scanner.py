"""
Bug/health scanner — heuristic checks that produce findings.

Four independent checks run on every scan and their findings are
concatenated:

    function errors        critical audit entries + a store read probe
    missing capabilities   store query probes + admin route probe
    performance            process memory against fixed thresholds
    security               failed-login volume, denied admin access

A check that raises is logged and contributes nothing; the other
checks still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from falconwatch.core.models.audit import AuditSeverity
from falconwatch.core.models.findings import BugScanResult, FindingCategory, FindingSeverity
from falconwatch.core.observability.process import MB
from falconwatch.core.persistence.store import AuditStore

logger = logging.getLogger(__name__)

FUNCTION_ERROR_WINDOW = 100

MEMORY_WARN_MB = 200
MEMORY_HIGH_MB = 400
MEMORY_LOCATION = "System Memory"

FAILED_LOGIN_WINDOW_HOURS = 24
FAILED_LOGIN_THRESHOLD = 10
AUTH_LOCATION = "Authentication System"

ADMIN_DENIED_WINDOW = 50


class BugScanner:
    """Runs the scan checks against a store and the process probes.

    ``route_probe_fn`` is called at scan time and returns the current
    route probe (or None), so a probe attached after construction is
    picked up.
    """

    def __init__(
        self,
        store: AuditStore,
        memory_probe: Callable[[], int],
        route_probe_fn: Callable[[], Callable[[], list[str]] | None] = lambda: None,
    ):
        self._store = store
        self._memory_probe = memory_probe
        self._route_probe_fn = route_probe_fn

    def scan(self, now: datetime | None = None) -> list[BugScanResult]:
        now = now or datetime.now(UTC)
        findings: list[BugScanResult] = []

        checks = (
            ("function_errors", self.scan_function_errors),
            ("missing_capabilities", self.scan_missing_capabilities),
            ("performance", self.scan_performance),
            ("security", self.scan_security),
        )
        for name, check in checks:
            try:
                findings.extend(check(now))
            except Exception:
                logger.exception("Scan check %s failed", name)

        logger.info("Bug scan completed — found %d issues", len(findings))
        return findings

    # ── Checks ──────────────────────────────────────────────────

    def scan_function_errors(self, now: datetime) -> list[BugScanResult]:
        findings = [
            BugScanResult(
                severity=FindingSeverity.CRITICAL,
                category=FindingCategory.FUNCTION_ERROR,
                description=f"Function error detected: {entry.action}",
                location=entry.resource or "Unknown",
                fix_recommendation="Review error logs and implement proper error handling",
            )
            for entry in self._store.query_audit_logs(FUNCTION_ERROR_WINDOW)
            if entry.severity == AuditSeverity.CRITICAL
        ]

        try:
            self._store.ping()
        except Exception as e:
            findings.append(BugScanResult(
                severity=FindingSeverity.CRITICAL,
                category=FindingCategory.FUNCTION_ERROR,
                description=f"Store connectivity issue detected: {e}",
                location="Store Connection",
                fix_recommendation="Check the state directory and store permissions",
            ))
        return findings

    def scan_missing_capabilities(self, now: datetime) -> list[BugScanResult]:
        findings: list[BugScanResult] = []

        probes: tuple[tuple[str, Callable[[], object]], ...] = (
            ("query_audit_logs", lambda: self._store.query_audit_logs(10)),
            ("query_health_metrics", lambda: self._store.query_health_metrics(hours=24, now=now)),
            ("query_failed_logins", lambda: self._store.query_failed_logins(24, now=now)),
            ("query_moderation_logs", lambda: self._store.query_moderation_logs(1, now=now)),
        )
        for name, probe in probes:
            try:
                probe()
            except Exception as e:
                logger.warning("Store capability %s failed: %s", name, e)
                findings.append(BugScanResult(
                    severity=FindingSeverity.MEDIUM,
                    category=FindingCategory.MISSING_FUNCTION,
                    description=f"Store function '{name}' failed or is missing",
                    location="Storage Layer",
                    fix_recommendation=f"Verify the {name} implementation of the configured store",
                ))

        route_probe = self._route_probe_fn()
        if route_probe is None:
            logger.debug("No route probe attached — skipping route checks")
            return findings

        for route in route_probe():
            findings.append(BugScanResult(
                severity=FindingSeverity.LOW,
                category=FindingCategory.MISSING_ROUTE,
                description=f"Admin route could not be confirmed: {route}",
                location=route,
                fix_recommendation=f"Register {route} on the admin API",
            ))
        return findings

    def scan_performance(self, now: datetime) -> list[BugScanResult]:
        heap_mb = self._memory_probe() / MB
        if heap_mb <= MEMORY_WARN_MB:
            return []
        return [BugScanResult(
            severity=FindingSeverity.HIGH if heap_mb > MEMORY_HIGH_MB else FindingSeverity.MEDIUM,
            category=FindingCategory.PERFORMANCE,
            description=f"High memory usage detected: {round(heap_mb)}MB",
            location=MEMORY_LOCATION,
            fix_recommendation="Implement memory optimization and garbage collection monitoring",
            auto_fixable=True,
        )]

    def scan_security(self, now: datetime) -> list[BugScanResult]:
        findings: list[BugScanResult] = []

        failed = self._store.query_failed_logins(FAILED_LOGIN_WINDOW_HOURS, now=now)
        if len(failed) > FAILED_LOGIN_THRESHOLD:
            findings.append(BugScanResult(
                severity=FindingSeverity.HIGH,
                category=FindingCategory.SECURITY,
                description=f"High number of failed login attempts: {len(failed)} in 24h",
                location=AUTH_LOCATION,
                fix_recommendation="Implement enhanced rate limiting and IP blocking",
                auto_fixable=True,
            ))

        denied = [e for e in self._store.query_audit_logs(ADMIN_DENIED_WINDOW) if e.is_admin_denied]
        if denied:
            findings.append(BugScanResult(
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.SECURITY,
                description=f"Unauthorized admin access attempts detected: {len(denied)}",
                location="Admin Authentication",
                fix_recommendation="Monitor and alert on admin access attempts",
            ))
        return findings
