"""
Enhancement engine — lifecycle, scheduling and cycle execution.

Lifecycle is ``stopped → running → stopped``:

    start()         run one cycle now, then arm the ticker
    stop()          disarm; an in-flight cycle runs to completion
    status()        isRunning, config, nextRun, lastCycle
    update_config() new config snapshot; no cycle, no re-arm
    trigger_now()   one out-of-band cycle, independent of isRunning;
                    ``stages=`` narrows it to named stages

At most one cycle runs at a time. The cycle lock is taken by every
path (start, ticker, manual trigger). A ticker firing while a manual
cycle holds the lock produces a skipped report; a manual trigger
while a cycle is running raises ``CycleInProgress``.

Each cycle reads one immutable config snapshot taken when it starts.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Collection
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from falconwatch.adapters.base import Collaborators, RouteProbe
from falconwatch.core.engine.scheduler import Ticker
from falconwatch.core.models.audit import AuditSeverity
from falconwatch.core.models.cycle import CycleReport, MaintenanceCycleConfig, StageResult
from falconwatch.core.models.findings import BugScanResult
from falconwatch.core.services.audit_sink import AuditSink
from falconwatch.core.services.auto_fix import AutoFixer
from falconwatch.core.services.bug_scanner import BugScanner
from falconwatch.core.services.tasks import STAGES, Stage, StageContext

logger = logging.getLogger(__name__)


class CycleInProgress(Exception):
    """A cycle is already running."""


class EnhancementEngine:
    """The enhancement and monitoring engine.

    Constructed explicitly with its collaborators; there is no global
    instance. ``clock`` supplies wall-clock time for scoring windows,
    report timestamps and ``nextRun``.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        config: MaintenanceCycleConfig | None = None,
        *,
        reports_dir: Path,
        stage_timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
        stages: tuple[Stage, ...] = STAGES,
    ):
        self._collab = collaborators
        self._config = config or MaintenanceCycleConfig()
        self._reports_dir = reports_dir
        self._stage_timeout = stage_timeout
        self._clock = clock or (lambda: datetime.now(UTC))
        self._stages = stages

        self._sink = AuditSink(collaborators.store)
        self._scanner = BugScanner(
            collaborators.store,
            memory_probe=lambda: self._collab.memory_probe(),
            route_probe_fn=lambda: self._collab.route_probe,
        )
        self._fixer = AutoFixer(self._sink, collaborators.rate_limiter, collaborators.gc_collect)

        self._lifecycle = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._running = False
        self._ticker: Ticker | None = None
        self._last_report: CycleReport | None = None

    # ── Accessors ───────────────────────────────────────────────

    @property
    def sink(self) -> AuditSink:
        return self._sink

    @property
    def config(self) -> MaintenanceCycleConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    @property
    def ticker(self) -> Ticker | None:
        return self._ticker

    def attach_route_probe(self, probe: RouteProbe) -> None:
        """Let the scanner confirm admin routes (set by the web layer)."""
        self._collab.route_probe = probe

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> CycleReport | None:
        """Run one cycle synchronously, then arm the ticker.

        Returns:
            The immediate cycle's report, or None if already running.
        """
        with self._lifecycle:
            if self._running:
                logger.info("Engine already running")
                return None
            self._running = True

        logger.info("Engine starting (interval %.1fh)", self._config.interval_hours)
        report = self.run_cycle(trigger="start")

        with self._lifecycle:
            # stop() may have been called while the first cycle ran.
            if self._running and self._ticker is None:
                self._ticker = Ticker(
                    interval_fn=lambda: self._config.interval_seconds,
                    callback=lambda: self.run_cycle(trigger="timer"),
                )
                self._ticker.start()
        return report

    def stop(self) -> None:
        """Disarm the ticker. Does not interrupt a running cycle."""
        with self._lifecycle:
            ticker, self._ticker = self._ticker, None
            was_running, self._running = self._running, False

        if ticker is not None:
            ticker.stop()
        if was_running:
            logger.info("Engine stopped")

    def status(self) -> dict[str, Any]:
        next_run = None
        ticker = self._ticker
        if self._running and ticker is not None:
            remaining = ticker.remaining()
            if remaining is not None:
                next_run = (self._clock() + timedelta(seconds=remaining)).isoformat()

        return {
            "isRunning": self._running,
            "config": self._config.to_dict(),
            "nextRun": next_run,
            "lastCycle": self._last_report.to_dict() if self._last_report else None,
            "cycleInProgress": self._cycle_lock.locked(),
            "droppedWrites": self._sink.dropped_writes,
        }

    def update_config(self, partial: dict[str, Any]) -> MaintenanceCycleConfig:
        """Replace the config snapshot. Takes effect from the next cycle/arm.

        Raises:
            pydantic.ValidationError: On unknown keys or invalid values.
        """
        self._config = self._config.merged(partial)
        logger.info("Engine configuration updated: %s", sorted(partial))
        self._sink.record(
            "engine_config_updated",
            resource="engine",
            details={"changes": partial, "config": self._config.to_dict()},
        )
        return self._config

    def trigger_now(self, stages: Collection[str] | None = None) -> CycleReport:
        """Run one cycle out of band.

        Args:
            stages: Names of the stages to run, e.g. ``["content_generation"]``
                or ``["security_loop"]``. Stages not named are reported as
                skipped. Every enabled stage runs when omitted.

        Raises:
            CycleInProgress: If another cycle is running.
            ValueError: On an empty selection or an unknown stage name.
        """
        only = self._select_stages(stages)
        return self.run_cycle(trigger="manual", strict=True, only=only)

    def stage_names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    def _select_stages(self, stages: Collection[str] | None) -> frozenset[str] | None:
        if stages is None:
            return None
        selected = frozenset(stages)
        if not selected:
            raise ValueError("No stages selected")
        unknown = selected.difference(self.stage_names())
        if unknown:
            raise ValueError(f"Unknown stage(s): {', '.join(sorted(unknown))}")
        return selected

    def scan(self) -> list[BugScanResult]:
        """A fresh bug scan without remediation."""
        return self._scanner.scan(now=self._clock())

    # ── Cycle ───────────────────────────────────────────────────

    def run_cycle(
        self, trigger: str = "timer", strict: bool = False, only: frozenset[str] | None = None,
    ) -> CycleReport:
        """Run the stage pipeline once under the cycle lock.

        ``only`` restricts the run to the named stages.
        """
        cycle_id = uuid.uuid4().hex[:12]

        if not self._cycle_lock.acquire(blocking=False):
            if strict:
                raise CycleInProgress("An enhancement cycle is already running")
            logger.warning("Cycle %s (%s) skipped — another cycle is in progress", cycle_id, trigger)
            now = self._clock().isoformat()
            return CycleReport(
                cycle_id=cycle_id, trigger=trigger,
                started_at=now, ended_at=now, skipped_in_progress=True,
            )

        try:
            report = self._execute(cycle_id, trigger, only)
        finally:
            self._cycle_lock.release()

        self._last_report = report
        return report

    def _execute(self, cycle_id: str, trigger: str, only: frozenset[str] | None = None) -> CycleReport:
        config = self._config
        now = self._clock()
        report = CycleReport(cycle_id=cycle_id, trigger=trigger, started_at=now.isoformat())
        t0 = time.monotonic()
        logger.info("Enhancement cycle %s starting (%s)", cycle_id, trigger)

        try:
            ctx = StageContext(
                config=config,
                collaborators=self._collab,
                sink=self._sink,
                scanner=self._scanner,
                fixer=self._fixer,
                reports_dir=self._reports_dir,
                timeout=self._stage_timeout,
                now=now,
                engine_status=self._report_status,
            )
            for stage in self._stages:
                if only is not None and stage.name not in only:
                    report.stages.append(StageResult.skip(stage.name, "not selected"))
                    continue
                report.stages.append(self._run_stage(stage, ctx))
        except Exception as e:
            report.fatal_error = str(e) or type(e).__name__
            logger.error("Enhancement cycle %s failed: %s", cycle_id, report.fatal_error)
            self._sink.record(
                "enhancement_cycle_failed",
                details={"cycle_id": cycle_id, "error": report.fatal_error},
                severity=AuditSeverity.CRITICAL,
            )
        else:
            self._sink.record(
                "enhancement_cycle_completed",
                details={
                    "cycle_id": cycle_id,
                    "trigger": trigger,
                    "stages": sorted(only) if only is not None else "all",
                    "config": config.to_dict(),
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                },
            )

        report.duration_ms = int((time.monotonic() - t0) * 1000)
        report.ended_at = self._clock().isoformat()
        logger.info(
            "Enhancement cycle %s %s in %dms (%d ok, %d failed)",
            cycle_id, report.status, report.duration_ms, report.succeeded, report.failed,
        )
        return report

    def _run_stage(self, stage: Stage, ctx: StageContext) -> StageResult:
        if not stage.enabled(ctx.config):
            logger.debug("Stage %s disabled", stage.name)
            return StageResult.skip(stage.name)

        t0 = time.monotonic()
        try:
            details = stage.run(ctx)
        except Exception as e:
            if stage.fatal:
                raise
            duration_ms = int((time.monotonic() - t0) * 1000)
            error = str(e) or type(e).__name__
            logger.exception("Stage %s failed", stage.name)
            self._sink.record(
                "stage_failed",
                details={"stage": stage.name, "error": error},
                severity=stage.failure_severity,
            )
            return StageResult.failure(stage.name, error, duration_ms=duration_ms)

        return StageResult.success(
            stage.name, details, duration_ms=int((time.monotonic() - t0) * 1000),
        )

    def _report_status(self) -> dict[str, Any]:
        status = self.status()
        status.pop("lastCycle", None)
        return status
