"""
Tests for the enhancement engine lifecycle, the cycle pipeline and the ticker.
"""

import shlex
import sys
import threading
import time

import pytest
from pydantic import ValidationError

from falconwatch.adapters.content import CommandContentGenerator
from falconwatch.adapters.mock import MockContentGenerator
from falconwatch.core.engine.orchestrator import CycleInProgress, EnhancementEngine
from falconwatch.core.engine.scheduler import Ticker
from falconwatch.core.models import AuditSeverity, MaintenanceCycleConfig
from falconwatch.core.persistence.reports import list_reports
from falconwatch.core.services.tasks import Stage


def wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def make_engine(collaborators, tmp_path):
    """Build engines with custom stages/config; all are stopped afterwards."""
    engines = []

    def _make(stages=None, config=None):
        kwargs = {"stages": stages} if stages is not None else {}
        eng = EnhancementEngine(
            collaborators, config, reports_dir=tmp_path / "reports", stage_timeout=5.0, **kwargs,
        )
        engines.append(eng)
        return eng

    yield _make
    for eng in engines:
        eng.stop()


@pytest.fixture
def blocking_stage():
    """A stage that blocks until released, for overlapping-cycle tests."""
    started = threading.Event()
    release = threading.Event()

    def run(ctx):
        started.set()
        release.wait(5)
        return {}

    stage = Stage("blocking", run)
    yield stage, started, release
    release.set()


class TestLifecycle:
    """start / stop / status."""

    def test_start_runs_a_full_cycle(self, engine, store, audited, tmp_path):
        report = engine.start()

        assert report is not None
        assert report.trigger == "start"
        assert report.status == "ok"
        assert len(report.stages) == 7
        assert engine.is_running
        assert engine.ticker is not None and engine.ticker.armed
        assert len(audited(store, "enhancement_cycle_completed")) == 1
        assert len(list_reports(tmp_path / "reports")) == 1

    def test_start_twice_runs_one_cycle(self, engine, store, audited):
        first = engine.start()
        ticker = engine.ticker

        assert engine.start() is None
        assert first is not None
        assert engine.ticker is ticker
        assert len(audited(store, "enhancement_cycle_completed")) == 1

    def test_status_while_running(self, engine):
        engine.start()
        status = engine.status()

        assert status["isRunning"] is True
        assert status["nextRun"] is not None
        assert status["lastCycle"]["status"] == "ok"
        assert status["cycleInProgress"] is False
        assert status["droppedWrites"] == 0
        assert status["config"]["interval_hours"] == 6

    def test_stop_then_status(self, engine):
        engine.start()
        ticker = engine.ticker
        engine.stop()

        status = engine.status()
        assert status["isRunning"] is False
        assert status["nextRun"] is None
        assert engine.ticker is None
        assert ticker.remaining() is None

    def test_stop_when_stopped_is_harmless(self, engine):
        engine.stop()
        engine.stop()
        assert not engine.is_running

    def test_restart_after_stop(self, engine, store, audited):
        engine.start()
        engine.stop()
        assert engine.start() is not None
        assert engine.is_running
        assert len(audited(store, "enhancement_cycle_completed")) == 2

    def test_stop_during_first_cycle_leaves_no_ticker(self, make_engine, blocking_stage):
        stage, started, release = blocking_stage
        eng = make_engine(stages=(stage,))

        t = threading.Thread(target=eng.start)
        t.start()
        assert started.wait(5)
        eng.stop()
        release.set()
        t.join(5)

        assert not eng.is_running
        assert eng.ticker is None
        assert eng.last_report.status == "ok"

    def test_timer_fires_repeated_cycles(self, make_engine, store, audited):
        eng = make_engine(
            stages=(Stage("noop", lambda ctx: {}),),
            config=MaintenanceCycleConfig(interval_hours=0.05 / 3600),
        )
        eng.start()

        assert wait_until(lambda: len(audited(store, "enhancement_cycle_completed")) >= 3)
        assert eng.last_report.trigger in ("start", "timer")


class TestConfigUpdates:
    def test_update_merges_and_audits(self, engine, store, audited):
        config = engine.update_config({"interval_hours": 2, "enable_security_audit": False})

        assert config.interval_hours == 2
        assert engine.config.enable_security_audit is False
        assert engine.config.enable_auto_generation is True
        [entry] = audited(store, "engine_config_updated")
        assert entry.resource == "engine"
        assert entry.details["changes"] == {"interval_hours": 2, "enable_security_audit": False}

    def test_invalid_update_rejected(self, engine, store, audited):
        with pytest.raises(ValidationError):
            engine.update_config({"interval_hours": -1})
        with pytest.raises(ValidationError):
            engine.update_config({"no_such_switch": True})
        assert engine.config.interval_hours == 6
        assert audited(store, "engine_config_updated") == []

    def test_update_while_running_keeps_current_timer(self, engine, store, audited):
        engine.start()
        ticker = engine.ticker
        # armed with the 6h interval before the change
        assert wait_until(lambda: ticker._deadline is not None)

        engine.update_config({"interval_hours": 1})

        assert engine.ticker is ticker
        assert ticker.remaining() > 3600
        assert len(audited(store, "enhancement_cycle_completed")) == 1

    def test_update_while_stopped_does_not_start(self, engine):
        engine.update_config({"interval_hours": 3})
        assert not engine.is_running
        assert engine.status()["nextRun"] is None

    def test_next_cycle_reads_new_snapshot(self, engine):
        engine.update_config({"enable_community_moderation": False})
        report = engine.trigger_now()
        assert report.stage("community_moderation").status == "skipped"

    def test_featured_repos_update_reaches_content_generator(self, engine, collaborators):
        engine.update_config({"featured_repos": ["only-this-repo"]})
        engine.trigger_now()
        assert collaborators.content.generated_for == [["only-this-repo"]]

    def test_featured_repos_update_reaches_content_command(self, engine, collaborators, tmp_path):
        out = tmp_path / "repos.txt"
        code = f"import os; open({str(out)!r}, 'w').write(os.environ['FALCONWATCH_FEATURED_REPOS'])"
        collaborators.content = CommandContentGenerator(f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}")

        engine.update_config({"featured_repos": ["only-this-repo", "second"]})
        report = engine.trigger_now()

        assert report.stage("content_generation").status == "ok"
        assert out.read_text() == "only-this-repo,second"


class TestCycle:
    """Stage isolation, fatal errors, mutual exclusion."""

    def test_trigger_selected_stages(self, engine, collaborators, store, audited):
        report = engine.trigger_now(stages=["content_generation"])

        assert report.status == "ok"
        assert report.stage("content_generation").status == "ok"
        assert [s.name for s in report.stages if s.status == "skipped"] == [
            name for name in engine.stage_names() if name != "content_generation"
        ]
        assert report.stage("self_audit").details == {"reason": "not selected"}
        assert collaborators.content.generated_for == [list(engine.config.featured_repos)]
        [entry] = audited(store, "enhancement_cycle_completed")
        assert entry.details["stages"] == ["content_generation"]

    @pytest.mark.parametrize("stages", [[], ["content_generation", "nope"]])
    def test_trigger_rejects_bad_selection(self, engine, store, audited, stages):
        with pytest.raises(ValueError):
            engine.trigger_now(stages=stages)
        assert engine.last_report is None
        assert audited(store, "enhancement_cycle_completed") == []

    def test_trigger_now_independent_of_running(self, engine, store, audited):
        report = engine.trigger_now()
        assert report.trigger == "manual"
        assert report.status == "ok"
        assert not engine.is_running
        assert engine.last_report is report

    def test_failing_stage_is_isolated(self, engine, collaborators, store, audited):
        collaborators.content = MockContentGenerator(fail=True)

        report = engine.trigger_now()

        assert report.status == "partial"
        assert report.stage("content_generation").status == "failed"
        assert "generator failure" in report.stage("content_generation").error
        assert report.stage("infrastructure").status == "ok"
        [entry] = audited(store, "stage_failed")
        assert entry.details["stage"] == "content_generation"
        assert entry.severity == AuditSeverity.WARNING
        assert len(audited(store, "enhancement_cycle_completed")) == 1

    def test_disabled_stages_skipped(self, make_engine):
        eng = make_engine(config=MaintenanceCycleConfig(
            enable_auto_generation=False, enable_performance_monitoring=False,
        ))
        report = eng.trigger_now()
        skipped = [s.name for s in report.stages if s.status == "skipped"]
        assert skipped == ["repository_sync", "content_generation", "performance_tuning"]
        assert report.status == "ok"

    def test_fatal_stage_aborts_cycle(self, make_engine, store, audited):
        ran = []

        def boom(ctx):
            raise RuntimeError("kaboom")

        eng = make_engine(stages=(
            Stage("boom", boom, fatal=True),
            Stage("after", lambda ctx: ran.append(1) or {}),
        ))

        report = eng.trigger_now()

        assert report.status == "failed"
        assert report.fatal_error == "kaboom"
        assert ran == []
        [entry] = audited(store, "enhancement_cycle_failed")
        assert entry.severity == AuditSeverity.CRITICAL
        assert audited(store, "enhancement_cycle_completed") == []

    def test_critical_stage_failure_severity(self, make_engine, store, audited):
        def boom(ctx):
            raise OSError("disk gone")

        eng = make_engine(stages=(Stage("infra", boom, failure_severity=AuditSeverity.CRITICAL),))
        report = eng.trigger_now()

        assert report.status == "partial"
        assert audited(store, "stage_failed")[0].severity == AuditSeverity.CRITICAL

    def test_manual_trigger_during_cycle_raises(self, make_engine, blocking_stage):
        stage, started, release = blocking_stage
        eng = make_engine(stages=(stage,))
        t = threading.Thread(target=eng.trigger_now)
        t.start()
        assert started.wait(5)

        assert eng.status()["cycleInProgress"] is True
        with pytest.raises(CycleInProgress):
            eng.trigger_now()

        release.set()
        t.join(5)

    def test_timer_during_cycle_is_skipped(self, make_engine, blocking_stage, store, audited):
        stage, started, release = blocking_stage
        eng = make_engine(stages=(stage,))
        t = threading.Thread(target=eng.trigger_now)
        t.start()
        assert started.wait(5)

        skipped = eng.run_cycle(trigger="timer")

        release.set()
        t.join(5)
        assert skipped.status == "skipped"
        assert skipped.stages == []
        assert len(audited(store, "enhancement_cycle_completed")) == 1
        assert eng.last_report.trigger == "manual"

    def test_store_outage_does_not_crash(self, engine, store):
        store.fail_writes = True

        report = engine.trigger_now()

        assert report.status in ("ok", "partial")
        assert engine.sink.dropped_writes > 0
        assert engine.status()["droppedWrites"] == engine.sink.dropped_writes

    def test_scan_does_not_fix(self, engine, collaborators):
        collaborators.memory_probe = lambda: 550 * 1024 * 1024
        findings = engine.scan()
        assert len(findings) == 1
        collaborators.gc_collect.assert_not_called()

    def test_route_probe_attached_later(self, engine):
        engine.attach_route_probe(lambda: ["/api/engine/users"])
        assert [f.location for f in engine.scan()] == ["/api/engine/users"]


class TestTicker:
    """Repeating timer semantics."""

    def test_fires_until_stopped(self):
        calls = []
        ticker = Ticker(lambda: 0.02, lambda: calls.append(1))
        ticker.start()
        assert wait_until(lambda: ticker.ticks >= 3)
        ticker.stop(timeout=1)

        count = len(calls)
        time.sleep(0.1)
        assert len(calls) == count
        assert not ticker.armed
        assert ticker.remaining() is None

    def test_start_twice_raises(self):
        ticker = Ticker(lambda: 60, lambda: None)
        ticker.start()
        try:
            with pytest.raises(RuntimeError):
                ticker.start()
        finally:
            ticker.stop(timeout=1)

    def test_stop_wakes_immediately(self):
        ticker = Ticker(lambda: 3600, lambda: None)
        ticker.start()
        started = time.monotonic()
        ticker.stop(timeout=2)
        assert time.monotonic() - started < 1
        assert ticker.ticks == 0

    def test_callback_error_does_not_kill_loop(self):
        def boom():
            raise RuntimeError("tick failed")

        ticker = Ticker(lambda: 0.02, boom)
        ticker.start()
        try:
            assert wait_until(lambda: ticker.ticks >= 2)
            assert ticker.armed
        finally:
            ticker.stop(timeout=1)

    def test_interval_reread_on_each_arm(self):
        ticker = Ticker(lambda: 3600 if ticker.ticks >= 2 else 0.02, lambda: None)
        ticker.start()
        try:
            assert wait_until(lambda: ticker.ticks == 2 and (ticker.remaining() or 0) > 60)
        finally:
            ticker.stop(timeout=1)

    def test_remaining_before_start(self):
        assert Ticker(lambda: 10, lambda: None).remaining() is None
