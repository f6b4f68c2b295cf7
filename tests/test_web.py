"""
Tests for the admin web API.
"""

import threading
from datetime import UTC, datetime

import pytest

from falconwatch.core.engine.orchestrator import EnhancementEngine
from falconwatch.core.models import AuditSeverity
from falconwatch.core.services.tasks import Stage
from falconwatch.ui.web.server import API_PREFIX, create_app


@pytest.fixture
def app(engine):
    app = create_app(engine)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestLifecycleRoutes:
    def test_status(self, client):
        resp = client.get(f"{API_PREFIX}/status")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["isRunning"] is False
        assert data["nextRun"] is None
        assert data["lastCycle"] is None

    def test_start_and_stop(self, client):
        resp = client.post(f"{API_PREFIX}/start")
        data = resp.get_json()
        assert data["started"] is True
        assert data["cycle"]["status"] == "ok"
        assert data["status"]["isRunning"] is True
        assert data["status"]["nextRun"] is not None

        assert client.post(f"{API_PREFIX}/start").get_json()["started"] is False

        data = client.post(f"{API_PREFIX}/stop").get_json()
        assert data["isRunning"] is False
        assert data["nextRun"] is None

    def test_trigger(self, client, store, audited):
        resp = client.post(f"{API_PREFIX}/trigger")
        assert resp.status_code == 200
        assert resp.get_json()["trigger"] == "manual"
        assert len(audited(store, "enhancement_cycle_completed")) == 1

    def test_trigger_selected_stage(self, client):
        resp = client.post(f"{API_PREFIX}/trigger", json={"stages": ["security_loop"]})

        assert resp.status_code == 200
        statuses = {s["name"]: s["status"] for s in resp.get_json()["stages"]}
        assert statuses.pop("security_loop") == "ok"
        assert set(statuses.values()) == {"skipped"}

    @pytest.mark.parametrize(
        "body",
        [{"stages": "security_loop"}, {"stages": ["nope"]}, {"stages": []}, ["security_loop"]],
    )
    def test_trigger_bad_selection(self, client, body):
        resp = client.post(f"{API_PREFIX}/trigger", json=body)
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_trigger_conflict(self, collaborators, tmp_path):
        started, release = threading.Event(), threading.Event()

        def block(ctx):
            started.set()
            release.wait(5)
            return {}

        engine = EnhancementEngine(collaborators, reports_dir=tmp_path, stages=(Stage("block", block),))
        client = create_app(engine).test_client()
        t = threading.Thread(target=engine.trigger_now)
        t.start()
        try:
            assert started.wait(5)
            resp = client.post(f"{API_PREFIX}/trigger")
            assert resp.status_code == 409
            assert "already running" in resp.get_json()["error"]
        finally:
            release.set()
            t.join(5)


class TestConfigRoute:
    def test_update(self, client, engine):
        resp = client.post(f"{API_PREFIX}/config", json={"interval_hours": 12})
        assert resp.status_code == 200
        assert resp.get_json()["config"]["interval_hours"] == 12
        assert engine.config.interval_hours == 12

    @pytest.mark.parametrize(
        "body",
        [{"interval_hours": 0}, {"interval_hours": "soon"}, {"unknown": True}, ["interval_hours"]],
    )
    def test_rejected(self, client, engine, body):
        resp = client.post(f"{API_PREFIX}/config", json=body)
        assert resp.status_code == 400
        assert "error" in resp.get_json()
        assert engine.config.interval_hours == 6

    def test_not_json(self, client):
        resp = client.post(f"{API_PREFIX}/config", data="interval=1", content_type="text/plain")
        assert resp.status_code == 400


class TestTrailRoutes:
    def test_audit_filters(self, client, store, make_entry):
        store.append_audit_log(make_entry("login", user_id="a"))
        store.append_audit_log(make_entry("boom", user_id="b", severity=AuditSeverity.CRITICAL))

        entries = client.get(f"{API_PREFIX}/audit").get_json()["entries"]
        assert len(entries) == 2

        entries = client.get(f"{API_PREFIX}/audit?severity=critical").get_json()["entries"]
        assert [e["action"] for e in entries] == ["boom"]

        entries = client.get(f"{API_PREFIX}/audit?user=a&limit=1").get_json()["entries"]
        assert [e["user_id"] for e in entries] == ["a"]

    @pytest.mark.parametrize("query", ["limit=abc", "limit=0", "severity=fatal"])
    def test_audit_bad_args(self, client, query):
        assert client.get(f"{API_PREFIX}/audit?{query}").status_code == 400

    def test_health(self, client, engine):
        engine.trigger_now()
        metrics = client.get(f"{API_PREFIX}/health?type=infrastructure&hours=1").get_json()["metrics"]
        assert metrics
        assert {m["metric_type"] for m in metrics} == {"infrastructure"}

    @pytest.mark.parametrize("hours", ["abc", "0", "-2"])
    def test_health_bad_hours(self, client, hours):
        assert client.get(f"{API_PREFIX}/health?hours={hours}").status_code == 400

    def test_findings_all_routes_registered(self, client):
        data = client.get(f"{API_PREFIX}/findings").get_json()
        assert data == {"findings": [], "auto_fixable": 0}

    def test_findings_report_memory(self, client, collaborators):
        collaborators.memory_probe = lambda: 550 * 1024 * 1024
        data = client.get(f"{API_PREFIX}/findings").get_json()
        assert data["auto_fixable"] == 1
        assert data["findings"][0]["severity"] == "high"


class TestUserRoutes:
    @pytest.fixture
    def seeded(self, store, make_entry):
        now = datetime.now(UTC)
        for i in range(15):
            store.append_audit_log(make_entry("failed_login", user_id="mallory", minutes_ago=120 + i, now=now))
        for i in range(2):
            store.append_audit_log(make_entry("admin_access_denied", user_id="mallory", minutes_ago=200 + i, now=now))
        store.append_audit_log(make_entry("login", user_id="alice", now=now))

    def test_user_risk(self, client, store, seeded, audited):
        resp = client.get(f"{API_PREFIX}/users/mallory/risk")
        data = resp.get_json()

        assert resp.status_code == 200
        assert data["user_id"] == "mallory"
        # failed logins and denied admin access alone reach 75
        assert data["risk_score"] >= 75
        assert data["risk_label"] == "CRITICAL"
        assert "15 failed login attempts - possible brute force" in data["suspicious_activities"]

        [viewed] = audited(store, "admin_user_viewed")
        assert viewed.resource == "user"
        assert viewed.details == {"viewed_user_id": "mallory", "risk_label": "CRITICAL"}

    def test_unknown_user_is_low_risk(self, client):
        data = client.get(f"{API_PREFIX}/users/nobody/risk").get_json()
        assert data["risk_score"] == 0
        assert data["total_actions"] == 0
        assert data["last_login"] is None

    def test_users_table(self, client, seeded):
        users = client.get(f"{API_PREFIX}/users").get_json()["users"]
        assert [u["user_id"] for u in users] == ["mallory", "alice"]
