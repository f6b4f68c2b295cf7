"""
Engine admin routes — control and inspect the enhancement engine.

Blueprint: engine_bp
Prefix: /api/engine

Thin HTTP wrappers over ``EnhancementEngine`` and the user-activity
service.

Endpoints:
    GET  /status                — isRunning, config, nextRun, lastCycle
    POST /config                — merge a partial cycle config
    POST /trigger               — run one cycle now (409 if one is running);
                                  body {"stages": [...]} runs only those stages
    POST /start                 — start the scheduler
    POST /stop                  — stop the scheduler
    GET  /health?type=&hours=   — recent health metrics
    GET  /audit?limit=&severity=&action=&user=
    GET  /findings              — fresh bug scan, no auto-fix
    GET  /users                 — risk table of recently active users
    GET  /users/<id>/risk       — one user's risk snapshot (audited)
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from falconwatch.core.engine.orchestrator import CycleInProgress, EnhancementEngine
from falconwatch.core.models.audit import AuditSeverity
from falconwatch.core.services import user_activity

engine_bp = Blueprint("engine", __name__)

MAX_LIMIT = 1000


def _engine() -> EnhancementEngine:
    return current_app.config["ENGINE"]


def _bad_request(message: str):  # type: ignore[no-untyped-def]
    return jsonify({"error": message}), 400


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    value = int(raw)
    if value < 1:
        raise ValueError(f"{name} must be positive")
    return min(value, MAX_LIMIT)


# ── Lifecycle ───────────────────────────────────────────────────


@engine_bp.route("/status")
def engine_status():  # type: ignore[no-untyped-def]
    return jsonify(_engine().status())


@engine_bp.route("/config", methods=["POST"])
def engine_config():  # type: ignore[no-untyped-def]
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _bad_request("Expected a JSON object")

    try:
        config = _engine().update_config(data)
    except ValidationError as e:
        return _bad_request(str(e))

    return jsonify({"config": config.to_dict()})


@engine_bp.route("/trigger", methods=["POST"])
def engine_trigger():  # type: ignore[no-untyped-def]
    stages = None
    if request.data:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return _bad_request("Expected a JSON object")
        stages = body.get("stages")
        if stages is not None and (
            not isinstance(stages, list) or not all(isinstance(s, str) for s in stages)
        ):
            return _bad_request("stages must be a list of stage names")
    try:
        report = _engine().trigger_now(stages)
    except CycleInProgress as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(report.to_dict())


@engine_bp.route("/start", methods=["POST"])
def engine_start():  # type: ignore[no-untyped-def]
    report = _engine().start()
    return jsonify({
        "started": report is not None,
        "cycle": report.to_dict() if report else None,
        "status": _engine().status(),
    })


@engine_bp.route("/stop", methods=["POST"])
def engine_stop():  # type: ignore[no-untyped-def]
    _engine().stop()
    return jsonify(_engine().status())


# ── Trail ───────────────────────────────────────────────────────


@engine_bp.route("/health")
def engine_health():  # type: ignore[no-untyped-def]
    metric_type = request.args.get("type") or None
    try:
        hours = float(request.args.get("hours", 24))
    except ValueError:
        return _bad_request("hours must be a number")
    if hours <= 0:
        return _bad_request("hours must be positive")

    metrics = _engine().sink.query_health_metrics(metric_type, hours)
    return jsonify({"metrics": [m.model_dump(mode="json") for m in metrics]})


@engine_bp.route("/audit")
def engine_audit():  # type: ignore[no-untyped-def]
    try:
        limit = _int_arg("limit", 100)
    except ValueError as e:
        return _bad_request(str(e))

    severity = request.args.get("severity") or None
    if severity is not None and severity not in {s.value for s in AuditSeverity}:
        return _bad_request(f"Unknown severity: {severity}")

    entries = _engine().sink.query_audit_logs(
        limit,
        severity=severity,
        action=request.args.get("action") or None,
        user_id=request.args.get("user") or None,
    )
    return jsonify({"entries": [e.model_dump(mode="json") for e in entries]})


@engine_bp.route("/findings")
def engine_findings():  # type: ignore[no-untyped-def]
    findings = _engine().scan()
    return jsonify({
        "findings": [f.to_dict() for f in findings],
        "auto_fixable": sum(1 for f in findings if f.auto_fixable),
    })


# ── Users ───────────────────────────────────────────────────────


@engine_bp.route("/users")
def engine_users():  # type: ignore[no-untyped-def]
    try:
        limit = _int_arg("limit", 500)
    except ValueError as e:
        return _bad_request(str(e))

    snapshots = user_activity.snapshot_users(_engine().sink.store, limit)
    return jsonify({"users": [s.to_dict() for s in snapshots]})


@engine_bp.route("/users/<user_id>/risk")
def engine_user_risk(user_id: str):  # type: ignore[no-untyped-def]
    engine = _engine()
    snapshot = user_activity.snapshot_user(engine.sink.store, user_id)
    engine.sink.record(
        "admin_user_viewed",
        resource="user",
        details={"viewed_user_id": user_id, "risk_label": snapshot.risk_label},
    )
    return jsonify(snapshot.to_dict())
