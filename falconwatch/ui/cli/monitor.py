"""
CLI commands for security monitoring — scans, risk scores, the trail.

Thin wrappers over the scanner, the risk services and the store.

Usage::

    falconwatch monitor scan
    falconwatch monitor score <user-id> --json
    falconwatch monitor users
    falconwatch monitor audit --severity critical --limit 20
    falconwatch monitor health --type infrastructure --hours 6
"""

from __future__ import annotations

import json

import click

from falconwatch.core.models.audit import AuditSeverity
from falconwatch.core.services import risk_scoring, user_activity
from falconwatch.ui.cli.context import engine_from_context, store_from_context

_SEVERITY_COLORS = {
    "critical": "red",
    "high": "red",
    "medium": "yellow",
    "warning": "yellow",
    "low": "white",
    "info": "white",
    "healthy": "green",
}

_RISK_COLORS = {"CRITICAL": "red", "HIGH": "red", "MEDIUM": "yellow", "LOW": "green"}


@click.group()
def monitor() -> None:
    """Monitor — bug scans, user risk scores, audit and health trail."""


# ── Scan ────────────────────────────────────────────────────────


@monitor.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def scan(ctx: click.Context, as_json: bool) -> None:
    """Run a bug/health scan (no auto-fix)."""
    findings = engine_from_context(ctx).scan()

    if as_json:
        click.echo(json.dumps([f.to_dict() for f in findings], indent=2))
        return

    if not findings:
        click.secho("✅ No findings", fg="green", bold=True)
        return

    click.secho(f"\n🔍 {len(findings)} finding(s)", fg="cyan", bold=True)
    for f in findings:
        fixable = " (auto-fixable)" if f.auto_fixable else ""
        click.secho(f"   [{f.severity}] ", fg=_SEVERITY_COLORS.get(str(f.severity), "white"), nl=False)
        click.echo(f"{f.category}: {f.description}{fixable}")
        click.echo(f"      at {f.location} → {f.fix_recommendation}")
    click.echo()


# ── Users ───────────────────────────────────────────────────────


@monitor.command()
@click.argument("user_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def score(ctx: click.Context, user_id: str, as_json: bool) -> None:
    """Risk score and flags for one user."""
    store = store_from_context(ctx)
    logs = store.query_audit_logs(user_activity.USER_WINDOW, user_id=user_id)
    snapshot = user_activity.build_snapshot(user_id, logs)
    contributions = risk_scoring.breakdown(logs)

    if as_json:
        click.echo(json.dumps({**snapshot.to_dict(), "breakdown": contributions}, indent=2))
        return

    click.secho(f"\n👤 {user_id}", fg="cyan", bold=True)
    click.echo("   Risk: ", nl=False)
    click.secho(
        f"{snapshot.risk_score}/100 {snapshot.risk_label}",
        fg=_RISK_COLORS[snapshot.risk_label], bold=True,
    )
    click.echo(f"   Actions: {snapshot.total_actions}   Sessions: {snapshot.total_sessions}")
    for signal, points in contributions.items():
        if points:
            click.echo(f"     • {signal}: +{points}")
    for flag in snapshot.suspicious_activities:
        click.secho(f"   ⚠️  {flag}", fg="yellow")
    click.echo()


@monitor.command()
@click.option("--limit", default=500, show_default=True, help="Audit entries to scan for users.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def users(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Risk table of recently active users, riskiest first."""
    snapshots = user_activity.snapshot_users(store_from_context(ctx), limit)

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in snapshots], indent=2))
        return

    if not snapshots:
        click.echo("No users in the audit trail.")
        return

    for s in snapshots:
        click.secho(f"   {s.risk_score:>3} {s.risk_label:<8}", fg=_RISK_COLORS[s.risk_label], nl=False)
        click.echo(f" {s.user_id}  ({s.total_actions} actions, {len(s.suspicious_activities)} flags)")


# ── Trail ───────────────────────────────────────────────────────


@monitor.command()
@click.option("--limit", default=50, show_default=True)
@click.option("--severity", type=click.Choice([s.value for s in AuditSeverity]), default=None)
@click.option("--action", default=None, help="Exact action tag.")
@click.option("--user", "user_id", default=None, help="User id.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def audit(
    ctx: click.Context,
    limit: int,
    severity: str | None,
    action: str | None,
    user_id: str | None,
    as_json: bool,
) -> None:
    """Recent audit entries, newest first."""
    entries = store_from_context(ctx).query_audit_logs(
        limit, severity=severity, action=action, user_id=user_id,
    )

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    for e in entries:
        click.echo(f"   {e.created_at:%Y-%m-%d %H:%M:%S} ", nl=False)
        click.secho(f"{e.severity:<8}", fg=_SEVERITY_COLORS.get(str(e.severity), "white"), nl=False)
        click.echo(f" {e.action}  [{e.resource}]" + (f" user={e.user_id}" if e.user_id else ""))


@monitor.command()
@click.option("--type", "metric_type", default=None, help="Metric type (e.g. infrastructure).")
@click.option("--hours", default=24.0, show_default=True)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def health(ctx: click.Context, metric_type: str | None, hours: float, as_json: bool) -> None:
    """Recent health metrics, newest first."""
    metrics = store_from_context(ctx).query_health_metrics(metric_type, hours)

    if as_json:
        click.echo(json.dumps([m.model_dump(mode="json") for m in metrics], indent=2))
        return

    for m in metrics:
        click.echo(f"   {m.checked_at:%Y-%m-%d %H:%M:%S} ", nl=False)
        click.secho(f"{m.status:<8}", fg=_SEVERITY_COLORS.get(str(m.status), "white"), nl=False)
        click.echo(f" {m.metric_type}/{m.metric_name}")
