"""
Falconwatch — CLI entrypoint.

Usage:
    falconwatch --help
    falconwatch cycle
    falconwatch run
    falconwatch status --json
    falconwatch web --port 8000
    falconwatch monitor scan
"""

from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import click

from falconwatch import __version__
from falconwatch.core.models.cycle import CycleReport
from falconwatch.core.observability.logging_config import resolve_level, setup_logging
from falconwatch.core.services.tasks import STAGES
from falconwatch.ui.cli.context import engine_from_context, settings_from_context

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red", "skipped": "yellow"}


@click.group()
@click.version_option(version=__version__, prog_name="falconwatch")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to falconwatch.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Use in-memory doubles for GitHub, content and rate limiting.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """Falconwatch — continuous enhancement and security monitoring."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["mock"] = mock

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        quiet_third_party=not debug,
    )


def _print_report(report: CycleReport) -> None:
    click.secho(f"\n🔱 Cycle {report.cycle_id} ", fg="cyan", bold=True, nl=False)
    click.secho(report.status, fg=_STATUS_COLORS.get(report.status, "white"), bold=True)
    for stage in report.stages:
        marker = {"ok": "✓", "skipped": "–", "failed": "✗"}[stage.status]
        line = f"   {marker} {stage.name:<22} {stage.duration_ms:>6}ms"
        if stage.error:
            line += f"  {stage.error}"
        click.secho(line, fg=_STATUS_COLORS.get(stage.status, "white"))
    if report.fatal_error:
        click.secho(f"   ✗ {report.fatal_error}", fg="red")
    click.echo()


@cli.command()
@click.option(
    "--stage", "stages", multiple=True,
    type=click.Choice([stage.name for stage in STAGES]),
    help="Run only this stage (repeatable). Other stages are reported as skipped.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cycle(ctx: click.Context, stages: tuple[str, ...], as_json: bool) -> None:
    """Run one enhancement cycle now."""
    report = engine_from_context(ctx).trigger_now(stages or None)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)

    if report.status == "failed":
        sys.exit(1)


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the scheduler in the foreground until interrupted."""
    engine = engine_from_context(ctx)
    report = engine.start()
    if report is not None and not ctx.obj.get("quiet"):
        _print_report(report)

    click.secho(
        f"🔱 Scheduler running every {engine.config.interval_hours:g}h — Ctrl+C to stop",
        fg="cyan",
    )
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        click.echo()
    finally:
        engine.stop()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show configuration and the state directory summary."""
    from falconwatch.core.persistence.reports import list_reports
    from falconwatch.core.persistence.store import NdjsonStore

    settings = settings_from_context(ctx)
    store = NdjsonStore(settings.state_dir)
    reports = list_reports(settings.reports_dir) if settings.reports_dir else []
    last_cycle = store.query_audit_logs(1, action="enhancement_cycle_completed")
    last_failure = store.query_audit_logs(1, action="enhancement_cycle_failed")

    result = {
        "state_dir": str(settings.state_dir),
        "config": settings.cycle.to_dict(),
        "reports": len(reports),
        "latest_report": str(reports[-1]) if reports else None,
        "last_completed": last_cycle[0].created_at.isoformat() if last_cycle else None,
        "last_failed": last_failure[0].created_at.isoformat() if last_failure else None,
    }

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho("\n🔱 Falconwatch", fg="cyan", bold=True)
    click.echo(f"   State:    {result['state_dir']}")
    click.echo(f"   Interval: {settings.cycle.interval_hours:g}h")
    click.echo(f"   Repos:    {', '.join(settings.cycle.featured_repos) or '—'}")
    for key in ("enable_auto_generation", "enable_security_audit",
                "enable_performance_monitoring", "enable_community_moderation"):
        enabled = getattr(settings.cycle, key)
        click.secho(f"     {'✓' if enabled else '–'} {key}", fg="green" if enabled else "white")
    click.echo(f"   Last completed cycle: {result['last_completed'] or 'never'}")
    if result["last_failed"]:
        click.secho(f"   Last failed cycle:    {result['last_failed']}", fg="red")
    click.echo(f"   Reports: {result['reports']}")
    click.echo()


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--no-start", is_flag=True, help="Serve the API without starting the scheduler.")
@click.pass_context
def web(ctx: click.Context, host: str, port: int, no_start: bool) -> None:
    """Serve the admin API with the scheduler running."""
    from falconwatch.ui.web.server import create_app, run_server

    engine = engine_from_context(ctx)
    app = create_app(engine)

    if not no_start:
        # The first cycle runs on start(); serve requests meanwhile.
        threading.Thread(target=engine.start, daemon=True, name="falconwatch-start").start()

    click.secho(f"🔱 Admin API on http://{host}:{port}/api/engine/status", fg="cyan")
    try:
        run_server(app, host=host, port=port, debug=ctx.obj.get("debug", False))
    finally:
        engine.stop()


# ── Register sub-groups ─────────────────────────────────────────

from falconwatch.ui.cli.monitor import monitor  # noqa: E402

cli.add_command(monitor)


if __name__ == "__main__":
    cli()
