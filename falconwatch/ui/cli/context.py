"""
Shared CLI plumbing — settings and engine from the click context.
"""

from __future__ import annotations

import sys

import click

from falconwatch.core.config.loader import ConfigError, EngineSettings, load_settings
from falconwatch.core.engine.bootstrap import build_engine
from falconwatch.core.engine.orchestrator import EnhancementEngine
from falconwatch.core.persistence.store import NdjsonStore


def settings_from_context(ctx: click.Context) -> EngineSettings:
    """Load settings once per invocation; exit 1 on a bad config file."""
    settings = ctx.obj.get("settings")
    if settings is not None:
        return settings
    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    ctx.obj["settings"] = settings
    return settings


def engine_from_context(ctx: click.Context) -> EnhancementEngine:
    return build_engine(settings_from_context(ctx), mock=ctx.obj.get("mock", False))


def store_from_context(ctx: click.Context) -> NdjsonStore:
    return NdjsonStore(settings_from_context(ctx).state_dir)
