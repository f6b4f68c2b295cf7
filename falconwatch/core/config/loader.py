"""
falconwatch.yml → EngineSettings.

The YAML is validated by the pydantic models; the ``cycle`` block becomes
the engine's first MaintenanceCycleConfig snapshot. Running without a
config file is fine since every field has a default.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from falconwatch.core.models.cycle import MaintenanceCycleConfig

logger = logging.getLogger(__name__)

# Default config filename
ENGINE_CONFIG_FILE = "falconwatch.yml"

DEFAULT_STATE_DIR = ".falconwatch"


class ConfigError(Exception):
    """Raised when engine configuration is invalid."""


class EngineSettings(BaseModel):
    """Process-level settings. The ``cycle`` block is the initial snapshot."""

    model_config = ConfigDict(extra="forbid")

    state_dir: Path = Path(DEFAULT_STATE_DIR)
    reports_dir: Path | None = None
    stage_timeout_seconds: float = Field(default=30.0, gt=0)
    github_owner: str = ""
    content_command: str = ""
    cycle: MaintenanceCycleConfig = Field(default_factory=MaintenanceCycleConfig)

    def resolved(self, base_dir: Path) -> EngineSettings:
        """Return a copy with relative paths anchored at ``base_dir``."""
        state_dir = self.state_dir if self.state_dir.is_absolute() else base_dir / self.state_dir
        reports_dir = self.reports_dir or state_dir / "reports"
        if not reports_dir.is_absolute():
            reports_dir = base_dir / reports_dir
        return self.model_copy(update={"state_dir": state_dir, "reports_dir": reports_dir})


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Nearest falconwatch.yml at or above ``start_dir`` (default: cwd)."""
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / ENGINE_CONFIG_FILE
        if candidate.is_file():
            return candidate
    return None


def _read_mapping(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    # An empty file is a valid all-defaults config.
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must hold a YAML mapping, not {type(data).__name__}")
    return data


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate engine settings.

    Args:
        path: Explicit falconwatch.yml. When omitted the nearest one above
            the cwd is used, and with none found every default applies.

    Returns:
        EngineSettings whose paths are absolute, anchored at the file's
        directory (or the cwd when running on defaults).

    Raises:
        ConfigError: An explicit path that does not exist, or any file
            that fails to parse or validate.
    """
    if path is not None and not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    source = path or find_config_file()
    if source is None:
        logger.debug("No %s above %s, running on defaults", ENGINE_CONFIG_FILE, Path.cwd())
        return EngineSettings().resolved(Path.cwd())

    logger.debug("Reading engine config %s", source)
    data = _read_mapping(source)
    try:
        settings = EngineSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid engine configuration in {source}: {e}") from e

    cycle = settings.cycle
    logger.info(
        "Engine config %s: every %.1fh, %d featured repos",
        source, cycle.interval_hours, len(cycle.featured_repos),
    )
    return settings.resolved(source.parent.resolve())
