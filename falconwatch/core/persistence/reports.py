"""
Agent reports — point-in-time JSON snapshots written after each cycle.

Reports are written atomically to <reports_dir>/<prefix>-<epoch_ms>.json
and are never read back by the engine; they exist for operators.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def write_report(
    reports_dir: Path,
    data: dict[str, Any],
    prefix: str = "falcon-report",
    now: datetime | None = None,
) -> Path:
    """Write one report file and return its path."""
    stamp = int((now or datetime.now(UTC)).timestamp() * 1000)
    path = reports_dir / f"{prefix}-{stamp}.json"
    reports_dir.mkdir(parents=True, exist_ok=True)

    content = json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n"
    fd, tmp_path = tempfile.mkstemp(dir=reports_dir, prefix=".report_", suffix=".tmp")
    os.close(fd)
    tmp = Path(tmp_path)
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("Agent report generated: %s", path)
    return path


def list_reports(reports_dir: Path, prefix: str = "falcon-report") -> list[Path]:
    """Report files, oldest first."""
    if not reports_dir.is_dir():
        return []
    return sorted(reports_dir.glob(f"{prefix}-*.json"))
