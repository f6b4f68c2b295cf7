"""
GitHub repository client — repository metadata via the ``gh`` CLI.

Uses ``gh api`` so authentication is whatever ``gh auth`` already has;
the engine never handles tokens itself.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any

from falconwatch.adapters.base import RepositoryClient

logger = logging.getLogger(__name__)


def run_gh(
    *args: str,
    cwd: Path | None = None,
    timeout: int = 30,
) -> subprocess.CompletedProcess[str]:
    """Run a gh CLI command and return the result."""
    return subprocess.run(
        ["gh", *args],
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class GhRepositoryClient(RepositoryClient):
    """Repository metadata for ``<owner>/<name>`` through ``gh api``."""

    def __init__(self, owner: str, timeout: int = 30):
        self._owner = owner
        self._timeout = timeout

    @staticmethod
    def is_available() -> bool:
        return shutil.which("gh") is not None

    def get_repository(self, name: str) -> dict[str, Any] | None:
        r = run_gh("api", f"repos/{self._slug(name)}", timeout=self._timeout)
        if r.returncode != 0:
            if "Not Found" in r.stderr or "HTTP 404" in r.stderr:
                logger.info("Repository %s not found", self._slug(name))
                return None
            raise RuntimeError(f"gh api failed for {self._slug(name)}: {r.stderr.strip()}")
        return json.loads(r.stdout)

    def get_recent_commits(self, name: str, count: int = 5) -> list[dict[str, Any]]:
        r = run_gh(
            "api", f"repos/{self._slug(name)}/commits?per_page={count}",
            timeout=self._timeout,
        )
        if r.returncode != 0:
            raise RuntimeError(f"gh api commits failed for {self._slug(name)}: {r.stderr.strip()}")
        commits = json.loads(r.stdout)
        return [
            {
                "sha": c.get("sha", "")[:12],
                "message": (c.get("commit", {}).get("message") or "").split("\n", 1)[0],
                "date": c.get("commit", {}).get("author", {}).get("date"),
            }
            for c in commits[:count]
        ]

    def _slug(self, name: str) -> str:
        if "/" in name or not self._owner:
            return name
        return f"{self._owner}/{name}"
