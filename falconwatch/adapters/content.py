"""
Command-based content generator.

Runs the operator's configured command (``content_command`` in
falconwatch.yml) to generate posts for the featured repositories.
The featured repository names are passed in FALCONWATCH_FEATURED_REPOS,
comma separated.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence

from falconwatch.adapters.base import ContentGenerator

logger = logging.getLogger(__name__)


class CommandContentGenerator(ContentGenerator):
    """Shells out to a generator command."""

    def __init__(self, command: str, timeout: int = 300):
        self._command = command
        self._timeout = timeout

    def generate_blogs_for_featured_repos(self, featured_repos: Sequence[str]) -> None:
        if not self._command:
            raise RuntimeError("No content_command configured")

        env = {**os.environ, "FALCONWATCH_FEATURED_REPOS": ",".join(featured_repos)}
        logger.info("Running content command: %s", self._command)
        r = subprocess.run(
            shlex.split(self._command),
            capture_output=True,
            text=True,
            timeout=self._timeout,
            env=env,
        )
        if r.returncode != 0:
            raise RuntimeError(
                f"Content command exited {r.returncode}: {(r.stderr or r.stdout).strip()[:500]}"
            )

    def count_published_posts(self) -> int | None:
        # The command is opaque; post counts are not observable from here.
        return None
