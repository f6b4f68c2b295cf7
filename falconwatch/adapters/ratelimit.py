"""
Flag-file rate limiter.

Strict mode is a JSON flag file in the state directory
(``rate_limit.json``). The site's login handler reads the flag; the
engine only ever turns it on.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from falconwatch.adapters.base import RateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_FILE = "rate_limit.json"


class FlagFileRateLimiter(RateLimiter):

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def is_strict(self) -> bool:
        if not self._path.is_file():
            return False
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Corrupt rate-limit flag %s: %s", self._path, e)
            return False
        return bool(data.get("strict"))

    def enable_strict(self, reason: str) -> bool:
        if self.is_strict():
            logger.debug("Strict rate limiting already active")
            return True

        data = {
            "strict": True,
            "reason": reason,
            "enabled_at": datetime.now(UTC).isoformat(),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".rate_limit_", suffix=".tmp")
        os.close(fd)
        tmp = Path(tmp_path)
        try:
            tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
            tmp.replace(self._path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

        logger.info("Strict rate limiting enabled: %s", reason)
        return True
