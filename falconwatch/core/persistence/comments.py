"""
Comment store — atomic read/write of the comment moderation queue.

Comments are stored as a JSON list in <state_dir>/comments.json.
Writes are atomic (write to temp file, then rename) to prevent
corruption if the process crashes mid-write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from falconwatch.core.models.moderation import Comment

logger = logging.getLogger(__name__)

DEFAULT_COMMENTS_FILE = "comments.json"


class JsonCommentStore:
    """File-backed comment queue used by the moderation sweep."""

    def __init__(self, path: Path):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def list_unapproved(self, limit: int = 50) -> list[Comment]:
        """Newest-first unapproved comments."""
        pending = [c for c in self._load() if not c.approved]
        pending.sort(key=lambda c: c.created_at, reverse=True)
        return pending[:limit]

    def approve(self, comment_id: str) -> bool:
        """Mark a comment approved.

        Returns:
            True if the comment existed and was pending.
        """
        with self._lock:
            comments = self._load()
            for comment in comments:
                if comment.id == comment_id and not comment.approved:
                    comment.approved = True
                    self._save(comments)
                    return True
        return False

    def add(self, comment: Comment) -> None:
        with self._lock:
            comments = self._load()
            comments.append(comment)
            self._save(comments)

    def _load(self) -> list[Comment]:
        if not self._path.is_file():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Corrupt comment store %s: %s — treating as empty", self._path, e)
            return []
        return [Comment.model_validate(item) for item in data]

    def _save(self, comments: list[Comment]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(
            [c.model_dump(mode="json") for c in comments], indent=2, ensure_ascii=False
        ) + "\n"

        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".comments_", suffix=".tmp")
        os.close(fd)
        tmp = Path(tmp_path)
        try:
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(self._path)
            logger.debug("Comment store saved to %s", self._path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
