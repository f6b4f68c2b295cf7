"""
Moderation records — the inputs of the community moderation sweep.

ModerationLogEntry is appended by the surrounding site's moderation
filter. Comment is the mutable view the sweep may approve.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from falconwatch.core.models.audit import UtcDatetime


def _now() -> datetime:
    return datetime.now(UTC)


class ModerationLogEntry(BaseModel):
    """A moderation decision on a piece of user content."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    content_type: str = "comment"   # comment, post, message
    content_id: str | None = None
    action: str = "reviewed"        # reviewed, approved, flagged, removed
    toxicity_level: str = "low"     # low, medium, high
    created_at: UtcDatetime = Field(default_factory=_now)

    @property
    def is_bad(self) -> bool:
        """Flagged or highly toxic — disqualifies the author from auto-approval."""
        return self.action == "flagged" or self.toxicity_level == "high"


class Comment(BaseModel):
    """A blog comment awaiting (or past) moderation."""

    id: str
    author_id: str
    body: str = ""
    approved: bool = False
    created_at: UtcDatetime = Field(default_factory=_now)
