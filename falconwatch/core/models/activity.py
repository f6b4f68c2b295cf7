"""
User activity snapshot — a derived, never-persisted view of one user.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

# Lower bounds of each risk band, highest first.
RISK_BANDS: tuple[tuple[int, str], ...] = (
    (70, "CRITICAL"),
    (40, "HIGH"),
    (20, "MEDIUM"),
    (0, "LOW"),
)


def risk_label(score: int) -> str:
    """Map a 0–100 risk score to its band label."""
    for floor, label in RISK_BANDS:
        if score >= floor:
            return label
    return "LOW"


class UserActivitySnapshot(BaseModel):
    """Risk view of one user, recomputed from their audit history."""

    user_id: str
    total_sessions: int = 0
    total_actions: int = 0
    risk_score: int = Field(default=0, ge=0, le=100)
    suspicious_activities: list[str] = Field(default_factory=list)
    last_login: datetime | None = None

    @property
    def risk_label(self) -> str:
        return risk_label(self.risk_score)

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["risk_label"] = self.risk_label
        return data
