"""
Cycle models — configuration snapshot, stage results, cycle report.

MaintenanceCycleConfig is frozen: the orchestrator hands one snapshot
to each cycle, and ``merged()`` produces a new snapshot instead of
mutating the running one.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_FEATURED_REPOS = [
    "G3r4kiSecBot",
    "AmazonAffiliatedBot",
    "TheCommander",
    "WhisperAiEngine",
    "OmniLanguageTutor",
]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class MaintenanceCycleConfig(BaseModel):
    """Scheduling interval, per-stage switches and featured repositories."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    interval_hours: float = Field(default=6.0, gt=0)
    enable_auto_generation: bool = True
    enable_security_audit: bool = True
    enable_performance_monitoring: bool = True
    enable_community_moderation: bool = True
    featured_repos: tuple[str, ...] = tuple(DEFAULT_FEATURED_REPOS)

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600

    def merged(self, partial: dict[str, Any]) -> MaintenanceCycleConfig:
        """Return a new, validated snapshot with ``partial`` applied.

        Raises:
            pydantic.ValidationError: On unknown keys or invalid values.
        """
        data = self.model_dump()
        data.update(partial)
        return MaintenanceCycleConfig.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class StageResult(BaseModel):
    """Outcome of one pipeline stage."""

    name: str
    status: Literal["ok", "skipped", "failed"] = "ok"
    duration_ms: int = 0
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, name: str, details: dict[str, Any] | None = None, **kwargs: Any) -> StageResult:
        return cls(name=name, status="ok", details=details or {}, **kwargs)

    @classmethod
    def failure(cls, name: str, error: str, **kwargs: Any) -> StageResult:
        return cls(name=name, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, name: str, reason: str = "disabled") -> StageResult:
        return cls(name=name, status="skipped", details={"reason": reason})


class CycleReport(BaseModel):
    """Result of one enhancement cycle."""

    cycle_id: str = ""
    trigger: str = "timer"          # timer, start, manual
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""
    duration_ms: int = 0
    stages: list[StageResult] = Field(default_factory=list)
    fatal_error: str | None = None
    skipped_in_progress: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for s in self.stages if s.ok)

    @property
    def failed(self) -> int:
        return sum(1 for s in self.stages if s.failed)

    @property
    def status(self) -> str:
        if self.skipped_in_progress:
            return "skipped"
        if self.fatal_error is not None:
            return "failed"
        if self.failed == 0:
            return "ok"
        return "partial"

    def stage(self, name: str) -> StageResult | None:
        for s in self.stages:
            if s.name == name:
                return s
        return None

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["status"] = self.status
        return data
