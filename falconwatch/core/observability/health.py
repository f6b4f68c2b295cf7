"""
Infrastructure health roll-up.

The infrastructure stage probes the store and process memory, then
folds the component readings into one system status:

    operational  every component healthy
    degraded     some component degraded, none unhealthy
    critical     any component unhealthy
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from falconwatch.core.models.audit import HealthStatus


class ComponentState(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# Worst component state decides the system status.
_ROLLUP = (
    (ComponentState.UNHEALTHY, "critical", HealthStatus.CRITICAL),
    (ComponentState.DEGRADED, "degraded", HealthStatus.WARNING),
)


@dataclass(frozen=True)
class ComponentHealth:
    name: str
    status: ComponentState = ComponentState.HEALTHY
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status == ComponentState.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SystemHealth:
    """Readings collected during one infrastructure check."""

    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    components: list[ComponentHealth] = field(default_factory=list)

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)

    def component(self, name: str) -> ComponentHealth | None:
        return next((c for c in self.components if c.name == name), None)

    def _worst(self) -> tuple[str, HealthStatus]:
        present = {c.status for c in self.components}
        for state, label, metric in _ROLLUP:
            if state in present:
                return label, metric
        return "operational", HealthStatus.HEALTHY

    @property
    def status(self) -> str:
        return self._worst()[0]

    @property
    def metric_status(self) -> HealthStatus:
        """The roll-up expressed as a health-metric status."""
        return self._worst()[1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_store(latency_ms: float | None, error: str | None, threshold_ms: float) -> ComponentHealth:
    """Health of the store round-trip probe.

    A failed probe and a probe at or over ``threshold_ms`` both count as
    unhealthy; only the details differ.
    """
    if error is not None or latency_ms is None:
        error = error or "no reading"
        return ComponentHealth(
            "database", ComponentState.UNHEALTHY,
            f"Probe failed: {error}",
            {"status": "error", "error": error},
        )
    rounded = round(latency_ms, 1)
    if latency_ms >= threshold_ms:
        return ComponentHealth(
            "database", ComponentState.UNHEALTHY,
            f"Round-trip {latency_ms:.0f}ms over {threshold_ms:.0f}ms",
            {"status": "degraded", "response_time_ms": rounded},
        )
    return ComponentHealth(
        "database", ComponentState.HEALTHY,
        f"Round-trip {latency_ms:.0f}ms",
        {"status": "connected", "response_time_ms": rounded},
    )


def check_memory(heap_mb: float, threshold_mb: float) -> ComponentHealth:
    over = heap_mb >= threshold_mb
    return ComponentHealth(
        "memory",
        ComponentState.DEGRADED if over else ComponentState.HEALTHY,
        f"Heap {heap_mb:.0f}MB over {threshold_mb:.0f}MB" if over else f"Heap {heap_mb:.0f}MB",
        {"heap_used_mb": round(heap_mb)},
    )
