"""
Domain models — Pydantic types for the monitoring engine.

All models are re-exported here for convenient access:

    from falconwatch.core.models import AuditLogEntry, BugScanResult, CycleReport
"""

from falconwatch.core.models.activity import UserActivitySnapshot, risk_label
from falconwatch.core.models.audit import (
    AuditLogEntry,
    AuditSeverity,
    HealthStatus,
    SystemHealthMetric,
)
from falconwatch.core.models.cycle import (
    CycleReport,
    MaintenanceCycleConfig,
    StageResult,
)
from falconwatch.core.models.findings import (
    BugScanResult,
    FindingCategory,
    FindingSeverity,
)
from falconwatch.core.models.moderation import Comment, ModerationLogEntry

__all__ = [
    # activity.py
    "UserActivitySnapshot",
    "risk_label",
    # audit.py
    "AuditLogEntry",
    "AuditSeverity",
    "HealthStatus",
    "SystemHealthMetric",
    # cycle.py
    "CycleReport",
    "MaintenanceCycleConfig",
    "StageResult",
    # findings.py
    "BugScanResult",
    "FindingCategory",
    "FindingSeverity",
    # moderation.py
    "Comment",
    "ModerationLogEntry",
]
