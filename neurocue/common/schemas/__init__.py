"""
NeuroCue Artifact Schemas

Validated refinement output and the artifacts built from it.
"""

from .artifacts import (
    ChartType,
    AutomationStatus,
    TERMINAL_NEGATIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    VisualSpec,
    AutomationIntent,
    ChartArtifact,
    AutomationRecord,
    generate_artifact_id,
)

__all__ = [
    "ChartType",
    "AutomationStatus",
    "TERMINAL_NEGATIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "VisualSpec",
    "AutomationIntent",
    "ChartArtifact",
    "AutomationRecord",
    "generate_artifact_id",
]
