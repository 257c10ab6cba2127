"""
Artifact Schemas

Shapes handed to the persistence collaborator once a refinement result has
been admitted by the gate.

Invariants enforced here:
- a VisualSpec always has matched label/value arrays of length >= 2
- every chart value is a finite number
- at most one automation per (conversation, intent) is open at a time
  (enforced by the store and guard; the status sets live here)
"""

import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Enums
# ============================================================================

class ChartType(str, Enum):
    """Chart kinds the display layer can render"""
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    TIMELINE = "timeline"
    RADIAL = "radial"


class AutomationStatus(str, Enum):
    """Automation lifecycle status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    TRIGGERED = "triggered"
    FAILED = "failed"
    COMPLETED = "completed"
    DISMISSED = "dismissed"


# Statuses that free the (conversation, intent) slot for a new automation
TERMINAL_NEGATIVE_STATUSES = frozenset({
    AutomationStatus.REJECTED,
    AutomationStatus.FAILED,
    AutomationStatus.DISMISSED,
})

ALLOWED_TRANSITIONS = {
    AutomationStatus.PENDING: {
        AutomationStatus.APPROVED,
        AutomationStatus.REJECTED,
        AutomationStatus.DISMISSED,
    },
    AutomationStatus.APPROVED: {
        AutomationStatus.TRIGGERED,
        AutomationStatus.DISMISSED,
    },
    AutomationStatus.TRIGGERED: {
        AutomationStatus.COMPLETED,
        AutomationStatus.FAILED,
    },
    AutomationStatus.REJECTED: set(),
    AutomationStatus.FAILED: set(),
    AutomationStatus.COMPLETED: set(),
    AutomationStatus.DISMISSED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Refinement output
# ============================================================================

class VisualSpec(BaseModel):
    """Validated chart specification produced by refinement"""
    chart_type: ChartType
    title: str = Field(..., min_length=1)
    description: str = ""
    labels: List[str]
    values: List[float]
    units: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_series(self) -> "VisualSpec":
        if len(self.labels) != len(self.values):
            raise ValueError(
                f"labels ({len(self.labels)}) and values ({len(self.values)}) differ in length"
            )
        if len(self.labels) < 2:
            raise ValueError("a chart needs at least two data points")
        if not all(math.isfinite(v) for v in self.values):
            raise ValueError("chart values must be finite")
        return self


class AutomationIntent(BaseModel):
    """Validated command parameters produced by refinement"""
    intent_kind: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


# ============================================================================
# Persisted artifacts
# ============================================================================

class ChartArtifact(BaseModel):
    """Chart specification linked to the conversation that spoke it"""
    type: Literal["chart"] = "chart"
    id: str = Field(default_factory=lambda: generate_artifact_id("chart"))
    conversation_id: str
    source_chunk_id: str = ""
    completed_chunk_id: str = ""
    contributors: List[str] = Field(default_factory=list)
    transcript: str = ""
    created_at: datetime = Field(default_factory=_utcnow)

    chart_type: ChartType
    title: str
    description: str = ""
    labels: List[str]
    values: List[float]
    units: Optional[str] = None
    confidence: Optional[float] = None


class AutomationRecord(BaseModel):
    """Automation request awaiting approval/execution"""
    type: Literal["automation"] = "automation"
    id: str = Field(default_factory=lambda: generate_artifact_id("auto"))
    conversation_id: str
    intent_kind: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    status: AutomationStatus = AutomationStatus.PENDING
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    trigger_text: str = ""
    source_chunk_id: str = ""
    speaker: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    # Execution
    edited_parameters: Optional[Dict[str, Any]] = None
    external_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def effective_parameters(self) -> Dict[str, Any]:
        """Parameters to execute with: the approver's edits win"""
        return self.edited_parameters if self.edited_parameters else self.parameters

    @property
    def is_open(self) -> bool:
        """True while the record still occupies its (conversation, intent) slot"""
        return self.status not in TERMINAL_NEGATIVE_STATUSES

    def can_transition(self, target: AutomationStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]


def generate_artifact_id(prefix: str) -> str:
    """Generate a unique artifact ID: <prefix>_YYYYMMDD_<hex>"""
    return f"{prefix}_{_utcnow().strftime('%Y%m%d')}_{uuid.uuid4().hex[:12]}"
