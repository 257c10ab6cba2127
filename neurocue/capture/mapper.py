"""
Artifact Mapper

Field mapping from gate-admitted results to stored artifacts. No business
rules here: conversation linkage, chunk provenance and contributors are
attached, optional fields stay absent when refinement left them out.
"""

from typing import Optional

from ..common.schemas import AutomationIntent, AutomationRecord, ChartArtifact, VisualSpec
from .framer import FramedCommand
from .session import CompletedCapture


class ArtifactMapper:
    """Builds ChartArtifact / AutomationRecord objects."""

    def to_chart(self, spec: VisualSpec, capture: CompletedCapture) -> ChartArtifact:
        return ChartArtifact(
            conversation_id=capture.conversation_id,
            source_chunk_id=capture.start_source_id,
            completed_chunk_id=capture.end_source_id,
            contributors=list(capture.contributors),
            transcript=capture.text,
            chart_type=spec.chart_type,
            title=spec.title,
            description=spec.description,
            labels=list(spec.labels),
            values=list(spec.values),
            units=spec.units,
            confidence=spec.confidence,
        )

    def to_automation(
        self,
        intent: AutomationIntent,
        command: FramedCommand,
        chunk_id: str,
        speaker: Optional[str] = None,
    ) -> AutomationRecord:
        return AutomationRecord(
            conversation_id=command.conversation_id,
            intent_kind=intent.intent_kind,
            parameters=dict(intent.parameters),
            confidence=intent.confidence,
            trigger_text=command.cleaned,
            source_chunk_id=chunk_id,
            speaker=speaker or None,
        )
