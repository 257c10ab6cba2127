"""
Tests for Artifact Mapper and artifact schemas
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError


def _capture():
    from neurocue.capture.session import BufferedLine, CompletedCapture

    return CompletedCapture(
        conversation_id="conv-1",
        lines=[BufferedLine("Ana", "north 5"), BufferedLine("Ben", "south 7")],
        contributors=["Ana", "Ben"],
        started_at=datetime.now(timezone.utc),
        start_source_id="chunk-1",
        end_source_id="chunk-3",
    )


class TestArtifactMapper:
    """Tests for ArtifactMapper"""

    def test_to_chart(self):
        from neurocue.common.schemas import ChartType, VisualSpec
        from neurocue.capture.mapper import ArtifactMapper

        spec = VisualSpec(chart_type="bar", title="Regions", labels=["north", "south"], values=[5, 7])
        artifact = ArtifactMapper().to_chart(spec, _capture())

        assert artifact.type == "chart"
        assert artifact.id.startswith("chart_")
        assert artifact.conversation_id == "conv-1"
        assert artifact.source_chunk_id == "chunk-1"
        assert artifact.completed_chunk_id == "chunk-3"
        assert artifact.contributors == ["Ana", "Ben"]
        assert artifact.transcript == "Ana: north 5\nBen: south 7"
        assert artifact.chart_type == ChartType.BAR
        assert artifact.values == [5.0, 7.0]
        assert artifact.units is None
        assert artifact.confidence is None

    def test_to_automation(self):
        from neurocue.common.schemas import AutomationIntent, AutomationStatus
        from neurocue.capture.framer import FramedCommand
        from neurocue.capture.mapper import ArtifactMapper

        intent = AutomationIntent(intent_kind="create_reminder", parameters={"text": "call Dana"}, confidence=0.6)
        command = FramedCommand("conv-1", " remind me to call Dana ", "remind me to call Dana", "create_reminder")
        record = ArtifactMapper().to_automation(intent, command, "chunk-7", "Ana")

        assert record.type == "automation"
        assert record.id.startswith("auto_")
        assert record.status == AutomationStatus.PENDING
        assert record.trigger_text == "remind me to call Dana"
        assert record.source_chunk_id == "chunk-7"
        assert record.speaker == "Ana"
        assert record.parameters == {"text": "call Dana"}

    def test_to_automation_parameters_copied(self):
        from neurocue.common.schemas import AutomationIntent
        from neurocue.capture.framer import FramedCommand
        from neurocue.capture.mapper import ArtifactMapper

        intent = AutomationIntent(intent_kind="create_task", parameters={"title": "x"})
        record = ArtifactMapper().to_automation(intent, FramedCommand("c", "", "", "create_task"), "k")
        intent.parameters["title"] = "changed"

        assert record.parameters == {"title": "x"}
        assert record.speaker is None


class TestVisualSpec:
    """Tests for VisualSpec validation"""

    def test_mismatched_lengths(self):
        from neurocue.common.schemas import VisualSpec

        with pytest.raises(ValidationError):
            VisualSpec(chart_type="bar", title="t", labels=["a", "b"], values=[1])

    def test_single_point(self):
        from neurocue.common.schemas import VisualSpec

        with pytest.raises(ValidationError):
            VisualSpec(chart_type="bar", title="t", labels=["a"], values=[1])

    def test_non_finite(self):
        from neurocue.common.schemas import VisualSpec

        with pytest.raises(ValidationError):
            VisualSpec(chart_type="bar", title="t", labels=["a", "b"], values=[1, float("inf")])

    def test_unknown_chart_type(self):
        from neurocue.common.schemas import VisualSpec

        with pytest.raises(ValidationError):
            VisualSpec(chart_type="scatter", title="t", labels=["a", "b"], values=[1, 2])


class TestAutomationRecord:
    """Tests for the automation lifecycle rules"""

    @pytest.mark.parametrize("current,target,allowed", [
        ("pending", "approved", True),
        ("pending", "rejected", True),
        ("pending", "triggered", False),
        ("approved", "triggered", True),
        ("triggered", "completed", True),
        ("triggered", "failed", True),
        ("completed", "pending", False),
        ("dismissed", "approved", False),
    ])
    def test_can_transition(self, current, target, allowed):
        from neurocue.common.schemas import AutomationRecord, AutomationStatus

        record = AutomationRecord(conversation_id="c", intent_kind="k", status=current)
        assert record.can_transition(AutomationStatus(target)) is allowed

    @pytest.mark.parametrize("status,is_open", [
        ("pending", True),
        ("approved", True),
        ("triggered", True),
        ("completed", True),
        ("rejected", False),
        ("failed", False),
        ("dismissed", False),
    ])
    def test_is_open(self, status, is_open):
        from neurocue.common.schemas import AutomationRecord

        assert AutomationRecord(conversation_id="c", intent_kind="k", status=status).is_open is is_open

    def test_generate_artifact_id_unique(self):
        from neurocue.common.schemas import generate_artifact_id

        ids = {generate_artifact_id("chart") for _ in range(50)}
        assert len(ids) == 50
