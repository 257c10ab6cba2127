"""
Tests for Artifact Store

In-memory store with JSON mirroring and the automation lifecycle.
"""

import json

import pytest


def _chart(conversation_id="conv-1"):
    from neurocue.common.schemas import ChartArtifact, ChartType

    return ChartArtifact(
        conversation_id=conversation_id,
        chart_type=ChartType.LINE,
        title="Signups",
        labels=["Jan", "Feb"],
        values=[100, 150],
    )


def _automation(conversation_id="conv-1", intent_kind="send_email"):
    from neurocue.common.schemas import AutomationRecord

    return AutomationRecord(
        conversation_id=conversation_id,
        intent_kind=intent_kind,
        parameters={"to": "team"},
        confidence=0.7,
    )


class TestJsonArtifactStore:
    """Tests for JsonArtifactStore"""

    @pytest.fixture
    def store(self):
        from neurocue.capture.store import JsonArtifactStore

        return JsonArtifactStore()

    @pytest.mark.asyncio
    async def test_persist_and_list(self, store):
        chart = _chart()
        automation = _automation()
        await store.persist_artifact("conv-1", chart)
        await store.persist_artifact("conv-1", automation)
        await store.persist_artifact("conv-2", _chart("conv-2"))

        artifacts = await store.list_artifacts("conv-1")
        assert [a.id for a in artifacts] == [chart.id, automation.id]

    @pytest.mark.asyncio
    async def test_persist_rejects_foreign_conversation(self, store):
        with pytest.raises(ValueError):
            await store.persist_artifact("conv-2", _chart("conv-1"))

    @pytest.mark.asyncio
    async def test_query_open_automation(self, store):
        record = _automation()
        await store.persist_artifact("conv-1", record)

        found = await store.query_open_automation("conv-1", "send_email")
        assert found.id == record.id
        assert await store.query_open_automation("conv-1", "create_task") is None
        assert await store.query_open_automation("conv-2", "send_email") is None

    @pytest.mark.asyncio
    async def test_terminal_negative_not_open(self, store):
        from neurocue.common.schemas import AutomationStatus

        record = _automation()
        await store.persist_artifact("conv-1", record)
        await store.update_status(record.id, AutomationStatus.REJECTED)

        assert await store.query_open_automation("conv-1", "send_email") is None

    @pytest.mark.asyncio
    async def test_completed_still_occupies_slot(self, store):
        from neurocue.common.schemas import AutomationStatus

        record = _automation()
        await store.persist_artifact("conv-1", record)
        for status in (AutomationStatus.APPROVED, AutomationStatus.TRIGGERED, AutomationStatus.COMPLETED):
            await store.update_status(record.id, status)

        assert (await store.query_open_automation("conv-1", "send_email")).id == record.id

    @pytest.mark.asyncio
    async def test_update_status_unknown_id(self, store):
        from neurocue.common.schemas import AutomationStatus

        with pytest.raises(KeyError):
            await store.update_status("auto_missing", AutomationStatus.APPROVED)

    @pytest.mark.asyncio
    async def test_invalid_transition(self, store):
        from neurocue.common.schemas import AutomationStatus
        from neurocue.capture.store import InvalidTransitionError

        record = _automation()
        await store.persist_artifact("conv-1", record)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await store.update_status(record.id, AutomationStatus.COMPLETED)

        assert exc_info.value.current == AutomationStatus.PENDING
        assert exc_info.value.target == AutomationStatus.COMPLETED
        assert record.status == AutomationStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_status_touches_timestamp(self, store):
        from neurocue.common.schemas import AutomationStatus

        record = _automation()
        await store.persist_artifact("conv-1", record)
        before = record.updated_at

        updated = await store.update_status(record.id, AutomationStatus.APPROVED)
        assert updated.status == AutomationStatus.APPROVED
        assert updated.updated_at >= before

    @pytest.mark.asyncio
    async def test_update_status_records_execution_fields(self, store):
        from neurocue.common.schemas import AutomationStatus

        record = _automation()
        await store.persist_artifact("conv-1", record)

        await store.update_status(record.id, AutomationStatus.APPROVED, edited_parameters={"to": "bob"})
        await store.update_status(record.id, AutomationStatus.TRIGGERED)
        updated = await store.update_status(record.id, AutomationStatus.FAILED, error="webhook returned 500")

        assert updated.status == AutomationStatus.FAILED
        assert updated.error == "webhook returned 500"
        assert updated.edited_parameters == {"to": "bob"}
        assert updated.effective_parameters == {"to": "bob"}
        assert updated.external_id is None

    @pytest.mark.asyncio
    async def test_get_stats(self, store):
        from neurocue.common.schemas import AutomationStatus

        first = _automation()
        await store.persist_artifact("conv-1", _chart())
        await store.persist_artifact("conv-1", first)
        await store.persist_artifact("conv-1", _automation(intent_kind="create_task"))
        await store.update_status(first.id, AutomationStatus.DISMISSED)

        assert store.get_stats() == {
            "total": 3,
            "charts": 1,
            "automations": 2,
            "open_automations": 1,
        }


class TestJsonPersistence:
    """Tests for file mirroring"""

    @pytest.mark.asyncio
    async def test_round_trip_through_file(self, tmp_path):
        from neurocue.common.schemas import AutomationRecord, ChartArtifact
        from neurocue.capture.store import JsonArtifactStore

        path = tmp_path / "store" / "artifacts.json"
        store = JsonArtifactStore(path)
        chart = _chart()
        automation = _automation()
        await store.persist_artifact("conv-1", chart)
        await store.persist_artifact("conv-1", automation)

        data = json.loads(path.read_text())
        assert [item["type"] for item in data] == ["chart", "automation"]

        reloaded = JsonArtifactStore(path)
        artifacts = await reloaded.list_artifacts("conv-1")
        assert isinstance(artifacts[0], ChartArtifact)
        assert isinstance(artifacts[1], AutomationRecord)
        assert artifacts[1].id == automation.id

    def test_corrupt_file_starts_empty(self, tmp_path):
        from neurocue.capture.store import JsonArtifactStore

        path = tmp_path / "artifacts.json"
        path.write_text("{not json")

        assert JsonArtifactStore(path).get_stats()["total"] == 0

    @pytest.mark.asyncio
    async def test_writes_run_off_the_event_loop(self, tmp_path):
        import asyncio
        from unittest.mock import patch
        from neurocue.capture.store import JsonArtifactStore

        path = tmp_path / "artifacts.json"
        store = JsonArtifactStore(path)

        with patch("neurocue.capture.store.asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            await store.persist_artifact("conv-1", _chart())

        to_thread.assert_called_once()
        assert len(json.loads(path.read_text())) == 1

    @pytest.mark.asyncio
    async def test_concurrent_writes_keep_every_artifact(self, tmp_path):
        import asyncio
        from neurocue.capture.store import JsonArtifactStore

        path = tmp_path / "artifacts.json"
        store = JsonArtifactStore(path)

        await asyncio.gather(*(store.persist_artifact("conv-1", _chart()) for _ in range(10)))

        assert len(json.loads(path.read_text())) == 10
        assert JsonArtifactStore(path).get_stats()["charts"] == 10

    @pytest.mark.asyncio
    async def test_execution_fields_survive_reload(self, tmp_path):
        from neurocue.common.schemas import AutomationStatus
        from neurocue.capture.store import JsonArtifactStore

        path = tmp_path / "artifacts.json"
        store = JsonArtifactStore(path)
        record = _automation()
        await store.persist_artifact("conv-1", record)
        await store.update_status(record.id, AutomationStatus.APPROVED)
        await store.update_status(record.id, AutomationStatus.TRIGGERED)
        await store.update_status(record.id, AutomationStatus.COMPLETED, external_id="exec-7")

        reloaded = await JsonArtifactStore(path).get_automation(record.id)
        assert reloaded.status == AutomationStatus.COMPLETED
        assert reloaded.external_id == "exec-7"
