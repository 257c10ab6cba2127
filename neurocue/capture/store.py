"""
Artifact Store

Persistence collaborator for admitted artifacts.

The pipelines only depend on the ArtifactStore interface. JsonArtifactStore
is the bundled implementation: records are kept in memory and, when a path
is given, mirrored to a JSON file after every write. File writes run in a
worker thread so the event loop never blocks on disk.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..common.schemas import (
    AutomationRecord,
    AutomationStatus,
    ChartArtifact,
)

logger = logging.getLogger("neurocue.capture.store")

Artifact = Union[ChartArtifact, AutomationRecord]


class InvalidTransitionError(ValueError):
    """Automation status change not allowed from the current status"""

    def __init__(self, record_id: str, current: AutomationStatus, target: AutomationStatus):
        super().__init__(f"{record_id}: cannot move from {current.value} to {target.value}")
        self.record_id = record_id
        self.current = current
        self.target = target


class ArtifactStore(ABC):
    """Interface the pipelines persist through."""

    @abstractmethod
    async def persist_artifact(self, conversation_id: str, artifact: Artifact) -> Artifact:
        """Store an artifact; returns what was stored."""

    @abstractmethod
    async def query_open_automation(self, conversation_id: str, intent_kind: str) -> Optional[AutomationRecord]:
        """The non-terminal automation for this key, if any."""

    @abstractmethod
    async def list_artifacts(self, conversation_id: str) -> List[Artifact]:
        """All artifacts for a conversation, oldest first."""

    @abstractmethod
    async def get_automation(self, record_id: str) -> Optional[AutomationRecord]:
        """Look up an automation by id."""

    @abstractmethod
    async def update_status(
        self,
        record_id: str,
        status: AutomationStatus,
        *,
        external_id: Optional[str] = None,
        error: Optional[str] = None,
        edited_parameters: Optional[Dict[str, Any]] = None,
    ) -> AutomationRecord:
        """
        Move an automation along its lifecycle.

        The optional fields are recorded alongside the new status when given.

        Raises:
            KeyError: unknown record id
            InvalidTransitionError: transition not allowed
        """


class JsonArtifactStore(ArtifactStore):
    """
    In-memory store with optional JSON file mirroring.

    File format: a list of artifact dicts, each tagged by its "type" field
    ("chart" or "automation").
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._artifacts: List[Artifact] = []
        self._write_lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        """Load artifacts from disk"""
        if self._path is None or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)
            self._artifacts = [self._from_dict(item) for item in data]
        except (json.JSONDecodeError, IOError, KeyError, ValueError) as e:
            logger.warning("Failed to load artifact store %s: %s", self._path, e)
            self._artifacts = []

    @staticmethod
    def _from_dict(item: dict) -> Artifact:
        if item.get("type") == "automation":
            return AutomationRecord.model_validate(item)
        return ChartArtifact.model_validate(item)

    def _write(self, data: List[dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(data, f, indent=2, default=str)

    async def _save(self) -> None:
        """Save artifacts to disk"""
        if self._path is None:
            return

        # Snapshot on the loop, write off it; writes land in call order
        data = [a.model_dump(mode="json") for a in self._artifacts]
        async with self._write_lock:
            await asyncio.to_thread(self._write, data)

    async def persist_artifact(self, conversation_id: str, artifact: Artifact) -> Artifact:
        if artifact.conversation_id != conversation_id:
            raise ValueError(
                f"artifact {artifact.id} belongs to {artifact.conversation_id}, not {conversation_id}"
            )
        self._artifacts.append(artifact)
        await self._save()
        logger.info("[%s] Stored %s artifact %s", conversation_id, artifact.type, artifact.id)
        return artifact

    async def query_open_automation(self, conversation_id: str, intent_kind: str) -> Optional[AutomationRecord]:
        for artifact in self._artifacts:
            if (
                isinstance(artifact, AutomationRecord)
                and artifact.conversation_id == conversation_id
                and artifact.intent_kind == intent_kind
                and artifact.is_open
            ):
                return artifact
        return None

    async def list_artifacts(self, conversation_id: str) -> List[Artifact]:
        return [a for a in self._artifacts if a.conversation_id == conversation_id]

    async def get_automation(self, record_id: str) -> Optional[AutomationRecord]:
        for artifact in self._artifacts:
            if isinstance(artifact, AutomationRecord) and artifact.id == record_id:
                return artifact
        return None

    async def update_status(
        self,
        record_id: str,
        status: AutomationStatus,
        *,
        external_id: Optional[str] = None,
        error: Optional[str] = None,
        edited_parameters: Optional[Dict[str, Any]] = None,
    ) -> AutomationRecord:
        record = await self.get_automation(record_id)
        if record is None:
            raise KeyError(record_id)
        if not record.can_transition(status):
            raise InvalidTransitionError(record_id, record.status, status)

        record.status = status
        record.updated_at = datetime.now(timezone.utc)
        if external_id is not None:
            record.external_id = external_id
        if error is not None:
            record.error = error
        if edited_parameters is not None:
            record.edited_parameters = edited_parameters
        await self._save()
        logger.info("[%s] Automation %s -> %s", record.conversation_id, record_id, status.value)
        return record

    def get_stats(self) -> Dict[str, int]:
        """Artifact counts by type plus open automations"""
        stats = {"total": len(self._artifacts), "charts": 0, "automations": 0, "open_automations": 0}
        for artifact in self._artifacts:
            if isinstance(artifact, AutomationRecord):
                stats["automations"] += 1
                if artifact.is_open:
                    stats["open_automations"] += 1
            else:
                stats["charts"] += 1
        return stats
