"""
Trigger Engine

Wires the capture core together.

Per chunk:
1. Enter the conversation's critical region
2. DeltaCursor turns the cumulative text into the unseen suffix
3. CaptureSession advances on the suffix (chart pipeline)
4. CommandFramer appends the suffix to the command buffer (automation pipeline)
5. Leave the region with the committed decisions
6. Completed capture -> VisualRefiner -> gate -> mapper -> store
7. Framed command -> keyword pre-filter -> guard(refine -> gate -> mapper -> store)

Steps 6-7 run outside the region; the next chunk of the same conversation
does not wait for them.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..common.config import NeuroCueConfig
from ..common.llm_client import LLMClient
from ..common.schemas import ChartArtifact
from .conversation import ConversationRegistry, ConversationState
from .delta import DeltaCursor
from .framer import CommandBuffer, CommandFramer, FramedCommand
from .gate import RefinementGate
from .guard import GuardDecision, GuardOutcome, IdempotencyGuard
from .handlers.base import Chunk
from .mapper import ArtifactMapper
from .phrases import PhraseMatcher
from .refiner import AutomationRefiner, RefinementUnavailable, VisualRefiner, build_refiners
from .session import CaptureSession, CompletedCapture, SessionStatus
from .store import ArtifactStore, JsonArtifactStore

logger = logging.getLogger("neurocue.capture.engine")


@dataclass
class ChunkOutcome:
    """What one delivery did"""
    conversation_id: str
    chunk_id: str
    status: SessionStatus
    artifact: Optional[ChartArtifact] = None
    automation: Optional[GuardOutcome] = None
    evicted: bool = False

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "chunk_id": self.chunk_id,
            "status": self.status.value,
            "artifact": self.artifact.model_dump(mode="json") if self.artifact else None,
            "automation": self.automation.to_dict() if self.automation else None,
            "evicted": self.evicted,
        }


class VisualizationPipeline:
    """Completed capture -> chart artifact."""

    def __init__(
        self,
        refiner: VisualRefiner,
        gate: RefinementGate,
        mapper: ArtifactMapper,
        store: ArtifactStore,
    ):
        self._refiner = refiner
        self._gate = gate
        self._mapper = mapper
        self._store = store

    async def complete(self, capture: CompletedCapture) -> Optional[ChartArtifact]:
        """
        Refine, validate and store a completed capture.

        Returns the stored artifact, or None when the event was dropped.
        Failures are logged, never raised: the capture has already ended.
        """
        cid = capture.conversation_id
        try:
            result = await self._refiner.refine(capture.text, capture.contributors)
        except RefinementUnavailable as e:
            logger.warning("[%s] Chart capture dropped, refinement unavailable: %s", cid, e)
            return None
        except Exception as e:
            logger.warning("[%s] Chart refinement failed, capture dropped: %s", cid, e)
            return None

        verdict = self._gate.check_visual(result)
        if verdict.no_result:
            logger.info("[%s] Refinement found no chartable data", cid)
            return None
        if not verdict.admitted:
            logger.info("[%s] Chart rejected by gate: %s", cid, verdict.reason)
            return None

        artifact = self._mapper.to_chart(verdict.value, capture)
        try:
            await self._store.persist_artifact(cid, artifact)
        except Exception as e:
            logger.error("[%s] Failed to store chart %s: %s", cid, artifact.id, e)
            return None

        logger.info("[%s] Chart %s stored (%s, %d points)", cid, artifact.id, artifact.chart_type.value, len(artifact.labels))
        return artifact


class AutomationPipeline:
    """Framed command -> at most one open automation per intent."""

    def __init__(
        self,
        refiner: AutomationRefiner,
        gate: RefinementGate,
        mapper: ArtifactMapper,
        store: ArtifactStore,
        guard: Optional[IdempotencyGuard] = None,
    ):
        self._refiner = refiner
        self._gate = gate
        self._mapper = mapper
        self._store = store
        self._guard = guard or IdempotencyGuard(store)

    @property
    def guard(self) -> IdempotencyGuard:
        return self._guard

    async def handle(self, command: FramedCommand, chunk: Chunk) -> Optional[GuardOutcome]:
        """
        Run a framed command through the guard.

        Returns None when the keyword pre-filter found no plausible intent
        (no refinement call is made).
        """
        cid = command.conversation_id
        if not command.has_intent:
            logger.info("[%s] Command %r has no intent keyword, skipped", cid, command.cleaned)
            return None

        intent_kind = command.intent_kind

        async def create():
            try:
                result = await self._refiner.refine(
                    command.cleaned, [chunk.speaker], intent_hint=intent_kind,
                )
            except RefinementUnavailable as e:
                logger.warning("[%s] %s command dropped, refinement unavailable: %s", cid, intent_kind, e)
                return None
            except Exception as e:
                logger.warning("[%s] %s refinement failed: %s", cid, intent_kind, e)
                return None

            verdict = self._gate.check_automation(result, expected_intent=intent_kind)
            if verdict.no_result:
                logger.info("[%s] Refinement found no %s request", cid, intent_kind)
                return None
            if not verdict.admitted:
                logger.info("[%s] %s rejected by gate: %s", cid, intent_kind, verdict.reason)
                return None

            record = self._mapper.to_automation(verdict.value, command, chunk.chunk_id, chunk.speaker)
            await self._store.persist_artifact(cid, record)
            return record

        try:
            return await self._guard.run(cid, intent_kind, create)
        except Exception as e:
            logger.error("[%s] %s automation failed: %s", cid, intent_kind, e)
            return GuardOutcome(GuardDecision.REJECTED, intent_kind)


class TriggerEngine:
    """
    Entry point for ingestion (``on_chunk``) and lifecycle (``force_stop``).
    """

    def __init__(
        self,
        matcher: PhraseMatcher,
        framer: CommandFramer,
        visual: VisualizationPipeline,
        automation: AutomationPipeline,
        max_capture_chars: int = 0,
        max_capture_seconds: float = 0.0,
        conversation_retention_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._matcher = matcher
        self._framer = framer
        self._visual = visual
        self._automation = automation
        self._max_capture_chars = max_capture_chars
        self._max_capture_seconds = max_capture_seconds
        self._clock = clock
        self._registry = ConversationRegistry(
            self._new_state,
            retention_seconds=conversation_retention_seconds,
            clock=clock,
        )

    @property
    def conversations(self) -> ConversationRegistry:
        return self._registry

    def _new_state(self, conversation_id: str) -> ConversationState:
        return ConversationState(
            conversation_id=conversation_id,
            cursor=DeltaCursor(),
            session=CaptureSession(
                conversation_id,
                self._matcher,
                max_capture_chars=self._max_capture_chars,
                max_capture_seconds=self._max_capture_seconds,
                clock=self._clock,
            ),
            command=CommandBuffer(conversation_id),
        )

    async def on_chunk(self, chunk: Chunk) -> ChunkOutcome:
        """
        Process one cumulative delivery.

        Redelivery of text already seen is absorbed here (empty delta) and
        can never complete a capture twice.
        """
        self._registry.purge()
        actor = self._registry.get(chunk.conversation_id)

        async with actor.exclusive() as state:
            delta = state.cursor.advance(chunk.text)
            if delta:
                self._registry.revive(chunk.conversation_id)
            event = state.session.advance(delta, chunk.speaker, chunk.chunk_id)
            command = self._framer.feed(state.command, delta) if delta else None

        outcome = ChunkOutcome(
            conversation_id=chunk.conversation_id,
            chunk_id=chunk.chunk_id,
            status=event.status,
            evicted=event.evicted,
        )

        if event.capture is not None:
            outcome.artifact = await self._visual.complete(event.capture)

        if command is not None:
            outcome.automation = await self._automation.handle(command, chunk)

        return outcome

    async def force_stop(self, conversation_id: str) -> bool:
        """
        Conversation ended: discard any partial capture and command buffer.

        The cursor is kept for the retention period so late redeliveries of
        old text stay no-ops; after that the conversation is released.
        Returns True if a capture or command was in progress.
        """
        self._registry.purge()
        if conversation_id not in self._registry:
            return False

        actor = self._registry.get(conversation_id)
        async with actor.exclusive() as state:
            dropped_capture = state.session.force_stop()
            dropped_command = state.command.is_accumulating
            state.command.clear()
        self._registry.mark_ended(conversation_id)

        if dropped_command:
            logger.info("[%s] Force-stop discarded partial command", conversation_id)
        return dropped_capture or dropped_command


def build_engine(
    config: NeuroCueConfig,
    store: Optional[ArtifactStore] = None,
    llm: Optional[LLMClient] = None,
) -> TriggerEngine:
    """Assemble an engine from configuration."""
    if store is None:
        store = JsonArtifactStore(Path(config.server.store_path) if config.server.store_path else None)
    if llm is None:
        llm = LLMClient.from_config(config.llm)

    visual_refiner, automation_refiner = build_refiners(llm)
    gate = RefinementGate(
        visual_min_confidence=config.capture.min_confidence,
        automation_min_confidence=config.automation.min_confidence,
    )
    mapper = ArtifactMapper()

    return TriggerEngine(
        matcher=PhraseMatcher.from_config(config.capture),
        framer=CommandFramer.from_config(config.automation),
        visual=VisualizationPipeline(visual_refiner, gate, mapper, store),
        automation=AutomationPipeline(automation_refiner, gate, mapper, store),
        max_capture_chars=config.capture.max_capture_chars,
        max_capture_seconds=config.capture.max_capture_seconds,
        conversation_retention_seconds=config.server.conversation_retention_seconds,
    )
