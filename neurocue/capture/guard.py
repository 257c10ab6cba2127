"""
Idempotency Guard

At most one open automation per (conversation, intent kind).

Two layers:
1. An in-process advisory claim on the key. A second trigger while the
   first is still refining is dropped as a duplicate in flight.
2. The store's record of open automations. A key that already has a
   non-terminal record returns that record unchanged.

Claims are plain set membership: check-and-claim happens without an await
in between, so on one event loop it is atomic.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Set, Tuple

from ..common.schemas import AutomationRecord
from .store import ArtifactStore

logger = logging.getLogger("neurocue.capture.guard")


class GuardDecision(str, Enum):
    IN_FLIGHT = "in_flight"   # duplicate while the first is still being processed
    EXISTING = "existing"     # an open record already exists (idempotent hit)
    CREATED = "created"
    REJECTED = "rejected"     # create step produced nothing (gate/refinement)


@dataclass
class GuardOutcome:
    decision: GuardDecision
    intent_kind: str
    record: Optional[AutomationRecord] = None

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "intent_kind": self.intent_kind,
            "record": self.record.model_dump(mode="json") if self.record else None,
        }


class IdempotencyGuard:
    """Serializes automation creation per (conversation, intent kind)."""

    def __init__(self, store: ArtifactStore):
        self._store = store
        self._claims: Set[Tuple[str, str]] = set()

    def is_claimed(self, conversation_id: str, intent_kind: str) -> bool:
        return (conversation_id, intent_kind) in self._claims

    async def run(
        self,
        conversation_id: str,
        intent_kind: str,
        create: Callable[[], Awaitable[Optional[AutomationRecord]]],
    ) -> GuardOutcome:
        """
        Create an automation unless one is in flight or already open.

        Args:
            conversation_id: Conversation the command was spoken in
            intent_kind: Pre-classified intent of the command
            create: Coroutine factory doing refinement, validation and
                persistence; returns the stored record or None

        Returns:
            GuardOutcome describing what happened

        The claim is released on every exit path, including exceptions
        raised by ``create`` (which propagate to the caller).
        """
        key = (conversation_id, intent_kind)
        if key in self._claims:
            logger.info("[%s] Duplicate %s trigger while one is in flight, ignoring", conversation_id, intent_kind)
            return GuardOutcome(GuardDecision.IN_FLIGHT, intent_kind)

        self._claims.add(key)
        try:
            existing = await self._store.query_open_automation(conversation_id, intent_kind)
            if existing is not None:
                logger.info(
                    "[%s] Open %s automation already exists (%s, %s)",
                    conversation_id, intent_kind, existing.id, existing.status.value,
                )
                return GuardOutcome(GuardDecision.EXISTING, intent_kind, existing)

            record = await create()
            if record is None:
                return GuardOutcome(GuardDecision.REJECTED, intent_kind)
            return GuardOutcome(GuardDecision.CREATED, intent_kind, record)
        finally:
            self._claims.discard(key)
