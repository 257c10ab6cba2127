"""
Conversation Actors

Each conversation owns its state (delta cursor, capture session, command
buffer) behind its own asyncio lock. Handlers enter the conversation's
critical region to read and commit state; deltas for one conversation are
applied in arrival order (asyncio.Lock wakes waiters FIFO), while other
conversations proceed independently.

The region never spans a refinement call. Callers commit the capture/flush
decision, leave the region, then refine.

Ended conversations are released after a retention period, so the registry
only holds live conversations plus recently ended ones.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Iterator, List

from .delta import DeltaCursor
from .framer import CommandBuffer
from .session import CaptureSession

logger = logging.getLogger("neurocue.capture.conversation")


@dataclass
class ConversationState:
    """Everything the capture core remembers about one conversation"""
    conversation_id: str
    cursor: DeltaCursor
    session: CaptureSession
    command: CommandBuffer


class ConversationActor:
    """Owner of one conversation's state."""

    def __init__(self, state: ConversationState):
        self._state = state
        self._lock = asyncio.Lock()
        self._users = 0

    @property
    def conversation_id(self) -> str:
        return self._state.conversation_id

    @property
    def busy(self) -> bool:
        """True while a caller is inside or waiting for the region"""
        return self._users > 0

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[ConversationState]:
        """Critical region: state may only be read or changed in here."""
        self._users += 1
        try:
            async with self._lock:
                yield self._state
        finally:
            self._users -= 1


class ConversationRegistry:
    """
    Lazily creates one actor per conversation id.

    Ended conversations keep their actor (and so their cursor) for
    ``retention_seconds`` after ``mark_ended``; ``purge`` then releases
    them. A conversation that receives new text is no longer ended.
    """

    def __init__(
        self,
        state_factory: Callable[[str], ConversationState],
        retention_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = state_factory
        self._retention_seconds = retention_seconds
        self._clock = clock
        self._actors: Dict[str, ConversationActor] = {}
        self._ended: Dict[str, float] = {}

    def get(self, conversation_id: str) -> ConversationActor:
        actor = self._actors.get(conversation_id)
        if actor is None:
            actor = ConversationActor(self._factory(conversation_id))
            self._actors[conversation_id] = actor
            logger.debug("[%s] Conversation actor created", conversation_id)
        return actor

    def mark_ended(self, conversation_id: str) -> None:
        if conversation_id in self._actors:
            self._ended[conversation_id] = self._clock()

    def revive(self, conversation_id: str) -> None:
        self._ended.pop(conversation_id, None)

    def is_ended(self, conversation_id: str) -> bool:
        return conversation_id in self._ended

    def discard(self, conversation_id: str) -> bool:
        """Drop a conversation's actor; True if there was one."""
        self._ended.pop(conversation_id, None)
        if self._actors.pop(conversation_id, None) is None:
            return False
        logger.debug("[%s] Conversation actor released", conversation_id)
        return True

    def purge(self) -> List[str]:
        """Release ended conversations whose retention has run out."""
        now = self._clock()
        released = []
        for conversation_id, ended_at in list(self._ended.items()):
            if now - ended_at < self._retention_seconds:
                continue
            actor = self._actors.get(conversation_id)
            if actor is not None and actor.busy:
                continue
            self.discard(conversation_id)
            released.append(conversation_id)
        if released:
            logger.info("Released %d ended conversation(s)", len(released))
        return released

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._actors

    def __len__(self) -> int:
        return len(self._actors)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._actors))
