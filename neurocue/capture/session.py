"""
Capture Session

Per-conversation state machine for the chart pipeline.

    Idle --start--> Capturing --stop--> Idle (flush = completion)

A delta holding both a start and a later stop completes in one step and
never enters Capturing. Force-stop and eviction discard a partial capture
without flushing it; no stop phrase was spoken, so there is nothing to
structure.
"""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from .phrases import PhraseMatcher, fold_case

logger = logging.getLogger("neurocue.capture.session")

# Punctuation (and whitespace) trimmed from the edges of captured text
_EDGE_PUNCT_RE = re.compile(r"^[\s.,;:!?\-\u2013\u2014\"'\u2026]+|[\s.,;:!?\-\u2013\u2014\"'\u2026]+$")


def trim_punctuation(text: str) -> str:
    """Trim leading/trailing punctuation and whitespace."""
    return _EDGE_PUNCT_RE.sub('', text or '')


class SessionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"


class SessionStatus(str, Enum):
    """What a delta did to the session"""
    IDLE = "idle"
    STARTED = "started"
    CAPTURING = "capturing"
    COMPLETED = "completed"


@dataclass
class BufferedLine:
    speaker: str
    text: str


@dataclass
class CompletedCapture:
    """A bracketed capture, ready for refinement"""
    conversation_id: str
    lines: List[BufferedLine]
    contributors: List[str]
    started_at: datetime
    start_source_id: str
    end_source_id: str
    one_shot: bool = False

    @property
    def text(self) -> str:
        rendered = []
        for line in self.lines:
            rendered.append(f"{line.speaker}: {line.text}" if line.speaker else line.text)
        return "\n".join(rendered)


@dataclass
class SessionEvent:
    """Outcome of advancing a session by one delta"""
    status: SessionStatus
    capture: Optional[CompletedCapture] = None
    evicted: bool = False


class CaptureSession:
    """
    Chart capture state for one conversation.

    Not safe to share across concurrent handlers on its own; the engine
    only touches it inside the conversation's critical region.
    """

    def __init__(
        self,
        conversation_id: str,
        matcher: PhraseMatcher,
        max_capture_chars: int = 0,
        max_capture_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            conversation_id: Conversation this session belongs to
            matcher: Shared start/stop matcher
            max_capture_chars: Evict a capture whose buffer grows past this (0 = unbounded)
            max_capture_seconds: Evict a capture open longer than this (0 = unbounded)
            clock: Monotonic clock, injectable for tests
        """
        self.conversation_id = conversation_id
        self._matcher = matcher
        self._max_chars = max_capture_chars
        self._max_seconds = max_capture_seconds
        self._clock = clock

        self.state = SessionState.IDLE
        self.buffered_lines: List[BufferedLine] = []
        self._contributors: Dict[str, None] = {}  # insertion-ordered set
        self.started_at: Optional[datetime] = None
        self.start_source_id: Optional[str] = None
        self._started_clock: Optional[float] = None

    @property
    def contributors(self) -> List[str]:
        return list(self._contributors)

    @property
    def is_capturing(self) -> bool:
        return self.state is SessionState.CAPTURING

    @property
    def buffered_chars(self) -> int:
        return sum(len(line.text) for line in self.buffered_lines)

    def idle_status(self) -> SessionStatus:
        """Status to report for a delivery that carried no new text"""
        return SessionStatus.CAPTURING if self.is_capturing else SessionStatus.IDLE

    def advance(self, delta: str, speaker: str, chunk_id: str) -> SessionEvent:
        """
        Feed one delta through the state machine.

        Args:
            delta: Newly-arrived text (original casing)
            speaker: Speaker of the chunk
            chunk_id: Id of the chunk that carried the delta

        Returns:
            SessionEvent; ``capture`` is set only on completion
        """
        evicted = self._evict_if_overdue()

        if not delta or not delta.strip():
            return SessionEvent(status=self.idle_status(), evicted=evicted)

        folded = fold_case(delta)

        if self.state is SessionState.IDLE:
            event = self._advance_idle(delta, folded, speaker, chunk_id)
        else:
            event = self._advance_capturing(delta, folded, speaker, chunk_id)
        event.evicted = evicted
        return event

    def force_stop(self) -> bool:
        """Drop any in-progress capture without flushing. Returns True if one was dropped."""
        was_capturing = self.is_capturing
        if was_capturing:
            logger.info(
                "[%s] Force-stop discarded capture (%d lines)",
                self.conversation_id, len(self.buffered_lines),
            )
        self._reset()
        return was_capturing

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _advance_idle(self, delta: str, folded: str, speaker: str, chunk_id: str) -> SessionEvent:
        start = self._matcher.find_start(folded)
        if start is None:
            return SessionEvent(status=SessionStatus.IDLE)

        # Same-delta start+stop must win over entering Capturing
        stop = self._matcher.find_stop(folded, start.end)
        if stop is not None:
            inner = self._matcher.strip_triggers(delta[start.end:stop.start])
            between = " ".join(trim_punctuation(inner).split())
            if not between:
                logger.info("[%s] Start and stop in one chunk with nothing between", self.conversation_id)
                return SessionEvent(status=SessionStatus.IDLE)
            capture = CompletedCapture(
                conversation_id=self.conversation_id,
                lines=[BufferedLine(speaker=speaker or "", text=between)],
                contributors=[speaker] if speaker else [],
                started_at=datetime.now(timezone.utc),
                start_source_id=chunk_id,
                end_source_id=chunk_id,
                one_shot=True,
            )
            logger.info("[%s] One-shot capture completed in chunk %s", self.conversation_id, chunk_id)
            return SessionEvent(status=SessionStatus.COMPLETED, capture=capture)

        self._reset()
        self.state = SessionState.CAPTURING
        self.started_at = datetime.now(timezone.utc)
        self._started_clock = self._clock()
        self.start_source_id = chunk_id
        if speaker:
            self._contributors[speaker] = None
        self._append(delta[start.end:], speaker)
        logger.info("[%s] Capture started (trigger: %r)", self.conversation_id, start.phrase)
        return SessionEvent(status=SessionStatus.STARTED)

    def _advance_capturing(self, delta: str, folded: str, speaker: str, chunk_id: str) -> SessionEvent:
        stop = self._matcher.find_stop(folded)
        if stop is None:
            self._append(delta, speaker)
            return SessionEvent(status=SessionStatus.CAPTURING)

        self._append(delta[:stop.start], speaker)
        capture = CompletedCapture(
            conversation_id=self.conversation_id,
            lines=list(self.buffered_lines),
            contributors=self.contributors,
            started_at=self.started_at,
            start_source_id=self.start_source_id or "",
            end_source_id=chunk_id,
        )
        logger.info(
            "[%s] Capture completed in chunk %s (%d lines)",
            self.conversation_id, chunk_id, len(capture.lines),
        )
        self._reset()
        return SessionEvent(status=SessionStatus.COMPLETED, capture=capture)

    # ------------------------------------------------------------------
    # Buffer helpers
    # ------------------------------------------------------------------

    def _append(self, text: str, speaker: str) -> None:
        cleaned = trim_punctuation(self._matcher.strip_triggers(text))
        if not cleaned:
            return
        if speaker:
            self._contributors[speaker] = None
        self.buffered_lines.append(BufferedLine(speaker=speaker or "", text=" ".join(cleaned.split())))

    def _evict_if_overdue(self) -> bool:
        if not self.is_capturing:
            return False

        reason = None
        if self._max_chars and self.buffered_chars > self._max_chars:
            reason = f"buffer exceeded {self._max_chars} chars"
        elif (
            self._max_seconds
            and self._started_clock is not None
            and self._clock() - self._started_clock > self._max_seconds
        ):
            reason = f"open longer than {self._max_seconds:g}s"

        if reason is None:
            return False

        logger.warning(
            "[%s] Evicting capture started by chunk %s: %s",
            self.conversation_id, self.start_source_id, reason,
        )
        self._reset()
        return True

    def _reset(self) -> None:
        self.state = SessionState.IDLE
        self.buffered_lines = []
        self._contributors = {}
        self.started_at = None
        self.start_source_id = None
        self._started_clock = None
