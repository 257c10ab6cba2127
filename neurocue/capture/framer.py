"""
Command Framer

Frames spoken automation commands: "hey neuro <command> over".

Once the wake marker is heard, every following delta is appended to the
conversation's CommandBuffer until the end marker shows up; the text in
between is the command block. A later wake marker restarts the block, and a
block that grows past max_command_chars or stays open past
max_command_seconds is evicted. Filler words and punctuation are dropped, and
a keyword pre-filter decides which automation (if any) the block asks for
before anything is sent to refinement.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ..common.config import AutomationConfig

logger = logging.getLogger("neurocue.capture.framer")

_PUNCT_RE = re.compile(r'(?<!\w)[^\w\s]+|[^\w\s]+(?!\w)')


@dataclass
class CommandBuffer:
    """Raw command text for one conversation; None when not accumulating"""
    conversation_id: str
    raw_text: Optional[str] = None
    opened_at: Optional[float] = None

    @property
    def is_accumulating(self) -> bool:
        return self.raw_text is not None

    def clear(self) -> None:
        self.raw_text = None
        self.opened_at = None


@dataclass
class FramedCommand:
    """A complete wake ... end-marker block"""
    conversation_id: str
    raw_block: str
    cleaned: str
    intent_kind: Optional[str] = None

    @property
    def has_intent(self) -> bool:
        return self.intent_kind is not None


def _token_pattern(token: str) -> str:
    return r'\s+'.join(re.escape(part) for part in token.split())


class CommandFramer:
    """
    Stateless framing rules; state lives in each conversation's CommandBuffer.
    """

    def __init__(
        self,
        wake_token: str = "hey",
        assistant_token: str = "neuro",
        end_marker: str = "over",
        filler_words: Sequence[str] = (),
        intent_keywords: Optional[Dict[str, List[str]]] = None,
        max_command_chars: int = 0,
        max_command_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_command_chars = max_command_chars
        self._max_command_seconds = max_command_seconds
        self._clock = clock

        # "hey neuro", "hey, neuro", "Hey-Neuro!" all open a command
        self._start_re = re.compile(
            rf'\b{_token_pattern(wake_token)}[\s\W_]*{_token_pattern(assistant_token)}\b',
            re.IGNORECASE,
        )
        self._end_re = re.compile(rf'\b{_token_pattern(end_marker)}\b', re.IGNORECASE)

        # Longest fillers first so "thank you" goes before "thanks"
        fillers = sorted({f.strip().lower() for f in filler_words if f and f.strip()}, key=len, reverse=True)
        self._filler_re = (
            re.compile(r'\b(?:' + '|'.join(_token_pattern(f) for f in fillers) + r')\b', re.IGNORECASE)
            if fillers else None
        )

        self._intent_res = [
            (kind, re.compile(
                r'\b(?:' + '|'.join(_token_pattern(k.lower()) for k in keywords) + r')',
                re.IGNORECASE,
            ))
            for kind, keywords in (intent_keywords or {}).items()
            if keywords
        ]

    @classmethod
    def from_config(cls, config: AutomationConfig) -> "CommandFramer":
        return cls(
            wake_token=config.wake_token,
            assistant_token=config.assistant_token,
            end_marker=config.end_marker,
            filler_words=config.filler_words,
            intent_keywords=config.intent_keywords,
            max_command_chars=config.max_command_chars,
            max_command_seconds=config.max_command_seconds,
        )

    def feed(self, buffer: CommandBuffer, delta: str) -> Optional[FramedCommand]:
        """
        Append a delta to the buffer and frame a command if one completed.

        A wake marker heard while a block is still open restarts the block
        there; the block handed on is the one between the end marker and
        the last wake marker before it.

        Args:
            buffer: The conversation's command buffer (mutated)
            delta: Newly-arrived transcript text

        Returns:
            FramedCommand when an end marker closes the block, else None
        """
        if not delta:
            return None

        self._evict_if_overdue(buffer)

        if buffer.raw_text is None:
            start = self._start_re.search(delta)
            if start is None:
                return None
            buffer.raw_text = delta[start.start():]
            buffer.opened_at = self._clock()
            logger.info("[%s] Command wake marker heard", buffer.conversation_id)
        else:
            buffer.raw_text += delta

        text = buffer.raw_text
        wakes = list(self._start_re.finditer(text))
        if not wakes:
            # Buffer always begins with the marker; anything else is corrupt
            buffer.clear()
            return None

        end = self._end_re.search(text, wakes[0].end())
        if end is None:
            latest = wakes[-1]
            if latest.start() > 0:
                logger.info("[%s] Command restarted at a new wake marker", buffer.conversation_id)
                buffer.raw_text = text[latest.start():]
                buffer.opened_at = self._clock()
            if self._max_command_chars and len(buffer.raw_text) > self._max_command_chars:
                logger.warning(
                    "[%s] Evicting command buffer: %d chars without an end marker",
                    buffer.conversation_id, len(buffer.raw_text),
                )
                buffer.clear()
            return None

        start = [w for w in wakes if w.end() <= end.start()][-1]
        block = text[start.end():end.start()]
        buffer.clear()

        cleaned = self.clean(block)
        command = FramedCommand(
            conversation_id=buffer.conversation_id,
            raw_block=block,
            cleaned=cleaned,
            intent_kind=self.classify(cleaned),
        )
        logger.info(
            "[%s] Command framed: %r (intent: %s)",
            buffer.conversation_id, cleaned, command.intent_kind or "none",
        )
        return command

    def _evict_if_overdue(self, buffer: CommandBuffer) -> None:
        if buffer.opened_at is None or not self._max_command_seconds:
            return
        age = self._clock() - buffer.opened_at
        if age > self._max_command_seconds:
            logger.warning(
                "[%s] Evicting command buffer: open %.0fs without an end marker",
                buffer.conversation_id, age,
            )
            buffer.clear()

    def clean(self, block: str) -> str:
        """Strip filler words and punctuation, collapse whitespace."""
        text = block
        if self._filler_re is not None:
            text = self._filler_re.sub(' ', text)
        # In-word joiners survive ("3:30", "e-mail"); everything else goes
        text = _PUNCT_RE.sub(' ', text)
        return " ".join(text.split())

    def classify(self, cleaned: str) -> Optional[str]:
        """
        Keyword pre-filter: the intent whose keyword occurs earliest.

        Returns None when no configured keyword occurs, which means the
        block is not worth a refinement call.
        """
        best_kind = None
        best_pos = -1
        for kind, pattern in self._intent_res:
            m = pattern.search(cleaned)
            if m is None:
                continue
            if best_kind is None or m.start() < best_pos:
                best_kind, best_pos = kind, m.start()
        return best_kind
