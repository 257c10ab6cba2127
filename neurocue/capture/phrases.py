"""
Phrase Matching

Pluggable trigger grammars for the chart capture pipeline.

Two grammars are supported:
- SimplePhraseSet: a flat list of exact substrings ("start chart")
- WakeIntentPhraseSet: a wake phrase ("hey neuro") AND an intent phrase
  ("create a chart") must both occur; the match position is the wake phrase

Every set answers ``match(text, start) -> PhraseMatch | None`` with the
earliest occurrence; ties on offset go to the phrase listed first.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from ..common.config import CaptureConfig

logger = logging.getLogger("neurocue.capture.phrases")


def fold_case(text: str) -> str:
    """
    Lower-case ``text`` without changing its length.

    Offsets found in the folded text must index the original text, so
    characters whose lower-case form is longer (e.g. "İ") are left as-is.
    """
    out = []
    for ch in text:
        lowered = ch.lower()
        out.append(lowered if len(lowered) == 1 else ch)
    return "".join(out)


def _normalize_phrases(phrases: Iterable[str]) -> List[str]:
    normalized = []
    seen = set()
    for phrase in phrases:
        p = fold_case(" ".join((phrase or "").split()))
        if p and p not in seen:
            seen.add(p)
            normalized.append(p)
    return normalized


@dataclass(frozen=True)
class PhraseMatch:
    """Location of a trigger inside a (case-folded) text"""
    start: int
    end: int
    phrase: str
    intent: Optional[str] = None


class PhraseSet(ABC):
    """Interface every trigger grammar implements."""

    @abstractmethod
    def match(self, text: str, start: int = 0) -> Optional[PhraseMatch]:
        """Earliest match at or after ``start``, or None."""

    @abstractmethod
    def spans(self, text: str) -> List[Tuple[int, int]]:
        """Every (start, end) span of trigger text, for scrubbing."""

    def __bool__(self) -> bool:
        return True


class SimplePhraseSet(PhraseSet):
    """Flat phrase membership."""

    def __init__(self, phrases: Sequence[str]):
        self._phrases = _normalize_phrases(phrases)

    @property
    def phrases(self) -> List[str]:
        return list(self._phrases)

    def __bool__(self) -> bool:
        return bool(self._phrases)

    def match(self, text: str, start: int = 0) -> Optional[PhraseMatch]:
        best: Optional[PhraseMatch] = None
        for phrase in self._phrases:
            pos = text.find(phrase, start)
            if pos < 0:
                continue
            # Strict comparison keeps the earlier-listed phrase on ties
            if best is None or pos < best.start:
                best = PhraseMatch(start=pos, end=pos + len(phrase), phrase=phrase)
        return best

    def spans(self, text: str) -> List[Tuple[int, int]]:
        return [(m.start, m.end) for m in self._iter_matches(text)]

    def _iter_matches(self, text: str) -> Iterator[PhraseMatch]:
        pos = 0
        while pos <= len(text):
            m = self.match(text, pos)
            if m is None:
                return
            yield m
            pos = max(m.end, m.start + 1)


class WakeIntentPhraseSet(PhraseSet):
    """Wake phrase + intent phrase co-occurrence."""

    def __init__(self, wake_phrases: Sequence[str], intent_phrases: Sequence[str]):
        self._wake = SimplePhraseSet(wake_phrases)
        self._intent = SimplePhraseSet(intent_phrases)

    def __bool__(self) -> bool:
        return bool(self._wake) and bool(self._intent)

    def match(self, text: str, start: int = 0) -> Optional[PhraseMatch]:
        wake = self._wake.match(text, start)
        if wake is None:
            return None
        intent = self._intent.match(text, start)
        if intent is None:
            return None
        return PhraseMatch(start=wake.start, end=wake.end, phrase=wake.phrase, intent=intent.phrase)

    def spans(self, text: str) -> List[Tuple[int, int]]:
        # Either half may arrive in a later delta than the other
        return self._wake.spans(text) + self._intent.spans(text)


class CompositePhraseSet(PhraseSet):
    """Any of several grammars; earliest wins, earlier-listed set on ties."""

    def __init__(self, sets: Sequence[PhraseSet]):
        self._sets = [s for s in sets if s]

    def __bool__(self) -> bool:
        return bool(self._sets)

    def match(self, text: str, start: int = 0) -> Optional[PhraseMatch]:
        best: Optional[PhraseMatch] = None
        for phrase_set in self._sets:
            m = phrase_set.match(text, start)
            if m is not None and (best is None or m.start < best.start):
                best = m
        return best

    def spans(self, text: str) -> List[Tuple[int, int]]:
        spans: List[Tuple[int, int]] = []
        for phrase_set in self._sets:
            spans.extend(phrase_set.spans(text))
        return spans


def remove_spans(text: str, spans: Iterable[Tuple[int, int]]) -> str:
    """Cut the given (possibly overlapping) spans out of ``text``."""
    merged: List[List[int]] = []
    for s, e in sorted(spans):
        if merged and s <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], e)
        else:
            merged.append([s, e])

    pieces = []
    pos = 0
    for s, e in merged:
        pieces.append(text[pos:s])
        pos = e
    pieces.append(text[pos:])
    return "".join(pieces)


class PhraseMatcher:
    """
    Start/stop trigger matcher for the chart capture state machine.

    Stateless: the same matcher is shared by every conversation. Inputs are
    expected to be case-folded (see ``fold_case``); offsets index the
    caller's original text.
    """

    def __init__(self, start_set: PhraseSet, stop_set: PhraseSet):
        self._start = start_set
        self._stop = stop_set

    @classmethod
    def from_phrases(
        cls,
        start_phrases: Sequence[str],
        stop_phrases: Sequence[str],
        wake_phrases: Sequence[str] = (),
        intent_phrases: Sequence[str] = (),
    ) -> "PhraseMatcher":
        start_set = CompositePhraseSet([
            SimplePhraseSet(start_phrases),
            WakeIntentPhraseSet(wake_phrases, intent_phrases),
        ])
        return cls(start_set, SimplePhraseSet(stop_phrases))

    @classmethod
    def from_config(cls, config: CaptureConfig) -> "PhraseMatcher":
        """Build from config, preferring a phrase-set file when configured."""
        start, stop = config.start_phrases, config.stop_phrases
        wake, intent = config.wake_phrases, config.intent_phrases

        if config.phrases_path:
            from .phrase_parser import parse_phrase_file

            try:
                parsed = parse_phrase_file(config.phrases_path)
            except FileNotFoundError:
                logger.warning("Phrase file not found: %s (using configured phrases)", config.phrases_path)
            else:
                start = parsed.get("start") or start
                stop = parsed.get("stop") or stop
                wake = parsed.get("wake") or wake
                intent = parsed.get("intent") or intent

        return cls.from_phrases(start, stop, wake, intent)

    def find_start(self, text: str, start: int = 0) -> Optional[PhraseMatch]:
        return self._start.match(text, start)

    def find_stop(self, text: str, start: int = 0) -> Optional[PhraseMatch]:
        return self._stop.match(text, start)

    def strip_triggers(self, text: str) -> str:
        """Remove every start/stop trigger occurrence from ``text``."""
        folded = fold_case(text)
        spans = self._start.spans(folded) + self._stop.spans(folded)
        if not spans:
            return text
        return remove_spans(text, spans)
