"""
Delta Tracking

Transcription sources resend the whole transcript on every update. A cursor
per conversation turns each cumulative delivery into the suffix that has not
been scanned yet, so redelivery of already-seen text is a no-op.
"""

from typing import Dict


class DeltaCursor:
    """Monotonic cursor over one conversation's cumulative text."""

    __slots__ = ("_position",)

    def __init__(self, position: int = 0):
        self._position = max(0, position)

    @property
    def position(self) -> int:
        return self._position

    def advance(self, cumulative_text: str) -> str:
        """
        Return the unseen suffix of ``cumulative_text`` and move past it.

        A text no longer than what was already scanned (a duplicate or an
        out-of-order delivery) yields "" and leaves the cursor where it is.
        """
        text = cumulative_text or ""
        if len(text) <= self._position:
            return ""
        suffix = text[self._position:]
        self._position = len(text)
        return suffix


class DeltaTracker:
    """
    Keyed view over per-conversation cursors.

    The engine keeps a DeltaCursor inside each conversation's state; this
    class offers the same contract for callers that only have a key.
    """

    def __init__(self):
        self._cursors: Dict[str, DeltaCursor] = {}

    def delta(self, conversation_id: str, cumulative_text: str) -> str:
        cursor = self._cursors.get(conversation_id)
        if cursor is None:
            cursor = DeltaCursor()
            self._cursors[conversation_id] = cursor
        return cursor.advance(cumulative_text)

    def cursor(self, conversation_id: str) -> int:
        cursor = self._cursors.get(conversation_id)
        return cursor.position if cursor else 0

    def forget(self, conversation_id: str) -> None:
        self._cursors.pop(conversation_id, None)
