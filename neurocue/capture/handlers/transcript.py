"""
Transcript Webhook Handler

Handles cumulative transcript deliveries from the ingestion layer.

Accepted payload (field aliases in parentheses):
    {
        "conversation_id" ("meeting_id", "meetingId", "conversationId"): "...",
        "text" ("cumulative_text", "transcript"): "full transcript so far",
        "speaker": "Navdeep" | {"name": "Navdeep", ...},
        "chunk_id" ("chunkId", "id"): "..."
    }
"""

import hmac
import hashlib
import time
from typing import Any, Dict, Optional, Sequence

from .base import BaseHandler, Chunk, ChunkValidationError

DEFAULT_SPEAKER = "unknown"

# Reject signed requests older than this (replay protection)
MAX_SIGNATURE_AGE_SECONDS = 300


def _first(raw_data: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in raw_data and raw_data[key] is not None:
            return raw_data[key]
    return None


class TranscriptHandler(BaseHandler):
    """Handler for cumulative transcript webhooks."""

    CONVERSATION_KEYS = ("conversation_id", "conversationId", "meeting_id", "meetingId")
    TEXT_KEYS = ("text", "cumulative_text", "transcript")
    CHUNK_KEYS = ("chunk_id", "chunkId", "id")

    def __init__(self, signing_secret: str = ""):
        super().__init__("transcript")
        self._signing_secret = signing_secret

    def parse_event(self, raw_data: Dict[str, Any]) -> Chunk:
        if not isinstance(raw_data, dict):
            raise ChunkValidationError("payload must be a JSON object")

        conversation_id = _first(raw_data, self.CONVERSATION_KEYS)
        if not isinstance(conversation_id, (str, int)) or isinstance(conversation_id, bool) or str(conversation_id).strip() == "":
            raise ChunkValidationError("missing conversation_id", "conversation_id")

        text = _first(raw_data, self.TEXT_KEYS)
        if not isinstance(text, str):
            raise ChunkValidationError("missing or non-string text", "text")

        chunk_id = _first(raw_data, self.CHUNK_KEYS)
        if not isinstance(chunk_id, (str, int)) or isinstance(chunk_id, bool) or str(chunk_id).strip() == "":
            raise ChunkValidationError("missing chunk_id", "chunk_id")

        return Chunk(
            conversation_id=str(conversation_id).strip(),
            text=text,
            speaker=self._parse_speaker(raw_data.get("speaker")),
            chunk_id=str(chunk_id).strip(),
            source=str(raw_data.get("source") or self.source_name),
            raw_data=raw_data,
        )

    def _parse_speaker(self, speaker: Any) -> str:
        """Speakers arrive as a name or as {"name": ..., "color": ...}"""
        if isinstance(speaker, dict):
            speaker = speaker.get("name") or speaker.get("id")
        if isinstance(speaker, str) and speaker.strip():
            return speaker.strip()
        return DEFAULT_SPEAKER

    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """
        Verify an HMAC-SHA256 request signature.

        Signature format: "v0=" + hex(HMAC(secret, b"v0:{timestamp}:" + body))

        The raw body bytes are signed, so a body that is not valid UTF-8
        simply fails verification.
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        try:
            ts = int(timestamp)
            if abs(time.time() - ts) > MAX_SIGNATURE_AGE_SECONDS:
                return False
        except ValueError:
            return False

        expected_sig = self.sign(body, timestamp)
        return hmac.compare_digest(expected_sig.encode('utf-8'), signature.encode('utf-8'))

    def sign(self, body: bytes, timestamp: str) -> Optional[str]:
        """Signature the sender is expected to attach"""
        if not self._signing_secret:
            return None
        sig_basestring = b"v0:" + timestamp.encode('utf-8') + b":" + body
        return "v0=" + hmac.new(
            self._signing_secret.encode('utf-8'),
            sig_basestring,
            hashlib.sha256,
        ).hexdigest()
