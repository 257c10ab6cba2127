"""
Base Handler

Abstract base class for transcript source handlers.
Converts source-specific payloads into the common Chunk format and rejects
malformed deliveries before they reach the state machine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ChunkValidationError(ValueError):
    """Delivery is missing required fields or has the wrong types"""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name


@dataclass
class Chunk:
    """
    One cumulative transcript delivery.

    ``text`` is the whole transcript so far, not just the new words.
    """
    conversation_id: str
    text: str
    speaker: str
    chunk_id: str
    source: str = "webhook"
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def is_valid(self) -> bool:
        """Check if chunk has minimum required fields"""
        return bool(self.conversation_id and self.chunk_id and isinstance(self.text, str))


class BaseHandler(ABC):
    """
    Abstract base class for source handlers.

    Each handler must implement:
    - parse_event: Convert raw payload to Chunk
    - verify_signature: Verify webhook signature (if applicable)
    """

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    def parse_event(self, raw_data: Dict[str, Any]) -> Chunk:
        """
        Parse raw payload into a Chunk.

        Raises:
            ChunkValidationError: required fields missing or ill-typed
        """

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """
        Verify the webhook signature.

        Args:
            body: Raw request body
            signature: Signature from headers
            timestamp: Timestamp from headers

        Returns:
            True if signature is valid
        """
