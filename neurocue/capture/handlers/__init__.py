"""
Source Handlers

Each handler converts a source-specific delivery into the common Chunk
format and rejects malformed input at the boundary.

Available Handlers:
- TranscriptHandler: cumulative transcript webhooks
"""

from .base import BaseHandler, Chunk, ChunkValidationError
from .transcript import TranscriptHandler

__all__ = [
    "BaseHandler",
    "Chunk",
    "ChunkValidationError",
    "TranscriptHandler",
]
