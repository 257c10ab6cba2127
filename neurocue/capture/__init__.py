"""
Capture - Voice Command Detection over Cumulative Transcripts

Watches live meeting transcripts for spoken brackets and turns what was
said between them into validated artifacts.

Key Components:
- DeltaTracker / DeltaCursor: unseen suffix of cumulative text
- PhraseMatcher: start/stop trigger grammars
- CaptureSession: Idle/Capturing state machine (charts)
- CommandFramer: "hey neuro ... over" command blocks (automations)
- IdempotencyGuard: one open automation per (conversation, intent)
- RefinementGate: admission rules for refinement output
- ArtifactMapper: admitted result -> stored artifact
- AutomationDispatcher: approved automation -> workflow webhook
- TriggerEngine: per-conversation actors wiring it all together

Rules:
1. Only the unseen suffix of a delivery is ever scanned
2. A chunk with start and stop completes at once, never leaves a session open
3. Refinement happens outside the conversation's critical region
4. No artifact without passing the gate; no placeholder when refinement fails
5. Force-stop discards partial captures, it never flushes them
"""

from .delta import DeltaCursor, DeltaTracker
from .phrases import PhraseMatcher, PhraseMatch, SimplePhraseSet, WakeIntentPhraseSet
from .session import CaptureSession, SessionStatus, CompletedCapture
from .framer import CommandFramer, CommandBuffer, FramedCommand
from .guard import IdempotencyGuard, GuardDecision, GuardOutcome
from .gate import RefinementGate, GateResult, NO_RESULT
from .mapper import ArtifactMapper
from .store import ArtifactStore, JsonArtifactStore, InvalidTransitionError
from .dispatcher import AutomationDispatcher, WebhookError
from .engine import TriggerEngine, ChunkOutcome, build_engine

__all__ = [
    "DeltaCursor",
    "DeltaTracker",
    "PhraseMatcher",
    "PhraseMatch",
    "SimplePhraseSet",
    "WakeIntentPhraseSet",
    "CaptureSession",
    "SessionStatus",
    "CompletedCapture",
    "CommandFramer",
    "CommandBuffer",
    "FramedCommand",
    "IdempotencyGuard",
    "GuardDecision",
    "GuardOutcome",
    "RefinementGate",
    "GateResult",
    "NO_RESULT",
    "ArtifactMapper",
    "ArtifactStore",
    "JsonArtifactStore",
    "InvalidTransitionError",
    "AutomationDispatcher",
    "WebhookError",
    "TriggerEngine",
    "ChunkOutcome",
    "build_engine",
]
