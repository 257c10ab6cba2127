"""
LLM Refinement

Turns captured speech into structured JSON for the gate:
- VisualRefiner: chart type, title, labels/values (~400 tokens)
- AutomationRefiner: intent + parameters for a framed command (~250 tokens)

Both only structure what was said. They never invent data: if the model
finds nothing chartable or actionable it answers {"no_result": true}, which
maps to NO_RESULT. An unavailable client raises RefinementUnavailable; the
pipelines drop the event rather than substitute a placeholder.
"""

import logging
from typing import Optional, Sequence, Tuple

from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from .gate import NO_RESULT, RefinementResult

logger = logging.getLogger("neurocue.capture.refiner")

# Spoken captures can run long; the tail is rarely needed to build a chart
MAX_CAPTURE_CHARS = 4000


VISUAL_PROMPT = """You turn a spoken meeting excerpt into a chart specification.

The excerpt was dictated between "start chart" and "end chart" (or similar) and may contain speech-recognition errors. Extract ONLY data that was actually spoken. Never invent numbers.

Respond with JSON only:
{"chartType": "bar|line|pie|timeline|radial", "title": "short title", "description": "one sentence", "data": {"labels": ["..."], "values": [0]}, "units": "optional unit or omit", "confidence": 0.0-1.0}

Rules:
- labels and values must have the same length, at least 2 points
- values are plain numbers (no units, no strings)
- pie for shares of a whole, line/timeline for change over time, bar for comparisons
- if there is no chartable data, respond with {"no_result": true}"""


AUTOMATION_PROMPT = """You turn a spoken assistant command into an automation request.

Supported intents:
- schedule_meeting: parameters {"title", "date", "time", "duration_minutes", "attendees"}
- send_email: parameters {"to", "subject", "body"}
- create_reminder: parameters {"text", "date", "time"}
- create_task: parameters {"title", "assignee", "due_date"}

Use the parameters that were spoken; omit the rest. Keep dates and times as spoken (e.g. "friday", "3pm").

Respond with JSON only:
{"intent": "<intent>", "parameters": {...}, "confidence": 0.0-1.0}

If the command does not ask for one of the supported intents, respond with {"no_result": true}"""


class RefinementError(RuntimeError):
    """Refinement call failed or returned something unusable"""


class RefinementUnavailable(RefinementError):
    """No LLM client configured"""


class _LLMRefiner:
    """Shared plumbing: availability, the off-loop call, JSON parsing."""

    system_prompt = ""
    max_tokens = 512

    def __init__(self, llm: LLMClient):
        self._llm = llm

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def _call(self, user_msg: str) -> RefinementResult:
        if not self.is_available:
            raise RefinementUnavailable(f"{type(self).__name__}: LLM client unavailable")

        try:
            raw = await self._llm.agenerate(
                user_msg,
                system=self.system_prompt,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise RefinementError(f"{type(self).__name__} call failed: {e}") from e

        return self._parse_response(raw)

    def _parse_response(self, raw: str) -> RefinementResult:
        data = parse_llm_json(raw)
        if not data:
            raise RefinementError(f"No JSON object in refinement response: {raw[:120]!r}")
        if data.get("no_result"):
            return NO_RESULT
        return data


class VisualRefiner(_LLMRefiner):
    """Chart refinement for completed captures."""

    system_prompt = VISUAL_PROMPT
    max_tokens = 400

    async def refine(self, captured_text: str, contributors: Sequence[str]) -> RefinementResult:
        user_msg = f"<excerpt>\n{captured_text[:MAX_CAPTURE_CHARS]}\n</excerpt>"
        if contributors:
            user_msg += f"\nSpeakers: {', '.join(contributors)}"
        return await self._call(user_msg)


class AutomationRefiner(_LLMRefiner):
    """Intent/parameter refinement for framed commands."""

    system_prompt = AUTOMATION_PROMPT
    max_tokens = 250

    async def refine(
        self,
        captured_text: str,
        contributors: Sequence[str],
        intent_hint: Optional[str] = None,
    ) -> RefinementResult:
        user_msg = f"Command: {captured_text[:MAX_CAPTURE_CHARS]}"
        if intent_hint:
            user_msg += f"\n(Keyword match suggests intent: {intent_hint})"
        if contributors:
            user_msg += f"\nSpoken by: {', '.join(contributors)}"
        return await self._call(user_msg)


def build_refiners(llm: LLMClient) -> Tuple[VisualRefiner, AutomationRefiner]:
    """Visual and automation refiners sharing one client."""
    if not llm.is_available:
        logger.warning("LLM client unavailable: captures and commands will be dropped")
    return VisualRefiner(llm), AutomationRefiner(llm)
