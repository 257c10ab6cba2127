"""
Refinement Gate

Admission rules for the structured output of the refinement step. Nothing
becomes an artifact without passing here.

Visualization results need:
- a known chart type and a non-empty title
- label/value arrays of equal length, at least two points
- finite numeric values
- confidence (when given) within [0, 1] and at or above the floor

Automation results need an intent matching the pre-classified one, a
parameter mapping with finite numbers only, and confidence at or above the
(lower) automation floor.

A declared "no result" is a clean no-op, not a failure.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from ..common.schemas import AutomationIntent, ChartType, VisualSpec

logger = logging.getLogger("neurocue.capture.gate")


class NoResult:
    """Refinement found nothing worth structuring."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_RESULT"

    def __bool__(self) -> bool:
        return False


NO_RESULT = NoResult()

RefinementResult = Union[dict, NoResult]

_CHART_TYPES = {t.value for t in ChartType}
_NO_INTENT_VALUES = {"", "none", "null", "no_intent", "unknown"}


@dataclass
class GateResult:
    """Gate verdict; ``value`` is set only when admitted"""
    admitted: bool
    reason: str = ""
    value: Optional[Union[VisualSpec, AutomationIntent]] = None
    no_result: bool = False


def _reject(reason: str) -> GateResult:
    return GateResult(admitted=False, reason=reason)


def _no_result() -> GateResult:
    return GateResult(admitted=False, reason="refinement declared no result", no_result=True)


def _is_no_result(result: Any) -> bool:
    if result is NO_RESULT or result is None:
        return True
    return isinstance(result, dict) and bool(result.get("no_result"))


def to_finite_number(value: Any) -> Optional[float]:
    """Coerce ints, floats and numeric strings; None for anything non-finite."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _all_numbers_finite(value: Any) -> bool:
    """Walk nested parameters; any float must be finite."""
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_all_numbers_finite(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return all(_all_numbers_finite(v) for v in value)
    return True


class RefinementGate:
    """Validates refinement output against configurable admission floors."""

    def __init__(self, visual_min_confidence: float = 0.5, automation_min_confidence: float = 0.4):
        self.visual_min_confidence = visual_min_confidence
        self.automation_min_confidence = automation_min_confidence

    def _check_confidence(self, raw: Any, floor: float):
        """Returns (confidence, error)."""
        if raw is None:
            return None, None
        confidence = to_finite_number(raw)
        if confidence is None or not 0.0 <= confidence <= 1.0:
            return None, f"confidence {raw!r} is not a number in [0, 1]"
        if confidence < floor:
            return None, f"confidence {confidence:.2f} below floor {floor:.2f}"
        return confidence, None

    def check_visual(self, result: RefinementResult) -> GateResult:
        """Validate a chart refinement result."""
        if _is_no_result(result):
            return _no_result()
        if not isinstance(result, dict):
            return _reject(f"expected an object, got {type(result).__name__}")

        chart_type = result.get("chartType", result.get("chart_type", result.get("type")))
        if not isinstance(chart_type, str) or chart_type.strip().lower() not in _CHART_TYPES:
            return _reject(f"unknown chart type {chart_type!r}")

        title = result.get("title")
        if not isinstance(title, str) or not title.strip():
            return _reject("missing title")

        data = result.get("data") if isinstance(result.get("data"), dict) else result
        labels = data.get("labels")
        values = data.get("values")
        if not isinstance(labels, list) or not isinstance(values, list):
            return _reject("labels and values must both be arrays")
        if len(labels) != len(values):
            return _reject(f"labels ({len(labels)}) and values ({len(values)}) differ in length")
        if len(labels) < 2:
            return _reject("fewer than two data points")

        if any(not isinstance(label, (str, int, float)) or isinstance(label, bool) for label in labels):
            return _reject("labels must be strings")

        numbers = [to_finite_number(v) for v in values]
        if any(n is None for n in numbers):
            return _reject("values must be finite numbers")

        confidence, error = self._check_confidence(result.get("confidence"), self.visual_min_confidence)
        if error:
            return _reject(error)

        units = result.get("units", data.get("units"))
        description = result.get("description")

        try:
            spec = VisualSpec(
                chart_type=chart_type.strip().lower(),
                title=title.strip(),
                description=description.strip() if isinstance(description, str) else "",
                labels=[str(label) for label in labels],
                values=numbers,
                units=units.strip() if isinstance(units, str) and units.strip() else None,
                confidence=confidence,
            )
        except ValidationError as e:
            return _reject(f"schema validation failed: {e.errors()[0].get('msg', e)}")

        return GateResult(admitted=True, value=spec)

    def check_automation(self, result: RefinementResult, expected_intent: Optional[str] = None) -> GateResult:
        """Validate an automation refinement result."""
        if _is_no_result(result):
            return _no_result()
        if not isinstance(result, dict):
            return _reject(f"expected an object, got {type(result).__name__}")

        intent = result.get("intent", result.get("intent_kind"))
        if intent is None or (isinstance(intent, str) and intent.strip().lower() in _NO_INTENT_VALUES):
            return _no_result()
        if not isinstance(intent, str):
            return _reject(f"intent must be a string, got {type(intent).__name__}")
        intent = intent.strip().lower()
        if expected_intent and intent != expected_intent:
            return _reject(f"intent {intent!r} does not match classified {expected_intent!r}")

        parameters = result.get("parameters", result.get("params"))
        if not isinstance(parameters, dict):
            return _reject("parameters must be an object")
        if not _all_numbers_finite(parameters):
            return _reject("parameters contain non-finite numbers")

        confidence, error = self._check_confidence(result.get("confidence"), self.automation_min_confidence)
        if error:
            return _reject(error)

        try:
            intent_model = AutomationIntent(
                intent_kind=intent,
                parameters=parameters,
                confidence=confidence,
            )
        except ValidationError as e:
            return _reject(f"schema validation failed: {e.errors()[0].get('msg', e)}")

        return GateResult(admitted=True, value=intent_model)
