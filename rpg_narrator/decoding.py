"""Decode-with-defaults for backend payloads.

Each payload type has exactly one decoder. A decoder returns either
Ok(value) or Failed(kind, detail); callers branch on the tag instead of
probing individual fields.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from rpg_narrator.models import ConstraintVerdict, NarrationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

FailureKind = Literal["not_json", "not_object"]

DEFAULT_VERDICT_REASON = "Input violates game constraints"
FALLBACK_NARRATION = "The narrator pauses, considering your words..."

_DELTA_KEYS = ("stateDelta", "state_delta", "gameStateChanges")
_ACTION_KEYS = ("suggestedActions", "suggested_actions")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failed:
    kind: FailureKind
    detail: str
    raw: Any = None


Decoded = Ok[T] | Failed


def parse_json_output(text: str) -> Any:
    """Parse JSON from LLM output, stripping markdown fences.

    Raises json.JSONDecodeError if the text is not JSON.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return json.loads(cleaned)


def _load_object(text: str) -> Decoded[dict[str, Any]]:
    try:
        data = parse_json_output(text)
    except json.JSONDecodeError as e:
        return Failed("not_json", str(e))
    except RecursionError:
        return Failed("not_json", "JSON nested too deeply")
    if not isinstance(data, dict):
        return Failed("not_object", f"expected a JSON object, got {type(data).__name__}", data)
    return Ok(data)


# ---------------------------------------------------------------------------
# Classifier verdicts
# ---------------------------------------------------------------------------

def _as_severity(value: Any, violation: bool) -> int:
    if isinstance(value, bool) or value is None:
        return 3 if violation else 0
    try:
        severity = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 3 if violation else 0
    return max(0, min(5, severity))


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def decode_verdict(text: str) -> Decoded[ConstraintVerdict]:
    """Decode a classifier reply.

    Missing `violation` is false; missing `severity` is 3 for a violation
    and 0 otherwise; missing `reason` is a generic message. The severity
    threshold is not applied here.
    """
    loaded = _load_object(text)
    if isinstance(loaded, Failed):
        return loaded
    data = loaded.value

    violation = _as_bool(data.get("violation", False))
    severity = _as_severity(data.get("severity"), violation)
    reason = data.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        reason = DEFAULT_VERDICT_REASON
    replacement = data.get("suggestedReplacement", data.get("suggested_replacement"))
    if not isinstance(replacement, str) or not replacement.strip():
        replacement = None

    return Ok(ConstraintVerdict(
        violation=violation,
        severity=severity,
        reason=reason,
        suggested_replacement=replacement,
    ))


# ---------------------------------------------------------------------------
# Narrator replies
# ---------------------------------------------------------------------------

def _as_actions(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(a).strip() for a in value if isinstance(a, (str, int, float)) and str(a).strip()]


def decode_narration(text: str) -> Decoded[NarrationResult]:
    """Decode a narrator reply.

    A JSON object is used field by field, with a fallback narration when
    `narration` is missing or blank. A bare JSON string is taken as the
    narration. Anything else fails with the raw text attached so the caller
    can fall back to it.
    """
    loaded = _load_object(text)
    if isinstance(loaded, Failed):
        if loaded.kind == "not_object" and isinstance(loaded.raw, str) and loaded.raw.strip():
            return Ok(NarrationResult(narration=loaded.raw.strip()))
        return loaded
    data = loaded.value

    narration = data.get("narration")
    if not isinstance(narration, str) or not narration.strip():
        logger.debug("narrator reply has no narration field, using fallback")
        narration = FALLBACK_NARRATION

    actions: Any = None
    for key in _ACTION_KEYS:
        if key in data:
            actions = data[key]
            break

    delta: dict[str, Any] | None = None
    for key in _DELTA_KEYS:
        candidate = data.get(key)
        if isinstance(candidate, dict) and candidate:
            delta = candidate
            break

    return Ok(NarrationResult(
        narration=narration.strip(),
        suggested_actions=_as_actions(actions),
        state_delta=delta,
    ))
