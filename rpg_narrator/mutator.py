"""State mutator: merges narrator-proposed deltas into the session.

Merge policy, per top-level key of the delta:
  - both the current value and the delta value are mappings → one-level
    union, delta keys win
  - anything else (scalars, lists, one side missing) → delta value replaces
    the current value

Nested structures below the first level are replaced wholesale. The merge is
computed on a copy and committed only if the merged state validates, so a
delta is applied entirely or not at all.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from rpg_narrator.errors import StateApplyError
from rpg_narrator.models import SessionState
from rpg_narrator.scenarios import ScenarioRegistry

logger = logging.getLogger(__name__)

# Backend spellings of session fields
_KEY_ALIASES = {
    "realityId": "reality_id",
    "currentReality": "reality_id",
    "scenarioId": "scenario_id",
    "currentScenario": "scenario_id",
}

# Fields that only the router may change
_PROTECTED_KEYS = frozenset({"scenario_id", "history"})


def merge_delta(current: dict[str, Any], delta: dict[str, Any]) -> dict[str, Any]:
    """Return `current` with `delta` merged in, without mutating either."""
    merged = dict(current)
    for key, value in delta.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = {**existing, **value}
        else:
            merged[key] = value
    return merged


class StateMutator:
    """Applies state deltas to a SessionState.

    Args:
        registry: Used to check that the merged state still names a valid
                  reality and dialogue partner.
    """

    def __init__(self, registry: ScenarioRegistry) -> None:
        self._registry = registry

    def apply(self, delta: dict[str, Any], state: SessionState | None) -> None:
        """Merge `delta` into `state` in place.

        Does nothing (with a warning) when there is no state. Raises
        StateApplyError, leaving `state` untouched, when the delta names a
        protected field or the merged state is invalid.
        """
        if state is None:
            logger.warning("No session state provided to apply changes to")
            return
        if not delta:
            return

        normalised = {_KEY_ALIASES.get(k, k): v for k, v in delta.items()}
        protected = _PROTECTED_KEYS.intersection(normalised)
        if protected:
            raise StateApplyError(f"Delta may not change {', '.join(sorted(protected))}")

        current = state.model_dump()
        current.pop("history")
        merged = merge_delta(current, normalised)
        merged["history"] = state.history

        try:
            candidate = SessionState.model_validate(merged)
        except ValidationError as e:
            raise StateApplyError(f"Delta produces invalid state: {e}") from e
        self._check_invariants(candidate)

        for key in normalised:
            setattr(state, key, getattr(candidate, key))
        logger.debug("applied state delta keys=%s", sorted(normalised))

    def _check_invariants(self, state: SessionState) -> None:
        if state.scenario_id is None:
            return
        scenario = self._registry.get(state.scenario_id)
        if state.reality_id not in scenario.realities:
            raise StateApplyError(f"Delta sets unknown reality {state.reality_id!r}")
        dialogue = state.dialogue
        if dialogue.active and dialogue.npc_id not in scenario.npcs:
            raise StateApplyError(f"Delta starts dialogue with unknown NPC {dialogue.npc_id!r}")
        if not dialogue.active and dialogue.npc_id is not None:
            raise StateApplyError("Delta leaves a dialogue partner without an active dialogue")
