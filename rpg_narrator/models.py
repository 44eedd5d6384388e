"""Core domain models.

Every component operates on these types. Pydantic validates data at each
boundary: scenario tables, backend payloads, and state deltas proposed by
the narrator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Scenario content (immutable)
# ---------------------------------------------------------------------------

class Reality(BaseModel):
    """A named sub-state of a scenario, e.g. daylight vs twilight."""

    model_config = ConfigDict(frozen=True)

    description: str
    available_actions: tuple[str, ...] = ()


class NpcProfile(BaseModel):
    """Static description of a non-player character."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    personality: str = ""
    initial_dialogue: str = ""
    location: str = ""


class Scenario(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    initial_reality: str
    initial_flags: dict[str, Any] = Field(default_factory=dict)
    npcs: dict[str, NpcProfile] = Field(default_factory=dict)
    realities: dict[str, Reality]


# ---------------------------------------------------------------------------
# Session state (mutable, one per session)
# ---------------------------------------------------------------------------

class Position(BaseModel):
    x: int = 0
    y: int = 0


class Player(BaseModel):
    name: str = "Adventurer"
    inventory: list[str] = Field(default_factory=list)
    health: int = 100
    position: Position = Field(default_factory=Position)


class DialogueState(BaseModel):
    active: bool = False
    npc_id: str | None = None


class ConstraintVerdict(BaseModel):
    """The gate's decision on one piece of player input."""

    violation: bool = False
    severity: int = Field(default=0, ge=0, le=5)
    reason: str = ""
    suggested_replacement: str | None = None
    degraded: bool = False


NarrationKind = Literal["narration", "degraded", "error"]


class NarrationResult(BaseModel):
    """Renderable narrator output.

    `kind` is "degraded" when a fixed fallback text was substituted because
    the backend is unavailable, and "error" when the backend call failed
    unexpectedly. `narration` is never empty in any case.
    """

    narration: str = Field(min_length=1)
    suggested_actions: list[str] = Field(default_factory=list)
    state_delta: dict[str, Any] | None = None
    kind: NarrationKind = "narration"
    error: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class TurnRecord(BaseModel):
    """One entry in the append-only session history."""

    input: str
    verdict: ConstraintVerdict
    narration_result: NarrationResult
    timestamp: datetime = Field(default_factory=utcnow)


class SessionState(BaseModel):
    """The single mutable record of a play session.

    Extra top-level keys are allowed so that narrator deltas can introduce
    their own bookkeeping next to the well-known fields.
    """

    model_config = ConfigDict(extra="allow")

    scenario_id: str | None = None
    reality_id: str | None = None
    player: Player = Field(default_factory=Player)
    npcs: dict[str, Any] = Field(default_factory=dict)
    flags: dict[str, Any] = Field(default_factory=dict)
    history: list[TurnRecord] = Field(default_factory=list)
    dialogue: DialogueState = Field(default_factory=DialogueState)


# ---------------------------------------------------------------------------
# Per-turn values
# ---------------------------------------------------------------------------

class TurnContext(BaseModel):
    """Read-only view of the session handed to the gate and the narrator."""

    model_config = ConfigDict(frozen=True)

    scenario_id: str | None = None
    scenario_name: str | None = None
    reality_id: str | None = None
    reality_description: str | None = None
    npc_id: str | None = None
    npc_name: str | None = None

    @property
    def in_dialogue(self) -> bool:
        return self.npc_id is not None


class ViolationPayload(BaseModel):
    """Flagged input handed to the narrator for an in-world refusal."""

    original_input: str
    verdict: ConstraintVerdict


TurnResultType = Literal[
    "narration",
    "dialogue",
    "blocked",
    "info",
    "success",
    "help",
    "inventory",
    "error",
]


class CommandHelp(BaseModel):
    command: str
    description: str


class TurnResult(BaseModel):
    """What the router hands back to its caller for one line of input."""

    type: TurnResultType
    message: str = ""
    narration: NarrationResult | None = None
    verdict: ConstraintVerdict | None = None
    npc_id: str | None = None
    items: list[str] | None = None
    commands: list[CommandHelp] | None = None
