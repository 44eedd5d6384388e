"""Router: owns one session and runs its turns end-to-end.

Session phases:
  idle         no scenario loaded
  exploring    scenario active, not in dialogue
  in_dialogue  scenario active, talking to one NPC

Turn flow for one line of input:
  1. Empty input → /help.
  2. Slash command → dispatched from the command table. The gate and the
     narrator are skipped.
  3. Free text:
       a. ConstraintGate.evaluate
       b. violation  → narrate the refusal (policy "narrate") or return a
                       fixed refusal (policy "block")
          in dialogue → the NPC answers
          otherwise   → NarrationEngine.narrate
       c. StateMutator.apply on any returned delta (failures are dropped)
       d. append one TurnRecord to history

GameError raised anywhere in the turn becomes an error result. Backend and
parse problems never get this far; the gate and narrator absorb them.
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Literal

from rpg_narrator.errors import (
    GameError,
    NoActiveScenario,
    NpcNotFound,
    RealityNotFound,
    StateApplyError,
)
from rpg_narrator.gate import ConstraintGate
from rpg_narrator.models import (
    ConstraintVerdict,
    DialogueState,
    NarrationResult,
    NpcProfile,
    Scenario,
    SessionState,
    TurnContext,
    TurnRecord,
    TurnResult,
    ViolationPayload,
)
from rpg_narrator.mutator import StateMutator
from rpg_narrator.narration import FragmentCallback, NarrationEngine
from rpg_narrator.pipeline.commands import Command, dispatch, parse_command
from rpg_narrator.scenarios import ScenarioRegistry

logger = logging.getLogger(__name__)

ViolationPolicy = Literal["narrate", "block"]

OPENING_FALLBACK = "You find yourself in an unknown place..."
BLOCKED_NARRATION = "That is not something you can do in this world."


class Phase(str, Enum):
    IDLE = "idle"
    EXPLORING = "exploring"
    IN_DIALOGUE = "in_dialogue"


class Router:
    """State machine and turn sequencer for a single session.

    Args:
        registry:         Shared, read-only scenario table.
        gate:             Constraint gate for free-text input.
        narrator:         Narration engine.
        mutator:          Applies narrator deltas. Built from the registry
                          when omitted.
        violation_policy: "narrate" hands flagged input to the narrator for
                          an in-world refusal; "block" refuses outright.
    """

    def __init__(
        self,
        registry: ScenarioRegistry,
        gate: ConstraintGate,
        narrator: NarrationEngine,
        mutator: StateMutator | None = None,
        violation_policy: ViolationPolicy = "narrate",
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.narrator = narrator
        self.mutator = mutator or StateMutator(registry)
        self.violation_policy = violation_policy
        self.state = SessionState()

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        if self.state.scenario_id is None:
            return Phase.IDLE
        if self.state.dialogue.active:
            return Phase.IN_DIALOGUE
        return Phase.EXPLORING

    @property
    def scenario(self) -> Scenario:
        if self.state.scenario_id is None:
            raise NoActiveScenario()
        return self.registry.get(self.state.scenario_id)

    def context(self) -> TurnContext:
        """Snapshot of the session for the gate and the narrator."""
        if self.state.scenario_id is None:
            return TurnContext()
        scenario = self.scenario
        reality = scenario.realities[self.state.reality_id]
        npc_id = self.state.dialogue.npc_id if self.state.dialogue.active else None
        return TurnContext(
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            reality_id=self.state.reality_id,
            reality_description=reality.description,
            npc_id=npc_id,
            npc_name=scenario.npcs[npc_id].name if npc_id else None,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def load_scenario(self, scenario_id: str) -> Scenario:
        """Any phase → exploring, with flags, NPCs and history reset."""
        scenario = self.registry.get(scenario_id)
        state = self.state
        state.scenario_id = scenario.id
        state.reality_id = scenario.initial_reality
        state.flags = copy.deepcopy(scenario.initial_flags)
        state.npcs = {npc_id: npc.model_dump() for npc_id, npc in scenario.npcs.items()}
        state.history = []
        state.dialogue = DialogueState()
        logger.info("scenario loaded: %s (reality=%s)", scenario.id, scenario.initial_reality)
        return scenario

    def switch_reality(self, reality_id: str) -> str:
        scenario = self.scenario
        if reality_id not in scenario.realities:
            raise RealityNotFound(reality_id)
        self.state.reality_id = reality_id
        logger.info("reality switched: %s", reality_id)
        return reality_id

    def enter_dialogue(self, npc_id: str) -> NpcProfile:
        npc = self.scenario.npcs.get(npc_id)
        if npc is None:
            raise NpcNotFound(npc_id)
        self.state.dialogue = DialogueState(active=True, npc_id=npc_id)
        logger.info("dialogue entered: %s", npc_id)
        return npc

    def exit_dialogue(self) -> bool:
        """Return to exploring. Returns False if no dialogue was active."""
        if not self.state.dialogue.active:
            return False
        logger.info("dialogue exited: %s", self.state.dialogue.npc_id)
        self.state.dialogue = DialogueState()
        return True

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------

    async def start(
        self, scenario_id: str, on_fragment: FragmentCallback | None = None
    ) -> NarrationResult:
        """Load the initial scenario and produce its opening narration.

        Raises ScenarioNotFound if the scenario does not exist.
        """
        scenario = self.load_scenario(scenario_id)
        if not self.narrator.available:
            return NarrationResult(narration=OPENING_FALLBACK)
        result = await self.narrator.opening(scenario, on_fragment)
        if result.kind != "narration":
            return NarrationResult(narration=OPENING_FALLBACK)
        return result

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def handle_input(
        self, text: str, on_fragment: FragmentCallback | None = None
    ) -> TurnResult:
        """Process one line of player input to completion."""
        try:
            if not text or not text.strip():
                return dispatch(self, Command(name="help"))
            command = parse_command(text)
            if command is not None:
                logger.debug("dispatching command %s args=%s", command.name, command.args)
                return dispatch(self, command)
            return await self._play_turn(text.strip(), on_fragment)
        except GameError as e:
            logger.debug("turn rejected: %s", e)
            return TurnResult(type="error", message=str(e))

    async def _play_turn(
        self, text: str, on_fragment: FragmentCallback | None
    ) -> TurnResult:
        context = self.context()
        if context.scenario_id is None:
            raise NoActiveScenario()

        verdict = await self.gate.evaluate(text, context)

        if verdict.violation and self.violation_policy == "block":
            result = NarrationResult(narration=BLOCKED_NARRATION)
            result_type = "blocked"
        elif verdict.violation:
            result = await self.narrator.narrate(
                ViolationPayload(original_input=text, verdict=verdict), context, on_fragment,
            )
            result_type = "narration"
        elif context.in_dialogue:
            npc = self.scenario.npcs[context.npc_id]
            result = await self.narrator.speak(text, npc, context, on_fragment)
            result_type = "dialogue"
        else:
            result = await self.narrator.narrate(text, context, on_fragment)
            result_type = "narration"

        self._apply_delta(result)
        self._record(text, verdict, result)

        return TurnResult(
            type=result_type,
            message=verdict.reason if result_type == "blocked" else result.narration,
            narration=result,
            verdict=verdict,
            npc_id=context.npc_id,
        )

    def _apply_delta(self, result: NarrationResult) -> None:
        if not result.state_delta:
            return
        try:
            self.mutator.apply(result.state_delta, self.state)
        except StateApplyError as e:
            logger.warning("state delta dropped: %s", e)

    def _record(self, text: str, verdict: ConstraintVerdict, result: NarrationResult) -> None:
        self.state.history.append(
            TurnRecord(input=text, verdict=verdict, narration_result=result)
        )
