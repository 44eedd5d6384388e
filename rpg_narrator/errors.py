"""Error taxonomy.

GameError subclasses are user-facing: the router turns them into an error
result whose message names the offending identifier. InternalError
subclasses never cross a component boundary; each component absorbs them
into a degraded-but-valid result and logs them.
"""

from __future__ import annotations


class GameError(Exception):
    """Base for errors surfaced verbatim to the player."""


class ScenarioNotFound(GameError):
    def __init__(self, scenario_id: str) -> None:
        super().__init__(f"Scenario '{scenario_id}' not found")
        self.scenario_id = scenario_id


class RealityNotFound(GameError):
    def __init__(self, reality_id: str) -> None:
        super().__init__(f"Reality '{reality_id}' not found in current scenario")
        self.reality_id = reality_id


class NoActiveScenario(GameError):
    def __init__(self) -> None:
        super().__init__("No active scenario")


class NpcNotFound(GameError):
    def __init__(self, npc_id: str) -> None:
        super().__init__(f"NPC '{npc_id}' not found in current scenario")
        self.npc_id = npc_id


class UnknownCommand(GameError):
    def __init__(self, command: str) -> None:
        super().__init__(
            f"Unknown command: {command}. Type /help for a list of commands."
        )
        self.command = command


# ---------------------------------------------------------------------------
# Internal: absorbed and logged, never shown to the player
# ---------------------------------------------------------------------------

class InternalError(Exception):
    """Base for backend and parsing failures that degrade a component."""


class ClassifierUnavailable(InternalError):
    pass


class ClassifierParseError(InternalError):
    pass


class NarrationUnavailable(InternalError):
    pass


class NarrationParseError(InternalError):
    pass


class StateApplyError(InternalError):
    pass


# ---------------------------------------------------------------------------
# Fatal: initialization only
# ---------------------------------------------------------------------------

class ConfigError(ValueError):
    """Raised when settings cannot be loaded."""


class ScenarioRegistryError(ValueError):
    """Raised when the scenario table is empty or inconsistent."""
