"""Scenario registry.

A read-only table of scenario definitions keyed by id, built once at start-up
and safely shared between sessions. Scenario content itself is plain data;
BUILTIN_SCENARIOS is what the game ships with.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from rpg_narrator.errors import ScenarioNotFound, ScenarioRegistryError
from rpg_narrator.models import NpcProfile, Reality, Scenario


class ScenarioRegistry:
    def __init__(self, scenarios: Iterable[Scenario]) -> None:
        table: dict[str, Scenario] = {}
        for scenario in scenarios:
            if scenario.id in table:
                raise ScenarioRegistryError(f"Duplicate scenario id {scenario.id!r}")
            if scenario.initial_reality not in scenario.realities:
                raise ScenarioRegistryError(
                    f"Scenario {scenario.id!r}: initial reality "
                    f"{scenario.initial_reality!r} is not one of its realities"
                )
            table[scenario.id] = scenario
        if not table:
            raise ScenarioRegistryError("Scenario registry is empty")
        self._scenarios: Mapping[str, Scenario] = MappingProxyType(table)

    def get(self, scenario_id: str) -> Scenario:
        try:
            return self._scenarios[scenario_id]
        except KeyError:
            raise ScenarioNotFound(scenario_id) from None

    def __contains__(self, scenario_id: object) -> bool:
        return scenario_id in self._scenarios

    def __len__(self) -> int:
        return len(self._scenarios)

    def summaries(self) -> list[dict[str, str]]:
        """Return {id, name, description} summaries in registration order."""
        return [
            {"id": s.id, "name": s.name, "description": s.description}
            for s in self._scenarios.values()
        ]


# ---------------------------------------------------------------------------
# Built-in content
# ---------------------------------------------------------------------------

BUILTIN_SCENARIOS: tuple[Scenario, ...] = (
    Scenario(
        id="medieval_forest",
        name="The Enchanted Forest",
        description="A mystical forest filled with magic and mystery.",
        initial_reality="daylight",
        initial_flags={"hasMetGuide": False, "foundAncientArtifact": False},
        npcs={
            "old_hermit": NpcProfile(
                name="Old Hermit",
                description="A wise but reclusive hermit who knows the forest well.",
                personality="Eccentric but kind, speaks in riddles",
                initial_dialogue="Ah, a traveler in these ancient woods. What brings you here?",
                location="forest_clearing",
            ),
        },
        realities={
            "daylight": Reality(
                description="The forest is bathed in warm sunlight filtering through the leaves.",
                available_actions=("explore", "talk to npc", "rest"),
            ),
            "twilight": Reality(
                description="The sun is setting, casting long shadows through the trees.",
                available_actions=("explore", "make camp", "light torch"),
            ),
        },
    ),
    Scenario(
        id="space_mission",
        name="Deep Space Expedition",
        description="A perilous journey through uncharted space.",
        initial_reality="ship_bridge",
        initial_flags={"hasMetCaptain": False, "shipStatus": "nominal"},
        npcs={
            "captain": NpcProfile(
                name="Captain Nova",
                description="The experienced captain of the starship.",
                personality="Commanding but fair, values efficiency",
                initial_dialogue="Welcome aboard, crew member. We have a mission to complete.",
                location="bridge",
            ),
        },
        realities={
            "ship_bridge": Reality(
                description="The command center of the starship, filled with holographic displays.",
                available_actions=("check status", "talk to crew", "navigate"),
            ),
            "space_walk": Reality(
                description="Floating in the void of space, tethered to the ship.",
                available_actions=("repair hull", "return to airlock", "observe"),
            ),
        },
    ),
)


def default_registry() -> ScenarioRegistry:
    return ScenarioRegistry(BUILTIN_SCENARIOS)
