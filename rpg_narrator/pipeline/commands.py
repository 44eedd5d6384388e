"""Slash commands.

Input starting with COMMAND_PREFIX is a command: the first word (lowercased)
picks a handler from COMMANDS, the remaining words are its arguments.
Commands never reach the constraint gate or the narrator.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rpg_narrator.errors import NoActiveScenario, NpcNotFound, UnknownCommand
from rpg_narrator.models import CommandHelp, TurnResult

if TYPE_CHECKING:
    from rpg_narrator.pipeline.orchestrator import Router

COMMAND_PREFIX = "/"


@dataclass(frozen=True)
class Command:
    name: str
    args: list[str] = field(default_factory=list)


def parse_command(text: str) -> Command | None:
    """Split "/name arg1 arg2" into a Command, or return None for free text."""
    stripped = text.strip()
    if not stripped.startswith(COMMAND_PREFIX):
        return None
    name, *args = stripped[len(COMMAND_PREFIX):].split() or [""]
    return Command(name=name.lower(), args=args)


# ── Handlers ─────────────────────────────────────────────


def _reality(router: Router, args: list[str]) -> TurnResult:
    if not args:
        if router.state.scenario_id is None:
            raise NoActiveScenario()
        return TurnResult(type="info", message=f"Current reality: {router.state.reality_id}")
    reality_id = router.switch_reality(args[0])
    return TurnResult(type="success", message=f"Reality shifted to {reality_id}")


def _help(router: Router, args: list[str]) -> TurnResult:
    return TurnResult(type="help", commands=list(COMMAND_HELP))


def _inventory(router: Router, args: list[str]) -> TurnResult:
    items = list(router.state.player.inventory)
    message = ", ".join(items) if items else "Your inventory is empty."
    return TurnResult(type="inventory", message=message, items=items)


def _talk(router: Router, args: list[str]) -> TurnResult:
    scenario = router.scenario
    if not args:
        names = ", ".join(f"{npc_id} ({npc.name})" for npc_id, npc in scenario.npcs.items())
        return TurnResult(type="info", message=f"Talk to whom? Nearby: {names or 'nobody'}")
    npc_id = _resolve_npc(router, " ".join(args))
    npc = router.enter_dialogue(npc_id)
    return TurnResult(
        type="dialogue",
        npc_id=npc_id,
        message=npc.initial_dialogue or f"{npc.name} turns to face you.",
    )


def _resolve_npc(router: Router, query: str) -> str:
    """Accept an NPC id or, failing that, its display name."""
    npcs = router.scenario.npcs
    if query in npcs:
        return query
    folded = query.casefold()
    for npc_id, npc in npcs.items():
        if npc.name.casefold() == folded or npc_id == folded.replace(" ", "_"):
            return npc_id
    raise NpcNotFound(query)


def _leave(router: Router, args: list[str]) -> TurnResult:
    npc_id = router.state.dialogue.npc_id
    if not router.exit_dialogue():
        return TurnResult(type="info", message="You are not talking to anyone.")
    return TurnResult(type="success", npc_id=npc_id, message="You end the conversation.")


def _scenario(router: Router, args: list[str]) -> TurnResult:
    if not args:
        lines = [f"{s['id']}: {s['name']} - {s['description']}" for s in router.registry.summaries()]
        return TurnResult(type="info", message="\n".join(lines))
    scenario = router.load_scenario(args[0])
    return TurnResult(type="success", message=f"Scenario loaded: {scenario.name}")


CommandHandler = Callable[["Router", list[str]], TurnResult]

COMMANDS: dict[str, CommandHandler] = {
    "reality": _reality,
    "help": _help,
    "inventory": _inventory,
    "talk": _talk,
    "leave": _leave,
    "scenario": _scenario,
}

COMMAND_HELP: tuple[CommandHelp, ...] = (
    CommandHelp(command="/reality [name]", description="Show or switch the current reality"),
    CommandHelp(command="/help", description="Show this help message"),
    CommandHelp(command="/inventory", description="Show your inventory"),
    CommandHelp(command="/talk [npc]", description="Start talking to an NPC"),
    CommandHelp(command="/leave", description="End the current conversation"),
    CommandHelp(command="/scenario [id]", description="List scenarios or load one"),
)


def dispatch(router: Router, command: Command) -> TurnResult:
    handler = COMMANDS.get(command.name)
    if handler is None:
        raise UnknownCommand(command.name or COMMAND_PREFIX)
    return handler(router, command.args)
