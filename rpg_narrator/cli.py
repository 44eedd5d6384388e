"""Interactive read loop.

Exit status 0 on normal termination (EOF, /quit, Ctrl-C), 1 when the game
cannot be initialised.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rpg_narrator.config import Settings, load_settings
from rpg_narrator.errors import ConfigError, GameError, ScenarioRegistryError
from rpg_narrator.gate import ConstraintGate
from rpg_narrator.models import NarrationResult, TurnResult
from rpg_narrator.narration import NarrationEngine
from rpg_narrator.pipeline.orchestrator import Router
from rpg_narrator.scenarios import default_registry

logger = logging.getLogger(__name__)

QUIT_COMMANDS = ("/quit", "/exit")


def build_router(settings: Settings) -> Router:
    registry = default_registry()
    gate = ConstraintGate(
        settings.classifier_llm(),
        severity_threshold=settings.severity_threshold,
        min_length=settings.min_input_length,
    )
    narrator = NarrationEngine(settings.narrator_llm(), stream=settings.stream)
    return Router(registry, gate, narrator, violation_policy=settings.violation_policy)


def _print_fragment(fragment: str) -> None:
    print(fragment, end="", flush=True)


def _print_actions(actions: list[str]) -> None:
    if actions:
        print("\nYou could try:")
        for action in actions:
            print(f"- {action}")


def _print_narration(result: NarrationResult, streamed: bool) -> None:
    # streamed text is raw JSON, so reprint the decoded narration
    if streamed:
        print()
    print(f"\n{result.narration}")
    _print_actions(result.suggested_actions)


def render(result: TurnResult, streamed: bool = False) -> None:
    if result.type in ("narration", "dialogue") and result.narration is not None:
        _print_narration(result.narration, streamed)
    elif result.type == "help":
        for entry in result.commands or []:
            print(f"  {entry.command:<18} {entry.description}")
    elif result.type == "error":
        print(f"\nError: {result.message}", file=sys.stderr)
    elif result.type == "blocked":
        print(f"\n{result.narration.narration if result.narration else result.message}")
    else:
        print(f"\n{result.message}")
    print()


async def run(settings: Settings) -> int:
    try:
        router = build_router(settings)
        stream_cb = _print_fragment if settings.debug and settings.stream else None
        opening = await router.start(settings.initial_scenario)
    except (ScenarioRegistryError, GameError) as e:
        logger.error("Failed to initialize game: %s", e)
        print(f"Failed to initialize game: {e}", file=sys.stderr)
        return 1

    print("Welcome to the AI Narrative Game!")
    print("Type /help for available commands.\n")
    print(opening.narration)
    _print_actions(opening.suggested_actions)
    print()

    loop = asyncio.get_running_loop()
    while True:
        try:
            line = await loop.run_in_executor(None, input, "> ")
        except EOFError:
            break
        if line.strip().lower() in QUIT_COMMANDS:
            break
        result = await router.handle_input(line, on_fragment=stream_cb)
        render(result, streamed=stream_cb is not None and result.type in ("narration", "dialogue"))

    print("Thanks for playing! Goodbye!")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Text adventure with a moderated AI narrator")
    parser.add_argument("--scenario", default=None,
                        help="Initial scenario id (default: INITIAL_SCENARIO or medieval_forest)")
    parser.add_argument("--env-file", type=Path, default=None,
                        help="Path to a .env file (default: ./.env)")
    parser.add_argument("--debug", action="store_true",
                        help="Verbose logging, and echo the raw narrator stream (STREAM_NARRATION "
                             "only has a visible effect in this mode)")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.env_file)
    except ConfigError as e:
        print(f"Failed to initialize game: {e}", file=sys.stderr)
        return 1
    updates: dict[str, object] = {}
    if args.scenario:
        updates["initial_scenario"] = args.scenario
    if args.debug:
        updates["debug"] = True
    if updates:
        settings = settings.model_copy(update=updates)

    logging.basicConfig(
        level=getattr(logging, settings.effective_log_level, logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        return asyncio.run(run(settings))
    except KeyboardInterrupt:
        print("\nThanks for playing! Goodbye!")
        return 0


if __name__ == "__main__":
    sys.exit(main())
