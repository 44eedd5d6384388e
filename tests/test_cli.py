"""Tests for the interactive loop with the LLM backends disabled."""

import builtins

import pytest

from rpg_narrator.cli import build_router, main, render, run
from rpg_narrator.config import Settings
from rpg_narrator.models import NarrationResult, TurnResult
from rpg_narrator.narration import NarrationEngine
from rpg_narrator.pipeline.orchestrator import OPENING_FALLBACK


def _feed(monkeypatch, lines):
    """Replace input() with a scripted sequence ending in EOF."""
    pending = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(pending)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr(builtins, "input", fake_input)


def test_build_router_applies_settings():
    settings = Settings(llm_enabled=False, severity_threshold=4, violation_policy="block")
    router = build_router(settings)
    assert router.gate.severity_threshold == 4
    assert router.violation_policy == "block"
    assert router.narrator.available is False


async def test_run_session(monkeypatch, capsys):
    _feed(monkeypatch, ["/reality", "/talk old_hermit", "/quit", "never read"])
    code = await run(Settings(llm_enabled=False))
    out = capsys.readouterr().out
    assert code == 0
    assert "Welcome to the AI Narrative Game!" in out
    assert OPENING_FALLBACK in out
    assert "Current reality: daylight" in out
    assert "traveler" in out
    assert "Goodbye" in out


async def test_run_until_eof(monkeypatch, capsys):
    _feed(monkeypatch, ["/help"])
    assert await run(Settings(llm_enabled=False)) == 0
    assert "/inventory" in capsys.readouterr().out


async def test_run_unknown_scenario(capsys):
    code = await run(Settings(llm_enabled=False, initial_scenario="atlantis"))
    assert code == 1
    assert "atlantis" in capsys.readouterr().err


def test_main_unknown_scenario(monkeypatch):
    monkeypatch.setenv("LLM_DISABLED", "1")
    assert main(["--scenario", "atlantis"]) == 1


def test_main_bad_config(monkeypatch, capsys):
    monkeypatch.setenv("SEVERITY_THRESHOLD", "11")
    assert main([]) == 1
    assert "Failed to initialize game" in capsys.readouterr().err


def test_render_error_goes_to_stderr(capsys):
    render(TurnResult(type="error", message="Reality 'x' not found in current scenario"))
    captured = capsys.readouterr()
    assert "Reality 'x'" in captured.err
    assert captured.out.strip() == ""


def test_render_narration_with_actions(capsys):
    result = TurnResult(
        type="narration",
        narration=NarrationResult(narration="The trees whisper.", suggested_actions=["Listen"]),
    )
    render(result)
    out = capsys.readouterr().out
    assert "The trees whisper." in out
    assert "- Listen" in out


@pytest.mark.parametrize("kind", ["success", "info", "inventory"])
def test_render_plain_message(capsys, kind):
    render(TurnResult(type=kind, message="Reality shifted to twilight"))
    assert "Reality shifted to twilight" in capsys.readouterr().out


def test_help_explains_stream_visibility(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--help"])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert "--debug" in out
    assert "STREAM_NARRATION" in out


async def test_debug_session_echoes_raw_stream(monkeypatch, capsys, streaming_stub_llm):
    llm = streaming_stub_llm({
        "opening": [['{"narration": "Mist."}']],
        "narrator": [['{"narration": ', '"Leaves fall."}']],
    })
    monkeypatch.setattr(
        "rpg_narrator.cli.NarrationEngine",
        lambda _unused, stream: NarrationEngine(llm, stream=stream),
    )
    _feed(monkeypatch, ["I watch the trees"])
    assert await run(Settings(debug=True, llm_enabled=False)) == 0
    out = capsys.readouterr().out
    assert '{"narration": "Leaves fall."}' in out
    assert "\nLeaves fall.\n" in out
