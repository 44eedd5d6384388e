"""Tests for rpg_narrator.models."""

import pytest
from pydantic import ValidationError

from rpg_narrator.models import (
    ConstraintVerdict,
    NarrationResult,
    Player,
    Reality,
    Scenario,
    SessionState,
    TurnContext,
    TurnRecord,
)


class TestSessionState:
    def test_defaults(self) -> None:
        s = SessionState()
        assert s.scenario_id is None
        assert s.reality_id is None
        assert s.player.name == "Adventurer"
        assert s.player.inventory == []
        assert s.player.health == 100
        assert s.history == []
        assert s.dialogue.active is False
        assert s.dialogue.npc_id is None

    def test_extra_keys_allowed(self) -> None:
        s = SessionState.model_validate({"weather": "rain"})
        assert s.weather == "rain"

    def test_serialise_roundtrip(self) -> None:
        s = SessionState(scenario_id="space_mission", reality_id="ship_bridge", flags={"a": 1})
        restored = SessionState.model_validate(s.model_dump())
        assert restored == s


class TestConstraintVerdict:
    def test_defaults(self) -> None:
        v = ConstraintVerdict()
        assert v.violation is False
        assert v.severity == 0
        assert v.degraded is False
        assert v.suggested_replacement is None

    @pytest.mark.parametrize("severity", [-1, 6])
    def test_severity_out_of_range_rejected(self, severity: int) -> None:
        with pytest.raises(ValidationError):
            ConstraintVerdict(severity=severity)


class TestNarrationResult:
    def test_empty_narration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            NarrationResult(narration="")

    def test_defaults(self) -> None:
        r = NarrationResult(narration="Dark.")
        assert r.suggested_actions == []
        assert r.state_delta is None
        assert r.kind == "narration"
        assert r.timestamp.tzinfo is not None

    def test_invalid_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            NarrationResult(narration="x", kind="gossip")


class TestScenario:
    def test_frozen(self) -> None:
        sc = Scenario(
            id="x", name="X", description="d", initial_reality="r",
            realities={"r": Reality(description="room")},
        )
        with pytest.raises(ValidationError):
            sc.name = "Y"


class TestTurnContext:
    def test_in_dialogue(self) -> None:
        assert TurnContext(npc_id="old_hermit").in_dialogue is True
        assert TurnContext().in_dialogue is False


class TestTurnRecord:
    def test_timestamp_set(self) -> None:
        rec = TurnRecord(
            input="look",
            verdict=ConstraintVerdict(),
            narration_result=NarrationResult(narration="Trees."),
        )
        assert rec.timestamp is not None


class TestPlayer:
    def test_health_must_be_int(self) -> None:
        with pytest.raises(ValidationError):
            Player(health="lots")
