import pytest

from rpg_narrator.gate import ConstraintGate
from rpg_narrator.narration import NarrationEngine
from rpg_narrator.pipeline.orchestrator import Router
from rpg_narrator.scenarios import ScenarioRegistry, default_registry


# ---------------------------------------------------------------------------
# StubLLM: dispatches by stage name, independent queue per stage
# ---------------------------------------------------------------------------

class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an exception instance is raised instead of returned.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(self, responses: dict[str, list]) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, list[dict[str, str]]]] = []

    def _next(self, stage: str, messages: list[dict[str, str]]):
        self.calls.append((stage, messages))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {[c[0] for c in self.calls]}"
            )
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def __call__(self, stage, messages, *, temperature=0.7, max_tokens=300) -> str:
        return self._next(stage, messages)

    def prompt(self, index: int) -> str:
        """Content of the user message sent in call number `index`."""
        return self.calls[index][1][-1]["content"]

    def stages(self) -> list[str]:
        return [stage for stage, _ in self.calls]

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed, so missing LLM calls fail the test."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


class StreamingStubLLM(StubLLM):
    """StubLLM whose responses are lists of fragments delivered via stream()."""

    async def __call__(self, stage, messages, *, temperature=0.7, max_tokens=300) -> str:
        return "".join(self._next(stage, messages))

    async def stream(self, stage, messages, *, temperature=0.7, max_tokens=300):
        for fragment in self._next(stage, messages):
            if isinstance(fragment, BaseException):
                raise fragment
            yield fragment


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def stub_llm():
    return StubLLM


@pytest.fixture
def streaming_stub_llm():
    return StreamingStubLLM


@pytest.fixture
def registry() -> ScenarioRegistry:
    return default_registry()


@pytest.fixture
def make_router(registry):
    """Build a Router around optional classifier/narrator LLMs."""

    def _make(classifier=None, narrator=None, **kwargs) -> Router:
        return Router(
            registry,
            ConstraintGate(classifier),
            NarrationEngine(narrator),
            **kwargs,
        )

    return _make
