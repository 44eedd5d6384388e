"""Constraint gate: decides whether player input is an exploit attempt.

Evaluation order:
  1. Trivial input (shorter than min_length after trimming) is allowed
     without calling anything.
  2. Deterministic signatures. A match is a severity-5 violation and the
     classifier is never consulted.
  3. Semantic classifier, only when one is configured. Its verdict is
     decoded leniently and then held to the severity threshold: anything
     below it is allowed, whatever the classifier claimed.

Any classifier failure fails open with a degraded verdict. Signatures have
already run by then.
"""

from __future__ import annotations

import logging

from rpg_narrator.decoding import Failed, decode_verdict
from rpg_narrator.errors import ClassifierParseError, ClassifierUnavailable
from rpg_narrator.gate.signatures import SIGNATURE_VERSION, match_signature
from rpg_narrator.llm import LLM, LLMError
from rpg_narrator.models import ConstraintVerdict, TurnContext
from rpg_narrator.prompts import classifier_messages

logger = logging.getLogger(__name__)

DEFAULT_SEVERITY_THRESHOLD = 3
DEFAULT_MIN_LENGTH = 3

CLASSIFIER_TEMPERATURE = 1.0
CLASSIFIER_MAX_TOKENS = 150


class ConstraintGate:
    """Two-stage moderation of free-text input.

    Args:
        classifier:         LLM used for semantic classification, or None to
                            run signatures only.
        severity_threshold: Minimum severity (0-5) for a classifier verdict to
                            count as a violation.
        min_length:         Inputs shorter than this (after trimming) are
                            allowed without evaluation.
    """

    def __init__(
        self,
        classifier: LLM | None = None,
        severity_threshold: int = DEFAULT_SEVERITY_THRESHOLD,
        min_length: int = DEFAULT_MIN_LENGTH,
    ) -> None:
        if not 0 <= severity_threshold <= 5:
            raise ValueError(f"severity_threshold must be 0-5, got {severity_threshold}")
        self._classifier = classifier
        self._threshold = severity_threshold
        self._min_length = min_length

    @property
    def severity_threshold(self) -> int:
        return self._threshold

    async def evaluate(self, text: str, context: TurnContext) -> ConstraintVerdict:
        if not text or len(text.strip()) < self._min_length:
            return ConstraintVerdict(violation=False, severity=0, reason="too short")

        match = match_signature(text)
        if match:
            logger.info(
                "gate blocked input: signature group=%s fragment=%r version=%s",
                match.group, match.fragment, SIGNATURE_VERSION,
            )
            return ConstraintVerdict(
                violation=True, severity=5, reason="deterministic signature match",
            )

        if self._classifier is None:
            return ConstraintVerdict(violation=False, severity=0, reason="no classifier configured")

        try:
            verdict = await self._classify(text, context)
        except (ClassifierUnavailable, ClassifierParseError) as e:
            logger.warning("classifier degraded, allowing input: %s", e)
            return ConstraintVerdict(
                violation=False, severity=0, reason="classifier unavailable", degraded=True,
            )

        return self._apply_threshold(verdict)

    async def _classify(self, text: str, context: TurnContext) -> ConstraintVerdict:
        try:
            raw = await self._classifier(
                "classifier",
                classifier_messages(text, context),
                temperature=CLASSIFIER_TEMPERATURE,
                max_tokens=CLASSIFIER_MAX_TOKENS,
            )
        except LLMError as e:
            raise ClassifierUnavailable(str(e)) from e
        except Exception as e:
            logger.exception("unexpected classifier failure")
            raise ClassifierUnavailable(f"{type(e).__name__}: {e}") from e

        try:
            decoded = decode_verdict(raw)
        except Exception as e:
            logger.exception("classifier reply could not be decoded")
            raise ClassifierParseError(f"{type(e).__name__}: {e}") from e
        if isinstance(decoded, Failed):
            raise ClassifierParseError(f"{decoded.kind}: {decoded.detail}")
        return decoded.value

    def _apply_threshold(self, verdict: ConstraintVerdict) -> ConstraintVerdict:
        if verdict.violation and verdict.severity < self._threshold:
            logger.debug(
                "classifier violation below threshold (%d < %d), allowing",
                verdict.severity, self._threshold,
            )
            return verdict.model_copy(update={"violation": False})
        if verdict.violation:
            logger.info("classifier flagged input: severity=%d reason=%s", verdict.severity, verdict.reason)
        return verdict
