"""Two-stage constraint gate: deterministic signatures, then a semantic classifier."""

from .gate import (  # noqa: F401
    DEFAULT_MIN_LENGTH,
    DEFAULT_SEVERITY_THRESHOLD,
    ConstraintGate,
)
from .signatures import SIGNATURE_VERSION, match_signature  # noqa: F401
