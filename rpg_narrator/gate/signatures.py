"""Deterministic signature groups for the constraint gate's first stage.

Patterns are matched against case-folded input. Any match is a hard
violation that no classifier verdict can override. Bump SIGNATURE_VERSION
whenever a group changes so logged verdicts can be traced to a rule set.
"""

import re
from dataclasses import dataclass

SIGNATURE_VERSION = "3"


@dataclass(frozen=True)
class SignatureMatch:
    group: str
    pattern: str
    fragment: str


# Format: group name -> list of regex sources
SIGNATURE_GROUPS: dict[str, list[str]] = {
    "system_access": [
        r"\bsudo\b",
        r"\badmin\b",
        r"\bchmod\b",
        r"\bchown\b",
        r"\brm\s+-[a-z]*[rf]",
        r"\$\(",
        r"`[^`]*`",
        r"&&",
        r"\|\|",
        r"\|\s*(?:sh|bash|zsh)\b",
        r";\s*(?:rm|cat|ls|curl|wget|nc|bash|sh)\b",
        r">\s*/dev/",
        r"/etc/(?:passwd|shadow)",
    ],
    "prompt_injection": [
        r"\bignore\s+(?:all\s+)?(?:the\s+)?(?:previous|prior|above|earlier)\s+(?:instructions|prompts?|rules)",
        r"\bdisregard\s+(?:all\s+)?(?:the\s+)?(?:previous|prior|above|your)\s+(?:instructions|prompts?|rules)",
        r"\bfrom now on\b",
        r"\bact as\b",
        r"\byou are now\b",
        r"\bsystem prompt\b",
        r"\bnew instructions\b",
    ],
    "code_execution": [
        r"\beval\s*\(",
        r"\bexec\s*\(",
        r"<\s*script",
        r"\bprocess\.",
        r"\bwindow\.",
        r"\bdocument\.",
        r"\brequire\s*\(",
        r"__import__",
        r"\bos\.(?:system|popen|environ)",
        r"\bsubprocess\b",
    ],
    "jailbreak_persona": [
        r"\bjailbreak",
        r"\bdan mode\b",
        r"\bdo anything now\b",
        r"\bdeveloper mode\b",
        r"\bgod mode\b",
        r"\bunfiltered (?:ai|assistant|model)\b",
        r"\bno (?:rules|restrictions|filters) mode\b",
    ],
}

_COMPILED: list[tuple[str, re.Pattern[str]]] = [
    (group, re.compile(pattern))
    for group, patterns in SIGNATURE_GROUPS.items()
    for pattern in patterns
]


def match_signature(text: str) -> SignatureMatch | None:
    """Return the first signature that matches `text`, or None."""
    folded = text.casefold()
    for group, compiled in _COMPILED:
        found = compiled.search(folded)
        if found:
            return SignatureMatch(group=group, pattern=compiled.pattern, fragment=found.group(0))
    return None
