"""Completeness detection for generated timeline responses."""
import re
from dataclasses import dataclass, field
from typing import List, Sequence

from app.services.timeline_schema import DEFAULT_PHASE_SIGNATURES, PhaseSignature
from app.utils.json_text import strip_code_fences

CLOSING_SEQUENCE = re.compile(r"\}\s*\]\s*\}\s*$")


@dataclass
class CompletenessReport:
    """
    Completeness of a response.

    Attributes:
        is_complete: All phases present and the root object closed
        missing_phases: Labels of phases whose signature was not found
        has_closing_sequence: Text ends with ``} ] }``
    """
    is_complete: bool
    missing_phases: List[str] = field(default_factory=list)
    has_closing_sequence: bool = False


def signature_pattern(signature: PhaseSignature):
    """Regex tying ``"id": <n>`` to a phase name starting with the prefix."""
    return re.compile(
        r'"id"\s*:\s*%d\b[^{}]*?"name"\s*:\s*"\s*%s'
        % (signature.phase_number, re.escape(signature.name_prefix)),
        re.IGNORECASE | re.DOTALL,
    )


class CompletenessDetector:
    """
    Decides whether a response contains every phase and is fully closed.

    Both conditions are required; a syntactically complete response that
    lacks a phase is incomplete.
    """

    def __init__(self, signatures: Sequence[PhaseSignature] = DEFAULT_PHASE_SIGNATURES):
        self.signatures = list(signatures)
        self._patterns = [(sig, signature_pattern(sig)) for sig in self.signatures]

    def check(self, text: str) -> CompletenessReport:
        cleaned = strip_code_fences(text or "")
        missing = [sig.label for sig, pattern in self._patterns if not pattern.search(cleaned)]
        closed = bool(CLOSING_SEQUENCE.search(cleaned))
        return CompletenessReport(
            is_complete=closed and not missing,
            missing_phases=missing,
            has_closing_sequence=closed,
        )

    def is_response_complete(self, text: str) -> bool:
        return self.check(text).is_complete
