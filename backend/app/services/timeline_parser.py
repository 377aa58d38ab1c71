"""
Timeline response parser.

Turns raw model output into a TimelineDraft. Model output is often wrapped
in markdown fences, followed by commentary, or cut off mid-structure when
the model hits its output limit. Three strategies are tried in order:

1. direct        - parse the fence-stripped text as JSON
2. boundary      - parse the first balanced ``{...}`` block, ignoring noise
3. phase_salvage - parse each phase object on its own and keep the ones
                   that are intact; root fields are regex-extracted

Only when all three fail is TimelineParseError raised.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.services.balanced_scanner import find_balanced_end
from app.services.timeline_schema import TimelineDraft
from app.utils.json_text import strip_code_fences

logger = logging.getLogger(__name__)

PHASE_START = re.compile(r'\{\s*"id"\s*:\s*\d+\s*,\s*"name"\s*:')
OVERVIEW_FIELD = re.compile(r'"overview"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
TOTAL_DURATION_FIELD = re.compile(r'"totalDuration"\s*:\s*"((?:[^"\\]|\\.)*)"')
CURRENT_PROGRESS_FIELD = re.compile(r'"currentProgress"\s*:\s*(\d+)')


class TimelineParseError(Exception):
    """Raised when no strategy can recover a timeline from the response."""

    def __init__(self, message: str, diagnostics: Optional[Dict[str, str]] = None):
        self.diagnostics = diagnostics or {}
        super().__init__(message)


@dataclass
class ParsedTimeline:
    """Result of a successful parse."""
    draft: TimelineDraft
    strategy: str
    payload: Dict[str, Any] = field(default_factory=dict)
    skipped_phases: int = 0


class TimelineResponseParser:
    """
    Recovering parser for model-generated timeline JSON.

    Stateless; one instance can be shared.
    """

    STRATEGY_DIRECT = "direct"
    STRATEGY_BOUNDARY = "boundary"
    STRATEGY_PHASE_SALVAGE = "phase_salvage"

    def parse(self, text: str) -> ParsedTimeline:
        """
        Parse model output into a draft.

        Args:
            text: Raw model output (possibly fenced, noisy or truncated)

        Returns:
            ParsedTimeline with the draft and the strategy that succeeded

        Raises:
            TimelineParseError: If every strategy fails
        """
        cleaned = strip_code_fences(text or "")
        diagnostics: Dict[str, str] = {}

        strategies = (
            (self.STRATEGY_DIRECT, self._parse_direct),
            (self.STRATEGY_BOUNDARY, self._parse_boundary),
            (self.STRATEGY_PHASE_SALVAGE, self._parse_phase_salvage),
        )
        for name, strategy in strategies:
            try:
                result = strategy(cleaned)
            except (ValueError, TypeError) as e:
                diagnostics[name] = str(e)
                logger.debug("Parse strategy %s failed: %s", name, e)
                continue
            logger.info(
                "Parsed timeline with strategy %s (%d phases)",
                name, len(result.draft.phases)
            )
            return result

        logger.warning("All parse strategies failed for response of %d chars", len(cleaned))
        raise TimelineParseError(
            "Could not parse timeline from model response: "
            + "; ".join(f"{name}: {reason}" for name, reason in diagnostics.items()),
            diagnostics=diagnostics,
        )

    def _parse_direct(self, text: str) -> ParsedTimeline:
        payload = json.loads(text)
        return self._build(payload, self.STRATEGY_DIRECT)

    def _parse_boundary(self, text: str) -> ParsedTimeline:
        start = text.find("{")
        if start == -1:
            raise ValueError("No JSON object found")
        end = find_balanced_end(text, start)
        if end is None:
            raise ValueError("Unterminated JSON object")
        payload = json.loads(text[start:end])
        return self._build(payload, self.STRATEGY_BOUNDARY)

    def _parse_phase_salvage(self, text: str) -> ParsedTimeline:
        phases: List[Dict[str, Any]] = []
        seen_ids = set()
        skipped = 0
        # End of the last parsed phase; id/name objects nested in it are not phases
        covered_until = 0

        for match in PHASE_START.finditer(text):
            if match.start() < covered_until:
                continue
            end = find_balanced_end(text, match.start())
            if end is None:
                skipped += 1
                continue
            try:
                phase = json.loads(text[match.start():end])
            except ValueError:
                skipped += 1
                continue
            covered_until = end
            if not isinstance(phase, dict) or phase.get("id") in seen_ids:
                continue
            seen_ids.add(phase.get("id"))
            phases.append(phase)

        if not phases:
            raise ValueError("No complete phase objects found")

        phases.sort(key=lambda phase: phase.get("id", 0))
        payload: Dict[str, Any] = {
            "overview": _extract_string(OVERVIEW_FIELD, text) or "",
            "totalDuration": _extract_string(TOTAL_DURATION_FIELD, text) or "4-6 months",
            "currentProgress": _extract_int(CURRENT_PROGRESS_FIELD, text, 0),
            "phases": phases,
        }
        result = self._build(payload, self.STRATEGY_PHASE_SALVAGE)
        result.skipped_phases = skipped
        if skipped:
            logger.warning("Phase salvage skipped %d malformed phase(s)", skipped)
        return result

    def _build(self, payload: Any, strategy: str) -> ParsedTimeline:
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
        return ParsedTimeline(
            draft=TimelineDraft.from_payload(payload),
            strategy=strategy,
            payload=payload,
        )


def _extract_string(pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    raw = match.group(1)
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw


def _extract_int(pattern, text: str, default: int) -> int:
    match = pattern.search(text)
    if not match:
        return default
    return int(match.group(1))
