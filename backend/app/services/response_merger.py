"""
Response merger.

Stitches a truncated model response and its continuation into one text.
The original is cut back to its latest structural boundary (never inside
a string or half-written value) and the continuation is appended with the
separator the boundary calls for. The result is handed to the parser; it
is not assumed to be valid JSON.
"""

import logging
from dataclasses import dataclass

from app.services.balanced_scanner import scan_depth
from app.utils.json_text import strip_code_fences

logger = logging.getLogger(__name__)

_LEADING_JUNK = " \t\r\n,"


@dataclass
class MergeResult:
    """Merged text plus where the original was cut."""
    text: str
    cut_offset: int
    original_was_balanced: bool


class ResponseMerger:
    """Merges an original response with a continuation."""

    def merge(self, original: str, continuation: str) -> str:
        """Return the merged text. See ``merge_detailed``."""
        return self.merge_detailed(original, continuation).text

    def merge_detailed(self, original: str, continuation: str) -> MergeResult:
        """
        Merge ``continuation`` onto ``original``.

        Steps:
        1. Strip code fences from both texts
        2. Find the cut point in the original (full length when balanced)
        3. Strip leading whitespace/commas from the continuation
        4. Join with a newline, a comma, or nothing

        Args:
            original: Accumulated (possibly truncated) response
            continuation: Text returned for the continuation prompt

        Returns:
            MergeResult
        """
        original = strip_code_fences(original)
        continuation = strip_code_fences(continuation).lstrip(_LEADING_JUNK)

        scan = scan_depth(original)
        if scan.is_balanced:
            cut = len(original)
        else:
            cut = self._find_cut_point(original, scan)

        head = original[:cut].rstrip()
        ends_with_comma = head.endswith(",")
        starts_with_object = continuation.startswith("{")

        if ends_with_comma and starts_with_object:
            merged = f"{head}\n{continuation}"
        elif not ends_with_comma and not starts_with_object:
            merged = f"{head},{continuation}"
        else:
            merged = head + continuation

        logger.debug(
            "Merged response: original=%d chars cut at %d, continuation=%d chars",
            len(original), cut, len(continuation)
        )
        return MergeResult(text=merged, cut_offset=cut, original_was_balanced=scan.is_balanced)

    @staticmethod
    def _find_cut_point(text: str, scan) -> int:
        """
        Latest structural boundary in an unbalanced text.

        Candidates are the last zero-depth offset and the position just
        after the last comma (outside strings) that follows a closed
        string, object or array: ``",\\n``, ``},`` and ``],``.
        """
        cut = scan.last_zero_offset
        for comma in reversed(scan.structural_commas):
            previous = text[comma - 1] if comma > 0 else ""
            if previous in ("}", "]"):
                cut = max(cut, comma + 1)
                break
            if previous == '"' and text[comma + 1:comma + 2] == "\n":
                cut = max(cut, comma + 1)
                break
        return cut
