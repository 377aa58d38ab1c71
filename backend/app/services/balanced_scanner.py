"""
Balanced scanner.

String- and escape-aware bracket matching shared by the response parser,
the response merger and phase salvage. Braces and brackets inside JSON
string literals never affect depth; a backslash consumes the character
after it.
"""

from dataclasses import dataclass, field
from typing import List, Optional

_PAIRS = {"{": "}", "[": "]"}
_CLOSERS = {"}", "]"}


class BalancedScannerError(Exception):
    """Raised when the scanner is called on a position that is not an opener."""
    pass


@dataclass
class DepthScan:
    """
    Result of scanning a whole text.

    Attributes:
        depth: Combined ``{}``/``[]`` depth at the end of the text
        last_zero_offset: Offset just after the last closing character that
            brought depth back to zero (0 if that never happened)
        in_string: Whether the text ends inside a string literal
        structural_commas: Offsets of commas outside string literals
    """
    depth: int = 0
    last_zero_offset: int = 0
    in_string: bool = False
    structural_commas: List[int] = field(default_factory=list)

    @property
    def is_balanced(self) -> bool:
        return self.depth == 0 and not self.in_string


def find_balanced_end(text: str, start: int = 0) -> Optional[int]:
    """
    Find the end of the object/array opening at ``start``.

    Args:
        text: Text to scan
        start: Offset of an opening ``{`` or ``[``

    Returns:
        Index one past the matching close, or None if the structure is
        unterminated

    Raises:
        BalancedScannerError: If ``text[start]`` is not ``{`` or ``[``
    """
    if start < 0 or start >= len(text) or text[start] not in _PAIRS:
        raise BalancedScannerError(f"No opening brace or bracket at offset {start}")

    opener = text[start]
    closer = _PAIRS[opener]
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index + 1

    return None


def scan_depth(text: str) -> DepthScan:
    """
    Scan ``text`` from the start and report structural state.

    Used for truncation recovery: ``last_zero_offset`` marks the last point
    where every opened object/array had been closed.
    """
    scan = DepthScan()
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _PAIRS:
            scan.depth += 1
        elif char in _CLOSERS:
            scan.depth -= 1
            if scan.depth == 0:
                scan.last_zero_offset = index + 1
        elif char == ",":
            scan.structural_commas.append(index)

    scan.in_string = in_string
    return scan
