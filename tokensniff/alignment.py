"""
tokensniff/alignment.py
═══════════════════════

Adjacency grouping: which ``=`` / ``=>`` markers on consecutive lines form
one block that must share a column, plus the layout facts of keyed array
literals used by the array checks.

Adjacency
─────────

    line L-1   $name   = 'a';      ◄── previous neighbour (reference)
    line L     $second = 'b';      ◄── trigger
    line L+1   $third  = 'c';      ◄── following neighbour

A neighbour is the nearest marker of the same kind on line L±1 that

  * sits directly in the same enclosing bracket as the trigger (nested
    pairs are jumped over, leaving the enclosing pair ends the scan);
  * is the only marker of its kind at that nesting level on its line;
  * for ``=``, follows a plain variable (``$x``), not a property, a
    static property, a subscript or a destructuring target.

A marker compares itself with its previous-line neighbour only. The first
marker of a run reports nothing; every later marker reports when its
column differs from its immediate predecessor, so columns 10, 10, 12 give a
single finding at the third line naming ``(10, 12)``.
The check runs once per block, from the first marker of its
:class:`AdjacencyRun`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from tokensniff.checkers import Check
from tokensniff.cursor import (
    call_arguments,
    enclosing_bracket,
    line_bounds,
    next_significant,
    paired_closer,
    previous_significant,
    top_level_commas,
)
from tokensniff.diagnostics import DiagnosticSink
from tokensniff.tokens import (
    CLOSERS,
    OBJECT_OPERATORS,
    OPENERS,
    Token,
    TokenKind,
    TokenStream,
)

K = TokenKind

MARKER_KINDS = frozenset({K.EQUAL, K.DOUBLE_ARROW})


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: MARKER QUALIFICATION
# ═════════════════════════════════════════════════════════════════════════

def qualifies(tokens: Sequence[Token], position: int) -> bool:
    """True when the marker at ``position`` can take part in a block."""
    kind = tokens[position].kind
    if kind is K.DOUBLE_ARROW:
        return True
    if kind is not K.EQUAL:
        return False
    target = previous_significant(tokens, position - 1)
    if target is None or tokens[target].kind is not K.VARIABLE:
        return False
    before = previous_significant(tokens, target - 1)
    return before is None or tokens[before].kind not in OBJECT_OPERATORS


def sole_marker_on_line(tokens: Sequence[Token], position: int) -> bool:
    """True when no other marker of the same kind shares the line and nesting level."""
    kind = tokens[position].kind
    container = enclosing_bracket(tokens, position)
    first, last = line_bounds(tokens, position)
    for i in range(first, last + 1):
        if i != position and tokens[i].kind is kind:
            if enclosing_bracket(tokens, i) == container:
                return False
    return True


def is_block_marker(tokens: Sequence[Token], position: int) -> bool:
    return qualifies(tokens, position) and sole_marker_on_line(tokens, position)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: NEIGHBOUR SEARCH
# ═════════════════════════════════════════════════════════════════════════

def find_adjacent_marker(
    tokens: Sequence[Token], position: int, direction: int
) -> Optional[int]:
    """
    The qualifying marker of the same kind on the adjacent line.

    Parameters
    ----------
    tokens    : token sequence
    position  : index of the triggering marker
    direction : ``-1`` for the previous line, ``+1`` for the next one

    Returns
    -------
    Index of the neighbour, or ``None`` when the nearest marker on that line
    does not qualify, when there is none, or when the scan would have to
    leave the enclosing bracket or cross an unlinked one.
    """
    kind = tokens[position].kind
    target = tokens[position].line + direction
    i = position + direction
    while 0 <= i < len(tokens):
        token = tokens[i]
        if direction < 0:
            if token.line < target:
                return None
            if token.kind in CLOSERS:
                if token.paired is None:
                    return None
                i = token.paired - 1
                continue
            if token.kind in OPENERS:
                return None
        else:
            if token.line > target:
                return None
            if token.kind in OPENERS:
                if token.paired is None:
                    return None
                i = token.paired + 1
                continue
            if token.kind in CLOSERS:
                return None
        if token.kind is kind and token.line == target:
            return i if is_block_marker(tokens, i) else None
        i += direction
    return None


@dataclass(frozen=True)
class AdjacencyRun:
    """Marker positions on consecutive lines forming one block."""
    markers: Tuple[int, ...]
    lines: Tuple[int, ...]
    columns: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.markers)

    @property
    def is_block(self) -> bool:
        return len(self.markers) > 1


def adjacency_run(tokens: Sequence[Token], position: int) -> AdjacencyRun:
    """Walk outward from ``position`` to the full run it belongs to."""
    if not is_block_marker(tokens, position):
        return AdjacencyRun((position,), (tokens[position].line,), (tokens[position].column,))
    before: List[int] = []
    cursor = find_adjacent_marker(tokens, position, -1)
    while cursor is not None:
        before.append(cursor)
        cursor = find_adjacent_marker(tokens, cursor, -1)
    after: List[int] = []
    cursor = find_adjacent_marker(tokens, position, +1)
    while cursor is not None:
        after.append(cursor)
        cursor = find_adjacent_marker(tokens, cursor, +1)
    markers = tuple(reversed(before)) + (position,) + tuple(after)
    return AdjacencyRun(
        markers=markers,
        lines=tuple(tokens[m].line for m in markers),
        columns=tuple(tokens[m].column for m in markers),
    )


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: KEYED STRUCTURE LAYOUT
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class KeyedLayout:
    """Layout facts of one array literal."""
    opener: int
    closer: int
    items: Tuple[Tuple[int, int], ...]
    commas: Tuple[int, ...]
    arrows: Tuple[int, ...]

    @property
    def is_keyed(self) -> bool:
        return bool(self.arrows)

    @property
    def is_multi_item(self) -> bool:
        return len(self.items) > 1


def keyed_structure_layout(tokens: Sequence[Token], opener: int) -> KeyedLayout:
    """
    Items, top-level commas and top-level ``=>`` markers of the literal
    opened at ``opener`` (a short-array ``[`` or the ``(`` after ``array``).
    """
    closer = paired_closer(tokens, opener)
    arrows: List[int] = []
    i = opener + 1
    while i < closer:
        token = tokens[i]
        if token.kind in OPENERS:
            i = paired_closer(tokens, i) + 1
            continue
        if token.kind is K.DOUBLE_ARROW:
            arrows.append(i)
        i += 1
    return KeyedLayout(
        opener=opener,
        closer=closer,
        items=tuple(call_arguments(tokens, opener)),
        commas=tuple(top_level_commas(tokens, opener)),
        arrows=tuple(arrows),
    )


def items_sharing_lines(tokens: Sequence[Token], layout: KeyedLayout) -> List[int]:
    """Commas followed by another item on the same line."""
    shared: List[int] = []
    for comma in layout.commas:
        nxt = next_significant(tokens, comma + 1, layout.closer)
        if nxt is not None and tokens[nxt].line == tokens[comma].line:
            shared.append(comma)
    return shared


def closer_on_last_comma_line(tokens: Sequence[Token], layout: KeyedLayout) -> bool:
    if not layout.commas:
        return False
    return tokens[layout.commas[-1]].line == tokens[layout.closer].line


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: ALIGNMENT CHECK
# ═════════════════════════════════════════════════════════════════════════

class AlignmentCheck(Check):
    """
    Equal signs of adjacent variable assignments, and double arrows of
    adjacent array items, must line up.
    """

    name = "Formatting.Alignment"
    description = "Aligns = and => across adjacent lines"
    codes = frozenset({"VariableAssignmentNotAligned", "ArrayItemNotAligned"})
    interested_kinds = frozenset(MARKER_KINDS)

    _MESSAGES = {
        K.EQUAL: (
            "VariableAssignmentNotAligned",
            "Equal signs in adjacent variable assignments must be aligned; "
            "expected column %d, found column %d",
        ),
        K.DOUBLE_ARROW: (
            "ArrayItemNotAligned",
            "Double arrows in adjacent array item definitions must be aligned; "
            "expected column %d, found column %d",
        ),
    }

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        if not is_block_marker(tokens, position):
            return
        # the head of a run checks the whole run
        if find_adjacent_marker(tokens, position, -1) is not None:
            return
        run = adjacency_run(tokens, position)
        if not run.is_block:
            return
        code, template = self._MESSAGES[tokens[position].kind]
        for k in range(1, len(run)):
            expected, found = run.columns[k - 1], run.columns[k]
            if expected == found:
                continue
            self._emit(
                sink, stream, run.markers[k], code, template, (expected, found),
                evidence={"neighbour": run.markers[k - 1], "block": run.lines},
            )


CHECKS = [AlignmentCheck]

__all__ = [
    "MARKER_KINDS",
    "qualifies",
    "sole_marker_on_line",
    "is_block_marker",
    "find_adjacent_marker",
    "AdjacencyRun",
    "adjacency_run",
    "KeyedLayout",
    "keyed_structure_layout",
    "items_sharing_lines",
    "closer_on_last_comma_line",
    "AlignmentCheck",
    "CHECKS",
]
