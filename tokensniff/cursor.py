"""
tokensniff/cursor.py
════════════════════

Navigation primitives over a token sequence.

Every check moves through the stream with these functions instead of
indexing tokens ad hoc, so the walking rules (what counts as "empty", how
nested brackets are jumped, what a missing link means) live in one place.

All lookups are linear scans from the starting index; no index structure
is built. Files are small enough that the window being scanned is the
whole cost.

Conventions
───────────
* ``kinds`` and ``skip`` accept a single ``TokenKind`` or any iterable of
  them.
* Forward searches treat ``end`` as an exclusive upper bound (default: end
  of sequence). Backward searches treat ``end`` as an exclusive lower bound
  (default: the search may reach index 0).
* A missing structural link raises ``MalformedStructure``; callers inside
  checks let it propagate so the dispatcher discards that invocation.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from tokensniff.errors import MalformedStructure
from tokensniff.tokens import (
    CLOSERS,
    EMPTY_TOKENS,
    OBJECT_OPERATORS,
    OPENERS,
    Scope,
    ScopeKind,
    Token,
    TokenKind,
    TokenStream,
)

KindSpec = Union[TokenKind, Iterable[TokenKind]]


def _kindset(kinds: KindSpec) -> FrozenSet[TokenKind]:
    if isinstance(kinds, TokenKind):
        return frozenset((kinds,))
    return frozenset(kinds)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: LINEAR SEARCH
# ═════════════════════════════════════════════════════════════════════════

def find_next(
    tokens: Sequence[Token],
    kinds: KindSpec,
    start: int,
    end: Optional[int] = None,
    skip: Optional[KindSpec] = None,
) -> Optional[int]:
    """
    First index in ``[start, end)`` whose kind is in ``kinds``.

    When ``skip`` is given the search passes over tokens of those kinds and
    the first other token decides: its index is returned if it matches,
    otherwise ``None``. ``find_next(t, VARIABLE, i, skip=EMPTY_TOKENS)``
    therefore asks "is the next real token a variable?".
    """
    wanted = _kindset(kinds)
    skipped = _kindset(skip) if skip is not None else None
    stop = len(tokens) if end is None else min(end, len(tokens))
    for i in range(max(start, 0), stop):
        kind = tokens[i].kind
        if skipped is not None:
            if kind in skipped:
                continue
            return i if kind in wanted else None
        if kind in wanted:
            return i
    return None


def find_previous(
    tokens: Sequence[Token],
    kinds: KindSpec,
    start: int,
    end: Optional[int] = None,
    skip: Optional[KindSpec] = None,
) -> Optional[int]:
    """Backward counterpart of :func:`find_next`, from ``start`` down to ``end`` (exclusive)."""
    wanted = _kindset(kinds)
    skipped = _kindset(skip) if skip is not None else None
    stop = -1 if end is None else max(end, -1)
    for i in range(min(start, len(tokens) - 1), stop, -1):
        kind = tokens[i].kind
        if skipped is not None:
            if kind in skipped:
                continue
            return i if kind in wanted else None
        if kind in wanted:
            return i
    return None


def next_significant(
    tokens: Sequence[Token], start: int, end: Optional[int] = None
) -> Optional[int]:
    """First index at or after ``start`` that is not whitespace or a comment."""
    stop = len(tokens) if end is None else min(end, len(tokens))
    for i in range(max(start, 0), stop):
        if tokens[i].kind not in EMPTY_TOKENS:
            return i
    return None


def previous_significant(
    tokens: Sequence[Token], start: int, end: Optional[int] = None
) -> Optional[int]:
    """Last index at or before ``start`` that is not whitespace or a comment."""
    stop = -1 if end is None else max(end, -1)
    for i in range(min(start, len(tokens) - 1), stop, -1):
        if tokens[i].kind not in EMPTY_TOKENS:
            return i
    return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: STRUCTURAL LINKS
# ═════════════════════════════════════════════════════════════════════════

def paired_closer(tokens: Sequence[Token], opener: int) -> int:
    """Index of the bracket closing ``opener``."""
    token = tokens[opener]
    if token.kind not in OPENERS or token.paired is None:
        raise MalformedStructure(
            f"{token} has no paired closer", position=opener
        )
    return token.paired


def paired_opener(tokens: Sequence[Token], closer: int) -> int:
    """Index of the bracket opened for ``closer``."""
    token = tokens[closer]
    if token.kind not in CLOSERS or token.paired is None:
        raise MalformedStructure(
            f"{token} has no paired opener", position=closer
        )
    return token.paired


def enclosing_scope(
    stream: TokenStream,
    position: int,
    kinds: Optional[Iterable[ScopeKind]] = None,
) -> Optional[Scope]:
    """Nearest scope around ``position`` whose kind is in ``kinds`` (any kind if omitted)."""
    wanted = frozenset(kinds) if kinds is not None else None
    for sid in reversed(stream.tokens[position].conditions):
        scope = stream.scopes[sid]
        if wanted is None or scope.kind in wanted:
            return scope
    return None


def enclosing_bracket(
    tokens: Sequence[Token],
    position: int,
    kinds: Optional[KindSpec] = None,
) -> Optional[int]:
    """
    Index of the innermost opener still open at ``position``.

    Balanced pairs met on the way back are jumped over. With ``kinds`` the
    walk continues outward until an opener of one of those kinds is found.
    """
    wanted = _kindset(kinds) if kinds is not None else OPENERS
    i = position - 1
    while i >= 0:
        token = tokens[i]
        if token.kind in CLOSERS and token.paired is not None:
            i = token.paired - 1
            continue
        if token.kind in OPENERS and (token.paired is None or token.paired > position):
            if token.kind in wanted:
                return i
        i -= 1
    return None


def end_of_statement(
    tokens: Sequence[Token], start: int, end: Optional[int] = None
) -> Optional[int]:
    """
    Index of the token ending the statement that contains ``start``.

    That is the next ``;`` or close tag at the current nesting level, or the
    closer of the enclosing bracket when the statement is its last element.
    Nested pairs are jumped over.
    """
    stop = len(tokens) if end is None else min(end, len(tokens))
    i = start
    while i < stop:
        token = tokens[i]
        if token.kind in OPENERS:
            if token.paired is None:
                raise MalformedStructure(
                    f"{token} has no paired closer", position=i
                )
            i = token.paired + 1
            continue
        if token.kind in (TokenKind.SEMICOLON, TokenKind.CLOSE_TAG):
            return i
        if token.kind in CLOSERS:
            return i
        i += 1
    return None


def call_arguments(tokens: Sequence[Token], opener: int) -> List[Tuple[int, int]]:
    """
    Half-open ``(start, end)`` ranges of each top-level argument.

    Ranges holding only whitespace or comments (a trailing comma) are dropped.
    """
    closer = paired_closer(tokens, opener)
    ranges: List[Tuple[int, int]] = []
    begin = opener + 1
    i = begin
    while i < closer:
        token = tokens[i]
        if token.kind in OPENERS:
            i = paired_closer(tokens, i) + 1
            continue
        if token.kind is TokenKind.COMMA:
            ranges.append((begin, i))
            begin = i + 1
        i += 1
    ranges.append((begin, closer))
    return [
        (s, e) for s, e in ranges
        if next_significant(tokens, s, e) is not None
    ]


def top_level_commas(tokens: Sequence[Token], opener: int) -> List[int]:
    """Commas directly inside the ``opener`` pair, nested pairs excluded."""
    closer = paired_closer(tokens, opener)
    commas: List[int] = []
    i = opener + 1
    while i < closer:
        token = tokens[i]
        if token.kind in OPENERS:
            i = paired_closer(tokens, i) + 1
            continue
        if token.kind is TokenKind.COMMA:
            commas.append(i)
        i += 1
    return commas


_NOT_A_CALL = frozenset({TokenKind.FUNCTION, TokenKind.NEW, TokenKind.CONST})


def function_call_opener(
    tokens: Sequence[Token], position: int, allow_members: bool = False
) -> Optional[int]:
    """
    ``(`` of the call named at ``position``.

    ``None`` when the name is not followed by a parenthesis, when it is being
    declared (``function name(``, ``new Name(``, ``const``), or when it is a
    member access and ``allow_members`` is false.
    """
    opener = find_next(tokens, TokenKind.OPEN_PARENTHESIS, position + 1, skip=EMPTY_TOKENS)
    if opener is None:
        return None
    prev = previous_significant(tokens, position - 1)
    if prev is not None:
        if tokens[prev].kind in _NOT_A_CALL:
            return None
        if not allow_members and tokens[prev].kind in OBJECT_OPERATORS:
            return None
    return opener


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: LINES
# ═════════════════════════════════════════════════════════════════════════

def line_bounds(tokens: Sequence[Token], position: int) -> Tuple[int, int]:
    """First and last index of the tokens starting on ``position``'s line."""
    line = tokens[position].line
    first = position
    while first > 0 and tokens[first - 1].line == line:
        first -= 1
    last = position
    while last + 1 < len(tokens) and tokens[last + 1].line == line:
        last += 1
    return first, last


def first_on_line(tokens: Sequence[Token], position: int) -> int:
    """Index of the first significant token on ``position``'s line."""
    first, last = line_bounds(tokens, position)
    found = next_significant(tokens, first, last + 1)
    return found if found is not None else first


__all__ = [
    "find_next",
    "find_previous",
    "next_significant",
    "previous_significant",
    "paired_closer",
    "paired_opener",
    "enclosing_scope",
    "enclosing_bracket",
    "end_of_statement",
    "call_arguments",
    "top_level_commas",
    "function_call_opener",
    "line_bounds",
    "first_on_line",
]
