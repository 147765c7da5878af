"""
tokensniff/taint_analysis.py
════════════════════════════

Lightweight intraprocedural taint analysis over the token stream.

Answers one question, asked at each sink occurrence: does any operand of
this sink carry a value that has not been *proven* to pass through an
approved escaper (output sinks) or sanitizer / validator (persistence
sinks)?

Model
─────

    ┌─────────────────────────────────────────────────────────────────┐
    │  SOURCES      $_GET $_POST ...        request() input() ...     │
    │                      │                        │                 │
    │                      ▼                        ▼                 │
    │  ASSIGNMENT   $v = <rhs>;   (most recent, same function scope)  │
    │                      │                                          │
    │       rhs calls a clearing function? ──► SANITIZED              │
    │       rhs touches a source?          ──► TAINTED                │
    │       otherwise                      ──► UNKNOWN                │
    │                      │                                          │
    │                      ▼                                          │
    │  SINK         echo $v;            db->insert($v);               │
    │               (OUTPUT)            (PERSISTENCE)                 │
    └─────────────────────────────────────────────────────────────────┘

Clearing functions per sink class:

    OUTPUT       escapers   ∪ safe
    PERSISTENCE  sanitizers ∪ validators ∪ safe

Only one level of reassignment is followed: ``$b = $a; echo $b;`` looks at
the right-hand side ``$a`` and never at the assignment of ``$a``.

Usage Example
─────────────

    engine = TaintEngine(TaintPolicy(escapers=frozenset({"escape_html"})))
    exposures = engine.analyze(stream, [(start, end)], SinkClass.OUTPUT)
    for exp in exposures:
        print(exp.operand.name, exp.state.name, exp.reason)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from tokensniff.cursor import (
    call_arguments,
    end_of_statement,
    enclosing_scope,
    find_next,
    next_significant,
    paired_closer,
    previous_significant,
)
from tokensniff.errors import UnresolvedReference
from tokensniff.tokens import (
    EMPTY_TOKENS,
    FUNCTION_LIKE_SCOPES,
    LITERALS,
    OBJECT_OPERATORS,
    Token,
    TokenKind,
    TokenStream,
)

logger = logging.getLogger(__name__)

K = TokenKind


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: DEFAULT NAME LISTS
# ═════════════════════════════════════════════════════════════════════════

DEFAULT_SUPERGLOBALS: Tuple[str, ...] = (
    "$_GET", "$_POST", "$_REQUEST", "$_COOKIE", "$_FILES", "$_SERVER", "$_ENV",
)

DEFAULT_SOURCE_FUNCTIONS: Tuple[str, ...] = (
    "filter_input", "filter_input_array", "filter_var", "filter_var_array",
    "get_option", "get_post_meta", "get_user_meta", "get_term_meta",
    "get_site_option", "get_theme_mod", "request", "input",
)

DEFAULT_SANITIZERS: Tuple[str, ...] = (
    "sanitize_text", "sanitize_textarea", "sanitize_html", "sanitize_email",
    "sanitize_url", "sanitize_number_int", "sanitize_number_float",
    "sanitize_key", "sanitize_title", "sanitize_file_name", "sanitize_meta",
)

DEFAULT_VALIDATORS: Tuple[str, ...] = (
    "is_email", "is_url", "is_ip", "is_mac", "is_numeric", "is_int",
    "is_integer", "is_float", "is_bool", "is_string", "is_array", "is_object",
    "is_null", "validate", "validator", "filter_var", "filter_input",
)

DEFAULT_ESCAPERS: Tuple[str, ...] = (
    "escape_html", "escape_attr", "escape_url", "escape_js",
    "escape_textarea", "escape_email",
)

DEFAULT_SAFE_FUNCTIONS: Tuple[str, ...] = (
    "is_null", "is_array", "is_int", "is_float", "is_bool", "is_string",
    "isset", "empty", "count", "sizeof", "in_array", "array_key_exists",
    "abs", "min", "max", "rand", "mt_rand", "time", "date", "mktime",
    "strtotime", "htmlspecialchars", "htmlentities",
)


def _names(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.lower() for v in values)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: STATES, OPERANDS, POLICY
# ═════════════════════════════════════════════════════════════════════════

class TaintState(Enum):
    TAINTED = auto()
    SANITIZED = auto()
    UNKNOWN = auto()


class SinkClass(Enum):
    OUTPUT = "output"
    PERSISTENCE = "persistence"


class OperandKind(Enum):
    SUPERGLOBAL = auto()
    VARIABLE = auto()
    CALL = auto()
    INTERPOLATED_STRING = auto()   # a $name embedded in a string


@dataclass(frozen=True)
class Operand:
    """
    One non-literal primary in a sink's expression.

    Attributes
    ----------
    kind         : OperandKind
    name         : ``$var`` for variables, the (qualified) function name for calls
    position     : token index of the primary
    end          : index just past the primary and its postfix chain
    call_opener  : for calls, index of the ``(``
    member_calls : names of methods called along the postfix chain
    """
    kind: OperandKind
    name: str
    position: int
    end: int
    call_opener: Optional[int] = None
    member_calls: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TaintPolicy:
    """
    The named lists the engine consults. Function names are lower-cased on
    construction so lookups are case-insensitive.

    ``require_proof`` decides what happens to a variable whose assignment
    neither touches a source nor calls a clearing function: with the flag
    set (the default) it is reported, since it was never proven safe.
    """
    superglobals: FrozenSet[str] = frozenset(DEFAULT_SUPERGLOBALS)
    sources: FrozenSet[str] = field(default_factory=lambda: _names(DEFAULT_SOURCE_FUNCTIONS))
    sanitizers: FrozenSet[str] = field(default_factory=lambda: _names(DEFAULT_SANITIZERS))
    validators: FrozenSet[str] = field(default_factory=lambda: _names(DEFAULT_VALIDATORS))
    escapers: FrozenSet[str] = field(default_factory=lambda: _names(DEFAULT_ESCAPERS))
    safe: FrozenSet[str] = field(default_factory=lambda: _names(DEFAULT_SAFE_FUNCTIONS))
    require_proof: bool = True

    def __post_init__(self) -> None:
        for attr in ("sources", "sanitizers", "validators", "escapers", "safe"):
            object.__setattr__(self, attr, _names(getattr(self, attr)))
        object.__setattr__(self, "superglobals", frozenset(self.superglobals))

    def clearing(self, sink_class: SinkClass) -> FrozenSet[str]:
        if sink_class is SinkClass.OUTPUT:
            return self.escapers | self.safe
        return self.sanitizers | self.validators | self.safe

    def is_source(self, name: str) -> bool:
        return name_matches(name, self.sources)


def name_matches(name: str, names: FrozenSet[str]) -> bool:
    """Match a possibly qualified call name (``Foo::bar``, ``\\ns\\bar``) against ``names``."""
    lowered = name.lower().lstrip("\\")
    if lowered in names:
        return True
    bare = re.split(r"::|\\", lowered)[-1]
    return bare in names


@dataclass(frozen=True)
class Assignment:
    """The most recent plain assignment to a variable before a use."""
    target: int      # the variable token
    operator: int    # the ``=`` token
    end: int         # statement terminator


@dataclass(frozen=True)
class Exposure:
    """An operand that reaches a sink without clearing evidence."""
    operand: Operand
    state: TaintState
    reason: str                        # superglobal | source-call | call | tainted | unresolved | unproven
    assignment: Optional[Assignment] = None


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: OPERAND ENUMERATION
# ═════════════════════════════════════════════════════════════════════════

_EMBEDDED_VARIABLE_RE = re.compile(r"(?<!\\)\$([A-Za-z_\x80-\U0010ffff][A-Za-z0-9_\x80-\U0010ffff]*)")

_CALLABLE_NAMES = frozenset({K.STRING, K.SELF, K.PARENT, K.STATIC})


def _skip_postfix(
    tokens: Sequence[Token], start: int, end: int
) -> Tuple[int, Tuple[str, ...]]:
    """
    Skip ``[...]``, ``(...)``, ``->name`` and ``::name`` suffixes.

    Returns the index just past the chain and the names of the methods
    called along it.
    """
    calls: List[str] = []
    i = start
    while True:
        k = next_significant(tokens, i, end)
        if k is None:
            return end, tuple(calls)
        kind = tokens[k].kind
        if kind in (K.OPEN_SQUARE_BRACKET, K.OPEN_PARENTHESIS):
            i = paired_closer(tokens, k) + 1
            continue
        if kind in OBJECT_OPERATORS:
            member = next_significant(tokens, k + 1, end)
            if member is None:
                return end, tuple(calls)
            if tokens[member].kind is K.OPEN_CURLY_BRACKET:
                i = paired_closer(tokens, member) + 1
                continue
            if find_next(tokens, K.OPEN_PARENTHESIS, member + 1, end, skip=EMPTY_TOKENS) is not None:
                calls.append(tokens[member].text)
            i = member + 1
            continue
        return k, tuple(calls)


def _qualified_name(tokens: Sequence[Token], start: int, end: int) -> Tuple[str, int]:
    """Read ``Foo\\Bar\\baz`` or ``Foo::baz`` starting at ``start``; return it and the index of its last piece."""
    parts = [tokens[start].text]
    last = start
    while True:
        sep = next_significant(tokens, last + 1, end)
        if sep is None or tokens[sep].kind not in (K.NS_SEPARATOR, K.DOUBLE_COLON):
            break
        piece = next_significant(tokens, sep + 1, end)
        if piece is None or tokens[piece].kind not in (K.STRING, K.CLASS):
            break
        parts.append("::" if tokens[sep].kind is K.DOUBLE_COLON else "\\")
        parts.append(tokens[piece].text)
        last = piece
    return "".join(parts), last


def _skip_closure(tokens: Sequence[Token], start: int, end: int) -> int:
    """Index just past ``function (...) use (...): T { ... }``."""
    i = start + 1
    while i < end:
        kind = tokens[i].kind
        if kind is K.OPEN_CURLY_BRACKET:
            return paired_closer(tokens, i) + 1
        if kind is K.OPEN_PARENTHESIS:
            i = paired_closer(tokens, i) + 1
            continue
        i += 1
    return end


def enumerate_operands(
    tokens: Sequence[Token],
    start: int,
    end: int,
    superglobals: Iterable[str] = DEFAULT_SUPERGLOBALS,
) -> List[Operand]:
    """
    Non-literal primaries of the expression tokens in ``[start, end)``.

    Grouping parentheses and array literals are descended into; literals,
    casts (with the value they convert), ``isset``/``empty``, ``new``
    expressions and closures are skipped. Subscripts and member accesses
    belong to the primary they follow and are not enumerated separately.
    """
    globals_ = frozenset(superglobals)
    operands: List[Operand] = []
    i = start
    while i < end:
        token = tokens[i]
        kind = token.kind

        if kind is K.VARIABLE:
            stop, calls = _skip_postfix(tokens, i + 1, end)
            operands.append(Operand(
                kind=OperandKind.SUPERGLOBAL if token.text in globals_ else OperandKind.VARIABLE,
                name=token.text,
                position=i,
                end=stop,
                member_calls=calls,
            ))
            i = stop
            continue

        if kind in (K.DOUBLE_QUOTED_STRING, K.HEREDOC):
            for match in _EMBEDDED_VARIABLE_RE.finditer(token.text):
                name = "$" + match.group(1)
                operands.append(Operand(
                    kind=OperandKind.SUPERGLOBAL if name in globals_ else OperandKind.INTERPOLATED_STRING,
                    name=name,
                    position=i,
                    end=i + 1,
                ))
            i += 1
            continue

        if kind in _CALLABLE_NAMES or kind is K.NS_SEPARATOR:
            if kind is K.NS_SEPARATOR:
                nxt = next_significant(tokens, i + 1, end)
                if nxt is None or tokens[nxt].kind is not K.STRING:
                    i += 1
                    continue
                i = nxt
            name, last = _qualified_name(tokens, i, end)
            opener = find_next(tokens, K.OPEN_PARENTHESIS, last + 1, end, skip=EMPTY_TOKENS)
            if opener is None:
                # constant, class constant or static property
                stop, _ = _skip_postfix(tokens, last + 1, end)
                i = stop
                continue
            stop, calls = _skip_postfix(tokens, paired_closer(tokens, opener) + 1, end)
            operands.append(Operand(
                kind=OperandKind.CALL,
                name=name,
                position=i,
                end=stop,
                call_opener=opener,
                member_calls=calls,
            ))
            i = stop
            continue

        if kind in (K.ISSET, K.EMPTY, K.LIST, K.UNSET):
            opener = find_next(tokens, K.OPEN_PARENTHESIS, i + 1, end, skip=EMPTY_TOKENS)
            i = paired_closer(tokens, opener) + 1 if opener is not None else i + 1
            continue

        if kind is K.CAST:
            nxt = next_significant(tokens, i + 1, end)
            if nxt is None:
                return operands
            if tokens[nxt].kind is K.OPEN_PARENTHESIS:
                i = paired_closer(tokens, nxt) + 1
                continue
            if tokens[nxt].kind in (K.STRING, K.NS_SEPARATOR):
                _, last = _qualified_name(tokens, nxt, end)
                i, _ = _skip_postfix(tokens, last + 1, end)
                continue
            i, _ = _skip_postfix(tokens, nxt + 1, end)
            continue

        if kind is K.NEW:
            cls = next_significant(tokens, i + 1, end)
            if cls is None:
                return operands
            if tokens[cls].kind is K.CLASS:
                i = _skip_closure(tokens, cls, end)
                continue
            if tokens[cls].kind in (K.STRING, K.NS_SEPARATOR, K.STATIC, K.SELF, K.PARENT):
                _, last = _qualified_name(tokens, cls, end)
                i, _ = _skip_postfix(tokens, last + 1, end)
                continue
            i = cls + 1
            continue

        if kind is K.FUNCTION:
            i = _skip_closure(tokens, i, end)
            continue

        if kind is K.FN:
            # arrow function body runs to the end of the expression
            return operands

        # literals, operators, punctuation, brackets: nothing to collect
        i += 1
    return operands


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: ASSIGNMENT RESOLUTION
# ═════════════════════════════════════════════════════════════════════════

def resolve_assignment(stream: TokenStream, position: int, name: str) -> Assignment:
    """
    Most recent plain ``name = ...;`` statement finished before ``position``.

    The search covers the innermost function, method or closure body that
    holds ``position`` (the whole file outside of any function). Assignments
    inside nested function bodies belong to other variables and are
    ignored; so are property assignments (``$obj->name = ...``).

    Raises
    ------
    UnresolvedReference
        If there is no such assignment (parameters, ``foreach`` targets,
        variables inherited by a closure).
    """
    tokens = stream.tokens
    scope = enclosing_scope(stream, position, FUNCTION_LIKE_SCOPES)
    begin = scope.start + 1 if scope is not None else 0
    found: Optional[Assignment] = None
    for i in range(begin, position):
        token = tokens[i]
        if token.kind is not K.VARIABLE or token.text != name:
            continue
        operator = find_next(tokens, K.EQUAL, i + 1, position, skip=EMPTY_TOKENS)
        if operator is None:
            continue
        before = previous_significant(tokens, i - 1)
        if before is not None and tokens[before].kind in OBJECT_OPERATORS:
            continue
        if enclosing_scope(stream, i, FUNCTION_LIKE_SCOPES) != scope:
            continue
        terminator = end_of_statement(tokens, operator + 1, position)
        if terminator is None:
            continue
        found = Assignment(target=i, operator=operator, end=terminator)
    if found is None:
        raise UnresolvedReference(name, position)
    return found


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: ENGINE
# ═════════════════════════════════════════════════════════════════════════

class TaintEngine:
    """
    Stateless analyzer bound to one ``TaintPolicy``.

    Safe to share between threads: ``analyze`` only reads the stream and
    the frozen policy.
    """

    def __init__(self, policy: TaintPolicy) -> None:
        self.policy = policy

    # ── public API ───────────────────────────────────────────────────

    def analyze(
        self,
        stream: TokenStream,
        ranges: Iterable[Tuple[int, int]],
        sink_class: SinkClass,
    ) -> List[Exposure]:
        """
        Exposures among the operands of ``ranges`` (half-open token ranges)
        for a sink of class ``sink_class``.
        """
        exposures: List[Exposure] = []
        for start, end in ranges:
            self._analyze_range(stream, start, end, sink_class, exposures)
        return exposures

    def assignment_state(
        self, stream: TokenStream, assignment: Assignment, sink_class: SinkClass
    ) -> TaintState:
        """Classify the right-hand side of ``assignment`` for ``sink_class``."""
        tokens = stream.tokens
        clearing = self.policy.clearing(sink_class)
        tainted = False
        for i in range(assignment.operator + 1, assignment.end):
            token = tokens[i]
            if token.kind is K.STRING:
                if find_next(tokens, K.OPEN_PARENTHESIS, i + 1, assignment.end, skip=EMPTY_TOKENS) is None:
                    continue
                name = self._call_name(tokens, i)
                if name_matches(name, clearing):
                    return TaintState.SANITIZED
                if self.policy.is_source(name):
                    tainted = True
            elif token.kind is K.VARIABLE and token.text in self.policy.superglobals:
                tainted = True
            elif token.kind in (K.DOUBLE_QUOTED_STRING, K.HEREDOC):
                embedded = {"$" + m.group(1) for m in _EMBEDDED_VARIABLE_RE.finditer(token.text)}
                if embedded & self.policy.superglobals:
                    tainted = True
        return TaintState.TAINTED if tainted else TaintState.UNKNOWN

    # ── internals ────────────────────────────────────────────────────

    @staticmethod
    def _call_name(tokens: Sequence[Token], position: int) -> str:
        prev = previous_significant(tokens, position - 1)
        if prev is not None and tokens[prev].kind is K.DOUBLE_COLON:
            owner = previous_significant(tokens, prev - 1)
            if owner is not None:
                return f"{tokens[owner].text}::{tokens[position].text}"
        return tokens[position].text

    def _analyze_range(
        self,
        stream: TokenStream,
        start: int,
        end: int,
        sink_class: SinkClass,
        out: List[Exposure],
    ) -> None:
        tokens = stream.tokens
        policy = self.policy
        clearing = policy.clearing(sink_class)
        for operand in enumerate_operands(tokens, start, end, policy.superglobals):
            if operand.kind is OperandKind.CALL:
                if name_matches(operand.name, clearing):
                    continue
                if policy.is_source(operand.name) or any(
                    policy.is_source(m) for m in operand.member_calls
                ):
                    out.append(Exposure(operand, TaintState.TAINTED, "source-call"))
                    continue
                if sink_class is SinkClass.OUTPUT:
                    out.append(Exposure(operand, TaintState.UNKNOWN, "call"))
                    continue
                # persistence: an unknown call passes its arguments through
                if operand.call_opener is None:
                    continue
                for arg_start, arg_end in call_arguments(tokens, operand.call_opener):
                    self._analyze_range(stream, arg_start, arg_end, sink_class, out)
                continue

            if operand.kind is OperandKind.SUPERGLOBAL:
                out.append(Exposure(operand, TaintState.TAINTED, "superglobal"))
                continue

            if any(policy.is_source(m) for m in operand.member_calls):
                out.append(Exposure(operand, TaintState.TAINTED, "source-call"))
                continue

            exposure = self._resolve_variable(stream, operand, sink_class)
            if exposure is not None:
                out.append(exposure)

    def _resolve_variable(
        self, stream: TokenStream, operand: Operand, sink_class: SinkClass
    ) -> Optional[Exposure]:
        try:
            assignment = resolve_assignment(stream, operand.position, operand.name)
        except UnresolvedReference as exc:
            logger.debug("unresolved at sink: %s", exc)
            return Exposure(operand, TaintState.UNKNOWN, "unresolved")
        state = self.assignment_state(stream, assignment, sink_class)
        if state is TaintState.SANITIZED:
            return None
        if state is TaintState.TAINTED:
            return Exposure(operand, state, "tainted", assignment)
        if self.policy.require_proof:
            return Exposure(operand, state, "unproven", assignment)
        return None


__all__ = [
    "DEFAULT_SUPERGLOBALS",
    "DEFAULT_SOURCE_FUNCTIONS",
    "DEFAULT_SANITIZERS",
    "DEFAULT_VALIDATORS",
    "DEFAULT_ESCAPERS",
    "DEFAULT_SAFE_FUNCTIONS",
    "TaintState",
    "SinkClass",
    "OperandKind",
    "Operand",
    "TaintPolicy",
    "name_matches",
    "Assignment",
    "Exposure",
    "enumerate_operands",
    "resolve_assignment",
    "TaintEngine",
]
