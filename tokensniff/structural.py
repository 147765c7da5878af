"""
tokensniff/structural.py
════════════════════════

Layout checks: thin predicates over the token stream, each answered with
the Cursor API.

  Arrays.ArraySyntax                    short syntax, keyed array layout
  Formatting.Braces                     placement of opening braces
  Formatting.Spacing                    spaces around operators, brackets,
                                        commas and control keywords
  Formatting.LineLength                 physical line length
  Formatting.Indentation                tabs versus spaces
  Strings.Quotes                        single versus double quotes
  PHP.PhpTags                           open / close tag placement
  ControlStructures.ControlStructures   brace versus colon syntax
  Blade.DeprecatedComponentSyntax       renamed Blade component prefixes

None of these checks keeps state between invocations. Checks that look at
the whole file (line length) run once, at the first token of the stream.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from tokensniff.alignment import (
    closer_on_last_comma_line,
    items_sharing_lines,
    keyed_structure_layout,
)
from tokensniff.checkers import Check
from tokensniff.cursor import (
    find_next,
    find_previous,
    next_significant,
    paired_closer,
    previous_significant,
)
from tokensniff.diagnostics import DiagnosticSink, Severity
from tokensniff.tokens import (
    ARITHMETIC_TOKENS,
    ASSIGNMENT_TOKENS,
    CLASS_LIKE_TOKENS,
    CLOSERS,
    COMPARISON_TOKENS,
    EMPTY_TOKENS,
    Token,
    TokenKind,
    TokenStream,
)

K = TokenKind

_ANY_KIND = frozenset(TokenKind)


def _previous_non_whitespace(tokens: Sequence[Token], position: int) -> Optional[int]:
    """Previous token that is not whitespace; comments count."""
    return find_previous(tokens, _ANY_KIND, position - 1, skip=K.WHITESPACE)


def _next_non_whitespace(tokens: Sequence[Token], position: int) -> Optional[int]:
    return find_next(tokens, _ANY_KIND, position + 1, skip=K.WHITESPACE)


def _touches(tokens: Sequence[Token], left: int, right: int) -> bool:
    """True when ``right`` starts exactly where ``left`` ends, on one line."""
    a, b = tokens[left], tokens[right]
    return a.line == b.line and b.column == a.column + len(a.text)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: ARRAYS
# ═════════════════════════════════════════════════════════════════════════

class ArraySyntaxCheck(Check):
    """
    Arrays use the short ``[...]`` syntax, and a keyed array with more than
    one item puts every item and its closing bracket on a line of its own.
    """

    name = "Arrays.ArraySyntax"
    description = "Short array syntax and keyed array layout"
    codes = frozenset({
        "LongArraySyntax",
        "AssociativeArrayItemsNotOnNewLines",
        "AssociativeArrayClosingBracketNotOnNewLine",
    })
    interested_kinds = frozenset({K.ARRAY, K.OPEN_SHORT_ARRAY})

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        if tokens[position].kind is K.ARRAY:
            # ``array $x`` in a signature is a type, not a literal
            if find_next(tokens, K.OPEN_PARENTHESIS, position + 1, skip=EMPTY_TOKENS) is None:
                return
            self._emit(
                sink, stream, position, "LongArraySyntax",
                "Use short array syntax instead of long array syntax",
            )
            return

        layout = keyed_structure_layout(tokens, position)
        if not (layout.is_keyed and layout.is_multi_item):
            return
        shared = items_sharing_lines(tokens, layout)
        if shared:
            self._emit(
                sink, stream, shared[0], "AssociativeArrayItemsNotOnNewLines",
                "Each item in a multi-item associative array must be on a new line",
            )
        if closer_on_last_comma_line(tokens, layout):
            self._emit(
                sink, stream, layout.closer, "AssociativeArrayClosingBracketNotOnNewLine",
                "The closing bracket of a multi-item associative array must be on a new line",
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: BRACES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BracesConfig:
    opening_brace_on_same_line: bool = True


_PAREN_HEADED = frozenset({
    K.IF, K.ELSEIF, K.WHILE, K.FOR, K.FOREACH, K.SWITCH, K.CATCH,
})
_BARE_HEADED = frozenset({K.ELSE, K.DO, K.TRY, K.FINALLY})


def _opening_brace(stream: TokenStream, position: int) -> Optional[Tuple[int, int]]:
    """
    ``(brace, header_end)`` for the construct declared at ``position``.

    ``header_end`` is the token the brace follows: the closing parenthesis
    of a condition or parameter list, the last token of a class header, or
    the keyword itself for ``else`` / ``do`` / ``try`` / ``finally``.
    """
    tokens = stream.tokens
    kind = tokens[position].kind
    if kind is K.FUNCTION or kind in CLASS_LIKE_TOKENS:
        scope = stream.scope_of(position)
        if scope is None:
            return None
        brace = scope.start
        if kind is K.FUNCTION:
            opener = find_next(tokens, K.OPEN_PARENTHESIS, position + 1, brace)
            if opener is None:
                return None
            return brace, paired_closer(tokens, opener)
        header_end = previous_significant(tokens, brace - 1, position)
        return brace, header_end if header_end is not None else position
    if kind in _PAREN_HEADED:
        opener = find_next(tokens, K.OPEN_PARENTHESIS, position + 1, skip=EMPTY_TOKENS)
        if opener is None:
            return None
        closer = paired_closer(tokens, opener)
        brace = find_next(tokens, K.OPEN_CURLY_BRACKET, closer + 1, skip=EMPTY_TOKENS)
        return (brace, closer) if brace is not None else None
    brace = find_next(tokens, K.OPEN_CURLY_BRACKET, position + 1, skip=EMPTY_TOKENS)
    return (brace, position) if brace is not None else None


class BracesCheck(Check):
    """Opening braces sit on the declaration line (or the next one) after a space."""

    name = "Formatting.Braces"
    description = "Opening brace placement"
    codes = frozenset({"BraceOnWrongLine", "NoSpaceBeforeBrace"})
    interested_kinds = frozenset(
        CLASS_LIKE_TOKENS | {K.FUNCTION} | _PAREN_HEADED | _BARE_HEADED
    )
    config_class = BracesConfig

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        found = _opening_brace(stream, position)
        if found is None:
            return
        brace, header_end = found

        same_line = tokens[brace].line == tokens[header_end].line
        if self.config.opening_brace_on_same_line and not same_line:
            self._emit(
                sink, stream, brace, "BraceOnWrongLine",
                "Opening brace should be on the same line as the declaration",
            )
        elif not self.config.opening_brace_on_same_line and same_line:
            self._emit(
                sink, stream, brace, "BraceOnWrongLine",
                "Opening brace should be on the next line after the declaration",
            )

        prev = _previous_non_whitespace(tokens, brace)
        if prev is not None and _touches(tokens, prev, brace):
            self._emit(
                sink, stream, brace, "NoSpaceBeforeBrace",
                "There should be a space before the opening brace",
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: SPACING
# ═════════════════════════════════════════════════════════════════════════

SPACED_OPERATORS = frozenset(
    ARITHMETIC_TOKENS | ASSIGNMENT_TOKENS | COMPARISON_TOKENS
    | {K.SPACESHIP, K.COALESCE}
)

# Kinds that can end an operand; a ``+`` / ``-`` after anything else is unary.
_OPERAND_END = frozenset({
    K.VARIABLE, K.STRING, K.LNUMBER, K.DNUMBER, K.CONSTANT_ENCAPSED_STRING,
    K.DOUBLE_QUOTED_STRING, K.HEREDOC, K.NOWDOC, K.TRUE, K.FALSE, K.NULL,
    K.SELF, K.PARENT, K.STATIC, K.INC, K.DEC,
}) | CLOSERS

_SPACED_OPENERS = {
    K.OPEN_PARENTHESIS: "parenthesis",
    K.OPEN_SQUARE_BRACKET: "bracket",
    K.OPEN_CURLY_BRACKET: "brace",
}

_KEYWORD_PARENS = frozenset({
    K.IF, K.ELSEIF, K.FOR, K.FOREACH, K.WHILE, K.DO, K.FUNCTION,
})


class SpacingCheck(Check):
    """
    Whitespace rules:

      * binary operators have a space on both sides (on the same line);
      * an opening parenthesis or brace is followed by whitespace, and so is
        a subscript bracket unless it directly follows a variable;
      * a comma is followed by a space unless it ends the line;
      * control keywords and closures keep a space before ``(`` and between
        ``)`` and ``{``.
    """

    name = "Formatting.Spacing"
    description = "Spacing around operators, brackets and commas"
    codes = frozenset({
        "NoSpaceBeforeOperator",
        "NoSpaceAfterOperator",
        "NoSpaceAfterOpeningParenthesis",
        "NoSpaceAfterComma",
        "NoSpaceBeforeOpeningParenthesis",
        "NoSpaceAfterClosingParenthesis",
    })
    interested_kinds = frozenset(
        SPACED_OPERATORS | set(_SPACED_OPENERS) | {K.COMMA} | _KEYWORD_PARENS
    )

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        kind = stream.tokens[position].kind
        if kind in SPACED_OPERATORS:
            self._operator(stream, position, sink)
        elif kind in _SPACED_OPENERS:
            self._opener(stream, position, sink)
        elif kind is K.COMMA:
            self._comma(stream, position, sink)
        else:
            self._keyword(stream, position, sink)

    def _operator(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]
        prev = _previous_non_whitespace(tokens, position)
        if token.kind in (K.PLUS, K.MINUS):
            before = previous_significant(tokens, position - 1)
            if before is None or tokens[before].kind not in _OPERAND_END:
                return
        if prev is not None and _touches(tokens, prev, position):
            self._emit(
                sink, stream, position, "NoSpaceBeforeOperator",
                'There should be a space before operator "%s"', (token.text,),
            )
        nxt = _next_non_whitespace(tokens, position)
        if nxt is not None and _touches(tokens, position, nxt):
            self._emit(
                sink, stream, position, "NoSpaceAfterOperator",
                'There should be a space after operator "%s"', (token.text,),
            )

    def _opener(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]
        if token.kind is K.OPEN_SQUARE_BRACKET:
            prev = previous_significant(tokens, position - 1)
            if prev is not None and tokens[prev].kind is K.VARIABLE:
                return
        following = position + 1
        if following >= len(tokens) or following == token.paired:
            return
        if tokens[following].kind is not K.WHITESPACE:
            self._emit(
                sink, stream, position, "NoSpaceAfterOpeningParenthesis",
                "There should be a space after an opening %s",
                (_SPACED_OPENERS[token.kind],),
            )

    def _comma(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        following = position + 1
        if following >= len(tokens):
            return
        nxt = tokens[following]
        if nxt.kind is K.WHITESPACE or nxt.kind in CLOSERS:
            return
        if nxt.line == tokens[position].line:
            self._emit(
                sink, stream, position, "NoSpaceAfterComma",
                "There should be a space after a comma",
            )

    def _keyword(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]
        opener = next_significant(tokens, position + 1)
        if opener is None:
            return
        named = False
        if token.kind is K.FUNCTION:
            if tokens[opener].kind is K.BITWISE_AND:
                opener = next_significant(tokens, opener + 1)
            if opener is not None and tokens[opener].kind is K.STRING:
                named = True
                opener = next_significant(tokens, opener + 1)
        if opener is None or tokens[opener].kind is not K.OPEN_PARENTHESIS:
            return

        if not named and _touches(tokens, position, opener):
            self._emit(
                sink, stream, position, "NoSpaceBeforeOpeningParenthesis",
                "There should be a space between %s and the opening parenthesis",
                (token.text,),
            )

        closer = paired_closer(tokens, opener)
        brace = closer + 1
        if brace < len(tokens) and tokens[brace].kind is K.OPEN_CURLY_BRACKET:
            self._emit(
                sink, stream, closer, "NoSpaceAfterClosingParenthesis",
                "There should be a space between the closing parenthesis "
                "and the opening brace",
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: LINE LENGTH AND INDENTATION
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineLengthConfig:
    line_limit: int = 120
    comment_line_limit: int = 120
    tab_width: int = 4


_COMMENT_LINE_RE = re.compile(r"^\s*(?://|/\*|\*|#)")


def _line_anchors(tokens: Sequence[Token]) -> List[int]:
    """
    ``anchors[n]`` is the index of the token covering physical line ``n``
    (1-based; index 0 unused): the last token starting on or before it.
    """
    last_line = tokens[-1].end_line if tokens else 0
    anchors = [0] * (last_line + 2)
    current = 0
    line = 1
    for index, token in enumerate(tokens):
        while line < token.line:
            anchors[line] = current
            line += 1
        current = index
    while line <= last_line + 1:
        anchors[line] = current
        line += 1
    return anchors


class LineLengthCheck(Check):
    """Physical lines stay under a limit, with a separate limit for comment lines."""

    name = "Formatting.LineLength"
    description = "Line length limit"
    codes = frozenset({"ExceedsLimit", "CommentExceedsLimit"})
    # The first token of any stream is inline HTML or an open tag.
    interested_kinds = frozenset({K.INLINE_HTML, K.OPEN_TAG, K.OPEN_TAG_WITH_ECHO})
    config_class = LineLengthConfig

    def __init__(self, config: Optional[LineLengthConfig] = None) -> None:
        super().__init__(config)
        self._template = (
            "Line exceeds %%s characters; contains %%s characters "
            "(tabs expanded to %d spaces)" % self.config.tab_width
        )

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        if position != 0:
            return
        tokens = stream.tokens
        source = "".join(token.text for token in tokens)
        anchors = _line_anchors(tokens)
        tab = " " * self.config.tab_width
        for number, line in enumerate(source.split("\n"), start=1):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            length = len(line.replace("\t", tab))
            if _COMMENT_LINE_RE.match(line):
                code, limit = "CommentExceedsLimit", self.config.comment_line_limit
            else:
                code, limit = "ExceedsLimit", self.config.line_limit
            if length > limit:
                self._emit(
                    sink, stream, anchors[number], code, self._template,
                    (limit, length), line=number, column=1,
                )


@dataclass(frozen=True)
class IndentationConfig:
    indent: int = 4
    use_tabs: bool = True


class IndentationCheck(Check):
    """
    Leading whitespace of PHP lines.

    With ``use_tabs`` a line is indented with tabs; fewer than ``indent``
    spaces may follow the tabs for alignment. Without it only spaces are
    allowed.
    """

    name = "Formatting.Indentation"
    description = "Tabs versus spaces for indentation"
    codes = frozenset({"SpacesUsedForIndent", "MixedIndentation"})
    interested_kinds = frozenset({K.WHITESPACE})
    config_class = IndentationConfig

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]
        if token.column != 1 or "\n" in token.text:
            return
        if position > 0 and not tokens[position - 1].text.endswith("\n"):
            return
        indent = token.text
        if self.config.use_tabs:
            tabs = len(indent) - len(indent.lstrip("\t"))
            alignment = indent[tabs:]
            if "\t" in alignment:
                self._emit(
                    sink, stream, position, "MixedIndentation",
                    "Line is indented with a mix of tabs and spaces",
                )
            elif len(alignment) >= self.config.indent:
                if tabs:
                    self._emit(
                        sink, stream, position, "MixedIndentation",
                        "Line is indented with a mix of tabs and spaces",
                    )
                else:
                    self._emit(
                        sink, stream, position, "SpacesUsedForIndent",
                        "Tabs must be used to indent lines; spaces are not allowed",
                    )
        elif "\t" in indent:
            self._emit(
                sink, stream, position, "MixedIndentation",
                "Spaces must be used to indent lines; tabs are not allowed",
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: STRINGS AND TAGS
# ═════════════════════════════════════════════════════════════════════════

_VARIABLE_IN_TEXT_RE = re.compile(r"\$[A-Za-z_\x80-\U0010ffff][A-Za-z0-9_\x80-\U0010ffff]*")
_ESCAPE_RE = re.compile(r"\\[nrtvef$\"\\0-7xu]")


class QuotesCheck(Check):
    """
    Single quotes for plain text, double quotes only where interpolation or
    escape sequences need them.
    """

    name = "Strings.Quotes"
    description = "Quote style of string literals"
    codes = frozenset({"SingleQuotesWithVariable", "DoubleQuotesWithoutVariable"})
    interested_kinds = frozenset({K.CONSTANT_ENCAPSED_STRING, K.DOUBLE_QUOTED_STRING})

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        text = stream.tokens[position].text
        if text.startswith("'"):
            if _VARIABLE_IN_TEXT_RE.search(text):
                self._emit(
                    sink, stream, position, "SingleQuotesWithVariable",
                    "Use double quotes for strings that contain variables to be escaped",
                )
            return
        if not text.startswith('"'):
            return
        body = text[1:-1]
        if _VARIABLE_IN_TEXT_RE.search(body) or _ESCAPE_RE.search(body) or "'" in body:
            return
        self._emit(
            sink, stream, position, "DoubleQuotesWithoutVariable",
            "Use single quotes for strings that do not contain variables to be escaped",
        )


class PhpTagsCheck(Check):
    """Open and close tags stand alone on their lines; Blade views use none."""

    name = "PHP.PhpTags"
    description = "PHP tag placement"
    codes = frozenset({
        "PhpTagsInBladeFile", "OpeningTagNotOnOwnLine", "ClosingTagNotOnOwnLine",
    })
    interested_kinds = frozenset({K.OPEN_TAG, K.CLOSE_TAG})

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]
        if stream.is_blade:
            self._emit(
                sink, stream, position, "PhpTagsInBladeFile",
                "PHP tags should not be used in Blade files",
            )
            return
        if token.kind is K.OPEN_TAG:
            nxt = _next_non_whitespace(tokens, position)
            if nxt is not None and tokens[nxt].line == token.line:
                self._emit(
                    sink, stream, position, "OpeningTagNotOnOwnLine",
                    "Opening PHP tag must be on a line by itself",
                )
        else:
            prev = _previous_non_whitespace(tokens, position)
            if prev is not None and tokens[prev].end_line == token.line:
                self._emit(
                    sink, stream, position, "ClosingTagNotOnOwnLine",
                    "Closing PHP tag must be on a line by itself",
                )


# ═════════════════════════════════════════════════════════════════════════
#  PART 6: CONTROL STRUCTURES
# ═════════════════════════════════════════════════════════════════════════

class ControlStructuresCheck(Check):
    """Blade views use the ``if (...):`` form; everything else uses braces."""

    name = "ControlStructures.ControlStructures"
    description = "Brace versus colon syntax for control structures"
    codes = frozenset({"BracketFormatInBladeFile", "ColonFormatInNonBladeFile"})
    interested_kinds = frozenset({
        K.IF, K.ELSEIF, K.ELSE, K.FOR, K.FOREACH, K.WHILE, K.DO,
    })

    def _body_opener(self, tokens: Sequence[Token], position: int) -> Optional[int]:
        kind = tokens[position].kind
        if kind in (K.ELSE, K.DO):
            return next_significant(tokens, position + 1)
        opener = find_next(tokens, K.OPEN_PARENTHESIS, position + 1, skip=EMPTY_TOKENS)
        if opener is None:
            return None
        return next_significant(tokens, paired_closer(tokens, opener) + 1)

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        body = self._body_opener(tokens, position)
        if body is None:
            return
        kind = tokens[body].kind
        if stream.is_blade and kind is K.OPEN_CURLY_BRACKET:
            self._emit(
                sink, stream, body, "BracketFormatInBladeFile",
                "Use colon format for control structures in Blade files",
            )
        elif not stream.is_blade and kind is K.COLON:
            self._emit(
                sink, stream, body, "ColonFormatInNonBladeFile",
                "Use bracket format for control structures in non-Blade files",
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 7: BLADE
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DeprecatedComponentSyntaxConfig:
    deprecated_prefix: str = "artisanpack-artisanpack-"
    replacement_prefix: str = "artisanpack-"


class DeprecatedComponentSyntaxCheck(Check):
    """Blade component tags still using a renamed prefix."""

    name = "Blade.DeprecatedComponentSyntax"
    description = "Deprecated Blade component prefixes"
    codes = frozenset({"Found"})
    interested_kinds = frozenset({K.INLINE_HTML})
    default_severity = Severity.WARNING
    config_class = DeprecatedComponentSyntaxConfig

    def __init__(self, config: Optional[DeprecatedComponentSyntaxConfig] = None) -> None:
        super().__init__(config)
        self._pattern = re.compile(
            r"<x-" + re.escape(self.config.deprecated_prefix) + r"[\w-]+"
        )

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        token = stream.tokens[position]
        for match in self._pattern.finditer(token.text):
            component = match.group(0)
            replacement = component.replace(
                self.config.deprecated_prefix, self.config.replacement_prefix, 1
            )
            self._emit(
                sink, stream, position, "Found",
                "Usage of the deprecated component syntax %s was found. "
                "Please update to %s.",
                (component, replacement),
                column=token.column + match.start(),
            )


CHECKS = [
    ArraySyntaxCheck,
    BracesCheck,
    SpacingCheck,
    LineLengthCheck,
    IndentationCheck,
    QuotesCheck,
    PhpTagsCheck,
    ControlStructuresCheck,
    DeprecatedComponentSyntaxCheck,
]

__all__ = [
    "ArraySyntaxCheck",
    "BracesConfig",
    "BracesCheck",
    "SPACED_OPERATORS",
    "SpacingCheck",
    "LineLengthConfig",
    "LineLengthCheck",
    "IndentationConfig",
    "IndentationCheck",
    "QuotesCheck",
    "PhpTagsCheck",
    "ControlStructuresCheck",
    "DeprecatedComponentSyntaxConfig",
    "DeprecatedComponentSyntaxCheck",
    "CHECKS",
]
