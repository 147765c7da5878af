"""
tokensniff/tokenizer.py
═══════════════════════

Regex-driven PHP / Blade tokenizer that produces a ``TokenStream``.

Checks never lex text; they only read the stream built here. The work is
split in two passes:

  1. **Lexing**: a mode machine (inline HTML ↔ PHP code) that slices the
     source into ``(kind, text)`` pairs and tracks line and column.
  2. **Structure**: bracket pairing with a stack, the scope table for
     class-like and function-like bodies, and the ``conditions`` tuple of
     every token.

The tokenizer is deliberately tolerant: an unterminated string or comment
runs to the end of input, and a mismatched bracket is simply left unlinked
so that checks relying on it give up with ``MalformedStructure``.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from tokensniff.errors import TokenizeError
from tokensniff.tokens import (
    CLASS_LIKE_SCOPES,
    CLASS_LIKE_TOKENS,
    CLOSERS,
    EMPTY_TOKENS,
    KEYWORDS,
    OPENERS,
    Scope,
    ScopeKind,
    Token,
    TokenKind,
    TokenStream,
)

logger = logging.getLogger(__name__)

K = TokenKind

DEFAULT_TAB_WIDTH = 4


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: LEXICAL TABLES
# ═════════════════════════════════════════════════════════════════════════

# Longest operators first so that the alternation matches greedily.
_OPERATORS: List[Tuple[str, TokenKind]] = [
    ("<=>", K.SPACESHIP), ("===", K.IS_IDENTICAL), ("!==", K.IS_NOT_IDENTICAL),
    ("**=", K.POW_EQUAL), ("??=", K.COALESCE_EQUAL), ("<<=", K.SL_EQUAL),
    (">>=", K.SR_EQUAL), ("...", K.ELLIPSIS), ("?->", K.NULLSAFE_OBJECT_OPERATOR),
    ("->", K.OBJECT_OPERATOR), ("=>", K.DOUBLE_ARROW), ("::", K.DOUBLE_COLON),
    ("==", K.IS_EQUAL), ("!=", K.IS_NOT_EQUAL), ("<>", K.IS_NOT_EQUAL),
    ("<=", K.IS_SMALLER_OR_EQUAL), (">=", K.IS_GREATER_OR_EQUAL),
    ("&&", K.BOOLEAN_AND), ("||", K.BOOLEAN_OR), ("??", K.COALESCE),
    ("++", K.INC), ("--", K.DEC), ("+=", K.PLUS_EQUAL), ("-=", K.MINUS_EQUAL),
    ("*=", K.MUL_EQUAL), ("/=", K.DIV_EQUAL), (".=", K.CONCAT_EQUAL),
    ("%=", K.MOD_EQUAL), ("&=", K.AND_EQUAL), ("|=", K.OR_EQUAL),
    ("^=", K.XOR_EQUAL), ("**", K.POW), ("<<", K.SL), (">>", K.SR),
    ("#[", K.ATTRIBUTE),
    ("=", K.EQUAL), ("<", K.LESS_THAN), (">", K.GREATER_THAN), ("+", K.PLUS),
    ("-", K.MINUS), ("*", K.MULTIPLY), ("/", K.DIVIDE), ("%", K.MODULUS),
    (".", K.STRING_CONCAT), ("!", K.BOOLEAN_NOT), ("&", K.BITWISE_AND),
    ("|", K.BITWISE_OR), ("^", K.BITWISE_XOR), ("~", K.BITWISE_NOT),
    ("?", K.INLINE_THEN), (":", K.COLON), (";", K.SEMICOLON), (",", K.COMMA),
    ("(", K.OPEN_PARENTHESIS), (")", K.CLOSE_PARENTHESIS),
    ("{", K.OPEN_CURLY_BRACKET), ("}", K.CLOSE_CURLY_BRACKET),
    ("[", K.OPEN_SQUARE_BRACKET), ("]", K.CLOSE_SQUARE_BRACKET),
    ("@", K.ASPERAND), ("\\", K.NS_SEPARATOR), ("$", K.DOLLAR),
]
_OPERATOR_KINDS: Dict[str, TokenKind] = dict(_OPERATORS)

_IDENT = r"[A-Za-z_\x80-\U0010ffff][A-Za-z0-9_\x80-\U0010ffff]*"

_CAST_TYPES = (
    "int|integer|bool|boolean|float|double|real|string|array|object|unset|binary"
)

# Order matters: the first alternative that matches at a position wins.
_PHP_RULES: List[Tuple[str, str]] = [
    ("CLOSE_TAG", r"\?>(?:\r?\n)?"),
    ("WHITESPACE", r"[ \t\f]*\r?\n|[ \t\f]+"),
    ("DOC_COMMENT", r"/\*\*(?!/)(?:.*?\*/|.*\Z)"),
    ("COMMENT", r"/\*(?:.*?\*/|.*\Z)|(?://|\#(?!\[))[^\r\n?]*(?:\?(?!>)[^\r\n?]*)*"),
    ("HEREDOC", r"<<<[ \t]*(?P<q>[\"']?)(?P<label>" + _IDENT + r")(?P=q)\r?\n"),
    ("VARIABLE", r"\$" + _IDENT),
    ("CAST", r"\([ \t]*(?:" + _CAST_TYPES + r")[ \t]*\)"),
    ("DNUMBER", r"(?:\d[\d_]*)?\.\d[\d_]*(?:[eE][+-]?\d+)?|\d[\d_]*[eE][+-]?\d+"),
    ("LNUMBER", r"0[xX][0-9a-fA-F_]+|0[bB][01_]+|\d[\d_]*"),
    ("IDENT", _IDENT),
    ("SQ_STRING", r"'(?:[^'\\]|\\.)*(?:'|\Z)"),
    ("DQ_STRING", r"\"(?:[^\"\\]|\\.)*(?:\"|\Z)"),
    ("OPERATOR", "|".join(re.escape(op) for op, _ in _OPERATORS)),
]

_PHP_RE = re.compile(
    "|".join(f"(?P<{name}>{pattern})" for name, pattern in _PHP_RULES),
    re.DOTALL | re.IGNORECASE,
)

_OPEN_TAG_RE = re.compile(r"<\?php(?=\s|\Z)|<\?=", re.IGNORECASE)

# ``$name`` or ``{$`` not preceded by a backslash escape.
_INTERPOLATION_RE = re.compile(r"(?<!\\)(?:\\\\)*(?:\$" + _IDENT + r"|\{\$|\$\{)")

# Tokens after which ``[`` indexes rather than opens an array literal.
_SUBSCRIPTABLE = frozenset({
    K.VARIABLE, K.STRING, K.CLOSE_SQUARE_BRACKET, K.CLOSE_SHORT_ARRAY,
    K.CLOSE_PARENTHESIS, K.CLOSE_CURLY_BRACKET, K.CONSTANT_ENCAPSED_STRING,
    K.DOUBLE_QUOTED_STRING,
})

# Tokens after which a reserved word is only a member or function name.
_NAME_CONTEXT = frozenset({
    K.OBJECT_OPERATOR, K.NULLSAFE_OBJECT_OPERATOR, K.DOUBLE_COLON, K.FUNCTION,
    K.CONST,
})

_CLOSER_FOR = {
    K.OPEN_PARENTHESIS: K.CLOSE_PARENTHESIS,
    K.OPEN_CURLY_BRACKET: K.CLOSE_CURLY_BRACKET,
    K.OPEN_SQUARE_BRACKET: K.CLOSE_SQUARE_BRACKET,
    K.OPEN_SHORT_ARRAY: K.CLOSE_SHORT_ARRAY,
    K.ATTRIBUTE: K.CLOSE_SQUARE_BRACKET,
}

_SCOPE_KIND_FOR = {
    K.CLASS: ScopeKind.CLASS,
    K.INTERFACE: ScopeKind.INTERFACE,
    K.TRAIT: ScopeKind.TRAIT,
    K.ENUM: ScopeKind.ENUM,
}


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: LEXING
# ═════════════════════════════════════════════════════════════════════════

class _Lexer:
    """Slices source text into ``(kind, text)`` pairs."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0
        self.raw: List[Tuple[TokenKind, str]] = []

    # ── helpers ──────────────────────────────────────────────────────

    def _push(self, kind: TokenKind, text: str) -> None:
        if text:
            self.raw.append((kind, text))

    def _last_significant(self) -> Optional[TokenKind]:
        for kind, _ in reversed(self.raw):
            if kind not in EMPTY_TOKENS:
                return kind
        return None

    # ── modes ────────────────────────────────────────────────────────

    def run(self) -> List[Tuple[TokenKind, str]]:
        end = len(self.source)
        while self.pos < end:
            self._lex_html()
            if self.pos < end:
                self._lex_php()
        return self.raw

    def _lex_html(self) -> None:
        match = _OPEN_TAG_RE.search(self.source, self.pos)
        stop = match.start() if match else len(self.source)
        html = self.source[self.pos:stop]
        # One INLINE_HTML token per line, newline kept at the end.
        for piece in html.splitlines(keepends=True):
            self._push(K.INLINE_HTML, piece)
        self.pos = stop
        if match:
            tag = match.group(0)
            kind = K.OPEN_TAG_WITH_ECHO if tag == "<?=" else K.OPEN_TAG
            self._push(kind, tag)
            self.pos = match.end()

    def _lex_php(self) -> None:
        source = self.source
        while self.pos < len(source):
            match = _PHP_RE.match(source, self.pos)
            if match is None:
                self._push(K.UNKNOWN, source[self.pos])
                self.pos += 1
                continue
            group = match.lastgroup
            text = match.group(0)
            self.pos = match.end()

            if group == "CLOSE_TAG":
                self._push(K.CLOSE_TAG, text)
                return
            if group == "HEREDOC":
                self._lex_heredoc(text, match.group("label"), match.group("q"))
            elif group == "IDENT":
                self._push(self._classify_identifier(text), text)
            elif group == "SQ_STRING":
                self._push(K.CONSTANT_ENCAPSED_STRING, text)
            elif group == "DQ_STRING":
                interpolated = _INTERPOLATION_RE.search(text) is not None
                self._push(
                    K.DOUBLE_QUOTED_STRING if interpolated
                    else K.CONSTANT_ENCAPSED_STRING,
                    text,
                )
            elif group == "OPERATOR":
                self._push(self._classify_operator(text), text)
            else:
                self._push(K[group], text)

    def _lex_heredoc(self, opener: str, label: str, quote: str) -> None:
        closer = re.compile(
            r"^[ \t]*" + re.escape(label) + r"\b", re.MULTILINE
        )
        match = closer.search(self.source, self.pos)
        stop = match.end() if match else len(self.source)
        body = self.source[self.pos:stop]
        self.pos = stop
        self._push(K.NOWDOC if quote == "'" else K.HEREDOC, opener + body)

    def _classify_identifier(self, text: str) -> TokenKind:
        kind = KEYWORDS.get(text.lower())
        if kind is None:
            return K.STRING
        if self._last_significant() in _NAME_CONTEXT:
            return K.STRING
        if kind is K.ENUM and not re.match(
            r"[ \t\r\n]+" + _IDENT, self.source[self.pos:self.pos + 256]
        ):
            return K.STRING
        return kind

    def _classify_operator(self, text: str) -> TokenKind:
        kind = _OPERATOR_KINDS[text]
        if kind is K.OPEN_SQUARE_BRACKET:
            if self._last_significant() not in _SUBSCRIPTABLE:
                return K.OPEN_SHORT_ARRAY
        return kind


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: STRUCTURE PASS
# ═════════════════════════════════════════════════════════════════════════

def _pair_brackets(kinds: List[TokenKind]) -> Tuple[List[Optional[int]], List[TokenKind]]:
    """
    Link openers to closers with a stack.

    A closer that does not match the innermost opener is paired with the
    nearest matching opener further down the stack; the openers in between
    stay unlinked. A closer with no matching opener stays unlinked too.
    Closing square brackets are renamed to ``CLOSE_SHORT_ARRAY`` when their
    opener started an array literal.
    """
    paired: List[Optional[int]] = [None] * len(kinds)
    kinds = list(kinds)
    stack: List[int] = []
    for i, kind in enumerate(kinds):
        if kind in OPENERS:
            stack.append(i)
            continue
        if kind not in CLOSERS:
            continue
        for depth in range(len(stack) - 1, -1, -1):
            opener = stack[depth]
            expected = _CLOSER_FOR[kinds[opener]]
            if expected is kind or (
                kind is K.CLOSE_SQUARE_BRACKET and expected is K.CLOSE_SHORT_ARRAY
            ):
                del stack[depth:]
                paired[opener] = i
                paired[i] = opener
                kinds[i] = expected
                break
        else:
            logger.debug("unmatched closer %s at token %d", kind.name, i)
    return paired, kinds


def _next_significant(kinds: List[TokenKind], start: int) -> Optional[int]:
    for i in range(start, len(kinds)):
        if kinds[i] not in EMPTY_TOKENS:
            return i
    return None


def _prev_significant(kinds: List[TokenKind], start: int) -> Optional[int]:
    for i in range(start, -1, -1):
        if kinds[i] not in EMPTY_TOKENS:
            return i
    return None


def _find_body(
    kinds: List[TokenKind], paired: List[Optional[int]], owner: int
) -> Optional[int]:
    """Index of the ``{`` opening the body declared at ``owner``."""
    i = owner + 1
    while i < len(kinds):
        kind = kinds[i]
        if kind is K.OPEN_CURLY_BRACKET:
            return i
        if kind in (K.SEMICOLON, K.CLOSE_TAG, K.DOUBLE_ARROW) or kind in CLOSERS:
            return None
        if kind in OPENERS:
            partner = paired[i]
            if partner is None:
                return None
            i = partner
        i += 1
    return None


def _build_scopes(
    kinds: List[TokenKind], texts: List[str], paired: List[Optional[int]]
) -> Tuple[List[Scope], Dict[int, int]]:
    pending: List[Tuple[int, ScopeKind, int, int, str]] = []
    for owner, kind in enumerate(kinds):
        if kind not in CLASS_LIKE_TOKENS and kind is not K.FUNCTION:
            continue
        start = _find_body(kinds, paired, owner)
        if start is None or paired[start] is None:
            continue
        name = ""
        after = _next_significant(kinds, owner + 1)
        if after is not None and kinds[after] is K.BITWISE_AND:
            after = _next_significant(kinds, after + 1)
        if after is not None and kinds[after] is K.STRING:
            name = texts[after]
        if kind is K.FUNCTION:
            scope_kind = ScopeKind.FUNCTION if name else ScopeKind.CLOSURE
        else:
            scope_kind = _SCOPE_KIND_FOR[kind]
        pending.append((owner, scope_kind, start, paired[start], name))

    pending.sort(key=lambda p: p[2])
    scopes: List[Scope] = []
    owners: Dict[int, int] = {}
    stack: List[Scope] = []
    for owner, scope_kind, start, end, name in pending:
        while stack and stack[-1].end < start:
            stack.pop()
        parent = stack[-1] if stack else None
        if (
            scope_kind is ScopeKind.FUNCTION
            and parent is not None
            and parent.kind in CLASS_LIKE_SCOPES
        ):
            scope_kind = ScopeKind.METHOD
        scope = Scope(
            id=len(scopes),
            kind=scope_kind,
            owner=owner,
            start=start,
            end=end,
            parent=parent.id if parent is not None else None,
            name=name,
        )
        scopes.append(scope)
        owners[owner] = scope.id
        stack.append(scope)
    return scopes, owners


def _conditions(count: int, scopes: List[Scope]) -> List[Tuple[int, ...]]:
    """Per-token tuple of strictly enclosing scope ids, innermost last."""
    result: List[Tuple[int, ...]] = [()] * count
    by_start = {scope.start: scope for scope in scopes}
    stack: List[Scope] = []
    current: Tuple[int, ...] = ()
    for i in range(count):
        changed = False
        while stack and stack[-1].end <= i:
            stack.pop()
            changed = True
        if changed:
            current = tuple(s.id for s in stack)
        result[i] = current
        scope = by_start.get(i)
        if scope is not None:
            stack.append(scope)
            current = tuple(s.id for s in stack)
    return result


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: PUBLIC ENTRY POINT
# ═════════════════════════════════════════════════════════════════════════

def tokenize(
    source: str, path: str = "", tab_width: int = DEFAULT_TAB_WIDTH
) -> TokenStream:
    """
    Tokenize PHP / Blade source into a linked ``TokenStream``.

    Parameters
    ----------
    source    : file contents
    path      : file path, carried on the stream for path-aware checks
    tab_width : columns per tab stop used when computing ``Token.column``

    Raises
    ------
    TokenizeError
        If ``source`` is not a ``str``.
    """
    if not isinstance(source, str):
        raise TokenizeError(
            f"expected str source, got {type(source).__name__}"
        )

    raw = _Lexer(source).run()
    kinds = [kind for kind, _ in raw]
    texts = [text for _, text in raw]
    paired, kinds = _pair_brackets(kinds)
    scopes, owners = _build_scopes(kinds, texts, paired)
    conditions = _conditions(len(kinds), scopes)

    tokens: List[Token] = []
    line, column = 1, 1
    for i, text in enumerate(texts):
        tokens.append(Token(
            kind=kinds[i],
            text=text,
            line=line,
            column=column,
            paired=paired[i],
            scope=owners.get(i),
            conditions=conditions[i],
        ))
        for ch in text:
            if ch == "\n":
                line += 1
                column = 1
            elif ch == "\t" and tab_width > 0:
                column += tab_width - ((column - 1) % tab_width)
            else:
                column += 1

    logger.debug(
        "tokenized %s: %d tokens, %d scopes", path or "<source>",
        len(tokens), len(scopes),
    )
    return TokenStream(tokens=tuple(tokens), scopes=tuple(scopes), path=path)


def tokenize_file(path: str, tab_width: int = DEFAULT_TAB_WIDTH) -> TokenStream:
    """Read ``path`` as UTF-8 (undecodable bytes replaced) and tokenize it."""
    with open(path, encoding="utf-8", errors="replace") as handle:
        return tokenize(handle.read(), path=path, tab_width=tab_width)


__all__ = ["tokenize", "tokenize_file", "DEFAULT_TAB_WIDTH"]
