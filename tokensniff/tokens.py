"""
tokensniff/tokens.py
════════════════════

The token model every check reads: a closed ``TokenKind`` enumeration,
immutable ``Token`` values, the ``Scope`` table and the ``TokenStream`` pair
that bundles them for a single file.

Structural links
────────────────

  ┌──────────────────────────────────────────────────────────────┐
  │  class Foo {  function bar($x) {  return [$x];  }  }         │
  │  ─┬───     ┬   ─┬──────     ┬  ┬         ┬  ┬   ┬  ┬         │
  │   │        │    │           │  │         └──┘   │  │         │
  │   │        │    │           └──┘  paired        │  │         │
  │   │        │    └── scope=1 ─────────────────── end │         │
  │   └── scope=0 ──── start ──────────────────────────── end    │
  └──────────────────────────────────────────────────────────────┘

* ``Token.paired``: index of the matching bracket, paren or brace.
* ``Token.scope``: id of the scope owned by a ``class``/``function``
  keyword (index into ``TokenStream.scopes``).
* ``Token.conditions``: ids of every scope strictly enclosing the token,
  outermost first, innermost last.

Everything here is frozen: a stream is produced once by the tokenizer and
then only read.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, FrozenSet, Iterator, Optional, Tuple


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: TOKEN KINDS
# ═════════════════════════════════════════════════════════════════════════

class TokenKind(Enum):
    """Closed set of lexical categories."""

    # ── document structure ───────────────────────────────────────────
    OPEN_TAG = auto()
    OPEN_TAG_WITH_ECHO = auto()
    CLOSE_TAG = auto()
    INLINE_HTML = auto()
    WHITESPACE = auto()
    COMMENT = auto()
    DOC_COMMENT = auto()

    # ── operands ─────────────────────────────────────────────────────
    VARIABLE = auto()
    STRING = auto()                    # bare identifier
    CONSTANT_ENCAPSED_STRING = auto()  # string without interpolation
    DOUBLE_QUOTED_STRING = auto()      # string with interpolation
    HEREDOC = auto()
    NOWDOC = auto()
    LNUMBER = auto()
    DNUMBER = auto()
    CAST = auto()

    # ── declarations ─────────────────────────────────────────────────
    CLASS = auto()
    INTERFACE = auto()
    TRAIT = auto()
    ENUM = auto()
    FUNCTION = auto()
    FN = auto()
    ABSTRACT = auto()
    FINAL = auto()
    PUBLIC = auto()
    PROTECTED = auto()
    PRIVATE = auto()
    STATIC = auto()
    READONLY = auto()
    VAR = auto()
    CONST = auto()
    USE = auto()
    NAMESPACE = auto()
    EXTENDS = auto()
    IMPLEMENTS = auto()

    # ── statements & expressions ─────────────────────────────────────
    NEW = auto()
    CLONE = auto()
    RETURN = auto()
    ECHO = auto()
    PRINT = auto()
    EXIT = auto()
    ARRAY = auto()
    LIST = auto()
    ISSET = auto()
    EMPTY = auto()
    UNSET = auto()
    IF = auto()
    ELSE = auto()
    ELSEIF = auto()
    ENDIF = auto()
    WHILE = auto()
    ENDWHILE = auto()
    DO = auto()
    FOR = auto()
    ENDFOR = auto()
    FOREACH = auto()
    ENDFOREACH = auto()
    SWITCH = auto()
    ENDSWITCH = auto()
    CASE = auto()
    DEFAULT = auto()
    MATCH = auto()
    BREAK = auto()
    CONTINUE = auto()
    TRY = auto()
    CATCH = auto()
    FINALLY = auto()
    THROW = auto()
    AS = auto()
    INSTANCEOF = auto()
    GLOBAL = auto()
    INCLUDE = auto()
    REQUIRE = auto()
    YIELD = auto()
    TRUE = auto()
    FALSE = auto()
    NULL = auto()
    SELF = auto()
    PARENT = auto()
    LOGICAL_AND = auto()
    LOGICAL_OR = auto()
    LOGICAL_XOR = auto()

    # ── brackets ─────────────────────────────────────────────────────
    OPEN_PARENTHESIS = auto()
    CLOSE_PARENTHESIS = auto()
    OPEN_CURLY_BRACKET = auto()
    CLOSE_CURLY_BRACKET = auto()
    OPEN_SQUARE_BRACKET = auto()
    CLOSE_SQUARE_BRACKET = auto()
    OPEN_SHORT_ARRAY = auto()
    CLOSE_SHORT_ARRAY = auto()
    ATTRIBUTE = auto()                 # ``#[`` ; closed by ``]``

    # ── punctuation ──────────────────────────────────────────────────
    SEMICOLON = auto()
    COMMA = auto()
    COLON = auto()
    DOUBLE_COLON = auto()
    NS_SEPARATOR = auto()
    OBJECT_OPERATOR = auto()
    NULLSAFE_OBJECT_OPERATOR = auto()
    DOUBLE_ARROW = auto()
    ELLIPSIS = auto()
    ASPERAND = auto()
    DOLLAR = auto()

    # ── assignment ───────────────────────────────────────────────────
    EQUAL = auto()
    PLUS_EQUAL = auto()
    MINUS_EQUAL = auto()
    MUL_EQUAL = auto()
    DIV_EQUAL = auto()
    CONCAT_EQUAL = auto()
    MOD_EQUAL = auto()
    POW_EQUAL = auto()
    AND_EQUAL = auto()
    OR_EQUAL = auto()
    XOR_EQUAL = auto()
    SL_EQUAL = auto()
    SR_EQUAL = auto()
    COALESCE_EQUAL = auto()

    # ── comparison ───────────────────────────────────────────────────
    IS_EQUAL = auto()
    IS_NOT_EQUAL = auto()
    IS_IDENTICAL = auto()
    IS_NOT_IDENTICAL = auto()
    LESS_THAN = auto()
    GREATER_THAN = auto()
    IS_SMALLER_OR_EQUAL = auto()
    IS_GREATER_OR_EQUAL = auto()
    SPACESHIP = auto()

    # ── arithmetic / logic ───────────────────────────────────────────
    PLUS = auto()
    MINUS = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    MODULUS = auto()
    POW = auto()
    STRING_CONCAT = auto()
    BOOLEAN_AND = auto()
    BOOLEAN_OR = auto()
    BOOLEAN_NOT = auto()
    BITWISE_AND = auto()
    BITWISE_OR = auto()
    BITWISE_XOR = auto()
    BITWISE_NOT = auto()
    SL = auto()
    SR = auto()
    INC = auto()
    DEC = auto()
    COALESCE = auto()
    INLINE_THEN = auto()

    UNKNOWN = auto()


K = TokenKind

# ── kind groups ──────────────────────────────────────────────────────

EMPTY_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.WHITESPACE, K.COMMENT, K.DOC_COMMENT,
})

COMMENT_TOKENS: FrozenSet[TokenKind] = frozenset({K.COMMENT, K.DOC_COMMENT})

OPENERS: FrozenSet[TokenKind] = frozenset({
    K.OPEN_PARENTHESIS, K.OPEN_CURLY_BRACKET, K.OPEN_SQUARE_BRACKET,
    K.OPEN_SHORT_ARRAY, K.ATTRIBUTE,
})

CLOSERS: FrozenSet[TokenKind] = frozenset({
    K.CLOSE_PARENTHESIS, K.CLOSE_CURLY_BRACKET, K.CLOSE_SQUARE_BRACKET,
    K.CLOSE_SHORT_ARRAY,
})

TEXT_STRINGS: FrozenSet[TokenKind] = frozenset({
    K.CONSTANT_ENCAPSED_STRING, K.DOUBLE_QUOTED_STRING, K.HEREDOC, K.NOWDOC,
})

LITERALS: FrozenSet[TokenKind] = TEXT_STRINGS - {K.DOUBLE_QUOTED_STRING, K.HEREDOC} | {
    K.LNUMBER, K.DNUMBER, K.TRUE, K.FALSE, K.NULL,
}

ASSIGNMENT_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.EQUAL, K.PLUS_EQUAL, K.MINUS_EQUAL, K.MUL_EQUAL, K.DIV_EQUAL,
    K.CONCAT_EQUAL, K.MOD_EQUAL, K.POW_EQUAL, K.AND_EQUAL, K.OR_EQUAL,
    K.XOR_EQUAL, K.SL_EQUAL, K.SR_EQUAL, K.COALESCE_EQUAL,
})

COMPARISON_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.IS_EQUAL, K.IS_NOT_EQUAL, K.IS_IDENTICAL, K.IS_NOT_IDENTICAL,
    K.LESS_THAN, K.GREATER_THAN, K.IS_SMALLER_OR_EQUAL,
    K.IS_GREATER_OR_EQUAL, K.SPACESHIP,
})

ARITHMETIC_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.PLUS, K.MINUS, K.MULTIPLY, K.DIVIDE, K.MODULUS, K.POW,
})

BOOLEAN_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.BOOLEAN_AND, K.BOOLEAN_OR, K.LOGICAL_AND, K.LOGICAL_OR, K.LOGICAL_XOR,
})

OBJECT_OPERATORS: FrozenSet[TokenKind] = frozenset({
    K.OBJECT_OPERATOR, K.NULLSAFE_OBJECT_OPERATOR, K.DOUBLE_COLON,
})

CLASS_LIKE_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.CLASS, K.INTERFACE, K.TRAIT, K.ENUM,
})

SCOPE_OWNER_TOKENS: FrozenSet[TokenKind] = CLASS_LIKE_TOKENS | {K.FUNCTION}

VISIBILITY_TOKENS: FrozenSet[TokenKind] = frozenset({
    K.PUBLIC, K.PROTECTED, K.PRIVATE,
})

METHOD_MODIFIERS: FrozenSet[TokenKind] = VISIBILITY_TOKENS | {
    K.STATIC, K.ABSTRACT, K.FINAL, K.READONLY, K.VAR,
}

CONTROL_STRUCTURES: FrozenSet[TokenKind] = frozenset({
    K.IF, K.ELSEIF, K.WHILE, K.FOR, K.FOREACH, K.SWITCH,
})

# Reserved words, matched case-insensitively by the tokenizer.
KEYWORDS: Dict[str, TokenKind] = {
    "class": K.CLASS, "interface": K.INTERFACE, "trait": K.TRAIT,
    "enum": K.ENUM, "function": K.FUNCTION, "fn": K.FN,
    "abstract": K.ABSTRACT, "final": K.FINAL, "public": K.PUBLIC,
    "protected": K.PROTECTED, "private": K.PRIVATE, "static": K.STATIC,
    "readonly": K.READONLY, "var": K.VAR, "const": K.CONST, "use": K.USE,
    "namespace": K.NAMESPACE, "extends": K.EXTENDS,
    "implements": K.IMPLEMENTS, "new": K.NEW, "clone": K.CLONE,
    "return": K.RETURN, "echo": K.ECHO, "print": K.PRINT, "exit": K.EXIT,
    "die": K.EXIT, "array": K.ARRAY, "list": K.LIST, "isset": K.ISSET,
    "empty": K.EMPTY, "unset": K.UNSET, "if": K.IF, "else": K.ELSE,
    "elseif": K.ELSEIF, "endif": K.ENDIF, "while": K.WHILE,
    "endwhile": K.ENDWHILE, "do": K.DO, "for": K.FOR, "endfor": K.ENDFOR,
    "foreach": K.FOREACH, "endforeach": K.ENDFOREACH, "switch": K.SWITCH,
    "endswitch": K.ENDSWITCH, "case": K.CASE, "default": K.DEFAULT,
    "match": K.MATCH, "break": K.BREAK, "continue": K.CONTINUE,
    "try": K.TRY, "catch": K.CATCH, "finally": K.FINALLY, "throw": K.THROW,
    "as": K.AS, "instanceof": K.INSTANCEOF, "global": K.GLOBAL,
    "include": K.INCLUDE, "include_once": K.INCLUDE, "require": K.REQUIRE,
    "require_once": K.REQUIRE, "yield": K.YIELD, "true": K.TRUE,
    "false": K.FALSE, "null": K.NULL, "self": K.SELF, "parent": K.PARENT,
    "and": K.LOGICAL_AND, "or": K.LOGICAL_OR, "xor": K.LOGICAL_XOR,
}


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: TOKENS AND SCOPES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Token:
    """
    One lexical unit.

    Attributes
    ----------
    kind       : TokenKind
    text       : raw source text, newlines included
    line       : 1-based line on which the token starts
    column     : 1-based column, tabs expanded by the tokenizer
    paired     : index of the matching bracket, if any
    scope      : id of the scope this keyword owns, if any
    conditions : enclosing scope ids, innermost last
    """
    kind: TokenKind
    text: str
    line: int
    column: int
    paired: Optional[int] = None
    scope: Optional[int] = None
    conditions: Tuple[int, ...] = ()

    @property
    def end_line(self) -> int:
        """Line of the token's last character."""
        return self.line + self.text.count("\n", 0, max(len(self.text) - 1, 0))

    @property
    def is_empty(self) -> bool:
        return self.kind in EMPTY_TOKENS

    def __str__(self) -> str:
        return f"{self.kind.name}({self.text!r})@{self.line}:{self.column}"


class ScopeKind(Enum):
    CLASS = "class"
    TRAIT = "trait"
    INTERFACE = "interface"
    ENUM = "enum"
    FUNCTION = "function"
    METHOD = "method"
    CLOSURE = "closure"


CLASS_LIKE_SCOPES: FrozenSet[ScopeKind] = frozenset({
    ScopeKind.CLASS, ScopeKind.TRAIT, ScopeKind.INTERFACE, ScopeKind.ENUM,
})

FUNCTION_LIKE_SCOPES: FrozenSet[ScopeKind] = frozenset({
    ScopeKind.FUNCTION, ScopeKind.METHOD, ScopeKind.CLOSURE,
})


@dataclass(frozen=True)
class Scope:
    """
    A class-like or function-like body.

    ``start`` and ``end`` are the indices of the ``{`` and ``}`` tokens;
    ``owner`` is the index of the declaring keyword. Anonymous classes and
    closures have an empty ``name``.
    """
    id: int
    kind: ScopeKind
    owner: int
    start: int
    end: int
    parent: Optional[int] = None
    name: str = ""

    def contains(self, position: int) -> bool:
        """True when ``position`` lies strictly between the braces."""
        return self.start < position < self.end


@dataclass(frozen=True)
class TokenStream:
    """
    The ``(tokens, scopes)`` pair for one file, plus its path.

    Every check receives this explicitly; nothing about the file being
    scanned lives in ambient state.
    """
    tokens: Tuple[Token, ...]
    scopes: Tuple[Scope, ...] = ()
    path: str = ""

    def __len__(self) -> int:
        return len(self.tokens)

    def __getitem__(self, index: int) -> Token:
        return self.tokens[index]

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokens)

    @property
    def is_blade(self) -> bool:
        return self.path.endswith(".blade.php")

    def scope_of(self, position: int) -> Optional[Scope]:
        """The scope owned by the keyword at ``position``."""
        sid = self.tokens[position].scope
        return self.scopes[sid] if sid is not None else None


__all__ = [
    "TokenKind",
    "Token",
    "ScopeKind",
    "Scope",
    "TokenStream",
    "EMPTY_TOKENS",
    "COMMENT_TOKENS",
    "OPENERS",
    "CLOSERS",
    "TEXT_STRINGS",
    "LITERALS",
    "ASSIGNMENT_TOKENS",
    "COMPARISON_TOKENS",
    "ARITHMETIC_TOKENS",
    "BOOLEAN_TOKENS",
    "OBJECT_OPERATORS",
    "CLASS_LIKE_TOKENS",
    "SCOPE_OWNER_TOKENS",
    "VISIBILITY_TOKENS",
    "METHOD_MODIFIERS",
    "CONTROL_STRUCTURES",
    "CLASS_LIKE_SCOPES",
    "FUNCTION_LIKE_SCOPES",
    "KEYWORDS",
]
