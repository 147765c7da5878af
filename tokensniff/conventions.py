"""
tokensniff/conventions.py
═════════════════════════

Code-convention checks: naming, import order, class layout, type
declarations, comparison order and banned functions.

  NamingConventions.NamingConventions   PascalCase types, camelCase
                                        functions and variables, snake_case
                                        column names
  Imports.ImportOrdering                class, then function, then const
  Classes.ClassStructure                one class per file, trait uses
                                        first, explicit visibility
  TypeHints.TypeDeclaration             parameter, return and property
                                        types; magic method spelling
  Operators.YodaConditionals            literal on the left of a comparison
  Functions.DisallowedFunctions         configured name → remediation map
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from tokensniff.checkers import Check
from tokensniff.cursor import (
    enclosing_bracket,
    find_next,
    function_call_opener,
    next_significant,
    paired_closer,
    previous_significant,
)
from tokensniff.diagnostics import DiagnosticSink
from tokensniff.errors import ConfigurationGap
from tokensniff.taint_analysis import DEFAULT_SUPERGLOBALS
from tokensniff.tokens import (
    CLASS_LIKE_SCOPES,
    CLASS_LIKE_TOKENS,
    COMPARISON_TOKENS,
    EMPTY_TOKENS,
    METHOD_MODIFIERS,
    OBJECT_OPERATORS,
    VISIBILITY_TOKENS,
    Scope,
    ScopeKind,
    Token,
    TokenKind,
    TokenStream,
)

K = TokenKind

_PASCAL_CASE_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_CAMEL_CASE_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")
_SNAKE_CASE_RE = re.compile(r"^[a-z][a-z0-9_]*$")

# Tokens that can make up a type in a declaration.
_TYPE_TOKENS = frozenset({
    K.STRING, K.ARRAY, K.SELF, K.PARENT, K.STATIC, K.FALSE, K.NULL, K.TRUE,
})
_TYPE_PUNCTUATION = frozenset({
    K.NS_SEPARATOR, K.INLINE_THEN, K.BITWISE_OR, K.BITWISE_AND,
    K.OPEN_PARENTHESIS, K.CLOSE_PARENTHESIS,
})


def _declared_name(tokens: Sequence[Token], keyword: int) -> Optional[int]:
    """Name token after ``class`` / ``function`` (``&`` skipped), or ``None`` when anonymous."""
    nxt = next_significant(tokens, keyword + 1)
    if nxt is not None and tokens[nxt].kind is K.BITWISE_AND:
        nxt = next_significant(tokens, nxt + 1)
    if nxt is None or tokens[nxt].kind is not K.STRING:
        return None
    return nxt


def _is_anonymous_class(tokens: Sequence[Token], keyword: int) -> bool:
    prev = previous_significant(tokens, keyword - 1)
    return prev is not None and tokens[prev].kind is K.NEW


def _modifiers_before(tokens: Sequence[Token], position: int) -> Set[TokenKind]:
    """
    Modifier keywords of the declaration ending at ``position``.

    Walks back over modifiers and type tokens until the start of the
    declaration (``;``, ``{``, ``}``, an attribute or anything else).
    """
    found: Set[TokenKind] = set()
    i = previous_significant(tokens, position - 1)
    while i is not None:
        kind = tokens[i].kind
        if kind in METHOD_MODIFIERS:
            found.add(kind)
        elif kind not in _TYPE_TOKENS and kind not in _TYPE_PUNCTUATION:
            break
        i = previous_significant(tokens, i - 1)
    return found


def _direct_members(stream: TokenStream, scope: Scope, kinds: frozenset) -> List[int]:
    """Tokens of ``kinds`` whose innermost enclosing scope is ``scope``."""
    return [
        i for i in range(scope.start + 1, scope.end)
        if stream.tokens[i].kind in kinds
        and stream.tokens[i].conditions
        and stream.tokens[i].conditions[-1] == scope.id
    ]


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: NAMING
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NamingConventionsConfig:
    column_pattern: str = r"^(id|name|created_at|updated_at|.*_id)$"
    exempt_variables: Tuple[str, ...] = ("this",) + tuple(
        name.lstrip("$") for name in DEFAULT_SUPERGLOBALS
    )


class NamingConventionsCheck(Check):
    """
    Class-like names in PascalCase; function and variable names in
    camelCase; member names that look like table columns in snake_case.
    """

    name = "NamingConventions.NamingConventions"
    description = "Identifier casing"
    codes = frozenset({"NotPascalCase", "NotCamelCase", "NotSnakeCase"})
    interested_kinds = frozenset(CLASS_LIKE_TOKENS | {K.FUNCTION, K.VARIABLE, K.STRING})
    config_class = NamingConventionsConfig

    _TYPE_LABELS = {
        K.CLASS: "Class", K.INTERFACE: "Interface", K.TRAIT: "Trait", K.ENUM: "Enum",
    }

    def __init__(self, config: Optional[NamingConventionsConfig] = None) -> None:
        super().__init__(config)
        self._column_re = re.compile(self.config.column_pattern)
        self._exempt = frozenset(self.config.exempt_variables)

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]

        if token.kind in CLASS_LIKE_TOKENS:
            name = _declared_name(tokens, position)
            if name is not None and not _PASCAL_CASE_RE.match(tokens[name].text):
                self._emit(
                    sink, stream, name, "NotPascalCase",
                    "%s names must be in PascalCase; found %s",
                    (self._TYPE_LABELS[token.kind], tokens[name].text),
                )
        elif token.kind is K.FUNCTION:
            name = _declared_name(tokens, position)
            if name is None:
                return
            text = tokens[name].text
            if not text.startswith("__") and not _CAMEL_CASE_RE.match(text):
                self._emit(
                    sink, stream, name, "NotCamelCase",
                    "Function names must be in camelCase; found %s", (text,),
                )
        elif token.kind is K.VARIABLE:
            text = token.text[1:]
            if text not in self._exempt and not _CAMEL_CASE_RE.match(text):
                self._emit(
                    sink, stream, position, "NotCamelCase",
                    "Variable names must be in camelCase; found %s", (text,),
                )
        else:
            prev = previous_significant(tokens, position - 1)
            if prev is None or tokens[prev].kind not in (K.OBJECT_OPERATOR, K.DOUBLE_COLON):
                return
            text = token.text
            if self._column_re.match(text) and not _SNAKE_CASE_RE.match(text):
                self._emit(
                    sink, stream, position, "NotSnakeCase",
                    "Table column names must be in snake_case; found %s", (text,),
                )


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: IMPORTS
# ═════════════════════════════════════════════════════════════════════════

def _import_type(tokens: Sequence[Token], use: int) -> Optional[str]:
    """``class`` / ``function`` / ``const`` for a file-level import, else ``None``."""
    if tokens[use].conditions:
        return None
    prev = previous_significant(tokens, use - 1)
    if prev is not None and tokens[prev].kind is K.CLOSE_PARENTHESIS:
        return None  # closure ``use (...)``
    nxt = next_significant(tokens, use + 1)
    if nxt is not None and tokens[nxt].kind is K.FUNCTION:
        return "function"
    if nxt is not None and tokens[nxt].kind is K.CONST:
        return "const"
    return "class"


class ImportOrderingCheck(Check):
    """File-level ``use`` imports are grouped: classes, then functions, then constants."""

    name = "Imports.ImportOrdering"
    description = "Order of use imports"
    codes = frozenset({"ClassImportAfterFunctionOrConstant", "FunctionImportAfterConstant"})
    interested_kinds = frozenset({K.USE})

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        kind = _import_type(tokens, position)
        if kind is None or kind == "const":
            return
        earlier: Set[str] = set()
        for i in range(position):
            if tokens[i].kind is K.USE:
                other = _import_type(tokens, i)
                if other is not None:
                    earlier.add(other)
        if kind == "class" and earlier & {"function", "const"}:
            self._emit(
                sink, stream, position, "ClassImportAfterFunctionOrConstant",
                "Class imports must come before function and constant imports",
            )
        elif kind == "function" and "const" in earlier:
            self._emit(
                sink, stream, position, "FunctionImportAfterConstant",
                "Function imports must come before constant imports",
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: CLASS STRUCTURE
# ═════════════════════════════════════════════════════════════════════════

_STRUCTURE_OWNERS = frozenset({K.CLASS, K.TRAIT, K.INTERFACE})
_MEMBER_START = frozenset({K.SEMICOLON, K.OPEN_CURLY_BRACKET, K.CLOSE_CURLY_BRACKET})


def _end_of_trait_use(tokens: Sequence[Token], use: int, stop: int) -> int:
    """Last token of ``use A, B;`` or ``use A { ... }``."""
    i = use + 1
    while i < stop:
        kind = tokens[i].kind
        if kind is K.SEMICOLON:
            return i
        if kind is K.OPEN_CURLY_BRACKET:
            return paired_closer(tokens, i)
        i += 1
    return stop


class ClassStructureCheck(Check):
    """
    One class-like declaration per file, trait ``use`` statements before
    every other member, and an explicit visibility on each property and
    method.
    """

    name = "Classes.ClassStructure"
    description = "Class layout and member visibility"
    codes = frozenset({
        "MultipleClassesInFile",
        "TraitUseNotAtTop",
        "MissingPropertyVisibility",
        "MissingMethodVisibility",
    })
    interested_kinds = _STRUCTURE_OWNERS

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        if _is_anonymous_class(tokens, position):
            return
        for i in range(position):
            if tokens[i].kind in _STRUCTURE_OWNERS and not _is_anonymous_class(tokens, i):
                self._emit(
                    sink, stream, position, "MultipleClassesInFile",
                    "Each file should only contain one class, trait, or interface",
                )
                break

        scope = stream.scope_of(position)
        if scope is None:
            return
        if tokens[position].kind is K.CLASS:
            self._trait_uses(stream, scope, sink)
        self._visibility(stream, scope, sink)

    def _trait_uses(self, stream: TokenStream, scope: Scope, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        uses = _direct_members(stream, scope, frozenset({K.USE}))
        if not uses:
            return
        first_member: Optional[int] = None
        i = next_significant(tokens, scope.start + 1, scope.end)
        while i is not None:
            if tokens[i].kind is not K.USE:
                first_member = i
                break
            i = next_significant(tokens, _end_of_trait_use(tokens, i, scope.end) + 1, scope.end)
        if first_member is None:
            return
        for use in uses:
            if use > first_member:
                self._emit(
                    sink, stream, use, "TraitUseNotAtTop",
                    "Trait Use statements should be at the top of the class",
                )

    def _visibility(self, stream: TokenStream, scope: Scope, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        for member in _direct_members(stream, scope, frozenset({K.VARIABLE, K.FUNCTION})):
            if tokens[member].kind is K.VARIABLE:
                if enclosing_bracket(tokens, member) != scope.start:
                    continue
                prev = previous_significant(tokens, member - 1)
                if prev is None or tokens[prev].kind not in (METHOD_MODIFIERS | _MEMBER_START):
                    continue
                if not _modifiers_before(tokens, member) & (VISIBILITY_TOKENS | {K.VAR}):
                    self._emit(
                        sink, stream, member, "MissingPropertyVisibility",
                        "Visibility should be declared for property %s",
                        (tokens[member].text,),
                    )
            else:
                name = _declared_name(tokens, member)
                if name is None:
                    continue
                if not _modifiers_before(tokens, member) & VISIBILITY_TOKENS:
                    self._emit(
                        sink, stream, member, "MissingMethodVisibility",
                        "Visibility should be declared for method %s",
                        (tokens[name].text,),
                    )


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: TYPE DECLARATIONS
# ═════════════════════════════════════════════════════════════════════════

MAGIC_METHODS: Dict[str, str] = {
    name.lower(): name for name in (
        "__construct", "__destruct", "__call", "__callStatic", "__get",
        "__set", "__isset", "__unset", "__sleep", "__wakeup", "__serialize",
        "__unserialize", "__toString", "__invoke", "__set_state", "__clone",
        "__debugInfo",
    )
}

# Magic methods whose signature has no meaningful return type.
_NO_RETURN_TYPE = frozenset({
    "__construct", "__destruct", "__set", "__unset", "__isset", "__clone",
    "__debuginfo",
})

_PROPERTY_MODIFIERS = frozenset({
    K.PUBLIC, K.PROTECTED, K.PRIVATE, K.VAR, K.STATIC, K.READONLY,
})


@dataclass(frozen=True)
class TypeDeclarationConfig:
    untyped_property_parents: Tuple[str, ...] = ("Model",)


class TypeDeclarationCheck(Check):
    """
    Every parameter, return value and property carries a type; magic
    methods are spelt the way PHP documents them.

    Classes extending a parent listed in ``untyped_property_parents`` (by
    short-name suffix) are exempt from the property rule: framework models
    declare their attributes untyped.
    """

    name = "TypeHints.TypeDeclaration"
    description = "Type declarations"
    codes = frozenset({
        "MagicMethodNotUppercase",
        "MissingParameterTypeDeclaration",
        "MissingReturnTypeDeclaration",
        "MissingPropertyTypeDeclaration",
    })
    interested_kinds = frozenset({K.FUNCTION, K.VARIABLE})
    config_class = TypeDeclarationConfig

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        if stream.tokens[position].kind is K.FUNCTION:
            self._function(stream, position, sink)
        else:
            self._property(stream, position, sink)

    def _function(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        name = _declared_name(tokens, position)
        if name is None:
            return
        text = tokens[name].text
        canonical = MAGIC_METHODS.get(text.lower())
        if canonical is not None and canonical != text:
            self._emit(
                sink, stream, name, "MagicMethodNotUppercase",
                "PHP magic method names must use their documented case; "
                "expected %s, found %s",
                (canonical, text),
            )

        opener = find_next(tokens, K.OPEN_PARENTHESIS, name + 1, skip=EMPTY_TOKENS)
        if opener is None:
            return
        closer = paired_closer(tokens, opener)
        for i in range(opener + 1, closer):
            if tokens[i].kind is not K.VARIABLE or enclosing_bracket(tokens, i) != opener:
                continue
            before = previous_significant(tokens, i - 1, opener)
            while before is not None and tokens[before].kind in (K.ELLIPSIS, K.BITWISE_AND):
                before = previous_significant(tokens, before - 1, opener)
            if before is None or tokens[before].kind not in _TYPE_TOKENS | {K.CLOSE_PARENTHESIS}:
                self._emit(
                    sink, stream, i, "MissingParameterTypeDeclaration",
                    "Parameter %s should have a type declaration", (tokens[i].text,),
                )

        if text.lower() in _NO_RETURN_TYPE:
            return
        if find_next(tokens, K.COLON, closer + 1, skip=EMPTY_TOKENS) is None:
            self._emit(
                sink, stream, name, "MissingReturnTypeDeclaration",
                "Function %s should have a return type declaration", (text,),
            )

    def _property(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        token = tokens[position]
        if not token.conditions:
            return
        scope = stream.scopes[token.conditions[-1]]
        if scope.kind not in CLASS_LIKE_SCOPES or scope.kind is ScopeKind.ENUM:
            return
        if enclosing_bracket(tokens, position) != scope.start:
            return
        # a type sits between the modifiers and the variable when declared
        prev = previous_significant(tokens, position - 1)
        if prev is None or tokens[prev].kind not in _PROPERTY_MODIFIERS:
            return
        if self._exempt_parent(stream, scope):
            return
        self._emit(
            sink, stream, position, "MissingPropertyTypeDeclaration",
            "Property %s should have a type declaration", (token.text,),
        )

    def _exempt_parent(self, stream: TokenStream, scope: Scope) -> bool:
        tokens = stream.tokens
        extends = find_next(tokens, K.EXTENDS, scope.owner + 1, scope.start)
        if extends is None:
            return False
        parent = ""
        i = next_significant(tokens, extends + 1, scope.start)
        while i is not None and tokens[i].kind in (K.STRING, K.NS_SEPARATOR):
            parent += tokens[i].text
            i = next_significant(tokens, i + 1, scope.start)
        short = parent.rsplit("\\", 1)[-1]
        return any(short.endswith(suffix) for suffix in self.config.untyped_property_parents)


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: YODA CONDITIONS
# ═════════════════════════════════════════════════════════════════════════

_YODA_LITERALS = frozenset({
    K.TRUE, K.FALSE, K.NULL, K.LNUMBER, K.DNUMBER, K.CONSTANT_ENCAPSED_STRING,
})


class YodaConditionalsCheck(Check):
    """A comparison between a variable and a literal or constant puts the literal first."""

    name = "Operators.YodaConditionals"
    description = "Yoda-style comparisons"
    codes = frozenset({"NotYoda"})
    interested_kinds = COMPARISON_TOKENS

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        left = previous_significant(tokens, position - 1)
        right = next_significant(tokens, position + 1)
        if left is None or right is None or tokens[left].kind is not K.VARIABLE:
            return
        before = previous_significant(tokens, left - 1)
        if before is not None and tokens[before].kind in OBJECT_OPERATORS:
            return
        kind = tokens[right].kind
        if kind is K.STRING:
            # a constant, not a function call
            if find_next(tokens, K.OPEN_PARENTHESIS, right + 1, skip=EMPTY_TOKENS) is not None:
                return
        elif kind not in _YODA_LITERALS:
            return
        self._emit(
            sink, stream, position, "NotYoda",
            "Use Yoda conditional style. The literal or constant should be on "
            "the left side of the comparison.",
        )


# ═════════════════════════════════════════════════════════════════════════
#  PART 6: DISALLOWED FUNCTIONS
# ═════════════════════════════════════════════════════════════════════════

DEFAULT_DISALLOWED_FUNCTIONS: Dict[str, str] = {
    "die": "Use exceptions or a proper exit strategy.",
    "exit": "Use exceptions or a proper exit strategy.",
    "var_dump": "Use `dd()` or a logger for debugging.",
    "print_r": "Use `dd()` or a logger for debugging.",
    "create_function": "Anonymous functions should be used instead.",
}


@dataclass(frozen=True)
class DisallowedFunctionsConfig:
    functions: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_DISALLOWED_FUNCTIONS)
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "functions", MappingProxyType(dict(self.functions)))


class DisallowedFunctionsCheck(Check):
    """Calls to configured functions, each reported with its remediation."""

    name = "Functions.DisallowedFunctions"
    description = "Banned function calls"
    codes = frozenset({"Found"})
    interested_kinds = frozenset({K.STRING, K.EXIT})
    config_class = DisallowedFunctionsConfig

    def __init__(self, config: Optional[DisallowedFunctionsConfig] = None) -> None:
        super().__init__(config)
        self._remedies = {
            name.lower(): remedy for name, remedy in self.config.functions.items()
        }

    def validate(self) -> None:
        if not self._remedies:
            raise ConfigurationGap(self.name, "functions")

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        called = tokens[position].text.lower()
        remedy = self._remedies.get(called)
        if remedy is None:
            return
        if function_call_opener(tokens, position) is None:
            return
        self._emit(
            sink, stream, position, "Found",
            "The use of %s() is disallowed; %s", (called, remedy),
        )


CHECKS = [
    NamingConventionsCheck,
    ImportOrderingCheck,
    ClassStructureCheck,
    TypeDeclarationCheck,
    YodaConditionalsCheck,
    DisallowedFunctionsCheck,
]

__all__ = [
    "NamingConventionsConfig",
    "NamingConventionsCheck",
    "ImportOrderingCheck",
    "ClassStructureCheck",
    "MAGIC_METHODS",
    "TypeDeclarationConfig",
    "TypeDeclarationCheck",
    "YodaConditionalsCheck",
    "DEFAULT_DISALLOWED_FUNCTIONS",
    "DisallowedFunctionsConfig",
    "DisallowedFunctionsCheck",
    "CHECKS",
]
