"""
tokensniff/ruleset.py
═════════════════════

S-expression rulesets: which checks run and how each one is configured.

Syntax
──────

    ; comments start with a semicolon
    (ruleset "Project"
      (exclude "Formatting.Indentation")            ; a check or a category
      (suppress "Strings.Quotes.DoubleQuotesWithoutVariable")
      (exclude-pattern "*/vendor/*")
      (suppress-in "*/migrations/*" "NamingConventions")   ; per-file suppression
      (rule "Formatting.LineLength"
        (line_limit 100)
        (comment_line_limit 80))
      (rule "Security.EscapeOutput"
        (escaping_functions "e" "escape_html"))
      (rule "Functions.DisallowedFunctions"
        (functions ("var_dump" "Use a logger.") ("dd" "Remove debug calls."))))

Property values are coerced from the declared type of the matching field
of the check's configuration dataclass:

    int                 (line_limit 100)
    bool                (use_tabs false)        true / false / t / nil
    str                 (column_pattern "^id$")
    Tuple[str, ...]     (superglobals "$_GET" "$_POST")
    Mapping[str, str]   (functions ("name" "remedy") ...)

Everything is validated while loading and building, so a bad ruleset fails
before any file is scanned.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import logging
import typing
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Sequence, Tuple

import sexpdata

from tokensniff.checkers import Check, CheckRegistry, NoConfig
from tokensniff.errors import RulesetError

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: S-EXPRESSION PARSING LAYER
# ═════════════════════════════════════════════════════════════════════════

def _parse_sexp(text: str) -> Any:
    """
    Parse one S-expression with ``sexpdata.loads`` and normalise it.

    ``t`` / ``nil`` are left as symbols so booleans are decided by the
    property coercion, not by the reader.
    """
    try:
        parsed = sexpdata.loads(text, nil=None, true=None)
    except Exception as exc:
        raise RulesetError(f"failed to parse ruleset: {exc}") from exc
    return _normalise(parsed)


def _normalise(obj: Any) -> Any:
    """Symbols become ``str``; lists are normalised recursively."""
    if isinstance(obj, list):
        return [_normalise(x) for x in obj]
    if isinstance(obj, sexpdata.Symbol):
        return str(obj)
    if isinstance(obj, (bool, int, float, str)):
        return obj
    raise RulesetError(f"unsupported ruleset value: {obj!r}")


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: RULESET MODEL
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class RuleSet:
    """
    A parsed ruleset.

    Attributes
    ----------
    name             : display name
    excluded         : check names or dotted category prefixes to disable
    suppressed       : finding codes suppressed everywhere
    exclude_patterns : fnmatch patterns of paths to skip
    file_suppressions: fnmatch pattern → finding codes suppressed in matching files
    properties       : check name → {field: raw value list}
    """
    name: str = ""
    excluded: List[str] = field(default_factory=list)
    suppressed: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    file_suppressions: Dict[str, List[str]] = field(default_factory=dict)
    properties: Dict[str, Dict[str, List[Any]]] = field(default_factory=dict)

    def is_excluded(self, check_name: str) -> bool:
        return any(
            check_name == entry or check_name.startswith(entry + ".")
            for entry in self.excluded
        )

    def build_checks(self, registry: CheckRegistry) -> List[Check]:
        """
        Instantiate every enabled, non-excluded check of ``registry`` with
        its configured properties.

        Raises
        ------
        RulesetError
            A rule names an unknown check, or a property is unknown or has a
            value of the wrong shape.
        """
        for check_name in self.properties:
            if registry.get_by_name(check_name) is None:
                raise RulesetError(f"unknown check {check_name!r} in ruleset {self.name!r}")

        checks: List[Check] = []
        for cls in registry.get_enabled():
            if self.is_excluded(cls.name):
                logger.debug("ruleset %s excludes %s", self.name, cls.name)
                continue
            overrides = self.properties.get(cls.name)
            config = build_config(cls, overrides) if overrides else None
            checks.append(cls(config))
        return checks


def _expect_strings(form: List[Any], what: str) -> List[str]:
    values = form[1:]
    if not values or not all(isinstance(v, str) for v in values):
        raise RulesetError(f"({what} ...) expects one or more strings, got {form!r}")
    return list(values)


def load_ruleset(text: str) -> RuleSet:
    """Parse ruleset text into a :class:`RuleSet`."""
    tree = _parse_sexp(text)
    if not isinstance(tree, list) or not tree or tree[0] != "ruleset":
        raise RulesetError("a ruleset must be a single (ruleset ...) form")

    ruleset = RuleSet()
    body = tree[1:]
    if body and isinstance(body[0], str):
        ruleset.name = body[0]
        body = body[1:]

    for form in body:
        if not isinstance(form, list) or not form or not isinstance(form[0], str):
            raise RulesetError(f"unexpected ruleset entry {form!r}")
        tag = form[0]
        if tag == "exclude":
            ruleset.excluded.extend(_expect_strings(form, tag))
        elif tag == "suppress":
            ruleset.suppressed.extend(_expect_strings(form, tag))
        elif tag == "exclude-pattern":
            ruleset.exclude_patterns.extend(_expect_strings(form, tag))
        elif tag == "suppress-in":
            values = _expect_strings(form, tag)
            if len(values) < 2:
                raise RulesetError(f"(suppress-in ...) needs a file pattern and codes, got {form!r}")
            ruleset.file_suppressions.setdefault(values[0], []).extend(values[1:])
        elif tag == "rule":
            if len(form) < 2 or not isinstance(form[1], str):
                raise RulesetError(f"(rule ...) needs a check name, got {form!r}")
            props = ruleset.properties.setdefault(form[1], {})
            for prop in form[2:]:
                if not isinstance(prop, list) or len(prop) < 2 or not isinstance(prop[0], str):
                    raise RulesetError(
                        f"property of {form[1]!r} must look like (name value...), got {prop!r}"
                    )
                props[prop[0]] = prop[1:]
        else:
            raise RulesetError(f"unknown ruleset entry ({tag} ...)")

    logger.debug(
        "loaded ruleset %r: %d rule(s), %d exclusion(s)",
        ruleset.name, len(ruleset.properties), len(ruleset.excluded),
    )
    return ruleset


def load_ruleset_file(path: str) -> RuleSet:
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise RulesetError(f"cannot read ruleset {path}: {exc}") from exc
    return load_ruleset(text)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: PROPERTY COERCION
# ═════════════════════════════════════════════════════════════════════════

_TRUE_WORDS = frozenset({"true", "t", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "nil", "no", "off", "0"})


def _coerce(check: str, prop: str, annotation: Any, values: Sequence[Any]) -> Any:
    """Convert the raw values of one property to ``annotation``."""
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    def fail(expected: str) -> RulesetError:
        return RulesetError(
            f"{check}: property {prop!r} expects {expected}, got {list(values)!r}"
        )

    if annotation is bool:
        if len(values) != 1:
            raise fail("one boolean")
        value = values[0]
        if isinstance(value, bool):
            return value
        word = str(value).lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise fail("a boolean")
    if annotation is int:
        if len(values) != 1 or isinstance(values[0], bool) or not isinstance(values[0], int):
            raise fail("one integer")
        return values[0]
    if annotation is str:
        if len(values) != 1 or not isinstance(values[0], str):
            raise fail("one string")
        return values[0]
    if origin is tuple and args and args[0] is str:
        if not all(isinstance(v, str) for v in values):
            raise fail("strings")
        return tuple(values)
    if origin in (dict, collections.abc.Mapping):
        result: Dict[str, str] = {}
        for pair in values:
            if (
                not isinstance(pair, list) or len(pair) != 2
                or not all(isinstance(v, str) for v in pair)
            ):
                raise fail('("key" "value") pairs')
            result[pair[0]] = pair[1]
        return MappingProxyType(result)
    raise fail(f"a supported type (not {annotation!r})")


def build_config(check_cls: type, properties: Dict[str, List[Any]]) -> Any:
    """
    Build the frozen configuration of ``check_cls`` with ``properties``
    applied over the defaults.
    """
    config_class = check_cls.config_class
    if config_class is NoConfig:
        raise RulesetError(f"{check_cls.name} takes no properties")
    hints = typing.get_type_hints(config_class)
    known = {f.name for f in dataclasses.fields(config_class)}
    overrides: Dict[str, Any] = {}
    for prop, values in properties.items():
        if prop not in known:
            raise RulesetError(
                f"{check_cls.name}: unknown property {prop!r} "
                f"(known: {', '.join(sorted(known))})"
            )
        overrides[prop] = _coerce(check_cls.name, prop, hints[prop], values)
    return config_class(**overrides)


__all__ = [
    "RuleSet",
    "load_ruleset",
    "load_ruleset_file",
    "build_config",
]
