"""
tokensniff: Token-Stream Style and Security Linter for PHP and Blade
=====================================================================

This package tokenizes PHP sources and Blade templates into a stream of
paired, scope-annotated tokens and runs a registry of independent checks
over that stream.  Each check reports findings through a per-invocation
diagnostic sink, so one misbehaving check never corrupts the report of
another.

Core modules
------------
tokens
    Token kinds, tokens, scopes and the immutable token stream.
tokenizer
    PHP / Blade lexer producing a fully linked :class:`TokenStream`.
cursor
    Navigation helpers over the stream (pairs, scopes, statements, calls).
errors
    Exception hierarchy shared by the engine and the checks.
diagnostics
    Findings, severities, the diagnostic sink and inline suppressions.
checkers
    Check base class, registry, dispatcher and the file runner.
alignment
    Assignment / double-arrow alignment and keyed-structure layout.
taint_analysis
    Sink-triggered, one-level taint engine.
security
    Output-escaping and input-sanitizing checks.
structural
    Formatting checks: arrays, braces, spacing, lines, tags, quotes.
conventions
    Naming, imports, class structure, types, Yoda and disallowed calls.
ruleset
    S-expression rulesets selecting and configuring checks.

Quick start
-----------
>>> from tokensniff import tokenize, LintRunner, build_default_registry
>>> stream = tokenize("<?php\\n$a = 1;\\n$bb = 2;\\n")
>>> runner = LintRunner([cls() for cls in build_default_registry().get_enabled()])
>>> results = runner.run_source("<?php\\necho $_GET['q'];\\n", path="view.php")

Package layout
--------------
::

    tokensniff/
    ├── __init__.py            ← this file
    ├── __main__.py            ← command-line entry point
    ├── tokens.py
    ├── tokenizer.py
    ├── cursor.py
    ├── errors.py
    ├── diagnostics.py
    ├── checkers.py
    ├── alignment.py
    ├── taint_analysis.py
    ├── security.py
    ├── structural.py
    ├── conventions.py
    └── ruleset.py
"""

from __future__ import annotations

import importlib
import sys
from typing import List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__author__ = "tokensniff contributors"
__license__ = "GPL-3.0-or-later"
__all__: List[str] = []          # populated incrementally below

# ---------------------------------------------------------------------------
# Internal registry: module name → public names re-exported by the package
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "TokenSniffError",
        "MalformedStructure",
        "UnresolvedReference",
        "ConfigurationGap",
        "RulesetError",
        "TokenizeError",
    ],
    "tokens": [
        "TokenKind",
        "Token",
        "ScopeKind",
        "Scope",
        "TokenStream",
    ],
    "tokenizer": [
        "tokenize",
        "tokenize_file",
    ],
    "cursor": [
        "find_next",
        "find_previous",
        "paired_closer",
        "paired_opener",
        "enclosing_scope",
        "end_of_statement",
    ],
    "diagnostics": [
        "Severity",
        "Finding",
        "DiagnosticSink",
        "SuppressionManager",
    ],
    "checkers": [
        "Check",
        "CheckRegistry",
        "build_default_registry",
        "Dispatcher",
        "LintResults",
        "LintRunner",
    ],
    "taint_analysis": [
        "TaintEngine",
        "TaintPolicy",
        "SinkClass",
    ],
    "ruleset": [
        "RuleSet",
        "load_ruleset",
        "load_ruleset_file",
    ],
}

# Check modules are exposed as submodules only; their classes are reached
# through the registry.
_CHECK_MODULES = ("alignment", "security", "structural", "conventions")


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    Parameters
    ----------
    module_rel_name:
        Module name relative to this package (e.g. ``"tokens"``).
    names:
        Public symbols to re-export.
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"tokensniff: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(f"tokensniff.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


# ---------------------------------------------------------------------------
# Eagerly import everything at package load time
# ---------------------------------------------------------------------------

for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

for _mod in _CHECK_MODULES:
    _import_names(_mod, [])

del _mod, _names


# ---------------------------------------------------------------------------
# Package-level utilities
# ---------------------------------------------------------------------------

def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(set(_CORE_MODULES) | set(_CHECK_MODULES))


__all__ += ["list_submodules", "__version__"]
