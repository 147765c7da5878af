"""
tokensniff/errors.py
════════════════════

Exception hierarchy for the tokensniff engine and its host layer.

Hierarchy
─────────

    TokenSniffError
    ├── MalformedStructure      bracket / scope link absent
    ├── UnresolvedReference     taint resolution found no assignment
    ├── ConfigurationGap        a check's trigger list is empty
    ├── RulesetError            ruleset text cannot be loaded
    └── TokenizeError           input is not text

Only ``RulesetError`` ever reaches the caller: the dispatcher absorbs the
structural errors per check and per position, and a ``ConfigurationGap``
turns the offending check inert at registration time.
"""

from __future__ import annotations

from typing import Optional


class TokenSniffError(Exception):
    """Base class of every error raised by tokensniff."""


class MalformedStructure(TokenSniffError):
    """A structural link (paired bracket, scope boundary) is missing.

    Raised by the Cursor API when a check asks for the partner of a token
    the tokenizer left unlinked, as happens for code that is mid-edit.
    """

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.position = position


class UnresolvedReference(TokenSniffError):
    """No assignment to a variable was found within the scope bounds."""

    def __init__(self, name: str, position: int) -> None:
        super().__init__(f"no assignment to {name} before token {position}")
        self.name = name
        self.position = position


class ConfigurationGap(TokenSniffError):
    """A check references a configuration list that is empty."""

    def __init__(self, check: str, setting: str) -> None:
        super().__init__(f"{check}: '{setting}' is empty")
        self.check = check
        self.setting = setting


class RulesetError(TokenSniffError):
    """A ruleset could not be parsed or names something unknown."""


class TokenizeError(TokenSniffError):
    """The tokenizer was handed something that is not source text."""


__all__ = [
    "TokenSniffError",
    "MalformedStructure",
    "UnresolvedReference",
    "ConfigurationGap",
    "RulesetError",
    "TokenizeError",
]
