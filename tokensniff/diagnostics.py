"""
tokensniff/diagnostics.py
═════════════════════════

Findings, the sink checks write them into, and inline suppressions.

  ┌────────────┐  _emit   ┌──────────────┐ commit  ┌───────────────┐
  │   Check    │ ───────► │ scratch sink │ ──────► │ DiagnosticSink│
  └────────────┘          └──────────────┘         └──────┬────────┘
                                                          │ findings()
                                            ┌─────────────▼──────────┐
                                            │   SuppressionManager   │
                                            │ phpcs:ignore / disable │
                                            └────────────────────────┘

Findings are never deduplicated: one position may carry several findings
from the same check or from different checks.
"""

from __future__ import annotations

import json
import re
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import Any, Dict, Iterable, Iterator, List, Set, Tuple

from tokensniff.tokens import COMMENT_TOKENS, TokenStream


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: FINDINGS
# ═════════════════════════════════════════════════════════════════════════

class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Finding:
    """
    A single diagnostic.

    Attributes
    ----------
    severity : Severity
    code     : qualified code, e.g. ``Formatting.Alignment.ArrayItemNotAligned``
    template : message with ``%s`` / ``%d`` placeholders
    args     : values substituted into ``template``
    position : index of the token the finding points at
    line     : 1-based line of that token
    column   : 1-based column of that token
    check    : name of the check that produced it
    path     : file the stream came from
    evidence : machine-readable context for downstream tooling
    """
    severity: Severity
    code: str
    template: str
    args: Tuple[Any, ...]
    position: int
    line: int
    column: int
    check: str = ""
    path: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def message(self) -> str:
        if not self.args:
            return self.template
        return self.template % self.args

    def to_json(self) -> Dict[str, Any]:
        return {
            "file": self.path,
            "line": self.line,
            "column": self.column,
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code,
            "check": self.check,
        }

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message [code]."""
        return (
            f"{self.path}:{self.line}:{self.column}: "
            f"{self.severity.value}: {self.message} [{self.code}]"
        )


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: SINK
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSink:
    """
    Accumulates findings for one run.

    The dispatcher hands each check invocation a ``child()`` sink and only
    ``commit()``\\s it when the invocation returned normally, so a check
    that fails halfway leaves nothing behind.
    """

    def __init__(self) -> None:
        self._findings: List[Finding] = []

    def add(self, finding: Finding) -> None:
        self._findings.append(finding)

    def child(self) -> "DiagnosticSink":
        return DiagnosticSink()

    def commit(self, child: "DiagnosticSink") -> None:
        self._findings.extend(child._findings)

    def findings(self) -> List[Finding]:
        """Findings in position order, emission order kept within a position."""
        return sorted(self._findings, key=lambda f: f.position)

    def __len__(self) -> int:
        return len(self._findings)

    def __iter__(self) -> Iterator[Finding]:
        return iter(self.findings())


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

_DIRECTIVE_RE = re.compile(
    r"(?:phpcs:(?P<verb>ignoreFile|ignore|disable|enable)"
    r"|@codingStandardsIgnore(?P<legacy>Line|Start|End|File))"
    r"(?P<codes>[^\r\n]*)",
    re.IGNORECASE,
)


def _parse_codes(text: str) -> Set[str]:
    # "phpcs:ignore A.B, C.D -- reason" → {"A.B", "C.D"}
    text = text.split("--", 1)[0]
    text = re.sub(r"\*/\s*$", "", text)
    codes = {c.strip() for c in text.split(",") if c.strip()}
    return codes or {"*"}


def _code_matches(code: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if pattern == "*" or code == pattern or code.startswith(pattern + "."):
            return True
    return False


class SuppressionManager:
    """
    Decides which findings the runner drops.

    Sources:
      1. Inline comments: ``// phpcs:ignore [codes]`` (comment line and the
         line after), ``phpcs:disable [codes]`` … ``phpcs:enable [codes]``,
         ``phpcs:ignoreFile`` and the ``@codingStandardsIgnore*`` forms.
      2. File-level suppressions (fnmatch patterns, passed programmatically).
      3. Global suppressions (command line or ruleset).

    A code pattern matches a finding code exactly or as a dotted prefix, so
    ``Formatting`` silences every ``Formatting.*`` finding.
    """

    def __init__(self, global_codes: Iterable[str] = ()) -> None:
        # line → codes suppressed on it
        self._lines: Dict[int, Set[str]] = defaultdict(set)
        # (first line, last line, codes)
        self._regions: List[Tuple[int, int, Set[str]]] = []
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        self._global: Set[str] = set(global_codes)
        self._whole_file = False

    def load_inline_suppressions(self, stream: TokenStream) -> None:
        """Scan comment tokens for suppression directives."""
        open_regions: Dict[str, int] = {}
        last_line = stream.tokens[-1].end_line if stream.tokens else 0
        for token in stream.tokens:
            if token.kind not in COMMENT_TOKENS:
                continue
            match = _DIRECTIVE_RE.search(token.text)
            if match is None:
                continue
            verb = (match.group("verb") or "").lower()
            legacy = (match.group("legacy") or "").lower()
            codes = _parse_codes(match.group("codes")) if verb else {"*"}
            if verb == "ignorefile" or legacy == "file":
                self._whole_file = True
            elif verb == "ignore" or legacy == "line":
                self._lines[token.line].update(codes)
                self._lines[token.line + 1].update(codes)
            elif verb == "disable" or legacy == "start":
                for code in codes:
                    open_regions.setdefault(code, token.line)
            elif verb == "enable" or legacy == "end":
                closing = set(open_regions) if "*" in codes else codes
                for code in closing:
                    first = open_regions.pop(code, None)
                    if first is not None:
                        self._regions.append((first, token.line, {code}))
        for code, first in open_regions.items():
            self._regions.append((first, last_line, {code}))

    def add_file_suppression(self, code: str, file_pattern: str) -> None:
        """Suppress ``code`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(code)

    def add_global_suppression(self, code: str) -> None:
        self._global.add(code)

    def is_suppressed(self, finding: Finding) -> bool:
        code = finding.code
        if self._whole_file or _code_matches(code, self._global):
            return True
        if _code_matches(code, self._lines.get(finding.line, ())):
            return True
        for first, last, codes in self._regions:
            if first <= finding.line <= last and _code_matches(code, codes):
                return True
        for pattern, codes in self._file_level.items():
            if _code_matches(code, codes) and (
                finding.path == pattern or fnmatch(finding.path, pattern)
            ):
                return True
        return False

    def filter_findings(self, findings: Iterable[Finding]) -> List[Finding]:
        """Return only non-suppressed findings."""
        return [f for f in findings if not self.is_suppressed(f)]


__all__ = [
    "Severity",
    "Finding",
    "DiagnosticSink",
    "SuppressionManager",
]
