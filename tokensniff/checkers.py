"""
tokensniff/checkers.py
══════════════════════

Check framework: the ``Check`` base class, the registry of check classes,
the single-pass ``Dispatcher`` and the file-level ``LintRunner``.

Architecture
────────────

  ┌───────────────────────────────────────────────────────────────┐
  │                        LintRunner                             │
  │   files ──► tokenize ──► Dispatcher.run ──► suppressions      │
  │                              │                                │
  │        kind → [checks] map, built once at register()          │
  │                              │                                │
  │   ┌──────────────┐  ┌────────▼──────┐  ┌───────────────────┐  │
  │   │  Alignment   │  │  EscapeOutput │  │  LineLength  ...  │  │
  │   └──────┬───────┘  └───────┬───────┘  └─────────┬─────────┘  │
  │          └──────── Cursor API / TaintEngine ─────┘            │
  │                              │                                │
  │                      DiagnosticSink                           │
  └───────────────────────────────────────────────────────────────┘

Contract of a check
───────────────────
  - Declare ``name``, ``description``, ``codes`` and ``interested_kinds``.
  - Carry configuration as one frozen dataclass instance (``config``);
    anything derived from it is computed in ``__init__`` and never mutated.
  - Implement ``process(stream, position, sink)``. It must recompute any
    span-based reasoning from the stream every time: two calls for two
    positions share nothing.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Type,
)

from tokensniff.diagnostics import (
    DiagnosticSink,
    Finding,
    Severity,
    SuppressionManager,
)
from tokensniff.errors import ConfigurationGap, MalformedStructure
from tokensniff.tokenizer import DEFAULT_TAB_WIDTH, tokenize, tokenize_file
from tokensniff.tokens import TokenKind, TokenStream

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: CHECK BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NoConfig:
    """Configuration of a check that has no settings."""


class Check(ABC):
    """
    Abstract base class for all checks.

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``codes``, ``interested_kinds``
      - Optionally point ``config_class`` at a frozen dataclass
      - Implement ``process()``
      - Optionally override ``validate()`` to raise ``ConfigurationGap``
    """

    # ── Metadata (override in subclasses) ────────────────────────────

    name: ClassVar[str] = "Base.Check"
    description: ClassVar[str] = ""
    codes: ClassVar[FrozenSet[str]] = frozenset()
    interested_kinds: ClassVar[FrozenSet[TokenKind]] = frozenset()
    default_severity: ClassVar[Severity] = Severity.ERROR
    config_class: ClassVar[Type[Any]] = NoConfig

    def __init__(self, config: Optional[Any] = None) -> None:
        self.config = config if config is not None else self.config_class()

    def validate(self) -> None:
        """
        Called once at registration.

        Raise ``ConfigurationGap`` when a list the check cannot work without
        is empty; the dispatcher then keeps the check registered but never
        invokes it.
        """

    @abstractmethod
    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        """Inspect the token at ``position`` and emit findings into ``sink``."""
        ...

    def _emit(
        self,
        sink: DiagnosticSink,
        stream: TokenStream,
        position: int,
        code: str,
        template: str,
        args: Sequence[Any] = (),
        severity: Optional[Severity] = None,
        evidence: Optional[Dict[str, Any]] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        """
        Helper to create and store a finding.

        ``line`` and ``column`` override the token location for findings
        that point inside a multi-line token or at a line rather than a token.
        """
        token = stream.tokens[position]
        sink.add(Finding(
            severity=severity or self.default_severity,
            code=f"{self.name}.{code}",
            template=template,
            args=tuple(args),
            position=position,
            line=token.line if line is None else line,
            column=token.column if column is None else column,
            check=self.name,
            path=stream.path,
            evidence=evidence or {},
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: CHECK REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckRegistry:
    """
    Registry of available check classes, keyed by dotted name.

    Usage
    -----
    >>> registry = CheckRegistry()
    >>> registry.register(AlignmentCheck)
    >>> registry.disable("Formatting.Alignment")
    >>> checks = [cls() for cls in registry.get_enabled()]
    """

    def __init__(self) -> None:
        self._checks: Dict[str, Type[Check]] = {}
        self._disabled: Set[str] = set()

    def register(self, check_cls: Type[Check]) -> None:
        self._checks[check_cls.name] = check_cls

    def unregister(self, name: str) -> None:
        self._checks.pop(name, None)

    def disable(self, name: str) -> None:
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        self._disabled.discard(name)

    def get_all(self) -> List[Type[Check]]:
        return list(self._checks.values())

    def get_enabled(self) -> List[Type[Check]]:
        return [
            cls for name, cls in self._checks.items()
            if name not in self._disabled
        ]

    def get_by_name(self, name: str) -> Optional[Type[Check]]:
        return self._checks.get(name)

    def filter_by_code(self, code: str) -> List[Type[Check]]:
        """Check classes able to produce ``code`` (qualified or bare)."""
        return [
            cls for cls in self._checks.values()
            if code in cls.codes or any(
                code == f"{cls.name}.{c}" for c in cls.codes
            )
        ]

    @property
    def names(self) -> List[str]:
        return sorted(self._checks.keys())


def build_default_registry() -> CheckRegistry:
    """A registry holding every built-in check."""
    from tokensniff import alignment, conventions, security, structural

    registry = CheckRegistry()
    for module in (alignment, structural, conventions, security):
        for cls in module.CHECKS:
            registry.register(cls)
    return registry


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: DISPATCHER
# ═════════════════════════════════════════════════════════════════════════

class Dispatcher:
    """
    Routes each token to the checks interested in its kind.

    The kind → checks mapping is built in ``register()``; ``run()`` is a
    single forward pass. Each ``(check, position)`` invocation writes into
    its own scratch sink, committed only if the invocation returned:

      - ``MalformedStructure`` → discarded silently (DEBUG log)
      - any other exception    → discarded, WARNING log, pass continues
    """

    def __init__(self, checks: Iterable[Check] = ()) -> None:
        self._checks: List[Check] = []
        self._by_kind: Dict[TokenKind, List[Check]] = defaultdict(list)
        for check in checks:
            self.register(check)

    @property
    def checks(self) -> List[Check]:
        return list(self._checks)

    def register(self, check: Check) -> None:
        self._checks.append(check)
        try:
            check.validate()
        except ConfigurationGap as exc:
            logger.debug("%s is inert: %s", check.name, exc)
            return
        for kind in check.interested_kinds:
            self._by_kind[kind].append(check)

    def run(self, stream: TokenStream) -> List[Finding]:
        sink = DiagnosticSink()
        for position, token in enumerate(stream.tokens):
            for check in self._by_kind.get(token.kind, ()):
                scratch = sink.child()
                try:
                    check.process(stream, position, scratch)
                except MalformedStructure as exc:
                    logger.debug(
                        "%s gave up at %s:%d: %s",
                        check.name, stream.path, token.line, exc,
                    )
                    continue
                except Exception:
                    logger.warning(
                        "%s failed at %s:%d (token %d)",
                        check.name, stream.path, token.line, position,
                        exc_info=True,
                    )
                    continue
                sink.commit(scratch)
        return sink.findings()


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: RUN RESULTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class LintResults:
    """Aggregated output of a runner invocation."""
    findings: List[Finding] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    findings_by_check: Dict[str, List[Finding]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, float] = field(default_factory=dict)

    def add_file(self, path: str, findings: List[Finding], elapsed_ms: float) -> None:
        self.files.append(path)
        self.findings.extend(findings)
        for finding in findings:
            self.findings_by_check[finding.check].append(finding)
        self.stats[f"{path}_elapsed_ms"] = elapsed_ms

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity is Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity is Severity.WARNING)

    @property
    def total_count(self) -> int:
        return len(self.findings)

    def by_file(self, path: str) -> List[Finding]:
        return [f for f in self.findings if f.path == path]

    def by_code(self, code: str) -> List[Finding]:
        return [
            f for f in self.findings
            if f.code == code or f.code.startswith(code + ".")
        ]

    def to_json_lines(self) -> str:
        return "\n".join(f.to_json_str() for f in self.findings)

    def to_gcc_format(self) -> str:
        return "\n".join(f.to_gcc_format() for f in self.findings)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Checked {len(self.files)} file(s): {self.total_count} findings "
            f"({self.error_count} errors, {self.warning_count} warnings)",
        ]
        for name in sorted(self.findings_by_check):
            count = len(self.findings_by_check[name])
            lines.append(f"  {name}: {count}")
        return "\n".join(lines)


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: RUNNER
# ═════════════════════════════════════════════════════════════════════════

class LintRunner:
    """
    Runs a fixed set of checks over sources, files or directory trees.

    The checks (and their configs) are shared read-only by every file; each
    file gets its own stream, dispatcher pass and suppression manager, so
    ``jobs > 1`` needs no locking.

    Parameters for constructor
    ─────────────────────────
    checks    : check instances, in registration order
    jobs      : worker threads for ``run_paths`` (1 = sequential)
    suppress  : codes suppressed everywhere
    file_suppressions : fnmatch pattern → codes suppressed in matching files
    tab_width : tab stop used for token columns
    """

    def __init__(
        self,
        checks: Sequence[Check],
        jobs: int = 1,
        suppress: Iterable[str] = (),
        tab_width: int = DEFAULT_TAB_WIDTH,
        file_suppressions: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        self.dispatcher = Dispatcher(checks)
        self.jobs = max(1, jobs)
        self.suppress = tuple(suppress)
        self.tab_width = tab_width
        self.file_suppressions = {
            pattern: tuple(codes) for pattern, codes in (file_suppressions or {}).items()
        }

    def lint_stream(self, stream: TokenStream) -> List[Finding]:
        """Dispatch over one stream and drop suppressed findings."""
        suppressions = SuppressionManager(self.suppress)
        for pattern, codes in self.file_suppressions.items():
            for code in codes:
                suppressions.add_file_suppression(code, pattern)
        suppressions.load_inline_suppressions(stream)
        return suppressions.filter_findings(self.dispatcher.run(stream))

    def _lint_text(self, source: str, path: str) -> List[Finding]:
        return self.lint_stream(tokenize(source, path=path, tab_width=self.tab_width))

    def run_source(self, source: str, path: str = "") -> LintResults:
        results = LintResults()
        t0 = time.monotonic()
        findings = self._lint_text(source, path)
        results.add_file(path, findings, (time.monotonic() - t0) * 1000.0)
        return results

    def _lint_file(self, path: str) -> List[Finding]:
        return self.lint_stream(tokenize_file(path, tab_width=self.tab_width))

    def run_file(self, path: str) -> LintResults:
        return self.run_paths([path])

    def run_paths(
        self, paths: Iterable[str], exclude: Sequence[str] = ()
    ) -> LintResults:
        """Lint files and directory trees; output is ordered by file path."""
        files = expand_paths(paths, exclude)
        per_file: Dict[str, List[Finding]] = {}
        elapsed: Dict[str, float] = {}

        if self.jobs == 1 or len(files) < 2:
            for path in files:
                t0 = time.monotonic()
                per_file[path] = self._lint_file(path)
                elapsed[path] = (time.monotonic() - t0) * 1000.0
        else:
            with ThreadPoolExecutor(max_workers=self.jobs) as executor:
                started = {}
                futures = {}
                for path in files:
                    started[path] = time.monotonic()
                    futures[executor.submit(self._lint_file, path)] = path
                for future in as_completed(futures):
                    path = futures[future]
                    per_file[path] = future.result()
                    elapsed[path] = (time.monotonic() - started[path]) * 1000.0

        results = LintResults()
        for path in files:
            results.add_file(path, per_file[path], elapsed[path])
        logger.info(
            "linted %d file(s), %d finding(s)", len(files), results.total_count
        )
        return results


def expand_paths(paths: Iterable[str], exclude: Sequence[str] = ()) -> List[str]:
    """Expand directories to their ``*.php`` files, sorted, minus excluded patterns."""
    found: List[str] = []
    for path in paths:
        if os.path.isdir(path):
            for root, dirs, names in os.walk(path):
                dirs.sort()
                for name in names:
                    if name.endswith(".php"):
                        found.append(os.path.join(root, name))
        else:
            found.append(path)
    result = sorted(set(found))
    if exclude:
        result = [
            p for p in result
            if not any(fnmatch(p, pattern) for pattern in exclude)
        ]
    return result


__all__ = [
    "NoConfig",
    "Check",
    "CheckRegistry",
    "build_default_registry",
    "Dispatcher",
    "LintResults",
    "LintRunner",
    "expand_paths",
]
