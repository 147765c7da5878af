#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
tokensniff/__main__.py
======================

Command-line entry point.

Usage
-----
    python -m tokensniff [options] <path> [<path> ...]
    tokensniff --list-checks

Pipeline
--------

    ruleset (.sexp)        paths
        │                    │
        ▼                    ▼
    ┌──────────┐      ┌──────────────┐
    │ RuleSet  │ ───► │  LintRunner  │  tokenize → dispatch → suppress
    └──────────┘      └──────┬───────┘
                             │
                             ▼
                     json | gcc | summary

Exit status
-----------
    0   no error-severity findings (warnings allowed)
    1   at least one error-severity finding
    2   usage error, unreadable ruleset or internal failure
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import textwrap
import traceback
from typing import Optional, Sequence, TextIO

from tokensniff import __version__
from tokensniff.checkers import CheckRegistry, LintResults, LintRunner, build_default_registry
from tokensniff.errors import RulesetError
from tokensniff.ruleset import RuleSet, load_ruleset_file
from tokensniff.tokenizer import DEFAULT_TAB_WIDTH

logger = logging.getLogger("tokensniff")

EXIT_CLEAN = 0
EXIT_ERRORS = 1
EXIT_USAGE = 2


# ═══════════════════════════════════════════════════════════════════════════
# ARGUMENT PARSER
# ═══════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the tokensniff CLI."""
    parser = argparse.ArgumentParser(
        prog="tokensniff",
        description="Style and security linter for PHP and Blade templates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              %(prog)s src/
              %(prog)s --standard ruleset.sexp --output json app/ resources/views/
              %(prog)s --checks Security --jobs 4 .
              cat view.blade.php | %(prog)s --stdin-path view.blade.php -
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="Files or directories to lint ('-' reads standard input)",
    )
    parser.add_argument(
        "--standard",
        metavar="FILE",
        help="S-expression ruleset selecting and configuring checks",
    )
    parser.add_argument(
        "--checks",
        metavar="NAMES",
        action="append",
        default=[],
        help="Only run these checks or categories (comma separated, repeatable)",
    )
    parser.add_argument(
        "--exclude",
        metavar="PATTERN",
        action="append",
        default=[],
        help="Skip paths matching this fnmatch pattern (repeatable)",
    )
    parser.add_argument(
        "--suppress",
        metavar="CODE",
        action="append",
        default=[],
        help="Suppress a finding code or code prefix everywhere (repeatable)",
    )
    parser.add_argument(
        "--output",
        choices=("gcc", "json", "summary"),
        default="gcc",
        help="Report format (default: gcc)",
    )
    parser.add_argument(
        "--jobs", "-j",
        type=int,
        default=1,
        metavar="N",
        help="Lint N files concurrently (default: 1)",
    )
    parser.add_argument(
        "--tab-width",
        type=int,
        default=DEFAULT_TAB_WIDTH,
        metavar="N",
        help=f"Tab stop used for columns (default: {DEFAULT_TAB_WIDTH})",
    )
    parser.add_argument(
        "--stdin-path",
        metavar="PATH",
        default="STDIN",
        help="File name reported for '-' input; also decides Blade handling",
    )
    parser.add_argument(
        "--list-checks",
        action="store_true",
        default=False,
        help="List the available checks and their codes, then exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More logging on stderr (-vv for debug)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Only log errors",
    )
    return parser


def _configure_logging(verbose: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ═══════════════════════════════════════════════════════════════════════════
# COMMANDS
# ═══════════════════════════════════════════════════════════════════════════

def _selected(name: str, selectors: Sequence[str]) -> bool:
    return any(name == s or name.startswith(s + ".") for s in selectors)


def _restrict(registry: CheckRegistry, specs: Sequence[str]) -> None:
    """Disable every check not named by ``--checks``."""
    selectors = [s.strip() for spec in specs for s in spec.split(",") if s.strip()]
    if not selectors:
        return
    for name in registry.names:
        if not _selected(name, selectors):
            registry.disable(name)
    unknown = [s for s in selectors if not any(_selected(n, [s]) for n in registry.names)]
    if unknown:
        raise RulesetError(f"unknown check or category: {', '.join(unknown)}")


def cmd_list_checks(registry: CheckRegistry, stream: Optional[TextIO] = None) -> int:
    stream = stream or sys.stdout
    for name in registry.names:
        cls = registry.get_by_name(name)
        stream.write(f"{name}  {cls.description}\n")
        for code in sorted(cls.codes):
            stream.write(f"    {name}.{code}\n")
    return EXIT_CLEAN


def _render(results: LintResults, output: str) -> str:
    if output == "json":
        return results.to_json_lines()
    if output == "summary":
        return results.summary()
    return results.to_gcc_format()


def cmd_lint(args: argparse.Namespace, registry: CheckRegistry) -> int:
    ruleset = load_ruleset_file(args.standard) if args.standard else RuleSet()
    _restrict(registry, args.checks)
    checks = ruleset.build_checks(registry)
    runner = LintRunner(
        checks,
        jobs=args.jobs,
        suppress=list(ruleset.suppressed) + list(args.suppress),
        tab_width=args.tab_width,
        file_suppressions=ruleset.file_suppressions,
    )

    if args.paths == ["-"]:
        results = runner.run_source(sys.stdin.read(), path=args.stdin_path)
    else:
        missing = [p for p in args.paths if not os.path.exists(p)]
        if missing:
            sys.stderr.write(f"tokensniff: no such file or directory: {', '.join(missing)}\n")
            return EXIT_USAGE
        results = runner.run_paths(
            args.paths, exclude=list(ruleset.exclude_patterns) + list(args.exclude)
        )

    report = _render(results, args.output)
    if report:
        sys.stdout.write(report + "\n")
    return EXIT_ERRORS if results.error_count else EXIT_CLEAN


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the tokensniff CLI.

    Parameters
    ----------
    argv : sequence of str, optional
        Command-line arguments. Defaults to sys.argv[1:].

    Returns
    -------
    int
        Exit code (0 = clean, 1 = errors found, 2 = usage or ruleset error).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose, args.quiet)

    registry = build_default_registry()
    if args.list_checks:
        return cmd_list_checks(registry)
    if not args.paths:
        parser.print_usage(sys.stderr)
        sys.stderr.write("tokensniff: error: no paths given\n")
        return EXIT_USAGE

    try:
        return cmd_lint(args, registry)
    except RulesetError as exc:
        sys.stderr.write(f"tokensniff: ruleset error: {exc}\n")
        return EXIT_USAGE
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted.\n")
        return 130
    except Exception as exc:
        sys.stderr.write(f"tokensniff: internal error: {exc}\n")
        traceback.print_exc()
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
