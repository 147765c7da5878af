"""
tokensniff/security.py
══════════════════════

Security checks built on the taint engine.

  Security.EscapeOutput             output sinks: ``echo``, ``print``,
                                    ``<?=``, ``exit(...)`` / ``die(...)``
                                    and configured output functions
  Security.ValidatedSanitizedInput  persistence / query sinks: configured
                                    database functions and methods

Both checks are triggered at the sink, never at the source, so one flow
produces exactly one finding at the operand that reaches the sink.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from tokensniff.checkers import Check
from tokensniff.cursor import (
    call_arguments,
    end_of_statement,
    find_next,
    function_call_opener,
    previous_significant,
)
from tokensniff.diagnostics import DiagnosticSink
from tokensniff.errors import ConfigurationGap
from tokensniff.taint_analysis import (
    DEFAULT_ESCAPERS,
    DEFAULT_SAFE_FUNCTIONS,
    DEFAULT_SANITIZERS,
    DEFAULT_SOURCE_FUNCTIONS,
    DEFAULT_SUPERGLOBALS,
    DEFAULT_VALIDATORS,
    Exposure,
    OperandKind,
    SinkClass,
    TaintEngine,
    TaintPolicy,
    name_matches,
)
from tokensniff.tokens import EMPTY_TOKENS, TokenKind, TokenStream

K = TokenKind

DEFAULT_OUTPUT_FUNCTIONS: Tuple[str, ...] = ("printf", "vprintf", "wp_die")

DEFAULT_DB_FUNCTIONS: Tuple[str, ...] = (
    "insert", "update", "delete", "create", "save", "query", "prepare",
    "execute", "where", "whereIn", "whereNotIn", "whereNull", "whereNotNull",
    "whereBetween", "whereNotBetween", "whereExists", "whereNotExists",
    "whereRaw", "DB::insert", "DB::update", "DB::delete", "DB::statement",
    "DB::select", "DB::table", "DB::raw",
)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: ESCAPE OUTPUT
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EscapeOutputConfig:
    output_functions: Tuple[str, ...] = DEFAULT_OUTPUT_FUNCTIONS
    escaping_functions: Tuple[str, ...] = DEFAULT_ESCAPERS
    auto_escaped_functions: Tuple[str, ...] = ()
    safe_functions: Tuple[str, ...] = DEFAULT_SAFE_FUNCTIONS
    superglobals: Tuple[str, ...] = DEFAULT_SUPERGLOBALS
    source_functions: Tuple[str, ...] = DEFAULT_SOURCE_FUNCTIONS
    require_proof: bool = True


class EscapeOutputCheck(Check):
    """Everything printed must pass through an escaping function first."""

    name = "Security.EscapeOutput"
    description = "Output must be escaped"
    codes = frozenset({"OutputNotEscaped"})
    interested_kinds = frozenset({
        K.ECHO, K.PRINT, K.OPEN_TAG_WITH_ECHO, K.EXIT, K.STRING,
    })
    config_class = EscapeOutputConfig

    TEMPLATE = "All output should be run through an escaping function; found %s in %s"

    def __init__(self, config: Optional[EscapeOutputConfig] = None) -> None:
        super().__init__(config)
        cfg = self.config
        self._output_functions = frozenset(f.lower() for f in cfg.output_functions)
        self.engine = TaintEngine(TaintPolicy(
            superglobals=frozenset(cfg.superglobals),
            sources=frozenset(cfg.source_functions),
            sanitizers=frozenset(),
            validators=frozenset(),
            escapers=frozenset(cfg.escaping_functions) | frozenset(cfg.auto_escaped_functions),
            safe=frozenset(cfg.safe_functions),
            require_proof=cfg.require_proof,
        ))

    def validate(self) -> None:
        if not self.engine.policy.escapers:
            raise ConfigurationGap(self.name, "escaping_functions")

    def _sink_ranges(self, stream: TokenStream, position: int):
        tokens = stream.tokens
        token = tokens[position]
        if token.kind in (K.ECHO, K.PRINT, K.OPEN_TAG_WITH_ECHO):
            end = end_of_statement(tokens, position + 1)
            if end is None:
                end = len(tokens)
            label = "<?=" if token.kind is K.OPEN_TAG_WITH_ECHO else token.text.lower()
            return label, [(position + 1, end)]
        if token.kind is K.EXIT:
            opener = find_next(tokens, K.OPEN_PARENTHESIS, position + 1, skip=EMPTY_TOKENS)
            if opener is None:
                return None
            return token.text.lower(), call_arguments(tokens, opener)
        if token.text.lower() not in self._output_functions:
            return None
        opener = function_call_opener(tokens, position, allow_members=False)
        if opener is None:
            return None
        return token.text, call_arguments(tokens, opener)

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        found = self._sink_ranges(stream, position)
        if found is None:
            return
        label, ranges = found
        for exposure in self.engine.analyze(stream, ranges, SinkClass.OUTPUT):
            self._emit(
                sink, stream, exposure.operand.position, "OutputNotEscaped",
                self.TEMPLATE, (exposure.operand.name, label),
                evidence={"sink": position, "reason": exposure.reason,
                          "state": exposure.state.name},
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: VALIDATED / SANITIZED INPUT
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValidatedSanitizedInputConfig:
    db_functions: Tuple[str, ...] = DEFAULT_DB_FUNCTIONS
    input_functions: Tuple[str, ...] = DEFAULT_SOURCE_FUNCTIONS
    superglobals: Tuple[str, ...] = DEFAULT_SUPERGLOBALS
    sanitization_functions: Tuple[str, ...] = DEFAULT_SANITIZERS
    validation_functions: Tuple[str, ...] = DEFAULT_VALIDATORS
    safe_functions: Tuple[str, ...] = DEFAULT_SAFE_FUNCTIONS
    require_proof: bool = True


class ValidatedSanitizedInputCheck(Check):
    """
    Values handed to database functions must be sanitized or validated.

    Each exposure is reported at the operand under the most specific code:
    a superglobal used directly, an input accessor called directly, or a
    variable whose most recent assignment did not sanitize it.
    """

    name = "Security.ValidatedSanitizedInput"
    description = "Input must be sanitized before persistence"
    codes = frozenset({
        "SuperglobalNotSanitized", "InputNotSanitized", "VariableNotSanitized",
    })
    interested_kinds = frozenset({K.STRING})
    config_class = ValidatedSanitizedInputConfig

    _MESSAGES = {
        "SuperglobalNotSanitized": "Superglobal %s must be sanitized before use with %s",
        "InputNotSanitized": "Input from %s must be sanitized before use with %s",
        "VariableNotSanitized": "Variable %s must be sanitized before use with %s",
    }

    def __init__(self, config: Optional[ValidatedSanitizedInputConfig] = None) -> None:
        super().__init__(config)
        cfg = self.config
        self._sinks = frozenset(f.lower() for f in cfg.db_functions)
        self.engine = TaintEngine(TaintPolicy(
            superglobals=frozenset(cfg.superglobals),
            sources=frozenset(cfg.input_functions),
            sanitizers=frozenset(cfg.sanitization_functions),
            validators=frozenset(cfg.validation_functions),
            escapers=frozenset(),
            safe=frozenset(cfg.safe_functions),
            require_proof=cfg.require_proof,
        ))

    def validate(self) -> None:
        if not self._sinks:
            raise ConfigurationGap(self.name, "db_functions")
        if not (self.engine.policy.superglobals or self.engine.policy.sources):
            raise ConfigurationGap(self.name, "superglobals/input_functions")

    def _classify(self, exposure: Exposure) -> Tuple[str, str]:
        operand = exposure.operand
        if operand.kind is OperandKind.SUPERGLOBAL:
            return "SuperglobalNotSanitized", operand.name
        if exposure.reason == "source-call":
            policy = self.engine.policy
            if operand.kind is OperandKind.CALL and policy.is_source(operand.name):
                return "InputNotSanitized", operand.name
            accessor = next(m for m in operand.member_calls if policy.is_source(m))
            return "InputNotSanitized", accessor
        return "VariableNotSanitized", operand.name

    def process(self, stream: TokenStream, position: int, sink: DiagnosticSink) -> None:
        tokens = stream.tokens
        opener = function_call_opener(tokens, position, allow_members=True)
        if opener is None:
            return
        label = tokens[position].text
        prev = previous_significant(tokens, position - 1)
        if prev is not None and tokens[prev].kind is K.DOUBLE_COLON:
            owner = previous_significant(tokens, prev - 1)
            if owner is not None:
                label = f"{tokens[owner].text}::{label}"
        if not name_matches(label, self._sinks):
            return

        exposures: List[Exposure] = self.engine.analyze(
            stream, call_arguments(tokens, opener), SinkClass.PERSISTENCE
        )
        for exposure in exposures:
            code, subject = self._classify(exposure)
            self._emit(
                sink, stream, exposure.operand.position, code,
                self._MESSAGES[code], (subject, label),
                evidence={"sink": position, "reason": exposure.reason,
                          "state": exposure.state.name},
            )


CHECKS = [EscapeOutputCheck, ValidatedSanitizedInputCheck]

__all__ = [
    "DEFAULT_OUTPUT_FUNCTIONS",
    "DEFAULT_DB_FUNCTIONS",
    "EscapeOutputConfig",
    "EscapeOutputCheck",
    "ValidatedSanitizedInputConfig",
    "ValidatedSanitizedInputCheck",
    "CHECKS",
]
