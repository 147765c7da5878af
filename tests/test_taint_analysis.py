# tests/test_taint_analysis.py
"""
Tests for the taint engine: operand enumeration, assignment resolution
and the per-sink-class classification of exposures.
"""

import pytest

from tokensniff.cursor import end_of_statement
from tokensniff.errors import UnresolvedReference
from tokensniff.taint_analysis import (
    OperandKind,
    SinkClass,
    TaintEngine,
    TaintPolicy,
    TaintState,
    enumerate_operands,
    name_matches,
    resolve_assignment,
)
from tokensniff.tokens import TokenKind as K
from tokensniff.tokenizer import tokenize


def echo_range(stream):
    """``(start, end)`` of the expression of the last ``echo`` in ``stream``."""
    tokens = stream.tokens
    echo = max(i for i, t in enumerate(tokens) if t.kind is K.ECHO)
    return echo + 1, end_of_statement(tokens, echo + 1)


def exposures(source, sink_class=SinkClass.OUTPUT, **policy):
    stream = tokenize(source)
    engine = TaintEngine(TaintPolicy(**policy))
    return engine.analyze(stream, [echo_range(stream)], sink_class)


def reasons(found):
    return [(e.operand.name, e.reason) for e in found]


class TestOperands:

    def test_primaries_enumerated(self):
        stream = tokenize(
            "<?php echo $a . foo($b) . 'x' . $c->bar() . (int) $d . isset($e) . 3;"
        )
        start, end = echo_range(stream)
        ops = enumerate_operands(stream.tokens, start, end)
        assert [o.name for o in ops] == ["$a", "foo", "$c"]
        assert [o.kind for o in ops] == [
            OperandKind.VARIABLE, OperandKind.CALL, OperandKind.VARIABLE,
        ]
        assert ops[2].member_calls == ("bar",)

    def test_superglobal_and_subscript(self):
        stream = tokenize("<?php echo $_GET['a']['b'];")
        ops = enumerate_operands(stream.tokens, *echo_range(stream))
        assert len(ops) == 1
        assert ops[0].kind is OperandKind.SUPERGLOBAL

    def test_interpolated_string(self):
        stream = tokenize('<?php echo "Hi $name, from {$this->x}";')
        ops = enumerate_operands(stream.tokens, *echo_range(stream))
        assert [(o.kind, o.name) for o in ops] == [
            (OperandKind.INTERPOLATED_STRING, "$name"),
            (OperandKind.INTERPOLATED_STRING, "$this"),
        ]

    def test_qualified_and_static_calls(self):
        stream = tokenize("<?php echo \\App\\helper($x) . Str::upper($y) . new Foo($z);")
        ops = enumerate_operands(stream.tokens, *echo_range(stream))
        assert [o.name for o in ops] == ["App\\helper", "Str::upper"]

    def test_closures_and_constants_skipped(self):
        stream = tokenize("<?php echo PHP_EOL . Foo::BAR . function () { return $x; };")
        assert enumerate_operands(stream.tokens, *echo_range(stream)) == []


class TestNameMatching:

    def test_bare_and_qualified(self):
        names = frozenset({"insert", "escape_html"})
        assert name_matches("DB::insert", names)
        assert name_matches("\\Esc\\escape_html", names)
        assert name_matches("ESCAPE_HTML", names)
        assert not name_matches("inserted", names)

    def test_policy_lowercases(self):
        policy = TaintPolicy(escapers=frozenset({"EscapeHtml"}))
        assert "escapehtml" in policy.escapers


class TestAssignmentResolution:

    def test_most_recent_assignment_wins(self):
        stream = tokenize("<?php\n$v = $_GET['a'];\n$v = escape_html($v);\necho $v;\n")
        use = max(i for i, t in enumerate(stream.tokens) if t.text == "$v")
        assignment = resolve_assignment(stream, use, "$v")
        assert stream.tokens[assignment.target].line == 3

    def test_parameter_is_unresolved(self):
        stream = tokenize("<?php\nfunction f($p) {\n    echo $p;\n}\n")
        use = max(i for i, t in enumerate(stream.tokens) if t.text == "$p")
        with pytest.raises(UnresolvedReference):
            resolve_assignment(stream, use, "$p")

    def test_nested_function_assignments_ignored(self):
        src = "<?php\n$v = 1;\nfunction g() {\n    $v = 2;\n}\necho $v;\n"
        stream = tokenize(src)
        use = max(i for i, t in enumerate(stream.tokens) if t.text == "$v")
        assignment = resolve_assignment(stream, use, "$v")
        assert stream.tokens[assignment.target].line == 2


class TestOutputSinks:

    def test_superglobal_direct(self):
        found = exposures("<?php\necho $_GET['q'];\n")
        assert reasons(found) == [("$_GET", "superglobal")]
        assert found[0].state is TaintState.TAINTED

    def test_escaped_call_is_clear(self):
        assert exposures("<?php\necho escape_html($_GET['q']);\n") == []

    def test_safe_function_is_clear(self):
        assert exposures("<?php\necho count($_GET);\n") == []

    def test_unknown_call_is_an_exposure(self):
        assert reasons(exposures("<?php\necho strtoupper($x);\n")) == [("strtoupper", "call")]

    def test_source_call(self):
        found = exposures("<?php\necho get_option('x');\n")
        assert reasons(found) == [("get_option", "source-call")]

    def test_sanitized_by_assignment(self):
        src = "<?php\n$name = escape_html($_GET['q']);\necho $name;\n"
        assert exposures(src) == []

    def test_tainted_by_assignment(self):
        src = "<?php\n$name = $_POST['n'];\necho $name;\n"
        found = exposures(src)
        assert reasons(found) == [("$name", "tainted")]
        assert found[0].assignment is not None

    def test_unproven_depends_on_require_proof(self):
        src = "<?php\n$v = 'x';\necho $v;\n"
        assert reasons(exposures(src)) == [("$v", "unproven")]
        assert exposures(src, require_proof=False) == []

    def test_one_level_only(self):
        src = "<?php\n$a = $_GET['x'];\n$b = $a;\necho $b;\n"
        found = exposures(src, require_proof=False)
        assert found == []

    def test_unresolved_parameter(self):
        src = "<?php\nfunction f($p) {\n    echo $p;\n}\n"
        found = exposures(src, require_proof=False)
        assert reasons(found) == [("$p", "unresolved")]
        assert found[0].state is TaintState.UNKNOWN

    def test_escaped_this_property_is_clear(self):
        assert exposures("<?php\necho escape_html($this->name);\n") == []

    def test_bare_this_property_is_unresolved(self):
        src = "<?php\nclass A {\n    function f() {\n        echo $this->bio;\n    }\n}\n"
        found = exposures(src, require_proof=False)
        assert reasons(found) == [("$this", "unresolved")]


class TestPersistenceSinks:

    def test_unknown_call_is_transparent(self):
        found = exposures(
            "<?php\necho trim($_GET['n']);\n", sink_class=SinkClass.PERSISTENCE
        )
        assert reasons(found) == [("$_GET", "superglobal")]

    def test_sanitizer_clears(self):
        found = exposures(
            "<?php\necho sanitize_text($_GET['n']);\n", sink_class=SinkClass.PERSISTENCE
        )
        assert found == []

    def test_escaper_does_not_clear_for_persistence(self):
        found = exposures(
            "<?php\n$v = escape_html($_GET['n']);\necho $v;\n",
            sink_class=SinkClass.PERSISTENCE,
        )
        assert reasons(found) == [("$v", "tainted")]

    def test_source_method_on_variable(self):
        found = exposures(
            "<?php\necho $request->input('name');\n", sink_class=SinkClass.PERSISTENCE
        )
        assert reasons(found) == [("$request", "source-call")]
