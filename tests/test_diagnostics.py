# tests/test_diagnostics.py
"""
Tests for findings, the diagnostic sink and the suppression manager.
"""

import json

from tokensniff.diagnostics import (
    DiagnosticSink,
    Finding,
    Severity,
    SuppressionManager,
)
from tokensniff.tokenizer import tokenize


def finding(code="Formatting.Alignment.VariableAssignmentNotAligned", line=3,
            position=5, path="a.php", severity=Severity.ERROR):
    return Finding(
        severity=severity,
        code=code,
        template="expected column %d, found column %d",
        args=(4, 6),
        position=position,
        line=line,
        column=7,
        check=code.rsplit(".", 1)[0],
        path=path,
    )


def manager_for(source, *global_codes):
    manager = SuppressionManager(global_codes)
    manager.load_inline_suppressions(tokenize(source))
    return manager


class TestFinding:

    def test_message_formats_args(self):
        assert finding().message == "expected column 4, found column 6"

    def test_message_without_args_is_template(self):
        f = Finding(Severity.WARNING, "A.B.C", "100% literal", (), 0, 1, 1)
        assert f.message == "100% literal"

    def test_gcc_format(self):
        assert finding().to_gcc_format() == (
            "a.php:3:7: error: expected column 4, found column 6 "
            "[Formatting.Alignment.VariableAssignmentNotAligned]"
        )

    def test_json(self):
        data = json.loads(finding(severity=Severity.WARNING).to_json_str())
        assert data == {
            "file": "a.php",
            "line": 3,
            "column": 7,
            "severity": "warning",
            "message": "expected column 4, found column 6",
            "code": "Formatting.Alignment.VariableAssignmentNotAligned",
            "check": "Formatting.Alignment",
        }

    def test_evidence_ignored_in_equality(self):
        a = finding()
        b = Finding(**{**a.__dict__, "evidence": {"neighbour": 3}})
        assert a == b


class TestSink:

    def test_child_commits_only_on_request(self):
        sink = DiagnosticSink()
        child = sink.child()
        child.add(finding())
        assert len(sink) == 0
        sink.commit(child)
        assert len(sink) == 1

    def test_findings_sorted_by_position_stable(self):
        sink = DiagnosticSink()
        sink.add(finding(position=9, line=4))
        sink.add(finding(code="A.B.First", position=2))
        sink.add(finding(code="A.B.Second", position=2))
        assert [f.code for f in sink.findings()] == [
            "A.B.First", "A.B.Second",
            "Formatting.Alignment.VariableAssignmentNotAligned",
        ]

    def test_no_deduplication(self):
        sink = DiagnosticSink()
        sink.add(finding())
        sink.add(finding())
        assert len(list(sink)) == 2


class TestSuppressions:

    def test_ignore_covers_comment_line_and_next(self):
        manager = manager_for("<?php\n// phpcs:ignore Formatting.Alignment\n$a = 1;\n$b = 2;\n")
        assert manager.is_suppressed(finding(line=2))
        assert manager.is_suppressed(finding(line=3))
        assert not manager.is_suppressed(finding(line=4))

    def test_ignore_only_named_codes(self):
        manager = manager_for("<?php\n// phpcs:ignore Formatting.Alignment\n$a = 1;\n")
        assert not manager.is_suppressed(finding(code="Strings.Quotes.DoubleQuotesWithoutVariable"))

    def test_ignore_with_reason_and_several_codes(self):
        manager = manager_for(
            "<?php\n// phpcs:ignore Strings.Quotes, Formatting.Spacing -- legacy\n$a=\"x\";\n"
        )
        assert manager.is_suppressed(finding(code="Strings.Quotes.DoubleQuotesWithoutVariable"))
        assert manager.is_suppressed(finding(code="Formatting.Spacing.NoSpaceBeforeOperator"))
        assert not manager.is_suppressed(finding())

    def test_bare_ignore_suppresses_everything(self):
        manager = manager_for("<?php\n$a = 1; // phpcs:ignore\n")
        assert manager.is_suppressed(finding(code="Any.Thing.At", line=2))

    def test_disable_enable_region(self):
        src = "<?php\n// phpcs:disable\n$a;\n$b;\n// phpcs:enable\n$c;\n"
        manager = manager_for(src)
        assert manager.is_suppressed(finding(line=3))
        assert manager.is_suppressed(finding(line=4))
        assert not manager.is_suppressed(finding(line=6))

    def test_disable_without_enable_runs_to_end(self):
        manager = manager_for("<?php\n$a;\n/* phpcs:disable Formatting */\n$b;\n$c;\n")
        assert not manager.is_suppressed(finding(line=2))
        assert manager.is_suppressed(finding(line=5))

    def test_legacy_markers(self):
        src = "<?php\n// @codingStandardsIgnoreStart\n$a;\n// @codingStandardsIgnoreEnd\n$b;\n"
        manager = manager_for(src)
        assert manager.is_suppressed(finding(line=3))
        assert not manager.is_suppressed(finding(line=5))

    def test_ignore_file(self):
        manager = manager_for("<?php\n// phpcs:ignoreFile\n")
        assert manager.is_suppressed(finding(line=99))

    def test_global_and_file_level(self):
        manager = SuppressionManager(["Strings"])
        manager.add_file_suppression("Formatting.Alignment", "*.blade.php")
        assert manager.is_suppressed(finding(code="Strings.Quotes.X"))
        assert manager.is_suppressed(finding(path="views/a.blade.php"))
        assert not manager.is_suppressed(finding(path="a.php"))
        manager.add_global_suppression("Formatting")
        assert manager.is_suppressed(finding(path="a.php"))

    def test_filter_findings(self):
        manager = SuppressionManager(["Formatting.Alignment"])
        kept = manager.filter_findings([finding(), finding(code="Strings.Quotes.X")])
        assert [f.code for f in kept] == ["Strings.Quotes.X"]

    def test_prefix_must_end_on_a_dot_boundary(self):
        manager = SuppressionManager(["Formatting.Align"])
        assert not manager.is_suppressed(finding())
