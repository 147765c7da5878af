# tests/test_dispatcher.py
"""
Tests for the check framework: registry, dispatcher isolation guarantees
and the file-level runner.
"""

import logging
import random

import pytest

from tokensniff.alignment import AlignmentCheck
from tokensniff.checkers import (
    Check,
    CheckRegistry,
    Dispatcher,
    LintRunner,
    build_default_registry,
    expand_paths,
)
from tokensniff.diagnostics import Severity
from tokensniff.errors import ConfigurationGap, MalformedStructure
from tokensniff.security import EscapeOutputCheck
from tokensniff.tokens import TokenKind as K
from tokensniff.tokenizer import tokenize


class VariableCheck(Check):
    """Reports every variable."""
    name = "Test.Variables"
    codes = frozenset({"Seen"})
    interested_kinds = frozenset({K.VARIABLE})

    def process(self, stream, position, sink):
        self._emit(sink, stream, position, "Seen", "variable %s", (stream.tokens[position].text,))


class PartialThenCrash(Check):
    """Emits, then fails: the emitted finding must not survive."""
    name = "Test.Crash"
    codes = frozenset({"Partial"})
    interested_kinds = frozenset({K.VARIABLE})

    def process(self, stream, position, sink):
        self._emit(sink, stream, position, "Partial", "partial")
        raise RuntimeError("boom")


class GivesUp(Check):
    name = "Test.GivesUp"
    codes = frozenset({"Partial"})
    interested_kinds = frozenset({K.VARIABLE})

    def process(self, stream, position, sink):
        self._emit(sink, stream, position, "Partial", "partial")
        raise MalformedStructure("no closer", position)


class Inert(Check):
    name = "Test.Inert"
    codes = frozenset({"Never"})
    interested_kinds = frozenset({K.VARIABLE})

    def __init__(self, config=None):
        super().__init__(config)
        self.calls = 0

    def validate(self):
        raise ConfigurationGap(self.name, "names")

    def process(self, stream, position, sink):
        self.calls += 1


SRC = "<?php\n$a = 1;\n$b = 2;\n"


class TestRegistry:

    def test_default_registry_holds_every_check(self):
        registry = build_default_registry()
        assert len(registry.names) == 18
        assert "Formatting.Alignment" in registry.names
        assert "Security.EscapeOutput" in registry.names
        assert registry.names == sorted(registry.names)

    def test_check_names_are_unique_and_codes_declared(self):
        registry = build_default_registry()
        for cls in registry.get_all():
            assert cls.codes, cls.name
            assert cls.interested_kinds, cls.name

    def test_disable_enable(self):
        registry = CheckRegistry()
        registry.register(AlignmentCheck)
        registry.register(EscapeOutputCheck)
        registry.disable("Formatting.Alignment")
        assert registry.get_enabled() == [EscapeOutputCheck]
        registry.enable("Formatting.Alignment")
        assert len(registry.get_enabled()) == 2

    def test_filter_by_code(self):
        registry = build_default_registry()
        assert registry.filter_by_code("OutputNotEscaped") == [EscapeOutputCheck]
        assert registry.filter_by_code("Security.EscapeOutput.OutputNotEscaped") == [EscapeOutputCheck]
        assert registry.filter_by_code("Nope") == []


class TestDispatcher:

    def test_findings_in_position_order(self):
        findings = Dispatcher([VariableCheck()]).run(tokenize(SRC))
        assert [f.args for f in findings] == [("$a",), ("$b",)]
        assert [f.line for f in findings] == [2, 3]
        assert findings[0].code == "Test.Variables.Seen"

    def test_runs_are_idempotent(self):
        dispatcher = Dispatcher([VariableCheck(), AlignmentCheck()])
        stream = tokenize(SRC)
        assert dispatcher.run(stream) == dispatcher.run(stream)

    def test_crashing_check_is_isolated(self, caplog):
        dispatcher = Dispatcher([PartialThenCrash(), VariableCheck()])
        with caplog.at_level(logging.WARNING, logger="tokensniff.checkers"):
            findings = dispatcher.run(tokenize(SRC, path="x.php"))
        assert [f.check for f in findings] == ["Test.Variables", "Test.Variables"]
        assert "Test.Crash failed at x.php:2" in caplog.text

    def test_malformed_structure_discarded_quietly(self, caplog):
        dispatcher = Dispatcher([GivesUp()])
        with caplog.at_level(logging.DEBUG, logger="tokensniff.checkers"):
            findings = dispatcher.run(tokenize(SRC))
        assert findings == []
        assert all(r.levelno == logging.DEBUG for r in caplog.records)

    def test_configuration_gap_makes_check_inert(self):
        check = Inert()
        dispatcher = Dispatcher([check])
        assert dispatcher.checks == [check]
        assert dispatcher.run(tokenize(SRC)) == []
        assert check.calls == 0

    def test_default_config_instantiated(self):
        check = AlignmentCheck()
        assert check.config is not None
        assert repr(check) == "<AlignmentCheck 'Formatting.Alignment'>"


class TestRunner:

    def test_run_source(self):
        runner = LintRunner([EscapeOutputCheck()])
        results = runner.run_source("<?php\necho $_GET['q'];\n", path="a.php")
        assert results.files == ["a.php"]
        assert results.error_count == 1
        assert results.findings[0].path == "a.php"
        assert "Security.EscapeOutput" in results.summary()

    def test_inline_suppression_applied(self):
        runner = LintRunner([EscapeOutputCheck()])
        src = "<?php\n// phpcs:ignore Security.EscapeOutput\necho $_GET['q'];\n"
        assert runner.run_source(src).total_count == 0

    def test_global_suppression_by_prefix(self):
        runner = LintRunner([EscapeOutputCheck()], suppress=["Security"])
        assert runner.run_source("<?php\necho $_GET['q'];\n").total_count == 0

    def test_file_suppression_by_pattern(self):
        runner = LintRunner(
            [EscapeOutputCheck()], file_suppressions={"*/legacy/*": ["Security.EscapeOutput"]}
        )
        src = "<?php\necho $_GET['q'];\n"
        assert runner.run_source(src, path="app/legacy/old.php").total_count == 0
        assert runner.run_source(src, path="app/new.php").total_count == 1

    def test_run_paths_sequential_and_threaded_agree(self, tmp_path):
        (tmp_path / "b.php").write_text("<?php\necho $_GET['b'];\n", encoding="utf-8")
        (tmp_path / "a.php").write_text("<?php\necho $_POST['a'];\n", encoding="utf-8")
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "c.php").write_text("<?php\necho escape_html($x);\n", encoding="utf-8")
        (sub / "notes.txt").write_text("echo $_GET;", encoding="utf-8")

        sequential = LintRunner([EscapeOutputCheck()]).run_paths([str(tmp_path)])
        threaded = LintRunner([EscapeOutputCheck()], jobs=4).run_paths([str(tmp_path)])

        assert sequential.files == threaded.files
        assert [f.to_json() for f in sequential.findings] == [f.to_json() for f in threaded.findings]
        assert [f.path.rsplit("/", 1)[-1] for f in sequential.findings] == ["a.php", "b.php"]
        assert len(sequential.files) == 3

    def test_results_json_and_gcc(self):
        results = LintRunner([EscapeOutputCheck()]).run_source(
            "<?php\necho $_GET['q'];\n", path="v.php"
        )
        assert results.to_gcc_format().startswith("v.php:2:6: error: ")
        assert '"code": "Security.EscapeOutput.OutputNotEscaped"' in results.to_json_lines()
        assert results.by_code("Security") == results.findings
        assert results.by_file("v.php") == results.findings
        assert results.findings[0].severity is Severity.ERROR


MIXED = """<?php
use function helpers\\format;
use App\\Models\\User;

class report_card {
    public $title;
    function render($db) {
        $total=1;
        $rows  = array('a' => 1, 'b' => 2);
        if ($total == 5){
            echo $_GET['q'] . $this->title;
        }
        var_dump($rows);
        $db->insert($_POST['name']);
        return "done";
    }
}
"""


def _ordered(findings):
    return sorted(findings, key=lambda f: (f.line, f.column, f.code, f.message))


class TestWholeRegistry:

    @pytest.fixture
    def checks(self):
        return [cls() for cls in build_default_registry().get_all()]

    def test_registration_order_does_not_matter(self, checks):
        stream = tokenize(MIXED, path="report.php")
        expected = _ordered(Dispatcher(checks).run(stream))
        assert len({f.check for f in expected}) > 5
        for seed in range(5):
            shuffled = list(checks)
            random.Random(seed).shuffle(shuffled)
            assert _ordered(Dispatcher(shuffled).run(stream)) == expected

    def test_disabling_one_check_leaves_the_others(self, checks):
        stream = tokenize(MIXED, path="report.php")
        everything = _ordered(Dispatcher(checks).run(stream))
        for dropped in checks:
            rest = [c for c in checks if c is not dropped]
            remaining = _ordered(Dispatcher(rest).run(stream))
            assert remaining == [f for f in everything if f.check != dropped.name], dropped.name


class TestExpandPaths:

    def test_directories_expand_to_sorted_php_files(self, tmp_path):
        (tmp_path / "z.php").write_text("", encoding="utf-8")
        (tmp_path / "a.php").write_text("", encoding="utf-8")
        (tmp_path / "readme.md").write_text("", encoding="utf-8")
        found = expand_paths([str(tmp_path)])
        assert [p.rsplit("/", 1)[-1] for p in found] == ["a.php", "z.php"]

    def test_exclude_patterns(self, tmp_path):
        vendor = tmp_path / "vendor"
        vendor.mkdir()
        (vendor / "lib.php").write_text("", encoding="utf-8")
        (tmp_path / "app.php").write_text("", encoding="utf-8")
        found = expand_paths([str(tmp_path)], exclude=["*/vendor/*"])
        assert [p.rsplit("/", 1)[-1] for p in found] == ["app.php"]

    def test_explicit_files_kept(self, tmp_path):
        path = tmp_path / "view.blade.php"
        path.write_text("", encoding="utf-8")
        assert expand_paths([str(path)]) == [str(path)]
