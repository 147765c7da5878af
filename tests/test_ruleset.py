# tests/test_ruleset.py
"""
Tests for S-expression ruleset loading, property coercion and check
construction.
"""

import pytest

from tokensniff.checkers import build_default_registry
from tokensniff.conventions import DisallowedFunctionsCheck, NamingConventionsCheck
from tokensniff.errors import RulesetError
from tokensniff.ruleset import RuleSet, build_config, load_ruleset, load_ruleset_file
from tokensniff.security import EscapeOutputCheck
from tokensniff.structural import IndentationCheck, LineLengthCheck

PROJECT = """
; project ruleset
(ruleset "Project"
  (exclude "Security" "Formatting.Indentation")
  (suppress "Strings.Quotes.DoubleQuotesWithoutVariable")
  (exclude-pattern "*/vendor/*" "*/storage/*")
  (suppress-in "*/migrations/*" "NamingConventions" "TypeHints")
  (rule "Formatting.LineLength"
    (line_limit 100)))
"""


class TestLoading:

    def test_all_entries(self):
        ruleset = load_ruleset(PROJECT)
        assert ruleset.name == "Project"
        assert ruleset.excluded == ["Security", "Formatting.Indentation"]
        assert ruleset.suppressed == ["Strings.Quotes.DoubleQuotesWithoutVariable"]
        assert ruleset.exclude_patterns == ["*/vendor/*", "*/storage/*"]
        assert ruleset.file_suppressions == {"*/migrations/*": ["NamingConventions", "TypeHints"]}
        assert ruleset.properties == {"Formatting.LineLength": {"line_limit": [100]}}

    def test_name_is_optional(self):
        assert load_ruleset("(ruleset (exclude \"Strings\"))").name == ""

    def test_exclusion_by_category(self):
        ruleset = RuleSet(excluded=["Formatting"])
        assert ruleset.is_excluded("Formatting.Spacing")
        assert ruleset.is_excluded("Formatting")
        assert not ruleset.is_excluded("FormattingExtra.Check")

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "ruleset.sexp"
        path.write_text(PROJECT, encoding="utf-8")
        assert load_ruleset_file(str(path)).name == "Project"

    def test_missing_file(self, tmp_path):
        with pytest.raises(RulesetError, match="cannot read ruleset"):
            load_ruleset_file(str(tmp_path / "missing.sexp"))

    @pytest.mark.parametrize("text, message", [
        ('(ruleset "X"', "failed to parse"),
        ("(policy)", "single \\(ruleset"),
        ("(ruleset (bogus 1))", "unknown ruleset entry"),
        ("(ruleset (exclude))", "expects one or more strings"),
        ("(ruleset (suppress 3))", "expects one or more strings"),
        ('(ruleset (suppress-in "*.php"))', "needs a file pattern and codes"),
        ("(ruleset (rule))", "needs a check name"),
        ('(ruleset (rule "Formatting.LineLength" bare))', "must look like"),
    ])
    def test_malformed(self, text, message):
        with pytest.raises(RulesetError, match=message):
            load_ruleset(text)


class TestCoercion:

    def test_int(self):
        config = build_config(LineLengthCheck, {"line_limit": [100]})
        assert config.line_limit == 100
        assert config.comment_line_limit == 120

    @pytest.mark.parametrize("word, expected", [
        ("false", False), ("nil", False), ("t", True), ("true", True),
    ])
    def test_bool_words(self, word, expected):
        config = load_ruleset(
            '(ruleset (rule "Formatting.Indentation" (use_tabs %s)))' % word
        ).properties["Formatting.Indentation"]
        assert build_config(IndentationCheck, config).use_tabs is expected

    def test_str_and_tuple(self):
        config = build_config(NamingConventionsCheck, {"column_pattern": ["^id$"]})
        assert config.column_pattern == "^id$"
        config = build_config(EscapeOutputCheck, {"escaping_functions": ["e", "escape_html"]})
        assert config.escaping_functions == ("e", "escape_html")

    def test_dict_pairs(self):
        ruleset = load_ruleset(
            '(ruleset (rule "Functions.DisallowedFunctions"'
            ' (functions ("var_dump" "Use a logger.") ("dd" "Remove it."))))'
        )
        config = build_config(
            DisallowedFunctionsCheck, ruleset.properties["Functions.DisallowedFunctions"]
        )
        assert config.functions == {"var_dump": "Use a logger.", "dd": "Remove it."}
        with pytest.raises(TypeError):
            config.functions["exit"] = "Nope."

    @pytest.mark.parametrize("prop, values", [
        ("line_limit", ["100"]),
        ("line_limit", [1, 2]),
        ("line_limit", [True]),
    ])
    def test_wrong_shape(self, prop, values):
        with pytest.raises(RulesetError, match="expects"):
            build_config(LineLengthCheck, {prop: values})

    def test_bad_bool_and_pairs(self):
        with pytest.raises(RulesetError, match="a boolean"):
            build_config(IndentationCheck, {"use_tabs": ["maybe"]})
        with pytest.raises(RulesetError, match="pairs"):
            build_config(DisallowedFunctionsCheck, {"functions": [["var_dump"]]})

    def test_unknown_property(self):
        with pytest.raises(RulesetError, match="unknown property 'limit'"):
            build_config(LineLengthCheck, {"limit": [1]})


class TestBuildChecks:

    def test_exclusions_and_overrides(self):
        checks = load_ruleset(PROJECT).build_checks(build_default_registry())
        names = [c.name for c in checks]
        assert "Security.EscapeOutput" not in names
        assert "Formatting.Indentation" not in names
        assert "Formatting.Spacing" in names
        line_length = next(c for c in checks if c.name == "Formatting.LineLength")
        assert line_length.config.line_limit == 100

    def test_unknown_check(self):
        ruleset = load_ruleset('(ruleset (rule "No.Such" (x 1)))')
        with pytest.raises(RulesetError, match="unknown check"):
            ruleset.build_checks(build_default_registry())

    def test_check_without_configuration(self):
        ruleset = load_ruleset('(ruleset (rule "Arrays.ArraySyntax" (x 1)))')
        with pytest.raises(RulesetError, match="takes no properties"):
            ruleset.build_checks(build_default_registry())
