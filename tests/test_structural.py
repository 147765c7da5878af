# tests/test_structural.py
"""
Tests for the layout checks: arrays, braces, spacing, line length,
indentation, quotes, PHP tags, control structure syntax and Blade
component prefixes.
"""

from tokensniff.diagnostics import Severity
from tokensniff.structural import (
    ArraySyntaxCheck,
    BracesCheck,
    BracesConfig,
    ControlStructuresCheck,
    DeprecatedComponentSyntaxCheck,
    IndentationCheck,
    IndentationConfig,
    LineLengthCheck,
    LineLengthConfig,
    PhpTagsCheck,
    QuotesCheck,
    SpacingCheck,
)


class TestArraySyntax:

    def test_long_syntax(self, lint, codes):
        assert codes(lint(ArraySyntaxCheck, "<?php\n$a = array(1, 2);\n")) == ["LongArraySyntax"]

    def test_array_type_declaration_is_not_a_literal(self, lint):
        assert lint(ArraySyntaxCheck, "<?php\nfunction f(array $x) {}\n") == []

    def test_keyed_items_on_one_line(self, lint, codes):
        findings = lint(ArraySyntaxCheck, "<?php\n$a = ['a' => 1, 'b' => 2];\n")
        assert codes(findings) == [
            "AssociativeArrayItemsNotOnNewLines",
            "AssociativeArrayClosingBracketNotOnNewLine",
        ]

    def test_keyed_layout_one_item_per_line(self, lint):
        src = "<?php\n$a = [\n    'a' => 1,\n    'b' => 2,\n];\n"
        assert lint(ArraySyntaxCheck, src) == []

    def test_closer_on_last_comma_line(self, lint, codes):
        src = "<?php\n$a = [\n    'a' => 1,\n    'b' => 2, ];\n"
        assert codes(lint(ArraySyntaxCheck, src)) == ["AssociativeArrayClosingBracketNotOnNewLine"]

    def test_lists_and_single_items_exempt(self, lint):
        assert lint(ArraySyntaxCheck, "<?php\n$a = [1, 2, 3];\n$b = ['k' => 1];\n") == []


class TestBraces:

    def test_same_line_brace_is_clean(self, lint):
        assert lint(BracesCheck, "<?php\nif ($a) {\n}\n") == []

    def test_brace_on_next_line(self, lint, codes):
        findings = lint(BracesCheck, "<?php\nif ($a)\n{\n}\n")
        assert codes(findings) == ["BraceOnWrongLine"]
        assert findings[0].line == 3

    def test_missing_space_before_brace(self, lint, codes):
        assert codes(lint(BracesCheck, "<?php\nif ($a){\n}\n")) == ["NoSpaceBeforeBrace"]

    def test_class_header_compared_with_last_header_token(self, lint, codes):
        src = "<?php\nclass Foo extends Bar\n{\n}\n"
        assert codes(lint(BracesCheck, src)) == ["BraceOnWrongLine"]

    def test_else_without_space(self, lint, codes):
        src = "<?php\nif ($a) {\n} else{\n}\n"
        assert codes(lint(BracesCheck, src)) == ["NoSpaceBeforeBrace"]

    def test_next_line_style(self, lint):
        check = BracesCheck(BracesConfig(opening_brace_on_same_line=False))
        findings = lint(check, "<?php\nfunction f() {\n}\n")
        assert [f.message for f in findings] == [
            "Opening brace should be on the next line after the declaration"
        ]
        assert lint(check, "<?php\nfunction f()\n{\n}\n") == []


class TestSpacing:

    def test_assignment_without_spaces(self, lint, codes):
        findings = lint(SpacingCheck, "<?php\n$a=1;\n")
        assert codes(findings) == ["NoSpaceBeforeOperator", "NoSpaceAfterOperator"]
        assert findings[0].message == 'There should be a space before operator "="'

    def test_binary_arithmetic(self, lint):
        findings = lint(SpacingCheck, "<?php\n$a = $b+$c;\n")
        assert [f.args for f in findings] == [("+",), ("+",)]

    def test_unary_minus_exempt(self, lint):
        assert lint(SpacingCheck, "<?php\n$a = -1;\n") == []

    def test_opening_parenthesis(self, lint, codes):
        findings = lint(SpacingCheck, "<?php\nfoo($a);\n")
        assert codes(findings) == ["NoSpaceAfterOpeningParenthesis"]
        assert findings[0].message == "There should be a space after an opening parenthesis"
        assert lint(SpacingCheck, "<?php\nfoo( $a );\nbar();\n") == []

    def test_subscripts_and_short_arrays_exempt(self, lint):
        assert lint(SpacingCheck, "<?php\n$a['k'] = [1];\n") == []

    def test_comma(self, lint, codes):
        assert codes(lint(SpacingCheck, "<?php\nfoo( $a,$b );\n")) == ["NoSpaceAfterComma"]
        assert lint(SpacingCheck, "<?php\n$a = [1,];\n") == []

    def test_control_keyword(self, lint, codes):
        findings = lint(SpacingCheck, "<?php\nif( $a ) {\n}\n")
        assert codes(findings) == ["NoSpaceBeforeOpeningParenthesis"]
        assert findings[0].args == ("if",)

    def test_closing_parenthesis_and_brace(self, lint, codes):
        findings = lint(SpacingCheck, "<?php\nif ( $a ){\n}\n")
        assert codes(findings) == ["NoSpaceAfterClosingParenthesis"]

    def test_named_function_and_closure(self, lint, codes):
        assert lint(SpacingCheck, "<?php\nfunction foo( $a ) {\n}\n") == []
        findings = lint(SpacingCheck, "<?php\n$f = function() {\n};\n")
        assert codes(findings) == ["NoSpaceBeforeOpeningParenthesis"]
        assert findings[0].args == ("function",)


class TestLineLength:

    def test_long_code_line(self, lint, codes):
        check = LineLengthCheck(LineLengthConfig(line_limit=20))
        findings = lint(check, "<?php\n$variable = 'a long string value';\n")
        assert codes(findings) == ["ExceedsLimit"]
        assert (findings[0].line, findings[0].column) == (2, 1)
        assert findings[0].message == (
            "Line exceeds 20 characters; contains 34 characters (tabs expanded to 4 spaces)"
        )

    def test_comment_lines_use_their_own_limit(self, lint, codes):
        src = "<?php\n// this comment is longer than twenty\n"
        assert lint(LineLengthCheck(LineLengthConfig(line_limit=20, comment_line_limit=40)), src) == []
        findings = lint(LineLengthCheck(LineLengthConfig(line_limit=20, comment_line_limit=30)), src)
        assert codes(findings) == ["CommentExceedsLimit"]
        assert findings[0].args == (30, 37)

    def test_tabs_are_expanded(self, lint):
        check = LineLengthCheck(LineLengthConfig(line_limit=10, tab_width=4))
        findings = lint(check, "<?php\n\t\t$a = 1;\n")
        assert findings[0].args == (10, 15)

    def test_default_limit(self, lint):
        assert lint(LineLengthCheck, "<?php\n$a = 1;\n") == []


class TestIndentation:

    def test_spaces_when_tabs_required(self, lint, codes):
        src = "<?php\nif ( $a ) {\n    $b = 1;\n}\n"
        findings = lint(IndentationCheck, src)
        assert codes(findings) == ["SpacesUsedForIndent"]
        assert findings[0].line == 3

    def test_tabs_and_alignment_spaces(self, lint):
        assert lint(IndentationCheck, "<?php\nif ( $a ) {\n\t$b = 1;\n\t  $c = 2;\n}\n") == []

    def test_mixed(self, lint, codes):
        src = "<?php\nif ( $a ) {\n\t    $b = 1;\n \t$c = 2;\n}\n"
        assert codes(lint(IndentationCheck, src)) == ["MixedIndentation", "MixedIndentation"]

    def test_spaces_only_mode(self, lint, codes):
        check = IndentationCheck(IndentationConfig(use_tabs=False))
        assert lint(check, "<?php\nif ( $a ) {\n    $b = 1;\n}\n") == []
        assert codes(lint(check, "<?php\nif ( $a ) {\n\t$b = 1;\n}\n")) == ["MixedIndentation"]


class TestQuotes:

    def test_double_quotes_without_variable(self, lint, codes):
        assert codes(lint(QuotesCheck, '<?php\n$a = "hello";\n')) == ["DoubleQuotesWithoutVariable"]

    def test_double_quotes_exemptions(self, lint):
        src = '<?php\n$a = "hi $name";\n$b = "line\\n";\n$c = "it\'s";\n'
        assert lint(QuotesCheck, src) == []

    def test_single_quotes_with_variable(self, lint, codes):
        assert codes(lint(QuotesCheck, "<?php\n$a = 'cost $x';\n")) == ["SingleQuotesWithVariable"]
        assert lint(QuotesCheck, "<?php\n$a = 'plain';\n") == []


class TestPhpTags:

    def test_tag_on_own_line_is_clean(self, lint):
        assert lint(PhpTagsCheck, "<?php\n$a = 1;\n?>\n") == []

    def test_opening_tag_shares_line(self, lint, codes):
        assert codes(lint(PhpTagsCheck, "<?php $a = 1;\n")) == ["OpeningTagNotOnOwnLine"]

    def test_closing_tag_shares_line(self, lint, codes):
        findings = lint(PhpTagsCheck, "<?php\n$a = 1; ?>\n<p>x</p>\n")
        assert codes(findings) == ["ClosingTagNotOnOwnLine"]

    def test_any_tag_in_blade_file(self, lint, codes):
        findings = lint(PhpTagsCheck, "<p>x</p>\n<?php $a = 1; ?>\n", path="v.blade.php")
        assert codes(findings) == ["PhpTagsInBladeFile", "PhpTagsInBladeFile"]


class TestControlStructures:

    def test_colon_syntax_outside_blade(self, lint, codes):
        src = "<?php\nif ( $a ):\n    echo 1;\nendif;\n"
        assert codes(lint(ControlStructuresCheck, src)) == ["ColonFormatInNonBladeFile"]

    def test_braces_outside_blade_are_clean(self, lint):
        src = "<?php\nif ( $a ) {\n} else {\n}\n"
        assert lint(ControlStructuresCheck, src) == []

    def test_braces_in_blade(self, lint, codes):
        src = "<?php if ( $a ) { echo 1; } ?>\n"
        findings = lint(ControlStructuresCheck, src, path="x.blade.php")
        assert codes(findings) == ["BracketFormatInBladeFile"]

    def test_colon_in_blade_is_clean(self, lint):
        src = "<?php if ( $a ): ?>\n<p>x</p>\n<?php endif; ?>\n"
        assert lint(ControlStructuresCheck, src, path="x.blade.php") == []


class TestDeprecatedComponentSyntax:

    def test_deprecated_prefix(self, lint, codes):
        findings = lint(
            DeprecatedComponentSyntaxCheck,
            '<x-artisanpack-artisanpack-button label="Go" />\n',
            path="v.blade.php",
        )
        assert codes(findings) == ["Found"]
        assert findings[0].severity is Severity.WARNING
        assert findings[0].message == (
            "Usage of the deprecated component syntax <x-artisanpack-artisanpack-button "
            "was found. Please update to <x-artisanpack-button."
        )

    def test_every_occurrence_reported_with_its_column(self, lint):
        src = "<div><x-artisanpack-artisanpack-a/><x-artisanpack-artisanpack-b/></div>\n"
        findings = lint(DeprecatedComponentSyntaxCheck, src, path="v.blade.php")
        assert [f.column for f in findings] == [6, 36]

    def test_current_prefix_is_clean(self, lint):
        src = "<x-artisanpack-button />\n"
        assert lint(DeprecatedComponentSyntaxCheck, src, path="v.blade.php") == []
