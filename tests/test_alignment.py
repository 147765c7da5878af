# tests/test_alignment.py
"""
Tests for adjacency grouping and the alignment check.

Every marker compares itself with its previous-line neighbour only, so a
block whose columns read 6, 6, 8 yields exactly one finding.
"""

from tokensniff.alignment import (
    AlignmentCheck,
    adjacency_run,
    find_adjacent_marker,
    is_block_marker,
    keyed_structure_layout,
    qualifies,
)
from tokensniff.tokens import TokenKind as K
from tokensniff.tokenizer import tokenize


def markers(source, kind=K.EQUAL):
    tokens = tokenize(source).tokens
    return tokens, [i for i, t in enumerate(tokens) if t.kind is kind]


class TestQualification:

    def test_plain_variable_assignment_qualifies(self):
        tokens, found = markers("<?php\n$a = 1;\n")
        assert qualifies(tokens, found[0])

    def test_property_and_subscript_targets_do_not(self):
        tokens, found = markers("<?php\n$this->a = 1;\n$b[0] = 2;\nFoo::$c = 3;\n")
        assert [qualifies(tokens, i) for i in found] == [False, False, False]

    def test_two_markers_on_a_line(self):
        tokens, found = markers("<?php\n$a = 1; $b = 2;\n")
        assert not any(is_block_marker(tokens, i) for i in found)

    def test_nested_marker_does_not_share_the_level(self):
        tokens, found = markers("<?php\n$a = foo($b = 2);\n")
        assert is_block_marker(tokens, found[0])


class TestAdjacency:

    def test_neighbours_found_both_ways(self):
        tokens, found = markers("<?php\n$a = 1;\n$b = 2;\n")
        assert find_adjacent_marker(tokens, found[1], -1) == found[0]
        assert find_adjacent_marker(tokens, found[0], +1) == found[1]

    def test_blank_line_ends_the_block(self):
        tokens, found = markers("<?php\n$a = 1;\n\n$b = 2;\n")
        assert find_adjacent_marker(tokens, found[1], -1) is None

    def test_run_collects_consecutive_lines(self):
        tokens, found = markers("<?php\n$a   = 1;\n$bb  = 2;\n$ccc   = 3;\n\n$d = 4;\n")
        run = adjacency_run(tokens, found[1])
        assert run.markers == tuple(found[:3])
        assert run.lines == (2, 3, 4)
        assert run.columns == (6, 6, 8)
        assert run.is_block
        assert len(adjacency_run(tokens, found[3])) == 1


class TestAlignmentCheck:

    def test_aligned_block_is_clean(self, lint):
        src = "<?php\n$a   = 1;\n$bb  = 2;\n$ccc = 3;\n"
        assert lint(AlignmentCheck, src) == []

    def test_first_neighbour_rule_gives_one_finding(self, lint, codes):
        src = "<?php\n$a   = 1;\n$bb  = 2;\n$ccc   = 3;\n"
        findings = lint(AlignmentCheck, src)
        assert codes(findings) == ["VariableAssignmentNotAligned"]
        assert findings[0].line == 4
        assert findings[0].args == (6, 8)
        assert findings[0].message == (
            "Equal signs in adjacent variable assignments must be aligned; "
            "expected column 6, found column 8"
        )
        assert findings[0].evidence["block"] == (2, 3, 4)

    def test_each_step_compared_with_predecessor(self, lint):
        src = "<?php\n$a = 1;\n$bb = 2;\n$ccc = 3;\n"
        findings = lint(AlignmentCheck, src)
        assert [f.args for f in findings] == [(4, 5), (5, 6)]

    def test_non_qualifying_neighbour_breaks_the_block(self, lint):
        src = "<?php\n$this->a = 1;\n$bb = 2;\n"
        assert lint(AlignmentCheck, src) == []

    def test_double_arrows(self, lint, codes):
        src = (
            "<?php\n"
            "$x = [\n"
            "    'a'  => 1,\n"
            "    'bb' => 2,\n"
            "    'c' => 3,\n"
            "];\n"
        )
        findings = lint(AlignmentCheck, src)
        assert codes(findings) == ["ArrayItemNotAligned"]
        assert findings[0].args == (10, 9)
        assert findings[0].line == 5

    def test_nested_array_is_jumped_not_compared(self, lint):
        src = (
            "<?php\n"
            "$x = [\n"
            "    'a' => [\n"
            "        'k' => 1,\n"
            "    ],\n"
            "    'bb' => 2,\n"
            "];\n"
        )
        assert lint(AlignmentCheck, src) == []

    def test_markers_in_different_brackets_are_separate(self, lint):
        src = "<?php\nfoo([\n    'a' => 1,\n]); bar([\n    'long' => 2,\n]);\n"
        assert lint(AlignmentCheck, src) == []


class TestKeyedLayout:

    def test_layout_of_keyed_array(self):
        tokens = tokenize("<?php $a = ['a' => 1, 'b' => [1, 2]];").tokens
        opener = next(i for i, t in enumerate(tokens) if t.kind is K.OPEN_SHORT_ARRAY)
        layout = keyed_structure_layout(tokens, opener)
        assert layout.is_keyed
        assert layout.is_multi_item
        assert len(layout.commas) == 1
        assert len(layout.arrows) == 2
        assert tokens[layout.closer].kind is K.CLOSE_SHORT_ARRAY

    def test_layout_of_list(self):
        tokens = tokenize("<?php $a = [1];").tokens
        opener = next(i for i, t in enumerate(tokens) if t.kind is K.OPEN_SHORT_ARRAY)
        layout = keyed_structure_layout(tokens, opener)
        assert not layout.is_keyed
        assert not layout.is_multi_item
