"""Tests for the textual rule syntax."""

import pytest

from kgreason.datalog.model import Constant, ParseError, Rule, Value, Variable, atom
from kgreason.datalog.parser.datalog_parser import DatalogParser, parse_atom, parse_program, parse_rule


@pytest.fixture(scope="module")
def parser():
    return DatalogParser()


class TestParser:
    def test_left_arrow_rule(self, parser):
        rule = parser.parse_rule("reach(?x, ?z) <- [reach(?x, ?y), edge(?y, ?z)]")
        assert rule == Rule(
            atom("reach", "?x", "?z"),
            (atom("reach", "?x", "?y"), atom("edge", "?y", "?z")),
        )

    def test_right_arrow_rule(self, parser):
        left = parser.parse_rule("Z(?a, 4, 5) <- [X(?a, 5, true)]")
        right = parser.parse_rule("[X(?a, 5, true)] -> Z(?a, 4, 5)")
        assert left == right

    def test_typed_constants(self, parser):
        a = parser.parse_atom('p(?v, 42, 1.5, true, false, "quoted text", rdf:type)')
        assert a.terms == (
            Variable("v"),
            Constant(Value.of(42)),
            Constant(Value.of(1.5)),
            Constant(Value.of(True)),
            Constant(Value.of(False)),
            Constant(Value.of("quoted text")),
            Constant(Value.of("rdf:type")),
        )

    def test_keyword_prefix_is_a_name(self, parser):
        a = parser.parse_atom("p(trueish)")
        assert a.terms == (Constant(Value.of("trueish")),)

    def test_program_with_facts_and_comments(self):
        program = parse_program("""
            // base facts
            edge(1, 2).
            edge(2, 3).
            /* closure */
            reach(?x, ?y) <- [edge(?x, ?y)]
            reach(?x, ?z) <- [reach(?x, ?y), edge(?y, ?z)].
            % trailing comment
        """)
        assert program.facts == [atom("edge", 1, 2), atom("edge", 2, 3)]
        assert len(program.rules) == 2
        assert program.rules[1].body[0] == atom("reach", "?x", "?y")

    def test_fact_rule_with_empty_body(self):
        rule = parse_rule("p(1) <- []")
        assert rule.body == ()
        assert rule.head == atom("p", 1)

    def test_non_ground_fact_is_rejected(self):
        with pytest.raises(ParseError):
            parse_program("edge(?x, 2).")

    def test_syntax_error(self):
        with pytest.raises(ParseError) as info:
            parse_program("reach(?x, ?y) <- [edge(?x ?y)]")
        assert isinstance(info.value, ValueError)

    def test_out_of_range_integer(self):
        with pytest.raises(ParseError):
            parse_atom("p(99999999999)")

    def test_parse_rule_requires_one_rule(self):
        with pytest.raises(ParseError):
            parse_rule("edge(1, 2).")

    def test_round_trip_through_repr(self):
        text = 'reach(?x, "b") <- [edge(?x, "b"), flag(true, 3)]'
        rule = parse_rule(text)
        assert repr(rule) == text
        assert parse_rule(repr(rule)) == rule

    def test_non_ascii_text_constant(self):
        program = parse_program('name(1, "café"). name(2, \'日本\').')
        assert [f.constant_values()[1].py for f in program.facts] == ["café", "日本"]

    def test_string_escapes(self):
        a = parse_atom(r'p("say \"hi\"\n", "back\\slash", "naïve\tx")')
        assert [t.value.py for t in a.terms] == ['say "hi"\n', "back\\slash", "naïve\tx"]
