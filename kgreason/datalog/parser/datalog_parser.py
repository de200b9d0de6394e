import logging
logger = logging.getLogger("datalog.parser")
if not logger.hasHandlers():
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
    logger.addHandler(handler)
logger.setLevel(logging.WARNING)

import re
from dataclasses import dataclass, field

from lark import Lark, Transformer
from lark.exceptions import UnexpectedInput, VisitError

from ..model.atom import Atom
from ..model.errors import ParseError
from ..model.rule import Rule
from ..model.terms import Constant, Variable
from ..model.values import Value

# backslash escapes recognised inside string constants
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}
_ESCAPE_RE = re.compile(r"\\(.)")

datalog_grammar = r"""
// -----------------------------
// Top-Level: a program is zero or more facts or rules
// -----------------------------
program: (fact | rule)*

// -----------------------------
// Facts:  atom "."
// -----------------------------
fact: atom "."

// -----------------------------
// Rules, in either direction, with an optional trailing "."
//   reach(?x, ?z) <- [reach(?x, ?y), edge(?y, ?z)]
//   [reach(?x, ?y), edge(?y, ?z)] -> reach(?x, ?z)
// -----------------------------
rule: atom "<-" "[" body? "]" "."?          -> rule_left
    | "[" body? "]" "->" atom "."?          -> rule_right

body: atom ("," atom)*

// Predicate atom: NAME "(" [ term_list ] ")"
atom: NAME "(" term_list? ")"

term_list: term ("," term)*

?term: VARIABLE
     | TRUE
     | FALSE
     | FLOAT
     | UINT
     | STRING
     | NAME              -> constant

VARIABLE: /\?[A-Za-z_][A-Za-z0-9_]*/
TRUE: "true"
FALSE: "false"
FLOAT.2: /-?[0-9]+\.[0-9]+([eE][-+]?[0-9]+)?/
UINT: /[0-9]+/
// Accept both double-quoted and single-quoted strings
STRING: /("([^"\\]|\\.)*")|('([^'\\]|\\.)*')/
// Predicate names and bare constants; constants may carry a prefix, e.g. rdf:type
NAME: /[A-Za-z_][A-Za-z0-9_:\-\/#]*/

%import common.CPP_COMMENT
COMMENT_ML: /\/\*[\s\S]*?\*\//
%ignore CPP_COMMENT
%ignore COMMENT_ML
%ignore /%[^\n]*/
%import common.WS
%ignore WS
"""


@dataclass
class ParsedProgram:
    """Facts and rules of a program text, in source order."""
    facts: list[Atom] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)


class DatalogTransformer(Transformer):
    """
    Transforms a Lark parse tree into model objects: Atom, Rule and a
    ParsedProgram holding them.
    """

    def program(self, items):
        result = ParsedProgram()
        for item in items:
            if isinstance(item, Rule):
                result.rules.append(item)
            else:
                result.facts.append(item)
        logger.debug("program result: %d fact(s), %d rule(s)", len(result.facts), len(result.rules))
        return result

    def fact(self, items):
        atom = items[0]
        if not atom.is_ground():
            raise ParseError(f"Fact {atom!r} is not ground.")
        return atom

    def rule_left(self, items):
        head = items[0]
        body = items[1] if len(items) > 1 else []
        return Rule(head, tuple(body))

    def rule_right(self, items):
        head = items[-1]
        body = items[0] if len(items) > 1 else []
        return Rule(head, tuple(body))

    def body(self, items):
        return list(items)

    def atom(self, items):
        name = str(items[0])
        terms = items[1] if len(items) == 2 else []
        result = Atom(name, tuple(terms))
        logger.debug("atom result: %s", result)
        return result

    def term_list(self, items):
        return list(items)

    def constant(self, items):
        return Constant(Value.of(str(items[0])))

    def VARIABLE(self, tok):
        return Variable(str(tok)[1:])

    def TRUE(self, tok):
        return Constant(Value.of(True))

    def FALSE(self, tok):
        return Constant(Value.of(False))

    def FLOAT(self, tok):
        return Constant(Value.of(float(tok)))

    def UINT(self, tok):
        return Constant(Value.of(int(tok)))

    def STRING(self, tok):
        s = _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), tok[1:-1])
        return Constant(Value.of(s))


class DatalogParser:
    def __init__(self):
        self.parser = Lark(datalog_grammar, parser="lalr", start=["program", "atom"])
        self.transformer = DatalogTransformer()

    def _run(self, text: str, start: str):
        logger.debug("Starting parse (%s) for text:\n%s", start, text)
        try:
            parse_tree = self.parser.parse(text, start=start)
        except UnexpectedInput as e:
            raise ParseError(f"Syntax error at line {e.line}, column {e.column}:\n{e.get_context(text)}") from e
        try:
            return self.transformer.transform(parse_tree)
        except VisitError as e:
            # errors raised inside transformer callbacks arrive wrapped
            if isinstance(e.orig_exc, (ValueError, TypeError)):
                raise ParseError(str(e.orig_exc)) from e.orig_exc
            raise

    def parse(self, text: str) -> ParsedProgram:
        result = self._run(text, "program")
        logger.debug("Final program: %s", result)
        return result

    def parse_rule(self, text: str) -> Rule:
        """Parse exactly one rule."""
        program = self.parse(text)
        if len(program.rules) != 1 or program.facts:
            raise ParseError(f"Expected exactly one rule, got {len(program.rules)} rule(s) "
                             f"and {len(program.facts)} fact(s).")
        return program.rules[0]

    def parse_atom(self, text: str) -> Atom:
        """Parse a single atom, e.g. a query goal such as reach(1, ?y)."""
        return self._run(text.strip(), "atom")


_default_parser: DatalogParser | None = None


def _parser() -> DatalogParser:
    global _default_parser
    if _default_parser is None:
        _default_parser = DatalogParser()
    return _default_parser


def parse_program(text: str) -> ParsedProgram:
    return _parser().parse(text)


def parse_rule(text: str) -> Rule:
    return _parser().parse_rule(text)


def parse_atom(text: str) -> Atom:
    return _parser().parse_atom(text)
