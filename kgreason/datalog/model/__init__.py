"""
Datalog data model: values, terms, atoms, rules and the error taxonomy.
"""
from .values import Value, ValueType, Row, to_row, from_row
from .terms import Term, Variable, Constant
from .atom import Atom, atom
from .rule import Rule
from .schema import RelationSchema
from .symbols import Symbol, SymbolTable
from .errors import DatalogError, ArityMismatch, UnknownRelation, MalformedRule, ParseError

__all__ = [
    'Value', 'ValueType', 'Row', 'to_row', 'from_row',
    'Term', 'Variable', 'Constant',
    'Atom', 'atom', 'Rule',
    'RelationSchema', 'Symbol', 'SymbolTable',
    'DatalogError', 'ArityMismatch', 'UnknownRelation', 'MalformedRule', 'ParseError',
]
