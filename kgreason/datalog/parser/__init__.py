"""
Parser for the textual rule syntax.
"""
from .datalog_parser import DatalogParser, ParsedProgram, parse_program, parse_rule, parse_atom

__all__ = ['DatalogParser', 'ParsedProgram', 'parse_program', 'parse_rule', 'parse_atom']
