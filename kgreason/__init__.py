"""
kgreason: in-memory Datalog reasoning with incremental maintenance.
"""
from .datalog.engine.reasoner import Reasoner
from .datalog.model import Atom, Rule, Variable, Constant, Value, atom

__all__ = ['Reasoner', 'Atom', 'Rule', 'Variable', 'Constant', 'Value', 'atom']
