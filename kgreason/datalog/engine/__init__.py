"""
Evaluation engine: indexed relations, semi-naive evaluation, incremental
maintenance and the Reasoner facade.
"""
from .relation import IndexedRelation, RelationView
from .database import Database
from .program import Program, CompiledRule, compile_program
from .evaluator import BottomUpEvaluator, EvalStats
from .maintenance import IncrementalMaintainer
from .scheduler import ParallelScheduler
from .reasoner import Reasoner

__all__ = [
    'IndexedRelation', 'RelationView', 'Database',
    'Program', 'CompiledRule', 'compile_program',
    'BottomUpEvaluator', 'EvalStats', 'IncrementalMaintainer',
    'ParallelScheduler', 'Reasoner',
]
