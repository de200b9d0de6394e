import logging

import os
logger = logging.getLogger(__name__)
log_level_str = os.environ.get("DLG_DEBUG", "INFO").upper()
try:
    logger.setLevel(getattr(logging, log_level_str))
except AttributeError:
    logger.setLevel(logging.INFO)
if not logger.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter('[%(levelname)s] %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)

from pathlib import Path
from typing import Iterable, Sequence

import pandas as pd
from tqdm import tqdm

from ..model.atom import Atom
from ..model.rule import Rule
from ..model.symbols import SymbolTable
from ..model.values import to_row
from ..parser.datalog_parser import DatalogParser
from .config import config
from .database import Database, PredicateRef
from .evaluator import BottomUpEvaluator
from .maintenance import Change, IncrementalMaintainer
from .program import compile_program
from .relation import RelationView
from .scheduler import ParallelScheduler


class Reasoner:
    """
    In-memory Datalog reasoner.

    Holds base and derived facts in a Database and evaluates positive rules
    bottom-up. After `materialize`, derived relations are kept equal to the
    fixpoint over the base facts: `update` batches, and direct `insert` /
    `delete` calls on base relations, are applied with delete-rederive
    instead of recomputing from scratch.

    Example:
        with Reasoner() as r:
            r.insert("edge", (1, 2))
            r.insert("edge", (2, 3))
            r.load_program_from_string('''
                reach(?x, ?y) <- [edge(?x, ?y)]
                reach(?x, ?z) <- [reach(?x, ?y), edge(?y, ?z)]
            ''')
            set(r.view("reach"))   # {(1, 2), (2, 3), (1, 3)}

    Engine settings (`parallel`, `workers`, `row_batch_size`,
    `max_supports_per_fact`, `check_invariants`) default to the `engine`
    section of the configuration; constructor arguments override them.
    """

    def __init__(
        self,
        symbols: SymbolTable | None = None,
        parallel: bool | None = None,
        workers: int | None = None,
        row_batch_size: int | None = None,
        max_supports_per_fact: int | None = None,
        check_invariants: bool | None = None,
    ) -> None:
        engine = config.get_engine_config()
        self.db = Database(symbols)
        self.scheduler = ParallelScheduler(
            workers=workers if workers is not None else engine.get('workers', 1),
            parallel=parallel if parallel is not None else engine.get('parallel', True),
            row_batch_size=row_batch_size if row_batch_size is not None else engine.get('row_batch_size', 2048),
        )
        self.check_invariants = (check_invariants if check_invariants is not None
                                 else bool(engine.get('check_invariants', False)))
        self.maintainer = IncrementalMaintainer(
            self.db,
            self.scheduler,
            max_supports_per_fact=(max_supports_per_fact if max_supports_per_fact is not None
                                   else engine.get('max_supports_per_fact', 4)),
            check_invariants=self.check_invariants,
        )
        self._parser: DatalogParser | None = None

    @property
    def symbols(self) -> SymbolTable:
        return self.db.symbols

    # -- facts --------------------------------------------------------------

    def insert(self, predicate: PredicateRef, row: Iterable) -> bool:
        """
        Add a fact. Returns False if it was already present. Raises
        ArityMismatch when the row does not fit the relation.
        """
        row = tuple(row)
        if self.maintainer.is_extensional(predicate):
            if self.db.contains(predicate, row):
                return False
            self.maintainer.update([(True, predicate, row)])
            return True
        if self.maintainer.is_derived(predicate):
            inserted = self.db.insert(predicate, row)
            if inserted:
                self.maintainer.mark_unsafe(f"direct insert into derived relation '{self.db.name(predicate)}'")
            return inserted
        return self.db.insert(predicate, row)

    def delete(self, predicate: PredicateRef, row: Iterable) -> bool:
        """Remove a fact. Returns False if it was absent."""
        row = tuple(row)
        if self.maintainer.is_extensional(predicate):
            rel = self.db.get_relation(predicate)
            rel.check_row(row)
            if not rel.contains(row):
                return False
            self.maintainer.update([(False, predicate, row)])
            return True
        if self.maintainer.is_derived(predicate):
            deleted = self.db.delete(predicate, row)
            if deleted:
                self.maintainer.mark_unsafe(f"direct delete from derived relation '{self.db.name(predicate)}'")
            return deleted
        return self.db.delete(predicate, row)

    def contains(self, predicate: PredicateRef, row: Iterable) -> bool:
        return self.db.contains(predicate, row)

    def load_facts(self, facts: Iterable[tuple[PredicateRef, Iterable]], progress: bool = False) -> int:
        """
        Insert `(predicate, row)` pairs. Once a program is materialized the
        facts are applied as a single update batch. Returns the number of
        facts that were new.
        """
        items = [(p, tuple(row)) for p, row in facts]
        bar = tqdm(items, desc="Loading facts", unit="fact", disable=not progress)
        if self.maintainer.materialized and all(self.maintainer.is_extensional(p) for p, _ in items):
            batch = [(True, p, row) for p, row in bar]
            fresh = {
                (self.db.lookup_sym(p), to_row(row))
                for _, p, row in batch if not self.db.contains(p, row)
            }
            self.maintainer.update(batch)
            return len(fresh)
        return sum(1 for p, row in bar if self.insert(p, row))

    def fact_count(self) -> int:
        """Number of stored facts, base and derived."""
        return self.db.fact_count()

    def drop_relation(self, predicate: PredicateRef) -> bool:
        """
        Remove a relation and all its rows. A relation the materialized
        program reads or derives cannot be dropped.
        """
        program = self.maintainer.program
        sym = self.db.lookup_sym(predicate)
        if sym is None:
            return False
        if program is not None and sym in program.predicates:
            raise ValueError(
                f"drop_relation: '{self.db.name(predicate)}' is used by the materialized program."
            )
        return self.db.drop_relation(sym)

    # -- evaluation ---------------------------------------------------------

    def evaluate_bottom_up(self, program: Sequence[Rule]) -> Database:
        """
        Evaluate `program` once over a copy of the current facts and return a
        Database holding only the newly derived facts. The reasoner's own
        state is left untouched.
        """
        work = self.db.copy()
        compiled = compile_program(program, work)
        evaluator = BottomUpEvaluator(work, compiled, self.scheduler, check_invariants=self.check_invariants)
        stats = evaluator.evaluate()
        logger.debug(f"[EVAL] one-shot evaluation derived {stats.derived} new row(s)")
        out = Database(self.db.symbols)
        for sym, rel in evaluator.added.items():
            if len(rel):
                target = out.create_relation(sym, rel.arity)
                for row in rel.scan():
                    target.insert(row)
        return out

    def materialize(self, program: Sequence[Rule]) -> None:
        """
        Add `program` to the materialized rules and evaluate to fixpoint.
        Raises MalformedRule or ArityMismatch without changing anything.
        """
        self.maintainer.materialize(program)

    def update(self, batch: Sequence[Change]) -> None:
        """
        Apply an ordered batch of `(is_insertion, predicate, row)` changes to
        base relations and bring derived relations up to date. Raises
        UnknownRelation or ArityMismatch without applying any of it.
        """
        self.maintainer.update(batch)

    def dematerialize(self) -> None:
        """Drop the materialized program. Stored facts stay."""
        self.maintainer.dematerialize()

    def safe(self) -> bool:
        """False once a derived relation was written to directly."""
        return self.maintainer.safe()

    def explain(self, predicate: PredicateRef, row: Iterable) -> list[tuple[Rule, tuple]]:
        """Recorded derivations of a derived fact."""
        rel = self.db.relation(predicate)
        if rel is None:
            return []
        return self.maintainer.explain(predicate, rel.check_row(row))

    # -- reading ------------------------------------------------------------

    def view(self, predicate: PredicateRef, typed: bool = False) -> RelationView:
        """Snapshot of the rows of `predicate`; empty for an unknown predicate."""
        rel = self.db.relation(predicate)
        name = self.db.name(predicate)
        if rel is None:
            return RelationView(name, [], typed)
        return RelationView(name, rel.scan(), typed)

    def query(self, goal: Atom | str) -> pd.DataFrame:
        """Rows matching `goal` as a DataFrame, one column per variable."""
        if isinstance(goal, str):
            goal = self._get_parser().parse_atom(goal)
        return self.db.query(goal)

    def to_frame(self, predicate: PredicateRef) -> pd.DataFrame:
        return self.db.to_frame(predicate)

    # -- program text -------------------------------------------------------

    def _get_parser(self) -> DatalogParser:
        if self._parser is None:
            self._parser = DatalogParser()
        return self._parser

    def load_program_from_string(self, program_str: str, materialize: bool = True) -> list[Rule]:
        """
        Parse `program_str`, insert its facts, and materialize its rules
        unless `materialize` is False. Returns the parsed rules.
        """
        parsed = self._get_parser().parse(program_str)
        if parsed.facts:
            self.load_facts((f.predicate, f.constant_values()) for f in parsed.facts)
        if materialize and parsed.rules:
            self.materialize(parsed.rules)
        return parsed.rules

    def load_program_from_file(self, filepath: str, materialize: bool = True) -> list[Rule]:
        program_str = Path(filepath).read_text()
        return self.load_program_from_string(program_str, materialize=materialize)

    # -- lifecycle ----------------------------------------------------------

    def close(self) -> None:
        self.scheduler.close()

    def __enter__(self) -> 'Reasoner':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "materialized" if self.maintainer.materialized else "unmaterialized"
        return f"Reasoner({state}, facts={self.db.fact_count()})"
