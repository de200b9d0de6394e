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

from dataclasses import dataclass, field

from ..model.symbols import Symbol
from ..model.values import Row
from .database import Database
from .join import Derivation
from .program import CompiledRule, Program
from .provenance import Support, SupportGraph
from .relation import IndexedRelation
from .scheduler import ParallelScheduler, Task
from .stratify import Stratum


@dataclass
class EvalStats:
    """Counters of one evaluator run."""
    strata: int = 0
    rounds: int = 0
    derived: int = 0
    per_predicate: dict[str, int] = field(default_factory=dict)


class BottomUpEvaluator:
    """
    A stratified, semi-naive, bottom-up Datalog evaluator.

    Strata are evaluated in dependency order, each to its own fixpoint.
    Within a stratum every round joins each rule once per body position
    that reads a predicate of the stratum with a non-empty delta, that
    position bound to the delta and all others to the full relations. New
    rows form the next delta.

    Two modes share this loop:
      - evaluate(): round zero joins every rule over the full relations
      - evaluate_incremental(seed): round zero joins each rule once per body
        position whose predicate gained rows earlier in the run, starting
        from `seed`, rows already present in the database

    The evaluator writes into `db`, records derivations in `supports` when
    given, and remembers every row it added in `self.added`.
    """

    def __init__(
        self,
        db: Database,
        program: Program,
        scheduler: ParallelScheduler | None = None,
        supports: SupportGraph | None = None,
        check_invariants: bool = False,
    ) -> None:
        self.db = db
        self.program = program
        self.scheduler = scheduler if scheduler is not None else ParallelScheduler(parallel=False)
        self.supports = supports
        self.check_invariants = check_invariants
        self.stats = EvalStats()
        # rows added to the database by this evaluator, per predicate
        self.added: dict[Symbol, IndexedRelation] = {}

    # -- entry points -------------------------------------------------------

    def evaluate(self) -> EvalStats:
        """Evaluate every stratum from scratch to fixpoint."""
        self.program.ensure_relations(self.db)
        strata = self.program.strata()
        logger.debug(f"[EVAL] full evaluation of {len(self.program.rules)} rule(s) in {len(strata)} strata")
        for stratum in strata:
            self._run_stratum(stratum, changed=None)
        return self._finish()

    def evaluate_incremental(self, seed: dict[Symbol, list[Row]]) -> EvalStats:
        """
        Propagate `seed` (rows already inserted into the database) through
        the program, adding whatever they make derivable.
        """
        self.program.ensure_relations(self.db)
        changed: dict[Symbol, IndexedRelation] = {}
        for sym, rows in seed.items():
            rel = self.db.relation(sym)
            if rel is None or not rows:
                continue
            bucket = rel.empty_like()
            for row in rows:
                bucket.insert(row)
            changed[sym] = bucket
        logger.debug(f"[EVAL] incremental evaluation seeded with "
                     f"{sum(len(r) for r in changed.values())} row(s)")
        if not changed:
            return self._finish()
        for stratum in self.program.strata():
            self._run_stratum(stratum, changed=changed)
        return self._finish()

    def _finish(self) -> EvalStats:
        self.stats.per_predicate = {
            rel.predicate: len(rel) for rel in self.added.values() if len(rel)
        }
        self.stats.derived = sum(self.stats.per_predicate.values())
        logger.debug(f"[EVAL] done: {self.stats.rounds} round(s), {self.stats.derived} new row(s)")
        return self.stats

    # -- semi-naive loop ----------------------------------------------------

    def _run_stratum(self, stratum: Stratum, changed: dict[Symbol, IndexedRelation] | None) -> None:
        self.stats.strata += 1
        if changed is None:
            tasks = [self._task(rule) for rule in stratum.rules]
        else:
            tasks = [
                self._task(rule, pos, changed[atom.predicate])
                for rule in stratum.rules
                for pos, atom in enumerate(rule.body)
                if atom.predicate in changed
            ]
        if not tasks:
            return

        round_no = 0
        delta = self._round(tasks)
        while True:
            round_no += 1
            new_rows = sum(len(rel) for rel in delta.values())
            logger.debug(f"[EVAL] level {stratum.level} round {round_no}: {new_rows} new row(s)")
            if changed is not None:
                for sym, rel in delta.items():
                    bucket = changed.get(sym)
                    if bucket is None:
                        bucket = changed[sym] = rel.empty_like()
                    for row in rel.scan():
                        bucket.insert(row)
            if not stratum.recursive or not new_rows:
                break
            tasks = [
                self._task(rule, pos, delta[atom.predicate])
                for rule in stratum.rules
                for pos, atom in enumerate(rule.body)
                if atom.predicate in stratum.predicates and len(delta.get(atom.predicate, ()))
            ]
            if not tasks:
                break
            delta = self._round(tasks)

    def _task(self, rule: CompiledRule, pos: int | None = None, delta: IndexedRelation | None = None) -> Task:
        sources = tuple(
            delta if i == pos else self.db.relation(atom.predicate)
            for i, atom in enumerate(rule.body)
        )
        return Task(rule, sources)

    def _round(self, tasks: list[Task]) -> dict[Symbol, IndexedRelation]:
        """Run one round and merge its results. Returns the rows that were new."""
        self.stats.rounds += 1
        results = self.scheduler.run(tasks, with_premises=self.supports is not None)
        delta: dict[Symbol, IndexedRelation] = {}
        for task, derivations in zip(tasks, results):
            self._merge(task.rule, derivations, delta)
        if self.check_invariants:
            self.db.check_invariants()
            for rel in delta.values():
                rel.check_invariants()
        return delta

    def _accept(self, head: Symbol, target: IndexedRelation, row: Row) -> bool:
        """Apply a derived row to the database. True if it is new."""
        return target.insert(row)

    def _merge(self, rule: CompiledRule, derivations: list[Derivation], delta: dict[Symbol, IndexedRelation]) -> None:
        head = rule.head.predicate
        target = self.db.get_relation(head)
        for d in derivations:
            if self._accept(head, target, d.row):
                bucket = delta.get(head)
                if bucket is None:
                    bucket = delta[head] = target.empty_like()
                bucket.insert(d.row)
                added = self.added.get(head)
                if added is None:
                    added = self.added[head] = IndexedRelation(target.predicate, target.arity)
                added.insert(d.row)
            if self.supports is not None:
                premises = tuple(
                    (atom.predicate, row) for atom, row in zip(rule.body, d.premises)
                )
                self.supports.add((head, d.row), Support(rule.index, premises))
