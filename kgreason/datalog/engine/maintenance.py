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

from typing import Iterable, Sequence

from ..model.errors import UnknownRelation
from ..model.rule import Rule
from ..model.symbols import Symbol
from ..model.values import Row, from_row
from .database import Database, PredicateRef
from .evaluator import BottomUpEvaluator, EvalStats
from .join import evaluate_rule, head_bindings
from .program import Program, compile_program
from .provenance import FactKey, Support, SupportGraph
from .relation import IndexedRelation
from .scheduler import ParallelScheduler

# One entry of an update batch: (is_insertion, predicate, row)
Change = tuple[bool, PredicateRef, Iterable]


class OverDeletion(BottomUpEvaluator):
    """
    Semi-naive pass that marks, without changing the database, every derived
    row with at least one derivation that uses a row being removed.

    Runs against the pre-deletion state; `added` ends up holding the marked
    rows per predicate.
    """

    def _accept(self, head: Symbol, target: IndexedRelation, row: Row) -> bool:
        if not target.contains(row):
            return False
        marked = self.added.get(head)
        return marked is None or not marked.contains(row)


class IncrementalMaintainer:
    """
    Keeps a materialized program's derived relations equal to the fixpoint
    over the current base facts.

    `materialize` evaluates the program into the live database and records
    derivations in a SupportGraph. `update` applies a batch of base-fact
    changes with delete-rederive: over-delete what the retracted rows may
    have derived, take it out, put back whatever is still derivable, then
    propagate insertions.
    """

    def __init__(
        self,
        db: Database,
        scheduler: ParallelScheduler | None = None,
        max_supports_per_fact: int = 4,
        check_invariants: bool = False,
    ) -> None:
        self.db = db
        self.scheduler = scheduler if scheduler is not None else ParallelScheduler(parallel=False)
        self.max_supports_per_fact = max_supports_per_fact
        self.check_invariants = check_invariants
        self.program: Program | None = None
        self.supports: SupportGraph | None = None
        self._safe = True

    # -- state --------------------------------------------------------------

    @property
    def materialized(self) -> bool:
        return self.program is not None

    def derived(self) -> frozenset[Symbol]:
        return self.program.derived if self.program is not None else frozenset()

    def extensional(self) -> set[Symbol]:
        """
        Predicates an update batch may touch: the program's base predicates
        and every stored relation the program does not derive.
        """
        if self.program is None:
            return set()
        derived = self.program.derived
        out = set(self.program.base_predicates())
        out.update(sym for sym in self.db.predicates() if sym not in derived)
        return out

    def is_extensional(self, predicate: PredicateRef) -> bool:
        sym = self.db.lookup_sym(predicate)
        return sym is not None and sym in self.extensional()

    def is_derived(self, predicate: PredicateRef) -> bool:
        sym = self.db.lookup_sym(predicate)
        return sym is not None and sym in self.derived()

    def safe(self) -> bool:
        return self._safe

    def mark_unsafe(self, reason: str) -> None:
        if self._safe:
            logger.warning(f"[DRED] materialization is no longer guaranteed: {reason}")
        self._safe = False

    # -- materialize --------------------------------------------------------

    def materialize(self, rules: Iterable[Rule]) -> EvalStats:
        """
        Merge `rules` into the materialized program and evaluate it to
        fixpoint. Raises MalformedRule or ArityMismatch before touching the
        database.
        """
        program = compile_program(rules, self.db, base=self.program)
        previously_derived = self.derived()
        for sym in program.derived - previously_derived:
            rel = self.db.relation(sym)
            if rel is not None and len(rel):
                self.mark_unsafe(f"'{rel.predicate}' held {len(rel)} row(s) before it became derived")

        if self.supports is None:
            self.supports = SupportGraph(self.max_supports_per_fact)
        self.program = program
        evaluator = BottomUpEvaluator(
            self.db, program, self.scheduler,
            supports=self.supports, check_invariants=self.check_invariants,
        )
        stats = evaluator.evaluate()
        logger.info(f"[DRED] materialized {len(program.rules)} rule(s): "
                    f"{stats.derived} new row(s) in {stats.rounds} round(s)")
        return stats

    def dematerialize(self) -> None:
        """Forget the program and its supports. Stored rows stay as they are."""
        self.program = None
        self.supports = None
        self._safe = True

    # -- update -------------------------------------------------------------

    def normalize(self, batch: Sequence[Change]) -> tuple[list[FactKey], list[FactKey]]:
        """
        Validate `batch` and reduce it to net (deletions, insertions).

        Every predicate must be extensional and every row must fit its
        relation. The last change to a fact wins; changes that leave a fact as
        it already is are dropped.
        """
        extensional = self.extensional()
        last: dict[FactKey, bool] = {}
        for is_insertion, predicate, row in batch:
            sym = self.db.lookup_sym(predicate)
            if sym is None or sym not in extensional:
                raise UnknownRelation(self.db.name(predicate))
            rel = self.db.relation(sym)
            if rel is None:
                raise UnknownRelation(self.db.name(predicate))
            key = (sym, rel.check_row(row))
            # keep the position of the latest change
            last.pop(key, None)
            last[key] = bool(is_insertion)

        deletions = []
        insertions = []
        for (sym, row), is_insertion in last.items():
            present = self.db.contains(sym, row)
            if is_insertion and not present:
                insertions.append((sym, row))
            elif not is_insertion and present:
                deletions.append((sym, row))
        return deletions, insertions

    def update(self, batch: Sequence[Change]) -> None:
        """
        Apply `batch`, an ordered sequence of (is_insertion, predicate, row).
        Raises UnknownRelation, ArityMismatch or TypeError with nothing applied.
        Before `materialize` no relation is extensional, so any change raises
        UnknownRelation.
        """
        deletions, insertions = self.normalize(batch)
        logger.debug(f"[DRED] update: {len(deletions)} retraction(s), {len(insertions)} insertion(s)")
        if deletions:
            self._retract(deletions)
        if insertions:
            self._insert(insertions)
        if self.check_invariants:
            self.db.check_invariants()

    def _insert(self, insertions: list[FactKey]) -> None:
        seed: dict[Symbol, list[Row]] = {}
        for sym, row in insertions:
            if self.db.insert(sym, row):
                seed.setdefault(sym, []).append(row)
        self._propagate(seed)

    def _propagate(self, seed: dict[Symbol, list[Row]]) -> EvalStats:
        evaluator = BottomUpEvaluator(
            self.db, self.program, self.scheduler,
            supports=self.supports, check_invariants=self.check_invariants,
        )
        return evaluator.evaluate_incremental(seed)

    def _retract(self, deletions: list[FactKey]) -> None:
        # 1) over-delete against the pre-deletion state
        seed: dict[Symbol, list[Row]] = {}
        for sym, row in deletions:
            seed.setdefault(sym, []).append(row)
        over = OverDeletion(self.db, self.program, self.scheduler)
        over.evaluate_incremental(seed)
        doomed: list[FactKey] = [
            (sym, row) for sym, rel in over.added.items() for row in rel.scan()
        ]
        logger.debug(f"[DRED] over-deleted {len(doomed)} derived row(s)")

        removed = set(deletions) | set(doomed)
        # supports whose premises all survive, taken before removal drops them
        surviving: dict[FactKey, Support] = {}
        for fact in doomed:
            for support in self.supports.supports(fact):
                if not any(p in removed for p in support.premises):
                    surviving[fact] = support
                    break

        # 2) remove base rows and over-deleted rows
        for sym, row in deletions:
            self.db.delete(sym, row)
            self.supports.remove_fact((sym, row))
        for sym, row in doomed:
            self.db.delete(sym, row)
            self.supports.remove_fact((sym, row))

        # 3) rederive: one step against the reduced state
        reinstated: dict[FactKey, Support] = {}
        for fact in doomed:
            support = surviving.get(fact)
            if support is None:
                support = self._rederive(fact)
            if support is not None:
                reinstated[fact] = support
        for fact, support in reinstated.items():
            self.db.insert(*fact)
            self.supports.add(fact, support)
        logger.debug(f"[DRED] rederived {len(reinstated)} of {len(doomed)} over-deleted row(s)")

        # 4) reinstated rows restore whatever else is still derivable
        reseed: dict[Symbol, list[Row]] = {}
        for sym, row in reinstated:
            reseed.setdefault(sym, []).append(row)
        if reseed:
            self._propagate(reseed)

    def _rederive(self, fact: FactKey) -> Support | None:
        """A derivation of `fact` from the current database, or None."""
        sym, row = fact
        for rule in self.program.rules_for(sym):
            initial = head_bindings(rule, row)
            if initial is None:
                continue
            sources = tuple(self.db.relation(a.predicate) for a in rule.body)
            found = evaluate_rule(rule, sources, initial=initial, with_premises=True)
            if found:
                d = found[0]
                premises = tuple((a.predicate, r) for a, r in zip(rule.body, d.premises))
                return Support(rule.index, premises)
        return None

    # -- provenance ---------------------------------------------------------

    def explain(self, predicate: PredicateRef, row: Row) -> list[tuple[Rule, tuple]]:
        """
        Recorded derivations of a derived row, each as the rule that fired and
        its body facts as `(predicate name, native row)` pairs.
        """
        if self.program is None or self.supports is None:
            return []
        sym = self.db.lookup_sym(predicate)
        if sym is None:
            return []
        out = []
        for support in self.supports.supports((sym, row)):
            rule = self.program.rules[support.rule_index].rule
            premises = tuple((self.db.name(p), from_row(r)) for p, r in support.premises)
            out.append((rule, premises))
        return out
