import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..model.errors import ArityMismatch
from ..model.rule import Rule
from ..model.symbols import Symbol
from ..model.terms import Constant, Term, Variable
from .database import Database
from .relation import Positions
from .stratify import Stratum, stratify

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompiledAtom:
    """An Atom whose predicate has been interned."""
    predicate: Symbol
    name: str
    terms: tuple[Term, ...]

    def arity(self) -> int:
        return len(self.terms)

    def bound_positions(self, bound: set[str]) -> Positions:
        """Positions holding a constant or a variable in `bound`."""
        return tuple(
            i for i, t in enumerate(self.terms)
            if isinstance(t, Constant) or (isinstance(t, Variable) and t.name in bound)
        )

    def variable_names(self) -> set[str]:
        return {t.name for t in self.terms if isinstance(t, Variable)}


@dataclass(frozen=True, slots=True)
class CompiledRule:
    """A validated Rule with interned predicates and its position in the program."""
    index: int
    rule: Rule
    head: CompiledAtom
    body: tuple[CompiledAtom, ...]

    def __repr__(self) -> str:
        return f"#{self.index} {self.rule!r}"


@dataclass
class Program:
    """
    A compiled set of rules.

      - rules: CompiledRules in registration order, without duplicates
      - arities: the fixed arity of every predicate the rules mention
      - derived: predicates that occur in some rule head
    """
    rules: list[CompiledRule] = field(default_factory=list)
    arities: dict[Symbol, int] = field(default_factory=dict)
    names: dict[Symbol, str] = field(default_factory=dict)
    _strata: list[Stratum] | None = field(default=None, repr=False)

    @property
    def derived(self) -> frozenset[Symbol]:
        return frozenset(r.head.predicate for r in self.rules)

    @property
    def body_predicates(self) -> frozenset[Symbol]:
        return frozenset(a.predicate for r in self.rules for a in r.body)

    @property
    def predicates(self) -> frozenset[Symbol]:
        return frozenset(self.arities)

    def base_predicates(self) -> frozenset[Symbol]:
        """Body predicates that no rule derives."""
        return self.body_predicates - self.derived

    def rules_for(self, head: Symbol) -> list[CompiledRule]:
        return [r for r in self.rules if r.head.predicate == head]

    def strata(self) -> list[Stratum]:
        """Strata of this program, computed once and cached."""
        if self._strata is None:
            self._strata = stratify(self)
        return self._strata

    def index_specs(self) -> dict[Symbol, set[Positions]]:
        """
        Column sets used as lookup keys by the program's bodies, evaluated left
        to right, both from empty bindings and from bindings of the head
        variables (rederivation).
        """
        specs: dict[Symbol, set[Positions]] = {}
        for r in self.rules:
            for start in (set(), r.head.variable_names()):
                bound = set(start)
                for a in r.body:
                    positions = a.bound_positions(bound)
                    if positions and len(positions) < a.arity():
                        specs.setdefault(a.predicate, set()).add(positions)
                    bound |= a.variable_names()
        return specs

    def ensure_relations(self, db: Database) -> None:
        """Create every relation the program mentions and build its join indexes."""
        for sym, arity in self.arities.items():
            db.create_relation(sym, arity)
        for sym, specs in self.index_specs().items():
            rel = db.get_relation(sym)
            for positions in sorted(specs):
                rel.add_index(positions)


def compile_program(rules: Iterable[Rule], db: Database, base: Program | None = None) -> Program:
    """
    Validate `rules` and compile them against `db`, extending `base` when given.

    Raises MalformedRule for a rule that is not range restricted and
    ArityMismatch when a predicate is used with two arities, either within the
    rules or against an existing relation. Nothing is created in `db`.
    """
    rules = list(rules)
    for r in rules:
        r.validate()

    arities: dict[Symbol, int] = dict(base.arities) if base is not None else {}
    names: dict[Symbol, str] = dict(base.names) if base is not None else {}

    def register(name: str, arity: int) -> Symbol:
        sym = db.sym(name)
        known = arities.get(sym)
        if known is None:
            rel = db.relation(sym)
            known = rel.arity if rel is not None else None
        if known is not None and known != arity:
            raise ArityMismatch(name, known, arity)
        arities[sym] = arity
        names[sym] = name
        return sym

    # Check arities of the whole batch before building anything
    compiled_atoms = []
    for r in rules:
        head = CompiledAtom(register(r.head.predicate, r.head.arity()), r.head.predicate, r.head.terms)
        body = tuple(
            CompiledAtom(register(a.predicate, a.arity()), a.predicate, a.terms)
            for a in r.body
        )
        compiled_atoms.append((r, head, body))

    program = Program(arities=arities, names=names)
    seen: set[Rule] = set()
    existing = base.rules if base is not None else []
    for cr in existing:
        seen.add(cr.rule)
        program.rules.append(cr)
    for r, head, body in compiled_atoms:
        if r in seen:
            continue
        seen.add(r)
        program.rules.append(CompiledRule(len(program.rules), r, head, body))
    logger.debug(f"[PROGRAM] compiled {len(program.rules)} rule(s) over {len(arities)} predicate(s)")
    return program
