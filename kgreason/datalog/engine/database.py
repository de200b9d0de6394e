import logging
from typing import Iterable

import pandas as pd

from ..model.atom import Atom
from ..model.errors import ArityMismatch
from ..model.schema import RelationSchema
from ..model.symbols import Symbol, SymbolTable
from ..model.terms import Constant, Variable
from ..model.values import Row, from_row
from .relation import IndexedRelation

logger = logging.getLogger(__name__)

# A predicate may be named by its text or by its interned Symbol
PredicateRef = str | Symbol


class Database:
    """
    A collection of named IndexedRelations keyed by interned predicate symbol.

    Relations are created lazily, on the first insertion of a row or the first
    time a rule refers to them. Once created, a relation's arity is fixed;
    rows or atoms of a different arity raise ArityMismatch.
    """

    def __init__(self, symbols: SymbolTable | None = None) -> None:
        self.symbols = symbols if symbols is not None else SymbolTable()
        self._relations: dict[Symbol, IndexedRelation] = {}

    # -- naming -------------------------------------------------------------

    def sym(self, predicate: PredicateRef) -> Symbol:
        if isinstance(predicate, str):
            return self.symbols.intern(predicate)
        return Symbol(predicate)

    def name(self, predicate: PredicateRef) -> str:
        if isinstance(predicate, str):
            return predicate
        return self.symbols.resolve(predicate)

    # -- relations ----------------------------------------------------------

    def create_relation(self, predicate: PredicateRef, arity: int) -> IndexedRelation:
        """
        Ensure a relation for `predicate` of the specified `arity` exists and
        return it. If it already exists, verify the arity matches.
        """
        sym = self.sym(predicate)
        rel = self._relations.get(sym)
        if rel is not None:
            if rel.arity != arity:
                raise ArityMismatch(rel.predicate, rel.arity, arity)
            return rel
        rel = IndexedRelation(self.name(sym), arity)
        self._relations[sym] = rel
        logger.debug(f"[DB] created relation {rel.predicate}/{arity}")
        return rel

    def relation(self, predicate: PredicateRef) -> IndexedRelation | None:
        """The relation for `predicate`, or None if it was never created."""
        sym = self.lookup_sym(predicate)
        if sym is None:
            return None
        return self._relations.get(sym)

    def get_relation(self, predicate: PredicateRef) -> IndexedRelation:
        rel = self.relation(predicate)
        if rel is None:
            raise KeyError(f"get_relation: no relation named '{self.name(predicate)}'.")
        return rel

    def has_relation(self, predicate: PredicateRef) -> bool:
        return self.relation(predicate) is not None

    def relation_arity(self, predicate: PredicateRef) -> int:
        return self.get_relation(predicate).arity

    def predicates(self) -> list[Symbol]:
        return list(self._relations.keys())

    def items(self) -> list[tuple[Symbol, IndexedRelation]]:
        return list(self._relations.items())

    def drop_relation(self, predicate: PredicateRef) -> bool:
        sym = self.lookup_sym(predicate)
        if sym is None:
            return False
        return self._relations.pop(sym, None) is not None

    def lookup_sym(self, predicate: PredicateRef) -> Symbol | None:
        if isinstance(predicate, str):
            return self.symbols.get(predicate)
        return Symbol(predicate)

    # -- rows ---------------------------------------------------------------

    def insert(self, predicate: PredicateRef, row: Iterable) -> bool:
        row = tuple(row)
        rel = self.relation(predicate)
        if rel is None:
            # validate before the relation comes into existence
            IndexedRelation(self.name(predicate), len(row)).check_row(row)
            rel = self.create_relation(predicate, len(row))
        return rel.insert(row)

    def delete(self, predicate: PredicateRef, row: Iterable) -> bool:
        rel = self.relation(predicate)
        if rel is None:
            return False
        return rel.delete(row)

    def contains(self, predicate: PredicateRef, row: Iterable) -> bool:
        rel = self.relation(predicate)
        if rel is None:
            return False
        return rel.contains(row)

    def fact_count(self) -> int:
        return sum(len(rel) for rel in self._relations.values())

    def copy(self) -> 'Database':
        """Independent copy sharing only the symbol table."""
        other = Database(self.symbols)
        other._relations = {sym: rel.copy() for sym, rel in self._relations.items()}
        return other

    def snapshot(self) -> dict[str, frozenset[Row]]:
        """Plain `{predicate name: frozenset(rows)}` of every non-empty relation."""
        return {
            rel.predicate: frozenset(rel.scan())
            for rel in self._relations.values()
            if len(rel)
        }

    def check_invariants(self) -> None:
        for rel in self._relations.values():
            rel.check_invariants()

    # -- tabular export -----------------------------------------------------

    def schema(self, predicate: PredicateRef) -> RelationSchema:
        rel = self.get_relation(predicate)
        return RelationSchema.default(rel.predicate, rel.arity)

    def to_frame(self, predicate: PredicateRef) -> pd.DataFrame:
        """All rows of `predicate` as a DataFrame with columns arg0..argN."""
        rel = self.relation(predicate)
        if rel is None:
            return pd.DataFrame()
        schema = self.schema(rel.predicate)
        records = sorted(rel.scan())
        return pd.DataFrame([from_row(r) for r in records], columns=list(schema.colnames))

    def query(self, goal: Atom) -> pd.DataFrame:
        """
        Retrieve all tuples satisfying `goal`.
        If `goal` is ground (no variables), returns a 0- or 1-row DataFrame.
        If `goal` has variables, returns a DataFrame whose columns are the variable names.
        """
        rel = self.relation(goal.predicate)
        if rel is None:
            # No such relation: no results
            return pd.DataFrame()
        if goal.arity() != rel.arity:
            raise ArityMismatch(rel.predicate, rel.arity, goal.arity())

        schema = self.schema(rel.predicate)

        # 1) Filter on any constant positions in goal
        positions = []
        key = []
        for i, t in enumerate(goal.terms):
            match t:
                case Constant() as c:
                    positions.append(i)
                    key.append(c.value)
                case Variable():
                    continue
                case _:
                    raise ValueError(f"Unexpected term in query: {t}")
        rows = sorted(rel.lookup(tuple(positions), tuple(key)))

        if goal.is_ground():
            return pd.DataFrame([from_row(r) for r in rows], columns=list(schema.colnames))

        # 2) Project by position; a repeated variable must bind the same value
        var_names = [v.name for v in goal.variables()]
        projected = []
        for row in rows:
            binding = {}
            for i, t in enumerate(goal.terms):
                if isinstance(t, Variable):
                    if binding.setdefault(t.name, row[i]) != row[i]:
                        break
            else:
                projected.append(tuple(binding[n].py for n in var_names))
        # set semantics after projection
        projected = list(dict.fromkeys(projected))
        return pd.DataFrame(projected, columns=var_names)

    def __repr__(self) -> str:
        inner = ", ".join(f"{r.predicate}/{r.arity}:{len(r)}" for r in self._relations.values())
        return f"Database({inner})"
