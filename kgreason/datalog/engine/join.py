"""
Left-to-right unification join over a rule body.

Bindings map variable names to Values. For every body atom the positions
that are already determined (constants and bound variables) form the lookup
key into that atom's source relation, so selection and join happen in one
indexed probe. Candidate rows that disagree with the bindings, including a
variable repeated inside one atom, are dropped. Surviving bindings are
projected onto the rule head.
"""
import logging
from typing import NamedTuple, Sequence

from ..model.terms import Constant, Variable
from ..model.values import Row
from .program import CompiledAtom, CompiledRule
from .relation import IndexedRelation

logger = logging.getLogger(__name__)

Bindings = dict


class Derivation(NamedTuple):
    """A derived head row and, when requested, the body rows that produced it."""
    row: Row
    premises: tuple[Row, ...]


def probe_key(atom: CompiledAtom, binding: Bindings) -> tuple[tuple[int, ...], tuple]:
    """Positions of `atom` fixed by constants or `binding`, and their values."""
    positions = []
    key = []
    for i, t in enumerate(atom.terms):
        match t:
            case Constant(value=v):
                positions.append(i)
                key.append(v)
            case Variable(name=n) if n in binding:
                positions.append(i)
                key.append(binding[n])
    return tuple(positions), tuple(key)


def unify(atom: CompiledAtom, row: Row, binding: Bindings) -> Bindings | None:
    """Extend `binding` so that `atom` matches `row`, or None on conflict."""
    out = dict(binding)
    for t, value in zip(atom.terms, row):
        match t:
            case Constant(value=v):
                if v != value:
                    return None
            case Variable(name=n):
                bound = out.get(n)
                if bound is None:
                    out[n] = value
                elif bound != value:
                    return None
    return out


def project(atom: CompiledAtom, binding: Bindings) -> Row:
    """Instantiate `atom` under `binding`. Every variable must be bound."""
    out = []
    for t in atom.terms:
        match t:
            case Constant(value=v):
                out.append(v)
            case Variable(name=n):
                out.append(binding[n])
    return tuple(out)


def evaluate_rule(
    rule: CompiledRule,
    sources: Sequence[IndexedRelation | None],
    *,
    driver_rows: Sequence[Row] | None = None,
    initial: Bindings | None = None,
    with_premises: bool = False,
) -> list[Derivation]:
    """
    Join the body of `rule` and return one Derivation per satisfying binding.

    `sources[i]` is the relation body atom i reads (a full relation or a
    delta); None reads as empty. When `driver_rows` is given the first body
    atom iterates those rows instead of probing its source. `initial`
    pre-binds variables, e.g. the head variables of a row being rederived.
    """
    partials: list[tuple[Bindings, tuple[Row, ...]]] = [(dict(initial or {}), ())]
    for pos, atom in enumerate(rule.body):
        extended = []
        for binding, premises in partials:
            if pos == 0 and driver_rows is not None:
                candidates = driver_rows
            else:
                source = sources[pos]
                if source is None:
                    candidates = ()
                else:
                    positions, key = probe_key(atom, binding)
                    candidates = source.lookup(positions, key)
            for row in candidates:
                b = unify(atom, row, binding)
                if b is not None:
                    extended.append((b, premises + (row,) if with_premises else ()))
        partials = extended
        if not partials:
            return []

    return [Derivation(project(rule.head, b), premises) for b, premises in partials]


def head_bindings(rule: CompiledRule, row: Row) -> Bindings | None:
    """Bindings that make the head of `rule` equal `row`, or None if it cannot."""
    return unify(rule.head, row, {})
