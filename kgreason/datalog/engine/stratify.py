import logging
from dataclasses import dataclass

import networkx as nx

from ..model.symbols import Symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Stratum:
    """
    Rules evaluated together to a local fixpoint.

      - level: 0 for strata that read only base relations
      - predicates: the derived predicates defined in this stratum
      - rules: the CompiledRules whose head is in `predicates`
      - recursive: whether some rule reads a predicate of its own stratum
    """
    level: int
    predicates: frozenset[Symbol]
    rules: tuple
    recursive: bool


def dependency_graph(program) -> nx.DiGraph:
    """
    Graph over derived predicates with an edge body -> head for every rule
    that reads a derived predicate.
    """
    G = nx.DiGraph()
    derived = program.derived
    for pred in derived:
        G.add_node(pred)
    for r in program.rules:
        for a in r.body:
            if a.predicate in derived:
                G.add_edge(a.predicate, r.head.predicate)
    return G


def stratify(program) -> list[Stratum]:
    """
    Group the program's rules into strata ordered by dependency.

    Strongly connected components of the dependency graph are collapsed. A
    component that depends only on base relations has level 0; otherwise its
    level is one more than the highest level among the components it reads.
    Components sharing a level form one stratum.
    """
    G = dependency_graph(program)
    if G.number_of_nodes() == 0:
        return []

    C = nx.condensation(G)
    levels: dict[int, int] = {}
    for comp in nx.topological_sort(C):
        preds = list(C.predecessors(comp))
        levels[comp] = 1 + max(levels[p] for p in preds) if preds else 0

    by_level: dict[int, set[Symbol]] = {}
    for comp, level in levels.items():
        by_level.setdefault(level, set()).update(C.nodes[comp]["members"])

    strata = []
    for level in sorted(by_level):
        preds = frozenset(by_level[level])
        rules = tuple(r for r in program.rules if r.head.predicate in preds)
        recursive = any(a.predicate in preds for r in rules for a in r.body)
        strata.append(Stratum(level, preds, rules, recursive))
        names = sorted(program.names.get(p, str(p)) for p in preds)
        logger.debug(f"[STRATIFY] level {level}: {names} ({len(rules)} rule(s), recursive={recursive})")
    return strata
