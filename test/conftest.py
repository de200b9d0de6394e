import pytest

from kgreason.datalog.engine.config import config
from kgreason.datalog.engine.reasoner import Reasoner
from kgreason.datalog.model import Rule, atom


def reach_rules() -> list[Rule]:
    """reach is the transitive closure of edge."""
    return [
        Rule(atom("reach", "?x", "?y"), (atom("edge", "?x", "?y"),)),
        Rule(atom("reach", "?x", "?z"), (atom("reach", "?x", "?y"), atom("edge", "?y", "?z"))),
    ]


def transitive_closure(edges) -> set[tuple]:
    closure = set(edges)
    while True:
        extra = {(a, d) for (a, b) in closure for (c, d) in closure if b == c} - closure
        if not extra:
            return closure
        closure |= extra


@pytest.fixture(autouse=True)
def default_config():
    config.reset()
    yield
    config.reset()


@pytest.fixture
def reasoner():
    r = Reasoner(parallel=False, check_invariants=True)
    yield r
    r.close()


@pytest.fixture
def parallel_reasoner():
    r = Reasoner(parallel=True, workers=4, row_batch_size=2, check_invariants=True)
    yield r
    r.close()
