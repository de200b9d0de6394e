"""Tests for materialization and delete-rederive maintenance.

Tests cover:
- Materialized reachability and the incremental update scenario
- Over-deletion followed by rederivation
- Equivalence with from-scratch evaluation under any batching
- Batch validation and atomicity
- safe(), explain(), dematerialize() and drop_relation()
"""

import random

import pytest

from conftest import reach_rules, transitive_closure
from kgreason.datalog.engine.reasoner import Reasoner
from kgreason.datalog.model import ArityMismatch, Rule, UnknownRelation, atom


def reachable_rules() -> list[Rule]:
    """Non-linear transitive closure."""
    return [
        Rule(atom("reachable", "?x", "?y"), (atom("edge", "?x", "?y"),)),
        Rule(atom("reachable", "?x", "?z"), (atom("reachable", "?x", "?y"), atom("reachable", "?y", "?z"))),
    ]


def layered_rules() -> list[Rule]:
    """Recursive closure plus two dependent strata and a constant filter."""
    return reach_rules() + [
        Rule(atom("cyclic", "?x"), (atom("reach", "?x", "?x"),)),
        Rule(atom("reaches_zero", "?x"), (atom("reach", "?x", 0),)),
        Rule(atom("both", "?x"), (atom("cyclic", "?x"), atom("reaches_zero", "?x"))),
    ]


def materialized(edges, rules) -> Reasoner:
    r = Reasoner(parallel=False, check_invariants=True)
    for row in edges:
        r.insert("edge", row)
    r.materialize(rules)
    return r


class TestMaterialize:
    def test_reachable_scenario(self):
        with materialized([(1, 2), (2, 3), (2, 4)], reachable_rules()) as r:
            assert set(r.view("reachable")) == {(1, 2), (2, 3), (2, 4), (1, 3), (1, 4)}

    def test_incremental_scenario(self):
        with materialized([(1, 2), (2, 3), (2, 4)], reachable_rules()) as r:
            r.update([
                (False, "edge", (2, 3)),
                (False, "edge", (2, 4)),
                (True, "edge", (1, 3)),
                (True, "edge", (3, 4)),
            ])
            assert set(r.view("reachable")) == {(1, 2), (1, 3), (3, 4), (1, 4)}
            assert set(r.view("edge")) == {(1, 2), (1, 3), (3, 4)}
            assert r.safe()

    def test_delete_rederive_graph(self):
        edges = [
            ("a", "b"), ("a", "c"), ("b", "d"), ("b", "e"), ("d", "g"),
            ("c", "f"), ("e", "d"), ("e", "f"), ("f", "g"), ("f", "h"),
        ]
        with materialized(edges, reach_rules()) as r:
            before = set(r.view("reach"))
            assert before == transitive_closure(edges)
            r.update([(False, "edge", ("e", "f"))])
            after = set(r.view("reach"))
            assert before - after == {("e", "f"), ("e", "h"), ("b", "f"), ("b", "h")}
            assert ("a", "f") in after
            assert ("a", "h") in after

    def test_alternative_derivation_survives(self):
        edges = [("a", "b"), ("b", "d"), ("a", "c"), ("c", "d")]
        with materialized(edges, reach_rules()) as r:
            r.update([(False, "edge", ("a", "b"))])
            assert ("a", "d") in set(r.view("reach"))
            assert ("a", "b") not in set(r.view("reach"))

    def test_rederive_without_recorded_alternative(self):
        # one support per fact: the second route to reach(a, d) is never recorded
        r = Reasoner(parallel=False, max_supports_per_fact=1, check_invariants=True)
        with r:
            r.insert("edge", ("a", "b"))
            r.insert("edge", ("b", "d"))
            r.materialize(reach_rules())
            r.update([(True, "edge", ("a", "c")), (True, "edge", ("c", "d"))])
            [(_, premises)] = r.explain("reach", ("a", "d"))
            assert ("edge", ("b", "d")) in premises

            r.update([(False, "edge", ("a", "b"))])
            assert set(r.view("reach")) == {("b", "d"), ("a", "c"), ("c", "d"), ("a", "d")}
            [(_, premises)] = r.explain("reach", ("a", "d"))
            assert premises == (("reach", ("a", "c")), ("edge", ("c", "d")))

    def test_materialize_merges_programs(self):
        with materialized([(1, 2), (2, 3)], reach_rules()) as r:
            r.materialize([Rule(atom("start", "?x"), (atom("reach", "?x", "?y"),))])
            assert set(r.view("start")) == {(1,), (2,)}
            r.update([(True, "edge", (3, 4))])
            assert set(r.view("start")) == {(1,), (2,), (3,)}

    def test_materialize_rejects_malformed_without_change(self):
        with materialized([(1, 2)], reach_rules()) as r:
            before = r.db.snapshot()
            with pytest.raises(ValueError):
                r.materialize([Rule(atom("bad", "?x", "?y"), (atom("edge", "?x", "?z"),))])
            with pytest.raises(ArityMismatch):
                r.materialize([Rule(atom("bad", "?x"), (atom("edge", "?x", "?y", "?z"),))])
            assert r.db.snapshot() == before
            r.update([(True, "edge", (2, 3))])
            assert (1, 3) in set(r.view("reach"))


class TestEquivalence:
    @pytest.mark.parametrize("rules", [reach_rules, reachable_rules, layered_rules])
    @pytest.mark.parametrize("batch_size", [1, 3, 8, 100])
    def test_updates_match_full_evaluation(self, rules, batch_size):
        rng = random.Random(1000 + batch_size)
        nodes = range(6)
        edges = {(rng.choice(nodes), rng.choice(nodes)) for _ in range(8)}
        ops = []
        current = set(edges)
        for _ in range(40):
            if current and rng.random() < 0.5:
                row = rng.choice(sorted(current))
                ops.append((False, "edge", row))
                current.discard(row)
            else:
                row = (rng.choice(nodes), rng.choice(nodes))
                ops.append((True, "edge", row))
                current.add(row)

        with materialized(edges, rules()) as r:
            for i in range(0, len(ops), batch_size):
                r.update(ops[i:i + batch_size])
            with materialized(current, rules()) as fresh:
                assert r.db.snapshot() == fresh.db.snapshot()

    def test_batch_applies_last_change_per_fact(self):
        with materialized([(1, 2)], reach_rules()) as r:
            r.update([
                (True, "edge", (2, 3)),
                (False, "edge", (2, 3)),
                (False, "edge", (1, 2)),
                (True, "edge", (1, 2)),
            ])
            assert set(r.view("edge")) == {(1, 2)}
            assert set(r.view("reach")) == {(1, 2)}

    def test_parallel_updates_match_serial(self, parallel_reasoner):
        rng = random.Random(3)
        edges = {(rng.randrange(10), rng.randrange(10)) for _ in range(25)}
        for row in edges:
            parallel_reasoner.insert("edge", row)
        parallel_reasoner.materialize(layered_rules())
        removed = sorted(edges)[:6]
        parallel_reasoner.update([(False, "edge", row) for row in removed] + [(True, "edge", (9, 0))])
        final = (edges - set(removed)) | {(9, 0)}
        with materialized(final, layered_rules()) as serial:
            assert parallel_reasoner.db.snapshot() == serial.db.snapshot()


class TestBatchValidation:
    def test_unknown_relation_rejects_whole_batch(self):
        with materialized([(1, 2)], reach_rules()) as r:
            before = r.db.snapshot()
            with pytest.raises(UnknownRelation) as info:
                r.update([(True, "edge", (2, 3)), (True, "nonexistent", (1,))])
            assert info.value.predicate == "nonexistent"
            assert isinstance(info.value, KeyError)
            assert r.db.snapshot() == before

    def test_derived_relation_is_not_extensional(self):
        with materialized([(1, 2)], reach_rules()) as r:
            with pytest.raises(UnknownRelation):
                r.update([(True, "reach", (5, 6))])

    def test_arity_mismatch_rejects_whole_batch(self):
        with materialized([(1, 2)], reach_rules()) as r:
            before = r.db.snapshot()
            with pytest.raises(ArityMismatch):
                r.update([(False, "edge", (1, 2)), (True, "edge", (1, 2, 3))])
            assert r.db.snapshot() == before

    def test_type_error_rejects_whole_batch(self):
        with materialized([(1, 2)], reach_rules()) as r:
            before = r.db.snapshot()
            with pytest.raises(TypeError):
                r.update([(True, "edge", (2, 3)), (True, "edge", (1, None))])
            assert r.db.snapshot() == before

    def test_update_requires_materialization(self, reasoner):
        reasoner.insert("edge", (1, 2))
        with pytest.raises(UnknownRelation) as info:
            reasoner.update([(True, "edge", (2, 3))])
        assert info.value.predicate == "edge"
        assert set(reasoner.view("edge")) == {(1, 2)}
        reasoner.update([])


class TestMaintainedReasoner:
    def test_direct_writes_to_base_relations_are_maintained(self):
        with materialized([(1, 2)], reach_rules()) as r:
            assert r.insert("edge", (2, 3))
            assert not r.insert("edge", (2, 3))
            assert (1, 3) in set(r.view("reach"))
            assert r.delete("edge", (1, 2))
            assert not r.delete("edge", (1, 2))
            assert set(r.view("reach")) == {(2, 3)}
            assert r.safe()

    def test_direct_write_to_derived_relation_is_unsafe(self):
        with materialized([(1, 2)], reach_rules()) as r:
            assert r.insert("reach", (7, 8))
            assert not r.safe()
            r.dematerialize()
            assert r.safe()
            assert (7, 8) in set(r.view("reach"))

    def test_dematerialize_keeps_facts(self):
        with materialized([(1, 2), (2, 3)], reach_rules()) as r:
            r.dematerialize()
            r.insert("edge", (3, 4))
            assert set(r.view("reach")) == {(1, 2), (2, 3), (1, 3)}

    def test_explain(self):
        with materialized([(1, 2), (2, 3)], reach_rules()) as r:
            [(rule, premises)] = r.explain("reach", (1, 3))
            assert rule == reach_rules()[1]
            assert premises == (("reach", (1, 2)), ("edge", (2, 3)))
            assert r.explain("reach", (3, 1)) == []

    def test_explain_is_updated_by_retraction(self):
        edges = [("a", "b"), ("b", "d"), ("a", "c"), ("c", "d")]
        with materialized(edges, reach_rules()) as r:
            assert len(r.explain("reach", ("a", "d"))) == 2
            r.update([(False, "edge", ("b", "d"))])
            [(_, premises)] = r.explain("reach", ("a", "d"))
            assert ("edge", ("c", "d")) in premises

    def test_drop_relation(self):
        with materialized([(1, 2)], reach_rules()) as r:
            r.insert("color", ("red",))
            assert r.drop_relation("color")
            assert not r.drop_relation("color")
            with pytest.raises(ValueError):
                r.drop_relation("edge")
            with pytest.raises(ValueError):
                r.drop_relation("reach")

    def test_fact_count(self):
        with materialized([(1, 2), (2, 3)], reach_rules()) as r:
            assert r.fact_count() == 5
