import pprint

from kgreason import Reasoner

PROGRAM = r"""
// base graph
edge(a, b).   edge(a, c).   edge(b, d).   edge(b, e).   edge(d, g).
edge(c, f).   edge(e, d).   edge(e, f).   edge(f, g).   edge(f, h).

reach(?x, ?y) <- [edge(?x, ?y)]
reach(?x, ?z) <- [reach(?x, ?y), edge(?y, ?z)]
"""


def main():
    with Reasoner() as reasoner:
        rules = reasoner.load_program_from_string(PROGRAM)
        print(f"Loaded {len(rules)} rule(s), {reasoner.fact_count()} fact(s) after materialization")
        print(reasoner.to_frame("reach"))

        print("--- retract edge(e, f) ---")
        reasoner.update([(False, "edge", ("e", "f"))])
        print(reasoner.query("reach(b, ?to)"))

        print("--- insert edge(h, a) ---")
        reasoner.update([(True, "edge", ("h", "a"))])
        print(reasoner.query("reach(?x, ?x)"))

        print("--- derivations of reach(a, g) ---")
        pprint.pprint(reasoner.explain("reach", ("a", "g")))
        print("safe:", reasoner.safe())


if __name__ == "__main__":
    main()
