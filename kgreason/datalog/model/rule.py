from dataclasses import dataclass

from .atom import Atom
from .errors import MalformedRule
from .terms import Variable


@dataclass(frozen=True, slots=True)
class Rule:
    """
    A positive Datalog rule: a head Atom and a conjunctive body of Atoms.

    Example (transitive closure):
        reach(?x, ?z) <- [reach(?x, ?y), edge(?y, ?z)]

    A rule with an empty body and a ground head is a fact rule; it derives its
    head exactly once.
    """
    head: Atom
    body: tuple[Atom, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "body", tuple(self.body))

    def body_variables(self) -> set[Variable]:
        out: set[Variable] = set()
        for lit in self.body:
            out.update(lit.variables())
        return out

    def validate(self) -> None:
        """
        Raise MalformedRule unless every head variable occurs in the body
        (range restriction).
        """
        if not self.head.predicate:
            raise MalformedRule(self, "head has no predicate")
        bound = self.body_variables()
        unbound = [v for v in self.head.variables() if v not in bound]
        if unbound:
            names = ", ".join(repr(v) for v in unbound)
            raise MalformedRule(self, f"head variable(s) {names} do not occur in the body")

    def __repr__(self) -> str:
        body_str = ", ".join(repr(lit) for lit in self.body)
        return f"{self.head!r} <- [{body_str}]"
