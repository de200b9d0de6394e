from dataclasses import dataclass

from .terms import Term, Variable, Constant, as_term


@dataclass(frozen=True, slots=True)
class Atom:
    """
    A predicate applied to terms.
      - predicate: name of the relation, e.g. "edge"
      - terms: tuple of Term (Variable or Constant)
    Plain python scalars given as terms are wrapped as Constants, so
    `Atom("edge", (Variable("x"), 3))` is accepted.
    """
    predicate: str
    terms: tuple[Term, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(as_term(t) for t in self.terms))

    def arity(self) -> int:
        return len(self.terms)

    def is_ground(self) -> bool:
        return all(not t.is_variable() for t in self.terms)

    def variables(self) -> list[Variable]:
        """Distinct variables in order of first occurrence."""
        seen: list[Variable] = []
        for t in self.terms:
            if isinstance(t, Variable) and t not in seen:
                seen.append(t)
        return seen

    def constant_values(self) -> tuple:
        """Values of a ground atom, in position order."""
        if not self.is_ground():
            raise ValueError(f"Atom {self!r} is not ground.")
        return tuple(t.value for t in self.terms if isinstance(t, Constant))

    def __repr__(self) -> str:
        inner = ", ".join(repr(t) for t in self.terms)
        return f"{self.predicate}({inner})"


def atom(predicate: str, *terms) -> Atom:
    """
    Shorthand constructor. Strings starting with '?' become Variables,
    everything else becomes a Constant:

        atom("reach", "?x", "?y")  ->  reach(?x, ?y)
    """
    converted = []
    for t in terms:
        if isinstance(t, str) and t.startswith("?") and len(t) > 1:
            converted.append(Variable(t[1:]))
        else:
            converted.append(t)
    return Atom(predicate, tuple(converted))
