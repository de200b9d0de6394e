from dataclasses import dataclass
from typing import Any

from .values import Value


@dataclass(frozen=True, slots=True)
class Term:
    """
    Base class for Datalog terms (either a Constant or a Variable).
    """

    def is_variable(self) -> bool:
        return isinstance(self, Variable)

    def is_constant(self) -> bool:
        return isinstance(self, Constant)


@dataclass(frozen=True, slots=True)
class Constant(Term):
    """
    A Datalog constant, e.g. "john", 42, true.
    The `value` is always a typed Value; plain python scalars are classified
    on construction.
    """
    value: Value

    def __post_init__(self):
        if not isinstance(self.value, Value):
            object.__setattr__(self, "value", Value.of(self.value))

    def __repr__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True, slots=True)
class Variable(Term):
    """
    A Datalog variable, e.g. ?x, ?y. The `name` is the variable's identifier.
    """
    name: str

    def __repr__(self) -> str:
        return f"?{self.name}"


def as_term(raw: Any) -> Term:
    """Return `raw` if it already is a Term, else wrap it as a Constant."""
    if isinstance(raw, Term):
        return raw
    return Constant(Value.of(raw))
