"""
Caller-facing error kinds of the reasoning engine.

Every operation that raises one of these leaves the engine state exactly as
it was before the call.
"""


class DatalogError(Exception):
    """Base class for all engine errors."""


class ArityMismatch(DatalogError, ValueError):
    """A row or atom does not match the fixed arity of its relation."""

    def __init__(self, predicate: str, expected: int, actual: int):
        self.predicate = predicate
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"'{predicate}' has arity {expected}, got a row of arity {actual}."
        )


class UnknownRelation(DatalogError, KeyError):
    """An update batch references a predicate outside the program's extensional schema."""

    def __init__(self, predicate: str, message: str = ""):
        self.predicate = predicate
        super().__init__(message or f"'{predicate}' is not an extensional relation of the materialized program.")

    def __str__(self) -> str:
        # KeyError quotes its argument by default
        return self.args[0]


class MalformedRule(DatalogError, ValueError):
    """A rule violates range restriction or is otherwise not evaluable."""

    def __init__(self, rule, reason: str):
        self.rule = rule
        self.reason = reason
        super().__init__(f"Malformed rule {rule!r}: {reason}")


class ParseError(DatalogError, ValueError):
    """Program text could not be parsed."""
