from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RelationSchema:
    """
    Relation schema: predicate name, arity, and column names.
    """
    predicate: str
    arity: int
    colnames: tuple[str, ...]

    def __post_init__(self):
        if len(self.colnames) != self.arity:
            raise ValueError("RelationSchema: colnames length must match arity.")

    @classmethod
    def default(cls, predicate: str, arity: int) -> 'RelationSchema':
        """Schema with positional column names arg0, arg1, ..., arg{arity-1}."""
        return cls(predicate=predicate, arity=arity, colnames=tuple(f"arg{i}" for i in range(arity)))
