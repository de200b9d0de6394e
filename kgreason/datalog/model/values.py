"""
Typed scalar values stored in relations.

A Value is a closed tagged union over four scalar types. Equality is
tag-aware, so ``Value.of(True)`` and ``Value.of(1)`` are different values
even though Python considers ``True == 1``.
"""
import math
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from typing import Any

# The integer type is unsigned 32-bit.
UINT_MIN = 0
UINT_MAX = 2 ** 32 - 1


class ValueType(Enum):
    """
    Tags of the Value union. The declaration order is the cross-tag sort order.
    """
    TEXT = 0
    BOOL = 1
    INT = 2
    FLOAT = 3

    def __str__(self) -> str:
        return self.name


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class Value:
    """
    A tagged scalar.
      - tag: the ValueType
      - payload: the python str / bool / int / float
    Use Value.of(...) to build one from a plain python scalar.
    """
    tag: ValueType
    payload: Any

    @classmethod
    def of(cls, raw: Any) -> 'Value':
        """Classify a python scalar, or return it unchanged if it already is a Value."""
        if isinstance(raw, Value):
            return raw
        # bool first, since bool is a subclass of int
        if isinstance(raw, bool):
            return cls(ValueType.BOOL, raw)
        if isinstance(raw, int):
            if raw < UINT_MIN or raw > UINT_MAX:
                raise ValueError(f"Integer {raw} is outside the unsigned 32-bit range.")
            return cls(ValueType.INT, raw)
        if isinstance(raw, float):
            return cls(ValueType.FLOAT, raw)
        if isinstance(raw, str):
            return cls(ValueType.TEXT, raw)
        raise TypeError(f"Unsupported value type {type(raw).__name__}: {raw!r}")

    @property
    def py(self) -> Any:
        return self.payload

    def _sort_key(self) -> tuple:
        match self.tag:
            case ValueType.FLOAT:
                # NaN sorts after every other float
                if math.isnan(self.payload):
                    return (self.tag.value, 1, 0.0)
                return (self.tag.value, 0, self.payload)
            case _:
                return (self.tag.value, 0, self.payload)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        if self.tag is not other.tag:
            return False
        if self.tag is ValueType.FLOAT and math.isnan(self.payload):
            return math.isnan(other.payload)
        return self.payload == other.payload

    def __lt__(self, other: 'Value') -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __hash__(self) -> int:
        if self.tag is ValueType.FLOAT and math.isnan(self.payload):
            return hash((self.tag, "nan"))
        return hash((self.tag, self.payload))

    def __repr__(self) -> str:
        if self.tag is ValueType.TEXT:
            return f'"{self.payload}"'
        if self.tag is ValueType.BOOL:
            return "true" if self.payload else "false"
        return str(self.payload)


# A Row is a fixed-arity tuple of Values.
Row = tuple[Value, ...]


def to_row(raw_row) -> Row:
    """Coerce an iterable of python scalars and/or Values into a Row."""
    return tuple(Value.of(v) for v in raw_row)


def from_row(row: Row) -> tuple:
    """Return the native python payloads of a Row."""
    return tuple(v.payload for v in row)
