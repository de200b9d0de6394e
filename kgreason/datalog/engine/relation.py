import logging
import threading
from typing import Iterable, Iterator

from ..model.errors import ArityMismatch
from ..model.values import Row, Value, to_row, from_row

logger = logging.getLogger(__name__)

# Column positions an index is keyed on, e.g. (0,) or (0, 2)
Positions = tuple[int, ...]


class IndexedRelation:
    """
    A set of fixed-arity rows with stable row ids and secondary indexes.

    Rows are stored once under an integer row id. Ids are assigned on
    insertion, retired on deletion and handed out again by later insertions.
    Each secondary index maps the projection of a row onto its positions to
    the set of row ids carrying that projection.

    Writes are serialized by a per-relation lock. `scan()` and `lookup()`
    return snapshots, so callers may keep iterating while the relation
    changes underneath them.
    """

    def __init__(self, predicate: str, arity: int) -> None:
        self.predicate = predicate
        self.arity = arity
        self._rows: dict[int, Row] = {}
        self._ids: dict[Row, int] = {}
        self._free: list[int] = []
        self._next_id = 0
        self._indexes: dict[Positions, dict[tuple, set[int]]] = {}
        self._lock = threading.RLock()

    # -- validation ---------------------------------------------------------

    def check_row(self, row: Iterable) -> Row:
        """Coerce `row` to a Row of Values, raising ArityMismatch/TypeError/ValueError."""
        row = tuple(row)
        if len(row) != self.arity:
            raise ArityMismatch(self.predicate, self.arity, len(row))
        return to_row(row)

    # -- writes -------------------------------------------------------------

    def insert(self, row: Iterable) -> bool:
        """Add `row`. Returns False if it was already present."""
        row = self.check_row(row)
        with self._lock:
            if row in self._ids:
                return False
            rid = self._free.pop() if self._free else self._take_id()
            self._rows[rid] = row
            self._ids[row] = rid
            for positions, index in self._indexes.items():
                index.setdefault(_project(row, positions), set()).add(rid)
            return True

    def delete(self, row: Iterable) -> bool:
        """Remove `row`. Returns False if it was absent."""
        row = self.check_row(row)
        with self._lock:
            rid = self._ids.pop(row, None)
            if rid is None:
                return False
            del self._rows[rid]
            for positions, index in self._indexes.items():
                key = _project(row, positions)
                bucket = index.get(key)
                if bucket is not None:
                    bucket.discard(rid)
                    if not bucket:
                        del index[key]
            self._free.append(rid)
            return True

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()
            self._ids.clear()
            self._free.clear()
            self._next_id = 0
            for index in self._indexes.values():
                index.clear()

    def _take_id(self) -> int:
        rid = self._next_id
        self._next_id += 1
        return rid

    # -- reads --------------------------------------------------------------

    def contains(self, row: Iterable) -> bool:
        row = tuple(row)
        if len(row) != self.arity:
            return False
        try:
            return to_row(row) in self._ids
        except (TypeError, ValueError):
            # not a storable row, so never present
            return False

    def __contains__(self, row) -> bool:
        return self.contains(row)

    def row_id(self, row: Row) -> int | None:
        return self._ids.get(row)

    def scan(self) -> list[Row]:
        """Snapshot of all rows."""
        with self._lock:
            return list(self._rows.values())

    def __iter__(self) -> Iterator[Row]:
        return iter(self.scan())

    def __len__(self) -> int:
        return len(self._rows)

    def lookup(self, positions: Positions, key: tuple) -> list[Row]:
        """
        Rows whose values at `positions` equal `key`. Uses the index on exactly
        those positions when there is one, else filters a scan.
        """
        if not positions:
            return self.scan()
        if len(positions) == self.arity and positions == tuple(range(self.arity)):
            # fully bound: a membership test
            return [key] if key in self._ids else []
        with self._lock:
            index = self._indexes.get(positions)
            if index is not None:
                ids = index.get(key)
                if not ids:
                    return []
                return [self._rows[rid] for rid in ids]
            rows = list(self._rows.values())
        return [r for r in rows if _project(r, positions) == key]

    # -- indexes ------------------------------------------------------------

    def add_index(self, positions: Positions) -> None:
        """Build an index on `positions` from the current rows. No-op if it exists."""
        positions = tuple(positions)
        for p in positions:
            if p < 0 or p >= self.arity:
                raise ValueError(
                    f"add_index: position {p} is out of range for '{self.predicate}'/{self.arity}."
                )
        with self._lock:
            if positions in self._indexes:
                return
            index: dict[tuple, set[int]] = {}
            for rid, row in self._rows.items():
                index.setdefault(_project(row, positions), set()).add(rid)
            self._indexes[positions] = index
        logger.debug(f"[INDEX] {self.predicate}{list(positions)} built over {len(self._rows)} rows")

    def index_positions(self) -> list[Positions]:
        return list(self._indexes.keys())

    def check_invariants(self) -> None:
        """Assert that row storage and every index agree with each other."""
        with self._lock:
            assert len(self._rows) == len(self._ids), f"{self.predicate}: row maps differ in size"
            for rid, row in self._rows.items():
                assert self._ids.get(row) == rid, f"{self.predicate}: row {row} not mapped back to id {rid}"
                assert len(row) == self.arity, f"{self.predicate}: row {row} has wrong arity"
            assert not set(self._free) & set(self._rows), f"{self.predicate}: a free id is still live"
            for positions, index in self._indexes.items():
                indexed = 0
                for key, ids in index.items():
                    assert ids, f"{self.predicate}{positions}: empty bucket for {key}"
                    for rid in ids:
                        assert rid in self._rows, f"{self.predicate}{positions}: retired id {rid} indexed"
                        assert _project(self._rows[rid], positions) == key, \
                            f"{self.predicate}{positions}: id {rid} filed under the wrong key"
                    indexed += len(ids)
                assert indexed == len(self._rows), f"{self.predicate}{positions}: not every row is indexed"

    def copy(self) -> 'IndexedRelation':
        """Independent copy with the same rows, ids and indexes."""
        other = IndexedRelation(self.predicate, self.arity)
        with self._lock:
            other._rows = dict(self._rows)
            other._ids = dict(self._ids)
            other._free = list(self._free)
            other._next_id = self._next_id
            other._indexes = {
                positions: {key: set(ids) for key, ids in index.items()}
                for positions, index in self._indexes.items()
            }
        return other

    def empty_like(self) -> 'IndexedRelation':
        """Empty relation with the same predicate, arity and index positions."""
        other = IndexedRelation(self.predicate, self.arity)
        for positions in self._indexes:
            other._indexes[positions] = {}
        return other

    def __repr__(self) -> str:
        return f"IndexedRelation({self.predicate}/{self.arity}, rows={len(self._rows)})"


class RelationView:
    """
    Read-only snapshot of a relation's rows.

    Iteration can be restarted any number of times and always yields the
    rows as they were when the view was taken. Rows are native python tuples
    unless `typed` is set, in which case they are tuples of Values.
    """

    def __init__(self, predicate: str, rows: list[Row], typed: bool = False) -> None:
        self.predicate = predicate
        self.typed = typed
        self._rows = rows

    def __iter__(self) -> Iterator[tuple]:
        if self.typed:
            return iter(list(self._rows))
        return (from_row(r) for r in self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, row) -> bool:
        try:
            return to_row(row) in set(self._rows)
        except (TypeError, ValueError):
            return False

    def to_set(self) -> set[tuple]:
        return set(iter(self))

    def __repr__(self) -> str:
        return f"RelationView({self.predicate}, rows={len(self._rows)})"


def _project(row: Row, positions: Positions) -> tuple[Value, ...]:
    return tuple(row[p] for p in positions)
