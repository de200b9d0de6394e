import logging
import threading
from dataclasses import dataclass

from ..model.symbols import Symbol
from ..model.values import Row

logger = logging.getLogger(__name__)

# A fact is identified by its predicate symbol and row
FactKey = tuple[Symbol, Row]


@dataclass(frozen=True, slots=True)
class Support:
    """One derivation of a fact: the rule that fired and the body facts it matched."""
    rule_index: int
    premises: tuple[FactKey, ...]


class SupportGraph:
    """
    Recorded derivations of derived facts.

    Supports live in an arena keyed by integer id, with two indexes on top:
    the supports of each fact, and the supports each fact is a premise of.
    At most `max_per_fact` distinct supports are kept per fact; further
    derivations of an already supported fact are not recorded.
    """

    def __init__(self, max_per_fact: int = 4) -> None:
        self.max_per_fact = max(1, max_per_fact)
        self._arena: dict[int, tuple[FactKey, Support]] = {}
        self._next_id = 0
        self._by_fact: dict[FactKey, list[int]] = {}
        self._by_premise: dict[FactKey, set[int]] = {}
        self._lock = threading.Lock()

    def add(self, fact: FactKey, support: Support) -> bool:
        """Record `support` for `fact`. Returns False for a duplicate or when the cap is reached."""
        with self._lock:
            ids = self._by_fact.setdefault(fact, [])
            if len(ids) >= self.max_per_fact:
                return False
            if any(self._arena[sid][1] == support for sid in ids):
                return False
            sid = self._next_id
            self._next_id += 1
            self._arena[sid] = (fact, support)
            ids.append(sid)
            for p in support.premises:
                self._by_premise.setdefault(p, set()).add(sid)
            return True

    def supports(self, fact: FactKey) -> list[Support]:
        with self._lock:
            return [self._arena[sid][1] for sid in self._by_fact.get(fact, ())]

    def remove_fact(self, fact: FactKey) -> None:
        """Forget the supports of `fact` and every support that uses it as a premise."""
        with self._lock:
            doomed = set(self._by_fact.pop(fact, ()))
            doomed |= self._by_premise.pop(fact, set())
            for sid in doomed:
                self._drop(sid)

    def _drop(self, sid: int) -> None:
        entry = self._arena.pop(sid, None)
        if entry is None:
            return
        fact, support = entry
        ids = self._by_fact.get(fact)
        if ids is not None:
            if sid in ids:
                ids.remove(sid)
            if not ids:
                del self._by_fact[fact]
        for p in support.premises:
            users = self._by_premise.get(p)
            if users is not None:
                users.discard(sid)
                if not users:
                    del self._by_premise[p]

    def __len__(self) -> int:
        return len(self._arena)
