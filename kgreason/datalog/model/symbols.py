import threading
from typing import NewType

# Dense integer id of an interned predicate name.
Symbol = NewType("Symbol", int)


class SymbolTable:
    """
    Interns strings to dense integer ids and back.

    Ids are assigned in first-seen order starting at 0 and are never reused,
    so a Symbol stays valid for the lifetime of the table. Any object with
    the same `intern`/`resolve` methods can be injected into the Reasoner
    instead.
    """

    def __init__(self) -> None:
        self._ids: dict[str, Symbol] = {}
        self._names: list[str] = []
        self._lock = threading.Lock()

    def intern(self, text: str) -> Symbol:
        sym = self._ids.get(text)
        if sym is not None:
            return sym
        with self._lock:
            sym = self._ids.get(text)
            if sym is None:
                sym = Symbol(len(self._names))
                self._names.append(text)
                self._ids[text] = sym
            return sym

    def get(self, text: str) -> Symbol | None:
        """Return the id of `text` without interning it."""
        return self._ids.get(text)

    def resolve(self, symbol: Symbol) -> str:
        try:
            return self._names[symbol]
        except IndexError:
            raise KeyError(f"resolve: unknown symbol id {symbol}.") from None

    def __contains__(self, text: str) -> bool:
        return text in self._ids

    def __len__(self) -> int:
        return len(self._names)
