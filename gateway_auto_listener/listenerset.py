from __future__ import annotations
from typing import Dict, Iterable, Iterator, Optional

import collections.abc


class ListenerSet (collections.abc.Set):
    """
    An ordered set of listener names. This is how a route remembers which
    listeners were created on its behalf; on the wire it is a comma-joined
    annotation value, but nothing past the store boundary should ever split
    strings.
    """

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: Dict[str, None] = {}

        for name in names:
            if name:
                self._names.setdefault(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __eq__(self, other: object) -> bool:
        # Equality is set equality; ordering only matters for serialization.
        if isinstance(other, collections.abc.Set):
            return len(self) == len(other) and all(name in other for name in self)

        return NotImplemented

    def __repr__(self) -> str:
        return f'ListenerSet({list(self._names)!r})'

    @classmethod
    def _from_iterable(cls, it: Iterable[str]) -> ListenerSet:
        return cls(it)

    def with_name(self, name: str) -> ListenerSet:
        return ListenerSet(list(self) + [name])

    @classmethod
    def from_annotation(cls, value: Optional[str]) -> ListenerSet:
        if not value:
            return cls()

        return cls(part.strip() for part in value.split(','))

    def to_annotation(self) -> str:
        return ','.join(self)
