"""
Routing Index - read-optimized view of a mapping snapshot.

topic filter -> tuple of MappingEntry, in snapshot order. Built in full
from a snapshot and never modified afterwards; the bridge publishes a new
index by swapping a single reference.
"""

from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Tuple

from .mapping import MappingEntry
from .topics import is_matched


class RoutingIndex:
    """
    Immutable filter -> entries index.

    Example:
        >>> index = RoutingIndex.build(mapping.entries())
        >>> [e.destination_stream for e in index.match("sensors/t1/humidity")]
        ['humidity']
    """

    __slots__ = ('_routes', '_filters')

    def __init__(self, routes: Mapping[str, Tuple[MappingEntry, ...]]):
        self._routes = MappingProxyType(dict(routes))
        self._filters = frozenset(self._routes)

    @classmethod
    def build(cls, entries: Iterable[MappingEntry]) -> 'RoutingIndex':
        grouped: Dict[str, List[MappingEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.topic_filter, []).append(entry)
        return cls({f: tuple(group) for f, group in grouped.items()})

    @classmethod
    def empty(cls) -> 'RoutingIndex':
        return cls({})

    @property
    def filters(self) -> FrozenSet[str]:
        """Distinct topic filters."""
        return self._filters

    def routes(self) -> Iterator[Tuple[str, Tuple[MappingEntry, ...]]]:
        return iter(self._routes.items())

    def entries_for(self, topic_filter: str) -> Tuple[MappingEntry, ...]:
        return self._routes.get(topic_filter, ())

    def match(self, topic: str) -> List[MappingEntry]:
        """Every entry whose filter selects `topic`, filter by filter."""
        matched = []
        for topic_filter, entries in self._routes.items():
            if is_matched(topic_filter, topic):
                matched.extend(entries)
        return matched

    def __len__(self) -> int:
        return len(self._routes)

    def __repr__(self) -> str:
        return f"RoutingIndex(filters={sorted(self._filters)})"
