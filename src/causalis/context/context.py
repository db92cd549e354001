"""Context store: a graph of contextoids queried during evaluation.

Evaluation takes a read lease for the duration of a pass; any mutation takes
the write lease and waits until every read lease is released.

Alternate contexts for counterfactual questions are built with ``clone`` and
``alter``. Contextoids are immutable, so clones share untouched entities and
only altered entities are replaced.

Example:
    >>> ctx = Context(1, "clinic")
    >>> ctx.add_node(Contextoid.data(10, 37.2, label="temperature"))
    >>> fever_free = ctx.alter({10: 36.6}, name="counterfactual clinic")
    >>> ctx.get(10).value, fever_free.get(10).value
    (37.2, 36.6)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Tuple

import networkx as nx

from causalis.context.contextoid import Contextoid, RelationKind
from causalis.context.rwlock import ReadWriteLock
from causalis.errors import ContextoidNotFoundError, DuplicateContextoidError

logger = logging.getLogger(__name__)

_NODE_ATTR = "contextoid"


class Context:
    """Typed graph of world-state entities.

    Attributes:
        id: Context identifier
        name: Human-readable name
    """

    def __init__(self, id: int, name: str, *, _graph: Optional[nx.DiGraph] = None):
        self.id = id
        self.name = name
        self._graph: nx.DiGraph = _graph if _graph is not None else nx.DiGraph()
        self._lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    @contextmanager
    def read_lease(self) -> Iterator["Context"]:
        """Hold shared read access; mutations block until released."""
        with self._lock.read():
            yield self

    @contextmanager
    def write_lease(self) -> Iterator["Context"]:
        """Hold exclusive access for a batch of mutations.

        Raises:
            ContextLockError: If the current thread holds a read lease
        """
        with self._lock.write():
            yield self

    @property
    def reader_count(self) -> int:
        return self._lock.reader_count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, contextoid_id: int) -> Optional[Contextoid]:
        """Return the contextoid with ``contextoid_id`` or None."""
        with self._lock.read():
            if contextoid_id not in self._graph:
                return None
            return self._graph.nodes[contextoid_id][_NODE_ATTR]

    def contains(self, contextoid_id: int) -> bool:
        with self._lock.read():
            return contextoid_id in self._graph

    def __contains__(self, contextoid_id: object) -> bool:
        return self.contains(contextoid_id)  # type: ignore[arg-type]

    def neighbors(self, contextoid_id: int) -> List[Tuple[Contextoid, RelationKind]]:
        """Return outgoing neighbours with the relation to each."""
        with self._lock.read():
            if contextoid_id not in self._graph:
                raise ContextoidNotFoundError(contextoid_id)
            return [
                (self._graph.nodes[target][_NODE_ATTR], data["relation"])
                for _, target, data in self._graph.out_edges(contextoid_id, data=True)
            ]

    def contextoids(self) -> List[Contextoid]:
        with self._lock.read():
            return [data[_NODE_ATTR] for _, data in sorted(self._graph.nodes(data=True))]

    def number_of_nodes(self) -> int:
        with self._lock.read():
            return self._graph.number_of_nodes()

    def number_of_edges(self) -> int:
        with self._lock.read():
            return self._graph.number_of_edges()

    def __len__(self) -> int:
        return self.number_of_nodes()

    # ------------------------------------------------------------------
    # Mutations (write lease)
    # ------------------------------------------------------------------

    def add_node(self, contextoid: Contextoid) -> None:
        """Add a contextoid.

        Raises:
            DuplicateContextoidError: If the id is already present
        """
        with self._lock.write():
            if contextoid.id in self._graph:
                raise DuplicateContextoidError(contextoid.id)
            self._graph.add_node(contextoid.id, **{_NODE_ATTR: contextoid})

    def update_node(self, contextoid: Contextoid) -> None:
        """Replace the contextoid with the same id, keeping its edges."""
        with self._lock.write():
            if contextoid.id not in self._graph:
                raise ContextoidNotFoundError(contextoid.id)
            self._graph.nodes[contextoid.id][_NODE_ATTR] = contextoid

    def remove_node(self, contextoid_id: int) -> None:
        """Remove a contextoid and every edge touching it."""
        with self._lock.write():
            if contextoid_id not in self._graph:
                raise ContextoidNotFoundError(contextoid_id)
            self._graph.remove_node(contextoid_id)

    def add_edge(
        self,
        source_id: int,
        target_id: int,
        relation: RelationKind = RelationKind.DATAIC,
    ) -> None:
        with self._lock.write():
            for contextoid_id in (source_id, target_id):
                if contextoid_id not in self._graph:
                    raise ContextoidNotFoundError(contextoid_id)
            self._graph.add_edge(source_id, target_id, relation=relation)

    def remove_edge(self, source_id: int, target_id: int) -> None:
        with self._lock.write():
            if not self._graph.has_edge(source_id, target_id):
                raise ContextoidNotFoundError(target_id)
            self._graph.remove_edge(source_id, target_id)

    # ------------------------------------------------------------------
    # Alternate contexts
    # ------------------------------------------------------------------

    def clone(self, *, id: Optional[int] = None, name: Optional[str] = None) -> "Context":
        """Return an independent context sharing the immutable contextoids."""
        with self._lock.read():
            graph = self._graph.copy()
        return Context(self.id if id is None else id, name or self.name, _graph=graph)

    def alter(
        self,
        updates: Mapping[int, Any],
        *,
        id: Optional[int] = None,
        name: Optional[str] = None,
    ) -> "Context":
        """Return a clone whose listed contextoids carry new values.

        Args:
            updates: Mapping of contextoid id to replacement value

        Raises:
            ContextoidNotFoundError: If an id in ``updates`` is absent
        """
        altered = self.clone(id=id, name=name)
        for contextoid_id, value in updates.items():
            current = altered.get(contextoid_id)
            if current is None:
                raise ContextoidNotFoundError(contextoid_id)
            altered.update_node(current.with_value(value))

        logger.debug(
            "Built alternate context",
            extra={
                "context_id": self.id,
                "alternate_id": altered.id,
                "altered": sorted(updates),
            },
        )
        return altered

    def __repr__(self) -> str:
        return f"Context(id={self.id}, name={self.name!r}, nodes={self._graph.number_of_nodes()})"
