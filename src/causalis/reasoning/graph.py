"""Causaloid graph: a DAG of causal units with aggregation edges.

Lifecycle:
    BUILDING -> FROZEN  (one way)

While building, units and edges can be added and removed. ``freeze`` checks
that the graph is acyclic, precomputes a deterministic topological order and
makes the structure immutable. Evaluation is only possible once frozen.

Evaluation of a node:
1. Evaluate the node's own unit with the input effect
2. An Error is returned unchanged
3. Value(False) prunes the node's children and is returned
4. A leaf returns its own effect
5. Otherwise children are evaluated with the same input and combined by the
   node's aggregation (every outgoing edge of a node shares one aggregation)

Subgraph and shortest-path evaluation instead pass each node's output effect
on as the next node's input and return the last effect produced.

Example:
    >>> graph = CausaloidGraph()
    >>> root = graph.add_root_causaloid(Causaloid.from_fn(0, is_high, "high"))
    >>> a = graph.add_causaloid(Causaloid.from_fn(1, is_rising, "rising"))
    >>> graph.add_edge(root, a, ALL)
    >>> graph.freeze()
    >>> graph.evaluate(Effect.pure(0.9)).value
    True
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import ExitStack, contextmanager
from enum import Enum
from functools import partial
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Optional, Tuple

import networkx as nx

from causalis.config import DEFAULT_CONFIG, EngineConfig
from causalis.effect import CausalityError, Effect, ErrorKind, LogKind, RelayTo
from causalis.errors import (
    AggregationConflictError,
    CycleDetectedError,
    FrozenGraphError,
    GraphNotFrozenError,
    InvalidThresholdError,
    NodeNotFoundError,
    PathNotFoundError,
)
from causalis.reasoning.aggregation import ALL, Aggregation, aggregate
from causalis.reasoning.causaloid import Causaloid

logger = logging.getLogger(__name__)


class GraphPhase(str, Enum):
    """Graph lifecycle phases."""

    BUILDING = "building"
    FROZEN = "frozen"


class CausaloidGraph:
    """Directed acyclic graph of causaloids.

    Nodes live at stable integer indices that are never reused, so removing
    a node does not shift any other index.

    Attributes:
        id: Graph identifier
        description: Human-readable description
        config: Engine configuration (parallelism, explain limits)
    """

    def __init__(
        self,
        id: int = 0,
        description: str = "",
        config: Optional[EngineConfig] = None,
    ):
        self.id = id
        self.description = description
        self.config = config or DEFAULT_CONFIG
        self._nodes: Dict[int, Causaloid] = {}
        self._children: Dict[int, List[int]] = {}
        self._aggregations: Dict[int, Aggregation] = {}
        self._next_index = 0
        self._root: Optional[int] = None
        self._phase = GraphPhase.BUILDING
        self._order: Tuple[int, ...] = ()
        self._dag: Optional[nx.DiGraph] = None
        self._last_effect: Optional[Effect] = None
        self._last_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Phase
    # ------------------------------------------------------------------

    @property
    def phase(self) -> GraphPhase:
        return self._phase

    @property
    def is_frozen(self) -> bool:
        return self._phase is GraphPhase.FROZEN

    def _require_building(self) -> None:
        if self._phase is GraphPhase.FROZEN:
            raise FrozenGraphError()

    def _require_frozen(self) -> None:
        if self._phase is not GraphPhase.FROZEN:
            raise GraphNotFrozenError()

    def _require_node(self, index: int) -> None:
        if index not in self._nodes:
            raise NodeNotFoundError(index)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_causaloid(self, causaloid: Causaloid) -> int:
        """Add a unit and return its index."""
        self._require_building()
        index = self._next_index
        self._next_index += 1
        self._nodes[index] = causaloid
        self._children[index] = []
        return index

    def add_root_causaloid(self, causaloid: Causaloid) -> int:
        """Add a unit and make it the evaluation root."""
        index = self.add_causaloid(causaloid)
        self._root = index
        return index

    def set_root(self, index: int) -> None:
        self._require_building()
        self._require_node(index)
        self._root = index

    def add_edge(self, parent: int, child: int, aggregation: Aggregation = ALL) -> None:
        """Connect ``parent`` to ``child`` under ``aggregation``.

        Raises:
            FrozenGraphError: If the graph is frozen
            NodeNotFoundError: If either index is unknown
            AggregationConflictError: If ``parent`` already aggregates its
                children with a different relation
        """
        self._require_building()
        self._require_node(parent)
        self._require_node(child)

        existing = self._aggregations.get(parent)
        if existing is not None and existing != aggregation:
            raise AggregationConflictError(
                f"Node {parent} aggregates children with {existing}, cannot add {aggregation} edge",
                details={"parent": parent, "existing": str(existing), "requested": str(aggregation)},
            )
        if child not in self._children[parent]:
            self._children[parent].append(child)
        self._aggregations[parent] = aggregation

    def remove_edge(self, parent: int, child: int) -> None:
        self._require_building()
        self._require_node(parent)
        self._require_node(child)
        if child not in self._children[parent]:
            raise NodeNotFoundError(child)
        self._children[parent].remove(child)
        if not self._children[parent]:
            self._aggregations.pop(parent, None)

    def remove_causaloid(self, index: int) -> None:
        """Remove a unit and every edge touching it."""
        self._require_building()
        self._require_node(index)
        del self._nodes[index]
        del self._children[index]
        self._aggregations.pop(index, None)
        for parent, children in self._children.items():
            if index in children:
                children.remove(index)
                if not children:
                    self._aggregations.pop(parent, None)
        if self._root == index:
            self._root = None

    def freeze(self) -> None:
        """Validate and freeze the graph.

        Raises:
            InvalidThresholdError: If a THRESHOLD node has fewer children
                than its threshold
            CycleDetectedError: If the edges form a cycle
        """
        if self._phase is GraphPhase.FROZEN:
            return

        for index, aggregation in sorted(self._aggregations.items()):
            required = aggregation.threshold
            if required is not None and required > len(self._children[index]):
                raise InvalidThresholdError(index, required, len(self._children[index]))

        dag = self._build_dag()
        try:
            order = list(nx.lexicographical_topological_sort(dag))
        except nx.NetworkXUnfeasible:
            cycle = [source for source, _ in nx.find_cycle(dag)]
            logger.warning(
                "Cycle detected while freezing graph",
                extra={"graph_id": self.id, "cycle": cycle},
            )
            raise CycleDetectedError(cycle) from None

        self._dag = dag
        self._order = tuple(order)
        self._phase = GraphPhase.FROZEN
        logger.debug(
            "Graph frozen",
            extra={
                "graph_id": self.id,
                "nodes": len(self._nodes),
                "edges": self.number_of_edges(),
                "root": self._root,
            },
        )

    def _build_dag(self) -> nx.DiGraph:
        dag = nx.DiGraph()
        dag.add_nodes_from(self._nodes)
        for parent, children in self._children.items():
            dag.add_edges_from((parent, child) for child in children)
        return dag

    # ------------------------------------------------------------------
    # Structure queries
    # ------------------------------------------------------------------

    @property
    def root(self) -> Optional[int]:
        return self._root

    def get_causaloid(self, index: int) -> Causaloid:
        self._require_node(index)
        return self._nodes[index]

    def contains(self, index: int) -> bool:
        return index in self._nodes

    def children(self, index: int) -> List[int]:
        """Child indices in edge-insertion order."""
        self._require_node(index)
        return list(self._children[index])

    def parents(self, index: int) -> List[int]:
        self._require_node(index)
        return sorted(p for p, children in self._children.items() if index in children)

    def aggregation_of(self, index: int) -> Optional[Aggregation]:
        """Aggregation over the children of ``index``; None for leaves."""
        self._require_node(index)
        return self._aggregations.get(index)

    def topological_order(self) -> Tuple[int, ...]:
        self._require_frozen()
        return self._order

    def sources(self) -> List[int]:
        """Nodes without parents, in topological order."""
        self._require_frozen()
        return [i for i in self._order if self._dag.in_degree(i) == 0]  # type: ignore[union-attr]

    def number_of_nodes(self) -> int:
        return len(self._nodes)

    def number_of_edges(self) -> int:
        return sum(len(children) for children in self._children.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._nodes))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, effect: Any, context: Any = None) -> Effect:
        """Evaluate the whole graph.

        With a root, evaluation starts there. Without one, every source node
        is evaluated in topological order and the results are combined with
        ALL. The context, if any, is held under a read lease for the whole
        pass.

        Raises:
            GraphNotFrozenError: If called before ``freeze``
        """
        self._require_frozen()
        if not isinstance(effect, Effect):
            effect = Effect.pure(effect)
        if effect.is_error():
            return effect
        if context is None:
            context = effect.context

        seed = Effect(value=effect.value, state=effect.state, context=effect.context)
        with self._evaluation_scope(context) as executor:
            if not self._nodes:
                result = Effect.from_error(
                    CausalityError(ErrorKind.EVALUATION_FAILED, f"Graph {self.id} is empty")
                )
            elif self._root is not None:
                result = self._evaluate_node(self._root, seed, context, executor)
            else:
                children = [
                    partial(self._evaluate_node, index, seed, context, executor)
                    for index in self.sources()
                ]
                result = aggregate(children, ALL)

        if effect.log:
            result = result.with_log(effect.log)
        with self._last_lock:
            self._last_effect = result
        return result

    def evaluate_single_cause(self, index: int, effect: Any, context: Any = None) -> Effect:
        """Evaluate only the unit at ``index``, ignoring its children."""
        self._require_frozen()
        self._require_node(index)
        if context is None and isinstance(effect, Effect):
            context = effect.context
        with self._evaluation_scope(context, parallel=False):
            return self._nodes[index].evaluate(effect, context=context)

    def evaluate_subgraph_from_cause(self, start: int, effect: Any, context: Any = None) -> Effect:
        """Breadth-first evaluation of everything reachable from ``start``.

        Each reached node is evaluated once, with its parent's output effect
        as input, so values, state and log flow down the traversal. The
        first Error stops the traversal and is returned. A node whose value
        is a ``RelayTo`` restarts the traversal at the relay target, with the
        relayed effect as input.

        Returns:
            The output of the last node evaluated, or the first Error
        """
        self._require_frozen()
        self._require_node(start)
        effect = effect if isinstance(effect, Effect) else Effect.pure(effect)
        if effect.is_error():
            return effect
        if context is None:
            context = effect.context

        queue = deque([(start, effect)])
        visited = {start}
        evaluated = 0
        last = effect

        with self._evaluation_scope(context, parallel=False):
            while queue:
                index, incoming = queue.popleft()
                last = self._nodes[index].evaluate(incoming, context=context)
                evaluated += 1
                if last.is_error():
                    return last

                if isinstance(last.value, RelayTo):
                    relay = last.value
                    queue.clear()
                    visited.clear()
                    if relay.target not in self._nodes:
                        return self._relay_failed(index, relay, last)
                    visited.add(relay.target)
                    queue.append((relay.target, relay.effect.with_log(last.log)))
                    continue

                for child in self._children[index]:
                    if child not in visited:
                        visited.add(child)
                        queue.append((child, last))

        return last.with_entry(
            LogKind.NOTE, f"subgraph from {start} evaluated ({evaluated} evaluated)"
        )

    def _relay_failed(self, index: int, relay: RelayTo, last: Effect) -> Effect:
        unit = self._nodes[index]
        error = CausalityError(
            ErrorKind.EVALUATION_FAILED,
            f"Relay target {relay.target} not found in graph",
        ).attach_unit(unit.id, unit.description, last.log)
        logger.warning(
            "Relay to unknown node",
            extra={"graph_id": self.id, "node": index, "target": relay.target},
        )
        return last.with_error(error).with_entry(LogKind.ERROR, str(error), unit.id)

    def evaluate_shortest_path_between_causes(
        self,
        start: int,
        stop: int,
        effect: Any,
        context: Any = None,
    ) -> Effect:
        """Evaluate the units on the shortest path from ``start`` to ``stop``.

        Each unit receives the previous unit's output effect. An Error or a
        ``RelayTo`` value stops the walk and is returned as-is.

        Returns:
            The output of the last unit on the path

        Raises:
            PathNotFoundError: If ``stop`` is unreachable from ``start``
        """
        self._require_frozen()
        self._require_node(start)
        self._require_node(stop)
        try:
            path = nx.shortest_path(self._dag, start, stop)
        except nx.NetworkXNoPath:
            raise PathNotFoundError(start, stop) from None

        current = effect if isinstance(effect, Effect) else Effect.pure(effect)
        if current.is_error():
            return current
        if context is None:
            context = current.context

        with self._evaluation_scope(context, parallel=False):
            for index in path:
                current = self._nodes[index].evaluate(current, context=context)
                if current.is_error() or isinstance(current.value, RelayTo):
                    return current

        path_text = " -> ".join(str(i) for i in path)
        return current.with_entry(LogKind.NOTE, f"path {path_text} evaluated")

    @contextmanager
    def _evaluation_scope(
        self,
        context: Any,
        parallel: Optional[bool] = None,
    ) -> Iterator[Optional[Executor]]:
        """Hold the context read lease and, if enabled, a worker pool."""
        if parallel is None:
            parallel = self.config.parallel_evaluation
        with ExitStack() as stack:
            read_lease = getattr(context, "read_lease", None)
            if read_lease is not None:
                stack.enter_context(read_lease())
            executor: Optional[Executor] = None
            if parallel:
                executor = stack.enter_context(
                    ThreadPoolExecutor(max_workers=self.config.max_workers)
                )
            yield executor

    def _evaluate_node(
        self,
        index: int,
        seed: Effect,
        context: Any,
        executor: Optional[Executor],
    ) -> Effect:
        unit = self._nodes[index]
        effect = unit.evaluate(seed, context=context)
        if effect.is_error():
            return effect

        children = self._children[index]
        if not children:
            return effect
        if effect.value is False:
            return effect.with_entry(LogKind.NOTE, "false, children pruned", unit.id)

        aggregation = self._aggregations[index]
        # Only one level of fork-join per pool so workers never wait on the pool.
        if executor is not None and aggregation.evaluates_all_children:
            child_executor, pool = None, executor
        else:
            child_executor, pool = executor, None

        thunks = [
            partial(self._evaluate_node, child, seed, context, child_executor)
            for child in children
        ]
        combined = aggregate(thunks, aggregation, unit_id=unit.id, executor=pool)

        state = dict(effect.state)
        state.update(combined.state)
        return Effect(
            value=combined.value,
            error=combined.error,
            state=MappingProxyType(state),
            log=effect.log + combined.log,
            context=effect.context,
        )

    # ------------------------------------------------------------------
    # Branching and explanation
    # ------------------------------------------------------------------

    def branch(self, *, frozen: bool = True) -> "CausaloidGraph":
        """Return a copy sharing this graph's (immutable) units.

        Args:
            frozen: Keep the copy frozen; pass False to get a building-phase
                copy whose structure can be altered for counterfactuals
        """
        copy = CausaloidGraph(self.id, self.description, self.config)
        copy._nodes = dict(self._nodes)
        copy._children = {index: list(children) for index, children in self._children.items()}
        copy._aggregations = dict(self._aggregations)
        copy._next_index = self._next_index
        copy._root = self._root
        if frozen and self.is_frozen:
            copy._dag = self._dag
            copy._order = self._order
            copy._phase = GraphPhase.FROZEN
        return copy

    def explain(self) -> str:
        """Human-readable trace of the most recent evaluation."""
        with self._last_lock:
            last = self._last_effect
        if last is None:
            return f"Graph {self.id} has not been evaluated"
        return last.explain(self.config.explain_max_entries)

    def __repr__(self) -> str:
        return (
            f"CausaloidGraph(id={self.id}, nodes={len(self._nodes)}, "
            f"edges={self.number_of_edges()}, phase={self._phase.value})"
        )
