"""Causal reasoning core.

Causaloids are uniform causal units; a CausaloidGraph composes them into a
DAG whose edges carry aggregation relations (ALL, ANY, NONE, THRESHOLD).

Example:
    >>> from causalis.effect import Effect
    >>> from causalis.reasoning import ALL, Causaloid, CausaloidGraph
    >>> graph = CausaloidGraph()
    >>> root = graph.add_root_causaloid(
    ...     Causaloid.from_fn(0, lambda v: Effect.pure(v > 0.5), "above half")
    ... )
    >>> graph.freeze()
    >>> graph.evaluate(Effect.pure(0.7)).value
    True
"""

from causalis.reasoning.aggregation import (
    ALL,
    ANY,
    NONE,
    AggregateKind,
    Aggregation,
    aggregate,
    threshold,
)
from causalis.reasoning.causaloid import Causaloid, CausaloidKind
from causalis.reasoning.counterfactual import CounterfactualResult, evaluate_counterfactual
from causalis.reasoning.graph import CausaloidGraph, GraphPhase

__all__ = [
    # Aggregation
    "ALL",
    "ANY",
    "NONE",
    "AggregateKind",
    "Aggregation",
    "aggregate",
    "threshold",
    # Units
    "Causaloid",
    "CausaloidKind",
    # Graph
    "CausaloidGraph",
    "GraphPhase",
    # Counterfactuals
    "CounterfactualResult",
    "evaluate_counterfactual",
]
