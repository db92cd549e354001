"""Aggregation relations and the child-combination algorithm.

Children are supplied as zero-argument callables so that short-circuiting
aggregations can skip invoking them entirely.

Rules:
- ALL: in order, stop at the first Error or first non-true Value
- ANY: in order, stop at the first Value(True); Errors do not stop siblings
- NONE: every child evaluated; true iff no child is true
- THRESHOLD(k): every child evaluated; true iff at least k children are true

Under ANY, NONE and THRESHOLD an Error counts as "not true" and is kept in
the audit log. ANY with no true child and at least one Error yields the first
Error, so Value(False) always means every child answered False.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from causalis.effect import CausalityError, Effect, EffectLogEntry, ErrorKind, LogKind

logger = logging.getLogger(__name__)

ChildThunk = Callable[[], Effect]


class AggregateKind(str, Enum):
    """Kinds of aggregation relations."""

    ALL = "all"
    ANY = "any"
    NONE = "none"
    THRESHOLD = "threshold"


@dataclass(frozen=True)
class Aggregation:
    """Rule for combining child effects.

    Attributes:
        kind: Aggregation kind
        threshold: Required count of true children (THRESHOLD only)
    """

    kind: AggregateKind
    threshold: Optional[int] = None

    def __post_init__(self) -> None:
        if self.kind is AggregateKind.THRESHOLD:
            if self.threshold is None or isinstance(self.threshold, bool) or self.threshold < 1:
                raise ValueError("THRESHOLD aggregation requires an integer threshold >= 1")
        elif self.threshold is not None:
            raise ValueError(f"{self.kind.value} aggregation does not take a threshold")

    @property
    def evaluates_all_children(self) -> bool:
        """Count-based aggregations never short-circuit."""
        return self.kind in (AggregateKind.NONE, AggregateKind.THRESHOLD)

    def __str__(self) -> str:
        if self.kind is AggregateKind.THRESHOLD:
            return f"threshold({self.threshold})"
        return self.kind.value


ALL = Aggregation(AggregateKind.ALL)
ANY = Aggregation(AggregateKind.ANY)
NONE = Aggregation(AggregateKind.NONE)


def threshold(k: int) -> Aggregation:
    """Build a THRESHOLD aggregation requiring at least ``k`` true children."""
    return Aggregation(AggregateKind.THRESHOLD, k)


def _vote(effect: Effect) -> Tuple[Optional[bool], Optional[CausalityError]]:
    """Classify a child effect as True/False, or as an error contribution."""
    if effect.error is not None:
        return None, effect.error
    if isinstance(effect.value, bool):
        return effect.value, None
    return None, CausalityError.type_mismatch(
        f"Aggregation requires a boolean value, got {type(effect.value).__name__}"
    )


class _Accumulator:
    """Collects child logs and states in evaluation order."""

    def __init__(self) -> None:
        self.log: List[EffectLogEntry] = []
        self.state: Dict[str, Any] = {}
        self.errors: List[CausalityError] = []

    def add(self, effect: Effect) -> Tuple[Optional[bool], Optional[CausalityError]]:
        self.log.extend(effect.log)
        self.state.update(effect.state)
        vote, error = _vote(effect)
        if error is not None:
            if effect.error is None:
                self.log.append(EffectLogEntry(LogKind.ERROR, str(error)))
            self.errors.append(error)
        return vote, error

    def finish(
        self,
        aggregation: Aggregation,
        message: str,
        unit_id: Optional[int],
        *,
        value: Any = None,
        error: Optional[CausalityError] = None,
    ) -> Effect:
        log = tuple(self.log) + (
            EffectLogEntry(LogKind.AGGREGATE, f"{aggregation}: {message}", unit_id),
        )
        return Effect(value=value, error=error, state=MappingProxyType(dict(self.state)), log=log)


def aggregate(
    children: Sequence[ChildThunk],
    aggregation: Aggregation,
    *,
    unit_id: Optional[int] = None,
    executor: Optional[Executor] = None,
) -> Effect:
    """Combine child effects per ``aggregation``.

    Args:
        children: Child evaluators in edge-insertion order
        aggregation: Combination rule
        unit_id: Id of the aggregating unit, recorded in the log
        executor: Optional pool for count-based aggregations; results are
            still combined in insertion order

    Returns:
        Combined effect carrying every evaluated child's log
    """
    if not children:
        return Effect.from_error(
            CausalityError(ErrorKind.EVALUATION_FAILED, "Cannot aggregate empty collection")
        )

    if aggregation.kind is AggregateKind.ALL:
        return _aggregate_all(children, aggregation, unit_id)
    if aggregation.kind is AggregateKind.ANY:
        return _aggregate_any(children, aggregation, unit_id)
    return _aggregate_count(children, aggregation, unit_id, executor)


def _aggregate_all(children: Sequence[ChildThunk], aggregation: Aggregation, unit_id: Optional[int]) -> Effect:
    acc = _Accumulator()
    total = len(children)
    for position, child in enumerate(children):
        vote, error = acc.add(child())
        if error is not None:
            logger.debug(
                "ALL aggregation halted by error",
                extra={"unit_id": unit_id, "position": position, "error_kind": error.kind.value},
            )
            return acc.finish(
                aggregation, f"halted by error at child {position + 1}/{total}", unit_id, error=error
            )
        if not vote:
            return acc.finish(
                aggregation, f"false at child {position + 1}/{total} -> False", unit_id, value=False
            )
    return acc.finish(aggregation, f"{total}/{total} true -> True", unit_id, value=True)


def _aggregate_any(children: Sequence[ChildThunk], aggregation: Aggregation, unit_id: Optional[int]) -> Effect:
    acc = _Accumulator()
    total = len(children)
    for position, child in enumerate(children):
        vote, _ = acc.add(child())
        if vote:
            return acc.finish(
                aggregation, f"true at child {position + 1}/{total} -> True", unit_id, value=True
            )

    if acc.errors:
        logger.warning(
            "ANY aggregation found no true child and retained errors",
            extra={"unit_id": unit_id, "errors": len(acc.errors)},
        )
        return acc.finish(
            aggregation,
            f"no true child, {len(acc.errors)} error(s) -> Error",
            unit_id,
            error=acc.errors[0],
        )
    return acc.finish(aggregation, f"0/{total} true -> False", unit_id, value=False)


def _aggregate_count(
    children: Sequence[ChildThunk],
    aggregation: Aggregation,
    unit_id: Optional[int],
    executor: Optional[Executor],
) -> Effect:
    if executor is not None:
        futures = [executor.submit(child) for child in children]
        effects = [future.result() for future in futures]
    else:
        effects = [child() for child in children]

    acc = _Accumulator()
    count = 0
    for effect in effects:
        vote, _ = acc.add(effect)
        if vote:
            count += 1

    if acc.errors:
        logger.warning(
            "Errors counted as not-true during count aggregation",
            extra={"unit_id": unit_id, "errors": len(acc.errors), "aggregation": str(aggregation)},
        )

    if aggregation.kind is AggregateKind.NONE:
        result = count == 0
    else:
        result = count >= aggregation.threshold  # type: ignore[operator]

    suffix = f", {len(acc.errors)} error(s)" if acc.errors else ""
    return acc.finish(
        aggregation,
        f"{count}/{len(effects)} true{suffix} -> {result}",
        unit_id,
        value=result,
    )
