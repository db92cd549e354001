"""Causaloid: the uniform causal unit.

A causaloid is one of:
- Singleton: a causal function of the input value
- Contextual: a causal function that also reads process state and a context
- Collection: an ordered group of causaloids combined by an aggregation
- Graph: a frozen CausaloidGraph evaluated as a single unit

Every variant is evaluated through ``Causaloid.evaluate`` and returns an
Effect, so any causaloid can be nested inside any other. Causal functions
return Effects; raised arithmetic failures and non-finite float results are
converted to NUMERICAL_INSTABILITY errors at the unit boundary.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import nullcontext
from dataclasses import replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Sequence, Tuple

from causalis.config import DEFAULT_CONFIG, EngineConfig
from causalis.effect import CausalityError, Effect, LogKind
from causalis.errors import GraphNotFrozenError
from causalis.reasoning.aggregation import ALL, Aggregation, aggregate

if TYPE_CHECKING:
    from causalis.context import Context
    from causalis.reasoning.graph import CausaloidGraph

logger = logging.getLogger(__name__)

CausalFn = Callable[[Any], Effect]
ContextualCausalFn = Callable[[Any, Mapping[str, Any], "Context"], Effect]


class CausaloidKind(str, Enum):
    """Variants of the causal unit."""

    SINGLETON = "singleton"
    CONTEXTUAL = "contextual"
    COLLECTION = "collection"
    GRAPH = "graph"


class Causaloid:
    """Uniform causal unit.

    Build instances with the ``from_*`` constructors. The structure of a
    causaloid never changes after construction; ``with_context`` returns a
    new unit bound to another context.

    Attributes:
        id: Unit identifier, unique within the graph that holds it
        description: Human-readable description used in logs and errors
        kind: Variant of this unit
    """

    def __init__(
        self,
        id: int,
        description: str,
        kind: CausaloidKind,
        *,
        fn: Optional[Callable[..., Effect]] = None,
        members: Tuple["Causaloid", ...] = (),
        aggregation: Optional[Aggregation] = None,
        graph: Optional["CausaloidGraph"] = None,
        context: Optional["Context"] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.id = id
        self.description = description
        self.kind = kind
        self._fn = fn
        self._members = members
        self._aggregation = aggregation
        self._graph = graph
        self._context = context
        self._config = config or DEFAULT_CONFIG
        self._last_effect: Optional[Effect] = None
        self._last_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_fn(
        cls,
        id: int,
        fn: CausalFn,
        description: str,
        *,
        config: Optional[EngineConfig] = None,
    ) -> "Causaloid":
        """Singleton unit wrapping ``fn(value) -> Effect``."""
        return cls(id, description, CausaloidKind.SINGLETON, fn=fn, config=config)

    @classmethod
    def from_contextual_fn(
        cls,
        id: int,
        fn: ContextualCausalFn,
        description: str,
        context: Optional["Context"] = None,
        *,
        config: Optional[EngineConfig] = None,
    ) -> "Causaloid":
        """Contextual unit wrapping ``fn(value, state, context) -> Effect``.

        The context may be bound here or supplied at evaluation time; an
        explicit evaluation context wins over the bound one.
        """
        return cls(
            id,
            description,
            CausaloidKind.CONTEXTUAL,
            fn=fn,
            context=context,
            config=config,
        )

    @classmethod
    def from_collection(
        cls,
        id: int,
        members: Sequence["Causaloid"],
        description: str,
        aggregation: Aggregation = ALL,
        *,
        config: Optional[EngineConfig] = None,
    ) -> "Causaloid":
        """Collection unit combining ``members`` by ``aggregation``."""
        return cls(
            id,
            description,
            CausaloidKind.COLLECTION,
            members=tuple(members),
            aggregation=aggregation,
            config=config,
        )

    @classmethod
    def from_graph(
        cls,
        id: int,
        graph: "CausaloidGraph",
        description: str,
        *,
        config: Optional[EngineConfig] = None,
    ) -> "Causaloid":
        """Unit evaluating a whole frozen graph.

        Raises:
            GraphNotFrozenError: If ``graph`` is still being built
        """
        if not graph.is_frozen:
            raise GraphNotFrozenError(
                f"Graph embedded in causaloid {id} must be frozen first"
            )
        return cls(id, description, CausaloidKind.GRAPH, graph=graph, config=config)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def context(self) -> Optional["Context"]:
        return self._context

    @property
    def members(self) -> Tuple["Causaloid", ...]:
        return self._members

    @property
    def aggregation(self) -> Optional[Aggregation]:
        return self._aggregation

    @property
    def graph(self) -> Optional["CausaloidGraph"]:
        return self._graph

    @property
    def last_effect(self) -> Optional[Effect]:
        with self._last_lock:
            return self._last_effect

    def with_context(self, context: Optional["Context"]) -> "Causaloid":
        """Return a copy of this unit bound to ``context``."""
        return Causaloid(
            self.id,
            self.description,
            self.kind,
            fn=self._fn,
            members=self._members,
            aggregation=self._aggregation,
            graph=self._graph,
            context=context,
            config=self._config,
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        effect: Any,
        state: Optional[Mapping[str, Any]] = None,
        context: Optional["Context"] = None,
    ) -> Effect:
        """Evaluate this unit against an input effect.

        Args:
            effect: Input Effect, or a plain value which is lifted with ``pure``
            state: Process state; defaults to the input effect's state
            context: Context to read; defaults to the bound context, then to
                the input effect's context

        Returns:
            Output effect whose log is the input log followed by this unit's
            entries. An Error input is returned unchanged.
        """
        if not isinstance(effect, Effect):
            effect = Effect.pure(effect)
        if effect.is_error():
            return effect

        if context is None:
            context = self._context if self._context is not None else effect.context
        if state is None:
            state = effect.state

        read_lease = getattr(context, "read_lease", None)
        with read_lease() if read_lease is not None else nullcontext():
            result = self._evaluate_variant(effect, state, context)
        if effect.log:
            result = result.with_log(effect.log)
        result = self._finish(result, context)
        if state:
            merged = dict(state)
            merged.update(result.state)
            result = replace(result, state=MappingProxyType(merged))

        with self._last_lock:
            self._last_effect = result
        return result

    def _evaluate_variant(
        self,
        effect: Effect,
        state: Mapping[str, Any],
        context: Optional["Context"],
    ) -> Effect:
        if self.kind is CausaloidKind.SINGLETON:
            return self._call(effect.value)

        if self.kind is CausaloidKind.CONTEXTUAL:
            if context is None:
                return Effect.from_error(
                    CausalityError.context_missing(
                        f"Causaloid {self.id} requires a context but none was provided"
                    )
                )
            return self._call(effect.value, state, context)

        # Members receive the input without its log; the log is prepended once.
        seed = Effect(value=effect.value, state=state, context=effect.context)

        if self.kind is CausaloidKind.COLLECTION:
            children = [
                (lambda member=member: member.evaluate(seed, state, context))
                for member in self._members
            ]
            return aggregate(children, self._aggregation or ALL, unit_id=self.id)

        return self._graph.evaluate(seed, context=context)  # type: ignore[union-attr]

    def _call(self, *args: Any) -> Effect:
        try:
            result = self._fn(*args)  # type: ignore[misc]
        except (ArithmeticError, ValueError) as exc:
            logger.debug(
                "Causal function raised",
                extra={"unit_id": self.id, "exception": type(exc).__name__},
            )
            return Effect.from_error(CausalityError.numerical(f"{type(exc).__name__}: {exc}"))

        if not isinstance(result, Effect):
            return Effect.from_error(
                CausalityError.type_mismatch(
                    f"Causal function must return an Effect, got {type(result).__name__}"
                )
            )
        if (
            result.error is None
            and isinstance(result.value, float)
            and not math.isfinite(result.value)
        ):
            return Effect.from_error(
                CausalityError.numerical(f"Non-finite result {result.value!r}")
            )
        return result

    def _finish(self, result: Effect, context: Optional["Context"]) -> Effect:
        if result.error is not None:
            error = result.error.attach_unit(self.id, self.description, result.log)
            result = result.with_error(error)
            outcome = f"error {error.kind.value}"
        else:
            outcome = repr(result.value)

        if self._config.record_audit_log:
            result = result.with_entry(
                LogKind.EVALUATE, f"{self.description} -> {outcome}", self.id
            )
        if result.context is None and context is not None:
            result = result.with_context(context)
        return result

    # ------------------------------------------------------------------
    # Explanation
    # ------------------------------------------------------------------

    def explain(self) -> str:
        """Human-readable trace of the most recent evaluation."""
        last = self.last_effect
        if last is None:
            return f"Causaloid {self.id} '{self.description}' has not been evaluated"
        header = f"Causaloid {self.id} '{self.description}' ({self.kind.value})"
        return header + "\n" + last.explain(self._config.explain_max_entries)

    def __repr__(self) -> str:
        return f"Causaloid(id={self.id}, kind={self.kind.value}, description={self.description!r})"
