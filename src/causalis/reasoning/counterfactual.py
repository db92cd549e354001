"""Counterfactual comparison.

A counterfactual question ("would the outcome differ had X been different?")
is answered by evaluating the same frozen unit or graph twice: once against
the factual context and once against an alternate context built by cloning
and altering it. Neither the graph nor the factual context is modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union

from causalis.context import Context
from causalis.effect import Effect
from causalis.reasoning.causaloid import Causaloid
from causalis.reasoning.graph import CausaloidGraph

logger = logging.getLogger(__name__)

Evaluable = Union[Causaloid, CausaloidGraph]


@dataclass(frozen=True)
class CounterfactualResult:
    """Factual and counterfactual outcomes side by side."""

    factual: Effect
    counterfactual: Effect
    factual_context: Context
    alternate_context: Context

    @property
    def differs(self) -> bool:
        """True when the outcome changes under the alternate context."""
        if self.factual.is_error() or self.counterfactual.is_error():
            return self.factual.error != self.counterfactual.error
        return self.factual.value != self.counterfactual.value

    def explain(self) -> str:
        verdict = "differs" if self.differs else "is unchanged"
        return "\n".join(
            [
                f"Factual ({self.factual_context.name}):",
                self.factual.explain(),
                f"Counterfactual ({self.alternate_context.name}):",
                self.counterfactual.explain(),
                f"Outcome {verdict} under the alternate context.",
            ]
        )


def evaluate_counterfactual(
    target: Evaluable,
    effect: Any,
    factual_context: Context,
    alternate: Union[Context, Mapping[int, Any]],
) -> CounterfactualResult:
    """Evaluate ``target`` under the factual and an alternate context.

    Args:
        target: Causaloid or frozen CausaloidGraph
        effect: Input effect or plain value
        factual_context: Context describing what actually happened
        alternate: Either a ready alternate Context or a mapping of contextoid
            id to replacement value applied to a clone of ``factual_context``

    Returns:
        CounterfactualResult holding both effects
    """
    if isinstance(alternate, Context):
        alternate_context = alternate
    else:
        alternate_context = factual_context.alter(
            alternate, name=f"{factual_context.name} (counterfactual)"
        )

    factual = target.evaluate(effect, context=factual_context)
    counterfactual = target.evaluate(effect, context=alternate_context)

    result = CounterfactualResult(factual, counterfactual, factual_context, alternate_context)
    logger.debug(
        "Counterfactual evaluated",
        extra={
            "factual_context": factual_context.id,
            "alternate_context": alternate_context.id,
            "differs": result.differs,
        },
    )
    return result
