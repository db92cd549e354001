"""Shared test fixtures for causalis.

Provides:
- CallRecorder: builds causaloids and thunks that record each invocation
- clinic_context: a small context with temperature and oxygen readings
- fever_unit: contextual causaloid reading the temperature contextoid
"""

from __future__ import annotations

from typing import Any, Callable, List

import pytest

from causalis.context import Context, Contextoid
from causalis.effect import CausalityError, Effect, ErrorKind
from causalis.reasoning import Causaloid

TEMPERATURE_ID = 10
OXYGEN_ID = 11


class CallRecorder:
    """Records which causal functions ran and in what order."""

    def __init__(self) -> None:
        self.calls: List[Any] = []

    def count(self, name: Any) -> int:
        return self.calls.count(name)

    def thunk(self, name: Any, result: Any) -> Callable[[], Effect]:
        """Zero-argument child evaluator returning ``result``."""

        def run() -> Effect:
            self.calls.append(name)
            return result if isinstance(result, Effect) else Effect.pure(result)

        return run

    def unit(self, id: int, result: Any, description: str = "") -> Causaloid:
        """Singleton causaloid ignoring its input and returning ``result``."""

        def fn(value: Any) -> Effect:
            self.calls.append(id)
            return result if isinstance(result, Effect) else Effect.pure(result)

        return Causaloid.from_fn(id, fn, description or f"constant {result!r}")


def failed(message: str = "boom") -> Effect:
    return Effect.from_error(CausalityError(ErrorKind.EVALUATION_FAILED, message))


def has_fever(value: Any, state: Any, context: Context) -> Effect:
    reading = context.get(TEMPERATURE_ID)
    if reading is None:
        return Effect.from_error(CausalityError.entity_missing(TEMPERATURE_ID))
    return Effect.pure(reading.value >= 38.0)


@pytest.fixture
def recorder() -> CallRecorder:
    return CallRecorder()


@pytest.fixture
def clinic_context() -> Context:
    ctx = Context(1, "clinic")
    ctx.add_node(Contextoid.data(TEMPERATURE_ID, 38.5, label="temperature"))
    ctx.add_node(Contextoid.data(OXYGEN_ID, 92.0, label="oxygen saturation"))
    ctx.add_edge(TEMPERATURE_ID, OXYGEN_ID)
    return ctx


@pytest.fixture
def fever_unit() -> Causaloid:
    return Causaloid.from_contextual_fn(100, has_fever, "patient has fever")
