"""Effect Algebra.

Unifies observation, intervention and error propagation in one container so
the evaluator treats "what happened", "what we force to happen" and "what
failed" uniformly through a single composition operator (``bind``).

Example:
    >>> from causalis.effect import Effect, CausalityError, ErrorKind
    >>> Effect.pure(5).bind(lambda v: Effect.pure(v * 2)).value
    10
    >>> failed = Effect.from_error(CausalityError(ErrorKind.EVALUATION_FAILED, "boom"))
    >>> failed.bind(lambda v: Effect.pure(v)) is failed
    True
"""

from causalis.effect.effect import (
    Effect,
    EffectLogEntry,
    LogKind,
    RelayTo,
    bind,
    fmap,
    from_error,
    intervene,
    map,
    pure,
)
from causalis.effect.errors import CausalityError, ErrorKind

__all__ = [
    # Container
    "Effect",
    "EffectLogEntry",
    "LogKind",
    "RelayTo",
    # Algebra
    "pure",
    "bind",
    "fmap",
    "map",
    "intervene",
    "from_error",
    # Errors
    "CausalityError",
    "ErrorKind",
]
