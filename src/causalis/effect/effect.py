"""Effect container and its composition algebra.

An Effect is either a Value or an Error. Both variants carry accumulated
process state, an optional context reference and an append-only audit log.
Effects are immutable: every operation returns a new Effect.

Composition rules:
- ``pure`` lifts a value with empty state and log
- ``bind`` sequences a function returning an Effect; an Error short-circuits
  and is returned unchanged
- ``map`` transforms the carried value only
- ``intervene`` forces a value regardless of upstream computation (do-operator)
  and is the only operation that may leave the Error variant

Example:
    >>> effect = Effect.pure(5).bind(lambda v: Effect.pure(v * 2)).intervene(99)
    >>> effect.value
    99
    >>> [entry.kind for entry in effect.log]
    [<LogKind.BIND: 'bind'>, <LogKind.INTERVENE: 'intervene'>]
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Tuple

from causalis.effect.errors import CausalityError
from causalis.errors import EffectUnwrapError

_EMPTY_STATE: Mapping[str, Any] = MappingProxyType({})


class LogKind(str, Enum):
    """Kinds of audit log entries."""

    BIND = "bind"
    INTERVENE = "intervene"
    EVALUATE = "evaluate"
    AGGREGATE = "aggregate"
    ERROR = "error"
    NOTE = "note"


@dataclass(frozen=True)
class EffectLogEntry:
    """One step in an effect's audit trail.

    Entries carry no timestamps so repeated evaluations produce identical logs.
    """

    kind: LogKind
    message: str
    unit_id: Optional[int] = None

    def __str__(self) -> str:
        if self.unit_id is None:
            return f"[{self.kind.value}] {self.message}"
        return f"[{self.kind.value}] unit {self.unit_id}: {self.message}"


def _callable_name(f: Callable[..., Any]) -> str:
    return getattr(f, "__qualname__", None) or getattr(f, "__name__", None) or type(f).__name__


@dataclass(frozen=True)
class Effect:
    """Result of evaluating a causal unit.

    Attributes:
        value: Carried value (meaningless when ``error`` is set)
        error: CausalityError for the Error variant, None for the Value variant
        state: Accumulated process state, read-only
        log: Audit log, oldest entry first
        context: Optional reference to a shared context (not compared)
    """

    value: Any = None
    error: Optional[CausalityError] = None
    state: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_STATE)
    log: Tuple[EffectLogEntry, ...] = ()
    context: Any = field(default=None, compare=False, repr=False)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def pure(cls, value: Any) -> "Effect":
        """Lift a plain value into a Value effect with empty state and log."""
        return cls(value=value)

    @classmethod
    def from_error(cls, error: CausalityError) -> "Effect":
        """Construct an Error effect directly."""
        return cls(error=error, log=(EffectLogEntry(LogKind.ERROR, str(error)),))

    @classmethod
    def relay_to(cls, target: int, value: Any) -> "Effect":
        """Value effect asking a subgraph traversal to jump to node ``target``.

        ``value`` (an Effect, or a plain value lifted with ``pure``) becomes
        the input of the target node.
        """
        relayed = value if isinstance(value, Effect) else cls.pure(value)
        return cls.pure(RelayTo(target, relayed))

    # ------------------------------------------------------------------
    # Predicates and extractors
    # ------------------------------------------------------------------

    def is_ok(self) -> bool:
        return self.error is None

    def is_error(self) -> bool:
        return self.error is not None

    def is_true(self) -> bool:
        """True only for Value(True); Errors and non-boolean values are not true."""
        return self.error is None and self.value is True

    def unwrap(self) -> Any:
        """Return the carried value.

        Raises:
            EffectUnwrapError: If this is an Error effect
        """
        if self.error is not None:
            raise EffectUnwrapError(
                f"Cannot unwrap Error effect: {self.error}",
                details=self.error.to_dict(),
            )
        return self.value

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def bind(self, f: Callable[[Any], "Effect"]) -> "Effect":
        """Sequence ``f`` after this effect.

        If this is an Error, ``f`` is not invoked and ``self`` is returned.
        Otherwise ``f(value)`` runs, logs are concatenated (this effect's
        first) and state is merged with the new effect's keys winning.
        """
        if self.error is not None:
            return self

        next_effect = f(self.value)
        if not isinstance(next_effect, Effect):
            raise TypeError(
                f"bind function {_callable_name(f)} must return an Effect, "
                f"got {type(next_effect).__name__}"
            )

        outcome = (
            f"-> error {next_effect.error.kind.value}"
            if next_effect.error is not None
            else f"-> {next_effect.value!r}"
        )
        entry = EffectLogEntry(LogKind.BIND, f"{_callable_name(f)}({self.value!r}) {outcome}")
        return Effect(
            value=next_effect.value,
            error=next_effect.error,
            state=_merge_state(self.state, next_effect.state),
            log=self.log + next_effect.log + (entry,),
            context=next_effect.context if next_effect.context is not None else self.context,
        )

    def map(self, f: Callable[[Any], Any]) -> "Effect":
        """Transform the carried value, preserving state and log."""
        if self.error is not None:
            return self
        return replace(self, value=f(self.value))

    def intervene(self, forced_value: Any) -> "Effect":
        """Force the carried value independent of upstream computation.

        Appends an INTERVENE entry so the audit trail distinguishes the forced
        value from natural propagation. An Error is overridden.
        """
        if self.error is not None:
            message = f"forced {forced_value!r} overriding error {self.error.kind.value}"
        else:
            message = f"forced {forced_value!r} replacing {self.value!r}"
        return replace(
            self,
            value=forced_value,
            error=None,
            log=self.log + (EffectLogEntry(LogKind.INTERVENE, message),),
        )

    # ------------------------------------------------------------------
    # Log, state and context helpers
    # ------------------------------------------------------------------

    def with_entry(
        self,
        kind: LogKind,
        message: str,
        unit_id: Optional[int] = None,
    ) -> "Effect":
        return replace(self, log=self.log + (EffectLogEntry(kind, message, unit_id),))

    def with_log(self, entries: Iterable[EffectLogEntry]) -> "Effect":
        """Return a copy whose log is ``entries`` followed by this effect's log.

        An error already attributed to a unit gets the same entries in front
        of its recorded log.
        """
        entries = tuple(entries)
        error = self.error
        if error is not None and error.unit_id is not None:
            error = replace(error, log=entries + error.log)
        return replace(self, error=error, log=entries + self.log)

    def with_state(self, **updates: Any) -> "Effect":
        return replace(self, state=_merge_state(self.state, updates))

    def with_context(self, context: Any) -> "Effect":
        return replace(self, context=context)

    def with_error(self, error: CausalityError) -> "Effect":
        return replace(self, error=error)

    def explain(self, max_entries: Optional[int] = None) -> str:
        """Render the audit log and outcome as human-readable text."""
        entries = self.log if max_entries is None else self.log[-max_entries:]
        lines = [str(entry) for entry in entries]
        if max_entries is not None and len(self.log) > max_entries:
            lines.insert(0, f"... {len(self.log) - max_entries} earlier entries omitted")
        if self.error is not None:
            lines.append(f"Result: Error({self.error})")
        else:
            lines.append(f"Result: Value({self.value!r})")
        return "\n".join(lines)

    def __repr__(self) -> str:
        if self.error is not None:
            return f"Effect.Error({self.error}, log={len(self.log)})"
        return f"Effect.Value({self.value!r}, log={len(self.log)})"


@dataclass(frozen=True)
class RelayTo:
    """Effect value redirecting a subgraph traversal.

    Attributes:
        target: Node index where traversal continues
        effect: Input effect for the target node
    """

    target: int
    effect: Effect

    def __repr__(self) -> str:
        return f"RelayTo({self.target})"


def _merge_state(left: Mapping[str, Any], right: Mapping[str, Any]) -> Mapping[str, Any]:
    if not right:
        return left
    if not left:
        return MappingProxyType(dict(right))
    merged = dict(left)
    merged.update(right)
    return MappingProxyType(merged)


# ----------------------------------------------------------------------
# Functional forms
# ----------------------------------------------------------------------


def pure(value: Any) -> Effect:
    """Lift ``value`` into a Value effect."""
    return Effect.pure(value)


def bind(effect: Effect, f: Callable[[Any], Effect]) -> Effect:
    """Sequence ``f`` after ``effect`` (see ``Effect.bind``)."""
    return effect.bind(f)


def fmap(effect: Effect, f: Callable[[Any], Any]) -> Effect:
    """Transform the value of ``effect`` (see ``Effect.map``).

    Exported as both ``fmap`` and ``map``.
    """
    return effect.map(f)


def intervene(effect: Effect, forced_value: Any) -> Effect:
    """Force the value of ``effect`` (see ``Effect.intervene``)."""
    return effect.intervene(forced_value)


def from_error(error: CausalityError) -> Effect:
    """Construct an Error effect."""
    return Effect.from_error(error)


map = fmap  # noqa: A001
