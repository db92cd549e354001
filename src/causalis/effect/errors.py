"""Causality error values carried inside Error effects.

These are values, not exceptions: causal functions return
``Effect.from_error(CausalityError(...))`` instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from causalis.effect.effect import EffectLogEntry


class ErrorKind(str, Enum):
    """Recoverable failure kinds surfaced through the Error variant."""

    CONTEXT_MISSING = "context_missing"  # Contextual unit evaluated without context
    ENTITY_MISSING = "entity_missing"  # Referenced contextoid absent
    NUMERICAL_INSTABILITY = "numerical_instability"  # Non-finite or out-of-domain
    TYPE_MISMATCH = "type_mismatch"  # Unexpected value or return type
    EVALUATION_FAILED = "evaluation_failed"  # Any other evaluation failure


@dataclass(frozen=True)
class CausalityError:
    """Describes why an evaluation stopped.

    Attributes:
        kind: Failure category
        message: Human-readable description
        unit_id: Id of the causal unit that produced the error, if known
        description: Description of that unit
        log: Snapshot of the audit log at the time the error was attached
    """

    kind: ErrorKind
    message: str
    unit_id: Optional[int] = None
    description: Optional[str] = None
    log: Tuple["EffectLogEntry", ...] = field(default=(), compare=False)

    @classmethod
    def context_missing(cls, message: str = "Context required but not provided") -> "CausalityError":
        return cls(ErrorKind.CONTEXT_MISSING, message)

    @classmethod
    def entity_missing(cls, contextoid_id: Any) -> "CausalityError":
        return cls(ErrorKind.ENTITY_MISSING, f"Contextoid {contextoid_id} not found in context")

    @classmethod
    def numerical(cls, message: str) -> "CausalityError":
        return cls(ErrorKind.NUMERICAL_INSTABILITY, message)

    @classmethod
    def type_mismatch(cls, message: str) -> "CausalityError":
        return cls(ErrorKind.TYPE_MISMATCH, message)

    def attach_unit(
        self,
        unit_id: int,
        description: str,
        log: Tuple["EffectLogEntry", ...] = (),
    ) -> "CausalityError":
        """Return a copy annotated with the originating unit.

        An error already attributed to an inner unit keeps its attribution.
        """
        if self.unit_id is not None:
            return self
        return replace(self, unit_id=unit_id, description=description, log=log)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "unit_id": self.unit_id,
            "description": self.description,
            "log": [str(entry) for entry in self.log],
        }

    def __str__(self) -> str:
        parts = [f"{self.kind.value}: {self.message}"]
        if self.unit_id is not None:
            parts.append(f"(unit {self.unit_id}: {self.description})")
        return " ".join(parts)
