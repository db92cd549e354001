"""Context entities.

A Contextoid is one immutable piece of world-state: a data point, a spatial,
temporal or spacetime marker, or a symbolic fact. The core does not interpret
coordinates; it only stores and returns the value.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional


class ContextoidKind(str, Enum):
    """Kinds of context entities."""

    ROOT = "root"
    DATA = "data"
    SPACE = "space"
    TIME = "time"
    SPACETIME = "spacetime"
    SYMBOL = "symbol"


class RelationKind(str, Enum):
    """Relations between contextoids."""

    DATAIC = "dataic"
    SPATIAL = "spatial"
    TEMPORAL = "temporal"
    SPACE_TEMPORAL = "space_temporal"
    SEMANTIC = "semantic"


@dataclass(frozen=True)
class Contextoid:
    """A context entity retrievable by id.

    Attributes:
        id: Stable entity id, unique within a context
        kind: Entity kind
        value: Payload; opaque to the engine
        label: Optional human-readable label
    """

    id: int
    kind: ContextoidKind
    value: Any = None
    label: Optional[str] = None

    @classmethod
    def data(cls, id: int, value: Any, label: Optional[str] = None) -> "Contextoid":
        return cls(id, ContextoidKind.DATA, value, label)

    @classmethod
    def time(cls, id: int, value: Any, label: Optional[str] = None) -> "Contextoid":
        return cls(id, ContextoidKind.TIME, value, label)

    @classmethod
    def space(cls, id: int, value: Any, label: Optional[str] = None) -> "Contextoid":
        return cls(id, ContextoidKind.SPACE, value, label)

    @classmethod
    def symbol(cls, id: int, value: Any, label: Optional[str] = None) -> "Contextoid":
        return cls(id, ContextoidKind.SYMBOL, value, label)

    def with_value(self, value: Any) -> "Contextoid":
        return replace(self, value=value)

    def __str__(self) -> str:
        name = f" '{self.label}'" if self.label else ""
        return f"Contextoid {self.id}{name} ({self.kind.value}): {self.value!r}"
