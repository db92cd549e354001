"""Context Store - world-state entities queried by contextual causal units."""

from causalis.context.context import Context
from causalis.context.contextoid import Contextoid, ContextoidKind, RelationKind
from causalis.context.rwlock import ReadWriteLock

__all__ = [
    "Context",
    "Contextoid",
    "ContextoidKind",
    "RelationKind",
    "ReadWriteLock",
]
