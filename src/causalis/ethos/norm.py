"""Norms evaluated by the EffectEthos engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, FrozenSet, Optional

from causalis.ethos.types import Modality, ProposedAction

if TYPE_CHECKING:
    from causalis.context import Context

NormPredicate = Callable[[ProposedAction, Optional["Context"]], bool]


@dataclass(frozen=True)
class Norm:
    """A rule assigning a modality to matching actions.

    A norm is a candidate for an action when the action carries one of its
    tags or shares its name; it is active when its predicate holds.

    Attributes:
        id: Unique norm id
        action_name: Name of the action this norm governs
        tags: Tags selecting the norm for tagged actions
        predicate: Activation condition on the action and context
        modality: Deontic status imposed when active
        timestamp: Enactment time; newer wins (lex posterior)
        specificity: More specific wins (lex specialis)
        priority: Higher authority wins (lex superior)
    """

    id: int
    action_name: str
    tags: FrozenSet[str]
    predicate: NormPredicate
    modality: Modality
    timestamp: int = 0
    specificity: int = 0
    priority: int = 0

    def is_candidate(self, action: ProposedAction) -> bool:
        return self.action_name == action.action_name or bool(self.tags & action.tags)

    def is_active(self, action: ProposedAction, context: Optional["Context"]) -> bool:
        return bool(self.predicate(action, context))

    def defeats(self, other: "Norm") -> bool:
        """True if this norm overrides ``other`` by any defeasance rule."""
        return (
            self.specificity > other.specificity
            or self.timestamp > other.timestamp
            or self.priority > other.priority
        )

    def describe(self) -> str:
        return (
            f"Norm {self.id}: '{self.action_name}' ({self.modality.value}, "
            f"Specificity: {self.specificity}, Timestamp: {self.timestamp}, "
            f"Priority: {self.priority})"
        )
