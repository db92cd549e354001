"""Types shared between the state machine and the deontic gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, FrozenSet, Mapping, Optional, Protocol, Tuple, runtime_checkable

if TYPE_CHECKING:
    from causalis.context import Context


class Modality(str, Enum):
    """Deontic status of an action. Precedence: IMPERMISSIBLE > OBLIGATORY > PERMISSIBLE."""

    OBLIGATORY = "Obligatory"
    IMPERMISSIBLE = "Impermissible"
    PERMISSIBLE = "Permissible"

    @property
    def precedence(self) -> int:
        return _PRECEDENCE[self]


_PRECEDENCE = {
    Modality.IMPERMISSIBLE: 2,
    Modality.OBLIGATORY: 1,
    Modality.PERMISSIBLE: 0,
}


@dataclass(frozen=True)
class ProposedAction:
    """An action a state machine wants to take, submitted for judgement.

    Attributes:
        action_id: Id of the state that proposed the action
        action_name: Name used to match norms
        tags: Tags used to select candidate norms
        parameters: Read-only details (triggering value, state version, ...)
    """

    action_id: int
    action_name: str
    tags: FrozenSet[str] = frozenset()
    parameters: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Verdict:
    """Outcome of judging a proposed action.

    Attributes:
        outcome: Final modality
        justification: Ids of the norms that survived conflict resolution
        rationale: Human-readable explanation naming the dominating norm
    """

    outcome: Modality
    justification: Tuple[int, ...] = ()
    rationale: str = ""

    @property
    def permits(self) -> bool:
        return self.outcome is not Modality.IMPERMISSIBLE


@runtime_checkable
class DeonticGate(Protocol):
    """Anything that can judge a proposed action."""

    def evaluate(self, action: ProposedAction, context: Optional["Context"] = None) -> Verdict:
        ...
