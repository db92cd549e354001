"""Causal states and the actions they trigger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from causalis.effect import Effect
from causalis.errors import ActionError
from causalis.reasoning import Causaloid

if TYPE_CHECKING:
    from causalis.context import Context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CausalState:
    """A condition watched by a CSM.

    Attributes:
        id: State id, unique within a CSM
        version: State version, reported with proposed actions
        data: Data evaluated by ``eval_all_states`` (the state's own data)
        causaloid: Unit deciding whether the state is active
        context: Optional context passed to the causaloid
    """

    id: int
    version: int
    data: Any
    causaloid: Causaloid
    context: Optional["Context"] = None

    def eval(self) -> Effect:
        """Evaluate the state against its own data."""
        return self.eval_with_data(self.data)

    def eval_with_data(self, data: Any) -> Effect:
        return self.causaloid.evaluate(data, context=self.context)

    def with_data(self, data: Any) -> "CausalState":
        return replace(self, data=data)


class CausalAction:
    """Callback fired when a causal state becomes active.

    Attributes:
        description: Action name, also used to match norms
        version: Action version
    """

    def __init__(self, action: Callable[[], Any], description: str, version: int = 1):
        self._action = action
        self.description = description
        self.version = version

    def fire(self) -> None:
        """Run the callback.

        Raises:
            ActionError: If the callback raises
        """
        try:
            self._action()
        except Exception as e:
            logger.error(
                f"Action '{self.description}' failed: {e}",
                extra={"action": self.description, "version": self.version},
            )
            raise ActionError(
                f"Failed to fire action '{self.description}': {e}",
                details={"action": self.description},
            ) from e

    def __repr__(self) -> str:
        return f"CausalAction(description={self.description!r}, version={self.version})"


class ActivationOutcome(str, Enum):
    """What happened to a state during an update."""

    FIRED = "fired"  # Became active, action fired
    VETOED = "vetoed"  # Became active, gate forbade the action
    DEACTIVATED = "deactivated"  # Became inactive, re-armed


@dataclass(frozen=True)
class ActivationRecord:
    """One entry of a CSM's activation history."""

    state_id: int
    outcome: ActivationOutcome
    effect: Effect
    rationale: Optional[str] = None
