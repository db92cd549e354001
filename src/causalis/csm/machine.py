"""Causal State Machine (CSM).

A CSM watches a set of causal states. When a state's causaloid turns true
(edge-triggered: once per not-active -> active transition) the paired action
is proposed to an optional deontic gate and fired if permitted. A state that
evaluates false again is re-armed.

Verdicts:
- no gate, PERMISSIBLE or OBLIGATORY: the action fires
- IMPERMISSIBLE: the action does not fire and ForbiddenError is raised

Example:
    csm = CSM([(CausalState(1, 1, 0.0, smoke_detected), CausalAction(alarm, "sound alarm"))])
    csm.update(0.9)   # alarm fires
    csm.update(0.95)  # still active, nothing fires
    csm.update(0.1)   # re-armed
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from causalis.config import DEFAULT_CONFIG, EngineConfig
from causalis.csm.state import ActivationOutcome, ActivationRecord, CausalAction, CausalState
from causalis.effect import Effect
from causalis.errors import CausalEvaluationError, ForbiddenError, UpdateError
from causalis.ethos.types import DeonticGate, ProposedAction, Verdict

if TYPE_CHECKING:
    from causalis.context import Context

logger = logging.getLogger(__name__)

StateAction = Tuple[CausalState, CausalAction]

_UNSET = object()


class CSM:
    """Causal state machine.

    Attributes:
        gate: Optional deontic gate judging proposed actions
        tags: Tags attached to every proposed action
    """

    def __init__(
        self,
        state_actions: Iterable[StateAction] = (),
        gate: Optional[DeonticGate] = None,
        *,
        tags: Iterable[str] = (),
        context: Optional["Context"] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.gate = gate
        self.tags = frozenset(tags)
        self._context = context
        self._config = config or DEFAULT_CONFIG
        self._entries: Dict[int, StateAction] = {}
        self._active: Dict[int, bool] = {}
        self._history: List[ActivationRecord] = []
        self._lock = threading.RLock()
        for state, action in state_actions:
            self.add_single_state(state, action)

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def add_single_state(self, state: CausalState, action: CausalAction) -> None:
        """Register a state/action pair.

        Raises:
            UpdateError: If a state with the same id exists
        """
        with self._lock:
            if state.id in self._entries:
                raise UpdateError(
                    f"State {state.id} already exists", details={"state_id": state.id}
                )
            self._entries[state.id] = (state, action)
            self._active[state.id] = False

    def remove_single_state(self, state_id: int) -> None:
        with self._lock:
            if state_id not in self._entries:
                raise UpdateError(f"State {state_id} does not exist", details={"state_id": state_id})
            del self._entries[state_id]
            self._active.pop(state_id, None)

    def update_single_state(self, state: CausalState, action: Optional[CausalAction] = None) -> None:
        """Replace a registered state, optionally with a new action.

        The state's activation flag is kept.
        """
        with self._lock:
            if state.id not in self._entries:
                raise UpdateError(f"State {state.id} does not exist", details={"state_id": state.id})
            current_action = self._entries[state.id][1]
            self._entries[state.id] = (state, action or current_action)

    def update_all_states(self, state_actions: Iterable[StateAction]) -> None:
        """Replace every registered pair and clear activation flags."""
        replacement: Dict[int, StateAction] = {}
        for state, action in state_actions:
            if state.id in replacement:
                raise UpdateError(
                    f"State {state.id} listed twice", details={"state_id": state.id}
                )
            replacement[state.id] = (state, action)
        with self._lock:
            self._entries = replacement
            self._active = {state_id: False for state_id in replacement}

    def get_state(self, state_id: int) -> CausalState:
        with self._lock:
            if state_id not in self._entries:
                raise UpdateError(f"State {state_id} does not exist", details={"state_id": state_id})
            return self._entries[state_id][0]

    def is_active(self, state_id: int) -> bool:
        with self._lock:
            return self._active.get(state_id, False)

    def reset(self) -> None:
        """Re-arm every state and clear the activation history."""
        with self._lock:
            self._active = {state_id: False for state_id in self._entries}
            self._history.clear()

    @property
    def history(self) -> List[ActivationRecord]:
        with self._lock:
            return list(self._history)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, state_id: object) -> bool:
        return state_id in self._entries

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def update(self, data: Any) -> List[int]:
        """Evaluate every state against ``data`` (edge-triggered).

        States are processed in ascending id order. Vetoes do not stop the
        remaining states; the first one is raised after the pass.

        Returns:
            Ids of states whose actions fired

        Raises:
            CausalEvaluationError: If a state cannot be evaluated to a boolean
            ActionError: If an action fails
            ForbiddenError: If the gate forbade at least one action
        """
        with self._lock:
            return self._run(sorted(self._entries), data, edge_triggered=True)

    def eval_single_state(self, state_id: int, data: Any = _UNSET) -> bool:
        """Evaluate one state and fire its action whenever it is true.

        Unlike ``update`` this is level-triggered: an already active state
        fires again.

        Args:
            state_id: State to evaluate
            data: Data to evaluate; defaults to the state's own data

        Returns:
            True if the action fired
        """
        with self._lock:
            if state_id not in self._entries:
                raise UpdateError(f"State {state_id} does not exist", details={"state_id": state_id})
            return bool(self._run([state_id], data, edge_triggered=False))

    def eval_all_states(self) -> List[int]:
        """Evaluate every state against its own data (level-triggered)."""
        with self._lock:
            return self._run(sorted(self._entries), _UNSET, edge_triggered=False)

    def _run(self, state_ids: List[int], data: Any, *, edge_triggered: bool) -> List[int]:
        fired: List[int] = []
        vetoes: List[Tuple[int, Verdict]] = []

        for state_id in state_ids:
            state, action = self._entries[state_id]
            payload = state.data if data is _UNSET else data
            effect = state.eval_with_data(payload)
            active = self._activation(state, effect)
            was_active = self._active.get(state_id, False)

            if not active:
                if was_active:
                    self._active[state_id] = False
                    self._record(state_id, ActivationOutcome.DEACTIVATED, effect)
                    logger.debug("State re-armed", extra={"state_id": state_id})
                continue

            if edge_triggered and was_active:
                continue

            verdict = self._judge(state, action, effect, payload)
            if verdict is not None and not verdict.permits:
                self._active[state_id] = True
                self._record(state_id, ActivationOutcome.VETOED, effect, verdict.rationale)
                vetoes.append((state_id, verdict))
                logger.warning(
                    "Action vetoed by deontic gate",
                    extra={"state_id": state_id, "action": action.description},
                )
                continue

            action.fire()
            self._active[state_id] = True
            self._record(
                state_id,
                ActivationOutcome.FIRED,
                effect,
                verdict.rationale if verdict is not None else None,
            )
            fired.append(state_id)
            logger.info(
                "Causal action fired",
                extra={"state_id": state_id, "action": action.description, "version": state.version},
            )

        if vetoes:
            state_id, verdict = vetoes[0]
            raise ForbiddenError(verdict.rationale, verdict)
        return fired

    def _activation(self, state: CausalState, effect: Effect) -> bool:
        if effect.is_error():
            raise CausalEvaluationError(
                f"Causal state {state.id} evaluation failed: {effect.error}",
                state.id,
                effect.error,
            )
        if not isinstance(effect.value, bool):
            raise CausalEvaluationError(
                f"Causal state {state.id} evaluated to non-boolean "
                f"{type(effect.value).__name__}",
                state.id,
            )
        return effect.value

    def _judge(
        self,
        state: CausalState,
        action: CausalAction,
        effect: Effect,
        data: Any,
    ) -> Optional[Verdict]:
        if self.gate is None:
            return None
        proposed = ProposedAction(
            action_id=state.id,
            action_name=action.description,
            tags=self.tags,
            parameters=MappingProxyType(
                {
                    "state_version": state.version,
                    "action_version": action.version,
                    "trigger_value": effect.value,
                    "data": data,
                }
            ),
        )
        context = state.context if state.context is not None else self._context
        return self.gate.evaluate(proposed, context)

    def _record(
        self,
        state_id: int,
        outcome: ActivationOutcome,
        effect: Effect,
        rationale: Optional[str] = None,
    ) -> None:
        if self._config.record_audit_log:
            self._history.append(ActivationRecord(state_id, outcome, effect, rationale))

    def __repr__(self) -> str:
        return f"CSM(states={len(self._entries)}, gate={type(self.gate).__name__ if self.gate else None})"
