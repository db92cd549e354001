"""EffectEthos: a defeasible norm engine acting as a deontic gate.

Norms are linked by two relations:
- inheritance: an active parent activates its inheriting children
- defeasance: an active defeater removes a norm it outranks

Lifecycle mirrors the causal graph: norms and links are added while
building, ``verify`` checks the link graph is acyclic and freezes it, and
only then can actions be judged.

Example:
    >>> ethos = EffectEthos()
    >>> ethos.add_norm(1, "drive", {"drive"}, lambda a, c: True, Modality.IMPERMISSIBLE, timestamp=1)
    >>> ethos.verify()
    >>> ethos.evaluate(ProposedAction(7, "drive", frozenset({"drive"}))).outcome
    <Modality.IMPERMISSIBLE: 'Impermissible'>
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

import networkx as nx

from causalis.errors import (
    DuplicateNormError,
    NormGraphCyclicError,
    NormGraphFrozenError,
    NormGraphNotVerifiedError,
    NormNotFoundError,
)
from causalis.ethos.norm import Norm, NormPredicate
from causalis.ethos.types import Modality, ProposedAction, Verdict

if TYPE_CHECKING:
    from causalis.context import Context

logger = logging.getLogger(__name__)

_INHERITS = "inherits"
_DEFEATS = "defeats"


class EffectEthos:
    """Norm registry with inheritance, defeasance and verdict explanation."""

    def __init__(self) -> None:
        self._norms: Dict[int, Norm] = {}
        self._links = nx.MultiDiGraph()
        self._verified = False
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    @property
    def is_verified(self) -> bool:
        return self._verified

    def _require_building(self) -> None:
        if self._verified:
            raise NormGraphFrozenError()

    def _require_norm(self, norm_id: int) -> Norm:
        norm = self._norms.get(norm_id)
        if norm is None:
            raise NormNotFoundError(norm_id)
        return norm

    def add_norm(
        self,
        id: int,
        action_name: str,
        tags: Iterable[str],
        predicate: NormPredicate,
        modality: Modality,
        timestamp: int = 0,
        specificity: int = 0,
        priority: int = 0,
    ) -> Norm:
        """Register a norm.

        Raises:
            NormGraphFrozenError: If the engine is already verified
            DuplicateNormError: If ``id`` is taken
        """
        with self._lock:
            self._require_building()
            if id in self._norms:
                raise DuplicateNormError(id)
            norm = Norm(
                id=id,
                action_name=action_name,
                tags=frozenset(tags),
                predicate=predicate,
                modality=modality,
                timestamp=timestamp,
                specificity=specificity,
                priority=priority,
            )
            self._norms[id] = norm
            self._links.add_node(id)
            return norm

    def get_norm(self, norm_id: int) -> Norm:
        with self._lock:
            return self._require_norm(norm_id)

    def link_inheritance(self, parent_id: int, child_id: int) -> None:
        """Make ``child_id`` active whenever ``parent_id`` survives."""
        self._link(parent_id, child_id, _INHERITS)

    def link_defeasance(self, defeater_id: int, defeated_id: int) -> None:
        """Let ``defeater_id`` override ``defeated_id`` when it outranks it."""
        self._link(defeater_id, defeated_id, _DEFEATS)

    def _link(self, source: int, target: int, relation: str) -> None:
        with self._lock:
            self._require_building()
            self._require_norm(source)
            self._require_norm(target)
            if not self._links.has_edge(source, target, key=relation):
                self._links.add_edge(source, target, key=relation)

    def verify(self) -> None:
        """Check the link graph is acyclic and freeze the engine.

        Raises:
            NormGraphCyclicError: If links form a cycle
        """
        with self._lock:
            if self._verified:
                return
            if not nx.is_directed_acyclic_graph(self._links):
                cycle = [source for source, *_ in nx.find_cycle(self._links)]
                raise NormGraphCyclicError(
                    f"Norm graph contains a cycle: {cycle}", details={"cycle": cycle}
                )
            self._verified = True
            logger.info(
                "Norm graph verified",
                extra={"norms": len(self._norms), "links": self._links.number_of_edges()},
            )

    def __len__(self) -> int:
        return len(self._norms)

    # ------------------------------------------------------------------
    # Judgement
    # ------------------------------------------------------------------

    def evaluate(self, action: ProposedAction, context: Optional["Context"] = None) -> Verdict:
        """Judge ``action``.

        Candidate norms are those matching the action's name or tags; the
        active ones are resolved against defeasance and inheritance, then
        the strongest surviving modality decides.

        Raises:
            NormGraphNotVerifiedError: If ``verify`` has not been called
        """
        if not self._verified:
            raise NormGraphNotVerifiedError()

        active = [
            norm
            for _, norm in sorted(self._norms.items())
            if norm.is_candidate(action) and norm.is_active(action, context)
        ]
        if not active:
            verdict = Verdict(
                Modality.PERMISSIBLE,
                (),
                f"No active norms apply to '{action.action_name}'; "
                "the action is permissible by default.",
            )
        else:
            beliefs = self._resolve_conflicts(active)
            outcome = _strongest_modality(beliefs)
            justification = tuple(norm.id for norm in beliefs)
            rationale = self.explain_verdict(Verdict(outcome, justification))
            verdict = Verdict(outcome, justification, rationale)

        logger.debug(
            "Action judged",
            extra={
                "action_id": action.action_id,
                "action_name": action.action_name,
                "outcome": verdict.outcome.value,
                "justification": list(verdict.justification),
            },
        )
        return verdict

    def _resolve_conflicts(self, active: List[Norm]) -> List[Norm]:
        """Breadth-first defeasance and inheritance from the active norms."""
        beliefs: Dict[int, Norm] = {norm.id: norm for norm in active}
        visited = set(beliefs)
        queue = deque(norm.id for norm in active)

        while queue:
            current_id = queue.popleft()
            current = self._norms[current_id]

            defeated = any(
                self._links.has_edge(defeater_id, current_id, key=_DEFEATS)
                and defeater_id in beliefs
                and beliefs[defeater_id].defeats(current)
                for defeater_id in sorted(self._links.predecessors(current_id))
            )
            if defeated:
                beliefs.pop(current_id, None)
                continue

            for child_id in sorted(self._links.successors(current_id)):
                if child_id in visited:
                    continue
                if self._links.has_edge(current_id, child_id, key=_INHERITS):
                    visited.add(child_id)
                    beliefs[child_id] = self._norms[child_id]
                    queue.append(child_id)

        return [beliefs[norm_id] for norm_id in sorted(beliefs)]

    def explain_verdict(self, verdict: Verdict) -> str:
        """Render which norms produced ``verdict`` and which one dominated."""
        lines = [f"The final verdict is {verdict.outcome.value}."]
        norms = [self._norms[i] for i in verdict.justification if i in self._norms]
        if not norms:
            lines.append("No norms were found to justify this verdict.")
            return "\n".join(lines)

        lines.append("This verdict was reached based on the following norms:")
        lines.extend(f"- {norm.describe()}" for norm in norms)

        deciding = [n for n in norms if n.modality is verdict.outcome]
        if deciding:
            dominant = max(deciding, key=lambda n: (n.priority, n.specificity, n.timestamp, -n.id))
            lines.append(
                f"The dominating norm is {dominant.id} ('{dominant.action_name}'); "
                f"{verdict.outcome.value} takes the highest precedence among the surviving norms."
            )
        if verdict.outcome is not Modality.IMPERMISSIBLE:
            lines.append("The action is allowed because no impermissible norms were found.")
        return "\n".join(lines)


def _strongest_modality(norms: List[Norm]) -> Modality:
    if not norms:
        return Modality.PERMISSIBLE
    return max((norm.modality for norm in norms), key=lambda m: m.precedence)
