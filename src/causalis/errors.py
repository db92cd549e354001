"""Centralized exception hierarchy for causalis.

Only structural and normative failures are raised as exceptions. Contextual
and numerical failures inside causal functions travel as Error effects
(see ``causalis.effect``) and never reach this hierarchy unless a caller
unwraps them explicitly.

Usage:
    from causalis.errors import CausalisError, GraphError, ForbiddenError

    try:
        graph.add_edge(0, 1)
    except GraphError as e:
        print(e.code, e.message)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


# =============================================================================
# Base Error
# =============================================================================


class CausalisError(Exception):
    """Base exception for all causalis errors.

    Attributes:
        code: Error code for categorization
        recoverable: Whether the caller can reasonably retry
        details: Additional error details for debugging
    """

    code: str = "CAUSALIS_ERROR"
    default_message: str = "An unexpected causal engine error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class ConfigurationError(CausalisError):
    """Engine configuration is invalid."""

    code = "CONFIGURATION_ERROR"
    default_message = "Invalid engine configuration"
    recoverable = False


class EffectUnwrapError(CausalisError):
    """Raised when the value of an Error effect is requested."""

    code = "EFFECT_UNWRAP_ERROR"
    default_message = "Cannot unwrap an Error effect"


# =============================================================================
# Structural Errors
# =============================================================================


class GraphError(CausalisError):
    """Base error for malformed causal graphs.

    Structural errors indicate a model-construction bug and are never retried.
    """

    code = "GRAPH_ERROR"
    default_message = "Causal graph is malformed"
    recoverable = False


class FrozenGraphError(GraphError):
    """Mutation attempted on a frozen graph."""

    code = "GRAPH_FROZEN"
    default_message = "Graph is frozen and cannot be modified"


class GraphNotFrozenError(GraphError):
    """Evaluation attempted on a graph still in the building phase."""

    code = "GRAPH_NOT_FROZEN"
    default_message = "Graph is not frozen. Call freeze() first"


class NodeNotFoundError(GraphError):
    """An operation referenced a node index that does not exist.

    Attributes:
        index: The missing node index
    """

    code = "NODE_NOT_FOUND"

    def __init__(self, index: int):
        self.index = index
        super().__init__(
            f"Causaloid with index {index} not found in graph",
            details={"index": index},
        )


class CycleDetectedError(GraphError):
    """The graph contains a cycle and cannot be ordered for evaluation.

    Attributes:
        cycle: Node indices forming the cycle, in traversal order
    """

    code = "CYCLE_DETECTED"

    def __init__(self, cycle: List[int]):
        self.cycle = cycle
        path = " -> ".join(str(i) for i in cycle + cycle[:1])
        super().__init__(f"Cycle detected: {path}", details={"cycle": cycle})


class AggregationConflictError(GraphError):
    """Outgoing edges of one node carry different aggregation relations."""

    code = "AGGREGATION_CONFLICT"
    default_message = "Outgoing edges of a node must share one aggregation"


class InvalidThresholdError(GraphError):
    """A THRESHOLD node requires more true children than it has.

    Attributes:
        index: Node whose aggregation is unsatisfiable
        threshold: Required count of true children
        children: Number of children the node has
    """

    code = "INVALID_THRESHOLD"

    def __init__(self, index: int, threshold: int, children: int):
        self.index = index
        self.threshold = threshold
        self.children = children
        super().__init__(
            f"Node {index} requires {threshold} true children but has {children}",
            details={"index": index, "threshold": threshold, "children": children},
        )


class PathNotFoundError(GraphError):
    """No directed path exists between two nodes."""

    code = "PATH_NOT_FOUND"

    def __init__(self, start: int, stop: int):
        self.start = start
        self.stop = stop
        super().__init__(
            f"No path found from {start} to {stop}",
            details={"start": start, "stop": stop},
        )


# =============================================================================
# Context Errors
# =============================================================================


class ContextError(CausalisError):
    """Base error for context store operations."""

    code = "CONTEXT_ERROR"
    default_message = "Context operation failed"


class ContextoidNotFoundError(ContextError):
    """A contextoid id is not present in the context."""

    code = "CONTEXTOID_NOT_FOUND"

    def __init__(self, contextoid_id: int):
        self.contextoid_id = contextoid_id
        super().__init__(
            f"Contextoid {contextoid_id} not found",
            details={"contextoid_id": contextoid_id},
        )


class DuplicateContextoidError(ContextError):
    """A contextoid with the same id already exists."""

    code = "DUPLICATE_CONTEXTOID"

    def __init__(self, contextoid_id: int):
        self.contextoid_id = contextoid_id
        super().__init__(
            f"Contextoid {contextoid_id} already exists",
            details={"contextoid_id": contextoid_id},
        )


class ContextLockError(ContextError):
    """A thread holding a read lease attempted to mutate the context."""

    code = "CONTEXT_LOCK_ERROR"
    default_message = (
        "Context cannot be mutated while the current thread holds a read lease"
    )
    recoverable = False


# =============================================================================
# Reactive Layer Errors
# =============================================================================


class CsmError(CausalisError):
    """Base error for causal state machine operations."""

    code = "CSM_ERROR"
    default_message = "Causal state machine operation failed"


class UpdateError(CsmError):
    """Adding, replacing or removing a state failed."""

    code = "CSM_UPDATE_ERROR"


class ActionError(CsmError):
    """A causal action failed while firing."""

    code = "CSM_ACTION_ERROR"


class CausalEvaluationError(CsmError):
    """A causal state could not be evaluated to a boolean.

    Attributes:
        state_id: Id of the failing state
        error: The CausalityError carried by the Error effect, if any
    """

    code = "CSM_CAUSAL_ERROR"

    def __init__(self, message: str, state_id: int, error: Any = None):
        self.state_id = state_id
        self.error = error
        super().__init__(message, details={"state_id": state_id})


class ForbiddenError(CsmError):
    """The deontic gate vetoed a proposed action.

    This is a deliberate policy decision, not a computation failure.

    Attributes:
        explanation: Human-readable rationale naming the dominating norm
        verdict: The verdict returned by the gate
    """

    code = "CSM_FORBIDDEN"

    def __init__(self, explanation: str, verdict: Any = None):
        self.explanation = explanation
        self.verdict = verdict
        super().__init__(f"Forbidden: {explanation}")


# =============================================================================
# Deontic Errors
# =============================================================================


class DeonticError(CausalisError):
    """Base error for norm engine operations."""

    code = "DEONTIC_ERROR"
    default_message = "Norm evaluation failed"


class NormNotFoundError(DeonticError):
    """A norm id is not registered."""

    code = "NORM_NOT_FOUND"

    def __init__(self, norm_id: int):
        self.norm_id = norm_id
        super().__init__(f"Norm {norm_id} not found", details={"norm_id": norm_id})


class DuplicateNormError(DeonticError):
    """A norm with the same id already exists."""

    code = "DUPLICATE_NORM"

    def __init__(self, norm_id: int):
        self.norm_id = norm_id
        super().__init__(
            f"Norm {norm_id} already exists", details={"norm_id": norm_id}
        )


class NormGraphFrozenError(DeonticError):
    """The norm graph is verified and can no longer be modified."""

    code = "NORM_GRAPH_FROZEN"
    default_message = "Norm graph is frozen"
    recoverable = False


class NormGraphNotVerifiedError(DeonticError):
    """Actions were evaluated before the norm graph was verified."""

    code = "NORM_GRAPH_NOT_VERIFIED"
    default_message = "Norm graph must be verified before evaluating actions"
    recoverable = False


class NormGraphCyclicError(DeonticError):
    """Inheritance or defeasance links form a cycle."""

    code = "NORM_GRAPH_CYCLIC"
    default_message = "Norm graph contains a cycle"
    recoverable = False
