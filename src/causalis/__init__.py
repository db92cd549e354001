"""Causalis - composable causal reasoning engine.

Causal units (causaloids) return Effects, compose into frozen DAGs with
aggregation edges, read an explicit context store, and drive causal state
machines whose actions pass through a deontic gate.

Packages:
- causalis.effect: Effect container and composition algebra
- causalis.context: Context store of contextoids
- causalis.reasoning: Causaloids, graphs, aggregation, counterfactuals
- causalis.csm: Causal state machine
- causalis.ethos: Deontic gate and the EffectEthos norm engine
"""

__version__ = "0.1.0"

from causalis.config import EngineConfig, load_config
from causalis.context import Context, Contextoid
from causalis.csm import CSM, CausalAction, CausalState
from causalis.effect import CausalityError, Effect, ErrorKind
from causalis.errors import CausalisError
from causalis.ethos import EffectEthos, Modality, ProposedAction, Verdict
from causalis.reasoning import (
    ALL,
    ANY,
    NONE,
    Causaloid,
    CausaloidGraph,
    evaluate_counterfactual,
    threshold,
)

__all__ = [
    "__version__",
    "EngineConfig",
    "load_config",
    "Context",
    "Contextoid",
    "CSM",
    "CausalAction",
    "CausalState",
    "CausalityError",
    "Effect",
    "ErrorKind",
    "CausalisError",
    "EffectEthos",
    "Modality",
    "ProposedAction",
    "Verdict",
    "ALL",
    "ANY",
    "NONE",
    "Causaloid",
    "CausaloidGraph",
    "evaluate_counterfactual",
    "threshold",
]
