"""Deontic gate: judges actions proposed by causal state machines."""

from causalis.ethos.engine import EffectEthos
from causalis.ethos.norm import Norm, NormPredicate
from causalis.ethos.types import DeonticGate, Modality, ProposedAction, Verdict

__all__ = [
    "DeonticGate",
    "EffectEthos",
    "Modality",
    "Norm",
    "NormPredicate",
    "ProposedAction",
    "Verdict",
]
