"""Causal State Machine: fires actions when causal conditions become true."""

from causalis.csm.machine import CSM
from causalis.csm.state import ActivationOutcome, ActivationRecord, CausalAction, CausalState

__all__ = [
    "CSM",
    "ActivationOutcome",
    "ActivationRecord",
    "CausalAction",
    "CausalState",
]
