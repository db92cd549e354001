"""Tests for the causal state machine and its deontic gate."""

import pytest

from causalis.csm import CSM, ActivationOutcome, CausalAction, CausalState
from causalis.effect import Effect
from causalis.errors import ActionError, CausalEvaluationError, ForbiddenError, UpdateError
from causalis.ethos import EffectEthos, Modality, ProposedAction, Verdict
from causalis.reasoning import Causaloid

from tests.conftest import failed


class Counter:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


def above(limit, id=1):
    return Causaloid.from_fn(id, lambda v: Effect.pure(v > limit), f"reading above {limit}")


def make_csm(counter, gate=None, description="sound alarm", tags=("alarm",), data=0.0):
    state = CausalState(1, 1, data, above(0.5))
    return CSM([(state, CausalAction(counter, description))], gate, tags=tags)


def forbidding_ethos(action_name="sound alarm"):
    ethos = EffectEthos()
    ethos.add_norm(
        1, action_name, {"alarm"}, lambda action, context: True, Modality.IMPERMISSIBLE,
        timestamp=1, specificity=10, priority=1,
    )
    ethos.verify()
    return ethos


class RecordingGate:
    """Gate that records proposals and returns a fixed verdict."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.proposals = []

    def evaluate(self, action, context=None):
        self.proposals.append(action)
        return Verdict(self.outcome, (), f"fixed {self.outcome.value}")


class TestEdgeTriggering:
    """Test that actions fire once per not-active -> active transition."""

    def test_no_gate_fires_exactly_once(self):
        counter = Counter()
        csm = make_csm(counter)
        assert csm.update(0.9) == [1]
        assert csm.update(0.95) == []
        assert counter.count == 1
        assert csm.is_active(1)

    def test_returning_inactive_rearms(self):
        counter = Counter()
        csm = make_csm(counter)
        csm.update(0.9)
        csm.update(0.1)
        assert not csm.is_active(1)
        csm.update(0.9)
        assert counter.count == 2

    def test_false_does_not_fire(self):
        counter = Counter()
        csm = make_csm(counter)
        assert csm.update(0.1) == []
        assert counter.count == 0

    def test_history_records_transitions(self):
        counter = Counter()
        csm = make_csm(counter)
        csm.update(0.9)
        csm.update(0.1)
        assert [r.outcome for r in csm.history] == [
            ActivationOutcome.FIRED,
            ActivationOutcome.DEACTIVATED,
        ]

    def test_reset_rearms(self):
        counter = Counter()
        csm = make_csm(counter)
        csm.update(0.9)
        csm.reset()
        csm.update(0.9)
        assert counter.count == 2
        assert len(csm.history) == 1


class TestDeonticGate:
    """Test verdict handling."""

    def test_impermissible_vetoes(self):
        counter = Counter()
        csm = make_csm(counter, gate=forbidding_ethos())
        with pytest.raises(ForbiddenError) as exc_info:
            csm.update(0.9)
        assert counter.count == 0
        assert str(exc_info.value).startswith("Forbidden: The final verdict is Impermissible.")
        assert exc_info.value.verdict.outcome == Modality.IMPERMISSIBLE
        assert "Norm 1: 'sound alarm'" in exc_info.value.explanation

    def test_veto_is_not_reproposed_while_active(self):
        counter = Counter()
        csm = make_csm(counter, gate=forbidding_ethos())
        with pytest.raises(ForbiddenError):
            csm.update(0.9)
        assert csm.update(0.95) == []
        assert csm.history[0].outcome == ActivationOutcome.VETOED

    @pytest.mark.parametrize("outcome", [Modality.PERMISSIBLE, Modality.OBLIGATORY])
    def test_permitting_verdicts_fire(self, outcome):
        counter = Counter()
        csm = make_csm(counter, gate=RecordingGate(outcome))
        assert csm.update(0.9) == [1]
        assert counter.count == 1

    def test_proposed_action_contents(self):
        gate = RecordingGate(Modality.PERMISSIBLE)
        csm = make_csm(Counter(), gate=gate)
        csm.update(0.9)
        (proposal,) = gate.proposals
        assert isinstance(proposal, ProposedAction)
        assert proposal.action_id == 1
        assert proposal.action_name == "sound alarm"
        assert proposal.tags == frozenset({"alarm"})
        assert proposal.parameters["trigger_value"] is True
        assert proposal.parameters["data"] == 0.9

    def test_gate_not_consulted_without_transition(self):
        gate = RecordingGate(Modality.PERMISSIBLE)
        csm = make_csm(Counter(), gate=gate)
        csm.update(0.1)
        csm.update(0.9)
        csm.update(0.9)
        assert len(gate.proposals) == 1

    def test_veto_does_not_block_other_states(self):
        ethos = EffectEthos()
        ethos.add_norm(1, "launch", set(), lambda a, c: True, Modality.IMPERMISSIBLE)
        ethos.verify()
        launch, log = Counter(), Counter()
        csm = CSM(
            [
                (CausalState(1, 1, 0.0, above(0.5, 1)), CausalAction(launch, "launch")),
                (CausalState(2, 1, 0.0, above(0.5, 2)), CausalAction(log, "write log")),
            ],
            ethos,
        )
        with pytest.raises(ForbiddenError):
            csm.update(0.9)
        assert launch.count == 0
        assert log.count == 1


class TestFailures:
    """Test evaluation and action failures."""

    def test_error_effect_raises(self):
        unit = Causaloid.from_fn(1, lambda v: failed("sensor offline"), "broken sensor")
        csm = CSM([(CausalState(1, 1, 0, unit), CausalAction(Counter(), "noop"))])
        with pytest.raises(CausalEvaluationError) as exc_info:
            csm.update(1)
        assert exc_info.value.state_id == 1
        assert exc_info.value.error.message == "sensor offline"

    def test_non_boolean_raises(self):
        unit = Causaloid.from_fn(1, lambda v: Effect.pure(v * 2), "doubling")
        csm = CSM([(CausalState(1, 1, 0, unit), CausalAction(Counter(), "noop"))])
        with pytest.raises(CausalEvaluationError, match="non-boolean"):
            csm.update(1)

    def test_action_failure_raises_and_stays_armed(self):
        def explode():
            raise RuntimeError("relay stuck")

        csm = make_csm(Counter())
        csm.update_single_state(csm.get_state(1), CausalAction(explode, "sound alarm"))
        with pytest.raises(ActionError, match="relay stuck"):
            csm.update(0.9)
        assert not csm.is_active(1)


class TestStateManagement:
    """Test adding, removing and replacing states."""

    def test_duplicate_state_raises(self):
        csm = make_csm(Counter())
        with pytest.raises(UpdateError):
            csm.add_single_state(CausalState(1, 2, 0, above(0.1)), CausalAction(Counter(), "x"))

    def test_remove_missing_state_raises(self):
        with pytest.raises(UpdateError):
            CSM().remove_single_state(5)

    def test_update_missing_state_raises(self):
        with pytest.raises(UpdateError):
            CSM().update_single_state(CausalState(5, 1, 0, above(0.1)))

    def test_update_single_state_replaces_causaloid(self):
        counter = Counter()
        csm = make_csm(counter)
        csm.update_single_state(CausalState(1, 2, 0, above(0.95)))
        assert csm.update(0.9) == []
        assert csm.get_state(1).version == 2

    def test_update_all_states(self):
        first, second = Counter(), Counter()
        csm = make_csm(first)
        csm.update(0.9)
        csm.update_all_states([(CausalState(3, 1, 0, above(0.5, 3)), CausalAction(second, "y"))])
        assert len(csm) == 1
        assert 3 in csm and 1 not in csm
        assert csm.update(0.9) == [3]
        assert second.count == 1

    def test_remove_state(self):
        csm = make_csm(Counter())
        csm.remove_single_state(1)
        assert len(csm) == 0
        assert csm.update(0.9) == []


class TestExplicitEvaluation:
    """Test level-triggered re-evaluation."""

    def test_eval_single_state_fires_each_time(self):
        counter = Counter()
        csm = make_csm(counter)
        assert csm.eval_single_state(1, 0.9)
        assert csm.eval_single_state(1, 0.9)
        assert counter.count == 2

    def test_eval_single_state_uses_own_data(self):
        counter = Counter()
        csm = make_csm(counter, data=0.8)
        assert csm.eval_single_state(1)
        assert not csm.eval_single_state(1, 0.1)
        assert counter.count == 1

    def test_eval_single_state_missing(self):
        with pytest.raises(UpdateError):
            CSM().eval_single_state(1, 0.9)

    def test_eval_all_states(self):
        hot, cold = Counter(), Counter()
        csm = CSM(
            [
                (CausalState(1, 1, 0.9, above(0.5, 1)), CausalAction(hot, "hot")),
                (CausalState(2, 1, 0.1, above(0.5, 2)), CausalAction(cold, "cold")),
            ]
        )
        assert csm.eval_all_states() == [1]
        assert csm.eval_all_states() == [1]
        assert (hot.count, cold.count) == (2, 0)

    def test_eval_single_state_vetoed(self):
        counter = Counter()
        csm = make_csm(counter, gate=forbidding_ethos())
        with pytest.raises(ForbiddenError):
            csm.eval_single_state(1, 0.9)
        assert counter.count == 0
