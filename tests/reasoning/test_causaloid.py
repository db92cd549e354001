"""Tests for causal units."""

import math

import pytest

from causalis.config import EngineConfig
from causalis.context import Contextoid
from causalis.effect import Effect, ErrorKind, LogKind
from causalis.errors import GraphNotFrozenError
from causalis.reasoning import ANY, Causaloid, CausaloidGraph, CausaloidKind, threshold

from tests.conftest import TEMPERATURE_ID, failed


def above_half(v):
    return Effect.pure(v > 0.5)


class TestSingleton:
    """Test atomic causal functions."""

    def test_evaluate_value(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        result = unit.evaluate(Effect.pure(0.7))
        assert result.value is True
        assert unit.kind == CausaloidKind.SINGLETON

    def test_plain_value_is_lifted(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        assert unit.evaluate(0.2).value is False

    def test_evaluation_is_logged(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        entry = unit.evaluate(0.7).log[-1]
        assert entry.kind == LogKind.EVALUATE
        assert entry.unit_id == 1
        assert entry.message == "above half -> True"

    def test_error_input_returned_unchanged(self, recorder):
        unit = recorder.unit(1, True)
        incoming = failed()
        assert unit.evaluate(incoming) is incoming
        assert recorder.calls == []

    def test_input_log_is_preserved(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        seed = Effect.pure(0.9).with_entry(LogKind.NOTE, "sensor read")
        result = unit.evaluate(seed)
        assert result.log[0].message == "sensor read"
        assert result.log[-1].kind == LogKind.EVALUATE

    def test_input_state_is_carried(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        result = unit.evaluate(Effect.pure(0.9).with_state(sensor="a"))
        assert result.state["sensor"] == "a"

    def test_recording_can_be_disabled(self):
        config = EngineConfig(record_audit_log=False)
        unit = Causaloid.from_fn(1, above_half, "above half", config=config)
        assert unit.evaluate(0.7).log == ()


class TestFunctionBoundary:
    """Test conversion of misbehaving causal functions into Error effects."""

    def test_arithmetic_error_is_numerical_instability(self):
        unit = Causaloid.from_fn(1, lambda v: Effect.pure(1 / v), "inverse")
        result = unit.evaluate(0)
        assert result.error.kind == ErrorKind.NUMERICAL_INSTABILITY
        assert "ZeroDivisionError" in result.error.message

    def test_domain_error_is_numerical_instability(self):
        unit = Causaloid.from_fn(1, lambda v: Effect.pure(math.sqrt(v)), "root")
        assert unit.evaluate(-1.0).error.kind == ErrorKind.NUMERICAL_INSTABILITY

    def test_non_finite_result_is_numerical_instability(self):
        unit = Causaloid.from_fn(1, lambda v: Effect.pure(float("inf")), "blow up")
        assert unit.evaluate(1).error.kind == ErrorKind.NUMERICAL_INSTABILITY

    def test_non_effect_return_is_type_mismatch(self):
        unit = Causaloid.from_fn(1, lambda v: v > 0.5, "forgot to wrap")
        assert unit.evaluate(0.7).error.kind == ErrorKind.TYPE_MISMATCH

    def test_other_exceptions_propagate(self):
        def broken(v):
            raise RuntimeError("bug")

        unit = Causaloid.from_fn(1, broken, "broken")
        with pytest.raises(RuntimeError, match="bug"):
            unit.evaluate(1)

    def test_error_is_attributed_to_unit(self):
        unit = Causaloid.from_fn(7, lambda v: failed(), "always fails")
        error = unit.evaluate(1).error
        assert error.unit_id == 7
        assert error.description == "always fails"
        assert error.log

    def test_error_log_includes_upstream_entries(self):
        unit = Causaloid.from_fn(7, lambda v: failed(), "always fails")
        seed = Effect.pure(1).with_entry(LogKind.NOTE, "upstream reading")
        error = unit.evaluate(seed).error
        assert error.log[0].message == "upstream reading"
        assert error.log[-1].kind == LogKind.ERROR

    def test_member_error_log_includes_upstream_entries(self):
        member = Causaloid.from_fn(3, lambda v: failed(), "member fails")
        collection = Causaloid.from_collection(10, [member], "all members")
        seed = Effect.pure(1).with_entry(LogKind.NOTE, "upstream reading")
        error = collection.evaluate(seed).error
        assert error.unit_id == 3
        assert error.log[0].message == "upstream reading"


class TestContextual:
    """Test context-reading causal functions."""

    def test_missing_context_is_error(self, fever_unit):
        result = fever_unit.evaluate(0)
        assert result.error.kind == ErrorKind.CONTEXT_MISSING
        assert result.error.unit_id == fever_unit.id

    def test_evaluation_context(self, fever_unit, clinic_context):
        assert fever_unit.evaluate(0, context=clinic_context).value is True

    def test_bound_context(self, fever_unit, clinic_context):
        bound = fever_unit.with_context(clinic_context)
        assert bound.evaluate(0).value is True
        assert fever_unit.context is None

    def test_explicit_context_wins_over_bound(self, fever_unit, clinic_context):
        bound = fever_unit.with_context(clinic_context)
        healthy = clinic_context.alter({TEMPERATURE_ID: 36.6})
        assert bound.evaluate(0, context=healthy).value is False

    def test_missing_entity_is_error(self, fever_unit, clinic_context):
        clinic_context.remove_node(TEMPERATURE_ID)
        result = fever_unit.evaluate(0, context=clinic_context)
        assert result.error.kind == ErrorKind.ENTITY_MISSING

    def test_state_is_passed(self, clinic_context):
        def exceeds_limit(value, state, context):
            return Effect.pure(context.get(TEMPERATURE_ID).value > state["limit"])

        unit = Causaloid.from_contextual_fn(1, exceeds_limit, "exceeds limit")
        assert unit.evaluate(0, state={"limit": 38.0}, context=clinic_context).value is True
        assert unit.evaluate(0, state={"limit": 39.0}, context=clinic_context).value is False

    def test_read_lease_held_during_evaluation(self, clinic_context):
        def lease_held(value, state, context):
            return Effect.pure(context.reader_count > 0)

        unit = Causaloid.from_contextual_fn(1, lease_held, "lease held")
        assert unit.evaluate(0, context=clinic_context).value is True
        assert clinic_context.reader_count == 0

    def test_context_attached_to_output(self, fever_unit, clinic_context):
        result = fever_unit.evaluate(0, context=clinic_context)
        assert result.context is clinic_context
        assert clinic_context.get(TEMPERATURE_ID) == Contextoid.data(
            TEMPERATURE_ID, 38.5, label="temperature"
        )


class TestCollection:
    """Test collections of units."""

    def test_default_aggregation_is_all(self, recorder):
        unit = Causaloid.from_collection(
            10, [recorder.unit(1, True), recorder.unit(2, False), recorder.unit(3, True)], "all"
        )
        assert unit.evaluate(0).value is False
        assert recorder.count(3) == 0

    def test_any_collection(self, recorder):
        unit = Causaloid.from_collection(
            10, [recorder.unit(1, False), recorder.unit(2, True)], "any", ANY
        )
        assert unit.evaluate(0).value is True

    def test_threshold_collection(self, recorder):
        members = [recorder.unit(i, v) for i, v in enumerate([True, False, True, True])]
        assert Causaloid.from_collection(10, members, "3 of 4", threshold(3)).evaluate(0).value
        assert not Causaloid.from_collection(10, members, "4 of 4", threshold(4)).evaluate(0).value

    def test_members_receive_context(self, fever_unit, clinic_context):
        unit = Causaloid.from_collection(10, [fever_unit], "fever")
        assert unit.evaluate(0, context=clinic_context).value is True

    def test_empty_collection_is_error(self):
        result = Causaloid.from_collection(10, [], "empty").evaluate(0)
        assert result.error.kind == ErrorKind.EVALUATION_FAILED
        assert result.error.unit_id == 10


class TestGraphUnit:
    """Test units wrapping a whole graph."""

    def test_requires_frozen_graph(self):
        with pytest.raises(GraphNotFrozenError):
            Causaloid.from_graph(1, CausaloidGraph(), "unfrozen")

    def test_delegates_to_graph(self, recorder):
        graph = CausaloidGraph()
        graph.add_root_causaloid(recorder.unit(1, True))
        graph.freeze()
        unit = Causaloid.from_graph(5, graph, "nested")
        result = unit.evaluate(0)
        assert result.value is True
        assert unit.kind == CausaloidKind.GRAPH
        assert result.log[-1].unit_id == 5


class TestExplain:
    def test_explain_before_evaluation(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        assert "has not been evaluated" in unit.explain()

    def test_explain_last_evaluation(self):
        unit = Causaloid.from_fn(1, above_half, "above half")
        unit.evaluate(0.9)
        text = unit.explain()
        assert text.startswith("Causaloid 1 'above half' (singleton)")
        assert text.endswith("Result: Value(True)")
