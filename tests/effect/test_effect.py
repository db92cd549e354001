"""Tests for the Effect container and its composition algebra."""

import pytest

import causalis.effect as effect_package

from causalis.effect import (
    CausalityError,
    Effect,
    ErrorKind,
    LogKind,
    bind,
    fmap,
    from_error,
    intervene,
    pure,
)
from causalis.errors import EffectUnwrapError


def double(v):
    return Effect.pure(v * 2)


def boom_error():
    return CausalityError(ErrorKind.EVALUATION_FAILED, "boom")


class TestPure:
    """Test lifting plain values."""

    def test_pure_has_empty_state_and_log(self):
        effect = Effect.pure(5)
        assert effect.value == 5
        assert effect.is_ok()
        assert not effect.is_error()
        assert dict(effect.state) == {}
        assert effect.log == ()

    def test_functional_form(self):
        assert pure(3).value == 3

    def test_default_state_is_read_only_and_shared_empty(self):
        first, second = Effect(), Effect(value=1)
        assert dict(first.state) == {}
        assert first.state is second.state
        with pytest.raises(TypeError):
            first.state["k"] = 1

    def test_is_true_only_for_boolean_true(self):
        assert Effect.pure(True).is_true()
        assert not Effect.pure(1).is_true()
        assert not Effect.pure(False).is_true()
        assert not Effect.from_error(boom_error()).is_true()


class TestBind:
    """Test sequencing with bind."""

    def test_bind_applies_function(self):
        effect = Effect.pure(5).bind(double)
        assert effect.value == 10
        assert [entry.kind for entry in effect.log] == [LogKind.BIND]

    def test_bind_on_error_does_not_invoke_function(self):
        calls = []

        def f(v):
            calls.append(v)
            return Effect.pure(v)

        failed = Effect.from_error(boom_error())
        result = failed.bind(f)
        assert result is failed
        assert calls == []

    def test_bind_concatenates_logs_incoming_first(self):
        first = Effect.pure(1).with_entry(LogKind.NOTE, "first")
        result = first.bind(lambda v: Effect.pure(v + 1).with_entry(LogKind.NOTE, "second"))
        messages = [entry.message for entry in result.log]
        assert messages[:2] == ["first", "second"]
        assert result.log[-1].kind == LogKind.BIND

    def test_bind_merges_state_right_wins(self):
        start = Effect.pure(1).with_state(a=1, b=1)
        result = start.bind(lambda v: Effect.pure(v).with_state(b=2))
        assert dict(result.state) == {"a": 1, "b": 2}

    def test_bind_propagates_error_from_function(self):
        result = Effect.pure(1).bind(lambda v: Effect.from_error(boom_error()))
        assert result.is_error()
        assert result.error.kind == ErrorKind.EVALUATION_FAILED

    def test_bind_rejects_non_effect_return(self):
        with pytest.raises(TypeError, match="must return an Effect"):
            Effect.pure(1).bind(lambda v: v + 1)

    def test_left_identity(self):
        assert Effect.pure(4).bind(double).value == double(4).value

    def test_associativity(self):
        def inc(v):
            return Effect.pure(v + 1)

        left = Effect.pure(3).bind(double).bind(inc)
        right = Effect.pure(3).bind(lambda v: double(v).bind(inc))
        assert left.value == right.value == 7

    def test_functional_form(self):
        assert bind(pure(2), double).value == 4


class TestMap:
    """Test value transformation."""

    def test_map_transforms_value_and_keeps_log(self):
        start = Effect.pure(2).with_entry(LogKind.NOTE, "seed")
        result = start.map(lambda v: v * 10)
        assert result.value == 20
        assert result.log == start.log

    def test_map_on_error_is_noop(self):
        failed = Effect.from_error(boom_error())
        assert failed.map(lambda v: v * 10) is failed

    def test_functional_form(self):
        assert fmap(pure(2), str).value == "2"

    def test_map_alias(self):
        assert effect_package.map is fmap
        assert effect_package.map(pure(4), lambda v: v + 1).value == 5


class TestIntervene:
    """Test forced values (do-operator)."""

    def test_intervene_forces_value_and_logs(self):
        result = Effect.pure(5).bind(double).intervene(99)
        assert result.value == 99
        assert result.log[-1].kind == LogKind.INTERVENE
        assert "forced 99 replacing 10" in result.log[-1].message

    def test_intervene_overrides_error(self):
        result = Effect.from_error(boom_error()).intervene(True)
        assert result.is_ok()
        assert result.value is True
        assert "overriding error" in result.log[-1].message

    def test_functional_form(self):
        assert intervene(pure(1), 2).value == 2


class TestErrors:
    """Test error effects and extraction."""

    def test_from_error_logs_error_entry(self):
        effect = from_error(boom_error())
        assert effect.is_error()
        assert effect.log[0].kind == LogKind.ERROR

    def test_unwrap_value(self):
        assert Effect.pure("x").unwrap() == "x"

    def test_unwrap_error_raises(self):
        with pytest.raises(EffectUnwrapError) as exc_info:
            Effect.from_error(boom_error()).unwrap()
        assert exc_info.value.details["kind"] == "evaluation_failed"

    def test_attach_unit_keeps_inner_attribution(self):
        inner = boom_error().attach_unit(1, "inner")
        outer = inner.attach_unit(2, "outer")
        assert outer.unit_id == 1
        assert outer.description == "inner"

    def test_error_constructors(self):
        assert CausalityError.context_missing().kind == ErrorKind.CONTEXT_MISSING
        assert CausalityError.entity_missing(7).kind == ErrorKind.ENTITY_MISSING
        assert "7" in CausalityError.entity_missing(7).message
        assert CausalityError.numerical("nan").kind == ErrorKind.NUMERICAL_INSTABILITY
        assert CausalityError.type_mismatch("str").kind == ErrorKind.TYPE_MISMATCH


class TestExplain:
    """Test rendering of the audit log."""

    def test_explain_value(self):
        text = Effect.pure(5).bind(double).explain()
        assert text.splitlines()[-1] == "Result: Value(10)"
        assert "[bind]" in text

    def test_explain_error(self):
        text = Effect.from_error(boom_error()).explain()
        assert "Result: Error(" in text

    def test_explain_truncates(self):
        effect = Effect.pure(1)
        for i in range(3):
            effect = effect.with_entry(LogKind.NOTE, f"step {i}")
        lines = effect.explain(max_entries=1).splitlines()
        assert lines[0] == "... 2 earlier entries omitted"
        assert "step 2" in lines[1]

    def test_log_entry_renders_unit(self):
        effect = Effect.pure(1).with_entry(LogKind.EVALUATE, "checked", unit_id=3)
        assert str(effect.log[0]) == "[evaluate] unit 3: checked"
