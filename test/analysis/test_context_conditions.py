"""Tests for the context-condition checker (neurosolve.analysis.context_conditions)."""

from __future__ import annotations

import pytest

from neurosolve import ContextConditionError, analyze
from neurosolve.analysis import (
    CONTEXT_CONDITIONS,
    CheckResult,
    ContextViolation,
    RuleRegistry,
    check_context_conditions,
)
from neurosolve.ir import (
    Assignment,
    CallStatement,
    BinaryOp,
    FunctionCall,
    IfStatement,
    Literal,
    NeuronModel,
    VarRef,
    convolve,
    emit_spike,
    exp,
)


def _psc_with(model: NeuronModel, synaptic) -> NeuronModel:
    """Replace the membrane equation's synaptic term."""
    model.equations.clear()
    model.add_ode(
        "V_m",
        -VarRef("V_m") / VarRef("tau_m") + (synaptic + VarRef("I_stim")) / VarRef("C_m"),
    )
    return model


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestCheckEngine:
    """Running the registered rules over a model and collecting violations."""

    def test_valid_models(self, leak_model: NeuronModel, psc_model: NeuronModel) -> None:
        for model in (leak_model, psc_model):
            result = check_context_conditions(model)
            assert result.is_valid, result.summary()
            assert result.rules_violated == []

    def test_all_rules_registered(self) -> None:
        assert set(CONTEXT_CONDITIONS) == {
            "buffer-kind-uniqueness",
            "derivative-order-contiguity",
            "name-shadowing",
            "function-alias-recursion",
            "ode-order-consistency",
            "spike-emission-placement",
            "undeclared-identifier",
            "convolve-well-formedness",
            "buffer-usage",
            "shape-usage",
            "assignment-target",
            "unit-consistency",
        }

    def test_collects_every_violation(self, leak_model: NeuronModel) -> None:
        leak_model.add_parameter("exp", 1.0)
        leak_model.update.append(Assignment(VarRef("tau_m"), Literal(1.0, "ms")))
        result = check_context_conditions(leak_model)
        assert not result.is_valid
        assert set(result.rules_violated) == {"name-shadowing", "assignment-target"}

    def test_selected_rules(self, leak_model: NeuronModel) -> None:
        leak_model.add_parameter("exp", 1.0)
        leak_model.update.append(Assignment(VarRef("tau_m"), Literal(1.0, "ms")))
        result = check_context_conditions(leak_model, rules=["assignment-target"])
        assert result.rules_violated == ["assignment-target"]

    def test_unknown_rule(self, leak_model: NeuronModel) -> None:
        with pytest.raises(KeyError, match="not registered"):
            check_context_conditions(leak_model, rules=["no-such-rule"])

    def test_summary(self, leak_model: NeuronModel) -> None:
        assert "VALID" in check_context_conditions(leak_model).summary()
        leak_model.add_parameter("pi", 3.0)
        summary = str(check_context_conditions(leak_model))
        assert "INVALID" in summary
        assert "[name-shadowing]" in summary

    def test_analyze_raises_with_all_violations(self, leak_model: NeuronModel) -> None:
        leak_model.add_parameter("exp", 1.0)
        leak_model.update.append(Assignment(VarRef("tau_m"), Literal(1.0, "ms")))
        with pytest.raises(ContextConditionError) as excinfo:
            analyze(leak_model)
        rules = {v.rule for v in excinfo.value.violations}
        assert rules == {"name-shadowing", "assignment-target"}
        assert "2 context condition(s)" in str(excinfo.value)


class TestRuleRegistry:
    """Registration and lookup of named rules."""

    def test_register_and_get(self) -> None:
        registry = RuleRegistry("TEST")

        def rule(resolved):
            return []

        registry.register("always-valid", rule)
        assert "always-valid" in registry
        assert registry.get("always-valid") is rule
        assert registry.list_registered() == ["always-valid"]
        assert len(registry) == 1

    def test_overwrite_warns(self) -> None:
        registry = RuleRegistry("TEST")
        registry.register("r", lambda resolved: [])
        with pytest.warns(UserWarning, match="already registered"):
            registry.register("r", lambda resolved: [])

    def test_missing_rule(self) -> None:
        with pytest.raises(KeyError):
            RuleRegistry("TEST").get("missing")

    def test_check_result_helpers(self) -> None:
        result = CheckResult()
        result.extend([ContextViolation("a", None, "first"), ContextViolation("b", None, "second")])
        result.extend([ContextViolation("a", None, "third", "line 3")])
        assert result.rules_violated == ["a", "b"]
        assert [v.message for v in result.by_rule("a")] == ["first", "third"]
        assert str(result.violations[2]) == "[a] third at line 3"


# ---------------------------------------------------------------------------
# Declaration rules
# ---------------------------------------------------------------------------


class TestBufferKindUniqueness:
    """Each input buffer names one kind."""

    def test_repeated_sign_gives_exactly_one_violation(self, leak_model: NeuronModel) -> None:
        leak_model.add_parameter("tau_syn", Literal(2.0, "ms"), "ms")
        leak_model.add_shape("I_kernel", exp(-VarRef("t") / VarRef("tau_syn")))
        leak_model.add_input("spikeInh", "inhibitory", "inhibitory", "spike", unit="pA")
        _psc_with(leak_model, convolve("I_kernel", "spikeInh"))
        result = check_context_conditions(leak_model)
        assert len(result.violations) == 1
        violation = result.violations[0]
        assert violation.rule == "buffer-kind-uniqueness"
        assert "repeats qualifier(s) inhibitory" in violation.message

    @pytest.mark.parametrize(
        "qualifiers, problem",
        [
            (("excitatory", "inhibitory", "spike"), "both excitatory and inhibitory"),
            (("spike", "current"), "mixes spike and current"),
            (("inhibitory", "current"), "mixes spike and current"),
            ((), "names no kind"),
            (("analog",), "unknown qualifier"),
            (("current", "current"), "repeats qualifier"),
        ],
    )
    def test_invalid_qualifiers(self, leak_model: NeuronModel, qualifiers, problem) -> None:
        leak_model.add_input("buf", *qualifiers, unit="pA")
        violations = check_context_conditions(leak_model).by_rule("buffer-kind-uniqueness")
        assert len(violations) == 1
        assert problem in violations[0].message

    def test_current_buffer_is_valid(self, leak_model: NeuronModel) -> None:
        assert check_context_conditions(leak_model).by_rule("buffer-kind-uniqueness") == []


class TestDerivativeOrderContiguity:
    """State derivative orders without gaps."""

    def test_gap_in_orders(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("g", 0.0, order=0)
        leak_model.add_state("g", 0.0, order=2)
        leak_model.add_ode("g", -VarRef("g"), order=3)
        violations = check_context_conditions(leak_model).by_rule("derivative-order-contiguity")
        assert len(violations) == 1
        assert "g'" in violations[0].message

    def test_missing_base_order(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("g", 0.0, order=1)
        violations = check_context_conditions(leak_model).by_rule("derivative-order-contiguity")
        assert len(violations) == 1

    def test_contiguous_orders(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("g", 0.0, order=0)
        leak_model.add_state("g", 0.0, order=1)
        leak_model.add_ode("g", -VarRef("g"), order=2)
        assert check_context_conditions(leak_model).by_rule("derivative-order-contiguity") == []


class TestNameShadowing:
    """Declarations may not reuse reserved or earlier names."""

    @pytest.mark.parametrize("name", ["exp", "convolve", "resolution", "e", "pi", "t", "inf"])
    def test_shadowed_names(self, leak_model: NeuronModel, name: str) -> None:
        leak_model.add_parameter(name, 1.0)
        violations = check_context_conditions(leak_model).by_rule("name-shadowing")
        assert len(violations) == 1
        assert f"'{name}'" in violations[0].message

    def test_ordinary_names(self, leak_model: NeuronModel) -> None:
        leak_model.add_parameter("exponent", 1.0)
        assert check_context_conditions(leak_model).by_rule("name-shadowing") == []


class TestFunctionAliasRecursion:
    """Function aliases may not refer to themselves."""

    def test_self_reference(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", VarRef("f") + 1)
        violations = check_context_conditions(leak_model).by_rule("function-alias-recursion")
        assert len(violations) == 1
        assert "'f'" in violations[0].message

    def test_mutual_recursion(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", VarRef("g") + 1)
        leak_model.add_function("g", VarRef("f") * 2)
        leak_model.add_function("h", VarRef("f"))
        violations = check_context_conditions(leak_model).by_rule("function-alias-recursion")
        assert sorted(v.node.name for v in violations) == ["f", "g"]

    def test_chained_aliases(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", VarRef("g") + 1)
        leak_model.add_function("g", VarRef("V_m"))
        assert check_context_conditions(leak_model).by_rule("function-alias-recursion") == []


# ---------------------------------------------------------------------------
# Equation rules
# ---------------------------------------------------------------------------


class TestOdeOrderConsistency:
    """ODE orders against the declared state derivatives."""

    def test_ode_for_parameter(self, leak_model: NeuronModel) -> None:
        leak_model.add_ode("tau_m", Literal(0.0))
        violations = check_context_conditions(leak_model).by_rule("ode-order-consistency")
        assert len(violations) == 1
        assert "parameter 'tau_m'" in violations[0].message

    def test_order_too_high(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].order = 2
        violations = check_context_conditions(leak_model).by_rule("ode-order-consistency")
        assert len(violations) == 1
        assert "order 1" in violations[0].message

    def test_two_equations(self, leak_model: NeuronModel) -> None:
        leak_model.add_ode("V_m", -VarRef("V_m") / VarRef("tau_m"))
        violations = check_context_conditions(leak_model).by_rule("ode-order-consistency")
        assert len(violations) == 1
        assert "more than one" in violations[0].message

    def test_declared_derivative_without_equation(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("g", 0.0, order=0)
        leak_model.add_state("g", 0.0, order=1)
        violations = check_context_conditions(leak_model).by_rule("ode-order-consistency")
        assert len(violations) == 1
        assert "no differential equation" in violations[0].message

    def test_state_without_equation_is_held(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("r", 0, "integer")
        assert check_context_conditions(leak_model).by_rule("ode-order-consistency") == []

    def test_ode_form_shape_order(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("g", 0.0)
        leak_model.add_shape("g", -VarRef("g"), order=2)
        violations = check_context_conditions(leak_model).by_rule("ode-order-consistency")
        assert len(violations) == 1
        assert "order 1" in violations[0].message


class TestSpikeEmissionPlacement:
    """Where spikes may be emitted."""

    def test_in_function(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", emit_spike())
        violations = check_context_conditions(leak_model).by_rule("spike-emission-placement")
        assert len(violations) == 1
        assert "functions block" in violations[0].message

    def test_in_equation(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = leak_model.equations[0].rhs + emit_spike()
        violations = check_context_conditions(leak_model).by_rule("spike-emission-placement")
        assert len(violations) == 1
        assert "equations block" in violations[0].message

    def test_inside_assignment(self, leak_model: NeuronModel) -> None:
        leak_model.update.append(Assignment(VarRef("V_m"), emit_spike()))
        violations = check_context_conditions(leak_model).by_rule("spike-emission-placement")
        assert len(violations) == 1
        assert "statement on its own" in violations[0].message

    def test_update_statement_is_valid(self, leak_model: NeuronModel) -> None:
        leak_model.update.append(CallStatement(emit_spike()))
        assert check_context_conditions(leak_model).by_rule("spike-emission-placement") == []


# ---------------------------------------------------------------------------
# Reference rules
# ---------------------------------------------------------------------------


class TestUndeclaredIdentifiers:
    """References to names that are never declared."""

    def test_undeclared_variable(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = -VarRef("V_m") / VarRef("tau_x")
        violations = check_context_conditions(leak_model).by_rule("undeclared-identifier")
        assert len(violations) == 1
        assert "'tau_x' is not declared" in violations[0].message
        assert violations[0].node == VarRef("tau_x")

    def test_unknown_function(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", FunctionCall("sigmoid", (VarRef("V_m"),)))
        violations = check_context_conditions(leak_model).by_rule("undeclared-identifier")
        assert len(violations) == 1
        assert "Unknown function 'sigmoid'" in violations[0].message

    def test_undeclared_derivative(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("dV", VarRef("V_m", 1))
        violations = check_context_conditions(leak_model).by_rule("undeclared-identifier")
        assert len(violations) == 1
        assert "Derivative V_m'" in violations[0].message

    def test_time_and_constants_are_built_in(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", VarRef("t") * VarRef("pi") + VarRef("e"))
        assert check_context_conditions(leak_model).by_rule("undeclared-identifier") == []


class TestConvolveWellFormedness:
    """Arguments of convolve calls."""

    def test_expression_as_shape_gives_exactly_one_violation(self, psc_model: NeuronModel) -> None:
        _psc_with(psc_model, convolve(VarRef("V_m") + VarRef("V_m"), "spikeExc"))
        result = check_context_conditions(psc_model)
        assert len(result.violations) == 1
        violation = result.violations[0]
        assert violation.rule == "convolve-well-formedness"
        assert "First argument" in violation.message
        assert violation.node == VarRef("V_m") + VarRef("V_m")

    def test_current_buffer_as_spike_source(self, psc_model: NeuronModel) -> None:
        _psc_with(psc_model, convolve("I_kernel", "I_stim"))
        violations = check_context_conditions(psc_model).by_rule("convolve-well-formedness")
        assert len(violations) == 1
        assert "Second argument" in violations[0].message

    def test_both_arguments_invalid(self, psc_model: NeuronModel) -> None:
        _psc_with(psc_model, convolve("tau_m", "C_m"))
        violations = check_context_conditions(psc_model).by_rule("convolve-well-formedness")
        assert len(violations) == 2

    def test_wrong_arity(self, psc_model: NeuronModel) -> None:
        call = FunctionCall("convolve", (VarRef("I_kernel"), VarRef("spikeExc"), VarRef("V_m")))
        _psc_with(psc_model, call)
        violations = check_context_conditions(psc_model).by_rule("convolve-well-formedness")
        assert len(violations) == 1
        assert "takes 2 arguments" in violations[0].message


class TestBufferUsage:
    """Spike and current buffers in expressions."""

    def test_spike_buffer_outside_convolve(self, psc_model: NeuronModel) -> None:
        _psc_with(psc_model, convolve("I_kernel", "spikeExc") + VarRef("spikeExc"))
        violations = check_context_conditions(psc_model).by_rule("buffer-usage")
        assert len(violations) == 1
        assert "outside convolve()" in violations[0].message

    def test_current_times_state(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = -VarRef("V_m") / VarRef("tau_m") + (
            VarRef("I_stim") * VarRef("V_m") / VarRef("C_m") / Literal(1.0, "mV")
        )
        violations = check_context_conditions(leak_model).by_rule("buffer-usage")
        assert len(violations) == 1
        assert violations[0].node == VarRef("I_stim")

    def test_current_inside_function_call(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", exp(VarRef("I_stim") / Literal(1.0, "pA")))
        violations = check_context_conditions(leak_model).by_rule("buffer-usage")
        assert len(violations) == 1
        assert "additive forcing term" in violations[0].message

    def test_scaled_current_is_additive(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = -VarRef("V_m") / VarRef("tau_m") + 2 * VarRef(
            "I_stim"
        ) / VarRef("C_m")
        assert check_context_conditions(leak_model).by_rule("buffer-usage") == []


class TestShapeUsage:
    """Shapes referenced outside convolutions."""

    def test_shape_outside_convolve(self, psc_model: NeuronModel) -> None:
        _psc_with(psc_model, convolve("I_kernel", "spikeExc") * VarRef("I_kernel"))
        violations = check_context_conditions(psc_model).by_rule("shape-usage")
        assert len(violations) == 1
        assert "first argument of convolve()" in violations[0].message

    def test_ode_form_shape_refers_to_itself(self, leak_model: NeuronModel) -> None:
        leak_model.add_state("g", 0.0)
        leak_model.add_parameter("tau_syn", Literal(2.0, "ms"), "ms")
        leak_model.add_shape("g", -VarRef("g") / VarRef("tau_syn"), order=1)
        assert check_context_conditions(leak_model).by_rule("shape-usage") == []


class TestAssignmentTarget:
    """Which declarations may be assigned to."""

    def test_assign_parameter(self, leak_model: NeuronModel) -> None:
        leak_model.update.append(Assignment(VarRef("tau_m"), Literal(1.0, "ms")))
        violations = check_context_conditions(leak_model).by_rule("assignment-target")
        assert len(violations) == 1
        assert "Cannot assign to parameter 'tau_m'" in violations[0].message

    def test_assign_state(self, leak_model: NeuronModel) -> None:
        leak_model.update.append(Assignment(VarRef("V_m"), Literal(0.0, "mV")))
        assert check_context_conditions(leak_model).by_rule("assignment-target") == []


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class TestUnitConsistency:
    """Dimensional agreement of equations and assignments."""

    def test_adding_voltage_to_rate(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = leak_model.equations[0].rhs + VarRef("V_m")
        violations = check_context_conditions(leak_model).by_rule("unit-consistency")
        assert violations
        assert any("Cannot add" in v.message for v in violations)

    def test_wrong_equation_dimension(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = -VarRef("V_m")
        violations = check_context_conditions(leak_model).by_rule("unit-consistency")
        assert len(violations) == 1
        assert "Equation for V_m'" in violations[0].message

    def test_dimensioned_exponent(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", exp(VarRef("V_m")))
        violations = check_context_conditions(leak_model).by_rule("unit-consistency")
        assert len(violations) == 1
        assert "must be dimensionless" in violations[0].message

    def test_initial_value(self, leak_model: NeuronModel) -> None:
        leak_model.state[0].value = Literal(-70.0, "ms")
        violations = check_context_conditions(leak_model).by_rule("unit-consistency")
        assert len(violations) == 1
        assert "Initial value of V_m" in violations[0].message

    def test_comparison(self, leak_model: NeuronModel) -> None:
        leak_model.update.append(
            IfStatement(
                BinaryOp(">=", VarRef("V_m"), VarRef("tau_m")),
                body=[Assignment(VarRef("V_m"), Literal(0.0, "mV"))],
            )
        )
        violations = check_context_conditions(leak_model).by_rule("unit-consistency")
        assert len(violations) == 1
        assert "Cannot compare" in violations[0].message

    def test_plain_numbers_adapt(self, leak_model: NeuronModel) -> None:
        leak_model.add_function("f", VarRef("V_m") + 1)
        leak_model.add_function("g", (VarRef("V_m") / Literal(1.0, "mV") + 55) / 10)
        assert check_context_conditions(leak_model).by_rule("unit-consistency") == []
