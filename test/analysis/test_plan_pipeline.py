"""Tests for solver plans and the analysis pipeline."""

from __future__ import annotations

import json

import pytest
import sympy as sp

from neurosolve import (
    AnalysisConfig,
    ContextConditionError,
    DuplicateNameError,
    SolverPlan,
    UnsupportedShapeFormError,
    analyze,
)
from neurosolve.ir import BufferKind, FunctionCall, NeuronModel, SolverKind, VarRef
from neurosolve.models import MODELS, hh_psc_alpha, iaf_cond_beta, iaf_psc_exp

# ---------------------------------------------------------------------------
# Plan contents
# ---------------------------------------------------------------------------


class TestSolverPlan:
    """The plan produced for the reference models."""

    @pytest.fixture(scope="class")
    def plan(self) -> SolverPlan:
        return analyze(iaf_psc_exp())

    def test_variables(self, plan: SolverPlan) -> None:
        assert plan.model_name == "iaf_psc_exp"
        assert plan.variables == ["V_m", "I_kernel_exc__X__spikeExc", "I_kernel_inh__X__spikeInh"]
        assert plan.violations == []

    def test_subsystems(self, plan: SolverPlan) -> None:
        assert len(plan.subsystems) == 1
        assert plan.linear_subsystems == plan.subsystems
        assert plan.nonlinear_subsystems == []
        assert plan.update_order == [0]
        assert plan.subsystem_of("V_m").solver == SolverKind.LINEAR
        with pytest.raises(KeyError):
            plan.subsystem_of("r")

    def test_buffers(self, plan: SolverPlan) -> None:
        assert plan.spike_buffers() == ["spikeExc", "spikeInh"]
        assert plan.current_buffers() == ["I_stim"]
        assert plan.buffers["I_stim"] == BufferKind.CURRENT

    def test_initial_values(self, plan: SolverPlan) -> None:
        assert plan.initial_values["V_m"] == sp.Symbol("E_L", real=True)
        assert plan.initial_values["I_kernel_exc__X__spikeExc"] == 0
        assert plan.held_state == {"r": sp.Integer(0)}

    def test_constant_values(self, plan: SolverPlan) -> None:
        values = plan.constant_values(h=0.1)
        assert values["tau_m"] == 10.0
        assert values["RefractoryCounts"] == pytest.approx(20.0)
        assert values["r"] == 0.0

    def test_constant_values_without_step(self, plan: SolverPlan) -> None:
        assert "RefractoryCounts" not in plan.constant_values()

    def test_constant_value_overrides_propagate(self, plan: SolverPlan) -> None:
        values = plan.constant_values({"t_ref": 1.0}, h=0.1)
        assert values["t_ref"] == 1.0
        assert values["RefractoryCounts"] == pytest.approx(10.0)

    def test_to_dict(self, plan: SolverPlan) -> None:
        data = plan.to_dict()
        assert set(data) == {
            "model",
            "step_symbol",
            "update_order",
            "subsystems",
            "spike_updates",
            "initial_values",
            "parameters",
            "internals",
            "held_state",
            "buffers",
        }
        assert data["step_symbol"] == "__h"
        assert data["buffers"] == {"spikeExc": "spike", "spikeInh": "spike", "I_stim": "current"}
        assert data["spike_updates"][0] == {
            "variable": "I_kernel_exc__X__spikeExc",
            "buffer": "spikeExc",
            "impulse": "1",
        }
        sub = data["subsystems"][0]
        assert sub["solver"] == "linear"
        assert set(sub) == {
            "solver",
            "variables",
            "depends_on",
            "propagator",
            "forcing_operator",
            "forcing",
        }
        assert "V_m" in sub["propagator"]["V_m"]
        json.dumps(data)

    def test_nonlinear_to_dict(self) -> None:
        data = analyze(hh_psc_alpha()).to_dict()
        nonlinear = data["subsystems"][0]
        assert nonlinear["solver"] == "nonlinear"
        assert set(nonlinear["ode_definitions"]) == {"V_m", "Act_m", "Inact_h", "Act_n"}
        assert "propagator" not in nonlinear
        assert nonlinear["depends_on"] == [1, 2]

    @pytest.mark.parametrize("name", sorted(MODELS))
    def test_every_reference_model_serialises(self, name: str) -> None:
        json.dumps(analyze(MODELS[name]()).to_dict())


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TestAnalyze:
    """End-to-end analysis, including rejected models."""

    def test_deterministic(self) -> None:
        first = analyze(iaf_cond_beta()).to_dict()
        second = analyze(iaf_cond_beta()).to_dict()
        assert first == second

    def test_leak_model(self, leak_model: NeuronModel) -> None:
        plan = analyze(leak_model)
        assert plan.variables == ["V_m"]
        assert plan.subsystems[0].solver == SolverKind.LINEAR
        assert plan.spike_updates == []

    def test_quadratic_decay_is_nonlinear(self, quadratic_decay_model: NeuronModel) -> None:
        plan = analyze(quadratic_decay_model)
        assert [s.solver for s in plan.subsystems] == [SolverKind.NONLINEAR]

    def test_duplicate_name(self, leak_model: NeuronModel) -> None:
        leak_model.add_internal("tau_m", 1.0)
        with pytest.raises(DuplicateNameError):
            analyze(leak_model)

    def test_context_violations_stop_the_pipeline(self, leak_model: NeuronModel) -> None:
        leak_model.equations[0].rhs = -VarRef("V_m") / VarRef("tau_x")
        with pytest.raises(ContextConditionError) as excinfo:
            analyze(leak_model)
        assert [v.rule for v in excinfo.value.violations] == ["undeclared-identifier"]

    def test_unsupported_shape(self, psc_model: NeuronModel) -> None:
        psc_model.shapes[0].expr = FunctionCall("cos", (VarRef("t") / VarRef("tau_syn"),))
        with pytest.raises(UnsupportedShapeFormError):
            analyze(psc_model)

    def test_step_symbol(self) -> None:
        plan = analyze(iaf_psc_exp(), AnalysisConfig(step_symbol="dt"))
        assert plan.to_dict()["step_symbol"] == "dt"
        P = plan.subsystems[0].propagator.propagator
        assert P.has(sp.Symbol("dt", real=True))
        assert plan.constant_values(h=0.5)["RefractoryCounts"] == pytest.approx(4.0)


class TestAnalysisConfig:
    """Options and their validation."""

    def test_defaults(self) -> None:
        config = AnalysisConfig()
        assert config.step_symbol == "__h"
        assert config.max_shape_order == 2
        assert config.degenerate_kernel == "error"
        assert config.coincident_time_constants == "error"
        assert config.simplify

    @pytest.mark.parametrize(
        "options",
        [
            {"step_symbol": "not an identifier"},
            {"max_shape_order": 0},
            {"degenerate_kernel": "ignore"},
            {"coincident_time_constants": "perturb"},
        ],
    )
    def test_invalid(self, options) -> None:
        with pytest.raises(ValueError):
            AnalysisConfig(**options)

    def test_dict_round_trip(self) -> None:
        config = AnalysisConfig(step_symbol="dt", degenerate_kernel="limit")
        assert AnalysisConfig.from_dict(config.to_dict()) == config

    def test_unknown_option(self) -> None:
        with pytest.raises(ValueError, match="Unknown analysis options"):
            AnalysisConfig.from_dict({"solver": "rk45"})

    def test_frozen(self) -> None:
        config = AnalysisConfig()
        with pytest.raises(AttributeError):
            config.simplify = False  # type: ignore[misc]
