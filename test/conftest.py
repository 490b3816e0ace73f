"""Shared model fixtures for the neurosolve test suite."""

from __future__ import annotations

import pytest

from neurosolve.ir import Literal, NeuronModel, VarRef, convolve, exp


def _leak_model() -> NeuronModel:
    """V_m' = -V_m / tau_m + I_stim / C_m."""
    model = NeuronModel("leak")
    model.add_state("V_m", Literal(0.0, "mV"), "mV")
    model.add_parameter("tau_m", Literal(10.0, "ms"), "ms")
    model.add_parameter("C_m", Literal(250.0, "pF"), "pF")
    model.add_input("I_stim", "current", unit="pA")
    model.add_ode("V_m", -VarRef("V_m") / VarRef("tau_m") + VarRef("I_stim") / VarRef("C_m"))
    return model


def _psc_model() -> NeuronModel:
    """The leak model driven by an exponentially decaying synaptic current."""
    model = _leak_model()
    model.name = "psc"
    model.add_parameter("tau_syn", Literal(2.0, "ms"), "ms")
    model.add_shape("I_kernel", exp(-VarRef("t") / VarRef("tau_syn")))
    model.add_input("spikeExc", "excitatory", "spike", unit="pA")
    model.equations.clear()
    model.add_ode(
        "V_m",
        -VarRef("V_m") / VarRef("tau_m")
        + (convolve("I_kernel", "spikeExc") + VarRef("I_stim")) / VarRef("C_m"),
    )
    return model


@pytest.fixture
def leak_model() -> NeuronModel:
    return _leak_model()


@pytest.fixture
def psc_model() -> NeuronModel:
    return _psc_model()


@pytest.fixture
def quadratic_decay_model() -> NeuronModel:
    """x' = -x * x / tau, solved by x0 / (1 + x0 t / tau)."""
    model = NeuronModel("quadratic_decay")
    model.add_state("x", 1.0)
    model.add_parameter("tau", 1.0)
    model.add_ode("x", -VarRef("x") * VarRef("x") / VarRef("tau"))
    return model
