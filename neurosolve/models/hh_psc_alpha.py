"""
Hodgkin-Huxley neuron with alpha-shaped post-synaptic currents.

Gating rates use the classic squid axon fits with ``V_m`` in mV and rates
in 1/ms. Membrane potential and gating variables form one NONLINEAR
subsystem; the two alpha cascades are LINEAR subsystems feeding it.
"""

from __future__ import annotations

from neurosolve.ir.expr import Literal, VarRef, convolve, exp
from neurosolve.ir.model import NeuronModel
from neurosolve.models.common import add_parameters, alpha_kernel

PARAMETERS = {
    "C_m": (100.0, "pF"),
    "g_Na": (12000.0, "nS"),
    "g_K": (3600.0, "nS"),
    "g_L": (30.0, "nS"),
    "E_Na": (50.0, "mV"),
    "E_K": (-77.0, "mV"),
    "E_L": (-54.402, "mV"),
    "tau_syn_exc": (0.2, "ms"),
    "tau_syn_inh": (2.0, "ms"),
    "I_e": (0.0, "pA"),
}

# Steady state of the gating variables at -65 mV
INITIAL_GATING = {"Act_m": 0.0529324852, "Inact_h": 0.5961207535, "Act_n": 0.3176769140}


def hh_psc_alpha(**parameters: float) -> NeuronModel:
    """Build the model; keyword arguments replace parameter defaults."""
    model = NeuronModel("hh_psc_alpha", description=__doc__)
    V_m = VarRef("V_m")
    per_ms = Literal(1, "1/ms")
    v = V_m / Literal(1, "mV")

    model.add_state("V_m", Literal(-65.0, "mV"), "mV")
    for name, value in INITIAL_GATING.items():
        model.add_state(name, value)

    model.add_function("alpha_n", per_ms * 0.01 * (v + 55) / (1 - exp(-(v + 55) / 10)))
    model.add_function("beta_n", per_ms * 0.125 * exp(-(v + 65) / 80))
    model.add_function("alpha_m", per_ms * 0.1 * (v + 40) / (1 - exp(-(v + 40) / 10)))
    model.add_function("beta_m", per_ms * 4 * exp(-(v + 65) / 18))
    model.add_function("alpha_h", per_ms * 0.07 * exp(-(v + 65) / 20))
    model.add_function("beta_h", per_ms / (1 + exp(-(v + 35) / 10)))

    m, h, n = VarRef("Act_m"), VarRef("Inact_h"), VarRef("Act_n")
    model.add_function("I_Na", VarRef("g_Na") * m**3 * h * (V_m - VarRef("E_Na")), "pA")
    model.add_function("I_K", VarRef("g_K") * n**4 * (V_m - VarRef("E_K")), "pA")
    model.add_function("I_L", VarRef("g_L") * (V_m - VarRef("E_L")), "pA")

    model.add_shape("I_kernel_exc", alpha_kernel("tau_syn_exc"))
    model.add_shape("I_kernel_inh", alpha_kernel("tau_syn_inh"))
    I_syn = convolve("I_kernel_exc", "spikeExc") - convolve("I_kernel_inh", "spikeInh")

    model.add_ode(
        "V_m",
        (
            -(VarRef("I_Na") + VarRef("I_K") + VarRef("I_L"))
            + I_syn
            + VarRef("I_e")
            + VarRef("I_stim")
        )
        / VarRef("C_m"),
    )
    for gate, (alpha, beta) in {
        "Act_m": ("alpha_m", "beta_m"),
        "Inact_h": ("alpha_h", "beta_h"),
        "Act_n": ("alpha_n", "beta_n"),
    }.items():
        x = VarRef(gate)
        model.add_ode(gate, VarRef(alpha) * (1 - x) - VarRef(beta) * x)

    add_parameters(model, PARAMETERS, parameters)
    model.add_input("spikeExc", "excitatory", "spike", unit="pA")
    model.add_input("spikeInh", "inhibitory", "spike", unit="pA")
    model.add_input("I_stim", "current", unit="pA")
    model.add_output()
    return model
