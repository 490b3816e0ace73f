"""
Leaky integrate-and-fire neuron with alpha-shaped post-synaptic currents.

The kernel ``(e / tau_syn) t exp(-t / tau_syn)`` peaks at 1 for t = tau_syn
and has a double root, so each convolution expands into a two-stage cascade
with equal eigenvalues.
"""

from __future__ import annotations

from neurosolve.ir.expr import VarRef, convolve
from neurosolve.ir.model import NeuronModel
from neurosolve.models.common import add_parameters, add_refractory_update, alpha_kernel

PARAMETERS = {
    "C_m": (250.0, "pF"),
    "tau_m": (10.0, "ms"),
    "tau_syn_exc": (2.0, "ms"),
    "tau_syn_inh": (2.0, "ms"),
    "t_ref": (2.0, "ms"),
    "E_L": (-70.0, "mV"),
    "V_reset": (-70.0, "mV"),
    "V_th": (-55.0, "mV"),
    "I_e": (0.0, "pA"),
}


def iaf_psc_alpha(**parameters: float) -> NeuronModel:
    """Build the model; keyword arguments replace parameter defaults."""
    model = NeuronModel("iaf_psc_alpha", description=__doc__)
    V_m = VarRef("V_m")

    model.add_state("V_m", VarRef("E_L"), "mV")
    model.add_shape("I_kernel_exc", alpha_kernel("tau_syn_exc"))
    model.add_shape("I_kernel_inh", alpha_kernel("tau_syn_inh"))
    I_syn = convolve("I_kernel_exc", "spikeExc") - convolve("I_kernel_inh", "spikeInh")
    model.add_ode(
        "V_m",
        -(V_m - VarRef("E_L")) / VarRef("tau_m")
        + (I_syn + VarRef("I_e") + VarRef("I_stim")) / VarRef("C_m"),
    )

    add_parameters(model, PARAMETERS, parameters)
    model.add_input("spikeExc", "excitatory", "spike", unit="pA")
    model.add_input("spikeInh", "inhibitory", "spike", unit="pA")
    model.add_input("I_stim", "current", unit="pA")
    add_refractory_update(model)
    return model
