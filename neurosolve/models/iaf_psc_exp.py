"""
Leaky integrate-and-fire neuron with exponentially decaying post-synaptic
currents.

    V_m' = -(V_m - E_L) / tau_m + (I_syn_exc - I_syn_inh + I_e + I_stim) / C_m
    I_syn_exc = convolve(I_kernel_exc, spikeExc),  I_kernel_exc = exp(-t / tau_syn_exc)

Every variable is linear: the whole model is one LINEAR subsystem.
"""

from __future__ import annotations

from neurosolve.ir.expr import VarRef, convolve, exp
from neurosolve.ir.model import NeuronModel
from neurosolve.models.common import add_parameters, add_refractory_update

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


def iaf_psc_exp(**parameters: float) -> NeuronModel:
    """Build the model; keyword arguments replace parameter defaults."""
    model = NeuronModel("iaf_psc_exp", description=__doc__)
    t = VarRef("t")
    V_m = VarRef("V_m")

    model.add_state("V_m", VarRef("E_L"), "mV")
    model.add_shape("I_kernel_exc", exp(-t / VarRef("tau_syn_exc")))
    model.add_shape("I_kernel_inh", exp(-t / VarRef("tau_syn_inh")))
    model.add_function("I_syn_exc", convolve("I_kernel_exc", "spikeExc"), "pA")
    model.add_function("I_syn_inh", convolve("I_kernel_inh", "spikeInh"), "pA")
    model.add_ode(
        "V_m",
        -(V_m - VarRef("E_L")) / VarRef("tau_m")
        + (VarRef("I_syn_exc") - VarRef("I_syn_inh") + VarRef("I_e") + VarRef("I_stim")) / VarRef("C_m"),
    )

    add_parameters(model, PARAMETERS, parameters)
    model.add_input("spikeExc", "excitatory", "spike", unit="pA")
    model.add_input("spikeInh", "inhibitory", "spike", unit="pA")
    model.add_input("I_stim", "current", unit="pA")
    add_refractory_update(model)
    return model
