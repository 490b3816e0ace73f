"""
Conductance-based leaky integrate-and-fire neuron with beta-shaped
(double-exponential) synaptic conductances.

The conductance kernels are normalised to unit peak by internals computed
from the rise and decay time constants. The membrane equation multiplies the
conductances with ``V_m`` and is therefore NONLINEAR; each conductance
cascade stays a LINEAR subsystem feeding it.
"""

from __future__ import annotations

from neurosolve.analysis.shapes import beta_normalization_expr
from neurosolve.ir.expr import VarRef, convolve, exp
from neurosolve.ir.model import NeuronModel
from neurosolve.models.common import add_parameters, add_refractory_update

PARAMETERS = {
    "C_m": (250.0, "pF"),
    "g_L": (16.6667, "nS"),
    "E_L": (-70.0, "mV"),
    "E_exc": (0.0, "mV"),
    "E_inh": (-85.0, "mV"),
    "tau_syn_rise_exc": (0.2, "ms"),
    "tau_syn_decay_exc": (2.0, "ms"),
    "tau_syn_rise_inh": (0.2, "ms"),
    "tau_syn_decay_inh": (2.0, "ms"),
    "t_ref": (2.0, "ms"),
    "V_reset": (-60.0, "mV"),
    "V_th": (-55.0, "mV"),
    "I_e": (0.0, "pA"),
}


def _beta(norm: str, rise: str, decay: str):
    t = VarRef("t")
    return VarRef(norm) * (exp(-t / VarRef(decay)) - exp(-t / VarRef(rise)))


def iaf_cond_beta(**parameters: float) -> NeuronModel:
    """Build the model; keyword arguments replace parameter defaults."""
    model = NeuronModel("iaf_cond_beta", description=__doc__)
    V_m = VarRef("V_m")

    model.add_state("V_m", VarRef("E_L"), "mV")
    model.add_shape("g_kernel_exc", _beta("g_norm_exc", "tau_syn_rise_exc", "tau_syn_decay_exc"))
    model.add_shape("g_kernel_inh", _beta("g_norm_inh", "tau_syn_rise_inh", "tau_syn_decay_inh"))
    model.add_function(
        "I_syn_exc", convolve("g_kernel_exc", "spikeExc") * (V_m - VarRef("E_exc")), "pA"
    )
    model.add_function(
        "I_syn_inh", convolve("g_kernel_inh", "spikeInh") * (V_m - VarRef("E_inh")), "pA"
    )
    model.add_function("I_leak", VarRef("g_L") * (V_m - VarRef("E_L")), "pA")
    model.add_ode(
        "V_m",
        (
            -VarRef("I_leak")
            - VarRef("I_syn_exc")
            - VarRef("I_syn_inh")
            + VarRef("I_e")
            + VarRef("I_stim")
        )
        / VarRef("C_m"),
    )

    add_parameters(model, PARAMETERS, parameters)
    model.add_internal(
        "g_norm_exc",
        beta_normalization_expr(VarRef("tau_syn_decay_exc"), VarRef("tau_syn_rise_exc")),
    )
    model.add_internal(
        "g_norm_inh",
        beta_normalization_expr(VarRef("tau_syn_decay_inh"), VarRef("tau_syn_rise_inh")),
    )
    model.add_input("spikeExc", "excitatory", "spike", unit="nS")
    model.add_input("spikeInh", "inhibitory", "spike", unit="nS")
    model.add_input("I_stim", "current", unit="pA")
    add_refractory_update(model)
    return model
