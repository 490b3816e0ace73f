"""
Example: export the solver plans of the reference models for a code generator.

Every plan is rendered with ``SolverPlan.to_dict()``, which holds only
strings, lists and dicts, and printed as JSON.
"""

import json
import warnings

from neurosolve import ContextConditionError, analyze
from neurosolve.ir import NeuronModel, VarRef, convolve
from neurosolve.models import MODELS


def broken_model() -> NeuronModel:
    """A model with two context violations, to show the diagnostics."""
    model = NeuronModel("broken")
    model.add_state("V_m", -70.0, "mV")
    model.add_parameter("tau_m", 10.0, "ms")
    model.add_input("spikeInh", "inhibitory", "inhibitory", "spike", unit="pA")
    model.add_ode("V_m", -VarRef("V_m") / VarRef("tau_m") + convolve("V_m", "spikeInh"))
    return model


if __name__ == "__main__":
    for name, builder in MODELS.items():
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            plan = analyze(builder())
        print(f"# {name}")
        print(json.dumps(plan.to_dict(), indent=2))
        print()

    try:
        analyze(broken_model())
    except ContextConditionError as e:
        print(e)
