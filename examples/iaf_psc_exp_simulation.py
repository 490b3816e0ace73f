"""
Example: analyse an integrate-and-fire neuron and simulate its solver plan.

The model is built with the IR directly, the way a front end hands it over:

neuron iaf_psc_exp:
  state:
    V_m mV = E_L
  equations:
    shape I_kernel_exc = exp(-t / tau_syn_exc)
    V_m' = -(V_m - E_L) / tau_m + (convolve(I_kernel_exc, spikeExc) + I_stim) / C_m
  ...
"""

import numpy as np

from neurosolve import AnalysisConfig, analyze
from neurosolve.backends.simulation import PlanSimulator
from neurosolve.models import iaf_psc_exp


if __name__ == "__main__":
    model = iaf_psc_exp(tau_m=20.0)
    print(model)
    print()

    plan = analyze(model, AnalysisConfig(simplify=True))

    print(f"Update order: {plan.update_order}")
    for sub in plan.subsystems:
        print(f"Subsystem {sub.index} ({sub.solver.value}): {sub.variables}")
        if sub.is_linear:
            P = sub.propagator.propagator
            for i, row in enumerate(sub.variables):
                for j, col in enumerate(sub.variables):
                    if P[i, j] != 0:
                        print(f"  P[{row}, {col}] = {P[i, j]}")
    print()
    print("Spike updates:")
    for update in plan.spike_updates:
        print(f"  {update}")

    # 100 ms at 0.1 ms, an excitatory spike train every 5 ms
    h = 0.1
    n_steps = 1000
    spikes = np.zeros(n_steps)
    spikes[::50] = 400.0

    sim = PlanSimulator(plan, h=h)
    result = sim.run(n_steps, spikes={"spikeExc": spikes}, currents={"I_stim": 100.0})

    V = result("V_m")
    print()
    print(f"V_m: min {V.min():.3f} mV, max {V.max():.3f} mV, final {V[-1]:.3f} mV")
