"""
Fixed-step simulation of solver plans.

Each step of size ``h``:

1. subsystems advance in the plan's update order. LINEAR subsystems apply
   their evaluated propagator ``x <- P x + Q F``, NONLINEAR ones a CasADi
   Runge-Kutta step. Forcing, current buffers and time are held at their
   values when the subsystem is advanced, so a subsystem sees the fresh
   values of the subsystems it depends on;
2. spike buffer weights arriving at the step are applied as jumps.

Results are numpy arrays: ``plt.plot(result.t, result("V_m"))``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import casadi as ca
import numpy as np
import sympy as sp
from beartype import beartype

from neurosolve.analysis.plan import SolverPlan, SubsystemPlan
from neurosolve.backends.casadi import build_function
from neurosolve.backends.integrators import euler, rk4
from neurosolve.backends.sympy import TIME_SYMBOL, make_symbol

# =============================================================================
# Simulation Result
# =============================================================================


@dataclass
class SimulationResult:
    """
    Trajectories of a plan simulation.

    Example
    -------
    >>> result = PlanSimulator(analyze(iaf_psc_exp()), h=0.1).run(100)  # doctest: +SKIP
    >>> plt.plot(result.t, result("V_m"))  # doctest: +SKIP
    """

    # Time vector
    t: np.ndarray

    # Trajectory data: name -> array
    _data: Dict[str, np.ndarray] = field(default_factory=dict)

    # Metadata
    model_name: str = ""
    state_names: List[str] = field(default_factory=list)
    input_names: List[str] = field(default_factory=list)

    @beartype
    def __call__(self, var: Any) -> np.ndarray:
        """
        Get trajectory data for a variable.

        Parameters
        ----------
        var : str or object with ``name``
            Flat variable name (``"V_m"``, ``"g__d"``) or a declaration.
        """
        if isinstance(var, str):
            name = var
        elif hasattr(var, "name"):
            name = var.name
        else:
            raise TypeError(f"Expected variable name or declaration, got {type(var).__name__}")
        if name not in self._data:
            raise KeyError(f"Variable '{name}' not in result. Available: {self.available_names}")
        return self._data[name]

    def __getitem__(self, key: str) -> np.ndarray:
        """Get trajectory by string name (dict-style access)."""
        if key == "t":
            return self.t
        if key not in self._data:
            raise KeyError(f"No trajectory named '{key}'. Available: {self.available_names}")
        return self._data[key]

    @property
    def available_names(self) -> List[str]:
        return list(self._data.keys())

    @property
    def states(self) -> Dict[str, np.ndarray]:
        """State trajectories as a dict."""
        return {name: self._data[name] for name in self.state_names if name in self._data}

    @property
    def inputs(self) -> Dict[str, np.ndarray]:
        """Buffer trajectories as a dict."""
        return {name: self._data[name] for name in self.input_names if name in self._data}

    @property
    def data(self) -> Dict[str, np.ndarray]:
        """All trajectories as a single dict."""
        result = {"t": self.t}
        result.update(self._data)
        return result


# =============================================================================
# Plan Simulator
# =============================================================================

InputSignal = Union[float, np.ndarray, Callable[[float], float]]

STEPPERS = {"rk4": rk4, "euler": euler}


def _signal(value: InputSignal, n_steps: int, t: np.ndarray) -> np.ndarray:
    """Sample an input given as a constant, a per-step array or a function of time."""
    if callable(value):
        return np.array([float(value(tk)) for tk in t[:n_steps]])
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        return np.full(n_steps, float(arr))
    if arr.shape != (n_steps,):
        raise ValueError(f"Expected {n_steps} input samples, got shape {arr.shape}")
    return arr


class PlanSimulator:
    """
    Evaluates a solver plan numerically with a fixed step.

    Parameters
    ----------
    plan : SolverPlan
        The plan to simulate.
    h : float
        Step size, in the model's time unit.
    values : mapping of str to float, optional
        Parameter overrides.
    method : str
        Stepper for NONLINEAR subsystems, ``"rk4"`` or ``"euler"``.
    substeps : int
        RK4 substeps per step for NONLINEAR subsystems.
    """

    @beartype
    def __init__(
        self,
        plan: SolverPlan,
        h: float,
        values: Optional[Mapping[str, float]] = None,
        method: str = "rk4",
        substeps: int = 1,
    ):
        if h <= 0:
            raise ValueError(f"Step size must be positive, got {h}")
        if method not in STEPPERS:
            raise ValueError(f"Unknown method '{method}', expected one of {sorted(STEPPERS)}")
        self.plan = plan
        self.h = float(h)
        self.constants = plan.constant_values(values, h=self.h)

        self.variables = plan.variables
        self.currents = plan.current_buffers()
        self.spikes = plan.spike_buffers()
        self.constant_names = sorted(self.constants)
        self.p = np.array([self.constants[n] for n in self.constant_names], dtype=float)
        # Everything held fixed while one subsystem advances
        self.held_names = self.variables + self.currents + [TIME_SYMBOL.name, plan.step_symbol.name]

        self._linear: dict[int, tuple[np.ndarray, np.ndarray, ca.Function]] = {}
        self._nonlinear: dict[int, ca.Function] = {}
        for sub in plan.subsystems:
            if sub.is_linear:
                P, Q = sub.propagator.evaluate(self.constants, self.h)
                forcing = build_function(f"forcing_{sub.index}", sub.forcing, self._groups(sub))
                self._linear[sub.index] = (P, Q, forcing)
            else:
                f = build_function(f"rhs_{sub.index}", sub.rhs, self._groups(sub))
                if method == "rk4":
                    self._nonlinear[sub.index] = rk4(f, self.h, name=f"step_{sub.index}", N=substeps)
                else:
                    self._nonlinear[sub.index] = euler(f, self.h, name=f"step_{sub.index}")

        self._impulses = [
            (self.variables.index(u.variable), u.buffer, self._number(u.impulse))
            for u in plan.spike_updates
        ]

    def _groups(self, sub: SubsystemPlan) -> list[tuple[str, list[str]]]:
        return [("x", sub.variables), ("u", self.held_names), ("p", self.constant_names)]

    def _number(self, expr: sp.Expr) -> float:
        value = sp.sympify(expr).subs(
            {**{make_symbol(k): v for k, v in self.constants.items()}, self.plan.step_symbol: self.h}
        )
        if value.free_symbols:
            raise ValueError(f"No value for {sorted(map(str, value.free_symbols))} in {expr}")
        return float(value)

    def initial_state(self, x0: Optional[Mapping[str, float]] = None) -> np.ndarray:
        """Initial values of all plan variables, with overrides by name."""
        x0 = dict(x0 or {})
        unknown = sorted(set(x0) - set(self.variables))
        if unknown:
            raise KeyError(f"Unknown variables in x0: {unknown}")
        return np.array(
            [x0[n] if n in x0 else self._number(self.plan.initial_values[n]) for n in self.variables],
            dtype=float,
        )

    def step(self, x: np.ndarray, t: float, currents: Optional[np.ndarray] = None) -> np.ndarray:
        """Advance all subsystems by one step, without spike input."""
        x = np.array(x, dtype=float)
        currents = np.zeros(len(self.currents)) if currents is None else np.asarray(currents, float)
        for index in self.plan.update_order:
            sub = self.plan.subsystems[index]
            idx = [self.variables.index(v) for v in sub.variables]
            u = np.concatenate([x, currents, [t, self.h]])
            if sub.is_linear:
                P, Q, forcing = self._linear[index]
                F = np.array(forcing(x[idx], u, self.p), dtype=float).reshape(-1)
                x[idx] = sub.propagator.apply(P, Q, x[idx], F)
            else:
                stepper = self._nonlinear[index]
                x[idx] = np.array(stepper(x[idx], u, self.p), dtype=float).reshape(-1)
        return x

    @beartype
    def run(
        self,
        n_steps: int,
        spikes: Optional[Mapping[str, InputSignal]] = None,
        currents: Optional[Mapping[str, InputSignal]] = None,
        x0: Optional[Mapping[str, float]] = None,
    ) -> SimulationResult:
        """
        Simulate ``n_steps`` steps from t = 0.

        Parameters
        ----------
        n_steps : int
            Number of steps.
        spikes : mapping of str to input, optional
            Spike weight arriving at the end of each step, per spike buffer.
        currents : mapping of str to input, optional
            Current per current buffer, held within each step.
        x0 : mapping of str to float, optional
            Initial value overrides.

        Inputs are a constant, an array of ``n_steps`` samples or a
        function of the step's start time.

        Returns
        -------
        SimulationResult
            ``n_steps + 1`` samples of every variable, input samples for the
            buffers.
        """
        spikes = dict(spikes or {})
        currents = dict(currents or {})
        for name, known in ((spikes, self.spikes), (currents, self.currents)):
            unknown = sorted(set(name) - set(known))
            if unknown:
                raise KeyError(f"Unknown buffers {unknown}, expected some of {known}")

        t = np.arange(n_steps + 1) * self.h
        spike_in = {b: _signal(spikes.get(b, 0.0), n_steps, t) for b in self.spikes}
        current_in = np.array([_signal(currents.get(b, 0.0), n_steps, t) for b in self.currents])
        current_in = current_in.reshape(len(self.currents), n_steps)

        x = self.initial_state(x0)
        X = np.zeros((n_steps + 1, len(self.variables)))
        X[0] = x
        for k in range(n_steps):
            x = self.step(x, t[k], current_in[:, k])
            for i, buffer, impulse in self._impulses:
                x[i] += impulse * spike_in[buffer][k]
            X[k + 1] = x

        data = {name: X[:, i] for i, name in enumerate(self.variables)}
        data.update(spike_in)
        data.update({b: current_in[i] for i, b in enumerate(self.currents)})
        return SimulationResult(
            t=t,
            _data=data,
            model_name=self.plan.model_name,
            state_names=list(self.variables),
            input_names=self.spikes + self.currents,
        )
