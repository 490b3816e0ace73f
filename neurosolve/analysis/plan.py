"""
Solver plans: the reduced model handed to code generators and simulators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import sympy as sp
from beartype import beartype

from neurosolve.analysis.linearity import Classification
from neurosolve.analysis.propagator import Propagator
from neurosolve.analysis.shapes import ExpandedSystem, SpikeUpdate
from neurosolve.backends.sympy import resolve_constants
from neurosolve.ir.types import BufferKind, SolverKind


@dataclass
class SubsystemPlan:
    """
    How one subsystem is advanced by a step.

    LINEAR subsystems carry their propagator and forcing; NONLINEAR ones
    carry the right-hand sides for a numerical stepper.
    """

    index: int
    solver: SolverKind
    variables: list[str]
    rhs: list[sp.Expr]
    propagator: Optional[Propagator] = None
    forcing: Optional[list[sp.Expr]] = None
    depends_on: list[int] = field(default_factory=list)

    @property
    def is_linear(self) -> bool:
        return self.solver == SolverKind.LINEAR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "solver": self.solver.value,
            "variables": list(self.variables),
            "depends_on": list(self.depends_on),
        }
        if self.is_linear:
            P = self.propagator.propagator
            Q = self.propagator.forcing_operator
            data["propagator"] = {
                row: {col: str(P[i, j]) for j, col in enumerate(self.variables) if P[i, j] != 0}
                for i, row in enumerate(self.variables)
            }
            data["forcing_operator"] = {
                row: {col: str(Q[i, j]) for j, col in enumerate(self.variables) if Q[i, j] != 0}
                for i, row in enumerate(self.variables)
            }
            data["forcing"] = {v: str(f) for v, f in zip(self.variables, self.forcing)}
        else:
            data["ode_definitions"] = {v: str(rhs) for v, rhs in zip(self.variables, self.rhs)}
        return data


@dataclass
class SolverPlan:
    """
    Complete solver plan of one model.

    Attributes
    ----------
    model_name : str
        Name of the analysed model.
    subsystems : list of SubsystemPlan
        By index.
    update_order : list of int
        Subsystem indices in the order they are advanced every step.
    spike_updates : list of SpikeUpdate
        Jumps applied after every step, in order.
    initial_values : dict
        Variable name to initial value expression, in arena order.
    parameters, internals : dict
        Name to value expression.
    held_state : dict
        State variables without an ODE, constant over the simulation.
    buffers : dict
        Input buffer name to kind.
    step_symbol : sympy.Symbol
        Symbol standing for the step size in propagators.
    violations : list
        Context violations; always empty for a plan returned by
        :func:`neurosolve.analyze`.
    """

    model_name: str
    subsystems: list[SubsystemPlan]
    update_order: list[int]
    spike_updates: list[SpikeUpdate] = field(default_factory=list)
    initial_values: dict[str, sp.Expr] = field(default_factory=dict)
    parameters: dict[str, sp.Expr] = field(default_factory=dict)
    internals: dict[str, sp.Expr] = field(default_factory=dict)
    held_state: dict[str, sp.Expr] = field(default_factory=dict)
    buffers: dict[str, BufferKind] = field(default_factory=dict)
    step_symbol: sp.Symbol = field(default_factory=lambda: sp.Symbol("__h", real=True))
    violations: list = field(default_factory=list)

    @property
    def variables(self) -> list[str]:
        return list(self.initial_values)

    @property
    def linear_subsystems(self) -> list[SubsystemPlan]:
        return [s for s in self.subsystems if s.is_linear]

    @property
    def nonlinear_subsystems(self) -> list[SubsystemPlan]:
        return [s for s in self.subsystems if not s.is_linear]

    def subsystem_of(self, name: str) -> SubsystemPlan:
        for sub in self.subsystems:
            if name in sub.variables:
                return sub
        raise KeyError(name)

    def spike_buffers(self) -> list[str]:
        return [b for b, kind in self.buffers.items() if kind == BufferKind.SPIKE]

    def current_buffers(self) -> list[str]:
        return [b for b, kind in self.buffers.items() if kind == BufferKind.CURRENT]

    def constant_values(
        self, overrides: Optional[Mapping[str, float]] = None, h: Optional[float] = None
    ) -> dict[str, float]:
        """
        Numeric parameters, internals and held state.

        Parameters
        ----------
        overrides : mapping of str to float, optional
            Replacement values by name; internals depending on an overridden
            parameter are re-evaluated.
        h : float, optional
            Step size, for internals defined through ``resolution()``.
        """
        expressions = {**self.parameters, **self.internals, **self.held_state}
        known = {self.step_symbol: float(h)} if h is not None else None
        return resolve_constants(expressions, overrides, known)

    def to_dict(self) -> dict[str, Any]:
        """Plain-string rendering for code generators."""
        return {
            "model": self.model_name,
            "step_symbol": str(self.step_symbol),
            "update_order": list(self.update_order),
            "subsystems": [s.to_dict() for s in self.subsystems],
            "spike_updates": [
                {"variable": u.variable, "buffer": u.buffer, "impulse": str(u.impulse)}
                for u in self.spike_updates
            ],
            "initial_values": {k: str(v) for k, v in self.initial_values.items()},
            "parameters": {k: str(v) for k, v in self.parameters.items()},
            "internals": {k: str(v) for k, v in self.internals.items()},
            "held_state": {k: str(v) for k, v in self.held_state.items()},
            "buffers": {k: v.value for k, v in self.buffers.items()},
        }


@beartype
def build_plan(
    system: ExpandedSystem,
    classification: Classification,
    propagators: dict[int, Propagator],
) -> SolverPlan:
    """Assemble the solver plan from the analysis results."""
    subsystems = []
    for sub in classification.subsystems:
        plan = SubsystemPlan(
            index=sub.index,
            solver=sub.kind,
            variables=list(sub.variables),
            rhs=list(sub.rhs),
            depends_on=list(sub.depends_on),
        )
        if sub.is_linear:
            plan.propagator = propagators[sub.index]
            plan.forcing = list(sub.forcing)
        subsystems.append(plan)

    return SolverPlan(
        model_name=system.name,
        subsystems=subsystems,
        update_order=list(classification.update_order),
        spike_updates=list(system.spike_updates),
        initial_values={v.name: v.initial_value for v in system.variables},
        parameters=dict(system.parameters),
        internals=dict(system.internals),
        held_state=dict(system.held_state),
        buffers=dict(system.buffers),
        step_symbol=system.step_symbol,
    )
