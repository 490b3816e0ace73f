"""
Helpers shared by the reference models.
"""

from __future__ import annotations

from typing import Mapping

from neurosolve.ir.expr import (
    INTEGRATE_ODES,
    RESOLUTION,
    BinaryOp,
    Expr,
    FunctionCall,
    Literal,
    VarRef,
    emit_spike,
    exp,
)
from neurosolve.ir.model import NeuronModel
from neurosolve.ir.statement import Assignment, CallStatement, IfStatement


def add_parameters(
    model: NeuronModel,
    defaults: Mapping[str, tuple[float, str]],
    overrides: Mapping[str, float],
) -> None:
    """Declare ``defaults`` (name -> (value, unit)), replacing values from ``overrides``."""
    unknown = sorted(set(overrides) - set(defaults))
    if unknown:
        raise KeyError(f"Model '{model.name}' has no parameter(s) {unknown}")
    for name, (value, unit) in defaults.items():
        model.add_parameter(name, Literal(float(overrides.get(name, value)), unit), unit)


def add_refractory_update(model: NeuronModel, voltage: str = "V_m") -> None:
    """
    Threshold, reset and refractory counting::

        if r == 0:
            integrate_odes()
        else:
            r -= 1
        if V_m >= V_th:
            r = RefractoryCounts
            V_m = V_reset
            emit_spike()

    Requires parameters ``t_ref``, ``V_th`` and ``V_reset``.
    """
    model.add_state("r", 0, "integer")
    model.add_internal("RefractoryCounts", VarRef("t_ref") / FunctionCall(RESOLUTION))
    V = VarRef(voltage)
    r = VarRef("r")
    model.update.append(
        IfStatement(
            BinaryOp("==", r, Literal(0)),
            body=[CallStatement(FunctionCall(INTEGRATE_ODES))],
            orelse=[Assignment(r, Literal(1), "-=")],
        )
    )
    model.update.append(
        IfStatement(
            BinaryOp(">=", V, VarRef("V_th")),
            body=[
                Assignment(r, VarRef("RefractoryCounts")),
                Assignment(V, VarRef("V_reset")),
                CallStatement(emit_spike()),
            ],
        )
    )
    model.add_output()


def alpha_kernel(tau: str) -> Expr:
    """Unit-peak alpha kernel ``(e / tau) t exp(-t / tau)``."""
    t = VarRef("t")
    return VarRef("e") / VarRef(tau) * t * exp(-t / VarRef(tau))
