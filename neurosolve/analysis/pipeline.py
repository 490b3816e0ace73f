"""
The analysis pipeline.

    NeuronModel -> symbol table -> context conditions (gate) -> shape expansion
    -> dependency graph -> linearity classification -> propagators -> plan

Each stage either succeeds or raises; a plan is only returned when every
stage succeeded.
"""

from __future__ import annotations

import warnings
from typing import Optional

from beartype import beartype

from neurosolve.analysis.context_conditions import check_context_conditions
from neurosolve.analysis.graph import build_dependency_graph
from neurosolve.analysis.linearity import classify
from neurosolve.analysis.plan import SolverPlan, build_plan
from neurosolve.analysis.propagator import solve_linear_subsystems
from neurosolve.analysis.shapes import expand_shapes
from neurosolve.analysis.symbol_table import build_symbol_table
from neurosolve.config import AnalysisConfig
from neurosolve.errors import ContextConditionError, SingularSystemError
from neurosolve.ir.model import NeuronModel


@beartype
def analyze(model: NeuronModel, config: Optional[AnalysisConfig] = None) -> SolverPlan:
    """
    Analyse a neuron model and select a solver for each of its subsystems.

    Parameters
    ----------
    model : NeuronModel
        The model to analyse.
    config : AnalysisConfig, optional
        Analysis options; defaults to ``AnalysisConfig()``.

    Returns
    -------
    SolverPlan

    Raises
    ------
    DuplicateNameError, UnresolvedUnitError
        From the symbol table.
    ContextConditionError
        Carrying every context-condition violation found.
    UnsupportedShapeFormError, DegenerateKernelError
        From shape expansion.
    SingularSystemError
        If two eigenvalues of a linear subsystem coincide at the declared
        parameter values and the policy is ``"error"``.

    Example
    -------
    >>> from neurosolve import analyze
    >>> from neurosolve.models import iaf_psc_exp
    >>> plan = analyze(iaf_psc_exp())
    >>> [s.solver.value for s in plan.subsystems]
    ['linear']
    """
    config = config or AnalysisConfig()
    symbols = build_symbol_table(model)
    result = check_context_conditions(model, symbols)
    if not result.is_valid:
        raise ContextConditionError(result.violations)

    system = expand_shapes(model, symbols, config)
    graph = build_dependency_graph(system)
    classification = classify(system, graph)
    propagators = solve_linear_subsystems(classification, config)
    plan = build_plan(system, classification, propagators)
    _check_coincident_time_constants(plan, config)
    return plan


def _check_coincident_time_constants(plan: SolverPlan, config: AnalysisConfig) -> None:
    """Propagators that are singular at the declared parameter values."""
    values = plan.constant_values()
    for sub in plan.linear_subsystems:
        singular = sub.propagator.singular_at(values)
        if not singular:
            continue
        if config.coincident_time_constants == "error":
            raise SingularSystemError(sub.variables, str(singular[0]))
        warnings.warn(
            f"Propagator for {sub.variables} is singular at the declared values "
            f"({singular[0]} = 0); it is evaluated with the repeated-eigenvalue form",
            UserWarning,
        )
