"""
Semantic analysis and solver selection.

Stages, in pipeline order:

- symbol_table: names, kinds, units
- context_conditions: the rule checker gating the rest
- shapes: shapes and convolutions rewritten as first-order ODEs
- graph: dependency graph of the expanded variables
- linearity: LINEAR/NONLINEAR subsystems and their update order
- propagator: exact propagators of LINEAR subsystems
- plan: the solver plan
"""

from neurosolve.analysis.units import Unit, dimension_of, parse_unit
from neurosolve.analysis.symbol_table import Symbol, SymbolTable, build_symbol_table
from neurosolve.analysis.context_conditions import (
    CONTEXT_CONDITIONS,
    CheckResult,
    ContextViolation,
    RuleRegistry,
    check_context_conditions,
    context_condition,
)
from neurosolve.analysis.shapes import (
    ExpandedSystem,
    ExpandedVariable,
    ShapeForm,
    SpikeUpdate,
    beta_kernel,
    beta_normalization,
    expand_shapes,
    recognize_shape,
)
from neurosolve.analysis.graph import DependencyGraph, build_dependency_graph
from neurosolve.analysis.linearity import Classification, Subsystem, classify
from neurosolve.analysis.propagator import Propagator, solve_linear_subsystems, solve_propagator
from neurosolve.analysis.plan import SolverPlan, SubsystemPlan, build_plan
from neurosolve.analysis.pipeline import analyze

__all__ = [
    # Units
    "Unit",
    "parse_unit",
    "dimension_of",
    # Symbol table
    "Symbol",
    "SymbolTable",
    "build_symbol_table",
    # Context conditions
    "ContextViolation",
    "CheckResult",
    "RuleRegistry",
    "CONTEXT_CONDITIONS",
    "context_condition",
    "check_context_conditions",
    # Shapes
    "ShapeForm",
    "ExpandedVariable",
    "ExpandedSystem",
    "SpikeUpdate",
    "recognize_shape",
    "expand_shapes",
    "beta_kernel",
    "beta_normalization",
    # Graph and classification
    "DependencyGraph",
    "build_dependency_graph",
    "Subsystem",
    "Classification",
    "classify",
    # Propagators and plans
    "Propagator",
    "solve_propagator",
    "solve_linear_subsystems",
    "SubsystemPlan",
    "SolverPlan",
    "build_plan",
    "analyze",
]
