"""
neurosolve - semantic analysis and solver selection for neuron models

Checks a neuron model's declarations against the language's context
conditions, rewrites synaptic kernels as linear ODEs, partitions the system
into LINEAR and NONLINEAR subsystems and derives exact propagators for the
linear ones.
"""

__version__ = "0.1.0"

from neurosolve.config import AnalysisConfig
from neurosolve.errors import (
    ContextConditionError,
    DegenerateKernelError,
    DuplicateNameError,
    NeurosolveError,
    SingularSystemError,
    UnresolvedUnitError,
    UnsupportedShapeFormError,
)
from neurosolve import ir
from neurosolve import analysis
from neurosolve.analysis import SolverPlan, analyze

__all__ = [
    "ir",
    "analysis",
    "analyze",
    "AnalysisConfig",
    "SolverPlan",
    "NeurosolveError",
    "DuplicateNameError",
    "UnresolvedUnitError",
    "ContextConditionError",
    "UnsupportedShapeFormError",
    "DegenerateKernelError",
    "SingularSystemError",
    "__version__",
]
