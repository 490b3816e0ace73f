"""
Exception hierarchy for model analysis.

Every stage of the pipeline reports failures by raising one of these.
Nothing is recovered silently: the first failing stage aborts the analysis
of the current model and no partial solver plan is produced.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from neurosolve.analysis.context_conditions import ContextViolation


def _at(location: Optional[str]) -> str:
    return f" at {location}" if location else ""


class NeurosolveError(Exception):
    """Base class for all analysis errors."""

    pass


# =============================================================================
# Symbol table
# =============================================================================


class DuplicateNameError(NeurosolveError, ValueError):
    """A name is declared twice, within one block or across blocks."""

    def __init__(self, name: str, first: str, second: str, location: Optional[str] = None):
        self.name = name
        self.first = first
        self.second = second
        self.location = location
        super().__init__(
            f"Name '{name}' declared as {second}{_at(location)} is already declared as {first}"
        )


class UnresolvedUnitError(NeurosolveError, ValueError):
    """A quantity carries a unit that cannot be resolved to a physical dimension."""

    def __init__(self, unit: str, owner: str, location: Optional[str] = None):
        self.unit = unit
        self.owner = owner
        self.location = location
        super().__init__(f"Unknown unit '{unit}' for '{owner}'{_at(location)}")


# =============================================================================
# Context conditions
# =============================================================================


class ContextConditionError(NeurosolveError):
    """The model violates one or more context conditions.

    All violations found by the checker are carried together so that a single
    diagnostic pass reports every problem.
    """

    def __init__(self, violations: Sequence["ContextViolation"]):
        self.violations = list(violations)
        lines = [f"Model violates {len(self.violations)} context condition(s):"]
        lines.extend(f"  {v}" for v in self.violations)
        super().__init__("\n".join(lines))


# =============================================================================
# Shape expansion
# =============================================================================


class UnsupportedShapeFormError(NeurosolveError, ValueError):
    """A shape's closed form is not a sum of exponentially decaying terms."""

    def __init__(self, shape: str, expr: str, reason: str, location: Optional[str] = None):
        self.shape = shape
        self.expr = expr
        self.reason = reason
        self.location = location
        super().__init__(f"Unsupported form for shape '{shape}' = {expr}{_at(location)}: {reason}")


class DegenerateKernelError(NeurosolveError, ValueError):
    """A double-exponential kernel has coinciding rise and decay time constants."""

    def __init__(self, shape: str, tau: str, location: Optional[str] = None):
        self.shape = shape
        self.tau = tau
        self.location = location
        super().__init__(
            f"Kernel '{shape}'{_at(location)} is degenerate: both time constants equal {tau}, "
            "the normalization is undefined"
        )


# =============================================================================
# Propagators
# =============================================================================


class SingularSystemError(NeurosolveError, ZeroDivisionError):
    """A propagator entry divides by the difference of two coinciding eigenvalues."""

    def __init__(self, variables: Sequence[str], denominator: str):
        self.variables = list(variables)
        self.denominator = denominator
        super().__init__(
            f"Propagator for subsystem {self.variables} is singular: "
            f"denominator {denominator} evaluates to zero"
        )
