"""
Analysis configuration.

All knobs that change how a model is analysed live in one frozen dataclass
that is handed to :func:`neurosolve.analyze`. There is no global state.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

DEGENERATE_KERNEL_POLICIES = ("error", "limit")
COINCIDENT_TIME_CONSTANT_POLICIES = ("error", "repeated")


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Options for a single analysis run.

    Parameters
    ----------
    step_symbol : str
        Name of the symbol standing for the fixed integration step in
        propagator expressions.
    max_shape_order : int
        Largest differential order accepted for closed-form shapes.
        2 covers exponential, alpha and beta kernels.
    degenerate_kernel : str
        ``"error"`` raises DegenerateKernelError when the two time constants of
        a double-exponential kernel coincide; ``"limit"`` replaces the kernel by
        its unit-peak alpha limit.
    coincident_time_constants : str
        ``"error"`` raises SingularSystemError when a propagator is evaluated at
        parameter values that make two eigenvalues of a triangular system
        coincide; ``"repeated"`` re-derives that propagator with the exact
        repeated-eigenvalue form.
    simplify : bool
        Run ``sympy.simplify`` over propagator entries.
    """

    step_symbol: str = "__h"
    max_shape_order: int = 2
    degenerate_kernel: str = "error"
    coincident_time_constants: str = "error"
    simplify: bool = True

    def __post_init__(self):
        if not self.step_symbol.isidentifier():
            raise ValueError(f"step_symbol must be an identifier, got {self.step_symbol!r}")
        if self.max_shape_order < 1:
            raise ValueError(f"max_shape_order must be at least 1, got {self.max_shape_order}")
        if self.degenerate_kernel not in DEGENERATE_KERNEL_POLICIES:
            raise ValueError(
                f"degenerate_kernel must be one of {DEGENERATE_KERNEL_POLICIES}, "
                f"got {self.degenerate_kernel!r}"
            )
        if self.coincident_time_constants not in COINCIDENT_TIME_CONSTANT_POLICIES:
            raise ValueError(
                f"coincident_time_constants must be one of {COINCIDENT_TIME_CONSTANT_POLICIES}, "
                f"got {self.coincident_time_constants!r}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown analysis options: {unknown}")
        return cls(**dict(data))

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
