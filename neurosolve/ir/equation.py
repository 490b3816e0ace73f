"""
Equation-like declarations in the IR: ODEs, shapes and function aliases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from neurosolve.ir.expr import Expr, VarRef


@dataclass
class OdeEquation:
    """
    Differential equation ``name^(order) = rhs``.

    Examples
    --------
    ``V_m' = -V_m / tau_m`` is ``OdeEquation("V_m", 1, rhs)``.
    """

    name: str
    order: int
    rhs: Expr
    location: Optional[str] = None

    @property
    def lhs(self) -> VarRef:
        return VarRef(self.name, self.order)

    def __str__(self) -> str:
        return f"{self.lhs} = {self.rhs}"

    @staticmethod
    def first_order(name: str, rhs: Expr, location: Optional[str] = None) -> "OdeEquation":
        """Create ``name' = rhs``."""
        return OdeEquation(name, 1, rhs, location)


@dataclass
class ShapeDeclaration:
    """
    Synaptic kernel.

    With ``order == 0`` this is the closed form ``shape g = f(t)``. With
    ``order > 0`` it is the ODE form ``shape g^(order) = expr`` whose initial
    values are declared in the state block like those of a state variable.
    """

    name: str
    expr: Expr
    order: int = 0
    location: Optional[str] = None

    @property
    def is_closed_form(self) -> bool:
        return self.order == 0

    def __str__(self) -> str:
        return f"shape {VarRef(self.name, self.order)} = {self.expr}"


@dataclass
class FunctionDeclaration:
    """Auxiliary alias ``function name unit = expr``."""

    name: str
    expr: Expr
    unit: Optional[str] = None
    location: Optional[str] = None

    def __str__(self) -> str:
        return f"function {self.name} = {self.expr}"
