"""
Numerical and symbolic backends.

- sympy: IR to SymPy conversion used throughout the analysis
- casadi: SymPy to CasADi translation of right-hand sides
- integrators: CasADi Runge-Kutta steppers for NONLINEAR subsystems
- simulation: fixed-step simulation of solver plans (import
  ``neurosolve.backends.simulation`` directly)
"""

from neurosolve.backends.sympy import SympyConverter, make_symbol, symbol_name, to_sympy
from neurosolve.backends.casadi import build_function, sympy_to_casadi
from neurosolve.backends.integrators import build_rk_integrator, euler, rk4

__all__ = [
    "SympyConverter",
    "make_symbol",
    "symbol_name",
    "to_sympy",
    "sympy_to_casadi",
    "build_function",
    "build_rk_integrator",
    "rk4",
    "euler",
]
