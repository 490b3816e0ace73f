"""
Explicit Runge-Kutta steppers for NONLINEAR subsystems, built in CasADi.

A subsystem's right-hand side is a ``ca.Function`` ``f(x, u, p) -> x_dot``
where

- x: the subsystem's own variables
- u: everything held fixed during the step (other subsystems' variables,
  current buffers, time)
- p: parameters and internals

The builders return ``ca.Function``s ``F(x, u, p) -> xf`` applying one step
of fixed size ``h``.
"""

from __future__ import annotations

from typing import Dict, Sequence

import casadi as ca

RK4_TABLEAU: Dict[str, Sequence] = {
    "A": [
        [0.0, 0.0, 0.0, 0.0],
        [0.5, 0.0, 0.0, 0.0],
        [0.0, 0.5, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
    ],
    "b": [1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0],
    "c": [0.0, 0.5, 0.5, 1.0],
}

EULER_TABLEAU: Dict[str, Sequence] = {"A": [[0.0]], "b": [1.0], "c": [0.0]}


def build_rk_integrator(
    f: ca.Function,
    h: float,
    tableau: Dict[str, Sequence],
    name: str = "rk_step",
) -> ca.Function:
    """
    Build a one-step explicit Runge-Kutta integrator from a Butcher tableau.

    Parameters
    ----------
    f : ca.Function
        Right-hand side f(x, u, p) -> x_dot of shape (nx, 1)
    h : float
        Step size
    tableau : dict
        Keys 'A' (s x s, strictly lower triangular), 'b' and 'c' (length s)
    name : str
        Name of the resulting CasADi function

    Returns
    -------
    ca.Function
        F(x, u, p) -> xf
    """
    A = tableau["A"]
    b = tableau["b"]
    c = tableau["c"]
    s = len(b)
    if len(A) != s or any(len(row) != s for row in A) or len(c) != s:
        raise ValueError(f"Inconsistent Butcher tableau of {s} stages")
    if any(A[i][j] != 0 for i in range(s) for j in range(i, s)):
        raise ValueError("Butcher tableau is not explicit")

    x = ca.SX.sym("x", f.size_in(0))
    u = ca.SX.sym("u", f.size_in(1))
    p = ca.SX.sym("p", f.size_in(2))

    K = []
    for i in range(s):
        inc = 0
        for j in range(i):
            if A[i][j] != 0:
                inc = inc + A[i][j] * K[j]
        K.append(f(x + h * inc, u, p))

    x_next = x
    for i in range(s):
        if b[i] != 0:
            x_next = x_next + h * b[i] * K[i]

    return ca.Function(name, [x, u, p], [x_next], ["x", "u", "p"], ["xf"])


def rk4(f: ca.Function, h: float, name: str = "rk4_step", N: int = 1) -> ca.Function:
    """
    Classic 4th-order Runge-Kutta step of size ``h``.

    With ``N > 1`` the step is split into N substeps of size h/N; ``u`` is
    held over all of them.
    """
    if N < 1:
        raise ValueError(f"Number of substeps must be positive, got {N}")
    if N == 1:
        return build_rk_integrator(f, h, RK4_TABLEAU, name=name)

    substep = build_rk_integrator(f, h / N, RK4_TABLEAU, name=f"{name}_substep")
    x = ca.SX.sym("x", f.size_in(0))
    u = ca.SX.sym("u", f.size_in(1))
    p = ca.SX.sym("p", f.size_in(2))
    xk = x
    for _ in range(N):
        xk = substep(xk, u, p)
    return ca.Function(name, [x, u, p], [xk], ["x", "u", "p"], ["xf"])


def euler(f: ca.Function, h: float, name: str = "euler_step") -> ca.Function:
    """Forward Euler step of size ``h``."""
    return build_rk_integrator(f, h, EULER_TABLEAU, name=name)
