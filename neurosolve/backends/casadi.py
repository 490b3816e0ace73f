"""
SymPy to CasADi translation.

Right-hand sides of NONLINEAR subsystems and forcing vectors are derived
symbolically and then evaluated numerically through CasADi functions, so the
Runge-Kutta steppers in :mod:`neurosolve.backends.integrators` can consume
them directly.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional, Sequence

import casadi as ca
import sympy as sp

__all__ = ["sympy_to_casadi", "CASADI_FUNCTIONS", "build_function"]

CASADI_FUNCTIONS: dict[type, Callable] = {
    sp.exp: ca.exp,
    sp.log: ca.log,
    sp.sin: ca.sin,
    sp.cos: ca.cos,
    sp.tan: ca.tan,
    sp.sinh: ca.sinh,
    sp.cosh: ca.cosh,
    sp.tanh: ca.tanh,
    sp.Abs: ca.fabs,
}


def sympy_to_casadi(f: sp.Basic, symbols: Optional[dict] = None) -> tuple[ca.SX, dict]:
    """
    Translate a SymPy expression into a CasADi SX expression.

    Parameters
    ----------
    f : sympy.Basic
        Expression to translate.
    symbols : dict, optional
        Symbol name to ``ca.SX``; missing symbols are created and added.

    Returns
    -------
    (ca.SX, dict)
        The expression and the (updated) symbol dictionary.
    """
    if symbols is None:
        symbols = {}
    return _sympy_parser(f, symbols), symbols


def _sympy_parser(f: sp.Basic, symbols: dict):
    prs = lambda g: _sympy_parser(g, symbols)

    if isinstance(f, sp.Symbol):
        if f.name not in symbols:
            symbols[f.name] = ca.SX.sym(f.name)
        return symbols[f.name]
    elif isinstance(f, sp.Integer):
        return int(f)
    elif isinstance(f, (sp.Rational, sp.Float)) or f in (sp.E, sp.pi):
        return float(f)
    elif isinstance(f, sp.Add):
        s = 0
        for arg in f.args:
            s += prs(arg)
        return s
    elif isinstance(f, sp.Mul):
        prod = 1
        for arg in f.args:
            prod *= prs(arg)
        return prod
    elif isinstance(f, sp.Pow):
        base, power = f.args
        if power == sp.Rational(1, 2):
            return ca.sqrt(prs(base))
        return prs(base) ** prs(power)
    elif isinstance(f, (sp.Min, sp.Max)):
        op = ca.fmin if isinstance(f, sp.Min) else ca.fmax
        args = [prs(arg) for arg in f.args]
        result = args[0]
        for arg in args[1:]:
            result = op(result, arg)
        return result
    elif isinstance(f, sp.Piecewise):
        result = None
        for expr, cond in reversed(f.args):
            value = prs(expr)
            result = value if cond == sp.true or result is None else ca.if_else(prs(cond), value, result)
        return result
    elif isinstance(f, sp.StrictLessThan):
        return prs(f.lhs) < prs(f.rhs)
    elif isinstance(f, sp.LessThan):
        return prs(f.lhs) <= prs(f.rhs)
    elif isinstance(f, sp.StrictGreaterThan):
        return prs(f.lhs) > prs(f.rhs)
    elif isinstance(f, sp.GreaterThan):
        return prs(f.lhs) >= prs(f.rhs)
    elif isinstance(f, sp.Eq):
        return ca.eq(prs(f.lhs), prs(f.rhs))
    elif isinstance(f, sp.Ne):
        return ca.ne(prs(f.lhs), prs(f.rhs))
    elif isinstance(f, (sp.And, sp.Or)):
        op = ca.logic_and if isinstance(f, sp.And) else ca.logic_or
        args = [prs(arg) for arg in f.args]
        result = args[0]
        for arg in args[1:]:
            result = op(result, arg)
        return result
    elif isinstance(f, sp.Not):
        return ca.logic_not(prs(f.args[0]))
    elif type(f) in CASADI_FUNCTIONS:
        return CASADI_FUNCTIONS[type(f)](prs(f.args[0]))
    raise TypeError(f"Cannot translate {type(f).__name__} to CasADi: {f}")


def build_function(
    name: str,
    outputs: Sequence[sp.Expr],
    groups: Sequence[tuple[str, Sequence[str]]],
) -> ca.Function:
    """
    Build ``ca.Function(name, [group, ...], [vertcat(outputs)])``.

    Parameters
    ----------
    name : str
        Function name.
    outputs : sequence of sympy.Expr
        Entries of the single output vector.
    groups : sequence of (str, sequence of str)
        Input name and the flat symbol names it stacks, in order. A symbol
        listed in several groups binds to the first.

    Raises
    ------
    ValueError
        If an output refers to a symbol bound by no group.
    """
    symbols: dict[str, ca.SX] = {}
    inputs = []
    for group, names in groups:
        vector = ca.SX.sym(group, len(names))
        for i, n in enumerate(names):
            symbols.setdefault(n, vector[i])
        inputs.append(vector)

    entries = []
    for expr in outputs:
        expr = sp.sympify(expr)
        unbound = sorted(s.name for s in expr.free_symbols if s.name not in symbols)
        if unbound:
            raise ValueError(f"{name}: no value for {unbound} in {expr}")
        entries.append(ca.SX(_sympy_parser(expr, symbols)))

    out = ca.vertcat(*entries) if entries else ca.SX(0, 1)
    return ca.Function(name, inputs, [out], [group for group, _ in groups], ["out"])
