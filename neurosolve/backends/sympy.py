"""
SymPy bridge for the IR.

Converts IR expressions to SymPy so the analysis stages can expand,
differentiate, collect coefficients and exponentiate matrices. All symbols
are created real through :func:`make_symbol`; SymPy compares symbols by
name *and* assumptions, so creating them anywhere else breaks matching.

Derivatives are flattened into plain symbols: ``g''`` becomes ``g__d__d``.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Iterable, Mapping, Optional

import sympy as sp

from neurosolve.ir.expr import (
    CONVOLVE,
    RESOLUTION,
    TIME,
    BinaryOp,
    Expr,
    FunctionCall,
    Literal,
    UnaryOp,
    VarRef,
)
from neurosolve.ir.variable import Declaration

DERIVATIVE_SUFFIX = "__d"


def symbol_name(name: str, order: int = 0) -> str:
    """Flat name of the ``order``-th derivative of ``name``."""
    return name + DERIVATIVE_SUFFIX * order


def make_symbol(name: str, order: int = 0) -> sp.Symbol:
    return sp.Symbol(symbol_name(name, order), real=True)


TIME_SYMBOL = make_symbol(TIME)

FUNCTION_MAP: dict[str, Callable] = {
    "exp": sp.exp,
    "expm1": lambda x: sp.exp(x) - 1,
    "ln": sp.log,
    "log10": lambda x: sp.log(x, 10),
    "sqrt": sp.sqrt,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "abs": sp.Abs,
    "min": sp.Min,
    "max": sp.Max,
    "pow": lambda x, y: x**y,
}

OP_MAP: dict[str, Callable] = {
    "+": lambda l, r: l + r,
    "-": lambda l, r: l - r,
    "*": lambda l, r: l * r,
    "/": lambda l, r: l / r,
    "**": lambda l, r: l**r,
    "==": lambda l, r: sp.Eq(l, r),
    "!=": lambda l, r: sp.Ne(l, r),
    "<": lambda l, r: sp.Lt(l, r),
    "<=": lambda l, r: sp.Le(l, r),
    ">": lambda l, r: sp.Gt(l, r),
    ">=": lambda l, r: sp.Ge(l, r),
    "and": lambda l, r: sp.And(l, r),
    "or": lambda l, r: sp.Or(l, r),
}

CONSTANTS: dict[str, sp.Basic] = {
    "e": sp.E,
    "pi": sp.pi,
    "inf": sp.oo,
}


class SympyConverter:
    """
    Converts IR expressions to SymPy expressions.

    Parameters
    ----------
    aliases : mapping of str to Expr, optional
        Function aliases to inline; references to them are replaced by the
        converted alias body.
    convolve : callable, optional
        Called with each ``convolve(...)`` node, returns its replacement.
        Without it convolutions cannot be converted.
    step_symbol : sympy.Symbol, optional
        Value of ``resolution()``.
    """

    def __init__(
        self,
        aliases: Optional[Mapping[str, Expr]] = None,
        convolve: Optional[Callable[[FunctionCall], sp.Expr]] = None,
        step_symbol: Optional[sp.Symbol] = None,
    ):
        self.aliases = dict(aliases or {})
        self.convolve = convolve
        self.step_symbol = step_symbol
        self._alias_cache: dict[str, sp.Expr] = {}
        self._expanding: list[str] = []

    def __call__(self, expr: Expr) -> sp.Expr:
        return self.convert(expr)

    def convert(self, expr: Expr) -> sp.Expr:
        """Convert an IR expression to a SymPy expression."""
        if isinstance(expr, Literal):
            if isinstance(expr.value, bool):
                return sp.true if expr.value else sp.false
            if isinstance(expr.value, int):
                return sp.Integer(expr.value)
            return sp.Float(expr.value)

        elif isinstance(expr, VarRef):
            if expr.order == 0 and expr.name in self.aliases:
                return self._alias(expr.name)
            if expr.order == 0 and expr.name in CONSTANTS:
                return CONSTANTS[expr.name]
            if expr.order == 0 and expr.name == TIME:
                return TIME_SYMBOL
            return make_symbol(expr.name, expr.order)

        elif isinstance(expr, BinaryOp):
            if expr.op not in OP_MAP:
                raise ValueError(f"Unsupported binary operator: {expr.op}")
            return OP_MAP[expr.op](self.convert(expr.left), self.convert(expr.right))

        elif isinstance(expr, UnaryOp):
            operand = self.convert(expr.operand)
            if expr.op == "-":
                return -operand
            elif expr.op == "+":
                return operand
            elif expr.op == "not":
                return sp.Not(operand)
            raise ValueError(f"Unsupported unary operator: {expr.op}")

        elif isinstance(expr, FunctionCall):
            if expr.func == CONVOLVE:
                if self.convolve is None:
                    raise ValueError(f"Cannot convert {expr}: convolutions must be expanded first")
                return self.convolve(expr)
            if expr.func == RESOLUTION:
                if self.step_symbol is None:
                    raise ValueError("resolution() used without a step symbol")
                return self.step_symbol
            if expr.func in FUNCTION_MAP:
                return FUNCTION_MAP[expr.func](*(self.convert(arg) for arg in expr.args))
            raise ValueError(f"Unsupported function: {expr.func}")

        raise TypeError(f"Unknown expression type: {type(expr).__name__}")

    def _alias(self, name: str) -> sp.Expr:
        if name in self._alias_cache:
            return self._alias_cache[name]
        if name in self._expanding:
            cycle = " -> ".join(self._expanding + [name])
            raise ValueError(f"Recursive function alias: {cycle}")
        self._expanding.append(name)
        try:
            value = self.convert(self.aliases[name])
        finally:
            self._expanding.pop()
        self._alias_cache[name] = value
        return value


def to_sympy(expr: Expr, aliases: Optional[Mapping[str, Expr]] = None) -> sp.Expr:
    """Convert ``expr`` with a throwaway converter."""
    return SympyConverter(aliases).convert(expr)


def resolve_constants(
    expressions: Mapping[str, sp.Expr],
    overrides: Optional[Mapping[str, float]] = None,
    known: Optional[Mapping[sp.Symbol, float]] = None,
) -> dict[str, float]:
    """
    Numeric values of mutually referring constant expressions.

    Expressions may refer to each other in any order; they are resolved until
    no further one becomes numeric. Expressions that stay symbolic, or are
    not finite, are left out.

    Parameters
    ----------
    expressions : mapping of str to sympy.Expr
        Flat symbol name to value expression.
    overrides : mapping of str to float, optional
        Values replacing the given ones, by name.
    known : mapping of sympy.Symbol to float, optional
        Further values, such as the step size.

    Returns
    -------
    dict
        Flat symbol name to float.
    """
    overrides = dict(overrides or {})
    pending = {k: sp.sympify(v) for k, v in expressions.items() if k not in overrides}
    values: dict[str, float] = {k: float(v) for k, v in overrides.items()}
    subs: dict[sp.Symbol, float] = dict(known or {})
    subs.update({make_symbol(k): v for k, v in values.items()})

    progress = True
    while pending and progress:
        progress = False
        for name in list(pending):
            value = pending[name].subs(subs)
            if value.free_symbols:
                continue
            del pending[name]
            progress = True
            try:
                number = float(value)
            except (TypeError, ValueError):
                continue
            if math.isfinite(number):
                values[name] = number
                subs[make_symbol(name)] = number
    return values


def evaluate_constants(
    declarations: Iterable[Declaration],
    overrides: Optional[Mapping[str, float]] = None,
    step: Optional[float] = None,
    step_symbol: Optional[sp.Symbol] = None,
) -> dict[str, float]:
    """
    Numeric values of parameter and internal declarations.

    See :func:`resolve_constants`; ``resolution()`` evaluates to ``step``
    when given and stays symbolic otherwise.
    """
    converter = SympyConverter(step_symbol=step_symbol or make_symbol("__h"))
    expressions = {d.name: converter.convert(d.value) for d in declarations if d.value is not None}
    known = {converter.step_symbol: float(step)} if step is not None else None
    return resolve_constants(expressions, overrides, known)
