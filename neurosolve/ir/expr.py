"""
Expression representation in the IR.

Expressions are a closed set of immutable node types:

- Literal: numeric or boolean constant, optionally with a unit
- VarRef: reference to a declared name, with derivative order (x, x', x'')
- UnaryOp / BinaryOp: operators
- FunctionCall: built-in or alias function application, including
  ``convolve(shape, buffer)`` and ``emit_spike()``

Analysis code matches on these node types structurally, it never relies on
methods overridden per node type. Python operators build trees, so
``-V_m / tau_m + I_e`` works on VarRef operands.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Union

# Functions every model may call without declaring them
MATH_FUNCTIONS = frozenset(
    {
        "exp",
        "expm1",
        "ln",
        "log10",
        "sqrt",
        "sin",
        "cos",
        "tan",
        "sinh",
        "cosh",
        "tanh",
        "abs",
        "min",
        "max",
        "pow",
    }
)
# Functions whose argument must be dimensionless
TRANSCENDENTAL_FUNCTIONS = frozenset(
    {"exp", "expm1", "ln", "log10", "sin", "cos", "tan", "sinh", "cosh", "tanh"}
)
CONVOLVE = "convolve"
EMIT_SPIKE = "emit_spike"
INTEGRATE_ODES = "integrate_odes"
RESOLUTION = "resolution"
BUILTIN_FUNCTIONS = MATH_FUNCTIONS | {CONVOLVE, EMIT_SPIKE, INTEGRATE_ODES, RESOLUTION}

# Names with a fixed meaning that declarations may not take
TIME = "t"
RESERVED_NAMES = frozenset({TIME, "e", "pi", "inf"})

ARITHMETIC_OPS = ("+", "-", "*", "/", "**")
COMPARISON_OPS = ("<", "<=", ">", ">=", "==", "!=")
LOGICAL_OPS = ("and", "or")


@dataclass(frozen=True)
class Expr:
    """Base class for all expressions."""

    def __add__(self, other: Any) -> "BinaryOp":
        return BinaryOp("+", self, to_expr(other))

    def __radd__(self, other: Any) -> "BinaryOp":
        return BinaryOp("+", to_expr(other), self)

    def __sub__(self, other: Any) -> "BinaryOp":
        return BinaryOp("-", self, to_expr(other))

    def __rsub__(self, other: Any) -> "BinaryOp":
        return BinaryOp("-", to_expr(other), self)

    def __mul__(self, other: Any) -> "BinaryOp":
        return BinaryOp("*", self, to_expr(other))

    def __rmul__(self, other: Any) -> "BinaryOp":
        return BinaryOp("*", to_expr(other), self)

    def __truediv__(self, other: Any) -> "BinaryOp":
        return BinaryOp("/", self, to_expr(other))

    def __rtruediv__(self, other: Any) -> "BinaryOp":
        return BinaryOp("/", to_expr(other), self)

    def __pow__(self, other: Any) -> "BinaryOp":
        return BinaryOp("**", self, to_expr(other))

    def __rpow__(self, other: Any) -> "BinaryOp":
        return BinaryOp("**", to_expr(other), self)

    def __neg__(self) -> "UnaryOp":
        return UnaryOp("-", self)

    def __pos__(self) -> "Expr":
        return self


@dataclass(frozen=True)
class Literal(Expr):
    """Literal constant value, e.g. ``2.5`` or ``-70 mV``."""

    value: Union[float, int, bool]
    unit: Optional[str] = None

    def __str__(self):
        if self.unit:
            return f"{self.value} {self.unit}"
        return str(self.value)


@dataclass(frozen=True)
class VarRef(Expr):
    """
    Reference to a declared name.

    ``order`` counts primes: ``VarRef("g", 2)`` is ``g''``.
    """

    name: str
    order: int = 0

    def __str__(self):
        return self.name + "'" * self.order

    @property
    def is_derivative(self) -> bool:
        return self.order > 0


@dataclass(frozen=True)
class UnaryOp(Expr):
    """Unary operation: -x, +x, not x."""

    op: str
    operand: Expr

    def __str__(self):
        if self.op == "not":
            return f"not {self.operand}"
        return f"{self.op}({self.operand})"


@dataclass(frozen=True)
class BinaryOp(Expr):
    """Binary operation: arithmetic, comparison or logical."""

    op: str
    left: Expr
    right: Expr

    def __str__(self):
        return f"({self.left} {self.op} {self.right})"


@dataclass(frozen=True)
class FunctionCall(Expr):
    """Function call: exp(x), convolve(g, spikes), f_alias()."""

    func: str
    args: tuple[Expr, ...] = ()

    def __str__(self):
        args_str = ", ".join(str(arg) for arg in self.args)
        return f"{self.func}({args_str})"

    @property
    def is_convolve(self) -> bool:
        return self.func == CONVOLVE


def to_expr(x: Any) -> Expr:
    """Convert a Python value to an expression.

    Strings become variable references, numbers and booleans become literals.
    """
    if isinstance(x, Expr):
        return x
    if isinstance(x, str):
        return VarRef(x)
    if isinstance(x, (bool, int, float)):
        return Literal(x)
    raise TypeError(f"Cannot convert {type(x).__name__} to Expr: {x!r}")


# =============================================================================
# Builders
# =============================================================================


class ExprBuilder:
    """Helper class for building expressions with a fluent API."""

    @staticmethod
    def literal(value: Union[float, int, bool], unit: Optional[str] = None) -> Literal:
        """Create a literal expression."""
        return Literal(value, unit)

    @staticmethod
    def var_ref(name: str, order: int = 0) -> VarRef:
        """Create a variable reference, ``order`` primes deep."""
        return VarRef(name, order)

    @staticmethod
    def call(func: str, *args: Any) -> FunctionCall:
        """Create a function call."""
        return FunctionCall(func, tuple(to_expr(a) for a in args))

    @staticmethod
    def convolve(shape: Any, buffer: Any) -> FunctionCall:
        """Create ``convolve(shape, buffer)``."""
        return FunctionCall(CONVOLVE, (to_expr(shape), to_expr(buffer)))

    @staticmethod
    def emit_spike() -> FunctionCall:
        """Create the ``emit_spike()`` action."""
        return FunctionCall(EMIT_SPIKE, ())

    @staticmethod
    def exp(x: Any) -> FunctionCall:
        """exp(x)"""
        return FunctionCall("exp", (to_expr(x),))

    @staticmethod
    def ln(x: Any) -> FunctionCall:
        """Natural logarithm."""
        return FunctionCall("ln", (to_expr(x),))

    @staticmethod
    def lt(left: Any, right: Any) -> BinaryOp:
        """left < right"""
        return BinaryOp("<", to_expr(left), to_expr(right))

    @staticmethod
    def gt(left: Any, right: Any) -> BinaryOp:
        """left > right"""
        return BinaryOp(">", to_expr(left), to_expr(right))

    @staticmethod
    def ge(left: Any, right: Any) -> BinaryOp:
        """left >= right"""
        return BinaryOp(">=", to_expr(left), to_expr(right))


# Expose builders as Expr.var_ref(...), Expr.call(...) etc.
for _name in dir(ExprBuilder):
    if not _name.startswith("_"):
        setattr(Expr, _name, staticmethod(getattr(ExprBuilder, _name)))

var_ref = ExprBuilder.var_ref
literal = ExprBuilder.literal
call = ExprBuilder.call
convolve = ExprBuilder.convolve
emit_spike = ExprBuilder.emit_spike
exp = ExprBuilder.exp
ln = ExprBuilder.ln


# =============================================================================
# Traversal
# =============================================================================


def walk(expr: Expr) -> Iterator[Expr]:
    """Yield ``expr`` and all of its sub-expressions, parents first."""
    yield expr
    if isinstance(expr, UnaryOp):
        yield from walk(expr.operand)
    elif isinstance(expr, BinaryOp):
        yield from walk(expr.left)
        yield from walk(expr.right)
    elif isinstance(expr, FunctionCall):
        for arg in expr.args:
            yield from walk(arg)


def find_var_refs(expr: Expr) -> list[VarRef]:
    """All variable references in ``expr``, in order of appearance.

    Arguments of ``convolve`` are included like any other reference.
    """
    return [node for node in walk(expr) if isinstance(node, VarRef)]


def find_calls(expr: Expr, func: Optional[str] = None) -> list[FunctionCall]:
    """All function calls in ``expr``, optionally only those of ``func``."""
    return [
        node
        for node in walk(expr)
        if isinstance(node, FunctionCall) and (func is None or node.func == func)
    ]


def transform(expr: Expr, fn: Callable[[Expr], Optional[Expr]]) -> Expr:
    """Rebuild ``expr`` bottom-up, replacing nodes for which ``fn`` returns an Expr.

    ``fn`` is tried on each node before its children; when it returns ``None``
    the node is rebuilt from transformed children.
    """
    replacement = fn(expr)
    if replacement is not None:
        return replacement
    if isinstance(expr, UnaryOp):
        return UnaryOp(expr.op, transform(expr.operand, fn))
    if isinstance(expr, BinaryOp):
        return BinaryOp(expr.op, transform(expr.left, fn), transform(expr.right, fn))
    if isinstance(expr, FunctionCall):
        return FunctionCall(expr.func, tuple(transform(a, fn) for a in expr.args))
    return expr
