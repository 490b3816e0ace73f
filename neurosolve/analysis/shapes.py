"""
Shape expansion: synaptic kernels and convolutions to explicit linear ODEs.

A closed-form shape ``f(t) = sum_i c_i t^m_i exp(lambda_i t)`` with
decaying roots is the solution of a linear ODE of order
``n = sum of root multiplicities``. Instead of the companion form in the
derivatives of ``f`` it is represented as a cascade of first-order stages::

    v_0 = f
    v_{k+1} = v_k' - lambda_k v_k        (k = 0 .. n-2)
    v_k' = lambda_k v_k + v_{k+1}
    v_{n-1}' = lambda_{n-1} v_{n-1}

Each stage depends only on itself and the next one, so the coefficient
matrix is triangular and the propagator has a closed form per entry. An
event of weight ``w`` on the convolved buffer adds ``w * v_k(0)`` to each
stage.

ODE-form shapes (``shape g'' = ...`` with initial values in the state block)
are copied per convolution in their companion form, the declared initial
values being the impulse.

Provides:
- beta_peak_time / beta_normalization: unit-peak scaling of beta kernels
- beta_kernel: IR builder for the normalised beta kernel
- recognize_shape: closed form to ShapeForm
- expand_shapes: model to ExpandedSystem
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Optional

import sympy as sp
from beartype import beartype

from neurosolve.analysis.symbol_table import SymbolTable
from neurosolve.backends.sympy import (
    TIME_SYMBOL,
    SympyConverter,
    evaluate_constants,
    make_symbol,
    symbol_name,
)
from neurosolve.config import AnalysisConfig
from neurosolve.errors import DegenerateKernelError, UnsupportedShapeFormError
from neurosolve.ir.expr import CONVOLVE, Expr, FunctionCall, VarRef, exp, ln, to_expr, walk
from neurosolve.ir.model import NeuronModel
from neurosolve.ir.types import BufferKind, VariableKind

CONVOLVE_SEPARATOR = "__X__"


# =============================================================================
# Beta kernel normalisation
# =============================================================================


def beta_peak_time(tau1: Any, tau2: Any) -> sp.Expr:
    """Time at which ``exp(-t/tau1) - exp(-t/tau2)`` peaks."""
    tau1, tau2 = sp.sympify(tau1), sp.sympify(tau2)
    return tau1 * tau2 * sp.log(tau2 / tau1) / (tau2 - tau1)


def beta_normalization(tau1: Any, tau2: Any, policy: str = "error") -> sp.Expr:
    """
    Factor giving ``exp(-t/tau1) - exp(-t/tau2)`` unit peak amplitude.

    Parameters
    ----------
    tau1, tau2 : number or sympy expression
        The two time constants, in either order.
    policy : str
        What to do if ``tau1 == tau2``: ``"error"`` raises
        DegenerateKernelError, ``"limit"`` returns ``e/tau``, the factor of the
        limiting alpha kernel ``t exp(-t/tau)``.

    Returns
    -------
    sympy.Expr
        ``1 / (exp(-t_peak/tau1) - exp(-t_peak/tau2))``.
    """
    tau1, tau2 = sp.sympify(tau1), sp.sympify(tau2)
    if sp.simplify(tau1 - tau2) == 0:
        if policy == "limit":
            return sp.E / tau1
        raise DegenerateKernelError("beta", str(tau1))
    t_peak = beta_peak_time(tau1, tau2)
    return 1 / (sp.exp(-t_peak / tau1) - sp.exp(-t_peak / tau2))


def beta_normalization_expr(tau1: Any, tau2: Any) -> Expr:
    """IR expression of :func:`beta_normalization`, for internals blocks."""
    tau1, tau2 = to_expr(tau1), to_expr(tau2)
    if tau1 == tau2:
        raise DegenerateKernelError("beta", str(tau1))
    t_peak = tau1 * tau2 * ln(tau2 / tau1) / (tau2 - tau1)
    return 1 / (exp(-t_peak / tau1) - exp(-t_peak / tau2))


def beta_kernel(tau1: Any, tau2: Any, weight: Any = 1, policy: str = "error") -> Expr:
    """
    IR expression of the unit-peak double-exponential kernel.

    With ``policy="limit"`` and ``tau1 == tau2`` the unit-peak alpha kernel
    ``(e/tau) t exp(-t/tau)`` is returned instead.
    """
    t = VarRef("t")
    tau1, tau2, weight = to_expr(tau1), to_expr(tau2), to_expr(weight)
    if tau1 == tau2:
        if policy != "limit":
            raise DegenerateKernelError("beta", str(tau1))
        return weight * VarRef("e") / tau1 * t * exp(-t / tau1)
    norm = beta_normalization_expr(tau1, tau2)
    return weight * norm * (exp(-t / tau1) - exp(-t / tau2))


# =============================================================================
# Closed-form recognition
# =============================================================================


@dataclass(frozen=True)
class ShapeForm:
    """
    Linear-ODE representation of a closed-form kernel.

    Attributes
    ----------
    name : str
        Shape name.
    expr : sympy.Expr
        The kernel ``f(t)``.
    roots : tuple
        Cascade roots ``lambda_0 .. lambda_{n-1}``, repeated by multiplicity.
    stages : tuple
        Cascade stages ``v_0(t) .. v_{n-1}(t)``.
    initial_values : tuple
        ``v_k(0)``, the impulse one unit event adds to each stage.
    ode_coefficients : tuple
        ``c_0 .. c_{n-1}`` of the canonical ODE ``f^(n) = sum_i c_i f^(i)``.
    """

    name: str
    expr: sp.Expr
    roots: tuple[sp.Expr, ...]
    stages: tuple[sp.Expr, ...]
    initial_values: tuple[sp.Expr, ...]
    ode_coefficients: tuple[sp.Expr, ...]

    @property
    def order(self) -> int:
        return len(self.roots)

    @property
    def distinct_roots(self) -> list[sp.Expr]:
        distinct: list[sp.Expr] = []
        for root in self.roots:
            if root not in distinct:
                distinct.append(root)
        return distinct


def _split_term(name: str, expr: sp.Expr, term: sp.Expr, location: Optional[str]):
    """Split ``c * t**m * exp(lam*t + d)`` into ``(c*exp(d), m, lam)``."""
    t = TIME_SYMBOL
    coeff, t_part = term.as_independent(t, as_Add=False)
    power = 0
    exponent = sp.Integer(0)
    for factor in sp.Mul.make_args(t_part):
        if factor == t:
            power += 1
        elif factor.is_Pow and factor.base == t and factor.exp.is_Integer and factor.exp > 0:
            power += int(factor.exp)
        elif isinstance(factor, sp.exp):
            exponent += factor.args[0]
        elif factor != 1:
            raise UnsupportedShapeFormError(
                name, str(expr), f"factor {factor} is neither a power of t nor an exponential", location
            )
    lam = sp.diff(exponent, t)
    if lam.has(t):
        raise UnsupportedShapeFormError(
            name, str(expr), f"exponent {exponent} is not linear in t", location
        )
    offset = exponent.subs(t, 0)
    if offset != 0:
        coeff = coeff * sp.exp(offset)
    return coeff, power, sp.simplify(lam)


def _characteristic_coefficients(roots: list[sp.Expr]) -> tuple[sp.Expr, ...]:
    x = sp.Dummy("x")
    poly = sp.Poly(sp.prod([x - r for r in roots]), x)
    n = len(roots)
    # x^n - sum_i c_i x^i
    return tuple(sp.simplify(-poly.coeff_monomial(x**i)) for i in range(n))


@beartype
def recognize_shape(
    name: str,
    expr: sp.Expr,
    max_order: int = 2,
    location: Optional[str] = None,
) -> ShapeForm:
    """
    Derive the linear-ODE representation of a closed-form kernel.

    Parameters
    ----------
    name : str
        Shape name, for diagnostics.
    expr : sympy.Expr
        Kernel as a function of :data:`TIME_SYMBOL`.
    max_order : int
        Largest accepted ODE order.
    location : str, optional
        Source location, for diagnostics.

    Returns
    -------
    ShapeForm
        Roots, cascade stages and impulse values.

    Raises
    ------
    UnsupportedShapeFormError
        If the kernel is not a sum of ``t^m exp(lambda t)`` terms with
        decaying real roots, or its order exceeds ``max_order``.
    """
    t = TIME_SYMBOL
    f = sp.expand(expr)
    terms: dict[tuple[sp.Expr, int], sp.Expr] = {}
    for term in sp.Add.make_args(f):
        coeff, power, lam = _split_term(name, expr, term, location)
        key = (lam, power)
        terms[key] = terms.get(key, sp.Integer(0)) + coeff

    multiplicity: dict[sp.Expr, int] = {}
    for (lam, power), coeff in terms.items():
        if sp.simplify(coeff) == 0:
            continue
        multiplicity[lam] = max(multiplicity.get(lam, 0), power + 1)

    if not multiplicity:
        raise UnsupportedShapeFormError(name, str(expr), "kernel vanishes identically", location)
    for lam in multiplicity:
        if lam.is_real is False:
            raise UnsupportedShapeFormError(name, str(expr), f"root {lam} is not real", location)
        if lam.is_nonnegative:
            raise UnsupportedShapeFormError(name, str(expr), f"term with root {lam} does not decay", location)

    roots: list[sp.Expr] = []
    for lam in sorted(multiplicity, key=sp.default_sort_key):
        roots.extend([lam] * multiplicity[lam])
    if len(roots) > max_order:
        raise UnsupportedShapeFormError(
            name, str(expr), f"order {len(roots)} exceeds the maximum of {max_order}", location
        )

    stages = [f]
    for root in roots[:-1]:
        stages.append(sp.expand(sp.diff(stages[-1], t) - root * stages[-1]))
    residual = sp.diff(stages[-1], t) - roots[-1] * stages[-1]
    if sp.simplify(residual) != 0:
        raise UnsupportedShapeFormError(name, str(expr), "cascade does not close", location)

    initial_values = tuple(sp.simplify(v.subs(t, 0)) for v in stages)
    return ShapeForm(
        name=name,
        expr=f,
        roots=tuple(roots),
        stages=tuple(stages),
        initial_values=initial_values,
        ode_coefficients=_characteristic_coefficients(roots),
    )


def _check_degenerate(
    form: ShapeForm, constants: dict[str, float], config: AnalysisConfig, location: Optional[str]
) -> ShapeForm:
    """Resolve numerically coinciding roots according to the kernel policy."""
    subs = {make_symbol(k): v for k, v in constants.items()}
    values = []
    for root in form.distinct_roots:
        value = root.subs(subs)
        values.append(float(value) if not value.free_symbols else None)
    for i in range(len(values)):
        for j in range(i + 1, len(values)):
            if values[i] is None or values[i] != values[j]:
                continue
            tau = f"{-1.0 / values[i]:g}"
            if config.degenerate_kernel != "limit" or len(values) != 2:
                raise DegenerateKernelError(form.name, tau, location)
            warnings.warn(
                f"Kernel '{form.name}' has coinciding time constants ({tau}), "
                "using its unit-peak alpha limit",
                UserWarning,
            )
            root = form.distinct_roots[0]
            alpha = -sp.E * root * TIME_SYMBOL * sp.exp(root * TIME_SYMBOL)
            return recognize_shape(form.name, alpha, config.max_shape_order, location)
    return form


# =============================================================================
# Expansion
# =============================================================================


@dataclass
class ExpandedVariable:
    """
    One first-order state variable of the expanded system.

    Attributes
    ----------
    name : str
        Flat name (``V_m``, ``g__d``, ``I_shape__X__spikes``).
    rhs : sympy.Expr
        Right-hand side of ``name' = rhs``.
    initial_value : sympy.Expr
        Value at t = 0.
    origin : str
        State variable or convolution the variable was derived from.
    stage : int
        Position in the derivative chain or cascade of ``origin``.
    """

    name: str
    rhs: sp.Expr
    initial_value: sp.Expr
    origin: str
    stage: int = 0

    @property
    def symbol(self) -> sp.Symbol:
        return make_symbol(self.name)


@dataclass
class SpikeUpdate:
    """At each step ``variable += impulse * buffer``."""

    variable: str
    buffer: str
    impulse: sp.Expr

    def __str__(self) -> str:
        return f"{self.variable} += ({self.impulse}) * {self.buffer}"


@dataclass
class ExpandedSystem:
    """The model as a flat system of first-order ODEs."""

    name: str
    variables: list[ExpandedVariable] = field(default_factory=list)
    spike_updates: list[SpikeUpdate] = field(default_factory=list)
    shape_forms: dict[str, ShapeForm] = field(default_factory=dict)
    parameters: dict[str, sp.Expr] = field(default_factory=dict)
    internals: dict[str, sp.Expr] = field(default_factory=dict)
    buffers: dict[str, BufferKind] = field(default_factory=dict)
    held_state: dict[str, sp.Expr] = field(default_factory=dict)
    step_symbol: sp.Symbol = field(default_factory=lambda: make_symbol("__h"))

    @property
    def names(self) -> list[str]:
        return [v.name for v in self.variables]

    @property
    def symbols(self) -> list[sp.Symbol]:
        return [v.symbol for v in self.variables]

    def variable(self, name: str) -> ExpandedVariable:
        for v in self.variables:
            if v.name == name:
                return v
        raise KeyError(name)

    @property
    def constant_symbols(self) -> set[sp.Symbol]:
        """Parameters and internals: constant within an analysis."""
        return {make_symbol(n) for n in list(self.parameters) + list(self.internals)}


def _convolutions(model: NeuronModel) -> list[FunctionCall]:
    """Convolve calls reachable from the ODEs, in order of first appearance."""
    aliases = {f.name: f.expr for f in model.functions}
    found: list[FunctionCall] = []
    visited: set[str] = set()

    def visit(expr: Expr) -> None:
        for node in walk(expr):
            if isinstance(node, FunctionCall) and node.func == CONVOLVE and node not in found:
                found.append(node)
            elif isinstance(node, VarRef) and node.name in aliases and node.name not in visited:
                visited.add(node.name)
                visit(aliases[node.name])

    for eq in model.equations:
        visit(eq.rhs)
    return found


def convolution_name(shape: str, buffer: str) -> str:
    return f"{shape}{CONVOLVE_SEPARATOR}{buffer}"


@beartype
def expand_shapes(
    model: NeuronModel,
    symbols: SymbolTable,
    config: Optional[AnalysisConfig] = None,
) -> ExpandedSystem:
    """
    Rewrite shapes, convolutions and derivative chains as first-order ODEs.

    Parameters
    ----------
    model : NeuronModel
        A model that passed the context conditions.
    symbols : SymbolTable
        Its symbol table.
    config : AnalysisConfig, optional
        Shape order limit and degenerate-kernel policy.

    Returns
    -------
    ExpandedSystem
        Variables in declaration order (state variables, then one group per
        convolution in order of first appearance), spike updates and
        constants. Two expansions of the same model compare equal.

    Raises
    ------
    UnsupportedShapeFormError
        If a convolved closed-form shape is outside the supported family.
    DegenerateKernelError
        If a kernel's time constants coincide under the ``"error"`` policy.
    """
    config = config or AnalysisConfig()
    step = make_symbol(config.step_symbol)
    aliases = {f.name: f.expr for f in model.functions}
    base = SympyConverter(aliases, step_symbol=step)
    constants = evaluate_constants(model.parameters + model.internals, step_symbol=step)

    system = ExpandedSystem(name=model.name, step_symbol=step)
    system.parameters = {d.name: base.convert(d.value) for d in model.parameters if d.value is not None}
    system.internals = {d.name: base.convert(d.value) for d in model.internals if d.value is not None}
    system.buffers = {b.name: b.kind for b in model.inputs if b.kind is not None}

    # Convolutions: one set of variables per (shape, buffer) pair
    convolutions = _convolutions(model)
    replacement: dict[FunctionCall, sp.Symbol] = {}
    shape_variables: list[ExpandedVariable] = []
    used_shapes: set[str] = set()
    for call in convolutions:
        shape_ref, buffer_ref = call.args
        shape = model.get_shape(shape_ref.name)
        pair = convolution_name(shape.name, buffer_ref.name)
        used_shapes.add(shape.name)
        replacement[call] = make_symbol(pair)

        if shape.is_closed_form:
            form = system.shape_forms.get(shape.name)
            if form is None:
                form = recognize_shape(
                    shape.name, base.convert(shape.expr), config.max_shape_order, shape.location
                )
                form = _check_degenerate(form, constants, config, shape.location)
                system.shape_forms[shape.name] = form
            n = form.order
            for k in range(n):
                rhs = form.roots[k] * make_symbol(pair, k)
                if k + 1 < n:
                    rhs = rhs + make_symbol(pair, k + 1)
                shape_variables.append(
                    ExpandedVariable(symbol_name(pair, k), rhs, sp.Integer(0), pair, k)
                )
            impulses = form.initial_values
        else:
            n = shape.order
            rename = {make_symbol(shape.name, k): make_symbol(pair, k) for k in range(n)}
            top = base.convert(shape.expr).xreplace(rename)
            for k in range(n):
                rhs = make_symbol(pair, k + 1) if k + 1 < n else top
                shape_variables.append(
                    ExpandedVariable(symbol_name(pair, k), rhs, sp.Integer(0), pair, k)
                )
            impulses = tuple(
                base.convert(model.get_state(shape.name, k).value) for k in range(n)
            )

        for k, impulse in enumerate(impulses):
            if impulse != 0:
                system.spike_updates.append(SpikeUpdate(symbol_name(pair, k), buffer_ref.name, impulse))

    for shape in model.shapes:
        if shape.name not in used_shapes:
            warnings.warn(f"Shape '{shape.name}' is never convolved and is ignored", UserWarning)

    converter = SympyConverter(aliases, convolve=replacement.__getitem__, step_symbol=step)

    # State variables: derivative chains x, x', ..., x^(N) up to the ODE
    odes = {eq.name: eq for eq in model.equations}
    shape_states = {s.name for s in model.shapes if not s.is_closed_form}
    for name in model.state_names:
        if name in shape_states:
            continue
        if name not in odes:
            decl = model.get_state(name, 0)
            system.held_state[name] = base.convert(decl.value)
            continue
        eq = odes[name]
        for k in range(eq.order):
            decl = model.get_state(name, k)
            rhs = make_symbol(name, k + 1) if k + 1 < eq.order else converter.convert(eq.rhs)
            system.variables.append(
                ExpandedVariable(symbol_name(name, k), rhs, base.convert(decl.value), name, k)
            )

    system.variables.extend(shape_variables)

    convolved = {u.buffer for u in system.spike_updates}
    for buf in symbols.names(VariableKind.BUFFER):
        if symbols.is_spike_buffer(buf) and buf not in convolved:
            warnings.warn(f"Spike buffer '{buf}' is never convolved", UserWarning)

    return system
