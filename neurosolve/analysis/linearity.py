"""
Linearity classification and subsystem partitioning.

A variable is *linear* when its right-hand side is ``sum_i c_i v_i + f``
with constant coefficients ``c_i`` (built from parameters, internals,
literals and the step size) over the state variables ``v_i``, and a forcing
term ``f`` free of state variables (buffers, held state, time). Anything
else (a product of two state variables, a state variable inside a
transcendental function) makes the variable nonlinear.

Variables sharing a dependency cycle with a nonlinear variable must be
integrated together with it, so the nonlinear set is closed over strongly
connected components. Linear and nonlinear variables are then grouped into
weakly connected subsystems; subsystems that depend on each other in a
cycle are merged into one NONLINEAR subsystem so that an update order
exists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import sympy as sp
from beartype import beartype

from neurosolve.analysis.graph import DependencyGraph, topological_order
from neurosolve.analysis.shapes import ExpandedSystem
from neurosolve.ir.types import SolverKind


@dataclass(frozen=True)
class LinearForm:
    """``rhs = sum(coefficients[v] * v) + forcing``."""

    coefficients: dict
    forcing: sp.Expr


def linear_decomposition(
    rhs: sp.Expr,
    variables: Sequence[sp.Symbol],
    constants: Iterable[sp.Symbol],
) -> Optional[LinearForm]:
    """
    Split ``rhs`` into constant-coefficient terms and forcing.

    Parameters
    ----------
    rhs : sympy.Expr
        Right-hand side to decompose.
    variables : sequence of sympy.Symbol
        State variables.
    constants : iterable of sympy.Symbol
        Symbols that are constant in time.

    Returns
    -------
    LinearForm or None
        ``None`` if ``rhs`` is not linear with constant coefficients in
        ``variables``.
    """
    constants = set(constants)
    coefficients = {}
    for v in variables:
        if not rhs.has(v):
            continue
        c = sp.diff(rhs, v)
        if not c.free_symbols <= constants:
            return None
        c = sp.simplify(c)
        if c != 0:
            coefficients[v] = c
    forcing = sp.expand(rhs - sum((c * v for v, c in coefficients.items()), sp.Integer(0)))
    if forcing.free_symbols & set(variables):
        return None
    return LinearForm(coefficients, sp.simplify(forcing))


@dataclass
class Subsystem:
    """
    A group of variables solved together.

    Attributes
    ----------
    index : int
        Position in the classification, by lowest variable index.
    kind : SolverKind
        LINEAR (exact propagator) or NONLINEAR (numerical stepper).
    indices : list of int
        Arena indices, in dependency-depth order.
    variables : list of str
        Names matching ``indices``.
    rhs : list of sympy.Expr
        Right-hand sides matching ``variables``.
    matrix : sympy.Matrix, optional
        Coefficient matrix over ``variables`` (LINEAR only).
    forcing : list of sympy.Expr, optional
        Forcing per variable, including terms in other subsystems' variables
        (LINEAR only).
    depends_on : list of int
        Subsystems whose variables appear in this one's right-hand sides.
    triangular : bool, optional
        Whether the dependencies among ``variables`` all point forward in
        their order (LINEAR only).
    """

    index: int
    kind: SolverKind
    indices: list[int]
    variables: list[str]
    rhs: list[sp.Expr]
    matrix: Optional[sp.Matrix] = None
    forcing: Optional[list[sp.Expr]] = None
    depends_on: list[int] = field(default_factory=list)
    triangular: Optional[bool] = None

    @property
    def is_linear(self) -> bool:
        return self.kind == SolverKind.LINEAR

    def __len__(self) -> int:
        return len(self.variables)


@dataclass
class Classification:
    """Subsystems of one model and the order to advance them in each step."""

    subsystems: list[Subsystem]
    update_order: list[int]
    nonlinear_variables: list[str] = field(default_factory=list)

    def subsystem_of(self, name: str) -> Subsystem:
        for sub in self.subsystems:
            if name in sub.variables:
                return sub
        raise KeyError(name)


@beartype
def classify(system: ExpandedSystem, graph: DependencyGraph) -> Classification:
    """
    Partition ``system`` into LINEAR and NONLINEAR subsystems.

    Parameters
    ----------
    system : ExpandedSystem
        The expanded model.
    graph : DependencyGraph
        Its dependency graph.

    Returns
    -------
    Classification
        Subsystems listed by lowest variable index, variables within each
        ordered by dependency depth then declaration order, and the update
        order (dependencies first, ties by subsystem index).
    """
    symbols = system.symbols
    constants = system.constant_symbols | {system.step_symbol}
    forms = [linear_decomposition(v.rhs, symbols, constants) for v in system.variables]
    nonlinear = {i for i, form in enumerate(forms) if form is None}

    closure: set[int] = set()
    for scc in graph.strongly_connected_components():
        if nonlinear & set(scc):
            closure |= set(scc)
    linear = [i for i in range(len(graph)) if i not in closure]

    groups: list[tuple[SolverKind, list[int]]] = [
        (SolverKind.LINEAR, comp) for comp in graph.weakly_connected_components(linear)
    ] + [(SolverKind.NONLINEAR, comp) for comp in graph.weakly_connected_components(closure)]

    # Merge groups that depend on each other cyclically
    owner = {i: g for g, (_, members) in enumerate(groups) for i in members}
    group_graph = DependencyGraph([str(g) for g in range(len(groups))])
    for a, b in graph.edges:
        group_graph.add_edge(owner[a], owner[b])
    merged: list[tuple[SolverKind, list[int]]] = []
    for scc in group_graph.strongly_connected_components():
        if len(scc) == 1:
            merged.append(groups[scc[0]])
        else:
            members = sorted(i for g in scc for i in groups[g][1])
            merged.append((SolverKind.NONLINEAR, members))
    merged.sort(key=lambda group: group[1][0])

    owner = {i: g for g, (_, members) in enumerate(merged) for i in members}
    subsystems = []
    for g, (kind, members) in enumerate(merged):
        ordered = graph.depth_order(members)
        sub = Subsystem(
            index=g,
            kind=kind,
            indices=ordered,
            variables=[system.variables[i].name for i in ordered],
            rhs=[system.variables[i].rhs for i in ordered],
        )
        sub.depends_on = sorted({owner[a] for i in ordered for a in graph.predecessors[i]} - {g})
        if kind == SolverKind.LINEAR:
            sub.matrix, sub.forcing = _linear_system(sub, [forms[i] for i in ordered], symbols)
            sub.triangular = graph.is_lower_triangular(ordered)
        subsystems.append(sub)

    edges = {(d, sub.index) for sub in subsystems for d in sub.depends_on}
    return Classification(
        subsystems=subsystems,
        update_order=topological_order(len(subsystems), edges),
        nonlinear_variables=[system.variables[i].name for i in sorted(nonlinear)],
    )


def _linear_system(
    sub: Subsystem, forms: list[LinearForm], symbols: list[sp.Symbol]
) -> tuple[sp.Matrix, list[sp.Expr]]:
    """Coefficient matrix over the subsystem's variables and the rest as forcing."""
    own = [s for s in symbols if s.name in sub.variables]
    own.sort(key=lambda s: sub.variables.index(s.name))
    n = len(own)
    matrix = sp.zeros(n, n)
    forcing = []
    for row, form in enumerate(forms):
        outside = form.forcing
        for v, c in form.coefficients.items():
            if v in own:
                matrix[row, own.index(v)] = c
            else:
                outside = outside + c * v
        forcing.append(outside)
    return matrix, forcing
