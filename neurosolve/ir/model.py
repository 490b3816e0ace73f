"""
Neuron model representation in the IR.

A NeuronModel is the resolved AST handed over by a front end: plain
declaration blocks, nothing analysed yet. Duplicate or inconsistent
declarations are accepted here and reported by the analysis stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, NamedTuple, Optional

from neurosolve.ir.equation import FunctionDeclaration, OdeEquation, ShapeDeclaration
from neurosolve.ir.expr import Expr, to_expr
from neurosolve.ir.statement import Statement, iter_statements, statement_expressions
from neurosolve.ir.types import Block, OutputKind
from neurosolve.ir.variable import BufferDeclaration, Declaration, OutputDeclaration


class LocatedExpr(NamedTuple):
    """An expression together with where it occurs."""

    block: Block
    owner: str  # Declared name (or statement text) the expression belongs to
    expr: Expr
    location: Optional[str]


@dataclass
class NeuronModel:
    """
    Represents a complete neuron model.

    Blocks mirror the source language: state (with initial values),
    equations, shapes, functions, parameters, internals, input, output and
    update.
    """

    name: str
    state: list[Declaration] = field(default_factory=list)
    equations: list[OdeEquation] = field(default_factory=list)
    shapes: list[ShapeDeclaration] = field(default_factory=list)
    functions: list[FunctionDeclaration] = field(default_factory=list)
    parameters: list[Declaration] = field(default_factory=list)
    internals: list[Declaration] = field(default_factory=list)
    inputs: list[BufferDeclaration] = field(default_factory=list)
    outputs: list[OutputDeclaration] = field(default_factory=list)
    update: list[Statement] = field(default_factory=list)

    description: str = ""

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    def add_state(
        self,
        name: str,
        value: object = 0.0,
        unit: Optional[str] = None,
        order: int = 0,
        location: Optional[str] = None,
    ) -> Declaration:
        """Declare ``name`` (with ``order`` primes) and its initial value."""
        decl = Declaration(name, unit, to_expr(value), order, location)
        self.state.append(decl)
        return decl

    def add_parameter(
        self, name: str, value: object, unit: Optional[str] = None, location: Optional[str] = None
    ) -> Declaration:
        decl = Declaration(name, unit, to_expr(value), 0, location)
        self.parameters.append(decl)
        return decl

    def add_internal(
        self, name: str, value: object, unit: Optional[str] = None, location: Optional[str] = None
    ) -> Declaration:
        decl = Declaration(name, unit, to_expr(value), 0, location)
        self.internals.append(decl)
        return decl

    def add_ode(
        self, name: str, rhs: object, order: int = 1, location: Optional[str] = None
    ) -> OdeEquation:
        """Add ``name^(order) = rhs``."""
        eq = OdeEquation(name, order, to_expr(rhs), location)
        self.equations.append(eq)
        return eq

    def add_shape(
        self, name: str, expr: object, order: int = 0, location: Optional[str] = None
    ) -> ShapeDeclaration:
        shape = ShapeDeclaration(name, to_expr(expr), order, location)
        self.shapes.append(shape)
        return shape

    def add_function(
        self, name: str, expr: object, unit: Optional[str] = None, location: Optional[str] = None
    ) -> FunctionDeclaration:
        func = FunctionDeclaration(name, to_expr(expr), unit, location)
        self.functions.append(func)
        return func

    def add_input(
        self,
        name: str,
        *qualifiers: str,
        unit: Optional[str] = None,
        location: Optional[str] = None,
    ) -> BufferDeclaration:
        """Declare an input buffer, e.g. ``add_input("spikeInh", "inhibitory", "spike")``."""
        buf = BufferDeclaration(name, tuple(qualifiers), unit, location)
        self.inputs.append(buf)
        return buf

    def add_output(self, kind: OutputKind = OutputKind.SPIKE) -> OutputDeclaration:
        out = OutputDeclaration(kind)
        self.outputs.append(out)
        return out

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def state_names(self) -> list[str]:
        """Base names of state variables in declaration order, without repeats."""
        names: list[str] = []
        for decl in self.state:
            if decl.name not in names:
                names.append(decl.name)
        return names

    def state_orders(self, name: str) -> list[int]:
        """Declared derivative orders of a base name, sorted."""
        return sorted(d.order for d in self.state if d.name == name)

    def get_state(self, name: str, order: int = 0) -> Optional[Declaration]:
        for decl in self.state:
            if decl.name == name and decl.order == order:
                return decl
        return None

    def get_shape(self, name: str) -> Optional[ShapeDeclaration]:
        for shape in self.shapes:
            if shape.name == name:
                return shape
        return None

    def iter_expressions(self) -> Iterator[LocatedExpr]:
        """Yield every expression in the model with the block it belongs to."""
        for decl in self.state:
            if decl.value is not None:
                yield LocatedExpr(Block.STATE, decl.full_name, decl.value, decl.location)
        for eq in self.equations:
            yield LocatedExpr(Block.EQUATIONS, str(eq.lhs), eq.rhs, eq.location)
        for shape in self.shapes:
            yield LocatedExpr(Block.SHAPES, shape.name, shape.expr, shape.location)
        for func in self.functions:
            yield LocatedExpr(Block.FUNCTIONS, func.name, func.expr, func.location)
        for decl in self.parameters:
            if decl.value is not None:
                yield LocatedExpr(Block.PARAMETERS, decl.name, decl.value, decl.location)
        for decl in self.internals:
            if decl.value is not None:
                yield LocatedExpr(Block.INTERNALS, decl.name, decl.value, decl.location)
        for stmt in iter_statements(self.update):
            for expr in statement_expressions(stmt):
                yield LocatedExpr(Block.UPDATE, str(expr), expr, stmt.location)

    def __str__(self) -> str:
        lines = [f"neuron {self.name}:"]
        if self.state:
            lines.append("  state:")
            lines.extend(f"    {d}" for d in self.state)
        if self.equations or self.shapes or self.functions:
            lines.append("  equations:")
            lines.extend(f"    {s}" for s in self.shapes)
            lines.extend(f"    {f}" for f in self.functions)
            lines.extend(f"    {e}" for e in self.equations)
        if self.parameters:
            lines.append("  parameters:")
            lines.extend(f"    {d}" for d in self.parameters)
        if self.internals:
            lines.append("  internals:")
            lines.extend(f"    {d}" for d in self.internals)
        if self.inputs:
            lines.append("  input:")
            lines.extend(f"    {b}" for b in self.inputs)
        return "\n".join(lines)
