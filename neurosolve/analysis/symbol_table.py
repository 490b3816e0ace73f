"""
Symbol table: every declared name resolved to one typed entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from beartype import beartype
from sympy.physics.units.dimensions import Dimension

from neurosolve.analysis.units import TIME, Unit, parse_unit
from neurosolve.errors import DuplicateNameError, UnresolvedUnitError
from neurosolve.ir.expr import Literal, VarRef, walk
from neurosolve.ir.model import NeuronModel
from neurosolve.ir.types import BufferKind, VariableKind

_KIND_LABELS = {
    VariableKind.STATE: "state variable",
    VariableKind.PARAMETER: "parameter",
    VariableKind.INTERNAL: "internal",
    VariableKind.SHAPE: "shape",
    VariableKind.BUFFER: "input buffer",
    VariableKind.FUNCTION: "function",
}


@dataclass(frozen=True)
class Symbol:
    """
    One entry of the symbol table.

    Attributes
    ----------
    name : str
        Declared base name.
    kind : VariableKind
        Category of the declaration.
    unit : Unit, optional
        Declared unit of the order-0 quantity; ``None`` when no unit was
        given (closed-form shapes and undimensioned declarations).
    declaration : object
        The IR node the entry was created from (first one for states).
    orders : tuple of int
        Declared derivative orders, for state variables and ODE-form shapes.
    buffer_kind : BufferKind, optional
        Kind of an input buffer.
    """

    name: str
    kind: VariableKind
    unit: Optional[Unit]
    declaration: Any
    orders: tuple[int, ...] = (0,)
    buffer_kind: Optional[BufferKind] = None

    @property
    def max_order(self) -> int:
        return max(self.orders)

    @property
    def label(self) -> str:
        return _KIND_LABELS[self.kind]

    def dimension(self, order: int = 0) -> Optional[Dimension]:
        """Dimension of the ``order``-th derivative; ``None`` when unknown."""
        if self.unit is None:
            return None
        return self.unit.dimension / TIME**order


class SymbolTable(Mapping[str, Symbol]):
    """Read-only mapping from declared name to :class:`Symbol`."""

    def __init__(self, symbols: Mapping[str, Symbol]):
        self._symbols = MappingProxyType(dict(symbols))

    def __getitem__(self, name: str) -> Symbol:
        return self._symbols[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def names(self, kind: VariableKind) -> list[str]:
        """Declared names of one category, in declaration order."""
        return [s.name for s in self._symbols.values() if s.kind == kind]

    def is_kind(self, name: str, kind: VariableKind) -> bool:
        sym = self._symbols.get(name)
        return sym is not None and sym.kind == kind

    def is_spike_buffer(self, name: str) -> bool:
        sym = self._symbols.get(name)
        return sym is not None and sym.buffer_kind == BufferKind.SPIKE

    def is_current_buffer(self, name: str) -> bool:
        sym = self._symbols.get(name)
        return sym is not None and sym.buffer_kind == BufferKind.CURRENT

    def dimension_of(self, ref: VarRef) -> Optional[Dimension]:
        sym = self._symbols.get(ref.name)
        if sym is None:
            return None
        return sym.dimension(ref.order)

    @classmethod
    def build(cls, model: NeuronModel) -> "SymbolTable":
        return build_symbol_table(model)


def _resolve_unit(unit: Optional[str], owner: str, location: Optional[str]) -> Optional[Unit]:
    if unit is None:
        return None
    try:
        return parse_unit(unit)
    except ValueError as e:
        raise UnresolvedUnitError(unit, owner, location) from e


@beartype
def build_symbol_table(model: NeuronModel) -> SymbolTable:
    """
    Resolve every declaration of ``model`` to a typed entry.

    Parameters
    ----------
    model : NeuronModel
        The model whose declaration blocks are read.

    Returns
    -------
    SymbolTable
        Entries in declaration order: state, shapes, functions, parameters,
        internals, inputs.

    Raises
    ------
    DuplicateNameError
        If a name is declared twice, within one block or across blocks. The
        declarations ``g`` and ``g'`` share the base name ``g`` and are one
        entry; declaring the same order twice is a duplicate.
    UnresolvedUnitError
        If a declaration or a unit-annotated literal uses an unknown unit.
    """
    symbols: dict[str, Symbol] = {}

    def add(sym: Symbol, location: Optional[str]) -> None:
        if sym.name in symbols:
            raise DuplicateNameError(sym.name, symbols[sym.name].label, sym.label, location)
        symbols[sym.name] = sym

    # Initial values of ODE-form shapes live in the state block
    ode_shapes = {s.name for s in model.shapes if not s.is_closed_form}

    state_orders: dict[str, list[int]] = {}
    state_first = {}
    for decl in model.state:
        orders = state_orders.setdefault(decl.name, [])
        if decl.order in orders:
            raise DuplicateNameError(decl.full_name, "state variable", "state variable", decl.location)
        orders.append(decl.order)
        state_first.setdefault(decl.name, decl)

    for name, orders in state_orders.items():
        if name in ode_shapes:
            continue
        decl = state_first[name]
        base = next((d for d in model.state if d.name == name and d.order == 0), decl)
        unit = _resolve_unit(base.unit, decl.full_name, decl.location)
        add(Symbol(name, VariableKind.STATE, unit, decl, tuple(sorted(orders))), decl.location)
        for other in model.state:
            if other.name == name and other is not base:
                _resolve_unit(other.unit, other.full_name, other.location)

    for shape in model.shapes:
        orders = tuple(sorted(state_orders.get(shape.name, []))) if not shape.is_closed_form else (0,)
        unit = None
        if not shape.is_closed_form:
            base = model.get_state(shape.name, 0)
            if base is not None:
                unit = _resolve_unit(base.unit, shape.name, base.location)
        add(Symbol(shape.name, VariableKind.SHAPE, unit, shape, orders or (0,)), shape.location)

    for func in model.functions:
        unit = _resolve_unit(func.unit, func.name, func.location)
        add(Symbol(func.name, VariableKind.FUNCTION, unit, func), func.location)

    for decl in model.parameters:
        unit = _resolve_unit(decl.unit, decl.name, decl.location)
        add(Symbol(decl.name, VariableKind.PARAMETER, unit, decl), decl.location)

    for decl in model.internals:
        unit = _resolve_unit(decl.unit, decl.name, decl.location)
        add(Symbol(decl.name, VariableKind.INTERNAL, unit, decl), decl.location)

    for buf in model.inputs:
        unit = _resolve_unit(buf.unit, buf.name, buf.location)
        add(Symbol(buf.name, VariableKind.BUFFER, unit, buf, buffer_kind=buf.kind), buf.location)

    for located in model.iter_expressions():
        for node in walk(located.expr):
            if isinstance(node, Literal) and node.unit is not None:
                _resolve_unit(node.unit, located.owner, located.location)

    return SymbolTable(symbols)
