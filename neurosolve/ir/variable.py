"""
Declarations of named quantities in the IR.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from neurosolve.ir.expr import Expr
from neurosolve.ir.types import BUFFER_KIND_QUALIFIERS, SPIKE_SIGN_QUALIFIERS, BufferKind, OutputKind


@dataclass
class Declaration:
    """
    A named quantity: state variable, parameter or internal.

    For state variables ``order`` is the derivative order the declaration
    gives the initial value of, so ``g`` and ``g'`` are two declarations of
    the base name ``g`` with orders 0 and 1.

    Attributes
    ----------
    name : str
        Base name, without primes.
    unit : str, optional
        Unit expression such as ``"mV"`` or ``"nS/ms"``; ``None`` means
        dimensionless.
    value : Expr, optional
        Initial value (state) or value expression (parameter, internal).
    order : int
        Number of primes.
    location : str, optional
        Source location for diagnostics.
    """

    name: str
    unit: Optional[str] = None
    value: Optional[Expr] = None
    order: int = 0
    location: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Name with primes, e.g. ``g''``."""
        return self.name + "'" * self.order

    def __str__(self) -> str:
        unit = f" {self.unit}" if self.unit else ""
        value = f" = {self.value}" if self.value is not None else ""
        return f"{self.full_name}{unit}{value}"


@dataclass
class BufferDeclaration:
    """An input port, e.g. ``spikeInh <- inhibitory spike``."""

    name: str
    qualifiers: tuple[str, ...] = ("spike",)
    unit: Optional[str] = None
    location: Optional[str] = None

    @property
    def kind(self) -> Optional[BufferKind]:
        """Declared kind, or ``None`` when the qualifiers do not name one.

        ``excitatory`` and ``inhibitory`` imply a spike buffer. Whether the
        qualifiers are consistent is checked by the context conditions, not
        here.
        """
        quals = set(self.qualifiers)
        if "current" in quals and not quals & ({"spike"} | SPIKE_SIGN_QUALIFIERS):
            return BufferKind.CURRENT
        if quals & ({"spike"} | SPIKE_SIGN_QUALIFIERS) and "current" not in quals:
            return BufferKind.SPIKE
        return None

    @property
    def kind_qualifiers(self) -> list[str]:
        return [q for q in self.qualifiers if q in BUFFER_KIND_QUALIFIERS]

    def __str__(self) -> str:
        return f"{self.name} <- {' '.join(self.qualifiers)}"


@dataclass
class OutputDeclaration:
    """The neuron's output port."""

    kind: OutputKind = OutputKind.SPIKE
    location: Optional[str] = None
