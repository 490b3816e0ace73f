"""
Statements of the update block.

The update block runs once per step after the ODEs have been integrated
(``integrate_odes()``); it resets state, counts refractory steps and emits
spikes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from neurosolve.ir.expr import EMIT_SPIKE, Expr, FunctionCall, VarRef


@dataclass
class Assignment:
    """``target op expr`` where ``op`` is ``=``, ``+=``, ``-=``, ``*=`` or ``/=``."""

    target: VarRef
    expr: Expr
    op: str = "="
    location: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.target} {self.op} {self.expr}"


@dataclass
class CallStatement:
    """A bare function call such as ``emit_spike()``."""

    call: FunctionCall
    location: Optional[str] = None

    def __str__(self) -> str:
        return str(self.call)

    @property
    def is_emit_spike(self) -> bool:
        return self.call.func == EMIT_SPIKE


@dataclass
class IfStatement:
    """``if condition: body else: orelse``."""

    condition: Expr
    body: list["Statement"] = field(default_factory=list)
    orelse: list["Statement"] = field(default_factory=list)
    location: Optional[str] = None


Statement = Union[Assignment, CallStatement, IfStatement]


def iter_statements(statements: list[Statement]) -> Iterator[Statement]:
    """Yield every statement, descending into if/else bodies."""
    for stmt in statements:
        yield stmt
        if isinstance(stmt, IfStatement):
            yield from iter_statements(stmt.body)
            yield from iter_statements(stmt.orelse)


def statement_expressions(stmt: Statement) -> list[Expr]:
    """Expressions held directly by ``stmt`` (not by nested statements)."""
    if isinstance(stmt, Assignment):
        return [stmt.target, stmt.expr]
    if isinstance(stmt, CallStatement):
        return [stmt.call]
    return [stmt.condition]
