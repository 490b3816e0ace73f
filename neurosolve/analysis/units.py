"""
Physical units of declared quantities.

Units are tracked as dimensions only (voltage, current, time, ...), using
the dimension system of ``sympy.physics.units``. Magnitudes and SI prefixes
are parsed so that ``mV`` and ``V`` are recognised, but prefixes do not
change the dimension and no unit conversion is performed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from sympy.physics.units import (
    capacitance,
    charge,
    conductance,
    current,
    frequency,
    impedance,
    time,
    voltage,
)
from sympy.physics.units.dimensions import Dimension
from sympy.physics.units.systems.si import dimsys_SI

DIMENSIONLESS = Dimension(1)
TIME = time

BASE_UNITS: dict[str, Dimension] = {
    "V": voltage,
    "A": current,
    "S": conductance,
    "F": capacitance,
    "Ohm": impedance,
    "s": time,
    "Hz": frequency,
    "C": charge,
}

PREFIXES = {
    "f": 1e-15,
    "p": 1e-12,
    "n": 1e-9,
    "u": 1e-6,
    "µ": 1e-6,
    "m": 1e-3,
    "c": 1e-2,
    "k": 1e3,
    "M": 1e6,
    "G": 1e9,
}

# Type names that stand for dimensionless quantities
DIMENSIONLESS_TYPES = frozenset({"real", "integer", "boolean", "1"})

_TOKEN = re.compile(r"\s*(?:(\*\*|\^)|([*/()])|(-?\d+)|([A-Za-zµ]+))")


@dataclass(frozen=True)
class Unit:
    """A parsed unit: its source text and its physical dimension."""

    name: str
    dimension: Dimension

    @property
    def is_dimensionless(self) -> bool:
        return is_dimensionless(self.dimension)

    def __str__(self):
        return self.name


def is_dimensionless(dim: Dimension) -> bool:
    return dimsys_SI.is_dimensionless(dim)


def same_dimension(a: Dimension, b: Dimension) -> bool:
    """True if both dimensions reduce to the same base dimensions."""
    return dimsys_SI.equivalent_dims(a, b)


def format_dimension(dim: Dimension) -> str:
    if is_dimensionless(dim):
        return "1"
    return str(dim.name)


def _atom(name: str) -> Dimension:
    if name in DIMENSIONLESS_TYPES:
        return DIMENSIONLESS
    if name in BASE_UNITS:
        return BASE_UNITS[name]
    if len(name) > 1 and name[0] in PREFIXES and name[1:] in BASE_UNITS:
        return BASE_UNITS[name[1:]]
    raise ValueError(f"unknown unit '{name}'")


def _tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    text = text.strip()
    while pos < len(text):
        m = _TOKEN.match(text, pos)
        if m is None or m.end() == pos:
            raise ValueError(f"unexpected character {text[pos]!r}")
        tokens.append(next(g for g in m.groups() if g is not None))
        pos = m.end()
    return tokens


class _Parser:
    """Recursive-descent parser for ``term (('*'|'/') term)*``."""

    def __init__(self, tokens: list[str]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise ValueError("unexpected end of unit")
        self.pos += 1
        return token

    def product(self) -> Dimension:
        dim = self.power()
        while self.peek() in ("*", "/"):
            op = self.take()
            rhs = self.power()
            dim = dim * rhs if op == "*" else dim / rhs
        return dim

    def power(self) -> Dimension:
        dim = self.atom()
        if self.peek() in ("**", "^"):
            self.take()
            exponent = self.take()
            if not re.fullmatch(r"-?\d+", exponent):
                raise ValueError(f"exponent must be an integer, got {exponent!r}")
            dim = dim ** int(exponent)
        return dim

    def atom(self) -> Dimension:
        token = self.take()
        if token == "(":
            dim = self.product()
            if self.take() != ")":
                raise ValueError("unbalanced parentheses")
            return dim
        if re.fullmatch(r"-?\d+", token):
            if token != "1":
                raise ValueError(f"unexpected number {token!r}")
            return DIMENSIONLESS
        return _atom(token)


@lru_cache(maxsize=None)
def parse_unit(text: str) -> Unit:
    """
    Parse a unit expression.

    Parameters
    ----------
    text : str
        Unit text such as ``"mV"``, ``"nS/ms"``, ``"1/ms"``, ``"ms**2"`` or a
        dimensionless type name (``"real"``, ``"integer"``, ``"boolean"``).

    Returns
    -------
    Unit
        The parsed unit.

    Raises
    ------
    ValueError
        If the text is not a recognised unit expression.
    """
    tokens = _tokenize(text)
    if not tokens:
        raise ValueError("empty unit")
    parser = _Parser(tokens)
    dim = parser.product()
    if parser.peek() is not None:
        raise ValueError(f"unexpected token {parser.peek()!r}")
    return Unit(text, dim)


def dimension_of(unit: Optional[str]) -> Dimension:
    """Dimension of an optional unit text; no unit means dimensionless."""
    if unit is None:
        return DIMENSIONLESS
    return parse_unit(unit).dimension
