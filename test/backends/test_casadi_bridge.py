"""Tests for the SymPy to CasADi bridge (neurosolve.backends.casadi)."""

from __future__ import annotations

import casadi as ca
import numpy as np
import pytest
import sympy as sp

from neurosolve.backends.casadi import build_function, sympy_to_casadi
from neurosolve.backends.sympy import make_symbol

x, y = make_symbol("x"), make_symbol("y")


def _evaluate(expr: sp.Expr, **values: float) -> float:
    """Translate ``expr`` and evaluate it at ``values``."""
    translated, symbols = sympy_to_casadi(expr)
    names = sorted(symbols)
    f = ca.Function("f", [symbols[n] for n in names], [ca.SX(translated)])
    return float(f(*[values[n] for n in names]))


# ---------------------------------------------------------------------------
# Expression translation
# ---------------------------------------------------------------------------


class TestSympyToCasadi:
    """Expression translation."""

    def test_arithmetic(self) -> None:
        assert _evaluate(-x / y + x**2, x=3.0, y=2.0) == pytest.approx(7.5)

    def test_transcendental(self) -> None:
        assert _evaluate(sp.exp(x) + sp.tanh(y), x=1.0, y=0.5) == pytest.approx(
            np.exp(1.0) + np.tanh(0.5)
        )

    def test_sqrt(self) -> None:
        assert _evaluate(sp.sqrt(x), x=9.0) == pytest.approx(3.0)

    def test_abs(self) -> None:
        assert _evaluate(sp.Abs(x), x=-2.5) == pytest.approx(2.5)

    def test_min_max(self) -> None:
        assert _evaluate(sp.Min(x, y), x=1.0, y=2.0) == pytest.approx(1.0)
        assert _evaluate(sp.Max(x, y), x=1.0, y=2.0) == pytest.approx(2.0)

    def test_piecewise(self) -> None:
        expr = sp.Piecewise((x, x > 0), (0, True))
        assert _evaluate(expr, x=2.0) == pytest.approx(2.0)
        assert _evaluate(expr, x=-1.0) == pytest.approx(0.0)

    def test_piecewise_with_compound_condition(self) -> None:
        expr = sp.Piecewise((x, sp.And(x > 0, y > 0)), (0, True))
        assert _evaluate(expr, x=2.0, y=1.0) == pytest.approx(2.0)
        assert _evaluate(expr, x=2.0, y=-1.0) == pytest.approx(0.0)

    @pytest.mark.parametrize(
        "expr, values, expected",
        [
            (sp.Eq(x, y), {"x": 1.0, "y": 1.0}, 1.0),
            (sp.Eq(x, y), {"x": 1.0, "y": 2.0}, 0.0),
            (sp.Ne(x, y), {"x": 1.0, "y": 2.0}, 1.0),
            (sp.And(x > 0, y > 0), {"x": 1.0, "y": -1.0}, 0.0),
            (sp.Or(x > 0, y > 0), {"x": 1.0, "y": -1.0}, 1.0),
            (sp.Or(x > 0, y > 0), {"x": -1.0, "y": -1.0}, 0.0),
            (sp.Not(sp.And(x > 0, y > 0)), {"x": 1.0, "y": -1.0}, 1.0),
        ],
    )
    def test_logic(self, expr, values: dict, expected: float) -> None:
        assert _evaluate(expr, **values) == expected

    def test_numbers(self) -> None:
        assert _evaluate(sp.Rational(1, 3) * x, x=3.0) == pytest.approx(1.0)
        assert _evaluate(sp.pi * x, x=1.0) == pytest.approx(np.pi)
        assert _evaluate(sp.E * x, x=1.0) == pytest.approx(np.e)

    def test_symbols_are_reused(self) -> None:
        existing = {"x": ca.SX.sym("x")}
        _, symbols = sympy_to_casadi(x + y, existing)
        assert symbols is existing
        assert set(symbols) == {"x", "y"}

    def test_untranslatable(self) -> None:
        with pytest.raises(TypeError, match="Cannot translate"):
            sympy_to_casadi(sp.erf(x))


# ---------------------------------------------------------------------------
# Functions over grouped inputs
# ---------------------------------------------------------------------------


class TestBuildFunction:
    """Functions over grouped inputs."""

    def test_groups(self) -> None:
        f = build_function("f", [x + 2 * y], [("x", ["x"]), ("u", ["y"])])
        assert f.name() == "f"
        assert f.name_in() == ["x", "u"]
        assert f.name_out() == ["out"]
        assert float(f(1.0, 3.0)) == pytest.approx(7.0)

    def test_several_outputs(self) -> None:
        f = build_function("f", [x * y, x - y], [("x", ["x", "y"])])
        np.testing.assert_allclose(np.array(f([2.0, 3.0])).reshape(-1), [6.0, -1.0])

    def test_first_group_binds(self) -> None:
        a, b = make_symbol("a"), make_symbol("b")
        f = build_function("f", [a + b], [("x", ["a"]), ("u", ["a", "b"])])
        assert float(f(1.0, [100.0, 2.0])) == pytest.approx(3.0)

    def test_constant_output(self) -> None:
        f = build_function("f", [sp.Integer(3)], [("x", ["x"])])
        assert float(f(1.0)) == pytest.approx(3.0)

    def test_unbound_symbol(self) -> None:
        z = make_symbol("z")
        with pytest.raises(ValueError, match=r"f: no value for \['z'\]"):
            build_function("f", [x * z], [("x", ["x"])])

    def test_no_outputs(self) -> None:
        f = build_function("f", [], [("x", ["x"])])
        assert f.size_out(0) == (0, 1)
