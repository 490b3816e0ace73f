"""Tests for the IR to SymPy bridge (neurosolve.backends.sympy)."""

from __future__ import annotations

import pytest
import sympy as sp

from neurosolve.backends.sympy import (
    TIME_SYMBOL,
    SympyConverter,
    evaluate_constants,
    make_symbol,
    resolve_constants,
    symbol_name,
    to_sympy,
)
from neurosolve.ir import BinaryOp, FunctionCall, Literal, UnaryOp, VarRef, convolve, exp
from neurosolve.models import iaf_psc_exp

x, y = make_symbol("x"), make_symbol("y")


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------


class TestSymbols:
    """Flat symbol names."""

    def test_symbol_name(self) -> None:
        assert symbol_name("g") == "g"
        assert symbol_name("g", 2) == "g__d__d"

    def test_symbols_are_real(self) -> None:
        assert make_symbol("x").is_real
        assert make_symbol("x") == sp.Symbol("x", real=True)
        assert make_symbol("x") != sp.Symbol("x")

    def test_time_symbol(self) -> None:
        assert TIME_SYMBOL == make_symbol("t")


# ---------------------------------------------------------------------------
# Expression conversion
# ---------------------------------------------------------------------------


class TestConversion:
    """IR expressions to SymPy."""

    def test_literals(self) -> None:
        assert to_sympy(Literal(2)) == sp.Integer(2)
        assert isinstance(to_sympy(Literal(2)), sp.Integer)
        assert isinstance(to_sympy(Literal(1.5)), sp.Float)
        assert to_sympy(Literal(True)) is sp.true

    def test_derivative_reference(self) -> None:
        assert to_sympy(VarRef("V_m", 2)) == make_symbol("V_m__d__d")

    def test_reserved_names(self) -> None:
        assert to_sympy(VarRef("t")) == TIME_SYMBOL
        assert to_sympy(VarRef("e")) == sp.E
        assert to_sympy(VarRef("pi")) == sp.pi
        assert to_sympy(VarRef("inf")) == sp.oo

    def test_arithmetic(self) -> None:
        expr = -VarRef("x") / VarRef("y") + VarRef("x") ** 2
        assert to_sympy(expr) == -x / y + x**2

    def test_unary(self) -> None:
        assert to_sympy(UnaryOp("+", VarRef("x"))) == x
        assert to_sympy(-VarRef("x")) == -x
        assert to_sympy(UnaryOp("not", BinaryOp(">", VarRef("x"), VarRef("y")))) == sp.Not(sp.Gt(x, y))

    def test_comparison(self) -> None:
        assert to_sympy(BinaryOp(">=", VarRef("x"), VarRef("y"))) == sp.Ge(x, y)

    @pytest.mark.parametrize(
        "func,expected",
        [
            ("exp", sp.exp(x)),
            ("ln", sp.log(x)),
            ("sqrt", sp.sqrt(x)),
            ("tanh", sp.tanh(x)),
            ("abs", sp.Abs(x)),
            ("expm1", sp.exp(x) - 1),
        ],
    )
    def test_functions(self, func: str, expected: sp.Expr) -> None:
        assert to_sympy(FunctionCall(func, (VarRef("x"),))) == expected

    def test_two_argument_functions(self) -> None:
        assert to_sympy(FunctionCall("pow", (VarRef("x"), Literal(3)))) == x**3
        assert to_sympy(FunctionCall("max", (VarRef("x"), VarRef("y")))) == sp.Max(x, y)

    def test_unsupported_function(self) -> None:
        with pytest.raises(ValueError, match="Unsupported function"):
            to_sympy(FunctionCall("erf", (VarRef("x"),)))

    def test_unknown_node(self) -> None:
        with pytest.raises(TypeError, match="Unknown expression type"):
            SympyConverter().convert(object())


class TestAliases:
    """Inlining of function aliases."""

    def test_inlined(self) -> None:
        aliases = {"f": VarRef("x") * Literal(2)}
        assert to_sympy(VarRef("f") + Literal(1), aliases) == 2 * x + 1

    def test_chained(self) -> None:
        aliases = {"f": VarRef("g") + Literal(1), "g": exp(VarRef("x"))}
        assert to_sympy(VarRef("f"), aliases) == sp.exp(x) + 1

    def test_converted_once(self) -> None:
        converter = SympyConverter({"f": VarRef("x") * VarRef("y")})
        assert converter(VarRef("f")) is converter(VarRef("f"))

    def test_derivative_is_not_an_alias(self) -> None:
        assert to_sympy(VarRef("f", 1), {"f": VarRef("x")}) == make_symbol("f__d")

    def test_recursion(self) -> None:
        aliases = {"f": VarRef("g"), "g": VarRef("f") + Literal(1)}
        with pytest.raises(ValueError, match="Recursive function alias: f -> g -> f"):
            to_sympy(VarRef("f"), aliases)


class TestSpecialCalls:
    """Builtins with a fixed translation."""

    def test_convolve_needs_a_handler(self) -> None:
        with pytest.raises(ValueError, match="convolutions must be expanded"):
            to_sympy(convolve("g", "spikes"))

    def test_convolve_handler(self) -> None:
        replacement = make_symbol("g__X__spikes")
        converter = SympyConverter(convolve=lambda call: replacement)
        assert converter(convolve("g", "spikes") * Literal(2)) == 2 * replacement

    def test_resolution(self) -> None:
        h = make_symbol("dt")
        assert SympyConverter(step_symbol=h)(FunctionCall("resolution")) == h
        with pytest.raises(ValueError, match="resolution"):
            to_sympy(FunctionCall("resolution"))


# ---------------------------------------------------------------------------
# Constant evaluation
# ---------------------------------------------------------------------------


class TestResolveConstants:
    """Parameters and internals to closed expressions."""

    def test_any_order(self) -> None:
        a, b = make_symbol("a"), make_symbol("b")
        values = resolve_constants({"c": b + 1, "b": a * 3, "a": sp.Float(2.0)})
        assert values == {"a": 2.0, "b": 6.0, "c": 7.0}

    def test_overrides_propagate(self) -> None:
        a, b = make_symbol("a"), make_symbol("b")
        values = resolve_constants({"c": b + 1, "b": a * 3, "a": sp.Float(2.0)}, {"a": 1.0})
        assert values == {"a": 1.0, "b": 3.0, "c": 4.0}

    def test_symbolic_and_non_finite_left_out(self) -> None:
        values = resolve_constants(
            {"free": 2 * make_symbol("q"), "pole": sp.Integer(1) / 0, "ok": sp.Integer(3)}
        )
        assert values == {"ok": 3.0}

    def test_known_values(self) -> None:
        h = make_symbol("__h")
        values = resolve_constants({"n": make_symbol("t_ref") / h, "t_ref": sp.Float(2.0)}, known={h: 0.5})
        assert values["n"] == pytest.approx(4.0)


class TestEvaluateConstants:
    """Numeric values of parameters and internals."""

    def test_reference_model(self) -> None:
        model = iaf_psc_exp()
        values = evaluate_constants(model.parameters + model.internals, step=0.1)
        assert values["tau_m"] == 10.0
        assert values["RefractoryCounts"] == pytest.approx(20.0)

    def test_without_step(self) -> None:
        model = iaf_psc_exp()
        values = evaluate_constants(model.parameters + model.internals)
        assert "RefractoryCounts" not in values
        assert values["t_ref"] == 2.0

    def test_overrides(self) -> None:
        model = iaf_psc_exp()
        values = evaluate_constants(model.parameters + model.internals, {"t_ref": 1.0}, step=0.1)
        assert values["RefractoryCounts"] == pytest.approx(10.0)
