"""
Context conditions: static semantic rules checked before any numeric work.

Each rule is an independent pure function of the resolved model (IR plus
symbol table) returning a list of violations. Rules register themselves in
:data:`CONTEXT_CONDITIONS` with the :func:`context_condition` decorator, so a
new rule is added without touching the aggregation or the reporting code.

Provides:
- ContextViolation / CheckResult: violation records and their aggregate
- context_condition: decorator registering a rule
- check_context_conditions: run all (or selected) rules
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional

from beartype import beartype
from sympy.physics.units.dimensions import Dimension

from neurosolve.analysis.symbol_table import SymbolTable, build_symbol_table
from neurosolve.analysis.units import (
    DIMENSIONLESS,
    TIME as TIME_DIMENSION,
    dimension_of,
    format_dimension,
    is_dimensionless,
    same_dimension,
)
from neurosolve.ir.expr import (
    BUILTIN_FUNCTIONS,
    COMPARISON_OPS,
    CONVOLVE,
    EMIT_SPIKE,
    LOGICAL_OPS,
    RESERVED_NAMES,
    RESOLUTION,
    TIME,
    TRANSCENDENTAL_FUNCTIONS,
    BinaryOp,
    Expr,
    FunctionCall,
    Literal,
    UnaryOp,
    VarRef,
    find_calls,
    find_var_refs,
    walk,
)
from neurosolve.ir.model import NeuronModel
from neurosolve.ir.statement import Assignment, CallStatement, IfStatement, iter_statements
from neurosolve.ir.types import (
    BUFFER_KIND_QUALIFIERS,
    BUFFER_QUALIFIERS,
    SPIKE_SIGN_QUALIFIERS,
    Block,
    VariableKind,
)


@dataclass
class ContextViolation:
    """A single context-condition violation."""

    rule: str
    node: Any  # Offending IR node (expression or declaration)
    message: str
    location: Optional[str] = None

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.rule}] {self.message}{loc}"


@dataclass
class CheckResult:
    """All violations found in one model."""

    violations: list[ContextViolation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True if no rule reported a violation."""
        return not self.violations

    @property
    def rules_violated(self) -> list[str]:
        """Ids of violated rules, in the order they were first reported."""
        seen: list[str] = []
        for v in self.violations:
            if v.rule not in seen:
                seen.append(v.rule)
        return seen

    def by_rule(self, rule: str) -> list[ContextViolation]:
        return [v for v in self.violations if v.rule == rule]

    def extend(self, violations: Iterable[ContextViolation]) -> None:
        self.violations.extend(violations)

    def summary(self) -> str:
        """Get a summary of check results."""
        status = "VALID" if self.is_valid else "INVALID"
        lines = [
            f"Context Conditions: {status}",
            f"  Violations: {len(self.violations)}",
            f"  Rules violated: {len(self.rules_violated)}",
        ]
        if self.violations:
            lines.append("\nViolations:")
            for v in self.violations:
                lines.append(f"  - {v}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()


@dataclass(frozen=True)
class ResolvedModel:
    """The model with its symbol table: the input of every rule."""

    model: NeuronModel
    symbols: SymbolTable


Rule = Callable[[ResolvedModel], list[ContextViolation]]


class RuleRegistry:
    """Ordered registry of context-condition rules keyed by rule id."""

    def __init__(self, registry_name: str = "CONTEXT_CONDITIONS"):
        self._rules: dict[str, Rule] = {}
        self._name = registry_name

    def register(self, rule_id: str, rule: Rule) -> None:
        if rule_id in self._rules and self._rules[rule_id] is not rule:
            warnings.warn(
                f"{self._name}: rule '{rule_id}' already registered, overwriting",
                UserWarning,
            )
        self._rules[rule_id] = rule

    def get(self, rule_id: str) -> Rule:
        if rule_id not in self._rules:
            available = ", ".join(self._rules)
            raise KeyError(f"{self._name}: rule '{rule_id}' not registered. Available: {available}")
        return self._rules[rule_id]

    def list_registered(self) -> list[str]:
        return list(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


CONTEXT_CONDITIONS = RuleRegistry()


def context_condition(rule_id: str) -> Callable[[Rule], Rule]:
    """Register the decorated function as the rule ``rule_id``."""

    def decorator(fn: Rule) -> Rule:
        fn.rule_id = rule_id
        CONTEXT_CONDITIONS.register(rule_id, fn)
        return fn

    return decorator


def _iter_rhs(model: NeuronModel) -> Iterator[tuple[Block, str, Expr, Optional[str]]]:
    """Right-hand sides of the equations block: ODEs, shapes and functions."""
    for eq in model.equations:
        yield Block.EQUATIONS, eq.name, eq.rhs, eq.location
    for shape in model.shapes:
        yield Block.SHAPES, shape.name, shape.expr, shape.location
    for func in model.functions:
        yield Block.FUNCTIONS, func.name, func.expr, func.location


# =============================================================================
# Declarations
# =============================================================================


@context_condition("buffer-kind-uniqueness")
def check_buffer_kind_uniqueness(resolved: ResolvedModel) -> list[ContextViolation]:
    """Each buffer names exactly one kind and repeats no qualifier."""
    violations = []
    for buf in resolved.model.inputs:
        problems = []
        repeated = sorted({q for q in buf.qualifiers if buf.qualifiers.count(q) > 1})
        if repeated:
            problems.append(f"repeats qualifier(s) {', '.join(repeated)}")
        unknown = [q for q in buf.qualifiers if q not in BUFFER_QUALIFIERS]
        if unknown:
            problems.append(f"has unknown qualifier(s) {', '.join(unknown)}")
        kinds = set(buf.kind_qualifiers)
        signs = set(buf.qualifiers) & SPIKE_SIGN_QUALIFIERS
        if len(signs) > 1:
            problems.append("is both excitatory and inhibitory")
        if "current" in kinds and (signs or "spike" in kinds):
            problems.append("mixes spike and current kinds")
        elif not kinds | signs:
            problems.append("names no kind (spike or current)")
        if problems:
            violations.append(
                ContextViolation(
                    "buffer-kind-uniqueness",
                    buf,
                    f"Input buffer '{buf}' " + "; ".join(problems),
                    buf.location,
                )
            )
    return violations


@context_condition("derivative-order-contiguity")
def check_derivative_order_contiguity(resolved: ResolvedModel) -> list[ContextViolation]:
    """Declared orders of every state base name form ``0..N``."""
    violations = []
    model = resolved.model
    for name in model.state_names:
        orders = model.state_orders(name)
        expected = list(range(max(orders) + 1))
        if orders != expected:
            missing = sorted(set(expected) - set(orders))
            missing_names = ", ".join(str(VarRef(name, k)) for k in missing)
            decl = model.get_state(name, orders[0])
            violations.append(
                ContextViolation(
                    "derivative-order-contiguity",
                    decl,
                    f"Derivatives of '{name}' skip order(s): {missing_names} not declared",
                    decl.location,
                )
            )
    return violations


@context_condition("name-shadowing")
def check_name_shadowing(resolved: ResolvedModel) -> list[ContextViolation]:
    """No declaration shadows a built-in function or reserved name."""
    violations = []
    for name, sym in resolved.symbols.items():
        if name in BUILTIN_FUNCTIONS or name in RESERVED_NAMES:
            what = "built-in function" if name in BUILTIN_FUNCTIONS else "reserved name"
            violations.append(
                ContextViolation(
                    "name-shadowing",
                    sym.declaration,
                    f"{sym.label.capitalize()} '{name}' shadows the {what} '{name}'",
                    getattr(sym.declaration, "location", None),
                )
            )
    return violations


@context_condition("function-alias-recursion")
def check_function_alias_recursion(resolved: ResolvedModel) -> list[ContextViolation]:
    """Function aliases do not depend on themselves."""
    symbols = resolved.symbols
    deps = {
        func.name: {
            ref.name for ref in find_var_refs(func.expr) if symbols.is_kind(ref.name, VariableKind.FUNCTION)
        }
        for func in resolved.model.functions
    }

    def reaches_self(start: str) -> bool:
        stack = list(deps.get(start, ()))
        seen: set[str] = set()
        while stack:
            name = stack.pop()
            if name == start:
                return True
            if name not in seen:
                seen.add(name)
                stack.extend(deps.get(name, ()))
        return False

    return [
        ContextViolation(
            "function-alias-recursion",
            func,
            f"Function '{func.name}' is defined in terms of itself",
            func.location,
        )
        for func in resolved.model.functions
        if reaches_self(func.name)
    ]


# =============================================================================
# Equations
# =============================================================================


@context_condition("ode-order-consistency")
def check_ode_order_consistency(resolved: ResolvedModel) -> list[ContextViolation]:
    """Every ODE is of order one above its variable's highest declared order."""
    violations = []
    symbols = resolved.symbols
    seen: set[str] = set()
    for eq in resolved.model.equations:
        sym = symbols.get(eq.name)
        if sym is None:
            continue  # reported as undeclared
        if sym.kind != VariableKind.STATE:
            violations.append(
                ContextViolation(
                    "ode-order-consistency",
                    eq,
                    f"Equation '{eq}' defines the derivative of {sym.label} '{eq.name}'",
                    eq.location,
                )
            )
            continue
        if eq.name in seen:
            violations.append(
                ContextViolation(
                    "ode-order-consistency",
                    eq,
                    f"'{eq.name}' has more than one differential equation",
                    eq.location,
                )
            )
        seen.add(eq.name)
        if eq.order != sym.max_order + 1:
            violations.append(
                ContextViolation(
                    "ode-order-consistency",
                    eq,
                    f"Equation for {eq.lhs} must be of order {sym.max_order + 1} "
                    f"(initial values declared up to {VarRef(eq.name, sym.max_order)})",
                    eq.location,
                )
            )

    for name in symbols.names(VariableKind.STATE):
        sym = symbols[name]
        if sym.max_order > 0 and name not in seen:
            violations.append(
                ContextViolation(
                    "ode-order-consistency",
                    sym.declaration,
                    f"'{name}' declares derivatives up to {VarRef(name, sym.max_order)} "
                    "but has no differential equation",
                    sym.declaration.location,
                )
            )

    for shape in resolved.model.shapes:
        if shape.is_closed_form:
            continue
        orders = resolved.model.state_orders(shape.name)
        if not orders:
            violations.append(
                ContextViolation(
                    "ode-order-consistency",
                    shape,
                    f"Shape '{shape}' has no declared initial values",
                    shape.location,
                )
            )
        elif shape.order != max(orders) + 1:
            violations.append(
                ContextViolation(
                    "ode-order-consistency",
                    shape,
                    f"Shape '{shape}' must be of order {max(orders) + 1}",
                    shape.location,
                )
            )
    return violations


@context_condition("spike-emission-placement")
def check_spike_emission_placement(resolved: ResolvedModel) -> list[ContextViolation]:
    """``emit_spike()`` appears only as a statement of the update block."""
    violations = []
    model = resolved.model
    for block, owner, expr, location in _iter_rhs(model):
        for call in find_calls(expr, EMIT_SPIKE):
            violations.append(
                ContextViolation(
                    "spike-emission-placement",
                    call,
                    f"emit_spike() used in {block.value} block ('{owner}'); "
                    "spikes may only be emitted in the update block",
                    location,
                )
            )
    for located in model.iter_expressions():
        if located.block in (Block.UPDATE, Block.EQUATIONS, Block.SHAPES, Block.FUNCTIONS):
            continue
        for call in find_calls(located.expr, EMIT_SPIKE):
            violations.append(
                ContextViolation(
                    "spike-emission-placement",
                    call,
                    f"emit_spike() used in {located.block.value} block ('{located.owner}')",
                    located.location,
                )
            )
    for stmt in iter_statements(model.update):
        exprs = []
        if isinstance(stmt, Assignment):
            exprs = [stmt.expr]
        elif isinstance(stmt, IfStatement):
            exprs = [stmt.condition]
        elif isinstance(stmt, CallStatement):
            exprs = list(stmt.call.args)
        for expr in exprs:
            for call in find_calls(expr, EMIT_SPIKE):
                violations.append(
                    ContextViolation(
                        "spike-emission-placement",
                        call,
                        "emit_spike() must be a statement on its own, not part of an expression",
                        stmt.location,
                    )
                )
    return violations


# =============================================================================
# References
# =============================================================================


@context_condition("undeclared-identifier")
def check_undeclared_identifiers(resolved: ResolvedModel) -> list[ContextViolation]:
    """Every referenced variable and function is declared or built in."""
    violations = []
    symbols = resolved.symbols
    for located in resolved.model.iter_expressions():
        for node in walk(located.expr):
            if isinstance(node, VarRef):
                if node.name in RESERVED_NAMES and node.order == 0:
                    continue
                sym = symbols.get(node.name)
                if sym is None:
                    message = f"'{node.name}' is not declared"
                elif node.order > 0 and (
                    sym.kind not in (VariableKind.STATE, VariableKind.SHAPE) or node.order > sym.max_order
                ):
                    message = f"Derivative {node} of {sym.label} '{node.name}' is not declared"
                else:
                    continue
                violations.append(
                    ContextViolation(
                        "undeclared-identifier",
                        node,
                        f"{message} (in {located.block.value} '{located.owner}')",
                        located.location,
                    )
                )
            elif isinstance(node, FunctionCall) and node.func not in BUILTIN_FUNCTIONS:
                violations.append(
                    ContextViolation(
                        "undeclared-identifier",
                        node,
                        f"Unknown function '{node.func}' (in {located.block.value} '{located.owner}')",
                        located.location,
                    )
                )
    return violations


@context_condition("convolve-well-formedness")
def check_convolve_well_formedness(resolved: ResolvedModel) -> list[ContextViolation]:
    """``convolve(a, b)``: ``a`` names a shape, ``b`` names a spike buffer."""
    violations = []
    symbols = resolved.symbols
    for located in resolved.model.iter_expressions():
        for call in find_calls(located.expr, CONVOLVE):
            if len(call.args) != 2:
                violations.append(
                    ContextViolation(
                        "convolve-well-formedness",
                        call,
                        f"convolve takes 2 arguments, got {len(call.args)} in {call}",
                        located.location,
                    )
                )
                continue
            shape, buffer = call.args
            if not (
                isinstance(shape, VarRef)
                and shape.order == 0
                and symbols.is_kind(shape.name, VariableKind.SHAPE)
            ):
                violations.append(
                    ContextViolation(
                        "convolve-well-formedness",
                        shape,
                        f"First argument of {call} must be the name of a declared shape, got '{shape}'",
                        located.location,
                    )
                )
            if not (
                isinstance(buffer, VarRef) and buffer.order == 0 and symbols.is_spike_buffer(buffer.name)
            ):
                violations.append(
                    ContextViolation(
                        "convolve-well-formedness",
                        buffer,
                        f"Second argument of {call} must be the name of a declared spike buffer, "
                        f"got '{buffer}'",
                        located.location,
                    )
                )
    return violations


def _contains_state(expr: Expr, symbols: SymbolTable) -> bool:
    return any(
        symbols.is_kind(ref.name, VariableKind.STATE) or symbols.is_kind(ref.name, VariableKind.FUNCTION)
        for ref in find_var_refs(expr)
    )


def _misused_current_buffers(expr: Expr, symbols: SymbolTable) -> list[VarRef]:
    """Current-buffer references not in additive position.

    A current buffer may be added, subtracted, negated and scaled by factors
    that contain no state variables; any other use is a misuse.
    """
    if isinstance(expr, VarRef):
        return []
    if isinstance(expr, UnaryOp):
        if expr.op in ("-", "+"):
            return _misused_current_buffers(expr.operand, symbols)
    elif isinstance(expr, BinaryOp):
        if expr.op in ("+", "-"):
            return _misused_current_buffers(expr.left, symbols) + _misused_current_buffers(
                expr.right, symbols
            )
        if expr.op == "*":
            misused = []
            for this, other in ((expr.left, expr.right), (expr.right, expr.left)):
                if _contains_state(other, symbols):
                    misused.extend(r for r in find_var_refs(this) if symbols.is_current_buffer(r.name))
                else:
                    misused.extend(_misused_current_buffers(this, symbols))
            return misused
        if expr.op == "/" and not _contains_state(expr.right, symbols):
            return _misused_current_buffers(expr.left, symbols) + [
                r for r in find_var_refs(expr.right) if symbols.is_current_buffer(r.name)
            ]
    elif isinstance(expr, FunctionCall) and expr.func == CONVOLVE:
        return []  # convolve arguments are checked by convolve-well-formedness
    return [r for r in find_var_refs(expr) if symbols.is_current_buffer(r.name)]


def _spike_buffers_outside_convolve(expr: Expr, symbols: SymbolTable) -> list[VarRef]:
    if isinstance(expr, VarRef):
        return [expr] if symbols.is_spike_buffer(expr.name) else []
    if isinstance(expr, FunctionCall):
        if expr.func == CONVOLVE:
            return []
        return [r for arg in expr.args for r in _spike_buffers_outside_convolve(arg, symbols)]
    if isinstance(expr, UnaryOp):
        return _spike_buffers_outside_convolve(expr.operand, symbols)
    if isinstance(expr, BinaryOp):
        return _spike_buffers_outside_convolve(expr.left, symbols) + _spike_buffers_outside_convolve(
            expr.right, symbols
        )
    return []


@context_condition("buffer-usage")
def check_buffer_usage(resolved: ResolvedModel) -> list[ContextViolation]:
    """Spike buffers feed convolutions, current buffers enter additively."""
    violations = []
    symbols = resolved.symbols
    for block, owner, expr, location in _iter_rhs(resolved.model):
        for ref in _spike_buffers_outside_convolve(expr, symbols):
            violations.append(
                ContextViolation(
                    "buffer-usage",
                    ref,
                    f"Spike buffer '{ref.name}' used outside convolve() in {block.value} '{owner}'",
                    location,
                )
            )
        for ref in _misused_current_buffers(expr, symbols):
            violations.append(
                ContextViolation(
                    "buffer-usage",
                    ref,
                    f"Current buffer '{ref.name}' must enter {block.value} '{owner}' as an "
                    "additive forcing term",
                    location,
                )
            )
    return violations


@context_condition("shape-usage")
def check_shape_usage(resolved: ResolvedModel) -> list[ContextViolation]:
    """Shapes are referenced only as the first argument of ``convolve``."""
    violations = []
    symbols = resolved.symbols

    def offending(expr: Expr, owner: Optional[str]) -> list[VarRef]:
        if isinstance(expr, VarRef):
            is_shape = symbols.is_kind(expr.name, VariableKind.SHAPE)
            return [expr] if is_shape and expr.name != owner else []
        if isinstance(expr, FunctionCall):
            if expr.func == CONVOLVE:
                return [r for arg in expr.args[1:] for r in offending(arg, owner)]
            return [r for arg in expr.args for r in offending(arg, owner)]
        if isinstance(expr, UnaryOp):
            return offending(expr.operand, owner)
        if isinstance(expr, BinaryOp):
            return offending(expr.left, owner) + offending(expr.right, owner)
        return []

    for located in resolved.model.iter_expressions():
        # ODE-form shapes refer to their own derivatives
        owner = located.owner if located.block == Block.SHAPES else None
        for ref in offending(located.expr, owner):
            violations.append(
                ContextViolation(
                    "shape-usage",
                    ref,
                    f"Shape '{ref.name}' may only be used as first argument of convolve() "
                    f"(in {located.block.value} '{located.owner}')",
                    located.location,
                )
            )
    return violations


@context_condition("assignment-target")
def check_assignment_targets(resolved: ResolvedModel) -> list[ContextViolation]:
    """Update-block assignments target state variables."""
    violations = []
    for stmt in iter_statements(resolved.model.update):
        if not isinstance(stmt, Assignment):
            continue
        sym = resolved.symbols.get(stmt.target.name)
        if sym is not None and sym.kind != VariableKind.STATE:
            violations.append(
                ContextViolation(
                    "assignment-target",
                    stmt,
                    f"Cannot assign to {sym.label} '{stmt.target.name}' in '{stmt}'",
                    stmt.location,
                )
            )
    return violations


# =============================================================================
# Units
# =============================================================================


def _is_plain_number(expr: Expr) -> bool:
    """A literal without unit, compatible with any dimension in sums."""
    if isinstance(expr, Literal):
        return expr.unit is None
    if isinstance(expr, UnaryOp) and expr.op in ("-", "+"):
        return _is_plain_number(expr.operand)
    return False


class _DimensionInference:
    """Infers expression dimensions and records mismatches.

    ``None`` stands for an unknown dimension (closed-form shapes, undeclared
    names, non-integer powers) and is compatible with everything.
    """

    def __init__(self, symbols: SymbolTable):
        self.symbols = symbols
        self.mismatches: list[tuple[Expr, str]] = []
        self._alias_dims: dict[str, Optional[Dimension]] = {}
        self._resolving: set[str] = set()

    def report(self, node: Expr, message: str) -> None:
        self.mismatches.append((node, message))

    def infer(self, expr: Expr) -> Optional[Dimension]:
        if isinstance(expr, Literal):
            return dimension_of(expr.unit) if expr.unit else DIMENSIONLESS
        if isinstance(expr, VarRef):
            return self._ref(expr)
        if isinstance(expr, UnaryOp):
            dim = self.infer(expr.operand)
            return DIMENSIONLESS if expr.op == "not" else dim
        if isinstance(expr, BinaryOp):
            return self._binary(expr)
        if isinstance(expr, FunctionCall):
            return self._call(expr)
        return None

    def _ref(self, ref: VarRef) -> Optional[Dimension]:
        if ref.name == TIME:
            return TIME_DIMENSION
        if ref.name in RESERVED_NAMES:
            return DIMENSIONLESS
        sym = self.symbols.get(ref.name)
        if sym is None:
            return None
        if sym.kind == VariableKind.FUNCTION and sym.unit is None:
            return self._alias(ref.name)
        return sym.dimension(ref.order)

    def _alias(self, name: str) -> Optional[Dimension]:
        if name in self._alias_dims:
            return self._alias_dims[name]
        if name in self._resolving:
            return None
        self._resolving.add(name)
        inner = _DimensionInference(self.symbols)
        inner._resolving = self._resolving
        dim = inner.infer(self.symbols[name].declaration.expr)
        self._resolving.discard(name)
        self._alias_dims[name] = dim
        return dim

    def _additive(
        self, node: Expr, operands: tuple[Expr, Expr], left, right, what: str
    ) -> Optional[Dimension]:
        if _is_plain_number(operands[0]):
            return right
        if _is_plain_number(operands[1]):
            return left
        if left is not None and right is not None and not same_dimension(left, right):
            self.report(
                node,
                f"Cannot {what} {format_dimension(left)} and {format_dimension(right)} in {node}",
            )
        return left if left is not None else right

    def _power(self, base: Optional[Dimension], exponent: Expr) -> Optional[Dimension]:
        if base is None:
            return None
        if is_dimensionless(base):
            return DIMENSIONLESS
        value = exponent.value if isinstance(exponent, Literal) else None
        if isinstance(value, (int, float)) and float(value).is_integer():
            return base ** int(value)
        return None

    def _binary(self, expr: BinaryOp) -> Optional[Dimension]:
        left = self.infer(expr.left)
        right = self.infer(expr.right)
        operands = (expr.left, expr.right)
        if expr.op in ("+", "-"):
            what = "add" if expr.op == "+" else "subtract"
            return self._additive(expr, operands, left, right, what)
        if expr.op in COMPARISON_OPS:
            self._additive(expr, operands, left, right, "compare")
            return DIMENSIONLESS
        if expr.op in LOGICAL_OPS:
            return DIMENSIONLESS
        if left is None or right is None:
            return self._power(left, expr.right) if expr.op == "**" else None
        if expr.op == "*":
            return left * right
        if expr.op == "/":
            return left / right
        if expr.op == "**":
            return self._power(left, expr.right)
        return None

    def _call(self, call: FunctionCall) -> Optional[Dimension]:
        func = call.func
        if func in TRANSCENDENTAL_FUNCTIONS:
            for arg in call.args:
                dim = self.infer(arg)
                if dim is not None and not _is_plain_number(arg) and not is_dimensionless(dim):
                    self.report(
                        call,
                        f"Argument of {func}() must be dimensionless, got {format_dimension(dim)} in {call}",
                    )
            return DIMENSIONLESS
        if func == "abs" and call.args:
            return self.infer(call.args[0])
        if func in ("min", "max") and len(call.args) == 2:
            left, right = (self.infer(arg) for arg in call.args)
            return self._additive(call, call.args, left, right, "compare")
        if func == "pow" and len(call.args) == 2:
            return self._power(self.infer(call.args[0]), call.args[1])
        if func == "sqrt" and call.args:
            dim = self.infer(call.args[0])
            return DIMENSIONLESS if dim is not None and is_dimensionless(dim) else None
        if func == RESOLUTION:
            return TIME_DIMENSION
        if func == CONVOLVE and len(call.args) == 2:
            shape, buffer = call.args
            if isinstance(shape, VarRef) and isinstance(buffer, VarRef):
                shape_sym = self.symbols.get(shape.name)
                buffer_sym = self.symbols.get(buffer.name)
                if shape_sym is not None and buffer_sym is not None:
                    shape_dim = shape_sym.dimension(0)
                    buffer_dim = buffer_sym.dimension(0)
                    if shape_dim is not None and buffer_dim is not None:
                        return shape_dim * buffer_dim
            return None
        for arg in call.args:
            self.infer(arg)
        return None


@context_condition("unit-consistency")
def check_unit_consistency(resolved: ResolvedModel) -> list[ContextViolation]:
    """Sums, comparisons and both sides of declarations agree in dimension."""
    symbols = resolved.symbols
    model = resolved.model
    violations = []

    def check(expr: Expr, expected: Optional[Dimension], what: str, location: Optional[str]) -> None:
        inference = _DimensionInference(symbols)
        dim = inference.infer(expr)
        for node, message in inference.mismatches:
            violations.append(ContextViolation("unit-consistency", node, message, location))
        if expected is not None and dim is not None and not _is_plain_number(expr):
            if not same_dimension(expected, dim):
                violations.append(
                    ContextViolation(
                        "unit-consistency",
                        expr,
                        f"{what} has dimension {format_dimension(expected)} but its right-hand side "
                        f"{expr} has dimension {format_dimension(dim)}",
                        location,
                    )
                )

    def declared(unit: Optional[str]) -> Optional[Dimension]:
        return dimension_of(unit) if unit else None

    for decl in model.state:
        if decl.value is not None:
            check(decl.value, declared(decl.unit), f"Initial value of {decl.full_name}", decl.location)
    for eq in model.equations:
        sym = symbols.get(eq.name)
        expected = sym.dimension(eq.order) if sym is not None else None
        check(eq.rhs, expected, f"Equation for {eq.lhs}", eq.location)
    for shape in model.shapes:
        sym = symbols.get(shape.name)
        expected = sym.dimension(shape.order) if sym is not None and not shape.is_closed_form else None
        check(shape.expr, expected, f"Shape {shape.name}", shape.location)
    for func in model.functions:
        check(func.expr, declared(func.unit), f"Function {func.name}", func.location)
    for decl in model.parameters + model.internals:
        if decl.value is not None:
            check(decl.value, declared(decl.unit), f"'{decl.name}'", decl.location)
    for stmt in iter_statements(model.update):
        if isinstance(stmt, Assignment):
            target = symbols.dimension_of(stmt.target)
            expected = target if stmt.op in ("=", "+=", "-=") else None
            check(stmt.expr, expected, f"Assignment target {stmt.target}", stmt.location)
        elif isinstance(stmt, IfStatement):
            check(stmt.condition, None, "Condition", stmt.location)
        else:
            check(stmt.call, None, "Call", stmt.location)
    return violations


# =============================================================================
# Engine
# =============================================================================


@beartype
def check_context_conditions(
    model: NeuronModel,
    symbols: Optional[SymbolTable] = None,
    rules: Optional[Iterable[str]] = None,
) -> CheckResult:
    """
    Run context-condition rules over a model.

    Parameters
    ----------
    model : NeuronModel
        The model to check.
    symbols : SymbolTable, optional
        Symbol table of ``model``; built when not given.
    rules : iterable of str, optional
        Ids of the rules to run; all registered rules by default.

    Returns
    -------
    CheckResult
        Every violation of every rule. The checker never stops at the first
        violation.
    """
    if symbols is None:
        symbols = build_symbol_table(model)
    resolved = ResolvedModel(model, symbols)
    rule_ids = list(rules) if rules is not None else CONTEXT_CONDITIONS.list_registered()
    result = CheckResult()
    for rule_id in rule_ids:
        result.extend(CONTEXT_CONDITIONS.get(rule_id)(resolved))
    return result
