"""
Intermediate representation of neuron models.

This is the resolved AST a front end hands to the analysis pipeline.
"""

from neurosolve.ir.types import (
    BUFFER_KIND_QUALIFIERS,
    BUFFER_QUALIFIERS,
    SPIKE_SIGN_QUALIFIERS,
    Block,
    BufferKind,
    OutputKind,
    SolverKind,
    VariableKind,
)
from neurosolve.ir.expr import (
    BUILTIN_FUNCTIONS,
    CONVOLVE,
    EMIT_SPIKE,
    INTEGRATE_ODES,
    MATH_FUNCTIONS,
    RESERVED_NAMES,
    RESOLUTION,
    TIME,
    TRANSCENDENTAL_FUNCTIONS,
    BinaryOp,
    Expr,
    ExprBuilder,
    FunctionCall,
    Literal,
    UnaryOp,
    VarRef,
    call,
    convolve,
    emit_spike,
    exp,
    find_calls,
    find_var_refs,
    literal,
    ln,
    to_expr,
    transform,
    var_ref,
    walk,
)
from neurosolve.ir.variable import BufferDeclaration, Declaration, OutputDeclaration
from neurosolve.ir.equation import FunctionDeclaration, OdeEquation, ShapeDeclaration
from neurosolve.ir.statement import (
    Assignment,
    CallStatement,
    IfStatement,
    Statement,
    iter_statements,
)
from neurosolve.ir.model import LocatedExpr, NeuronModel

__all__ = [
    # Types
    "VariableKind",
    "BufferKind",
    "OutputKind",
    "SolverKind",
    "Block",
    "BUFFER_QUALIFIERS",
    "BUFFER_KIND_QUALIFIERS",
    "SPIKE_SIGN_QUALIFIERS",
    # Expressions
    "Expr",
    "Literal",
    "VarRef",
    "UnaryOp",
    "BinaryOp",
    "FunctionCall",
    "ExprBuilder",
    "to_expr",
    "var_ref",
    "literal",
    "call",
    "convolve",
    "emit_spike",
    "exp",
    "ln",
    "walk",
    "find_var_refs",
    "find_calls",
    "transform",
    "BUILTIN_FUNCTIONS",
    "MATH_FUNCTIONS",
    "TRANSCENDENTAL_FUNCTIONS",
    "RESERVED_NAMES",
    "CONVOLVE",
    "EMIT_SPIKE",
    "INTEGRATE_ODES",
    "RESOLUTION",
    "TIME",
    # Declarations
    "Declaration",
    "BufferDeclaration",
    "OutputDeclaration",
    "OdeEquation",
    "ShapeDeclaration",
    "FunctionDeclaration",
    # Update block
    "Assignment",
    "CallStatement",
    "IfStatement",
    "Statement",
    "iter_statements",
    # Model
    "NeuronModel",
    "LocatedExpr",
]
