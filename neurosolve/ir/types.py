"""
Type definitions for the neuron model IR.
"""

from enum import Enum, auto


class VariableKind(Enum):
    """What a declared name stands for."""

    STATE = auto()  # Integrated state variable (x, x', ...)
    PARAMETER = auto()  # User-settable constant
    INTERNAL = auto()  # Derived constant, may depend on parameters
    SHAPE = auto()  # Synaptic impulse-response kernel
    BUFFER = auto()  # Input port (spike or current)
    FUNCTION = auto()  # Auxiliary alias defined by an expression


class BufferKind(Enum):
    """Kind of an input buffer."""

    SPIKE = "spike"  # Discrete events, enter as impulses
    CURRENT = "current"  # Continuous input, constant within one step


class OutputKind(Enum):
    """Kind of signal a neuron emits."""

    SPIKE = "spike"
    CURRENT = "current"


class SolverKind(Enum):
    """How a subsystem is advanced in time."""

    LINEAR = "linear"  # Exact propagator
    NONLINEAR = "nonlinear"  # Numerical stepper


class Block(Enum):
    """Model blocks, used to locate expressions."""

    STATE = "state"
    EQUATIONS = "equations"
    SHAPES = "shapes"
    FUNCTIONS = "functions"
    PARAMETERS = "parameters"
    INTERNALS = "internals"
    INPUT = "input"
    OUTPUT = "output"
    UPDATE = "update"


# Qualifiers accepted in an input buffer declaration
BUFFER_KIND_QUALIFIERS = frozenset({"spike", "current"})
SPIKE_SIGN_QUALIFIERS = frozenset({"excitatory", "inhibitory"})
BUFFER_QUALIFIERS = BUFFER_KIND_QUALIFIERS | SPIKE_SIGN_QUALIFIERS
