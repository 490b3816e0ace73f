"""
Exact propagators for linear subsystems.

For ``x' = M x + F`` with ``F`` constant within one step of size ``h``::

    x_{k+1} = P x_k + Q F_k,    P = exp(M h),    Q = int_0^h exp(M s) ds

Both come out of one exponential of the augmented matrix::

    A = [[0, 0],
         [E, M]]        exp(A h) = [[I, 0], [Q E, P]]

where ``E`` selects the forced rows. When the variables are ordered by
dependency depth ``M`` (and so ``A``) is lower triangular and every entry of
``exp(A h)`` has a closed form: the sum over dependency paths
``j = k_0 < k_1 < ... < k_p = i`` of the product of the off-diagonal
entries along the path times the divided difference of ``x -> exp(x h)`` at
the diagonal entries on the path. Coinciding diagonal entries use the
confluent divided difference ``h^k exp(lambda h) / k!``, the exact
repeated-eigenvalue form, so symbolically equal time constants never divide
by zero. Subsystems that are not triangular (coupled linear ODEs,
companion-form shapes) fall back to SymPy's dense ``Matrix.exp``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import numpy as np
import sympy as sp
from beartype import beartype

from neurosolve.analysis.linearity import Classification, Subsystem
from neurosolve.backends.sympy import make_symbol
from neurosolve.config import AnalysisConfig
from neurosolve.errors import SingularSystemError


def _same(a: sp.Expr, b: sp.Expr) -> bool:
    return a == b or sp.simplify(a - b) == 0


class TriangularExponential:
    """
    ``exp(A h)`` for lower-triangular ``A`` by divided differences.

    Divided differences are memoised per multiset of points, and every
    eigenvalue difference used as a denominator is recorded in
    :attr:`denominators`.
    """

    def __init__(self, h: sp.Expr):
        self.h = h
        self.denominators: list[sp.Expr] = []
        self._memo: dict[tuple, sp.Expr] = {}

    def divided_difference(self, points: Sequence[sp.Expr]) -> sp.Expr:
        """Divided difference of ``x -> exp(x h)`` at ``points``."""
        key = tuple(sorted(points, key=sp.default_sort_key))
        if key in self._memo:
            return self._memo[key]
        first = key[0]
        different = [p for p in key if not _same(p, first)]
        if not different:
            k = len(key) - 1
            value = self.h**k * sp.exp(first * self.h) / sp.factorial(k)
        else:
            last = different[-1]
            without_first = list(key[1:])
            without_last = list(key)
            without_last.remove(last)
            denominator = last - first
            if denominator not in self.denominators:
                self.denominators.append(denominator)
            value = (
                self.divided_difference(without_first) - self.divided_difference(without_last)
            ) / denominator
        self._memo[key] = value
        return value

    def __call__(self, A: sp.Matrix) -> sp.Matrix:
        n = A.rows
        result = sp.zeros(n, n)
        for j in range(n):
            result[j, j] = sp.exp(A[j, j] * self.h)

            # Depth-first over dependency paths starting at j
            stack = [(j, [j], sp.Integer(1))]
            while stack:
                node, path, weight = stack.pop()
                for nxt in range(node + 1, n):
                    if A[nxt, node] == 0:
                        continue
                    new_path = path + [nxt]
                    new_weight = weight * A[nxt, node]
                    points = [A[k, k] for k in new_path]
                    result[nxt, j] += new_weight * self.divided_difference(points)
                    stack.append((nxt, new_path, new_weight))
        return result


def augmented_matrix(matrix: sp.Matrix, forced_rows: Sequence[int]) -> sp.Matrix:
    """``[[0, 0], [E, M]]`` with one input column per forced row, inputs first."""
    m = len(forced_rows)
    n = matrix.rows
    A = sp.zeros(m + n, m + n)
    A[m:, m:] = matrix
    for col, row in enumerate(forced_rows):
        A[m + row, col] = 1
    return A


@dataclass
class Propagator:
    """
    Exact one-step update of a linear subsystem.

    Attributes
    ----------
    variables : list of str
        State variables, in the order of the matrix rows.
    matrix : sympy.Matrix
        Coefficient matrix ``M``.
    propagator : sympy.Matrix
        ``P = exp(M h)``.
    forcing : list of sympy.Expr
        Forcing ``F`` per variable, held constant within a step.
    forcing_operator : sympy.Matrix
        ``Q`` (n x n); columns of unforced rows are zero.
    step_symbol : sympy.Symbol
        ``h``.
    denominators : list of sympy.Expr
        Eigenvalue differences the entries divide by.
    triangular : bool
        Whether the closed form (rather than the dense fallback) was used.
    coincident_policy : str
        What :meth:`evaluate` does when a denominator vanishes.
    """

    variables: list[str]
    matrix: sp.Matrix
    propagator: sp.Matrix
    forcing: list[sp.Expr]
    forcing_operator: sp.Matrix
    step_symbol: sp.Symbol
    denominators: list[sp.Expr] = field(default_factory=list)
    triangular: bool = True
    coincident_policy: str = "error"

    @property
    def forced_rows(self) -> list[int]:
        return [i for i, f in enumerate(self.forcing) if f != 0]

    def __len__(self) -> int:
        return len(self.variables)

    def _substitutions(self, values: Mapping[str, float], h: Optional[float]) -> dict:
        subs = {make_symbol(k): v for k, v in values.items()}
        if h is not None:
            subs[self.step_symbol] = h
        return subs

    def singular_at(self, values: Mapping[str, float], h: Optional[float] = None) -> list[sp.Expr]:
        """Recorded denominators that are exactly zero at ``values``."""
        subs = self._substitutions(values, h)
        singular = []
        for den in self.denominators:
            if den.subs(subs).is_zero:
                singular.append(den)
        return singular

    def evaluate(self, values: Mapping[str, float], h: float) -> tuple[np.ndarray, np.ndarray]:
        """
        Numeric ``P`` and ``Q`` for given constants and step size.

        Parameters
        ----------
        values : mapping of str to float
            Values of the parameters and internals the matrix refers to.
        h : float
            Step size.

        Returns
        -------
        (numpy.ndarray, numpy.ndarray)
            ``P`` and ``Q``, both n x n.

        Raises
        ------
        SingularSystemError
            If an eigenvalue difference is exactly zero at ``values`` and the
            policy is ``"error"``.
        ValueError
            If ``values`` leave a symbol of the matrix unresolved.
        """
        subs = self._substitutions(values, h)
        singular = self.singular_at(values, h)
        if singular:
            if self.coincident_policy != "repeated":
                raise SingularSystemError(self.variables, str(singular[0]))
            return self._evaluate_numerically(subs, h)
        return _to_array(self.propagator.subs(subs)), _to_array(self.forcing_operator.subs(subs))

    def _evaluate_numerically(self, subs: dict, h: float) -> tuple[np.ndarray, np.ndarray]:
        """Re-derive from the numeric matrix; equal numeric eigenvalues are then confluent."""
        matrix = self.matrix.subs(subs)
        P, Q, _ = _exponentials(matrix, self.forced_rows, sp.Float(h), triangular=True)
        return _to_array(P), _to_array(Q)

    def apply(self, P: np.ndarray, Q: np.ndarray, x: np.ndarray, forcing: np.ndarray) -> np.ndarray:
        """One step ``P x + Q F``."""
        return P @ x + Q @ forcing


def _to_array(matrix: sp.Matrix) -> np.ndarray:
    if matrix.free_symbols:
        raise ValueError(f"No value for {sorted(map(str, matrix.free_symbols))}")
    return np.array(matrix.evalf(), dtype=float)


def _exponentials(
    matrix: sp.Matrix, forced_rows: Sequence[int], h: sp.Expr, triangular: bool
) -> tuple[sp.Matrix, sp.Matrix, list[sp.Expr]]:
    n = matrix.rows
    m = len(forced_rows)
    A = augmented_matrix(matrix, forced_rows)
    if triangular:
        expo = TriangularExponential(h)
        expA = expo(A)
        denominators = expo.denominators
    else:
        expA = (A * h).exp()
        denominators = []
    P = expA[m:, m:]
    Q = sp.zeros(n, n)
    for col, row in enumerate(forced_rows):
        Q[:, row] = expA[m:, col]
    return P, Q, denominators


@beartype
def solve_propagator(
    variables: list[str],
    matrix: sp.Matrix,
    forcing: list,
    config: Optional[AnalysisConfig] = None,
    triangular: Optional[bool] = None,
) -> Propagator:
    """
    Derive the propagator of ``x' = matrix x + forcing``.

    Parameters
    ----------
    variables : list of str
        Variable names, in the order of the matrix rows.
    matrix : sympy.Matrix
        Constant coefficient matrix.
    forcing : list of sympy.Expr
        Forcing per row.
    config : AnalysisConfig, optional
        Step symbol, simplification and coincident-time-constant policy.
    triangular : bool, optional
        Whether ``matrix`` is lower triangular in the given variable order.
        Detected from the matrix when omitted.

    Returns
    -------
    Propagator
    """
    config = config or AnalysisConfig()
    h = make_symbol(config.step_symbol)
    forcing = [sp.sympify(f) for f in forcing]
    forced_rows = [i for i, f in enumerate(forcing) if f != 0]
    if triangular is None:
        triangular = matrix.is_lower
    P, Q, denominators = _exponentials(matrix, forced_rows, h, triangular)
    if config.simplify:
        P = P.applyfunc(sp.simplify)
        Q = Q.applyfunc(sp.simplify)
    return Propagator(
        variables=list(variables),
        matrix=matrix,
        propagator=P,
        forcing=forcing,
        forcing_operator=Q,
        step_symbol=h,
        denominators=denominators,
        triangular=triangular,
        coincident_policy=config.coincident_time_constants,
    )


@beartype
def solve_linear_subsystems(
    classification: Classification, config: Optional[AnalysisConfig] = None
) -> dict[int, Propagator]:
    """Propagators of every LINEAR subsystem, keyed by subsystem index."""
    return {
        sub.index: propagator_for(sub, config)
        for sub in classification.subsystems
        if sub.is_linear
    }


def propagator_for(sub: Subsystem, config: Optional[AnalysisConfig] = None) -> Propagator:
    if not sub.is_linear:
        raise ValueError(f"Subsystem {sub.index} ({sub.variables}) is not linear")
    return solve_propagator(sub.variables, sub.matrix, sub.forcing, config, triangular=sub.triangular)
