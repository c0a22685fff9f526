#!/usr/bin/env python3
"""
QP backend using OSQP
Fixed-structure quadratic program that is set up once and re-parameterized
every control tick

    min  0.5 x'Px + q'x
    s.t. l <= Ax <= u
"""

import logging
import numpy as np
import osqp
from scipy import sparse
from dataclasses import dataclass
from typing import Dict

from ..exceptions import SolveFailure

logger = logging.getLogger(__name__)


@dataclass
class AffineExpression:
    """Affine expression A x + b over a block of QP unknowns"""
    A: np.ndarray
    b: np.ndarray

    @classmethod
    def zeros(cls, rows: int, cols: int) -> 'AffineExpression':
        return cls(np.zeros((rows, cols)), np.zeros(rows))

    @property
    def dim(self) -> int:
        return self.b.shape[0]

    def value(self, x: np.ndarray) -> np.ndarray:
        return self.A @ x + self.b


@dataclass
class QPSettings:
    """OSQP solver settings"""
    eps_abs: float = 1e-8
    eps_rel: float = 1e-8
    max_iter: int = 20000
    polish: bool = True
    verbose: bool = False
    warm_start: bool = True

    def as_dict(self) -> Dict:
        return {
            'eps_abs': self.eps_abs,
            'eps_rel': self.eps_rel,
            'max_iter': self.max_iter,
            'polish': self.polish,
            'verbose': self.verbose,
            'warm_start': self.warm_start,
        }


class QPModel:
    """
    Dense-pattern QP over a fixed number of unknowns and constraint rows

    Coefficient arrays are allocated once. Every entry of the upper triangle
    of P and of A is part of the sparsity pattern handed to OSQP, so that
    changing coefficients between ticks only requires an OSQP update, never
    a new setup.
    """

    def __init__(
        self,
        num_variables: int,
        num_constraints: int,
        settings: QPSettings = None
    ):
        """
        Initialize QP model

        Args:
            num_variables: Number of unknowns
            num_constraints: Number of constraint rows
            settings: OSQP settings
        """
        self.settings = settings or QPSettings()
        self.num_variables = n = num_variables
        # OSQP needs at least one constraint row; a spare row stays free
        self.num_constraints = m = max(num_constraints, 1)

        self.P = np.zeros((n, n))
        self.q = np.zeros(n)
        self.A = np.zeros((m, n))
        self.l = np.full(m, -np.inf)
        self.u = np.full(m, np.inf)

        P_pattern = sparse.csc_matrix(np.triu(np.ones((n, n))))
        self._P_indices = P_pattern.indices
        self._P_indptr = P_pattern.indptr
        self._P_cols = np.repeat(np.arange(n), np.diff(P_pattern.indptr))

        A_pattern = sparse.csc_matrix(np.ones((m, n)))
        self._A_indices = A_pattern.indices
        self._A_indptr = A_pattern.indptr
        self._A_cols = np.repeat(np.arange(n), np.diff(A_pattern.indptr))

        self._solver = None
        self.status = 'unsolved'

    def clear(self):
        """Zero all coefficients and free all constraint rows"""
        self.P[:] = 0.0
        self.q[:] = 0.0
        self.A[:] = 0.0
        self.l[:] = -np.inf
        self.u[:] = np.inf

    def add_quadratic_cost(self, expr: AffineExpression, weight: float, columns: slice):
        """Add weight * ||expr||^2 where expr acts on the unknowns in columns"""
        A, b = expr.A, expr.b
        self.P[columns, columns] += 2.0 * weight * (A.T @ A)
        self.q[columns] += 2.0 * weight * (A.T @ b)

    def add_diagonal_cost(self, weights: np.ndarray, columns: slice):
        """Add sum_i weights[i] * x_i^2 over the unknowns in columns"""
        idx = np.arange(self.num_variables)[columns]
        self.P[idx, idx] += 2.0 * weights

    def set_equality(self, rows: slice, expr: AffineExpression, columns: slice):
        """Constrain expr == 0 on the given rows"""
        self.A[rows, columns] = expr.A
        self.l[rows] = -expr.b
        self.u[rows] = -expr.b

    def set_bounds(self, rows: slice, lower, upper):
        self.l[rows] = lower
        self.u[rows] = upper

    def _P_data(self) -> np.ndarray:
        return self.P[self._P_indices, self._P_cols]

    def _A_data(self) -> np.ndarray:
        return self.A[self._A_indices, self._A_cols]

    def solve(self) -> np.ndarray:
        """
        Solve the QP with the current coefficients

        Returns:
            Primal solution x

        Raises:
            SolveFailure: if OSQP does not report a solution
        """
        if self._solver is None:
            n, m = self.num_variables, self.num_constraints
            P = sparse.csc_matrix((self._P_data(), self._P_indices, self._P_indptr), shape=(n, n))
            A = sparse.csc_matrix((self._A_data(), self._A_indices, self._A_indptr), shape=(m, n))
            self._solver = osqp.OSQP()
            self._solver.setup(P=P, q=self.q, A=A, l=self.l, u=self.u, **self.settings.as_dict())
            logger.debug("OSQP set up with %d variables and %d constraints", n, m)
        else:
            self._solver.update(
                Px=self._P_data(),
                q=self.q,
                Ax=self._A_data(),
                l=self.l,
                u=self.u
            )

        result = self._solver.solve()
        self.status = result.info.status

        if self.status == 'solved inaccurate':
            logger.warning("OSQP returned an inaccurate solution after %d iterations", result.info.iter)
        elif self.status != 'solved':
            raise SolveFailure(self.status)

        return np.array(result.x)
