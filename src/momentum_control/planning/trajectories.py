#!/usr/bin/env python3
"""
Reference Trajectories
Piecewise polynomial references for task-space and joint-space motion

Segments are Hermite polynomials: each one matches position and velocity
(cubic) or position, velocity and acceleration (quintic) at both knots, so
the fitted trajectory is C1 or C2 continuous.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Sequence, Union

from ..exceptions import DimensionMismatchError, TrajectoryDomainError


ArrayLike = Union[float, Sequence[float], np.ndarray]


class Trajectory(ABC):
    """Abstract base class for reference trajectories"""

    t_start: float
    t_end: float

    @abstractmethod
    def position(self, t: float) -> np.ndarray:
        pass

    @abstractmethod
    def velocity(self, t: float) -> np.ndarray:
        pass

    @abstractmethod
    def acceleration(self, t: float) -> np.ndarray:
        pass

    def _check_domain(self, t: float):
        if t < self.t_start or t > self.t_end:
            raise TrajectoryDomainError(t, self.t_start, self.t_end)


class ConstantTrajectory(Trajectory):
    """Trajectory holding a single value forever"""

    t_start = -np.inf
    t_end = np.inf

    def __init__(self, value: ArrayLike):
        self.value = np.asarray(value, dtype=float)

    def position(self, t: float) -> np.ndarray:
        return self.value.copy()

    def velocity(self, t: float) -> np.ndarray:
        return np.zeros_like(self.value)

    def acceleration(self, t: float) -> np.ndarray:
        return np.zeros_like(self.value)


class PiecewisePolynomial(Trajectory):
    """
    Piecewise polynomial over consecutive intervals [breaks[i], breaks[i+1]]

    Coefficients have shape (segments, degree + 1, ...) and are expressed in
    the local time tau = t - breaks[i] of their segment, lowest power first.
    """

    def __init__(self, breaks: np.ndarray, coefficients: np.ndarray):
        """
        Initialize piecewise polynomial

        Args:
            breaks: Strictly increasing segment boundaries (segments + 1,)
            coefficients: Local polynomial coefficients per segment
        """
        self.breaks = np.asarray(breaks, dtype=float)
        self.coefficients = np.asarray(coefficients, dtype=float)
        if len(self.breaks) != self.coefficients.shape[0] + 1:
            raise DimensionMismatchError(
                self.coefficients.shape[0] + 1, len(self.breaks), "break points"
            )
        self.t_start = self.breaks[0]
        self.t_end = self.breaks[-1]

        # Derivative coefficients, computed once
        powers = np.arange(1, self.degree + 1).reshape((1, -1) + (1,) * (self.coefficients.ndim - 2))
        self._dcoefficients = self.coefficients[:, 1:] * powers
        powers = powers[:, :-1]
        self._ddcoefficients = self._dcoefficients[:, 1:] * powers

    @property
    def degree(self) -> int:
        return self.coefficients.shape[1] - 1

    @property
    def num_segments(self) -> int:
        return self.coefficients.shape[0]

    def _segment(self, t: float) -> int:
        i = np.searchsorted(self.breaks, t, side='right') - 1
        return int(np.clip(i, 0, self.num_segments - 1))

    def _evaluate(self, coefficients: np.ndarray, t: float) -> np.ndarray:
        self._check_domain(t)
        i = self._segment(t)
        tau = t - self.breaks[i]
        # Horner's scheme, highest power first
        value = np.zeros(coefficients.shape[2:])
        for c in coefficients[i, ::-1]:
            value = value * tau + c
        return value if value.ndim else float(value)

    def position(self, t: float) -> np.ndarray:
        return self._evaluate(self.coefficients, t)

    def velocity(self, t: float) -> np.ndarray:
        return self._evaluate(self._dcoefficients, t)

    def acceleration(self, t: float) -> np.ndarray:
        if self.degree < 2:
            self._check_domain(t)
            return np.zeros(self.coefficients.shape[2:])
        return self._evaluate(self._ddcoefficients, t)


class Interpolated(Trajectory):
    """
    Blend between two values driven by a scalar trajectory s(t)

    x(t) = start + s(t) * (end - start), so s running from 0 to 1 moves x
    from start to end with the timing of s.
    """

    def __init__(self, start: ArrayLike, end: ArrayLike, scalar: Trajectory):
        """
        Initialize interpolated trajectory

        Args:
            start: Value at s = 0
            end: Value at s = 1
            scalar: Scalar trajectory giving the blend parameter
        """
        self.start = np.asarray(start, dtype=float)
        self.end = np.asarray(end, dtype=float)
        if self.start.shape != self.end.shape:
            raise DimensionMismatchError(self.start.size, self.end.size, "interpolation end point")
        self.scalar = scalar
        self._delta = self.end - self.start

    @property
    def t_start(self) -> float:
        return self.scalar.t_start

    @property
    def t_end(self) -> float:
        return self.scalar.t_end

    def position(self, t: float) -> np.ndarray:
        return self.start + float(self.scalar.position(t)) * self._delta

    def velocity(self, t: float) -> np.ndarray:
        return float(self.scalar.velocity(t)) * self._delta

    def acceleration(self, t: float) -> np.ndarray:
        return float(self.scalar.acceleration(t)) * self._delta


def _knots(times: ArrayLike, *values: ArrayLike):
    times = np.asarray(times, dtype=float)
    if times.ndim != 1 or len(times) < 2:
        raise ValueError("At least two knot times are required")
    if np.any(np.diff(times) <= 0.0):
        raise ValueError("Knot times must be strictly increasing")

    arrays = []
    for value in values:
        value = np.asarray(value, dtype=float)
        if value.shape[0] != len(times):
            raise DimensionMismatchError(len(times), value.shape[0], "knot values")
        arrays.append(value)
    return times, arrays


def fit_cubic(
    times: ArrayLike,
    positions: ArrayLike,
    velocities: ArrayLike
) -> PiecewisePolynomial:
    """
    Fit cubic Hermite segments through knots

    Args:
        times: Knot times (n,)
        positions: Knot positions (n,) or (n, dim)
        velocities: Knot velocities, same shape as positions

    Returns:
        C1 piecewise cubic
    """
    times, (p, v) = _knots(times, positions, velocities)
    h = np.diff(times).reshape((-1,) + (1,) * (p.ndim - 1))
    p0, p1 = p[:-1], p[1:]
    v0, v1 = v[:-1], v[1:]

    # p(tau) = c0 + c1*tau + c2*tau^2 + c3*tau^3 with
    # p(0)=p0, v(0)=v0, p(h)=p1, v(h)=v1
    coefficients = np.stack([
        p0,
        v0,
        (3.0 * (p1 - p0) / h - 2.0 * v0 - v1) / h,
        (2.0 * (p0 - p1) / h + v0 + v1) / (h * h)
    ], axis=1)
    return PiecewisePolynomial(times, coefficients)


def fit_quintic(
    times: ArrayLike,
    positions: ArrayLike,
    velocities: ArrayLike,
    accelerations: ArrayLike
) -> PiecewisePolynomial:
    """
    Fit quintic Hermite segments through knots

    Args:
        times: Knot times (n,)
        positions: Knot positions (n,) or (n, dim)
        velocities: Knot velocities, same shape as positions
        accelerations: Knot accelerations, same shape as positions

    Returns:
        C2 piecewise quintic
    """
    times, (p, v, a) = _knots(times, positions, velocities, accelerations)
    h = np.diff(times).reshape((-1,) + (1,) * (p.ndim - 1))
    p0, p1 = p[:-1], p[1:]
    v0, v1 = v[:-1], v[1:]
    a0, a1 = a[:-1], a[1:]
    h2 = h * h

    coefficients = np.stack([
        p0,
        v0,
        0.5 * a0,
        (20.0 * (p1 - p0) - (8.0 * v1 + 12.0 * v0) * h - (3.0 * a0 - a1) * h2) / (2.0 * h2 * h),
        (30.0 * (p0 - p1) + (14.0 * v1 + 16.0 * v0) * h + (3.0 * a0 - 2.0 * a1) * h2) / (2.0 * h2 * h2),
        (12.0 * (p1 - p0) - 6.0 * (v1 + v0) * h + (a1 - a0) * h2) / (2.0 * h2 * h2 * h)
    ], axis=1)
    return PiecewisePolynomial(times, coefficients)
