"""
Tests for reference trajectories.
Run with: pytest tests/ -v
"""

import numpy as np
import pytest

from momentum_control.exceptions import DimensionMismatchError, TrajectoryDomainError
from momentum_control.planning.trajectories import (
    ConstantTrajectory, Interpolated, fit_cubic, fit_quintic
)


class TestCubic:
    """Test cubic Hermite fitting."""

    def test_interpolates_knots(self, rng):
        times = np.array([0.0, 0.4, 1.0, 1.7])
        positions = rng.normal(size=(4, 3))
        velocities = rng.normal(size=(4, 3))
        traj = fit_cubic(times, positions, velocities)
        assert traj.degree == 3 and traj.num_segments == 3
        for t, p, v in zip(times, positions, velocities):
            np.testing.assert_allclose(traj.position(t), p, atol=1e-12)
            np.testing.assert_allclose(traj.velocity(t), v, atol=1e-10)

    def test_rest_to_rest(self):
        traj = fit_cubic([0.0, 2.0], [0.0, 1.0], [0.0, 0.0])
        assert traj.position(1.0) == pytest.approx(0.5)
        assert traj.velocity(1.0) == pytest.approx(0.75)
        assert traj.acceleration(0.0) == pytest.approx(1.5)

    def test_velocity_matches_finite_difference(self, rng):
        traj = fit_cubic([0.0, 1.0, 2.0], rng.normal(size=3), rng.normal(size=3))
        h = 1e-6
        for t in [0.3, 1.2, 1.8]:
            fd = (traj.position(t + h) - traj.position(t - h)) / (2 * h)
            assert traj.velocity(t) == pytest.approx(fd, abs=1e-6)

    def test_out_of_range(self):
        traj = fit_cubic([1.0, 2.0], [0.0, 1.0], [0.0, 0.0])
        with pytest.raises(TrajectoryDomainError):
            traj.position(0.5)
        with pytest.raises(TrajectoryDomainError):
            traj.acceleration(2.0 + 1e-6)

    def test_invalid_knots(self):
        with pytest.raises(ValueError):
            fit_cubic([0.0], [0.0], [0.0])
        with pytest.raises(ValueError):
            fit_cubic([0.0, 1.0, 1.0], [0.0, 1.0, 2.0], [0.0, 0.0, 0.0])
        with pytest.raises(DimensionMismatchError):
            fit_cubic([0.0, 1.0], [0.0, 1.0, 2.0], [0.0, 0.0])


class TestQuintic:
    """Test quintic Hermite fitting."""

    def test_matches_knot_derivatives(self, rng):
        times = np.array([0.0, 0.5, 1.5])
        positions = rng.normal(size=(3, 2))
        velocities = rng.normal(size=(3, 2))
        accelerations = rng.normal(size=(3, 2))
        traj = fit_quintic(times, positions, velocities, accelerations)
        assert traj.degree == 5
        for t, p, v, a in zip(times, positions, velocities, accelerations):
            np.testing.assert_allclose(traj.position(t), p, atol=1e-12)
            np.testing.assert_allclose(traj.velocity(t), v, atol=1e-9)
            np.testing.assert_allclose(traj.acceleration(t), a, atol=1e-8)

    def test_minimum_jerk_midpoint(self):
        traj = fit_quintic([0.0, 1.0], [0.0, 1.0], [0.0, 0.0], [0.0, 0.0])
        assert traj.position(0.5) == pytest.approx(0.5)
        assert traj.velocity(0.5) == pytest.approx(1.875)
        assert traj.acceleration(0.5) == pytest.approx(0.0, abs=1e-12)


class TestConstant:
    """Test constant trajectories."""

    def test_constant(self):
        traj = ConstantTrajectory([1.0, 2.0, 3.0])
        np.testing.assert_allclose(traj.position(-1e6), [1.0, 2.0, 3.0])
        np.testing.assert_allclose(traj.velocity(5.0), 0.0)
        np.testing.assert_allclose(traj.acceleration(5.0), 0.0)


class TestInterpolated:
    """Test blending between two values."""

    def test_follows_scalar_timing(self):
        start, end = np.array([1.0, -1.0, 0.0]), np.array([2.0, 1.0, 4.0])
        s = fit_quintic([0.5, 2.5], [0.0, 1.0], [0.0, 0.0], [0.0, 0.0])
        traj = Interpolated(start, end, s)
        assert traj.t_start == 0.5 and traj.t_end == 2.5

        np.testing.assert_allclose(traj.position(0.5), start)
        np.testing.assert_allclose(traj.position(2.5), end)
        np.testing.assert_allclose(traj.position(1.5), 0.5 * (start + end))
        np.testing.assert_allclose(traj.velocity(1.2), s.velocity(1.2) * (end - start))
        np.testing.assert_allclose(traj.acceleration(1.2), s.acceleration(1.2) * (end - start))
        np.testing.assert_allclose(traj.velocity(2.5), 0.0, atol=1e-12)

    def test_domain_and_shapes(self):
        s = fit_cubic([0.0, 1.0], [0.0, 1.0], [0.0, 0.0])
        with pytest.raises(TrajectoryDomainError):
            Interpolated([0.0, 0.0], [1.0, 1.0], s).position(1.5)
        with pytest.raises(DimensionMismatchError):
            Interpolated([0.0, 0.0], [1.0, 1.0, 1.0], s)
