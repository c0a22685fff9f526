"""
Planning modules for momentum-based control
Reference trajectories feeding task set points
"""

from .trajectories import (
    Trajectory,
    ConstantTrajectory,
    PiecewisePolynomial,
    Interpolated,
    fit_cubic,
    fit_quintic
)

__all__ = [
    'Trajectory',
    'ConstantTrajectory',
    'PiecewisePolynomial',
    'Interpolated',
    'fit_cubic',
    'fit_quintic'
]
